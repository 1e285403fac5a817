"""
Tests del módulo de pedidos

Tests que cubren:
- Calculadora de totales (descuentos, envío, canje de puntos)
- Flujo de estados con etapas desactivables
- Secuencia de confirmación para los canales presencial, WhatsApp y loja online
- Pasos posteriores degradados (stock, cupón sobre el tope, notificación)
- Transiciones: avance, entrega con acumulación de puntos, cancelación con devolución

Todos los escenarios con base de datos corren sobre SQLite en memoria.
"""

import pytest
from datetime import time, timedelta
from decimal import Decimal
from uuid import uuid4

from fastapi import HTTPException
from sqlalchemy import func, select, update

from comanda.common.exceptions import CheckoutValidationError, OrderPersistenceError, PreconditionConflictError
from comanda.core.config import settings
from comanda.modules.catalog.models import Product
from comanda.modules.catalog.schemas import Cart, CartLine
from comanda.modules.coupons.models import Coupon, CouponUse
from comanda.modules.coupons.schemas import CouponApplication
from comanda.modules.customers.models import Customer, CustomerAddress
from comanda.modules.loyalty.models import LoyaltyReason, LoyaltyTransaction, LoyaltyTransactionType
from comanda.modules.loyalty.service import LoyaltyLedgerService
from comanda.modules.orders import commit as order_commit
from comanda.modules.orders.commit import OrderCommitService
from comanda.modules.orders.flow import active_flow, can_cancel, counts_as_sale, initial_status, next_status
from comanda.modules.orders.models import Order, OrderFlowSettings, OrderItem, OrderStatus, PaymentMode
from comanda.modules.orders.pricing import compute_totals
from comanda.modules.orders.schemas import CheckoutRequest, CommitStep, DeliverRequest, StepStatus
from comanda.modules.orders.service import OrderFlowService, OrderStatusService
from comanda.modules.payments.schemas import PaymentLegRequest


# ===== HELPERS =====

def item(product, quantity=1, redeem=False, variation=None):
    data = {"product_id": str(product.id), "quantity": quantity, "redeem_with_points": redeem}
    if variation is not None:
        data["variation_id"] = str(variation.id)
    return data


def pay(code, **extra):
    leg = {"method": {"kind": "fixed", "code": code}}
    leg.update(extra)
    return leg


def checkout(source, items, legs=None, **extra):
    payload = {"source": source, "items": items, "payment": {"legs": legs or []}}
    change_for = extra.pop("change_for", None)
    if change_for:
        payload["payment"]["change_for"] = change_for
    payload.update(extra)
    return CheckoutRequest.model_validate(payload)


async def count(db, model, *criteria):
    result = await db.execute(select(func.count()).select_from(model).where(*criteria))
    return result.scalar_one()


async def points_of(db, customer_id):
    result = await db.execute(select(Customer.points).where(Customer.id == customer_id))
    return result.scalar_one()


# ===== TOTALES =====

class TestTotals:
    """Calculadora pura de totales"""

    def cart(self, *lines):
        return Cart(lines=list(lines))

    def line(self, price="10.00", qty=1, redeemed=False, cost=0):
        return CartLine(
            product_id=uuid4(), product_name="Item", unit_price=Decimal(price), quantity=qty,
            redeemed_with_points=redeemed, points_cost=cost
        )

    def test_redeemed_lines_cost_points_not_money(self):
        totals = compute_totals(
            self.cart(self.line("10.00", 2), self.line("7.00", 1, redeemed=True, cost=30)), is_delivery=False
        )
        assert totals.monetary_subtotal == Decimal("20.00")
        assert totals.points_required == 30
        assert totals.payable_total == Decimal("20.00")

    def test_fee_only_for_delivery(self):
        cart = self.cart(self.line())
        assert compute_totals(cart, False, delivery_fee=Decimal("8")).delivery_fee_applied == Decimal("0.00")
        assert compute_totals(cart, True, delivery_fee=Decimal("8")).payable_total == Decimal("18.00")

    def test_free_shipping_coupon_zeroes_fee(self):
        coupon = CouponApplication(coupon_id=uuid4(), code="FRETE", free_shipping=True)
        totals = compute_totals(self.cart(self.line("30.00")), True, delivery_fee=Decimal("8"), coupon=coupon)
        assert totals.delivery_fee_applied == Decimal("0.00")
        assert totals.payable_total == Decimal("30.00")

    def test_same_inputs_same_totals(self):
        cart = self.cart(self.line("12.50", 2), self.line("7.00", 1, redeemed=True, cost=30))
        coupon = CouponApplication(coupon_id=uuid4(), code="X", discount_amount=Decimal("2.50"))
        snapshot = cart.model_copy(deep=True)

        first = compute_totals(cart, True, delivery_fee=Decimal("6"), manual_discount=Decimal("1"), coupon=coupon)
        second = compute_totals(cart, True, delivery_fee=Decimal("6"), manual_discount=Decimal("1"), coupon=coupon)

        assert first == second
        assert first.payable_total == Decimal("27.50")
        assert first.points_required == 30
        assert cart == snapshot

    def test_discounts_add_up_and_total_never_negative(self):
        coupon = CouponApplication(coupon_id=uuid4(), code="X", discount_amount=Decimal("8.00"))
        totals = compute_totals(self.cart(self.line("10.00")), False, manual_discount=Decimal("5"), coupon=coupon)
        assert totals.discount_applied == Decimal("13.00")
        assert totals.payable_total == Decimal("0.00")


# ===== FLUJO =====

class TestOrderFlow:

    def test_full_flow(self):
        assert active_flow() == [OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.READY]
        assert initial_status() == OrderStatus.PENDING
        assert next_status(OrderStatus.PENDING) == OrderStatus.PREPARING
        assert next_status(OrderStatus.READY) == OrderStatus.DELIVERED

    def test_disabled_stages_are_skipped(self):
        assert initial_status(False, False) == OrderStatus.READY
        assert initial_status(False, True) == OrderStatus.PREPARING
        assert next_status(OrderStatus.PENDING, True, False) == OrderStatus.READY

    def test_stage_disabled_after_creation(self):
        assert next_status(OrderStatus.PENDING, False, True) == OrderStatus.PREPARING
        assert next_status(OrderStatus.PREPARING, True, False) == OrderStatus.READY

    def test_terminal_statuses(self):
        assert next_status(OrderStatus.DELIVERED) is None
        assert not can_cancel(OrderStatus.CANCELLED)
        assert can_cancel(OrderStatus.READY)
        assert counts_as_sale(OrderStatus.DELIVERED)
        assert not counts_as_sale(OrderStatus.READY)


# ===== CONFIRMACIÓN =====

class TestCheckoutCounter:
    """Canal presencial (PDV do caixa)"""

    def test_cash_sale_with_change(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            register = await seed.open_register(db, store_id)
            burger = await seed.product(db, store_id, price="10.00")
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            result = await service.commit(
                store_id, checkout("presencial", [item(burger, 2)], [pay("dinheiro")], change_for="50")
            )

            assert result.order_number == "PDV-000001"
            assert result.status == OrderStatus.PENDING
            assert result.payment_method == "Dinheiro"
            assert result.totals.payable_total == Decimal("20.00")
            assert result.cash_register_id == register.id
            assert result.warnings == []
            assert result.outcomes(CommitStep.CUSTOMER)[0].status == StepStatus.SKIPPED
            assert result.outcomes(CommitStep.STOCK)[0].data["outcome"] == "untracked"

            order = (await db.execute(select(Order).where(Order.id == result.order_id))).scalar_one()
            assert order.change_for == Decimal("50.00")
            assert order.payment_methods == ["Dinheiro"]
            assert order.reservation_date == now.date()
            assert await count(db, OrderItem, OrderItem.order_id == result.order_id) == 1

            assert len(notifier.notices) == 1
            assert notifier.notices[0].order_number == "PDV-000001"

            second = await service.commit(store_id, checkout("presencial", [item(burger)], [pay("pix")]))
            assert second.order_number == "PDV-000002"

        run_db(scenario)

    def test_register_closed_blocks_pickup_today(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            burger = await seed.product(db, store_id)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            with pytest.raises(PreconditionConflictError) as exc:
                await service.commit(store_id, checkout("presencial", [item(burger)], [pay("pix")]))

            assert exc.value.code == "register_closed"
            assert await count(db, Order) == 0
            assert notifier.notices == []

        run_db(scenario)

    def test_card_requires_machine(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            burger = await seed.product(db, store_id)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            with pytest.raises(CheckoutValidationError) as exc:
                await service.commit(store_id, checkout("presencial", [item(burger)], [pay("credito")]))
            assert exc.value.code == "card_machine_required"

            machine = await seed.card_machine(db, store_id)
            ok = await service.commit(
                store_id, checkout("presencial", [item(burger)], [pay("credito", card_machine_id=str(machine.id))])
            )
            assert ok.payment_method == "Crédito"

            order = (await db.execute(select(Order).where(Order.id == ok.order_id))).scalar_one()
            assert order.card_machine_ids == [str(machine.id)]

        run_db(scenario)

    def test_unknown_card_machine(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            burger = await seed.product(db, store_id)
            inactive = await seed.card_machine(db, store_id, is_active=False)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            for machine_id in (uuid4(), inactive.id):
                with pytest.raises(CheckoutValidationError) as exc:
                    await service.commit(
                        store_id, checkout("presencial", [item(burger)], [pay("debito", card_machine_id=str(machine_id))])
                    )
                assert exc.value.code == "card_machine_not_found"
            assert await count(db, Order) == 0

        run_db(scenario)

    def test_empty_cart_rejected(self, run_db, store_id, now, notifier):
        async def scenario(db):
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)
            with pytest.raises(CheckoutValidationError) as exc:
                await service.commit(store_id, checkout("presencial", [], [pay("pix")]))
            assert exc.value.code == "empty_cart"

        run_db(scenario)

    def test_stock_shortfall_does_not_block_sale(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            juice = await seed.product(db, store_id, name="Suco", price="6.00", stock=1)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            result = await service.commit(store_id, checkout("presencial", [item(juice, 3)], [pay("pix")]))

            stock = result.outcomes(CommitStep.STOCK)[0]
            assert stock.status == StepStatus.DEGRADED
            assert stock.data["outcome"] == "clamped"
            assert stock.data["shortfall"] == 2
            assert len(result.warnings) == 1

            remaining = await db.execute(select(Product.stock_quantity).where(Product.id == juice.id))
            assert remaining.scalar_one() == 0
            assert await count(db, Order) == 1

        run_db(scenario)

    def test_variation_stock_is_decremented(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            acai = await seed.product(db, store_id, name="Açaí", price="15.00", stock=10)
            large = await seed.variation(db, store_id, acai, name="700ml", adjustment="5.00", stock=4)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            result = await service.commit(
                store_id, checkout("presencial", [item(acai, 2, variation=large)], [pay("pix")])
            )

            assert result.totals.payable_total == Decimal("40.00")
            assert result.outcomes(CommitStep.STOCK)[0].data["outcome"] == "decremented"
            order_item = (await db.execute(select(OrderItem))).scalar_one()
            assert order_item.variation_name == "700ml"
            assert order_item.product_price == Decimal("20.00")

        run_db(scenario)

    def test_notification_failure_is_reported_not_raised(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            burger = await seed.product(db, store_id)
            notifier.fail = True
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            result = await service.commit(store_id, checkout("presencial", [item(burger)], [pay("pix")]))

            step = result.outcomes(CommitStep.NOTIFICATION)[0]
            assert step.status == StepStatus.FAILED
            assert "broker unavailable" in step.message
            assert await count(db, Order) == 1

        run_db(scenario)


class TestCheckoutLoyalty:
    """Canje de puntos en la confirmación"""

    def test_mixed_cart_redeems_points(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            customer = await seed.customer(db, store_id, points=100)
            burger = await seed.product(db, store_id, price="10.00")
            cookie = await seed.product(db, store_id, name="Cookie", price="5.00", redemption_cost=30)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            result = await service.commit(store_id, checkout(
                "presencial",
                [item(burger), item(cookie, redeem=True)],
                [pay("pix")],
                customer={"phone": "+55 (11) 98765-4321"}
            ))

            assert result.payment_method == "Fidelidade + PIX"
            assert result.totals.points_required == 30
            assert result.totals.payable_total == Decimal("10.00")
            assert result.customer_id == customer.id
            assert result.outcomes(CommitStep.LOYALTY)[0].status == StepStatus.OK
            assert await points_of(db, customer.id) == 70

            redeem = (await db.execute(
                select(LoyaltyTransaction).where(LoyaltyTransaction.order_id == result.order_id)
            )).scalar_one()
            assert redeem.points == -30
            assert redeem.transaction_type == LoyaltyTransactionType.REDEEM

        run_db(scenario)

    def test_fully_redeemed_order_needs_no_payment(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            await seed.customer(db, store_id, points=50)
            cookie = await seed.product(db, store_id, name="Cookie", price="5.00", redemption_cost=30)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            result = await service.commit(store_id, checkout(
                "presencial", [item(cookie, redeem=True)], customer={"phone": "11987654321"}
            ))

            assert result.totals.payable_total == Decimal("0.00")
            assert result.payment_method == "Fidelidade"

        run_db(scenario)

    def test_insufficient_points(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            await seed.customer(db, store_id, points=10)
            cookie = await seed.product(db, store_id, name="Cookie", redemption_cost=30)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            with pytest.raises(CheckoutValidationError) as exc:
                await service.commit(store_id, checkout(
                    "presencial", [item(cookie, redeem=True)], customer={"phone": "11987654321"}
                ))
            assert exc.value.code == "insufficient_points"
            assert await count(db, Order) == 0

        run_db(scenario)

    def test_points_need_identified_customer(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            cookie = await seed.product(db, store_id, name="Cookie", redemption_cost=30)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            with pytest.raises(CheckoutValidationError) as exc:
                await service.commit(store_id, checkout("presencial", [item(cookie, redeem=True)]))
            assert exc.value.code == "customer_required_for_points"

        run_db(scenario)


class TestCheckoutWhatsApp:
    """Canal de atendimento por WhatsApp: entrega, cupons, reservas"""

    def delivery(self, **extra):
        data = {
            "delivery": True,
            "delivery_fee": "8.00",
            "address": {"address": "Rua das Flores", "number": "10", "neighborhood": "Centro", "cep": "01310100"},
        }
        data.update(extra)
        return data

    def test_coupon_with_free_shipping_and_saved_address(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            acai = await seed.product(db, store_id, name="Açaí", price="25.00")
            coupon = await seed.coupon(db, store_id, code="FRETE10", free_shipping=True, max_uses=5)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            result = await service.commit(store_id, checkout(
                "whatsapp",
                [item(acai, 2)],
                [pay("pix")],
                customer={"phone": "11987654321", "name": "Maria"},
                coupon_code="frete10",
                fulfillment=self.delivery(save_address=True)
            ))

            assert result.order_number == "WA-000001"
            assert result.totals.discount_applied == Decimal("5.00")
            assert result.totals.delivery_fee_applied == Decimal("0.00")
            assert result.totals.payable_total == Decimal("45.00")
            assert result.cash_register_id is None
            assert result.outcomes(CommitStep.COUPON)[0].status == StepStatus.OK
            assert result.outcomes(CommitStep.ADDRESS)[0].status == StepStatus.OK

            uses = await db.execute(select(Coupon.current_uses).where(Coupon.id == coupon.id))
            assert uses.scalar_one() == 1
            assert await count(db, CouponUse, CouponUse.order_id == result.order_id) == 1

            address = (await db.execute(select(CustomerAddress))).scalar_one()
            assert address.cep == "01310-100"
            assert address.customer_id == result.customer_id

            notice = notifier.notices[0]
            assert notice.customer_phone == "11987654321"
            assert notice.address == "Rua das Flores, 10 - Centro"

        run_db(scenario)

    def test_customer_is_required(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            acai = await seed.product(db, store_id)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)
            with pytest.raises(CheckoutValidationError) as exc:
                await service.commit(store_id, checkout("whatsapp", [item(acai)], [pay("pix")]))
            assert exc.value.code == "customer_required"

        run_db(scenario)

    def test_new_customer_gets_channel_default_name(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            acai = await seed.product(db, store_id)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)
            result = await service.commit(store_id, checkout(
                "whatsapp", [item(acai)], [pay("pix")],
                customer={"phone": "21999990000"}, fulfillment=self.delivery()
            ))
            customer = (await db.execute(select(Customer).where(Customer.id == result.customer_id))).scalar_one()
            assert customer.name == "Cliente WhatsApp"
            assert customer.points == 0

        run_db(scenario)

    def test_incomplete_address_rejected(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            acai = await seed.product(db, store_id)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)
            with pytest.raises(CheckoutValidationError) as exc:
                await service.commit(store_id, checkout(
                    "whatsapp", [item(acai)], [pay("pix")],
                    customer={"phone": "11987654321"},
                    fulfillment={"delivery": True, "address": {"address": "Rua A"}}
                ))
            assert exc.value.code == "delivery_address_incomplete"

        run_db(scenario)

    def test_future_reservation_needs_no_register(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            acai = await seed.product(db, store_id)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)
            result = await service.commit(store_id, checkout(
                "whatsapp", [item(acai)], [pay("reserva")],
                customer={"phone": "11987654321"},
                fulfillment={"reservation_date": (now.date() + timedelta(days=1)).isoformat()}
            ))
            assert result.cash_register_id is None
            assert result.payment_method == "Reserva"

            order = (await db.execute(select(Order))).scalar_one()
            assert order.payment_mode == PaymentMode.RESERVE

        run_db(scenario)

    def test_future_delivery_without_open_register(self, run_db, seed, store_id, now, notifier):
        """Entrega agendada para dentro de 3 dias, sem caixa aberto"""
        async def scenario(db):
            acai = await seed.product(db, store_id, name="Açaí", price="25.00")
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)
            target = now.date() + timedelta(days=3)

            result = await service.commit(store_id, checkout(
                "whatsapp", [item(acai)], [pay("pix")],
                customer={"phone": "11987654321"},
                fulfillment=self.delivery(reservation_date=target.isoformat())
            ))

            assert result.cash_register_id is None
            assert result.totals.payable_total == Decimal("33.00")
            order = (await db.execute(select(Order))).scalar_one()
            assert order.cash_register_id is None
            assert order.delivery is True
            assert order.reservation_date == target

        run_db(scenario)

    def test_past_date_rejected(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            acai = await seed.product(db, store_id)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)
            with pytest.raises(CheckoutValidationError) as exc:
                await service.commit(store_id, checkout(
                    "whatsapp", [item(acai)], [pay("pix")],
                    customer={"phone": "11987654321"},
                    fulfillment={"reservation_date": (now.date() - timedelta(days=1)).isoformat()}
                ))
            assert exc.value.code == "date_in_past"

        run_db(scenario)


class TestCheckoutCoupons:
    """Cupones: rechazo previo, tope estricto y modo tolerante"""

    def test_unknown_coupon_blocks_checkout(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            burger = await seed.product(db, store_id)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)
            with pytest.raises(PreconditionConflictError) as exc:
                await service.commit(store_id, checkout(
                    "presencial", [item(burger)], [pay("pix")], coupon_code="NAOEXISTE"
                ))
            assert exc.value.code == "coupon_not_found"
            assert exc.value.message == "Cupom não encontrado"

        run_db(scenario)

    def test_exhausted_coupon_blocks_checkout(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            burger = await seed.product(db, store_id)
            await seed.coupon(db, store_id, max_uses=1, current_uses=1)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)
            with pytest.raises(PreconditionConflictError) as exc:
                await service.commit(store_id, checkout(
                    "presencial", [item(burger)], [pay("pix")], coupon_code="PROMO10"
                ))
            assert exc.value.code == "coupon_usage_limit_reached"
            assert await count(db, Order) == 0

        run_db(scenario)

    def test_failed_insert_releases_claimed_use(self, run_db, seed, store_id, now, notifier):
        class BrokenInsert(OrderCommitService):
            async def _insert_order(self, *args, **kwargs):
                raise RuntimeError("connection lost")

        async def scenario(db):
            await seed.open_register(db, store_id)
            burger = await seed.product(db, store_id)
            coupon = await seed.coupon(db, store_id, max_uses=1)
            service = BrokenInsert(db, notifier=notifier, now_provider=lambda: now)

            with pytest.raises(OrderPersistenceError):
                await service.commit(store_id, checkout(
                    "presencial", [item(burger)], [pay("pix")], coupon_code="PROMO10"
                ))

            uses = await db.execute(select(Coupon.current_uses).where(Coupon.id == coupon.id))
            assert uses.scalar_one() == 0
            assert notifier.notices == []

        run_db(scenario)

    def test_notice_failure_keeps_order_and_claimed_use(self, run_db, seed, store_id, now, notifier, monkeypatch):
        """Si no se puede armar el aviso, el pedido y el uso del cupón quedan"""
        def broken_notice(order, lines):
            raise ValueError("invalid notice")

        monkeypatch.setattr(order_commit, "build_notice", broken_notice)

        async def scenario(db):
            await seed.open_register(db, store_id)
            burger = await seed.product(db, store_id)
            coupon = await seed.coupon(db, store_id, max_uses=1)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            result = await service.commit(store_id, checkout(
                "presencial", [item(burger)], [pay("pix")], coupon_code="PROMO10"
            ))

            assert result.order_number == "PDV-000001"
            assert result.outcomes(CommitStep.COUPON)[0].status == StepStatus.OK
            step = result.outcomes(CommitStep.NOTIFICATION)[0]
            assert step.status == StepStatus.FAILED
            assert step in result.warnings
            assert notifier.notices == []
            assert await count(db, Order) == 1
            uses = await db.execute(select(Coupon.current_uses).where(Coupon.id == coupon.id))
            assert uses.scalar_one() == 1

        run_db(scenario)

    def test_soft_mode_flags_use_over_ceiling(self, run_db, seed, store_id, now, notifier, monkeypatch):
        monkeypatch.setattr(settings, "COUPON_CEILING_MODE", "soft")

        class ConcurrentUse(OrderCommitService):
            async def _insert_items(self, store_id, placed, cart, steps):
                # Otro pedido consume el último uso mientras este se confirma
                await self.db.execute(update(Coupon).values(current_uses=Coupon.current_uses + 1))
                await self.db.commit()
                await super()._insert_items(store_id, placed, cart, steps)

        async def scenario(db):
            await seed.open_register(db, store_id)
            burger = await seed.product(db, store_id, price="20.00")
            coupon = await seed.coupon(db, store_id, max_uses=1)
            service = ConcurrentUse(db, notifier=notifier, now_provider=lambda: now)

            result = await service.commit(store_id, checkout(
                "presencial", [item(burger)], [pay("pix")], coupon_code="PROMO10"
            ))

            step = result.outcomes(CommitStep.COUPON)[0]
            assert step.status == StepStatus.DEGRADED
            assert step in result.warnings
            uses = await db.execute(select(Coupon.current_uses).where(Coupon.id == coupon.id))
            assert uses.scalar_one() == 2
            flagged = (await db.execute(select(CouponUse.over_ceiling))).scalar_one()
            assert flagged is True

        run_db(scenario)


class TestCheckoutOnlineStore:
    """Loja online: horario de atención y franja de retirada obligatoria"""

    def test_pickup_inside_hours(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            await seed.weekly_hours(db, store_id)
            db.add(OrderFlowSettings(store_id=store_id, is_pending_active=False, is_preparing_active=True))
            await db.commit()
            acai = await seed.product(db, store_id)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            result = await service.commit(store_id, checkout(
                "loja_online", [item(acai)], [pay("pix")],
                customer={"phone": "11987654321"},
                fulfillment={"reservation_date": now.date().isoformat(), "pickup_time": "13:00"}
            ))

            assert result.order_number == "PED-000001"
            assert result.status == OrderStatus.PREPARING

        run_db(scenario)

    def test_pickup_slot_required(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.weekly_hours(db, store_id)
            acai = await seed.product(db, store_id)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)
            with pytest.raises(CheckoutValidationError) as exc:
                await service.commit(store_id, checkout(
                    "loja_online", [item(acai)], [pay("pix")], customer={"phone": "11987654321"}
                ))
            assert exc.value.code == "pickup_slot_required"

        run_db(scenario)

    def test_closed_date_rejected(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            tomorrow = now.date() + timedelta(days=1)
            await seed.weekly_hours(db, store_id)
            await seed.special_day(db, store_id, tomorrow, is_open=False, description="Feriado")
            acai = await seed.product(db, store_id)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            with pytest.raises(CheckoutValidationError) as exc:
                await service.commit(store_id, checkout(
                    "loja_online", [item(acai)], [pay("pix")],
                    customer={"phone": "11987654321"},
                    fulfillment={"reservation_date": tomorrow.isoformat(), "pickup_time": "13:00"}
                ))
            assert exc.value.code == "date_closed"

        run_db(scenario)

    def test_pickup_outside_hours(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.weekly_hours(db, store_id, open_time=time(8, 0), close_time=time(18, 0))
            acai = await seed.product(db, store_id)
            service = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)

            with pytest.raises(CheckoutValidationError) as exc:
                await service.commit(store_id, checkout(
                    "loja_online", [item(acai)], [pay("pix")],
                    customer={"phone": "11987654321"},
                    fulfillment={
                        "reservation_date": (now.date() + timedelta(days=1)).isoformat(),
                        "pickup_time": "19:30"
                    }
                ))
            assert exc.value.code == "outside_hours"

        run_db(scenario)


# ===== TRANSICIONES =====

class TestOrderStatus:
    """Avance, entrega y cancelación"""

    def test_advance_to_delivered_earns_points(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            customer = await seed.customer(db, store_id)
            burger = await seed.product(db, store_id, price="10.00", earns_points=True, points_per_currency="1")
            placed = await OrderCommitService(db, notifier=notifier, now_provider=lambda: now).commit(
                store_id, checkout("presencial", [item(burger, 2)], [pay("pix")], customer={"phone": "11987654321"})
            )
            service = OrderStatusService(db)

            assert (await service.advance(store_id, placed.order_id)).status == OrderStatus.PREPARING
            assert (await service.advance(store_id, placed.order_id)).status == OrderStatus.READY
            delivered = await service.advance(store_id, placed.order_id)
            assert delivered.status == OrderStatus.DELIVERED
            assert delivered.delivered_at is not None

            assert await points_of(db, customer.id) == 20
            earn = (await db.execute(
                select(LoyaltyTransaction).where(LoyaltyTransaction.reason == LoyaltyReason.ORDER_DELIVERED)
            )).scalar_one()
            assert earn.points == 20
            assert earn.order_id == placed.order_id

            with pytest.raises(HTTPException) as exc:
                await service.advance(store_id, placed.order_id)
            assert exc.value.status_code == 400

        run_db(scenario)

    def test_advance_follows_store_flow(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            burger = await seed.product(db, store_id)
            placed = await OrderCommitService(db, notifier=notifier, now_provider=lambda: now).commit(
                store_id, checkout("presencial", [item(burger)], [pay("pix")])
            )
            db.add(OrderFlowSettings(store_id=store_id, is_pending_active=True, is_preparing_active=False))
            await db.commit()

            flow = await OrderFlowService(db).describe(store_id)
            assert flow.active_flow == [OrderStatus.PENDING, OrderStatus.READY]
            assert (await OrderStatusService(db).advance(store_id, placed.order_id)).status == OrderStatus.READY

        run_db(scenario)

    def test_redeemed_lines_do_not_earn(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            customer = await seed.customer(db, store_id, points=100)
            burger = await seed.product(db, store_id, price="10.00", earns_points=True, points_per_currency="1")
            cookie = await seed.product(
                db, store_id, name="Cookie", price="5.00", redemption_cost=30, earns_points=True,
                points_per_currency="1"
            )
            placed = await OrderCommitService(db, notifier=notifier, now_provider=lambda: now).commit(
                store_id, checkout(
                    "presencial", [item(burger), item(cookie, redeem=True)], [pay("pix")],
                    customer={"phone": "11987654321"}
                )
            )

            await OrderStatusService(db).deliver(store_id, placed.order_id, DeliverRequest())
            assert await points_of(db, customer.id) == 100 - 30 + 10

        run_db(scenario)

    def test_cancel_refunds_redeemed_points(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            await seed.open_register(db, store_id)
            customer = await seed.customer(db, store_id, points=100)
            cookie = await seed.product(db, store_id, name="Cookie", price="5.00", redemption_cost=30)
            placed = await OrderCommitService(db, notifier=notifier, now_provider=lambda: now).commit(
                store_id, checkout("presencial", [item(cookie, redeem=True)], customer={"phone": "11987654321"})
            )
            assert await points_of(db, customer.id) == 70

            cancelled = await OrderStatusService(db).cancel(store_id, placed.order_id)
            assert cancelled.status == OrderStatus.CANCELLED
            assert await points_of(db, customer.id) == 100

            refund = (await db.execute(
                select(LoyaltyTransaction).where(LoyaltyTransaction.reason == LoyaltyReason.CANCELLATION_REFUND)
            )).scalar_one()
            assert refund.points == 30
            assert refund.transaction_type == LoyaltyTransactionType.EARN

            again = await LoyaltyLedgerService(db).refund_order_redemptions(
                store_id, customer.id, placed.order_id, placed.order_number
            )
            assert again == 0

            with pytest.raises(HTTPException) as exc:
                await OrderStatusService(db).cancel(store_id, placed.order_id)
            assert exc.value.status_code == 400

        run_db(scenario)

    def test_reserve_is_settled_on_delivery(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            acai = await seed.product(db, store_id, price="30.00")
            placed = await OrderCommitService(db, notifier=notifier, now_provider=lambda: now).commit(
                store_id, checkout(
                    "whatsapp", [item(acai)], [pay("reserva")],
                    customer={"phone": "11987654321"},
                    fulfillment={"reservation_date": (now.date() + timedelta(days=2)).isoformat()}
                )
            )
            service = OrderStatusService(db)

            with pytest.raises(HTTPException) as exc:
                await service.deliver(store_id, placed.order_id, DeliverRequest())
            assert exc.value.status_code == 400

            settlement = PaymentLegRequest.model_validate({"method": {"kind": "fixed", "code": "pix"}})
            delivered = await service.deliver(store_id, placed.order_id, DeliverRequest(settlement=settlement))
            assert delivered.payment_method == "PIX"

            order = (await db.execute(select(Order).where(Order.id == placed.order_id))).scalar_one()
            assert order.payment_mode == PaymentMode.SINGLE
            assert order.payment_amounts == ["30.00"]

        run_db(scenario)

    def test_unknown_order(self, run_db, store_id):
        async def scenario(db):
            with pytest.raises(HTTPException) as exc:
                await OrderStatusService(db).cancel(store_id, uuid4())
            assert exc.value.status_code == 404

        run_db(scenario)
