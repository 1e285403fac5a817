"""
Secuencia de confirmación del pedido

Orden de ejecución:
1. Precondiciones (sin escrituras): catálogo, entrega, horario, cupón,
   puntos, pago y sesión de caja
2. Alta/lectura del cliente por teléfono
3. Inserción del pedido (si falla, nada más se ejecuta)
4. Líneas del pedido
5. Baja de stock por línea (nunca deja stock negativo)
6. Canje de puntos en el libro de fidelidad
7. Registro de uso del cupón
8. Dirección guardada (opcional)

Los pasos 4 a 8 se confirman por separado: un fallo queda registrado en
CommitResult.steps y en el log, y no revierte el pedido ya confirmado.
La confirmación por WhatsApp y la impresión se encolan al final.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from comanda.common.clock import store_now
from comanda.common.exceptions import (
    CheckoutValidationError, OrderPersistenceError, PreconditionConflictError
)
from comanda.core.config import settings
from comanda.modules.cash_register.binder import bind_cash_session
from comanda.modules.cash_register.service import CashRegisterService
from comanda.modules.catalog.schemas import Cart, StockOutcome
from comanda.modules.catalog.service import CatalogService, StockService
from comanda.modules.coupons.schemas import CouponApplication
from comanda.modules.coupons.service import CouponService
from comanda.modules.customers.models import Customer
from comanda.modules.customers.service import CustomerService
from comanda.modules.loyalty.service import LoyaltyLedgerService
from comanda.modules.notifications.schemas import OrderNotice
from comanda.modules.notifications.service import OrderNotifier, build_notice, get_order_notifier
from comanda.modules.orders.flow import initial_status
from comanda.modules.orders.models import Order, OrderItem, OrderSource, OrderStatus, PaymentMode
from comanda.modules.orders.numbering import ensure_sequence, next_order_number
from comanda.modules.orders.pricing import Totals, compute_totals
from comanda.modules.orders.schemas import (
    CheckoutRequest, CommitResult, CommitStep, StepOutcome, StepStatus, TotalsOut
)
from comanda.modules.orders.service import OrderFlowService
from comanda.modules.payments.allocation import allocate_payment
from comanda.modules.payments.schemas import CustomMethodRef, PaymentSelection
from comanda.modules.payments.service import PaymentMethodService
from comanda.modules.schedule.gate import check_availability
from comanda.modules.schedule.service import ScheduleService

logger = logging.getLogger(__name__)


# ===== POLÍTICAS POR CANAL =====

class CheckoutPolicy(BaseModel):
    model_config = {"frozen": True}

    requires_schedule_gate: bool = False
    requires_pickup_slot: bool = False
    requires_customer: bool = False
    requires_card_machine: bool = False
    staff_only: bool = False
    default_customer_name: str = "Cliente"


CHANNEL_POLICIES = {
    OrderSource.PRESENCIAL: CheckoutPolicy(requires_card_machine=True, staff_only=True),
    OrderSource.WHATSAPP: CheckoutPolicy(
        requires_customer=True, requires_card_machine=True, staff_only=True,
        default_customer_name="Cliente WhatsApp"
    ),
    OrderSource.LOJA_ONLINE: CheckoutPolicy(
        requires_schedule_gate=True, requires_pickup_slot=True, requires_customer=True
    ),
    OrderSource.TOTEM: CheckoutPolicy(),
    OrderSource.IFOOD: CheckoutPolicy(
        requires_customer=True, staff_only=True, default_customer_name="Cliente iFood"
    ),
}


@dataclass
class _Prepared:
    """Resultado de las precondiciones: todo lo necesario para escribir."""
    cart: Cart
    totals: Totals
    selection: PaymentSelection
    coupon: Optional[CouponApplication] = None
    coupon_claimed: bool = False
    cash_register_id: Optional[UUID] = None
    customer: Optional[Customer] = None


@dataclass
class PlacedOrder:
    """Datos del pedido insertado que usan los pasos posteriores"""
    id: UUID
    order_number: str
    status: OrderStatus
    payment_method: str
    cash_register_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    customer_phone: Optional[str] = None


def totals_out(totals: Totals) -> TotalsOut:
    return TotalsOut(
        monetary_subtotal=totals.monetary_subtotal,
        points_required=totals.points_required,
        delivery_fee_applied=totals.delivery_fee_applied,
        discount_applied=totals.discount_applied,
        payable_total=totals.payable_total
    )


class OrderCommitService:
    """Orquesta la confirmación del pedido para los tres canales."""

    def __init__(
        self,
        db: AsyncSession,
        notifier: Optional[OrderNotifier] = None,
        now_provider: Callable[[], datetime] = store_now
    ):
        self.db = db
        self.notifier = notifier or get_order_notifier()
        self.now_provider = now_provider
        self.customers = CustomerService(db)
        self.coupons = CouponService(db)
        self.ledger = LoyaltyLedgerService(db)
        self.stock = StockService(db)

    async def commit(self, store_id: UUID, request: CheckoutRequest, user_id: Optional[UUID] = None) -> CommitResult:
        now = self.now_provider()
        policy = CHANNEL_POLICIES[request.source]
        logger.info(f"Checkout started for store {store_id} via {request.source.value}")

        prepared = await self._check_preconditions(store_id, request, policy, now)
        steps: List[StepOutcome] = []

        try:
            customer = await self._upsert_customer(store_id, request, policy, prepared)
            order = await self._insert_order(store_id, request, prepared, customer, now, user_id)
            # Snapshot antes de cualquier rollback parcial: la sesión expira los objetos ORM
            placed = PlacedOrder(
                id=order.id,
                order_number=order.order_number,
                status=order.status,
                payment_method=order.payment_method,
                cash_register_id=order.cash_register_id,
                customer_id=customer.id if customer else None,
                customer_phone=customer.phone if customer else None
            )
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Order insert failed for store {store_id}: {e}")
            await self._release_coupon(store_id, prepared)
            raise OrderPersistenceError(payload={"source": request.source.value}) from e

        # El pedido ya está confirmado: un aviso que no se puede armar sólo afecta a la notificación
        notice: Optional[OrderNotice] = None
        try:
            notice = build_notice(order, prepared.cart.lines)
        except Exception as e:
            logger.error(f"Order {placed.order_number}: confirmation notice not built: {e}")

        steps.append(StepOutcome(
            step=CommitStep.CUSTOMER,
            status=StepStatus.OK if placed.customer_id else StepStatus.SKIPPED,
            data={"customer_id": str(placed.customer_id)} if placed.customer_id else {}
        ))
        steps.append(StepOutcome(step=CommitStep.ORDER, status=StepStatus.OK, data={"order_number": placed.order_number}))

        await self._insert_items(store_id, placed, prepared.cart, steps)
        await self._decrement_stock(store_id, placed, prepared.cart, steps)
        await self._redeem_points(store_id, placed, prepared.totals, steps)
        await self._register_coupon(store_id, placed, prepared, steps)
        await self._save_address(store_id, request, placed, steps)
        await self._notify(placed, notice, steps)

        result = CommitResult(
            order_id=placed.id,
            order_number=placed.order_number,
            status=placed.status,
            payment_method=placed.payment_method,
            totals=totals_out(prepared.totals),
            customer_id=placed.customer_id,
            cash_register_id=placed.cash_register_id,
            steps=steps
        )
        if result.warnings:
            logger.warning(
                f"Order {placed.order_number} committed with {len(result.warnings)} step(s) needing reconciliation"
            )
        else:
            logger.info(f"Order {placed.order_number} committed")
        return result

    # ===== 1. PRECONDICIONES =====

    async def _check_preconditions(
        self, store_id: UUID, request: CheckoutRequest, policy: CheckoutPolicy, now: datetime
    ) -> _Prepared:
        today = now.date()
        fulfillment = request.fulfillment

        cart = await CatalogService(self.db).build_cart(store_id, request.items)
        if cart.is_empty:
            raise CheckoutValidationError("empty_cart", "O carrinho está vazio")

        if policy.requires_customer and request.customer is None:
            raise CheckoutValidationError("customer_required", "Informe o telefone do cliente")

        if policy.requires_pickup_slot and (fulfillment.reservation_date is None or fulfillment.pickup_time is None):
            raise CheckoutValidationError("pickup_slot_required", "Selecione a data e o horário")

        if fulfillment.reservation_date and fulfillment.reservation_date < today:
            raise CheckoutValidationError("date_in_past", "A data selecionada já passou")

        if fulfillment.delivery and (fulfillment.address is None or not fulfillment.address.is_complete):
            raise CheckoutValidationError(
                "delivery_address_incomplete", "Informe o endereço e o bairro para entrega"
            )

        if policy.requires_schedule_gate:
            target = fulfillment.reservation_date or today
            snapshot = await ScheduleService(self.db).snapshot(store_id, target, horizon_days=0)
            availability = check_availability(snapshot, target, fulfillment.pickup_time, now)
            if not availability.is_open:
                raise CheckoutValidationError(availability.reason.value, availability.message)

        customer = None
        phone = request.customer.phone if request.customer else None
        if phone:
            customer = await self.customers.get_by_phone(store_id, phone)

        coupon = None
        if request.coupon_code:
            decision = await self.coupons.evaluate(store_id, request.coupon_code, cart, phone, now)
            if not decision.accepted:
                raise PreconditionConflictError(f"coupon_{decision.rejection.value}", decision.message)
            coupon = decision.application

        totals = compute_totals(
            cart,
            is_delivery=fulfillment.delivery,
            delivery_fee=fulfillment.delivery_fee,
            manual_discount=request.manual_discount,
            coupon=coupon
        )

        if totals.points_required > 0:
            if request.customer is None:
                raise CheckoutValidationError(
                    "customer_required_for_points", "Informe o cliente para resgatar pontos"
                )
            balance = customer.points if customer else 0
            if totals.points_required > balance:
                raise CheckoutValidationError(
                    "insufficient_points",
                    f"Pontos insuficientes: necessário {totals.points_required}, disponível {balance}"
                )

        payments = PaymentMethodService(self.db)
        custom_ids = [leg.method.id for leg in request.payment.legs if isinstance(leg.method, CustomMethodRef)]
        custom_methods = await payments.custom_methods(store_id, custom_ids)
        selection = allocate_payment(
            request.payment,
            payable_total=totals.payable_total,
            points_required=totals.points_required,
            channel=request.source.value,
            custom_methods=custom_methods,
            card_machine_required=policy.requires_card_machine,
            tolerance=settings.PAYMENT_TOLERANCE
        )

        machine_ids = {leg.card_machine_id for leg in selection.legs if leg.card_machine_id}
        if machine_ids:
            known = await payments.active_card_machines(store_id, list(machine_ids))
            if known != machine_ids:
                raise CheckoutValidationError("card_machine_not_found", "Maquininha não encontrada ou inativa")

        open_session = await CashRegisterService(self.db).get_open_session(store_id)
        binding = bind_cash_session(
            fulfillment.reservation_date,
            fulfillment.delivery,
            today,
            open_session.id if open_session else None
        )

        claimed = False
        if coupon is not None and settings.COUPON_CEILING_MODE == "hard":
            if not await self.coupons.claim(store_id, coupon.coupon_id):
                raise PreconditionConflictError("coupon_usage_limit_reached", "Cupom esgotado")
            claimed = True

        return _Prepared(
            cart=cart,
            totals=totals,
            selection=selection,
            coupon=coupon,
            coupon_claimed=claimed,
            cash_register_id=binding.cash_register_id,
            customer=customer
        )

    # ===== 2-3. CLIENTE Y PEDIDO =====

    async def _upsert_customer(
        self, store_id: UUID, request: CheckoutRequest, policy: CheckoutPolicy, prepared: _Prepared
    ) -> Optional[Customer]:
        if request.customer is None:
            return None
        if prepared.customer is not None:
            return prepared.customer
        return await self.customers.upsert(store_id, request.customer, default_name=policy.default_customer_name)

    async def _insert_order(
        self,
        store_id: UUID,
        request: CheckoutRequest,
        prepared: _Prepared,
        customer: Optional[Customer],
        now: datetime,
        user_id: Optional[UUID]
    ) -> Order:
        prefix = settings.ORDER_NUMBER_PREFIXES.get(request.source.value, "PED")
        await ensure_sequence(self.db, store_id, prefix)

        flow = await OrderFlowService(self.db).get_settings(store_id)
        fulfillment = request.fulfillment
        address = fulfillment.address if fulfillment.delivery else None
        totals = prepared.totals
        selection = prepared.selection

        order = Order(
            store_id=store_id,
            order_number=await next_order_number(self.db, store_id, prefix),
            source=request.source,
            status=initial_status(flow.is_pending_active, flow.is_preparing_active),
            customer_id=customer.id if customer else None,
            customer_name=customer.name if customer else None,
            customer_phone=customer.phone if customer else None,
            subtotal=totals.monetary_subtotal,
            discount_amount=totals.discount_applied,
            delivery_fee=totals.delivery_fee_applied,
            total=totals.payable_total,
            points_redeemed=totals.points_required,
            payment_method=selection.label,
            payment_mode=PaymentMode(selection.mode.value),
            payment_methods=selection.method_names,
            payment_amounts=selection.amounts,
            card_machine_ids=selection.card_machine_ids,
            change_for=selection.change_for,
            coupon_id=prepared.coupon.coupon_id if prepared.coupon else None,
            coupon_code=prepared.coupon.code if prepared.coupon else None,
            delivery=fulfillment.delivery,
            delivery_address=address.address if address else None,
            delivery_number=address.number if address else None,
            delivery_neighborhood=address.neighborhood if address else None,
            delivery_reference=address.reference if address else None,
            delivery_cep=address.cep if address else None,
            reservation_date=fulfillment.reservation_date or now.date(),
            pickup_time=fulfillment.pickup_time,
            cash_register_id=prepared.cash_register_id,
            notes=request.notes,
            created_by=user_id
        )
        self.db.add(order)
        await self.db.commit()
        await self.db.refresh(order)
        return order

    async def _release_coupon(self, store_id: UUID, prepared: _Prepared) -> None:
        if not prepared.coupon_claimed:
            return
        try:
            await self.coupons.release(store_id, prepared.coupon.coupon_id)
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Could not release coupon {prepared.coupon.code} after failed order: {e}")

    # ===== 4-8. PASOS POSTERIORES =====

    async def _insert_items(self, store_id: UUID, placed: PlacedOrder, cart: Cart, steps: List[StepOutcome]) -> None:
        items = [
            OrderItem(
                store_id=store_id,
                order_id=placed.id,
                product_id=line.product_id,
                product_variation_id=line.variation_id,
                product_name=line.product_name,
                variation_name=line.variation_name,
                product_price=0 if line.redeemed_with_points else line.unit_price,
                quantity=line.quantity,
                subtotal=line.monetary_subtotal,
                redeemed_with_points=line.redeemed_with_points,
                points_cost=line.points_cost
            )
            for line in cart.lines
        ]
        try:
            self.db.add_all(items)
            await self.db.commit()
            steps.append(StepOutcome(step=CommitStep.ITEMS, status=StepStatus.OK, data={"count": len(items)}))
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Order {placed.order_number}: items insert failed: {e}")
            steps.append(StepOutcome(step=CommitStep.ITEMS, status=StepStatus.FAILED, message=str(e)))

    async def _decrement_stock(self, store_id: UUID, placed: PlacedOrder, cart: Cart, steps: List[StepOutcome]) -> None:
        for line in cart.lines:
            data = {"product_id": str(line.product_id), "requested": line.quantity}
            if line.variation_id:
                data["variation_id"] = str(line.variation_id)
            try:
                result = await self.stock.decrement(store_id, line)
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                logger.error(f"Order {placed.order_number}: stock decrement failed for {line.display_name}: {e}")
                steps.append(StepOutcome(step=CommitStep.STOCK, status=StepStatus.FAILED, message=str(e), data=data))
                continue

            data.update(outcome=result.outcome.value, shortfall=result.shortfall)
            if result.outcome in (StockOutcome.DECREMENTED, StockOutcome.UNTRACKED):
                steps.append(StepOutcome(step=CommitStep.STOCK, status=StepStatus.OK, data=data))
            else:
                logger.warning(
                    f"Order {placed.order_number}: stock for {line.display_name} {result.outcome.value} "
                    f"(shortfall {result.shortfall})"
                )
                steps.append(StepOutcome(
                    step=CommitStep.STOCK,
                    status=StepStatus.DEGRADED,
                    message=f"Estoque insuficiente para {line.display_name}",
                    data=data
                ))

    async def _redeem_points(self, store_id: UUID, placed: PlacedOrder, totals: Totals, steps: List[StepOutcome]) -> None:
        if totals.points_required <= 0 or placed.customer_id is None:
            steps.append(StepOutcome(step=CommitStep.LOYALTY, status=StepStatus.SKIPPED))
            return

        points = totals.points_required
        try:
            applied = await self.ledger.redeem(
                store_id,
                placed.customer_id,
                points,
                order_id=placed.id,
                description=f"Resgate de {points} pontos no pedido {placed.order_number}"
            )
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Order {placed.order_number}: loyalty redeem failed: {e}")
            steps.append(StepOutcome(step=CommitStep.LOYALTY, status=StepStatus.FAILED, message=str(e)))
            return

        if applied:
            steps.append(StepOutcome(step=CommitStep.LOYALTY, status=StepStatus.OK, data={"points": -points}))
        else:
            steps.append(StepOutcome(
                step=CommitStep.LOYALTY,
                status=StepStatus.FAILED,
                message="Saldo de pontos alterado antes do resgate",
                data={"points": -points}
            ))

    async def _register_coupon(
        self, store_id: UUID, placed: PlacedOrder, prepared: _Prepared, steps: List[StepOutcome]
    ) -> None:
        if prepared.coupon is None:
            steps.append(StepOutcome(step=CommitStep.COUPON, status=StepStatus.SKIPPED))
            return
        try:
            over_ceiling = await self.coupons.register_use(
                store_id,
                prepared.coupon,
                order_id=placed.id,
                customer_id=placed.customer_id,
                customer_phone=placed.customer_phone,
                already_claimed=prepared.coupon_claimed
            )
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Order {placed.order_number}: coupon usage not recorded: {e}")
            steps.append(StepOutcome(step=CommitStep.COUPON, status=StepStatus.FAILED, message=str(e)))
            return

        data = {"code": prepared.coupon.code, "discount": str(prepared.coupon.discount_amount)}
        if over_ceiling:
            steps.append(StepOutcome(
                step=CommitStep.COUPON,
                status=StepStatus.DEGRADED,
                message="Cupom usado acima do limite de usos",
                data=data
            ))
        else:
            steps.append(StepOutcome(step=CommitStep.COUPON, status=StepStatus.OK, data=data))

    async def _save_address(
        self, store_id: UUID, request: CheckoutRequest, placed: PlacedOrder, steps: List[StepOutcome]
    ) -> None:
        fulfillment = request.fulfillment
        if not (fulfillment.delivery and fulfillment.save_address and placed.customer_id and fulfillment.address):
            steps.append(StepOutcome(step=CommitStep.ADDRESS, status=StepStatus.SKIPPED))
            return
        try:
            saved = await self.customers.save_address(store_id, placed.customer_id, fulfillment.address)
            steps.append(StepOutcome(step=CommitStep.ADDRESS, status=StepStatus.OK, data={"address_id": str(saved.id)}))
        except Exception as e:
            await self.db.rollback()
            logger.warning(f"Address not saved for customer {placed.customer_id}: {e}")
            steps.append(StepOutcome(step=CommitStep.ADDRESS, status=StepStatus.FAILED, message=str(e)))

    async def _notify(self, placed: PlacedOrder, notice: Optional[OrderNotice], steps: List[StepOutcome]) -> None:
        if notice is None:
            steps.append(StepOutcome(
                step=CommitStep.NOTIFICATION,
                status=StepStatus.FAILED,
                message="Aviso do pedido não pôde ser montado"
            ))
            return
        try:
            await asyncio.to_thread(self.notifier.order_confirmed, notice)
            steps.append(StepOutcome(step=CommitStep.NOTIFICATION, status=StepStatus.OK))
        except Exception as e:
            logger.warning(f"Order {placed.order_number}: confirmation not dispatched: {e}")
            steps.append(StepOutcome(step=CommitStep.NOTIFICATION, status=StepStatus.FAILED, message=str(e)))
