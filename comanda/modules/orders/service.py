"""
Servicios de negocio para el módulo de pedidos

Implementa:
- OrderFlowService: etapas activas del flujo por tienda
- OrderQuoteService: revisión del carrito (totales + cupón) sin escrituras
- OrderStatusService: avance, entrega y cancelación con efectos en fidelidad
  * entrega: acredita puntos de las líneas monetarias y liquida reservas
  * cancelación: devuelve los puntos canjeados en el pedido
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from comanda.common.clock import store_now
from comanda.modules.catalog.models import Product
from comanda.modules.catalog.service import CatalogService
from comanda.modules.coupons.service import CouponService
from comanda.modules.loyalty.models import LoyaltyReason
from comanda.modules.loyalty.service import LoyaltyLedgerService, calculate_earned_points
from comanda.modules.orders.flow import active_flow, can_cancel, initial_status, next_status
from comanda.modules.orders.models import Order, OrderFlowSettings, OrderItem, OrderStatus, PaymentMode
from comanda.modules.orders.pricing import compute_totals
from comanda.modules.orders.schemas import (
    DeliverRequest, OrderFlowOut, OrderOut, QuoteRequest, QuoteResponse, TotalsOut
)
from comanda.modules.payments.allocation import allocate_payment
from comanda.modules.payments.schemas import CustomMethodRef, PaymentMode as SelectionMode, PaymentRequest
from comanda.modules.payments.service import PaymentMethodService

logger = logging.getLogger(__name__)


class OrderFlowService:
    """Configuración del flujo de preparación"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_settings(self, store_id: UUID) -> OrderFlowSettings:
        result = await self.db.execute(
            select(OrderFlowSettings).where(OrderFlowSettings.store_id == store_id)
        )
        flow = result.scalar_one_or_none()
        if flow is None:
            # Sin configuración: todas las etapas activas
            return OrderFlowSettings(store_id=store_id, is_pending_active=True, is_preparing_active=True)
        return flow

    async def describe(self, store_id: UUID) -> OrderFlowOut:
        flow = await self.get_settings(store_id)
        return OrderFlowOut(
            initial_status=initial_status(flow.is_pending_active, flow.is_preparing_active),
            active_flow=active_flow(flow.is_pending_active, flow.is_preparing_active)
        )


class OrderQuoteService:
    """Revisión del carrito antes de confirmar"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def quote(self, store_id: UUID, request: QuoteRequest) -> QuoteResponse:
        cart = await CatalogService(self.db).build_cart(store_id, request.items)

        decision = None
        if request.coupon_code:
            decision = await CouponService(self.db).evaluate(
                store_id, request.coupon_code, cart, request.customer_phone, store_now()
            )

        totals = compute_totals(
            cart,
            is_delivery=request.delivery,
            delivery_fee=request.delivery_fee,
            manual_discount=request.manual_discount,
            coupon=decision.application if decision else None
        )
        return QuoteResponse(
            totals=TotalsOut(
                monetary_subtotal=totals.monetary_subtotal,
                points_required=totals.points_required,
                delivery_fee_applied=totals.delivery_fee_applied,
                discount_applied=totals.discount_applied,
                payable_total=totals.payable_total
            ),
            coupon_valid=decision.accepted if decision else None,
            coupon_rejection=decision.rejection if decision else None,
            coupon_message=decision.message if decision else None
        )


class OrderStatusService:
    """Transiciones de estado del pedido"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = LoyaltyLedgerService(db)

    async def get_order(self, store_id: UUID, order_id: UUID) -> Order:
        result = await self.db.execute(
            select(Order).where(Order.id == order_id, Order.store_id == store_id)
        )
        order = result.scalar_one_or_none()
        if not order:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Pedido não encontrado"
            )
        return order

    async def advance(self, store_id: UUID, order_id: UUID) -> OrderOut:
        """Avanza al siguiente estado del flujo activo."""
        order = await self.get_order(store_id, order_id)
        flow = await OrderFlowService(self.db).get_settings(store_id)
        target = next_status(order.status, flow.is_pending_active, flow.is_preparing_active)

        if target is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="O pedido já foi finalizado"
            )
        if target == OrderStatus.DELIVERED:
            return await self.deliver(store_id, order_id, DeliverRequest())

        order.status = target
        await self.db.commit()
        await self.db.refresh(order)
        logger.info(f"Order {order.order_number} moved to {target.value}")
        return OrderOut.model_validate(order)

    async def deliver(self, store_id: UUID, order_id: UUID, data: DeliverRequest) -> OrderOut:
        """
        Marca el pedido como entregado.
        Reservas exigen la forma de pago real; los puntos de las líneas
        monetarias se acreditan en la misma transacción.
        """
        order = await self.get_order(store_id, order_id)
        if order.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="O pedido já foi finalizado"
            )

        if order.payment_mode == PaymentMode.RESERVE:
            await self._settle_reserve(store_id, order, data)

        order_number = order.order_number
        customer_id = order.customer_id
        order.status = OrderStatus.DELIVERED
        order.delivered_at = datetime.now(timezone.utc)

        points = 0
        if customer_id:
            points = await self._earned_points(store_id, order.id)

        if points > 0:
            # earn() confirma el cambio de estado junto con el crédito
            await self.ledger.earn(
                store_id,
                customer_id,
                points,
                reason=LoyaltyReason.ORDER_DELIVERED,
                order_id=order_id,
                description=f"Pontos ganhos no pedido {order_number}"
            )
        else:
            await self.db.commit()

        order = await self.get_order(store_id, order_id)
        logger.info(f"Order {order_number} delivered ({points} points earned)")
        return OrderOut.model_validate(order)

    async def cancel(self, store_id: UUID, order_id: UUID) -> OrderOut:
        """Cancela el pedido y devuelve los puntos canjeados."""
        order = await self.get_order(store_id, order_id)
        if not can_cancel(order.status):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Pedido entregue ou já cancelado não pode ser cancelado"
            )

        order_number = order.order_number
        customer_id = order.customer_id
        points_redeemed = order.points_redeemed
        order.status = OrderStatus.CANCELLED
        order.cancelled_at = datetime.now(timezone.utc)

        refunded = 0
        if customer_id and points_redeemed > 0:
            refunded = await self.ledger.refund_order_redemptions(store_id, customer_id, order_id, order_number)
        if refunded == 0:
            await self.db.commit()

        order = await self.get_order(store_id, order_id)
        logger.info(f"Order {order_number} cancelled ({refunded} points refunded)")
        return OrderOut.model_validate(order)

    async def _settle_reserve(self, store_id: UUID, order: Order, data: DeliverRequest) -> None:
        if data.settlement is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Selecione a forma de pagamento para finalizar a reserva"
            )

        custom_ids = [data.settlement.method.id] if isinstance(data.settlement.method, CustomMethodRef) else []
        custom_methods = await PaymentMethodService(self.db).custom_methods(store_id, custom_ids)
        selection = allocate_payment(
            PaymentRequest(mode=SelectionMode.SINGLE, legs=[data.settlement]),
            payable_total=order.total,
            points_required=0,
            channel=order.source.value,
            custom_methods=custom_methods
        )
        if selection.is_reserve:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Selecione a forma de pagamento para finalizar a reserva"
            )

        order.payment_method = selection.label
        order.payment_mode = PaymentMode.SINGLE
        order.payment_methods = selection.method_names
        order.payment_amounts = selection.amounts
        order.card_machine_ids = selection.card_machine_ids

    async def _earned_points(self, store_id: UUID, order_id: UUID) -> int:
        result = await self.db.execute(
            select(OrderItem.subtotal, Product.points_per_currency)
            .join(Product, Product.id == OrderItem.product_id)
            .where(
                OrderItem.store_id == store_id,
                OrderItem.order_id == order_id,
                OrderItem.redeemed_with_points == False,
                Product.earns_loyalty_points == True
            )
        )
        return calculate_earned_points(
            (Decimal(str(row.subtotal)), Decimal(str(row.points_per_currency))) for row in result.all()
        )
