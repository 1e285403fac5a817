"""
Routers FastAPI para pedidos

- /orders/quote: revisión del carrito (sin escrituras)
- /orders/checkout: confirmación para todos los canales
- /orders/flow, /orders/payment-methods: configuración visible al operador
- /orders/{id}/advance|deliver|cancel: transiciones de estado (staff)
"""

from fastapi import APIRouter, Depends, HTTPException, status, Path, Query
from typing import List, Optional
from uuid import UUID

from comanda.dependencies.dbDependecies import async_db_dependency
from comanda.dependencies.storeDependencies import StoreId
from comanda.modules.auth.dependencies import AuthDependencies
from comanda.modules.auth.schemas import AuthContext
from comanda.modules.notifications.service import OrderNotifier, get_order_notifier
from comanda.modules.orders.commit import CHANNEL_POLICIES, OrderCommitService
from comanda.modules.orders.models import OrderSource
from comanda.modules.orders.schemas import (
    CheckoutRequest, CommitResult, DeliverRequest, OrderFlowOut, OrderOut, QuoteRequest, QuoteResponse
)
from comanda.modules.orders.service import OrderFlowService, OrderQuoteService, OrderStatusService
from comanda.modules.payments.schemas import PaymentMethodOut
from comanda.modules.payments.service import PaymentMethodService

orders_router = APIRouter(prefix="/orders", tags=["Orders"])


@orders_router.post("/quote", response_model=QuoteResponse)
async def quote_order(request: QuoteRequest, store_id: StoreId, db: async_db_dependency):
    """Totales del carrito y decisión del cupón, sin reservar nada."""
    return await OrderQuoteService(db).quote(store_id, request)


@orders_router.post("/checkout", response_model=CommitResult, status_code=status.HTTP_201_CREATED)
async def checkout(
    request: CheckoutRequest,
    store_id: StoreId,
    db: async_db_dependency,
    notifier: OrderNotifier = Depends(get_order_notifier),
    auth_context: Optional[AuthContext] = Depends(AuthDependencies.get_optional_auth_context)
):
    """
    Confirma el pedido.

    - Canales de operador (presencial, whatsapp, ifood) exigen token de staff
    - Errores de precondición: 422/409 sin escrituras
    - Pasos posteriores al pedido se informan en `steps`
    """
    if CHANNEL_POLICIES[request.source].staff_only:
        if auth_context is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Autenticação necessária para este canal",
                headers={"WWW-Authenticate": "Bearer"}
            )
        AuthDependencies.require_role(["owner", "admin", "manager", "cashier"])(auth_context)

    service = OrderCommitService(db, notifier=notifier)
    return await service.commit(store_id, request, user_id=auth_context.user_id if auth_context else None)


@orders_router.get("/flow", response_model=OrderFlowOut)
async def get_order_flow(store_id: StoreId, db: async_db_dependency):
    return await OrderFlowService(db).describe(store_id)


@orders_router.get("/payment-methods", response_model=List[PaymentMethodOut])
async def list_payment_methods(
    store_id: StoreId,
    db: async_db_dependency,
    channel: Optional[OrderSource] = Query(None, description="Canal de venda")
):
    """Formas de pagamento personalizadas ativas, filtradas por canal."""
    return await PaymentMethodService(db).list_active(store_id, channel.value if channel else None)


@orders_router.post("/{order_id}/advance", response_model=OrderOut)
async def advance_order(
    db: async_db_dependency,
    order_id: UUID = Path(..., description="ID do pedido"),
    auth_context: AuthContext = Depends(AuthDependencies.require_staff())
):
    return await OrderStatusService(db).advance(auth_context.store_id, order_id)


@orders_router.post("/{order_id}/deliver", response_model=OrderOut)
async def deliver_order(
    db: async_db_dependency,
    order_id: UUID = Path(..., description="ID do pedido"),
    data: Optional[DeliverRequest] = None,
    auth_context: AuthContext = Depends(AuthDependencies.require_staff())
):
    """
    Entrega o pedido. Pedidos em Reserva precisam de `settlement`
    com a forma de pagamento efetiva.
    """
    return await OrderStatusService(db).deliver(auth_context.store_id, order_id, data or DeliverRequest())


@orders_router.post("/{order_id}/cancel", response_model=OrderOut)
async def cancel_order(
    db: async_db_dependency,
    order_id: UUID = Path(..., description="ID do pedido"),
    auth_context: AuthContext = Depends(AuthDependencies.require_staff())
):
    return await OrderStatusService(db).cancel(auth_context.store_id, order_id)
