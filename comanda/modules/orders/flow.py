"""
Flujo de estados del pedido.

pending -> preparing -> ready -> delivered; cancelled desde cualquier estado
no terminal. Las etapas pending y preparing pueden desactivarse por tienda;
ready siempre forma parte del flujo.
"""

from typing import List, Optional

from comanda.modules.orders.models import OrderStatus

TERMINAL_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}


def active_flow(is_pending_active: bool = True, is_preparing_active: bool = True) -> List[OrderStatus]:
    flow = []
    if is_pending_active:
        flow.append(OrderStatus.PENDING)
    if is_preparing_active:
        flow.append(OrderStatus.PREPARING)
    flow.append(OrderStatus.READY)
    return flow


def initial_status(is_pending_active: bool = True, is_preparing_active: bool = True) -> OrderStatus:
    return active_flow(is_pending_active, is_preparing_active)[0]


def next_status(
    current: OrderStatus, is_pending_active: bool = True, is_preparing_active: bool = True
) -> Optional[OrderStatus]:
    """Siguiente estado del flujo; ready avanza a delivered, terminales no avanzan."""
    if current in TERMINAL_STATUSES:
        return None
    flow = active_flow(is_pending_active, is_preparing_active)
    if current == OrderStatus.READY:
        return OrderStatus.DELIVERED
    if current not in flow:
        # Etapa desactivada después de creado el pedido: seguir por la próxima activa
        order = [OrderStatus.PENDING, OrderStatus.PREPARING, OrderStatus.READY]
        later = [s for s in flow if order.index(s) > order.index(current)]
        return later[0] if later else OrderStatus.DELIVERED
    return flow[flow.index(current) + 1]


def can_cancel(current: OrderStatus) -> bool:
    return current not in TERMINAL_STATUSES


def counts_as_sale(current: OrderStatus) -> bool:
    return current == OrderStatus.DELIVERED
