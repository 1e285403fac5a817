"""
Vinculación de pedidos a la sesión de caja.

Un pedido para hoy que no es delivery exige caja abierta. Pedidos futuros
quedan sin sesión; el delivery de hoy toma la sesión abierta si la hay.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from comanda.common.exceptions import PreconditionConflictError


class CashSessionBinding(BaseModel):
    required: bool
    cash_register_id: Optional[UUID] = None


def bind_cash_session(
    target_date: Optional[date],
    is_delivery: bool,
    today: date,
    open_session_id: Optional[UUID],
) -> CashSessionBinding:
    is_today = target_date is None or target_date == today
    required = is_today and not is_delivery

    if required and open_session_id is None:
        raise PreconditionConflictError(
            "register_closed",
            "Caixa fechado. Abra o caixa para registrar pedidos de retirada hoje."
        )

    if not is_today:
        return CashSessionBinding(required=False)
    return CashSessionBinding(required=required, cash_register_id=open_session_id)
