"""
Esquemas Pydantic para sesiones de caja
"""

from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional
from uuid import UUID
from datetime import datetime


class CashRegisterOpen(BaseModel):
    """Esquema para abrir caja"""
    opening_amount: Decimal = Field(default=Decimal("0"), ge=0, description="Fundo de troco inicial")
    opening_notes: Optional[str] = Field(None, max_length=500)


class CashRegisterClose(BaseModel):
    """Esquema para cerrar caja"""
    closing_amount: Decimal = Field(..., ge=0, description="Valor contado na gaveta")
    closing_notes: Optional[str] = Field(None, max_length=500)


class CashRegisterOut(BaseModel):
    id: UUID
    store_id: UUID
    opened_at: datetime
    closed_at: Optional[datetime] = None
    opening_amount: Decimal
    closing_amount: Optional[Decimal] = None
    opened_by: UUID
    closed_by: Optional[UUID] = None

    model_config = {"from_attributes": True}


class CashRegisterSummary(BaseModel):
    """Arqueo de la sesión: sólo pedidos entregados cuentan como venta"""
    session: CashRegisterOut
    delivered_orders: int
    cancelled_orders: int
    open_orders: int
    sales_total: Decimal
    cash_sales: Decimal
    expected_cash: Decimal
    difference: Optional[Decimal] = None
