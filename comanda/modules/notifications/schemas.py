from pydantic import BaseModel
from decimal import Decimal
from datetime import date, time, datetime
from typing import Optional, List
from uuid import UUID


class NoticeItem(BaseModel):
    quantity: int
    name: str
    subtotal: Decimal
    redeemed: bool = False


class OrderNotice(BaseModel):
    """Datos del pedido confirmado para mensaje y comprobante"""
    store_id: UUID
    order_id: UUID
    order_number: str
    created_at: datetime
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    items: List[NoticeItem] = []
    subtotal: Decimal
    discount: Decimal = Decimal("0")
    delivery_fee: Decimal = Decimal("0")
    total: Decimal
    payment_method: str
    is_paid: bool = True
    change_for: Optional[Decimal] = None
    delivery: bool = False
    address: Optional[str] = None
    reference: Optional[str] = None
    reservation_date: Optional[date] = None
    pickup_time: Optional[time] = None
    notes: Optional[str] = None
