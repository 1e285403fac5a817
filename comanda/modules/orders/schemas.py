"""
Esquemas Pydantic para el módulo de pedidos

Define la validación de datos de entrada y salida para:
- CheckoutRequest: carrito + elecciones de pago/entrega/fidelidad/cupón
- QuoteResponse: revisión del carrito (totales y cupón) sin escribir nada
- CommitResult: pedido confirmado + resultado de cada paso posterior
- OrderOut / OrderItemOut: lectura de pedidos
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import date, time, datetime
from enum import Enum

from comanda.common.validators import normalize_brazil_phone
from comanda.modules.orders.models import OrderSource, OrderStatus
from comanda.modules.catalog.schemas import CartLineRequest
from comanda.modules.customers.schemas import CustomerRef, DeliveryAddress
from comanda.modules.payments.schemas import PaymentRequest, PaymentLegRequest
from comanda.modules.coupons.schemas import CouponRejection


# ===== ENUMS =====

class CommitStep(str, Enum):
    CUSTOMER = "customer"
    ORDER = "order"
    ITEMS = "items"
    STOCK = "stock"
    LOYALTY = "loyalty"
    COUPON = "coupon"
    ADDRESS = "address"
    NOTIFICATION = "notification"


class StepStatus(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    DEGRADED = "degraded"   # Aplicado parcialmente (ej.: stock llevado a cero)
    FAILED = "failed"


# ===== REQUEST =====

class FulfillmentRequest(BaseModel):
    delivery: bool = False
    delivery_fee: Decimal = Field(default=Decimal("0"), ge=0)
    address: Optional[DeliveryAddress] = None
    save_address: bool = False
    reservation_date: Optional[date] = None
    pickup_time: Optional[time] = None


class CheckoutRequest(BaseModel):
    source: OrderSource
    items: List[CartLineRequest] = []
    customer: Optional[CustomerRef] = None
    payment: PaymentRequest = Field(default_factory=PaymentRequest)
    fulfillment: FulfillmentRequest = Field(default_factory=FulfillmentRequest)
    coupon_code: Optional[str] = Field(None, max_length=40)
    manual_discount: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode='after')
    def validate_save_address(self):
        if self.fulfillment.save_address and self.customer is None:
            raise ValueError('Para salvar o endereço informe o telefone do cliente')
        return self


class QuoteRequest(BaseModel):
    items: List[CartLineRequest] = Field(..., min_length=1)
    delivery: bool = False
    delivery_fee: Decimal = Field(default=Decimal("0"), ge=0)
    manual_discount: Decimal = Field(default=Decimal("0"), ge=0)
    coupon_code: Optional[str] = Field(None, max_length=40)
    customer_phone: Optional[str] = None

    @field_validator('customer_phone')
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_brazil_phone(v) if v else None


class DeliverRequest(BaseModel):
    """Liquidación de pedidos em Reserva ao entregar"""
    settlement: Optional[PaymentLegRequest] = None


# ===== RESULT =====

class StepOutcome(BaseModel):
    step: CommitStep
    status: StepStatus
    message: Optional[str] = None
    data: Dict[str, Any] = {}


class TotalsOut(BaseModel):
    monetary_subtotal: Decimal
    points_required: int
    delivery_fee_applied: Decimal
    discount_applied: Decimal
    payable_total: Decimal


class QuoteResponse(BaseModel):
    totals: TotalsOut
    coupon_valid: Optional[bool] = None
    coupon_rejection: Optional[CouponRejection] = None
    coupon_message: Optional[str] = None


class CommitResult(BaseModel):
    order_id: UUID
    order_number: str
    status: OrderStatus
    payment_method: str
    totals: TotalsOut
    customer_id: Optional[UUID] = None
    cash_register_id: Optional[UUID] = None
    steps: List[StepOutcome] = []

    @property
    def warnings(self) -> List[StepOutcome]:
        return [s for s in self.steps if s.status in (StepStatus.DEGRADED, StepStatus.FAILED)]

    def outcomes(self, step: CommitStep) -> List[StepOutcome]:
        return [s for s in self.steps if s.step == step]


class OrderItemOut(BaseModel):
    id: UUID
    product_id: UUID
    product_variation_id: Optional[UUID] = None
    product_name: str
    variation_name: Optional[str] = None
    product_price: Decimal
    quantity: int
    subtotal: Decimal
    redeemed_with_points: bool

    model_config = {"from_attributes": True}


class OrderOut(BaseModel):
    id: UUID
    order_number: str
    source: OrderSource
    status: OrderStatus
    customer_id: Optional[UUID] = None
    subtotal: Decimal
    discount_amount: Decimal
    delivery_fee: Decimal
    total: Decimal
    points_redeemed: int
    payment_method: str
    delivery: bool
    reservation_date: Optional[date] = None
    pickup_time: Optional[time] = None
    cash_register_id: Optional[UUID] = None
    created_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OrderFlowOut(BaseModel):
    initial_status: OrderStatus
    active_flow: List[OrderStatus]
