"""
Esquemas Pydantic de cupones

- CouponSnapshot: lectura inmutable del cupón para el evaluador
- CouponApplication: descuento vigente sobre un carrito concreto
- CouponDecision: resultado del evaluador (aplicación o motivo de rechazo)
"""

from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from datetime import datetime
from typing import Optional, List
from uuid import UUID
from enum import Enum

from comanda.common.validators import normalize_brazil_phone
from comanda.modules.coupons.models import CouponKind, DiscountType
from comanda.modules.catalog.schemas import CartLineRequest


# ===== ENUMS =====

class CouponRejection(str, Enum):
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    ALREADY_USED = "already_used"
    BELOW_MINIMUM = "below_minimum"
    PRODUCT_NOT_ELIGIBLE = "product_not_eligible"


REJECTION_MESSAGES = {
    CouponRejection.NOT_FOUND: "Cupom não encontrado",
    CouponRejection.INACTIVE: "Cupom inativo",
    CouponRejection.EXPIRED: "Cupom expirado",
    CouponRejection.USAGE_LIMIT_REACHED: "Cupom esgotado",
    CouponRejection.ALREADY_USED: "Você já utilizou este cupom",
    CouponRejection.BELOW_MINIMUM: "Valor mínimo do pedido não atingido para este cupom",
    CouponRejection.PRODUCT_NOT_ELIGIBLE: "Nenhum produto do carrinho é válido para este cupom",
}


# ===== SNAPSHOTS =====

class CouponSnapshot(BaseModel):
    model_config = {"from_attributes": True, "frozen": True}

    id: UUID
    code: str
    kind: CouponKind
    discount_type: DiscountType
    discount_value: Decimal
    free_shipping: bool = False
    min_order_value: Optional[Decimal] = None
    applicable_products: List[str] = []
    expires_at: Optional[datetime] = None
    max_uses: Optional[int] = None
    current_uses: int = 0
    is_active: bool = True

    @field_validator('applicable_products', mode='before')
    @classmethod
    def normalize_products(cls, v):
        return [str(p) for p in (v or [])]


class CouponApplication(BaseModel):
    model_config = {"frozen": True}

    coupon_id: UUID
    code: str
    discount_amount: Decimal = Field(default=Decimal("0.00"), ge=0)
    free_shipping: bool = False


class CouponDecision(BaseModel):
    application: Optional[CouponApplication] = None
    rejection: Optional[CouponRejection] = None
    message: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.application is not None

    @classmethod
    def rejected(cls, reason: CouponRejection) -> "CouponDecision":
        return cls(rejection=reason, message=REJECTION_MESSAGES[reason])


# ===== API =====

class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=40)
    items: List[CartLineRequest] = Field(..., min_length=1)
    customer_phone: Optional[str] = None

    @field_validator('customer_phone')
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_brazil_phone(v) if v else None


class CouponValidateResponse(BaseModel):
    valid: bool
    code: str
    discount_amount: Decimal = Decimal("0.00")
    free_shipping: bool = False
    rejection: Optional[CouponRejection] = None
    message: Optional[str] = None
