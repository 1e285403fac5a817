"""
Modelos SQLAlchemy de cupones

- Coupon: regla de descuento con tope de usos y expiración
- CouponUse: registro de uso ligado al pedido confirmado
"""

from comanda.database.database import Base
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Numeric, Integer, Enum, JSON, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from comanda.common.mixins import StoreMixin, TimestampMixin
import enum


# ===== ENUMS =====

class CouponKind(enum.Enum):
    TOTAL = "total"                 # Sobre el subtotal monetario
    PRODUCT = "product"             # Sólo sobre productos listados
    FREE_SHIPPING = "frete_gratis"  # Sólo envío gratis


class DiscountType(enum.Enum):
    PERCENT = "percent"
    FIXED = "fixed"


# ===== MODELOS =====

class Coupon(Base, StoreMixin, TimestampMixin):
    __tablename__ = "coupons"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String(40), nullable=False)
    kind = Column(Enum(CouponKind), nullable=False, default=CouponKind.TOTAL)
    discount_type = Column(Enum(DiscountType), nullable=False, default=DiscountType.PERCENT)
    discount_value = Column(Numeric(15, 2), nullable=False, default=0)
    free_shipping = Column(Boolean, default=False, nullable=False)
    min_order_value = Column(Numeric(15, 2), nullable=True)
    applicable_products = Column(JSON, nullable=False, default=list)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("store_id", "code", name="uq_coupons_store_code"),
    )


class CouponUse(Base, StoreMixin, TimestampMixin):
    __tablename__ = "coupon_uses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    coupon_id = Column(UUID(as_uuid=True), ForeignKey("coupons.id"), nullable=False, index=True)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True)
    customer_phone = Column(String(20), nullable=True, index=True)
    discount_applied = Column(Numeric(15, 2), nullable=False, default=0)
    over_ceiling = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        UniqueConstraint("coupon_id", "order_id", name="uq_coupon_uses_coupon_order"),
    )
