"""
Modelos SQLAlchemy para el catálogo de la tienda

- Product: producto vendible, con precio base, stock y reglas de fidelidad
- ProductVariation: variación (tamaño, sabor) con ajuste de precio y stock propio

Stock: stock_quantity NULL significa producto sin control de stock.
"""

from comanda.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, Numeric, Integer, Text, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from comanda.common.mixins import StoreMixin, TimestampMixin


class Product(Base, StoreMixin, TimestampMixin):
    """Productos del catálogo"""
    __tablename__ = "products"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(15, 2), nullable=False, default=0)
    stock_quantity = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Fidelidad
    earns_loyalty_points = Column(Boolean, default=False, nullable=False)
    points_per_currency = Column(Numeric(10, 4), nullable=False, default=0)
    can_be_redeemed_with_points = Column(Boolean, default=False, nullable=False)
    redemption_points_cost = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("stock_quantity IS NULL OR stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )


class ProductVariation(Base, StoreMixin, TimestampMixin):
    """Variaciones de producto con ajuste de precio"""
    __tablename__ = "product_variations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    price_adjustment = Column(Numeric(15, 2), nullable=False, default=0)
    stock_quantity = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("stock_quantity IS NULL OR stock_quantity >= 0", name="ck_variations_stock_non_negative"),
    )
