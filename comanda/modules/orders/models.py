"""
Modelos SQLAlchemy de pedidos

Este módulo maneja:
- Order: pedido confirmado, con totales congelados (nunca se re-precia)
- OrderItem: snapshot de cada línea (nombre, precio, cantidad, canje)
- OrderFlowSettings: etapas activas del flujo de preparación por tienda
- OrderSequence: numeración secuencial por tienda y prefijo de canal

Arquitectura multi-tienda: todas las tablas incluyen store_id
"""

from comanda.database.database import Base
from sqlalchemy import (
    Column, String, Boolean, Date, Time, DateTime, ForeignKey, Numeric, Integer,
    Enum, Text, JSON, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from comanda.common.mixins import StoreMixin, TimestampMixin
import enum


# ===== ENUMS =====

class OrderStatus(enum.Enum):
    PENDING = "pending"        # Aguardando confirmação
    PREPARING = "preparing"    # Em preparo
    READY = "ready"            # Pronto para retirada/entrega
    DELIVERED = "delivered"    # Entregue (conta como venda)
    CANCELLED = "cancelled"    # Cancelado


class OrderSource(enum.Enum):
    PRESENCIAL = "presencial"    # PDV do caixa
    WHATSAPP = "whatsapp"        # PDV de atendimento por chat
    LOJA_ONLINE = "loja_online"  # Loja self-service
    TOTEM = "totem"
    IFOOD = "ifood"


class PaymentMode(enum.Enum):
    SINGLE = "single"
    RESERVE = "reserve"
    SPLIT = "split"


# ===== MODELOS =====

class Order(Base, StoreMixin, TimestampMixin):
    __tablename__ = "orders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    order_number = Column(String(30), nullable=False)
    source = Column(Enum(OrderSource), nullable=False, index=True)
    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)

    # Cliente (snapshot de contacto)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = Column(String(150), nullable=True)
    customer_phone = Column(String(20), nullable=True)

    # Totales
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(15, 2), nullable=False, default=0)
    delivery_fee = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)
    points_redeemed = Column(Integer, nullable=False, default=0)

    # Pago
    payment_method = Column(String(150), nullable=False)
    payment_mode = Column(Enum(PaymentMode), nullable=False, default=PaymentMode.SINGLE)
    payment_methods = Column(JSON, nullable=False, default=list)
    payment_amounts = Column(JSON, nullable=False, default=list)
    card_machine_ids = Column(JSON, nullable=False, default=list)
    change_for = Column(Numeric(15, 2), nullable=True)

    # Cupón
    coupon_id = Column(UUID(as_uuid=True), ForeignKey("coupons.id"), nullable=True)
    coupon_code = Column(String(40), nullable=True)

    # Entrega / retirada
    delivery = Column(Boolean, default=False, nullable=False)
    delivery_address = Column(String(255), nullable=True)
    delivery_number = Column(String(20), nullable=True)
    delivery_neighborhood = Column(String(120), nullable=True)
    delivery_reference = Column(String(255), nullable=True)
    delivery_cep = Column(String(9), nullable=True)
    reservation_date = Column(Date, nullable=True)
    pickup_time = Column(Time, nullable=True)

    cash_register_id = Column(UUID(as_uuid=True), ForeignKey("cash_register_sessions.id"), nullable=True, index=True)
    notes = Column(Text, nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("store_id", "order_number", name="uq_orders_store_number"),
    )


class OrderItem(Base, StoreMixin):
    __tablename__ = "order_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    product_variation_id = Column(UUID(as_uuid=True), ForeignKey("product_variations.id"), nullable=True)
    product_name = Column(String(150), nullable=False)
    variation_name = Column(String(100), nullable=True)
    product_price = Column(Numeric(15, 2), nullable=False, default=0)
    quantity = Column(Integer, nullable=False)
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    redeemed_with_points = Column(Boolean, default=False, nullable=False)
    points_cost = Column(Integer, nullable=False, default=0)


class OrderFlowSettings(Base, StoreMixin, TimestampMixin):
    __tablename__ = "order_flow_settings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    is_pending_active = Column(Boolean, default=True, nullable=False)
    is_preparing_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("store_id", name="uq_order_flow_settings_store"),
    )


class OrderSequence(Base, StoreMixin):
    __tablename__ = "order_sequences"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    prefix = Column(String(10), nullable=False)
    current_number = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("store_id", "prefix", name="uq_order_sequences_store_prefix"),
    )
