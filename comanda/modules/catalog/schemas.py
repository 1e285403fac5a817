"""
Esquemas Pydantic del catálogo y del carrito

- CartLineRequest: línea enviada por el canal (producto, variación, cantidad)
- CartLine / Cart: carrito resuelto contra el catálogo, valor inmutable
- StockDecrementResult: resultado estructurado de la baja de stock
"""

from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from enum import Enum

from comanda.common.money import to_money, ZERO


# ===== CART =====

class CartLineRequest(BaseModel):
    product_id: UUID
    variation_id: Optional[UUID] = None
    quantity: int = Field(..., ge=1, le=999)
    redeem_with_points: bool = False


class CartLine(BaseModel):
    """Línea de carrito con precios congelados del catálogo"""
    model_config = {"frozen": True}

    product_id: UUID
    variation_id: Optional[UUID] = None
    product_name: str
    variation_name: Optional[str] = None
    unit_price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    redeemed_with_points: bool = False
    points_cost: int = Field(default=0, ge=0)
    earns_loyalty_points: bool = False
    points_per_currency: Decimal = Decimal("0")

    @property
    def monetary_subtotal(self) -> Decimal:
        if self.redeemed_with_points:
            return ZERO
        return to_money(self.unit_price * self.quantity)

    @property
    def points_required(self) -> int:
        if not self.redeemed_with_points:
            return 0
        return self.points_cost * self.quantity

    @property
    def display_name(self) -> str:
        if self.variation_name:
            return f"{self.product_name} ({self.variation_name})"
        return self.product_name


class Cart(BaseModel):
    model_config = {"frozen": True}

    lines: List[CartLine] = []

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def monetary_subtotal(self) -> Decimal:
        return to_money(sum((line.monetary_subtotal for line in self.lines), ZERO))

    @property
    def points_required(self) -> int:
        return sum(line.points_required for line in self.lines)


# ===== STOCK =====

class StockOutcome(str, Enum):
    DECREMENTED = "decremented"
    CLAMPED = "clamped"          # Stock insuficiente: contador llevado a cero
    UNTRACKED = "untracked"      # Producto sin control de stock
    NOT_FOUND = "not_found"
    CONTENDED = "contended"      # Reposición concurrente, baja no aplicada


class StockDecrementResult(BaseModel):
    product_id: UUID
    variation_id: Optional[UUID] = None
    requested: int
    outcome: StockOutcome
    shortfall: int = 0
