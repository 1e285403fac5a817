"""
Servicios del catálogo

- CatalogService.build_cart: resuelve las líneas pedidas contra el catálogo
  (precio base + ajuste de variación, nombres, costo en puntos)
- StockService.decrement: baja de stock con UPDATE condicional atómico;
  si no alcanza, el contador se lleva a cero y se informa el faltante
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from comanda.common.exceptions import CheckoutValidationError
from comanda.common.money import to_money
from comanda.modules.catalog.models import Product, ProductVariation
from comanda.modules.catalog.schemas import (
    Cart, CartLine, CartLineRequest, StockDecrementResult, StockOutcome
)

logger = logging.getLogger(__name__)


class CatalogService:
    """Lectura de catálogo para armar carritos"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def build_cart(self, store_id: UUID, lines: List[CartLineRequest]) -> Cart:
        if not lines:
            return Cart(lines=[])

        product_ids = {line.product_id for line in lines}
        variation_ids = {line.variation_id for line in lines if line.variation_id}

        result = await self.db.execute(
            select(Product).where(Product.store_id == store_id, Product.id.in_(product_ids))
        )
        products = {p.id: p for p in result.scalars().all()}

        variations = {}
        if variation_ids:
            result = await self.db.execute(
                select(ProductVariation).where(
                    ProductVariation.store_id == store_id,
                    ProductVariation.id.in_(variation_ids)
                )
            )
            variations = {v.id: v for v in result.scalars().all()}

        cart_lines = []
        for requested in lines:
            product = products.get(requested.product_id)
            if product is None:
                raise CheckoutValidationError(
                    "product_not_found", f"Produto {requested.product_id} não encontrado"
                )
            if not product.is_active:
                raise CheckoutValidationError(
                    "product_unavailable", f"Produto '{product.name}' indisponível"
                )

            variation = None
            if requested.variation_id:
                variation = variations.get(requested.variation_id)
                if variation is None or variation.product_id != product.id or not variation.is_active:
                    raise CheckoutValidationError(
                        "variation_not_found", f"Variação inválida para '{product.name}'"
                    )

            if requested.redeem_with_points and (
                not product.can_be_redeemed_with_points or product.redemption_points_cost <= 0
            ):
                raise CheckoutValidationError(
                    "product_not_redeemable", f"'{product.name}' não pode ser resgatado com pontos"
                )

            adjustment = variation.price_adjustment if variation else 0
            cart_lines.append(CartLine(
                product_id=product.id,
                variation_id=variation.id if variation else None,
                product_name=product.name,
                variation_name=variation.name if variation else None,
                unit_price=to_money(product.price + adjustment),
                quantity=requested.quantity,
                redeemed_with_points=requested.redeem_with_points,
                points_cost=product.redemption_points_cost if requested.redeem_with_points else 0,
                earns_loyalty_points=product.earns_loyalty_points,
                points_per_currency=product.points_per_currency or 0,
            ))

        return Cart(lines=cart_lines)


class StockService:
    """Baja de stock sin lectura-modificación-escritura"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def decrement(self, store_id: UUID, line: CartLine) -> StockDecrementResult:
        model = ProductVariation if line.variation_id else Product
        target_id = line.variation_id or line.product_id
        quantity = line.quantity

        for _ in range(2):
            result = await self.db.execute(
                update(model)
                .where(
                    model.id == target_id,
                    model.store_id == store_id,
                    model.stock_quantity >= quantity
                )
                .values(stock_quantity=model.stock_quantity - quantity)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return self._result(line, StockOutcome.DECREMENTED)

            current = await self._current_stock(model, store_id, target_id)
            if current is _MISSING:
                return self._result(line, StockOutcome.NOT_FOUND)
            if current is None:
                return self._result(line, StockOutcome.UNTRACKED)

            clamped = await self.db.execute(
                update(model)
                .where(
                    model.id == target_id,
                    model.store_id == store_id,
                    model.stock_quantity < quantity
                )
                .values(stock_quantity=0)
                .execution_options(synchronize_session=False)
            )
            if clamped.rowcount == 1:
                logger.warning(
                    f"Insufficient stock for {line.display_name}: requested {quantity}, available {current}"
                )
                return self._result(line, StockOutcome.CLAMPED, shortfall=quantity - current)
            # Reposición concurrente entre las dos sentencias: reintentar la baja

        logger.warning(f"Stock for {line.display_name} kept changing; decrement not applied")
        return self._result(line, StockOutcome.CONTENDED, shortfall=quantity)

    async def _current_stock(self, model, store_id: UUID, target_id: UUID):
        result = await self.db.execute(
            select(model.id, model.stock_quantity).where(model.id == target_id, model.store_id == store_id)
        )
        row = result.first()
        if row is None:
            return _MISSING
        return row.stock_quantity

    @staticmethod
    def _result(line: CartLine, outcome: StockOutcome, shortfall: int = 0) -> StockDecrementResult:
        return StockDecrementResult(
            product_id=line.product_id,
            variation_id=line.variation_id,
            requested=line.quantity,
            outcome=outcome,
            shortfall=shortfall
        )


_MISSING = object()
