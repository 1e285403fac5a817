"""
Tests del catálogo: armado del carrito y baja de stock
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select

from comanda.common.exceptions import CheckoutValidationError
from comanda.modules.catalog.models import Product, ProductVariation
from comanda.modules.catalog.schemas import CartLine, CartLineRequest, StockOutcome
from comanda.modules.catalog.service import CatalogService, StockService


def request_line(product_id, quantity=1, variation_id=None, redeem=False):
    return CartLineRequest(product_id=product_id, variation_id=variation_id, quantity=quantity, redeem_with_points=redeem)


class TestCartLine:

    def test_redeemed_line_has_no_money(self):
        line = CartLine(
            product_id=uuid4(), product_name="Cookie", unit_price=Decimal("5.00"), quantity=2,
            redeemed_with_points=True, points_cost=30
        )
        assert line.monetary_subtotal == Decimal("0.00")
        assert line.points_required == 60

    def test_display_name_includes_variation(self):
        line = CartLine(
            product_id=uuid4(), product_name="Açaí", variation_name="500ml", unit_price=Decimal("18"), quantity=1
        )
        assert line.display_name == "Açaí (500ml)"


class TestBuildCart:

    def test_prices_come_from_catalog(self, run_db, seed, store_id):
        async def scenario(db):
            acai = await seed.product(db, store_id, name="Açaí", price="15.00", earns_points=True, points_per_currency="2")
            large = await seed.variation(db, store_id, acai, name="700ml", adjustment="4.50")

            cart = await CatalogService(db).build_cart(store_id, [request_line(acai.id, 2, large.id)])

            line = cart.lines[0]
            assert line.unit_price == Decimal("19.50")
            assert line.display_name == "Açaí (700ml)"
            assert line.earns_loyalty_points
            assert cart.monetary_subtotal == Decimal("39.00")

        run_db(scenario)

    def test_unknown_product(self, run_db, store_id):
        async def scenario(db):
            with pytest.raises(CheckoutValidationError) as exc:
                await CatalogService(db).build_cart(store_id, [request_line(uuid4())])
            assert exc.value.code == "product_not_found"

        run_db(scenario)

    def test_product_from_another_store(self, run_db, seed, store_id):
        async def scenario(db):
            foreign = await seed.product(db, uuid4())
            with pytest.raises(CheckoutValidationError) as exc:
                await CatalogService(db).build_cart(store_id, [request_line(foreign.id)])
            assert exc.value.code == "product_not_found"

        run_db(scenario)

    def test_inactive_product(self, run_db, seed, store_id):
        async def scenario(db):
            product = await seed.product(db, store_id, is_active=False)
            with pytest.raises(CheckoutValidationError) as exc:
                await CatalogService(db).build_cart(store_id, [request_line(product.id)])
            assert exc.value.code == "product_unavailable"

        run_db(scenario)

    def test_variation_of_other_product(self, run_db, seed, store_id):
        async def scenario(db):
            burger = await seed.product(db, store_id)
            acai = await seed.product(db, store_id, name="Açaí")
            large = await seed.variation(db, store_id, acai)
            with pytest.raises(CheckoutValidationError) as exc:
                await CatalogService(db).build_cart(store_id, [request_line(burger.id, variation_id=large.id)])
            assert exc.value.code == "variation_not_found"

        run_db(scenario)

    def test_redeem_requires_redeemable_product(self, run_db, seed, store_id):
        async def scenario(db):
            burger = await seed.product(db, store_id)
            with pytest.raises(CheckoutValidationError) as exc:
                await CatalogService(db).build_cart(store_id, [request_line(burger.id, redeem=True)])
            assert exc.value.code == "product_not_redeemable"

        run_db(scenario)

    def test_redeemed_line_carries_points_cost(self, run_db, seed, store_id):
        async def scenario(db):
            cookie = await seed.product(db, store_id, name="Cookie", redemption_cost=30)
            cart = await CatalogService(db).build_cart(store_id, [request_line(cookie.id, 2, redeem=True)])
            assert cart.points_required == 60
            assert cart.monetary_subtotal == Decimal("0.00")

        run_db(scenario)


class TestStockDecrement:

    async def _line(self, db, store_id, product, quantity, variation=None):
        cart = await CatalogService(db).build_cart(
            store_id, [request_line(product.id, quantity, variation.id if variation else None)]
        )
        return cart.lines[0]

    def test_decrement_when_available(self, run_db, seed, store_id):
        async def scenario(db):
            product = await seed.product(db, store_id, stock=5)
            line = await self._line(db, store_id, product, 3)

            result = await StockService(db).decrement(store_id, line)
            await db.commit()

            assert result.outcome == StockOutcome.DECREMENTED
            stock = await db.execute(select(Product.stock_quantity).where(Product.id == product.id))
            assert stock.scalar_one() == 2

        run_db(scenario)

    def test_clamps_to_zero(self, run_db, seed, store_id):
        async def scenario(db):
            product = await seed.product(db, store_id, stock=2)
            line = await self._line(db, store_id, product, 5)

            result = await StockService(db).decrement(store_id, line)
            await db.commit()

            assert result.outcome == StockOutcome.CLAMPED
            assert result.shortfall == 3
            stock = await db.execute(select(Product.stock_quantity).where(Product.id == product.id))
            assert stock.scalar_one() == 0

        run_db(scenario)

    def test_untracked_stock(self, run_db, seed, store_id):
        async def scenario(db):
            product = await seed.product(db, store_id, stock=None)
            line = await self._line(db, store_id, product, 50)
            assert (await StockService(db).decrement(store_id, line)).outcome == StockOutcome.UNTRACKED

        run_db(scenario)

    def test_variation_has_its_own_stock(self, run_db, seed, store_id):
        async def scenario(db):
            product = await seed.product(db, store_id, stock=10)
            variation = await seed.variation(db, store_id, product, stock=1)
            line = await self._line(db, store_id, product, 1, variation)

            assert (await StockService(db).decrement(store_id, line)).outcome == StockOutcome.DECREMENTED
            await db.commit()

            rows = await db.execute(select(ProductVariation.stock_quantity).where(ProductVariation.id == variation.id))
            assert rows.scalar_one() == 0
            rows = await db.execute(select(Product.stock_quantity).where(Product.id == product.id))
            assert rows.scalar_one() == 10

        run_db(scenario)

    def test_deleted_product(self, run_db, store_id):
        async def scenario(db):
            line = CartLine(product_id=uuid4(), product_name="Removido", unit_price=Decimal("1"), quantity=1)
            assert (await StockService(db).decrement(store_id, line)).outcome == StockOutcome.NOT_FOUND

        run_db(scenario)
