"""
Tests del libro de fidelidad
"""

from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select

from comanda.modules.customers.models import Customer
from comanda.modules.customers.service import CustomerService
from comanda.modules.loyalty.models import LoyaltyReason, LoyaltyTransaction, LoyaltyTransactionType
from comanda.modules.loyalty.service import LoyaltyLedgerService, calculate_earned_points


class TestEarnedPoints:

    def test_floor_per_line(self):
        lines = [(Decimal("25.90"), Decimal("1")), (Decimal("9.99"), Decimal("0.5"))]
        assert calculate_earned_points(lines) == 25 + 4

    def test_lines_without_rate_ignored(self):
        assert calculate_earned_points([(Decimal("50"), Decimal("0")), (Decimal("0"), Decimal("2"))]) == 0


class TestLoyaltyLedger:

    def test_redeem_debits_balance_and_records_entry(self, run_db, seed, store_id):
        async def scenario(db):
            customer = await seed.customer(db, store_id, points=100)
            ledger = LoyaltyLedgerService(db)

            assert await ledger.redeem(store_id, customer.id, 40, description="Resgate") is True

            points = await db.execute(select(Customer.points).where(Customer.id == customer.id))
            assert points.scalar_one() == 60
            entry = (await db.execute(
                select(LoyaltyTransaction).where(LoyaltyTransaction.transaction_type == LoyaltyTransactionType.REDEEM)
            )).scalar_one()
            assert entry.points == -40
            assert entry.reason == LoyaltyReason.ORDER_REDEEM

        run_db(scenario)

    def test_redeem_without_balance_writes_nothing(self, run_db, seed, store_id):
        async def scenario(db):
            customer = await seed.customer(db, store_id, points=10)
            ledger = LoyaltyLedgerService(db)

            assert await ledger.redeem(store_id, customer.id, 30) is False

            points = await db.execute(select(Customer.points).where(Customer.id == customer.id))
            assert points.scalar_one() == 10
            redeems = await db.execute(
                select(LoyaltyTransaction).where(LoyaltyTransaction.transaction_type == LoyaltyTransactionType.REDEEM)
            )
            assert redeems.scalars().all() == []

        run_db(scenario)

    def test_refund_without_redemption(self, run_db, seed, store_id):
        async def scenario(db):
            customer = await seed.customer(db, store_id)
            refunded = await LoyaltyLedgerService(db).refund_order_redemptions(
                store_id, customer.id, uuid4(), "PDV-000001"
            )
            assert refunded == 0

        run_db(scenario)

    def test_statement_matches_ledger(self, run_db, seed, store_id):
        async def scenario(db):
            customer = await seed.customer(db, store_id, points=50)
            ledger = LoyaltyLedgerService(db)
            await ledger.redeem(store_id, customer.id, 20)
            await ledger.earn(store_id, customer.id, 7, reason=LoyaltyReason.ORDER_DELIVERED)

            await db.refresh(customer)
            statement = await ledger.statement(store_id, customer)

            assert statement.cached_balance == 37
            assert statement.ledger_balance == 37
            assert statement.is_consistent
            assert len(statement.transactions) == 3

        run_db(scenario)

    def test_loaded_customer_follows_balance(self, run_db, seed, store_id):
        """El cliente ya cargado en la sesión ve el saldo nuevo sin refresh"""
        async def scenario(db):
            customer = await seed.customer(db, store_id, points=50)
            ledger = LoyaltyLedgerService(db)
            await ledger.earn(store_id, customer.id, 25, reason=LoyaltyReason.ORDER_DELIVERED)

            assert customer.points == 75
            reloaded = await CustomerService(db).get_by_phone(store_id, customer.phone)
            assert reloaded.points == 75

            statement = await ledger.statement(store_id, reloaded)
            assert statement.cached_balance == 75
            assert statement.ledger_balance == 75
            assert statement.is_consistent

        run_db(scenario)

    def test_rejected_redeem_keeps_session_usable(self, run_db, seed, store_id):
        async def scenario(db):
            customer = await seed.customer(db, store_id, points=10)
            ledger = LoyaltyLedgerService(db)

            assert await ledger.redeem(store_id, customer.id, 30) is False
            assert customer.name == "Maria"
            assert customer.points == 10
            assert await ledger.redeem(store_id, customer.id, 10) is True
            assert customer.points == 0

        run_db(scenario)

    def test_statement_flags_drift(self, run_db, seed, store_id):
        async def scenario(db):
            customer = await seed.customer(db, store_id, points=50)
            customer.points = 80
            await db.commit()

            statement = await LoyaltyLedgerService(db).statement(store_id, customer)
            assert statement.cached_balance == 80
            assert statement.ledger_balance == 50
            assert not statement.is_consistent

        run_db(scenario)
