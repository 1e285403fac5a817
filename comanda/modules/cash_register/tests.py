"""
Tests de caja: vinculación de pedidos a la sesión y arqueo al cierre
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from fastapi import HTTPException

from comanda.common.exceptions import PreconditionConflictError
from comanda.modules.cash_register.binder import bind_cash_session
from comanda.modules.cash_register.schemas import CashRegisterClose, CashRegisterOpen
from comanda.modules.cash_register.service import CashRegisterService
from comanda.modules.orders.commit import OrderCommitService
from comanda.modules.orders.schemas import CheckoutRequest, DeliverRequest
from comanda.modules.orders.service import OrderStatusService

TODAY = date(2026, 3, 10)


class TestCashSessionBinder:
    """Reglas de vinculación: hoy sin delivery exige caja abierta"""

    def test_pickup_today_binds_open_session(self):
        session_id = uuid4()
        binding = bind_cash_session(None, False, TODAY, session_id)
        assert binding.required
        assert binding.cash_register_id == session_id

    def test_pickup_today_without_session(self):
        with pytest.raises(PreconditionConflictError) as exc:
            bind_cash_session(TODAY, False, TODAY, None)
        assert exc.value.code == "register_closed"
        assert exc.value.status_code == 409

    def test_delivery_today_takes_session_when_open(self):
        session_id = uuid4()
        assert bind_cash_session(TODAY, True, TODAY, session_id).cash_register_id == session_id
        assert bind_cash_session(TODAY, True, TODAY, None).cash_register_id is None

    def test_future_orders_never_bind(self):
        binding = bind_cash_session(TODAY + timedelta(days=1), False, TODAY, uuid4())
        assert not binding.required
        assert binding.cash_register_id is None


class TestCashRegisterService:

    def test_only_one_open_session(self, run_db, store_id):
        async def scenario(db):
            service = CashRegisterService(db)
            opened = await service.open_session(CashRegisterOpen(opening_amount=Decimal("100")), store_id, uuid4())
            assert opened.is_open
            assert (await service.get_open_session(store_id)).id == opened.id

            with pytest.raises(HTTPException) as exc:
                await service.open_session(CashRegisterOpen(), store_id, uuid4())
            assert exc.value.status_code == 409

        run_db(scenario)

    def test_close_twice_rejected(self, run_db, store_id):
        async def scenario(db):
            service = CashRegisterService(db)
            user_id = uuid4()
            opened = await service.open_session(CashRegisterOpen(), store_id, user_id)
            await service.close_session(opened.id, CashRegisterClose(closing_amount=Decimal("0")), store_id, user_id)

            assert await service.get_open_session(store_id) is None
            with pytest.raises(HTTPException) as exc:
                await service.close_session(
                    opened.id, CashRegisterClose(closing_amount=Decimal("0")), store_id, user_id
                )
            assert exc.value.status_code == 400

        run_db(scenario)

    def test_unknown_session(self, run_db, store_id):
        async def scenario(db):
            with pytest.raises(HTTPException) as exc:
                await CashRegisterService(db).close_session(
                    uuid4(), CashRegisterClose(closing_amount=Decimal("0")), store_id, uuid4()
                )
            assert exc.value.status_code == 404

        run_db(scenario)

    def test_summary_counts_only_delivered_sales(self, run_db, seed, store_id, now, notifier):
        async def scenario(db):
            registers = CashRegisterService(db)
            user_id = uuid4()
            session = await registers.open_session(CashRegisterOpen(opening_amount=Decimal("100")), store_id, user_id)
            burger = await seed.product(db, store_id, price="10.00")

            commit = OrderCommitService(db, notifier=notifier, now_provider=lambda: now)
            statuses = OrderStatusService(db)

            def sale(code, quantity):
                return CheckoutRequest.model_validate({
                    "source": "presencial",
                    "items": [{"product_id": str(burger.id), "quantity": quantity}],
                    "payment": {"legs": [{"method": {"kind": "fixed", "code": code}}]},
                })

            cash = await commit.commit(store_id, sale("dinheiro", 2))
            pix = await commit.commit(store_id, sale("pix", 1))
            cancelled = await commit.commit(store_id, sale("dinheiro", 5))
            await commit.commit(store_id, sale("dinheiro", 3))

            await statuses.deliver(store_id, cash.order_id, DeliverRequest())
            await statuses.deliver(store_id, pix.order_id, DeliverRequest())
            await statuses.cancel(store_id, cancelled.order_id)

            summary = await registers.close_session(
                session.id, CashRegisterClose(closing_amount=Decimal("118.00")), store_id, user_id
            )

            assert summary.delivered_orders == 2
            assert summary.cancelled_orders == 1
            assert summary.open_orders == 1
            assert summary.sales_total == Decimal("30.00")
            assert summary.cash_sales == Decimal("20.00")
            assert summary.expected_cash == Decimal("120.00")
            assert summary.difference == Decimal("-2.00")
            assert summary.session.closed_by == user_id

        run_db(scenario)
