"""
Configuración compartida de pytest

- Entorno de test fijado antes de importar la aplicación
- run_db: ejecuta un escenario async contra una base SQLite en memoria nueva
- seed: altas mínimas de catálogo, clientes, cupones, caja y horarios
"""

import os

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ["DEBUG"] = "false"

import asyncio
from datetime import datetime, time, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from comanda.database.database import Base
from comanda.modules.cash_register.models import CashRegisterSession
from comanda.modules.catalog.models import Product, ProductVariation
from comanda.modules.coupons.models import Coupon, CouponKind, DiscountType
from comanda.modules.customers.models import Customer
from comanda.modules.loyalty.models import LoyaltyReason
from comanda.modules.loyalty.service import LoyaltyLedgerService
from comanda.modules.notifications.schemas import OrderNotice
from comanda.modules.payments.models import CardMachine, PaymentMethodConfig
from comanda.modules.schedule.models import StoreOperatingHour, StoreSpecialDay
import comanda.modules.orders.models  # noqa: F401

# Martes 10/03/2026 12:00 en la tienda
FIXED_NOW = datetime(2026, 3, 10, 12, 0, tzinfo=ZoneInfo("America/Sao_Paulo"))


class RecordingNotifier:
    """Notificador de test: guarda los avisos en lugar de encolar tareas"""

    def __init__(self, fail: bool = False):
        self.notices: List[OrderNotice] = []
        self.fail = fail

    def order_confirmed(self, notice: OrderNotice) -> None:
        if self.fail:
            raise RuntimeError("broker unavailable")
        self.notices.append(notice)


class Seed:
    """Altas de datos de prueba. Cada método confirma y devuelve la fila."""

    @staticmethod
    async def _save(db: AsyncSession, row):
        db.add(row)
        await db.commit()
        return row

    async def product(
        self,
        db: AsyncSession,
        store_id: UUID,
        name: str = "X-Burger",
        price: str = "10.00",
        stock: Optional[int] = None,
        earns_points: bool = False,
        points_per_currency: str = "0",
        redemption_cost: int = 0,
        is_active: bool = True
    ) -> Product:
        return await self._save(db, Product(
            store_id=store_id,
            name=name,
            price=Decimal(price),
            stock_quantity=stock,
            is_active=is_active,
            earns_loyalty_points=earns_points,
            points_per_currency=Decimal(points_per_currency),
            can_be_redeemed_with_points=redemption_cost > 0,
            redemption_points_cost=redemption_cost
        ))

    async def variation(
        self, db: AsyncSession, store_id: UUID, product: Product, name: str = "Grande",
        adjustment: str = "2.00", stock: Optional[int] = None
    ) -> ProductVariation:
        return await self._save(db, ProductVariation(
            store_id=store_id,
            product_id=product.id,
            name=name,
            price_adjustment=Decimal(adjustment),
            stock_quantity=stock
        ))

    async def customer(
        self, db: AsyncSession, store_id: UUID, phone: str = "11987654321", name: str = "Maria", points: int = 0
    ) -> Customer:
        customer = await self._save(db, Customer(store_id=store_id, phone=phone, name=name, points=0))
        if points:
            await LoyaltyLedgerService(db).earn(
                store_id, customer.id, points, reason=LoyaltyReason.MANUAL_ADJUSTMENT, description="Saldo inicial"
            )
        return customer

    async def coupon(
        self,
        db: AsyncSession,
        store_id: UUID,
        code: str = "PROMO10",
        kind: CouponKind = CouponKind.TOTAL,
        discount_type: DiscountType = DiscountType.PERCENT,
        value: str = "10",
        **extra
    ) -> Coupon:
        return await self._save(db, Coupon(
            store_id=store_id,
            code=code,
            kind=kind,
            discount_type=discount_type,
            discount_value=Decimal(value),
            **extra
        ))

    async def open_register(self, db: AsyncSession, store_id: UUID, amount: str = "0.00") -> CashRegisterSession:
        return await self._save(db, CashRegisterSession(
            store_id=store_id,
            opened_at=datetime.now(timezone.utc),
            opening_amount=Decimal(amount),
            opened_by=uuid4()
        ))

    async def weekly_hours(
        self, db: AsyncSession, store_id: UUID, open_time: time = time(8, 0), close_time: time = time(22, 0),
        closed_days: tuple = ()
    ) -> None:
        for day in range(7):
            db.add(StoreOperatingHour(
                store_id=store_id,
                day_of_week=day,
                is_open=day not in closed_days,
                open_time=open_time,
                close_time=close_time
            ))
        await db.commit()

    async def special_day(self, db: AsyncSession, store_id: UUID, day, is_open: bool = False, **extra):
        return await self._save(db, StoreSpecialDay(store_id=store_id, date=day, is_open=is_open, **extra))

    async def payment_method(
        self, db: AsyncSession, store_id: UUID, name: str = "Vale Refeição", channels: Optional[list] = None
    ) -> PaymentMethodConfig:
        return await self._save(db, PaymentMethodConfig(
            store_id=store_id,
            name=name,
            allowed_channels=channels or []
        ))

    async def card_machine(self, db: AsyncSession, store_id: UUID, name: str = "Stone", is_active: bool = True) -> CardMachine:
        return await self._save(db, CardMachine(store_id=store_id, name=name, is_active=is_active))


@pytest.fixture
def store_id():
    return uuid4()


@pytest.fixture
def seed():
    return Seed()


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def run_db():
    """
    Ejecuta `scenario(db)` en un event loop propio con una base SQLite en
    memoria recién creada.
    """
    def runner(scenario):
        async def main():
            engine = create_async_engine(
                "sqlite+aiosqlite://",
                poolclass=StaticPool,
                connect_args={"check_same_thread": False}
            )
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            session_factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            try:
                async with session_factory() as db:
                    return await scenario(db)
            finally:
                await engine.dispose()

        return asyncio.run(main())
    return runner
