"""
Tests de la API HTTP

Levantan la aplicación con TestClient sobre un archivo SQLite temporal:
- Contexto de tienda (X-Store-ID) y autenticación por canal
- Errores de dominio traducidos a 409/422 con `code`
- Caja, cupones, horarios y extracto de fidelidad
"""

import pytest
from decimal import Decimal
from uuid import uuid4

import jwt
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from comanda.core.config import settings
from comanda.database.database import Base, get_async_db
from comanda.main import app
from comanda.modules.catalog.models import Product
from comanda.modules.notifications.service import get_order_notifier


@pytest.fixture
def database(tmp_path):
    path = tmp_path / "comanda.db"
    engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(engine)
    yield engine, path
    engine.dispose()


@pytest.fixture
def client(database, notifier):
    _, path = database
    async_engine = create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)
    session_factory = sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_async_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_db] = override_get_async_db
    app.dependency_overrides[get_order_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def product(database, store_id):
    engine, _ = database
    with Session(engine) as session:
        row = Product(store_id=store_id, name="Pão de queijo", price=Decimal("6.50"))
        session.add(row)
        session.commit()
        return row.id


def store_headers(store_id, role=None, token_store=None):
    headers = {"X-Store-ID": str(store_id)}
    if role:
        token = jwt.encode(
            {"sub": str(uuid4()), "store_id": str(token_store or store_id), "role": role},
            settings.APP_SECRET_STRING,
            algorithm=settings.ALGORITHM
        )
        headers["Authorization"] = f"Bearer {token}"
    return headers


def totem_order(product_id, quantity=2):
    return {
        "source": "totem",
        "items": [{"product_id": str(product_id), "quantity": quantity}],
        "payment": {"legs": [{"method": {"kind": "fixed", "code": "pix"}}]},
    }


class TestAppBasics:

    def test_health_without_store(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_store_header_required(self, client):
        response = client.get("/api/v1/orders/flow")
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing X-Store-ID header"

    def test_store_header_must_be_uuid(self, client):
        response = client.get("/api/v1/orders/flow", headers={"X-Store-ID": "loja-1"})
        assert response.status_code == 400

    def test_default_flow(self, client, store_id):
        response = client.get("/api/v1/orders/flow", headers=store_headers(store_id))
        assert response.status_code == 200
        assert response.json() == {"initial_status": "pending", "active_flow": ["pending", "preparing", "ready"]}


class TestCheckoutApi:

    def test_totem_needs_open_register(self, client, store_id, product):
        response = client.post("/api/v1/orders/checkout", json=totem_order(product), headers=store_headers(store_id))
        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "register_closed"
        assert "Caixa fechado" in body["detail"]

    def test_totem_checkout_after_opening_register(self, client, store_id, product, notifier):
        opened = client.post(
            "/api/v1/cash-registers/open",
            json={"opening_amount": "50.00"},
            headers=store_headers(store_id, role="cashier")
        )
        assert opened.status_code == 201

        response = client.post("/api/v1/orders/checkout", json=totem_order(product), headers=store_headers(store_id))
        assert response.status_code == 201
        body = response.json()
        assert body["order_number"] == "TOT-000001"
        assert body["cash_register_id"] == opened.json()["id"]
        assert Decimal(body["totals"]["payable_total"]) == Decimal("13.00")
        assert notifier.notices[0].order_number == "TOT-000001"

        current = client.get("/api/v1/cash-registers/current", headers=store_headers(store_id, role="manager"))
        assert current.status_code == 200
        assert current.json()["open_orders"] == 1

    def test_counter_channel_needs_token(self, client, store_id, product):
        payload = dict(totem_order(product), source="presencial")
        response = client.post("/api/v1/orders/checkout", json=payload, headers=store_headers(store_id))
        assert response.status_code == 401

    def test_counter_channel_rejects_non_staff_role(self, client, store_id, product):
        payload = dict(totem_order(product), source="presencial")
        response = client.post(
            "/api/v1/orders/checkout", json=payload, headers=store_headers(store_id, role="customer")
        )
        assert response.status_code == 403

    def test_validation_error_has_code(self, client, store_id):
        response = client.post(
            "/api/v1/orders/checkout",
            json={"source": "totem", "items": [], "payment": {"legs": []}},
            headers=store_headers(store_id)
        )
        assert response.status_code == 422
        assert response.json()["code"] == "empty_cart"

    def test_quote_does_not_write(self, client, store_id, product):
        response = client.post(
            "/api/v1/orders/quote",
            json={"items": [{"product_id": str(product), "quantity": 3}], "delivery": True, "delivery_fee": "5"},
            headers=store_headers(store_id)
        )
        assert response.status_code == 200
        totals = response.json()["totals"]
        assert Decimal(totals["payable_total"]) == Decimal("24.50")
        assert response.json()["coupon_valid"] is None


class TestStaffEndpoints:

    def test_token_for_other_store_is_forbidden(self, client, store_id):
        response = client.get(
            "/api/v1/cash-registers/current",
            headers=store_headers(store_id, role="cashier", token_store=uuid4())
        )
        assert response.status_code == 403

    def test_invalid_token(self, client, store_id):
        headers = store_headers(store_id)
        headers["Authorization"] = "Bearer not-a-jwt"
        response = client.get("/api/v1/cash-registers/current", headers=headers)
        assert response.status_code == 401

    def test_no_register_open(self, client, store_id):
        response = client.get("/api/v1/cash-registers/current", headers=store_headers(store_id, role="cashier"))
        assert response.status_code == 404

    def test_unknown_customer_statement(self, client, store_id):
        response = client.get(
            f"/api/v1/loyalty/customers/{uuid4()}", headers=store_headers(store_id, role="admin")
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Cliente não encontrado"

    def test_cancel_unknown_order(self, client, store_id):
        response = client.post(f"/api/v1/orders/{uuid4()}/cancel", headers=store_headers(store_id, role="cashier"))
        assert response.status_code == 404


class TestPublicLookups:

    def test_unknown_coupon(self, client, store_id, product):
        response = client.post(
            "/api/v1/coupons/validate",
            json={"code": " nada ", "items": [{"product_id": str(product), "quantity": 1}]},
            headers=store_headers(store_id)
        )
        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is False
        assert body["code"] == "NADA"
        assert body["rejection"] == "not_found"

    def test_next_open_date_without_hours(self, client, store_id):
        response = client.get("/api/v1/schedule/next-open-date", headers=store_headers(store_id))
        assert response.status_code == 200
        assert response.json()["date"] is None

    def test_availability_without_hours(self, client, store_id):
        response = client.get(
            "/api/v1/schedule/availability", params={"time": "12:00"}, headers=store_headers(store_id)
        )
        assert response.status_code == 200
        assert response.json()["is_open"] is False
        assert response.json()["reason"] == "date_closed"

    def test_payment_methods_by_channel(self, client, store_id):
        response = client.get(
            "/api/v1/orders/payment-methods", params={"channel": "totem"}, headers=store_headers(store_id)
        )
        assert response.status_code == 200
        assert response.json() == []
