"""
Tests de clientes: alta idempotente por teléfono y direcciones
"""

import pytest
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy import func, select

from comanda.modules.customers.models import Customer, CustomerAddress
from comanda.modules.customers.schemas import CustomerRef, DeliveryAddress
from comanda.modules.customers.service import CustomerService


class TestCustomerSchemas:

    def test_phone_is_normalized(self):
        assert CustomerRef(phone="+55 (21) 99999-0000").phone == "21999990000"

    def test_invalid_phone(self):
        with pytest.raises(ValidationError):
            CustomerRef(phone="12345678")

    def test_address_completeness(self):
        assert DeliveryAddress(address="Rua A", neighborhood="Centro").is_complete
        assert not DeliveryAddress(address="Rua A", neighborhood="  ").is_complete
        full = DeliveryAddress(address="Rua A", number="10", neighborhood="Centro", cep="01310100")
        assert full.one_line() == "Rua A, 10 - Centro - CEP 01310-100"


class TestCustomerService:

    def test_upsert_is_idempotent_by_phone(self, run_db, store_id):
        async def scenario(db):
            service = CustomerService(db)
            first = await service.upsert(store_id, CustomerRef(phone="(11) 98765-4321", name="Maria"))
            again = await service.upsert(store_id, CustomerRef(phone="11987654321", name="Outra"))

            assert again.id == first.id
            assert again.name == "Maria"
            total = await db.execute(select(func.count()).select_from(Customer))
            assert total.scalar_one() == 1

        run_db(scenario)

    def test_new_customer_default_name(self, run_db, store_id):
        async def scenario(db):
            customer = await CustomerService(db).upsert(
                store_id, CustomerRef(phone="11987654321", name="  "), default_name="Cliente Totem"
            )
            assert customer.name == "Cliente Totem"
            assert customer.points == 0

        run_db(scenario)

    def test_same_phone_in_other_store_is_other_customer(self, run_db, seed, store_id):
        async def scenario(db):
            other = await seed.customer(db, store_id)
            mine = await CustomerService(db).upsert(uuid4(), CustomerRef(phone=other.phone))
            assert mine.id != other.id

        run_db(scenario)

    def test_save_address(self, run_db, seed, store_id):
        async def scenario(db):
            customer = await seed.customer(db, store_id)
            saved = await CustomerService(db).save_address(
                store_id, customer.id,
                DeliveryAddress(address="Rua B", number="5", neighborhood="Vila", cep="04567-000", label="Trabalho")
            )
            row = (await db.execute(select(CustomerAddress).where(CustomerAddress.id == saved.id))).scalar_one()
            assert row.name == "Trabalho"
            assert row.cep == "04567-000"

        run_db(scenario)
