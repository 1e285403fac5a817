"""
Servicios de clientes: búsqueda por teléfono, alta idempotente y
libreta de direcciones.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from comanda.modules.customers.models import Customer, CustomerAddress
from comanda.modules.customers.schemas import CustomerRef, DeliveryAddress

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER_NAME = "Cliente"


class CustomerService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_phone(self, store_id: UUID, phone: str) -> Optional[Customer]:
        result = await self.db.execute(
            select(Customer)
            .where(Customer.store_id == store_id, Customer.phone == phone)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, store_id: UUID, customer_id: UUID) -> Optional[Customer]:
        result = await self.db.execute(
            select(Customer)
            .where(Customer.store_id == store_id, Customer.id == customer_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert(self, store_id: UUID, ref: CustomerRef, default_name: str = DEFAULT_CUSTOMER_NAME) -> Customer:
        """Devuelve el cliente del teléfono, creándolo con 0 puntos si no existe."""
        existing = await self.get_by_phone(store_id, ref.phone)
        if existing:
            return existing

        customer = Customer(
            store_id=store_id,
            phone=ref.phone,
            name=(ref.name or "").strip() or default_name,
            points=0
        )
        self.db.add(customer)
        try:
            await self.db.commit()
        except IntegrityError:
            # Alta concurrente del mismo teléfono
            await self.db.rollback()
            existing = await self.get_by_phone(store_id, ref.phone)
            if existing is None:
                raise
            return existing

        logger.info(f"Customer created for phone {ref.phone} in store {store_id}")
        return customer

    async def save_address(self, store_id: UUID, customer_id: UUID, address: DeliveryAddress) -> CustomerAddress:
        saved = CustomerAddress(
            store_id=store_id,
            customer_id=customer_id,
            name=address.label,
            address=address.address,
            number=address.number,
            neighborhood=address.neighborhood,
            reference=address.reference,
            cep=address.cep
        )
        self.db.add(saved)
        await self.db.commit()
        return saved
