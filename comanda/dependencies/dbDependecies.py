from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Annotated
from comanda.database.database import get_async_db

# Asynchronous database dependency for endpoints
async_db_dependency = Annotated[AsyncSession, Depends(get_async_db)]
