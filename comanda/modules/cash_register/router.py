"""
Routers FastAPI para sesiones de caja

Todos los endpoints requieren operador (owner, admin, manager, cashier).
"""

from fastapi import APIRouter, Depends, HTTPException, status, Path
from uuid import UUID

from comanda.dependencies.dbDependecies import async_db_dependency
from comanda.modules.auth.dependencies import AuthDependencies
from comanda.modules.auth.schemas import AuthContext
from comanda.modules.cash_register.schemas import (
    CashRegisterClose, CashRegisterOpen, CashRegisterOut, CashRegisterSummary
)
from comanda.modules.cash_register.service import CashRegisterService

cash_registers_router = APIRouter(prefix="/cash-registers", tags=["Cash Registers"])


@cash_registers_router.post("/open", response_model=CashRegisterOut, status_code=status.HTTP_201_CREATED)
async def open_cash_register(
    register_data: CashRegisterOpen,
    db: async_db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_staff())
):
    """
    Abre o caixa da loja do contexto JWT.

    - **opening_amount**: fundo de troco
    - Só um caixa aberto por loja
    """
    service = CashRegisterService(db)
    return await service.open_session(register_data, auth_context.store_id, auth_context.user_id)


@cash_registers_router.get("/current", response_model=CashRegisterSummary)
async def get_current_cash_register(
    db: async_db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_staff())
):
    service = CashRegisterService(db)
    session = await service.get_open_session(auth_context.store_id)
    if not session:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Nenhum caixa aberto nesta loja")
    return await service.summary(session)


@cash_registers_router.post("/{register_id}/close", response_model=CashRegisterSummary)
async def close_cash_register(
    close_data: CashRegisterClose,
    db: async_db_dependency,
    register_id: UUID = Path(..., description="ID da sessão de caixa"),
    auth_context: AuthContext = Depends(AuthDependencies.require_staff())
):
    """Fecha o caixa e devolve o arqueo (vendas entregues na sessão)."""
    service = CashRegisterService(db)
    return await service.close_session(register_id, close_data, auth_context.store_id, auth_context.user_id)
