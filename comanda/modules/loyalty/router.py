from fastapi import APIRouter, Depends, HTTPException, status, Path
from uuid import UUID

from comanda.dependencies.dbDependecies import async_db_dependency
from comanda.modules.auth.dependencies import AuthDependencies
from comanda.modules.auth.schemas import AuthContext
from comanda.modules.customers.service import CustomerService
from comanda.modules.loyalty.schemas import LoyaltyStatement
from comanda.modules.loyalty.service import LoyaltyLedgerService

loyalty_router = APIRouter(prefix="/loyalty", tags=["Loyalty"])


@loyalty_router.get("/customers/{customer_id}", response_model=LoyaltyStatement)
async def get_customer_statement(
    db: async_db_dependency,
    customer_id: UUID = Path(..., description="ID do cliente"),
    auth_context: AuthContext = Depends(AuthDependencies.require_staff())
):
    """Saldo, extrato e conciliação do saldo com o livro de pontos."""
    customer = await CustomerService(db).get(auth_context.store_id, customer_id)
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cliente não encontrado")
    return await LoyaltyLedgerService(db).statement(auth_context.store_id, customer)
