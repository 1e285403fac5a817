from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from comanda.modules.loyalty.models import LoyaltyTransactionType, LoyaltyReason


class LoyaltyTransactionOut(BaseModel):
    id: UUID
    order_id: Optional[UUID] = None
    points: int
    transaction_type: LoyaltyTransactionType
    reason: LoyaltyReason
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LoyaltyStatement(BaseModel):
    """Saldo cacheado vs. suma del libro"""
    customer_id: UUID
    cached_balance: int
    ledger_balance: int
    is_consistent: bool
    transactions: List[LoyaltyTransactionOut] = []
