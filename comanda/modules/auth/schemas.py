from pydantic import BaseModel
from typing import Optional
from uuid import UUID


class AuthContext(BaseModel):
    user_id: UUID
    store_id: Optional[UUID] = None
    user_role: Optional[str] = None
