from pydantic import BaseModel, Field, field_validator
from typing import Optional
from uuid import UUID

from comanda.common.validators import normalize_brazil_phone, normalize_cep


class CustomerRef(BaseModel):
    """Identidad del cliente informada por el canal"""
    phone: str = Field(..., min_length=8, max_length=20)
    name: Optional[str] = Field(None, max_length=150)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return normalize_brazil_phone(v)


class DeliveryAddress(BaseModel):
    address: Optional[str] = Field(None, max_length=255)
    number: Optional[str] = Field(None, max_length=20)
    neighborhood: Optional[str] = Field(None, max_length=120)
    reference: Optional[str] = Field(None, max_length=255)
    cep: Optional[str] = None
    label: str = Field(default="Principal", max_length=60)

    @field_validator('cep')
    @classmethod
    def validate_cep(cls, v: Optional[str]) -> Optional[str]:
        return normalize_cep(v)

    @property
    def is_complete(self) -> bool:
        return bool((self.address or "").strip()) and bool((self.neighborhood or "").strip())

    def one_line(self) -> str:
        parts = [self.address or ""]
        if self.number:
            parts[0] = f"{parts[0]}, {self.number}"
        if self.neighborhood:
            parts.append(self.neighborhood)
        if self.cep:
            parts.append(f"CEP {self.cep}")
        return " - ".join(p for p in parts if p)


class CustomerOut(BaseModel):
    id: UUID
    name: str
    phone: str
    points: int

    model_config = {"from_attributes": True}
