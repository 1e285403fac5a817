"""
Esquemas de pago

El medio de pago es una variante etiquetada:
- FixedMethod: medios del sistema (pix, crédito, débito, dinheiro, reserva, fidelidade)
- CustomMethod: medio configurado por la tienda, con canales permitidos

PaymentSelection es el resultado validado de la asignación de pago.
"""

from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List, Union, Literal, Annotated
from uuid import UUID
from enum import Enum


# ===== ENUMS =====

class FixedMethodCode(str, Enum):
    PIX = "pix"
    CREDIT = "credito"
    DEBIT = "debito"
    CASH = "dinheiro"
    RESERVE = "reserva"
    LOYALTY = "fidelidade"


FIXED_LABELS = {
    FixedMethodCode.PIX: "PIX",
    FixedMethodCode.CREDIT: "Crédito",
    FixedMethodCode.DEBIT: "Débito",
    FixedMethodCode.CASH: "Dinheiro",
    FixedMethodCode.RESERVE: "Reserva",
    FixedMethodCode.LOYALTY: "Fidelidade",
}


class PaymentMode(str, Enum):
    SINGLE = "single"
    RESERVE = "reserve"
    SPLIT = "split"


# ===== MEDIOS =====

class FixedMethod(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["fixed"] = "fixed"
    code: FixedMethodCode

    @property
    def label(self) -> str:
        return FIXED_LABELS[self.code]


class CustomMethodRef(BaseModel):
    kind: Literal["custom"] = "custom"
    id: UUID


class CustomMethod(BaseModel):
    model_config = {"frozen": True, "from_attributes": True}

    kind: Literal["custom"] = "custom"
    id: UUID
    name: str
    allowed_channels: List[str] = []
    requires_card_machine: bool = False

    @property
    def label(self) -> str:
        return self.name


PaymentMethodRef = Annotated[Union[FixedMethod, CustomMethodRef], Field(discriminator="kind")]
ResolvedMethod = Annotated[Union[FixedMethod, CustomMethod], Field(discriminator="kind")]


# ===== REQUEST =====

class PaymentLegRequest(BaseModel):
    method: PaymentMethodRef
    amount: Optional[Decimal] = Field(None, ge=0)
    card_machine_id: Optional[UUID] = None


class PaymentRequest(BaseModel):
    mode: PaymentMode = PaymentMode.SINGLE
    legs: List[PaymentLegRequest] = []
    change_for: Optional[Decimal] = Field(None, gt=0, description="Troco para")


# ===== RESULT =====

class PaymentLeg(BaseModel):
    model_config = {"frozen": True}

    method: ResolvedMethod
    amount: Decimal
    card_machine_id: Optional[UUID] = None

    @property
    def label(self) -> str:
        return self.method.label


class PaymentSelection(BaseModel):
    model_config = {"frozen": True}

    mode: PaymentMode
    legs: List[PaymentLeg] = []
    change_for: Optional[Decimal] = None
    points_redeemed: int = 0

    @property
    def is_reserve(self) -> bool:
        return self.mode == PaymentMode.RESERVE

    @property
    def label(self) -> str:
        if self.is_reserve:
            return FIXED_LABELS[FixedMethodCode.RESERVE]
        parts = []
        if self.points_redeemed > 0:
            parts.append(FIXED_LABELS[FixedMethodCode.LOYALTY])
        parts.extend(leg.label for leg in self.legs)
        return " + ".join(parts) if parts else "Sem cobrança"

    @property
    def method_names(self) -> List[str]:
        return [leg.label for leg in self.legs]

    @property
    def amounts(self) -> List[str]:
        return [str(leg.amount) for leg in self.legs]

    @property
    def card_machine_ids(self) -> List[Optional[str]]:
        return [str(leg.card_machine_id) if leg.card_machine_id else None for leg in self.legs]


class PaymentMethodOut(BaseModel):
    id: UUID
    name: str
    is_default: bool
    allowed_channels: List[str] = []
    requires_card_machine: bool = False
    card_machine_id: Optional[UUID] = None

    model_config = {"from_attributes": True}
