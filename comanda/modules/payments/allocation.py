"""
Asignación de pago: valida la elección de medios contra el total a pagar.

Reglas:
- Total a pagar 0 (todo canjeado con puntos o descuento integral): no se
  exige medio monetario
- Reserva: excluyente con split, con troco y con canje de puntos
- Split: 2 o más partes positivas cuya suma iguala el total (tolerancia)
- Fidelidade nunca sustituye un pago monetario
- Troco sólo con dinheiro y nunca menor que lo cobrado en efectivo
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, List
from uuid import UUID

from comanda.common.exceptions import CheckoutValidationError
from comanda.common.money import to_money, ZERO
from comanda.modules.payments.schemas import (
    CustomMethod, CustomMethodRef, FixedMethod, FixedMethodCode,
    PaymentLeg, PaymentMode, PaymentRequest, PaymentSelection
)


class PaymentRejection(str, Enum):
    NO_METHOD_SELECTED = "no_method_selected"
    METHOD_NOT_FOUND = "method_not_found"
    METHOD_NOT_ALLOWED_FOR_CHANNEL = "method_not_allowed_for_channel"
    SPLIT_MODE_REQUIRED = "split_mode_required"
    SPLIT_NEEDS_TWO_LEGS = "split_needs_two_legs"
    INVALID_AMOUNT = "invalid_amount"
    SPLIT_TOTAL_MISMATCH = "split_total_mismatch"
    RESERVE_NOT_COMBINABLE = "reserve_not_combinable"
    RESERVE_WITH_POINTS = "reserve_with_points"
    RESERVE_WITH_CHANGE = "reserve_with_change"
    POINTS_NOT_MONETARY = "points_not_monetary"
    CARD_MACHINE_REQUIRED = "card_machine_required"
    CHANGE_REQUIRES_CASH = "change_requires_cash"
    CHANGE_BELOW_TOTAL = "change_below_total"


class PaymentAllocationError(CheckoutValidationError):

    def __init__(self, reason: PaymentRejection, message: str):
        super().__init__(reason.value, message)
        self.reason = reason


CARD_CODES = {FixedMethodCode.CREDIT, FixedMethodCode.DEBIT}


def _is_card(method) -> bool:
    if isinstance(method, FixedMethod):
        return method.code in CARD_CODES
    lowered = method.name.lower()
    return method.requires_card_machine or "crédito" in lowered or "débito" in lowered


def _is_cash(method) -> bool:
    return isinstance(method, FixedMethod) and method.code == FixedMethodCode.CASH


def _resolve(ref, custom_methods: Dict[UUID, CustomMethod], channel: str):
    if isinstance(ref, CustomMethodRef):
        method = custom_methods.get(ref.id)
        if method is None:
            raise PaymentAllocationError(
                PaymentRejection.METHOD_NOT_FOUND, "Forma de pagamento não encontrada"
            )
        if method.allowed_channels and channel not in method.allowed_channels:
            raise PaymentAllocationError(
                PaymentRejection.METHOD_NOT_ALLOWED_FOR_CHANNEL,
                f"'{method.name}' não está disponível neste canal"
            )
        return method
    return ref


def allocate_payment(
    request: PaymentRequest,
    payable_total: Decimal,
    points_required: int,
    channel: str,
    custom_methods: Dict[UUID, CustomMethod] | None = None,
    card_machine_required: bool = False,
    tolerance: Decimal = Decimal("0.01"),
) -> PaymentSelection:
    custom_methods = custom_methods or {}
    payable_total = to_money(payable_total)
    legs = request.legs
    mode = request.mode

    reserve_legs = [
        leg for leg in legs
        if isinstance(leg.method, FixedMethod) and leg.method.code == FixedMethodCode.RESERVE
    ]
    if reserve_legs and (len(legs) > 1 or mode == PaymentMode.SPLIT):
        raise PaymentAllocationError(
            PaymentRejection.RESERVE_NOT_COMBINABLE, "Reserva não pode ser combinada com outras formas de pagamento"
        )
    if reserve_legs:
        mode = PaymentMode.RESERVE

    if mode == PaymentMode.RESERVE:
        if points_required > 0:
            raise PaymentAllocationError(
                PaymentRejection.RESERVE_WITH_POINTS, "Reserva não pode ser usada com resgate de pontos"
            )
        if request.change_for is not None:
            raise PaymentAllocationError(
                PaymentRejection.RESERVE_WITH_CHANGE, "Reserva não aceita troco"
            )
        return PaymentSelection(mode=PaymentMode.RESERVE)

    monetary_legs = [
        leg for leg in legs
        if not (isinstance(leg.method, FixedMethod) and leg.method.code == FixedMethodCode.LOYALTY)
    ]

    if payable_total <= 0:
        return PaymentSelection(mode=PaymentMode.SINGLE, points_redeemed=points_required)

    if len(monetary_legs) != len(legs):
        raise PaymentAllocationError(
            PaymentRejection.POINTS_NOT_MONETARY,
            "Pontos de fidelidade não podem pagar itens com valor em dinheiro"
        )
    if not legs:
        raise PaymentAllocationError(
            PaymentRejection.NO_METHOD_SELECTED, "Selecione a forma de pagamento"
        )

    resolved: List[PaymentLeg] = []
    if mode == PaymentMode.SINGLE:
        if len(legs) > 1:
            raise PaymentAllocationError(
                PaymentRejection.SPLIT_MODE_REQUIRED, "Use pagamento dividido para mais de uma forma"
            )
        leg = legs[0]
        resolved.append(PaymentLeg(
            method=_resolve(leg.method, custom_methods, channel),
            amount=payable_total,
            card_machine_id=leg.card_machine_id
        ))
    else:
        if len(legs) < 2:
            raise PaymentAllocationError(
                PaymentRejection.SPLIT_NEEDS_TWO_LEGS, "Pagamento dividido requer ao menos duas formas"
            )
        for leg in legs:
            if leg.amount is None or leg.amount <= 0:
                raise PaymentAllocationError(
                    PaymentRejection.INVALID_AMOUNT, "Informe um valor positivo para cada forma de pagamento"
                )
            resolved.append(PaymentLeg(
                method=_resolve(leg.method, custom_methods, channel),
                amount=to_money(leg.amount),
                card_machine_id=leg.card_machine_id
            ))
        allocated = sum((leg.amount for leg in resolved), ZERO)
        if abs(allocated - payable_total) > tolerance:
            raise PaymentAllocationError(
                PaymentRejection.SPLIT_TOTAL_MISMATCH,
                f"A soma dos pagamentos ({allocated}) difere do total ({payable_total})"
            )

    if card_machine_required:
        for leg in resolved:
            if _is_card(leg.method) and leg.card_machine_id is None:
                raise PaymentAllocationError(
                    PaymentRejection.CARD_MACHINE_REQUIRED, f"Selecione a maquininha para {leg.label}"
                )

    change_for = None
    if request.change_for is not None:
        cash_legs = [leg for leg in resolved if _is_cash(leg.method)]
        if not cash_legs:
            raise PaymentAllocationError(
                PaymentRejection.CHANGE_REQUIRES_CASH, "Troco só é possível com pagamento em dinheiro"
            )
        cash_due = sum((leg.amount for leg in cash_legs), ZERO)
        change_for = to_money(request.change_for)
        if change_for < cash_due:
            raise PaymentAllocationError(
                PaymentRejection.CHANGE_BELOW_TOTAL, "Valor para troco menor que o total em dinheiro"
            )

    return PaymentSelection(
        mode=mode,
        legs=resolved,
        change_for=change_for,
        points_redeemed=points_required
    )
