"""
Tests de asignación de pago

Cubren modo único, dividido y reserva, canje de puntos, troco,
maquininha obligatoria y medios personalizados por canal.
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from comanda.modules.payments.allocation import PaymentAllocationError, PaymentRejection, allocate_payment
from comanda.modules.payments.schemas import (
    CustomMethod, CustomMethodRef, FixedMethod, FixedMethodCode,
    PaymentLegRequest, PaymentMode, PaymentRequest
)


def fixed(code, amount=None, machine=None):
    return PaymentLegRequest(method=FixedMethod(code=code), amount=amount, card_machine_id=machine)


def rejection_of(request, total, points=0, **kwargs):
    with pytest.raises(PaymentAllocationError) as exc:
        allocate_payment(request, Decimal(total), points, kwargs.pop("channel", "presencial"), **kwargs)
    return exc.value.reason


class TestSinglePayment:

    def test_single_leg_takes_full_total(self):
        selection = allocate_payment(
            PaymentRequest(legs=[fixed(FixedMethodCode.PIX)]), Decimal("42.50"), 0, "presencial"
        )
        assert selection.mode == PaymentMode.SINGLE
        assert selection.label == "PIX"
        assert selection.amounts == ["42.50"]

    def test_no_leg_rejected(self):
        assert rejection_of(PaymentRequest(), "10") == PaymentRejection.NO_METHOD_SELECTED

    def test_two_legs_need_split_mode(self):
        request = PaymentRequest(legs=[fixed(FixedMethodCode.PIX), fixed(FixedMethodCode.CASH)])
        assert rejection_of(request, "10") == PaymentRejection.SPLIT_MODE_REQUIRED

    def test_zero_total_needs_no_method(self):
        selection = allocate_payment(PaymentRequest(), Decimal("0"), 30, "presencial")
        assert selection.legs == []
        assert selection.label == "Fidelidade"

    def test_zero_total_without_points_is_free(self):
        selection = allocate_payment(PaymentRequest(), Decimal("0"), 0, "presencial")
        assert selection.label == "Sem cobrança"

    def test_loyalty_label_prefixes_monetary_method(self):
        selection = allocate_payment(
            PaymentRequest(legs=[fixed(FixedMethodCode.PIX)]), Decimal("12.00"), 30, "whatsapp"
        )
        assert selection.label == "Fidelidade + PIX"
        assert selection.method_names == ["PIX"]

    def test_loyalty_cannot_pay_money(self):
        request = PaymentRequest(legs=[fixed(FixedMethodCode.LOYALTY)])
        assert rejection_of(request, "12", points=30) == PaymentRejection.POINTS_NOT_MONETARY


class TestSplitPayment:

    def test_split_amounts_must_match_total(self):
        request = PaymentRequest(
            mode=PaymentMode.SPLIT,
            legs=[fixed(FixedMethodCode.PIX, Decimal("10")), fixed(FixedMethodCode.CASH, Decimal("5"))]
        )
        assert rejection_of(request, "20") == PaymentRejection.SPLIT_TOTAL_MISMATCH

    def test_split_within_tolerance(self):
        request = PaymentRequest(
            mode=PaymentMode.SPLIT,
            legs=[fixed(FixedMethodCode.PIX, Decimal("10.00")), fixed(FixedMethodCode.CASH, Decimal("9.99"))]
        )
        selection = allocate_payment(request, Decimal("20.00"), 0, "presencial")
        assert selection.label == "PIX + Dinheiro"
        assert selection.amounts == ["10.00", "9.99"]

    def test_split_needs_two_legs(self):
        request = PaymentRequest(mode=PaymentMode.SPLIT, legs=[fixed(FixedMethodCode.PIX, Decimal("20"))])
        assert rejection_of(request, "20") == PaymentRejection.SPLIT_NEEDS_TWO_LEGS

    def test_split_leg_without_amount(self):
        request = PaymentRequest(
            mode=PaymentMode.SPLIT, legs=[fixed(FixedMethodCode.PIX, Decimal("20")), fixed(FixedMethodCode.CASH)]
        )
        assert rejection_of(request, "20") == PaymentRejection.INVALID_AMOUNT


class TestReserve:

    def test_reserve_selection(self):
        selection = allocate_payment(
            PaymentRequest(legs=[fixed(FixedMethodCode.RESERVE)]), Decimal("30"), 0, "whatsapp"
        )
        assert selection.is_reserve
        assert selection.label == "Reserva"
        assert selection.legs == []

    def test_reserve_not_combinable(self):
        request = PaymentRequest(
            mode=PaymentMode.SPLIT,
            legs=[fixed(FixedMethodCode.RESERVE, Decimal("10")), fixed(FixedMethodCode.PIX, Decimal("20"))]
        )
        assert rejection_of(request, "30") == PaymentRejection.RESERVE_NOT_COMBINABLE

    def test_reserve_with_points(self):
        request = PaymentRequest(legs=[fixed(FixedMethodCode.RESERVE)])
        assert rejection_of(request, "30", points=10) == PaymentRejection.RESERVE_WITH_POINTS

    def test_reserve_with_change(self):
        request = PaymentRequest(legs=[fixed(FixedMethodCode.RESERVE)], change_for=Decimal("50"))
        assert rejection_of(request, "30") == PaymentRejection.RESERVE_WITH_CHANGE


class TestChangeAndCardMachine:

    def test_change_for_cash(self):
        request = PaymentRequest(legs=[fixed(FixedMethodCode.CASH)], change_for=Decimal("50"))
        selection = allocate_payment(request, Decimal("32.00"), 0, "whatsapp")
        assert selection.change_for == Decimal("50.00")

    def test_change_requires_cash(self):
        request = PaymentRequest(legs=[fixed(FixedMethodCode.PIX)], change_for=Decimal("50"))
        assert rejection_of(request, "32") == PaymentRejection.CHANGE_REQUIRES_CASH

    def test_change_below_cash_due(self):
        request = PaymentRequest(legs=[fixed(FixedMethodCode.CASH)], change_for=Decimal("20"))
        assert rejection_of(request, "32") == PaymentRejection.CHANGE_BELOW_TOTAL

    def test_card_needs_machine_when_required(self):
        request = PaymentRequest(legs=[fixed(FixedMethodCode.CREDIT)])
        assert rejection_of(request, "32", card_machine_required=True) == PaymentRejection.CARD_MACHINE_REQUIRED

    def test_card_with_machine(self):
        machine = uuid4()
        request = PaymentRequest(legs=[fixed(FixedMethodCode.DEBIT, machine=machine)])
        selection = allocate_payment(request, Decimal("32"), 0, "presencial", card_machine_required=True)
        assert selection.card_machine_ids == [str(machine)]


class TestCustomMethods:

    def test_custom_method_resolves_by_id(self):
        method = CustomMethod(id=uuid4(), name="Vale Refeição", allowed_channels=["presencial"])
        request = PaymentRequest(legs=[PaymentLegRequest(method=CustomMethodRef(id=method.id))])
        selection = allocate_payment(request, Decimal("25"), 0, "presencial", custom_methods={method.id: method})
        assert selection.label == "Vale Refeição"

    def test_custom_method_not_offered_on_channel(self):
        method = CustomMethod(id=uuid4(), name="Fiado", allowed_channels=["presencial"])
        request = PaymentRequest(legs=[PaymentLegRequest(method=CustomMethodRef(id=method.id))])
        reason = rejection_of(request, "25", channel="loja_online", custom_methods={method.id: method})
        assert reason == PaymentRejection.METHOD_NOT_ALLOWED_FOR_CHANNEL

    def test_unknown_custom_method(self):
        request = PaymentRequest(legs=[PaymentLegRequest(method=CustomMethodRef(id=uuid4()))])
        assert rejection_of(request, "25") == PaymentRejection.METHOD_NOT_FOUND

    def test_discriminated_payload(self):
        request = PaymentRequest.model_validate({"legs": [{"method": {"kind": "fixed", "code": "pix"}}]})
        assert isinstance(request.legs[0].method, FixedMethod)
