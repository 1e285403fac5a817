"""
Tests de utilidades comunes: teléfono/CEP brasileños, dinero y errores de dominio
"""

import pytest
from decimal import Decimal

from comanda.common.exceptions import (
    CheckoutValidationError, OrderPersistenceError, PreconditionConflictError
)
from comanda.common.money import format_brl, to_money
from comanda.common.validators import normalize_brazil_phone, normalize_cep, validate_brazil_phone


class TestBrazilPhone:
    """Normalización de teléfonos"""

    @pytest.mark.parametrize("raw", [
        "+55 (11) 98765-4321",
        "5511987654321",
        "(11) 98765-4321",
        "11987654321",
    ])
    def test_mobile_formats_normalize_to_digits(self, raw):
        assert normalize_brazil_phone(raw) == "11987654321"

    def test_landline_keeps_ten_digits(self):
        assert normalize_brazil_phone("(11) 3265-4321") == "1132654321"

    def test_letters_rejected(self):
        with pytest.raises(ValueError):
            normalize_brazil_phone("11-ABCD-4321")

    def test_short_number_rejected(self):
        assert validate_brazil_phone("98765-4321") is False


class TestCep:
    def test_formats_digits(self):
        assert normalize_cep("01310100") == "01310-100"
        assert normalize_cep("01310-100") == "01310-100"

    def test_blank_becomes_none(self):
        assert normalize_cep("") is None
        assert normalize_cep(None) is None

    def test_wrong_length_rejected(self):
        with pytest.raises(ValueError):
            normalize_cep("1234")


class TestMoney:
    def test_rounds_half_up(self):
        assert to_money(Decimal("2.345")) == Decimal("2.35")
        assert to_money("10") == Decimal("10.00")
        assert to_money(None) == Decimal("0.00")

    def test_format_brl(self):
        assert format_brl(Decimal("1234.5")) == "R$ 1.234,50"
        assert format_brl(Decimal("0")) == "R$ 0,00"


class TestDomainErrors:
    def test_status_codes(self):
        assert CheckoutValidationError("x", "y").status_code == 422
        assert PreconditionConflictError("x", "y").status_code == 409
        assert OrderPersistenceError().status_code == 500

    def test_to_dict_merges_payload(self):
        error = PreconditionConflictError("register_closed", "Caixa fechado", payload={"store": "a"})
        assert error.to_dict() == {"store": "a", "detail": "Caixa fechado", "code": "register_closed"}
