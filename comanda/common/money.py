"""
Utilidades monetárias: todo valor em reais é Decimal com 2 casas.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Union[Decimal, int, float, str, None]) -> Decimal:
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_brl(value: Decimal) -> str:
    """R$ 1.234,56"""
    quantized = to_money(value)
    integer, _, cents = f"{quantized:,.2f}".partition(".")
    return f"R$ {integer.replace(',', '.')},{cents}"
