"""
Resource quantity parsing ("500m", "2Gi", "1.5", "1e3").
"""

from decimal import Decimal, InvalidOperation
from typing import Union


_BINARY_SUFFIXES = {
    "Ki": 2 ** 10,
    "Mi": 2 ** 20,
    "Gi": 2 ** 30,
    "Ti": 2 ** 40,
    "Pi": 2 ** 50,
    "Ei": 2 ** 60,
}

_DECIMAL_SUFFIXES = {
    "n": Decimal("1e-9"),
    "u": Decimal("1e-6"),
    "m": Decimal("1e-3"),
    "": Decimal(1),
    "k": Decimal("1e3"),
    "M": Decimal("1e6"),
    "G": Decimal("1e9"),
    "T": Decimal("1e12"),
    "P": Decimal("1e15"),
    "E": Decimal("1e18"),
}


def parse_quantity(quantity: Union[str, int, float]) -> Decimal:
    """
    Parse a resource quantity into a Decimal in base units.

    ``"500m"`` is 0.5 CPU, ``"2Gi"`` is 2147483648 bytes.

    Raises:
        ValueError: the quantity is not well formed.
    """
    if isinstance(quantity, (int, float)):
        return Decimal(str(quantity))

    text = quantity.strip()
    if not text:
        raise ValueError("empty quantity")

    if text[-2:] in _BINARY_SUFFIXES:
        number, multiplier = text[:-2], Decimal(_BINARY_SUFFIXES[text[-2:]])
    elif text[-1:] in _DECIMAL_SUFFIXES and not text[-1:].isdigit():
        number, multiplier = text[:-1], _DECIMAL_SUFFIXES[text[-1:]]
    else:
        number, multiplier = text, Decimal(1)

    try:
        value = Decimal(number)
    except InvalidOperation:
        raise ValueError(f"invalid quantity: {quantity!r}") from None
    if not value.is_finite():
        raise ValueError(f"invalid quantity: {quantity!r}")
    return value * multiplier
