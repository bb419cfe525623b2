"""Parsing for Kubernetes resource quantity strings ("100m", "1Gi", "2e3")."""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache


class QuantityError(ValueError):
    """Raised when a string does not follow the resource quantity grammar."""


_BINARY_SI = {
    "Ki": Decimal(2) ** 10,
    "Mi": Decimal(2) ** 20,
    "Gi": Decimal(2) ** 30,
    "Ti": Decimal(2) ** 40,
    "Pi": Decimal(2) ** 50,
    "Ei": Decimal(2) ** 60,
}

_DECIMAL_SI = {
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

_QUANTITY_RE = re.compile(
    r"^(?P<number>[+-]?(?:\d+(?:\.\d*)?|\.\d+))"
    r"(?P<suffix>Ki|Mi|Gi|Ti|Pi|Ei|[eE][+-]?\d+|[numkMGTPE]?)$"
)


@dataclass(frozen=True)
class Quantity:
    text: str
    suffix: str
    value: Decimal

    def __str__(self) -> str:
        return self.text


@lru_cache(maxsize=1024)
def parse_quantity(text: str) -> Quantity:
    """Parse ``text`` into a :class:`Quantity` or raise :class:`QuantityError`."""

    if not isinstance(text, str) or not text:
        raise QuantityError("quantity must be a non-empty string")
    match = _QUANTITY_RE.match(text)
    if match is None:
        raise QuantityError(f"quantities must match the regular expression {_QUANTITY_RE.pattern!r}")

    number = match.group("number")
    suffix = match.group("suffix")
    try:
        base = Decimal(number)
        if suffix in _BINARY_SI:
            value = base * _BINARY_SI[suffix]
        elif suffix in _DECIMAL_SI:
            value = base * _DECIMAL_SI[suffix]
        else:
            value = base.scaleb(int(suffix[1:]))
    except (InvalidOperation, ValueError) as exc:
        raise QuantityError(f"unable to parse quantity {text!r}: {exc}") from exc
    return Quantity(text=text, suffix=suffix, value=value)


def is_quantity(text: str) -> bool:
    try:
        parse_quantity(text)
    except QuantityError:
        return False
    return True


__all__ = ["Quantity", "QuantityError", "is_quantity", "parse_quantity"]
