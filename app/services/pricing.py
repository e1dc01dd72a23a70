"""Booking price arithmetic.

Amounts are whole currency units held as ``Decimal``; nothing is rounded here.
Conversion to integer minor units happens only when talking to the gateway.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Mapping

from app.core.errors import InvalidInput

CHILD_RATE = Decimal("0.7")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 0.1 as 0.1 instead of the binary float expansion
    return Decimal(str(value))


def services_total(additional_services: Iterable[Mapping]) -> Decimal:
    total = Decimal("0")
    for s in additional_services or ():
        price = to_decimal(s.get("price") or 0)
        if price < 0:
            raise InvalidInput("Additional service price cannot be negative")
        total += price
    return total


def compute_total(unit_price, adults: int, children: int = 0, additional_services: Iterable[Mapping] = ()) -> Decimal:
    """P*A + P*0.7*C + sum(service prices)."""
    price = to_decimal(unit_price)
    if price < 0:
        raise InvalidInput("Package price cannot be negative")
    if adults is None or int(adults) < 1:
        raise InvalidInput("At least one adult traveler is required")
    if int(children or 0) < 0:
        raise InvalidInput("Number of children cannot be negative")

    base = price * int(adults) + price * CHILD_RATE * int(children or 0)
    return base + services_total(additional_services)


def to_minor_units(amount) -> int:
    """Whole units -> integer cents, half-up."""
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return Decimal(int(amount)) / 100
