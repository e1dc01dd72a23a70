from decimal import Decimal

import pytest

from app.core.errors import InvalidInput
from app.services.pricing import compute_total, from_minor_units, to_minor_units


def test_total_with_child_and_service():
    total = compute_total(1000, adults=2, children=1, additional_services=[{"name": "Transfer", "price": 50}])
    assert total == Decimal("2750")


def test_adults_only_is_exact_multiple():
    assert compute_total(Decimal("1499.99"), adults=3) == Decimal("4499.97")


@pytest.mark.parametrize(
    "price,adults,children,services",
    [
        (0, 1, 0, []),
        (10, 1, 5, []),
        ("199.95", 4, 2, [{"price": "12.50"}, {"price": 0}]),
        (1, 7, 3, [{"price": "0.10"}, {"price": "0.20"}]),
    ],
)
def test_formula_holds(price, adults, children, services):
    p = Decimal(str(price))
    expected = p * adults + Decimal("0.7") * p * children + sum((Decimal(str(s["price"])) for s in services), Decimal("0"))
    assert compute_total(price, adults, children, services) == expected


def test_float_service_prices_do_not_leak_binary_error():
    total = compute_total(0, 1, 0, [{"price": 0.1}, {"price": 0.2}])
    assert total == Decimal("0.3")


@pytest.mark.parametrize("adults", [0, -1, None])
def test_requires_an_adult(adults):
    with pytest.raises(InvalidInput):
        compute_total(100, adults)


def test_rejects_negative_children_and_prices():
    with pytest.raises(InvalidInput):
        compute_total(100, 1, children=-1)
    with pytest.raises(InvalidInput):
        compute_total(-5, 1)
    with pytest.raises(InvalidInput):
        compute_total(100, 1, additional_services=[{"price": -1}])


def test_minor_units_conversion():
    assert to_minor_units(Decimal("2750")) == 275000
    assert to_minor_units(Decimal("19.995")) == 2000
    assert from_minor_units(275000) == Decimal("2750")
