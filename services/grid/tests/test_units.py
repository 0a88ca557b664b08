"""
Tests para la conversión de unidades y el formato de precios.
"""
from decimal import Decimal

import pytest

from app.domain.units import format_price, format_units, parse_units, truncate


class TestUnits:

    def test_parse_units(self):
        assert parse_units(1_234_567, 6) == Decimal("1.234567")
        assert parse_units(5, 0) == Decimal("5")
        assert parse_units(0, 9) == Decimal("0")

    def test_format_units_drops_extra_precision(self):
        assert format_units(Decimal("1.2345678"), 6) == 1_234_567
        assert format_units(Decimal("10"), 6) == 10_000_000

    def test_truncate(self):
        assert truncate(Decimal("1.239"), 2) == Decimal("1.23")
        assert truncate(Decimal("-1.239"), 2) == Decimal("-1.23")

    @pytest.mark.parametrize("price,expected", [
        (Decimal("0"), "0"),
        (Decimal("12.3456789"), "12.34567"),
        (Decimal("2"), "2"),
        (Decimal("0.0123456"), "0.01234"),
        (Decimal("0.000001234"), "0.0₅1234"),
        (Decimal("0.0000123456789"), "0.0₄12345"),
        (Decimal("-0.000001234"), "-0.0₅1234"),
    ])
    def test_format_price(self, price, expected):
        assert format_price(price) == expected
