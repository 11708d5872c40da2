from decimal import Decimal

import pytest

from tradekit.decimal_utils import below, q_dec, str_decimal


def test_q_dec_uses_string_form():
    assert q_dec(0.1) == Decimal("0.1")
    d = Decimal("1.5")
    assert q_dec(d) is d


@pytest.mark.parametrize("value,expected", [
    (0.01, "0.01"),
    (1.25, "1.25"),
    (37500.0, "37500"),
    (1e-8, "0.00000001"),
    ("2.5000", "2.5"),
    (0, "0"),
    (100, "100"),
])
def test_str_decimal_wire_format(value, expected):
    assert str_decimal(value) == expected


def test_below_compares_as_decimals():
    assert below(0.001, 0.002)
    assert not below(0.002, 0.002)
    # 0.1 + 0.2 is 0.30000000000000004 as a float
    assert not below(0.1 + 0.2, 0.3)
    assert below(2999.99, 3000)
