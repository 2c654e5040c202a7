import pytest

from tabsplit.errors import ValidationError
from tabsplit.services.money import distribute_evenly, format_minor_units, split_amount, to_minor_units


def test_distribute_evenly_remainder_goes_first():
    assert distribute_evenly(5500, 3) == [1834, 1833, 1833]
    assert distribute_evenly(1001, 4) == [251, 250, 250, 250]


@pytest.mark.parametrize("total", [0, 1, 2, 99, 100, 101, 5500, 123457])
@pytest.mark.parametrize("n", [1, 2, 3, 7, 13])
def test_distribute_evenly_is_fair(total, n):
    shares = distribute_evenly(total, n)
    assert len(shares) == n
    assert sum(shares) == total
    assert max(shares) - min(shares) <= 1


def test_distribute_evenly_rejects_bad_input():
    with pytest.raises(ValidationError):
        distribute_evenly(100, 0)
    with pytest.raises(ValidationError):
        distribute_evenly(-1, 2)


def test_split_amount_orders_by_member_id():
    assert split_amount(1001, ["C", "A", "B"]) == {"A": 334, "B": 334, "C": 333}


@pytest.mark.parametrize(
    "raw, expected",
    [("12.34", 1234), ("12.3", 1230), ("12", 1200), (" 0.05 ", 5), ("0", 0), (7, 700)],
)
def test_to_minor_units(raw, expected):
    assert to_minor_units(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "-1.00", "1.234", "", "NaN", "Infinity"])
def test_to_minor_units_rejects(raw):
    with pytest.raises(ValidationError):
        to_minor_units(raw)


def test_format_minor_units():
    assert format_minor_units(1680) == "16.80"
    assert format_minor_units(5) == "0.05"
    assert format_minor_units(0) == "0.00"
