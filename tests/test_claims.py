import pytest

from tabsplit.errors import NotFoundError, UnknownItemError, ValidationError
from tabsplit.services.claims import ClaimTable

ROSTER = ["A", "B", "C"]


def test_set_claims_replaces_previous_set():
    table = ClaimTable(["pizza", "soda"])
    table.set_claims("pizza", ["B", "A"], ROSTER)
    assert table.claims_for("pizza") == ("A", "B")

    table.set_claims("pizza", ["C"], ROSTER)
    assert table.claims_for("pizza") == ("C",)


def test_claim_toggling_is_idempotent():
    toggled = ClaimTable(["pizza"])
    toggled.set_claims("pizza", ["A", "B"], ROSTER)
    toggled.set_claims("pizza", ["A"], ROSTER)
    toggled.set_claims("pizza", ["A", "B"], ROSTER)

    direct = ClaimTable(["pizza"])
    direct.set_claims("pizza", ["A", "B"], ROSTER)

    assert toggled == direct


def test_unknown_item_is_validation_and_not_found():
    table = ClaimTable(["pizza"])
    with pytest.raises(UnknownItemError) as excinfo:
        table.set_claims("burger", ["A"], ROSTER)
    assert isinstance(excinfo.value, ValidationError)
    assert isinstance(excinfo.value, NotFoundError)


def test_unknown_member_is_rejected_without_changes():
    table = ClaimTable(["pizza"])
    table.set_claims("pizza", ["A"], ROSTER)
    with pytest.raises(ValidationError):
        table.set_claims("pizza", ["A", "Z"], ROSTER)
    assert table.claims_for("pizza") == ("A",)


def test_is_complete():
    table = ClaimTable(["pizza", "soda"])
    assert not table.is_complete()
    table.set_claims("pizza", ["A"], ROSTER)
    assert table.unclaimed_items() == ["soda"]
    table.set_claims("soda", ["B"], ROSTER)
    assert table.is_complete()
    table.set_claims("soda", [], ROSTER)
    assert not table.is_complete()


def test_copy_is_independent():
    table = ClaimTable(["pizza"])
    clone = table.copy()
    clone.set_claims("pizza", ["A"], ROSTER)
    assert table.claims_for("pizza") == ()
