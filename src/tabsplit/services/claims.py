from __future__ import annotations

from typing import Iterable, Mapping

from tabsplit.errors import UnknownItemError, ValidationError


class ClaimTable:
    """Item id -> claiming member ids, last write wins per item."""

    def __init__(self, item_ids: Iterable[str] = ()) -> None:
        self._claims: dict[str, set[str]] = {item_id: set() for item_id in item_ids}

    @classmethod
    def from_mapping(cls, item_ids: Iterable[str], claims: Mapping[str, Iterable[str]]) -> "ClaimTable":
        table = cls(item_ids)
        for item_id, member_ids in claims.items():
            if item_id not in table._claims:
                raise UnknownItemError(item_id)
            table._claims[item_id] = set(member_ids)
        return table

    @property
    def item_ids(self) -> list[str]:
        return list(self._claims)

    def set_claims(self, item_id: str, member_ids: Iterable[str], known_member_ids: Iterable[str]) -> tuple[str, ...]:
        if item_id not in self._claims:
            raise UnknownItemError(item_id)

        requested = set(member_ids)
        unknown = requested - set(known_member_ids)
        if unknown:
            raise ValidationError(f"Unknown member ids: {', '.join(sorted(unknown))}")

        self._claims[item_id] = requested
        return self.claims_for(item_id)

    def claims_for(self, item_id: str) -> tuple[str, ...]:
        if item_id not in self._claims:
            raise UnknownItemError(item_id)
        return tuple(sorted(self._claims[item_id]))

    def unclaimed_items(self) -> list[str]:
        return [item_id for item_id, members in self._claims.items() if not members]

    def is_complete(self) -> bool:
        return not self.unclaimed_items()

    def reset(self, item_ids: Iterable[str]) -> None:
        self._claims = {item_id: set() for item_id in item_ids}

    def as_dict(self) -> dict[str, tuple[str, ...]]:
        return {item_id: tuple(sorted(members)) for item_id, members in self._claims.items()}

    def copy(self) -> "ClaimTable":
        return ClaimTable.from_mapping(self._claims.keys(), self._claims)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ClaimTable):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __repr__(self) -> str:
        return f"ClaimTable({self.as_dict()!r})"
