from __future__ import annotations


class TabSplitError(Exception):
    pass


class ValidationError(TabSplitError, ValueError):
    def __init__(self, message: str, issues: list[str] | None = None) -> None:
        super().__init__(message)
        self.issues = list(issues or [])


class AuthorizationError(TabSplitError, PermissionError):
    pass


class ConflictError(TabSplitError):
    pass


class NotFoundError(TabSplitError, LookupError):
    pass


class UnknownItemError(ValidationError, NotFoundError):
    """Raised for an item id that is not part of the current receipt."""

    def __init__(self, item_id: str) -> None:
        super().__init__(f"Unknown receipt item: {item_id}")
        self.item_id = item_id
