from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from tabsplit.db.models import ReceiptItem
from tabsplit.errors import ValidationError
from tabsplit.logging import get_logger
from tabsplit.services.money import format_minor_units

# Printed receipts and OCR output are allowed to disagree by a couple of cents.
RECONCILE_TOLERANCE = 2


@dataclass(slots=True, frozen=True)
class ExtractedItem:
    name: str
    price_minor_units: int


@dataclass(slots=True, frozen=True)
class ReceiptTotals:
    subtotal_minor_units: Optional[int] = None
    tax_minor_units: Optional[int] = None
    tip_minor_units: Optional[int] = None
    total_minor_units: Optional[int] = None


@dataclass(slots=True)
class ReceiptValidation:
    issues: list[str] = field(default_factory=list)
    fields_to_review: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    def flag(self, issue: str, *fields: str) -> None:
        self.issues.append(issue)
        for name in fields:
            if name not in self.fields_to_review:
                self.fields_to_review.append(name)


class ReceiptExtractor(Protocol):
    async def extract(self, content: bytes, filename: str) -> list[ExtractedItem]: ...


def _approx(a: int, b: int) -> bool:
    return abs(a - b) <= RECONCILE_TOLERANCE


def validate_receipt(items: Sequence[ExtractedItem], totals: ReceiptTotals) -> ReceiptValidation:
    result = ReceiptValidation()
    subtotal = totals.subtotal_minor_units or 0
    tax = totals.tax_minor_units or 0
    tip = totals.tip_minor_units or 0
    total = totals.total_minor_units or 0
    items_sum = sum(item.price_minor_units for item in items)

    if totals.total_minor_units is not None:
        computed = subtotal + tax + tip
        if not _approx(computed, total):
            result.flag(
                f"Totals don't reconcile: subtotal + tax + tip = {format_minor_units(computed)}, "
                f"total = {format_minor_units(total)}",
                "total",
                "subtotal",
                "tax",
                "tip",
            )

    if totals.subtotal_minor_units is not None and not _approx(items_sum, subtotal):
        result.flag(
            f"Line items sum ({format_minor_units(items_sum)}) doesn't match subtotal "
            f"({format_minor_units(subtotal)})",
            "subtotal",
            *(f"items[{idx}].price" for idx in range(len(items))),
        )

    largest = max(subtotal, tax, tip, total, items_sum)
    if total > 0 and largest > total + RECONCILE_TOLERANCE:
        result.flag(
            f"Total ({format_minor_units(total)}) is less than the largest amount ({format_minor_units(largest)})",
            "total",
        )

    return result


def build_receipt_items(extracted: Sequence[ExtractedItem]) -> list[ReceiptItem]:
    items: list[ReceiptItem] = []
    for entry in extracted:
        name = entry.name.strip()
        if not name:
            raise ValidationError("Receipt items need a name")
        if entry.price_minor_units < 0:
            raise ValidationError(f"Item '{name}' has a negative price")
        items.append(ReceiptItem(id=str(uuid.uuid4()), name=name, price_minor_units=entry.price_minor_units))
    return items


async def extract_items(
    extractor: ReceiptExtractor,
    content: bytes,
    filename: str,
    timeout: float,
) -> list[ExtractedItem]:
    log = get_logger(__name__)
    try:
        items = await asyncio.wait_for(extractor.extract(content, filename), timeout=timeout)
    except asyncio.TimeoutError as exc:
        log.warning("receipt.extract.timeout", filename=filename, timeout=timeout)
        raise ValidationError("Couldn't read the image. Please try again with a clearer photo.") from exc
    except ValidationError:
        raise
    except Exception as exc:
        log.warning("receipt.extract.failed", filename=filename, error=str(exc))
        raise ValidationError("Couldn't read the image. Please try again with a clearer photo.") from exc

    log.info("receipt.extract.done", filename=filename, items=len(items))
    return items
