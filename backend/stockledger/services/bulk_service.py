# Overview: Service-layer operations for bulk stock adjustments; reports per-entry failures as data.

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..models import ReferenceType
from ..errors import StockLedgerError, InvalidBulkEntryError
from . import ledger_service
"""
Bulk Adjustment Invariants (authoritative)

- Entries are applied sequentially, each in its OWN unit of work. A failing
  entry never rolls back an entry already applied.
- Each entry shifts stock by a signed delta and floors at zero:
  new_stock = max(0, current_stock + delta), recorded as an 'adjustment'
  with reference_type=bulk_adjustment. Going below zero is clamped, not refused.
- This is the only service that converts exceptions into result data.
  Callers must inspect every entry; there is no single pass/fail.
"""


@dataclass
class BulkResult:
    results: list[dict] = field(default_factory=list)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r["success"])

    @property
    def failed(self) -> int:
        return len(self.results) - self.successful

    @property
    def summary(self) -> dict:
        return {"total": len(self.results), "successful": self.successful, "failed": self.failed}

    def to_dict(self) -> dict:
        return {"results": self.results, "summary": self.summary}


def _default_notes(delta) -> str:
    sign = "+" if isinstance(delta, int) and delta > 0 else ""
    return f"Bulk adjustment: {sign}{delta}"


def _failure(category_id, exc: Exception, code: str) -> dict:
    return {
        "category_id": category_id,
        "success": False,
        "before_stock": None,
        "after_stock": None,
        "change": None,
        "movement": None,
        "error": str(exc),
        "error_code": code,
    }


def apply_bulk(adjustments: list[dict], *, actor=None) -> BulkResult:
    """
    Apply many stock deltas independently.

    Each entry: {"category_id": int, "delta": int, "notes": str | None}.
    Entries that are not objects are reported as invalid_entry.
    """
    result = BulkResult()

    for entry in adjustments:
        category_id = entry.get("category_id") if isinstance(entry, dict) else None

        try:
            if not isinstance(entry, dict):
                raise InvalidBulkEntryError(
                    f"Adjustment entry must be an object, got {type(entry).__name__}"
                )
            delta = entry.get("delta")
            movement_result = ledger_service.adjust_by_delta(
                category_id=category_id,
                delta=delta,
                reference_type=ReferenceType.BULK_ADJUSTMENT,
                actor=actor,
                notes=entry.get("notes") or _default_notes(delta),
            )
        except StockLedgerError as exc:
            current_app.logger.warning("Bulk adjustment failed for category %s: %s", category_id, exc)
            result.results.append(_failure(category_id, exc, exc.code))
            continue
        except Exception as exc:
            current_app.logger.exception("Unexpected error in bulk adjustment for category %s", category_id)
            result.results.append(_failure(category_id, exc, "internal_error"))
            continue

        result.results.append({
            "category_id": category_id,
            "success": True,
            "before_stock": movement_result.before_stock,
            "after_stock": movement_result.after_stock,
            "change": movement_result.after_stock - movement_result.before_stock,
            "movement": movement_result.movement.to_dict(),
            "error": None,
            "error_code": None,
        })

    current_app.logger.info(
        "Bulk adjustment by %s: %s successful, %s failed",
        actor, result.successful, result.failed,
    )
    return result
