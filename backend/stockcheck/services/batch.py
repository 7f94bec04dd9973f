# Overview: Per-item outcome types for best-effort batch operations.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from .errors import OperationResult


@dataclass(frozen=True)
class BatchItemResult:
    """Outcome of one batch item; item_id is the count/code id, or the item position for creates."""
    item_id: Any
    success: bool
    message: str
    error_kind: str | None = None
    value: Any = None

    def to_dict(self) -> dict:
        data = {
            "item_id": self.item_id,
            "success": self.success,
            "message": self.message,
            "error_kind": self.error_kind,
        }
        if self.value is not None and hasattr(self.value, "id"):
            data["id"] = self.value.id
        return data


@dataclass(frozen=True)
class BatchResult:
    results: list[BatchItemResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for item in self.results if item.success)

    @property
    def fail_count(self) -> int:
        return sum(1 for item in self.results if not item.success)

    def to_dict(self) -> dict:
        return {
            "results": [item.to_dict() for item in self.results],
            "success_count": self.success_count,
            "fail_count": self.fail_count,
        }


def run_batch(
    items: Iterable,
    run: Callable[[Any], OperationResult],
    *,
    ok_message: str,
    key: Callable[[Any], Any] | None = None,
) -> BatchResult:
    """
    Run one public operation per item, collecting outcomes.

    Each call is its own unit of work, so a failed item never rolls back the
    items before it.
    """
    results = []
    for position, item in enumerate(items):
        item_id = key(item) if key else position
        outcome = run(item)
        if outcome.ok:
            results.append(BatchItemResult(item_id=item_id, success=True, message=ok_message, value=outcome.value))
        else:
            results.append(
                BatchItemResult(
                    item_id=item_id,
                    success=False,
                    message=outcome.error.message,
                    error_kind=outcome.error.kind.value,
                )
            )
    return BatchResult(results=results)
