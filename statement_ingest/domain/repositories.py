"""Repository interfaces anchoring the domain layer."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence

from .results import BulkWriteResult

TRADES = "trades"
HOLDINGS = "holdings"
MASTER_RATINGS = "master_ratings"


@dataclass(frozen=True)
class FieldRange:
    """Inclusive range filter; either bound may be open."""

    low: Any = None
    high: Any = None

    def matches(self, value: Any) -> bool:
        if value is None:
            return False
        if self.low is not None and value < self.low:
            return False
        if self.high is not None and value > self.high:
            return False
        return True


@dataclass(frozen=True)
class UpsertOperation:
    """Insert ``document`` under ``key`` when absent, overwrite it when present.

    ``on_insert`` fields are written only when the key is new.
    """

    key: str
    document: Mapping[str, Any]
    on_insert: Mapping[str, Any] | None = None


class RecordStore(Protocol):
    """Document store keyed by identity string, one namespace per collection."""

    def bulk_upsert(self, collection: str, operations: Sequence[UpsertOperation]) -> BulkWriteResult:
        ...

    def find_all(self, collection: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        ...
