"""In-process record store used by tests and previews."""
from __future__ import annotations

import copy
import logging
from typing import Any, Mapping, Sequence

from statement_ingest.domain.repositories import FieldRange, UpsertOperation
from statement_ingest.domain.results import BulkWriteResult, WriteError

logger = logging.getLogger(__name__)

ID_FIELD = "_id"


def _matches(document: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
    if not filters:
        return True
    for name, expected in filters.items():
        value = document.get(name)
        if isinstance(expected, FieldRange):
            if not expected.matches(value):
                return False
        elif value != expected:
            return False
    return True


def apply_upserts(
    collection: dict[str, dict[str, Any]],
    operations: Sequence[UpsertOperation],
) -> BulkWriteResult:
    """Apply operations unordered: one bad operation does not stop the rest."""
    matched = modified = upserted = 0
    errors: list[WriteError] = []
    for operation in operations:
        if not operation.key:
            errors.append(WriteError(key="", message="empty identity key"))
            continue
        existing = collection.get(operation.key)
        if existing is None:
            document = dict(operation.on_insert or {})
            document.update(copy.deepcopy(dict(operation.document)))
            document[ID_FIELD] = operation.key
            collection[operation.key] = document
            upserted += 1
            continue
        matched += 1
        changes = {
            name: value
            for name, value in operation.document.items()
            if existing.get(name) != value
        }
        if changes:
            existing.update(copy.deepcopy(changes))
            modified += 1
    return BulkWriteResult(matched=matched, modified=modified, upserted=upserted, errors=tuple(errors))


class InMemoryRecordStore:
    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def bulk_upsert(self, collection: str, operations: Sequence[UpsertOperation]) -> BulkWriteResult:
        documents = self._collections.setdefault(collection, {})
        result = apply_upserts(documents, operations)
        logger.debug(
            "%s: matched=%d modified=%d upserted=%d", collection, result.matched, result.modified, result.upserted
        )
        return result

    def find_all(self, collection: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        documents = self._collections.get(collection, {})
        return [copy.deepcopy(document) for document in documents.values() if _matches(document, filters)]

    def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))
