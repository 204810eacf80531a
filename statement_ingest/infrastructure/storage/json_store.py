"""JSON-file record store, one file per collection."""
from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

from statement_ingest.domain.repositories import UpsertOperation
from statement_ingest.domain.results import BulkWriteResult, WriteError

from .memory_store import ID_FIELD, InMemoryRecordStore, apply_upserts

logger = logging.getLogger(__name__)


class JsonFileRecordStore(InMemoryRecordStore):
    """Keeps collections in memory and rewrites ``<collection>.json`` after each bulk write."""

    def __init__(self, root: Path) -> None:
        super().__init__()
        self._root = Path(root)

    def _path(self, collection: str) -> Path:
        return self._root / f"{collection}.json"

    def _load(self, collection: str) -> dict[str, dict[str, Any]]:
        if collection in self._collections:
            return self._collections[collection]
        path = self._path(collection)
        documents: dict[str, dict[str, Any]] = {}
        if path.exists():
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except json.JSONDecodeError:
                logger.warning("Ignoring corrupt collection file %s", path)
                raw = []
            for document in raw if isinstance(raw, list) else []:
                if isinstance(document, dict) and document.get(ID_FIELD):
                    documents[str(document[ID_FIELD])] = document
        self._collections[collection] = documents
        return documents

    def bulk_upsert(self, collection: str, operations: Sequence[UpsertOperation]) -> BulkWriteResult:
        current = self._load(collection)
        staged = copy.deepcopy(current)
        result = apply_upserts(staged, operations)
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            self._path(collection).write_text(
                json.dumps(list(staged.values()), ensure_ascii=False, indent=2, sort_keys=True),
                encoding="utf-8",
            )
        except (OSError, TypeError, ValueError) as exc:
            logger.error("Could not persist %s: %s", collection, exc)
            return BulkWriteResult(
                errors=tuple(WriteError(key=operation.key, message=str(exc)) for operation in operations)
            )
        self._collections[collection] = staged
        return result

    def find_all(self, collection: str, filters: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        self._load(collection)
        return super().find_all(collection, filters)
