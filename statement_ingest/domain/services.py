"""Domain services reconciling canonical records with storage."""
from __future__ import annotations

import logging
from typing import Callable, Hashable, Sequence, TypeVar

from .models import CanonicalHoldingRecord, CanonicalTradeRecord, MasterRatingRecord
from .ratings import RatingLookupCache, compute_rating_group
from .repositories import HOLDINGS, MASTER_RATINGS, TRADES, RecordStore, UpsertOperation
from .results import BulkWriteResult, ReconciliationResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


def dedupe(records: Sequence[T], key: Callable[[T], Hashable]) -> tuple[list[T], int]:
    """Keep the first record per key; return the survivors and the drop count."""
    seen: set[Hashable] = set()
    unique: list[T] = []
    for record in records:
        identity = key(record)
        if identity in seen:
            continue
        seen.add(identity)
        unique.append(record)
    return unique, len(records) - len(unique)


class IngestionReconciler:
    """Deduplicates a batch, attaches ratings and upserts it idempotently."""

    def __init__(self, store: RecordStore, ratings: RatingLookupCache) -> None:
        self._store = store
        self._ratings = ratings

    def enrich_trades(self, records: Sequence[CanonicalTradeRecord]) -> list[CanonicalTradeRecord]:
        enriched: list[CanonicalTradeRecord] = []
        for record in records:
            if record.rating:
                enriched.append(record.with_rating(record.rating, compute_rating_group(record.rating)))
                continue
            details = self._ratings.lookup(record.isin)
            if details.found:
                record = record.with_rating(details.rating, details.rating_group, details.issuer_name)
            enriched.append(record)
        return enriched

    def reconcile_trades(self, records: Sequence[CanonicalTradeRecord]) -> ReconciliationResult:
        unique, intra_batch = dedupe(records, lambda record: record.transaction_id)
        operations = [
            UpsertOperation(key=record.transaction_id, document=record.to_document(), on_insert=record.provenance())
            for record in self.enrich_trades(unique)
        ]
        return self._write(TRADES, operations, total=len(records), intra_batch=intra_batch)

    def reconcile_holdings(self, records: Sequence[CanonicalHoldingRecord]) -> ReconciliationResult:
        unique, intra_batch = dedupe(records, lambda record: record.holding_id)
        operations = [
            UpsertOperation(key=record.holding_id, document=record.to_document(), on_insert=record.provenance())
            for record in unique
        ]
        return self._write(HOLDINGS, operations, total=len(records), intra_batch=intra_batch)

    def reconcile_master(self, records: Sequence[MasterRatingRecord]) -> ReconciliationResult:
        unique, intra_batch = dedupe(records, lambda record: record.isin)
        operations = [
            UpsertOperation(key=record.isin, document=record.to_document(), on_insert=record.provenance())
            for record in unique
        ]
        result = self._write(MASTER_RATINGS, operations, total=len(records), intra_batch=intra_batch)
        propagated = self._propagate_master_ratings(unique)
        self._ratings.refresh()
        if propagated.errors:
            result += ReconciliationResult(write_errors=tuple(propagated.errors))
        return result

    def _propagate_master_ratings(self, records: Sequence[MasterRatingRecord]) -> BulkWriteResult:
        """Rewrite the rating on stored trades whose ISIN the master now covers."""
        by_isin = {record.isin: record for record in records}
        operations: list[UpsertOperation] = []
        for document in self._store.find_all(TRADES):
            master = by_isin.get(document.get("isin"))
            if master is None or not master.rating or document.get("rating") == master.rating:
                continue
            operations.append(
                UpsertOperation(
                    key=document["_id"],
                    document={"rating": master.rating, "rating_group": master.rating_group},
                )
            )
        if not operations:
            return BulkWriteResult()
        result = self._store.bulk_upsert(TRADES, operations)
        logger.info("Updated rating on %d stored trades", result.modified)
        return result

    def _write(
        self,
        collection: str,
        operations: Sequence[UpsertOperation],
        *,
        total: int,
        intra_batch: int,
    ) -> ReconciliationResult:
        if operations:
            written = self._store.bulk_upsert(collection, operations)
        else:
            written = BulkWriteResult()
        for error in written.errors:
            logger.error("Write to %s failed for %s: %s", collection, error.key, error.message)
        result = ReconciliationResult(
            inserted=written.upserted,
            updated=written.modified,
            duplicates=intra_batch + (written.matched - written.modified),
            total=total,
            write_errors=tuple(written.errors),
        )
        logger.info(
            "%s: %d inserted, %d updated, %d duplicates of %d",
            collection,
            result.inserted,
            result.updated,
            result.duplicates,
            result.total,
        )
        return result
