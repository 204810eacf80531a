import logging
from datetime import date, timedelta
from decimal import Decimal

from statement_ingest.domain.models import (
    CanonicalHoldingRecord,
    CanonicalTradeRecord,
    HoldingIdentity,
    MasterRatingRecord,
    TransactionIdentity,
)
from statement_ingest.domain.ratings import RatingLookupCache
from statement_ingest.domain.repositories import HOLDINGS, MASTER_RATINGS, TRADES, UpsertOperation
from statement_ingest.domain.results import BulkWriteResult, WriteError
from statement_ingest.domain.services import IngestionReconciler, dedupe
from statement_ingest.infrastructure.storage.memory_store import InMemoryRecordStore


def make_trade(isin="INE467B01029", amount="250", price="101.25", row_number=2, source_file="nse.csv"):
    identity = TransactionIdentity(
        exchange="NSE",
        instrument=isin,
        trade_date=date(2024, 1, 15),
        order_type="BUY",
        amount=Decimal(amount),
        price=Decimal(price),
    )
    return CanonicalTradeRecord(
        identity=identity,
        exchange="NSE",
        isin=isin,
        trade_date=date(2024, 1, 15),
        trade_time="10:05:33",
        amount=Decimal(amount),
        price=Decimal(price),
        order_type="BUY",
        source_file=source_file,
        file_hash="hash",
        sheet_name="Trades",
        row_number=row_number,
    )


def make_holding(isin="INE261F08DO2", market_value="1012.34", rating="CRISIL AAA"):
    return CanonicalHoldingRecord(
        identity=HoldingIdentity("ABC Bond Fund", date(2024, 1, 31), "Debt", isin),
        isin=isin,
        instrument_name="NABARD",
        category="Debt Instruments",
        sheet_name="Debt",
        scheme_name="ABC Bond Fund",
        report_date=date(2024, 1, 31),
        market_value=Decimal(market_value),
        rating=rating,
        rating_group="AAA",
    )


def make_master(isin="INE467B01029", rating="CRISIL AAA"):
    return MasterRatingRecord(isin=isin, rating=rating, rating_raw=rating, rating_group="AAA", issuer_name="Tata Capital")


def make_reconciler(store=None):
    store = store or InMemoryRecordStore()
    return store, IngestionReconciler(store, RatingLookupCache(store, ttl=timedelta(minutes=5)))


def test_dedupe_keeps_first():
    unique, dropped = dedupe(["a", "b", "a", "c", "b"], lambda value: value)

    assert unique == ["a", "b", "c"]
    assert dropped == 2


def test_trades_are_idempotent():
    store, reconciler = make_reconciler()
    batch = [make_trade(), make_trade(isin="INE001A07TQ2")]

    first = reconciler.reconcile_trades(batch)
    second = reconciler.reconcile_trades(batch)

    assert (first.inserted, first.updated, first.duplicates, first.total) == (2, 0, 0, 2)
    assert (second.inserted, second.updated, second.duplicates, second.total) == (0, 0, 2, 2)
    assert store.count(TRADES) == 2


def test_intra_batch_duplicates_counted():
    store, reconciler = make_reconciler()

    result = reconciler.reconcile_trades([make_trade(row_number=2), make_trade(row_number=3), make_trade(row_number=4)])

    assert result.inserted == 1
    assert result.duplicates == 2
    assert store.find_all(TRADES)[0]["row_number"] == 2


def test_reingest_keeps_original_provenance():
    store, reconciler = make_reconciler()
    reconciler.reconcile_trades([make_trade(source_file="first.csv")])

    result = reconciler.reconcile_trades([make_trade(source_file="second.csv", row_number=9)])

    assert result.duplicates == 1
    stored = store.find_all(TRADES)[0]
    assert stored["source_file"] == "first.csv"
    assert stored["row_number"] == 2
    assert stored["_id"] == "NSE-INE467B01029_2024-01-15_BUY_250_101.25"


def test_changed_holding_is_updated():
    store, reconciler = make_reconciler()
    reconciler.reconcile_holdings([make_holding()])

    result = reconciler.reconcile_holdings([make_holding(market_value="1020.00")])

    assert (result.inserted, result.updated, result.duplicates) == (0, 1, 0)
    assert store.find_all(HOLDINGS)[0]["market_value"] == "1020"


def test_trades_pick_up_ratings():
    store, reconciler = make_reconciler()
    reconciler.reconcile_holdings([make_holding(isin="INE467B01029", rating="ICRA AA+")])

    reconciler.reconcile_trades([make_trade(), make_trade(isin="INE001A07TQ2")])

    stored = {document["isin"]: document for document in store.find_all(TRADES)}
    assert stored["INE467B01029"]["rating"] == "ICRA AA+"
    assert stored["INE467B01029"]["rating_group"] == "AA"
    assert stored["INE467B01029"]["instrument_name"] == "NABARD"
    assert stored["INE001A07TQ2"]["rating_group"] == "UNRATED"


def test_master_upload_propagates_to_stored_trades():
    store, reconciler = make_reconciler()
    reconciler.reconcile_trades([make_trade(), make_trade(isin="INE001A07TQ2")])

    result = reconciler.reconcile_master([make_master(), make_master()])

    assert (result.inserted, result.duplicates, result.total) == (1, 1, 2)
    assert store.count(MASTER_RATINGS) == 1
    stored = {document["isin"]: document for document in store.find_all(TRADES)}
    assert stored["INE467B01029"]["rating"] == "CRISIL AAA"
    assert stored["INE467B01029"]["rating_group"] == "AAA"
    assert stored["INE001A07TQ2"]["rating"] == ""


def test_master_upload_refreshes_the_cache():
    store, reconciler = make_reconciler()
    reconciler.reconcile_trades([make_trade(isin="INE001A07TQ2")])

    reconciler.reconcile_master([make_master(isin="INE999Z01019", rating="CARE BBB")])
    reconciler.reconcile_trades([make_trade(isin="INE999Z01019")])

    stored = {document["isin"]: document for document in store.find_all(TRADES)}
    assert stored["INE999Z01019"]["rating"] == "CARE BBB"


class FlakyStore(InMemoryRecordStore):
    """Fails every operation whose key mentions ``bad``."""

    def bulk_upsert(self, collection, operations):
        good = [operation for operation in operations if "BAD" not in operation.key]
        result = super().bulk_upsert(collection, good)
        errors = [WriteError(key=operation.key, message="rejected") for operation in operations if "BAD" in operation.key]
        return BulkWriteResult(
            matched=result.matched,
            modified=result.modified,
            upserted=result.upserted,
            errors=tuple(result.errors) + tuple(errors),
        )


def test_write_errors_are_reported_not_raised(caplog):
    store, reconciler = make_reconciler(FlakyStore())

    with caplog.at_level(logging.ERROR):
        result = reconciler.reconcile_trades([make_trade(), make_trade(isin="BAD000000001")])

    assert result.inserted == 1
    assert [error.key for error in result.write_errors] == ["NSE-BAD000000001_2024-01-15_BUY_250_101.25"]
    assert "rejected" in caplog.text
    assert store.count(TRADES) == 1


def test_empty_key_is_a_write_error():
    store = InMemoryRecordStore()

    result = store.bulk_upsert(TRADES, [UpsertOperation(key="", document={}), UpsertOperation(key="k", document={})])

    assert result.upserted == 1
    assert len(result.errors) == 1


def test_blank_master_rating_leaves_stored_trades_alone():
    store, reconciler = make_reconciler()
    reconciler.reconcile_trades([make_trade()])
    reconciler.reconcile_master([make_master(rating="CRISIL AAA")])

    reconciler.reconcile_master([make_master(rating="")])

    [stored] = store.find_all(TRADES)
    assert stored["rating"] == "CRISIL AAA"
    assert stored["rating_group"] == "AAA"
