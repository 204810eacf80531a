"""Ingestion and normalization of exchange trade reports, rating masters and holdings statements."""
from statement_ingest.application.dto import IngestionRequest, PreviewResult
from statement_ingest.application.use_cases import IngestFileUseCase, IngestionContext
from statement_ingest.domain.ratings import RatingLookupCache
from statement_ingest.domain.services import IngestionReconciler
from statement_ingest.infrastructure.storage.json_store import JsonFileRecordStore
from statement_ingest.infrastructure.storage.memory_store import InMemoryRecordStore

__all__ = [
    "IngestFileUseCase",
    "IngestionContext",
    "IngestionRequest",
    "PreviewResult",
    "IngestionReconciler",
    "RatingLookupCache",
    "InMemoryRecordStore",
    "JsonFileRecordStore",
]
