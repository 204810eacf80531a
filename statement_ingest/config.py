"""Central configuration for the statement ingestion package."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

from statement_ingest.domain.models import SourceLayout

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"

DATA_DIR_ENV_VAR = "STATEMENT_INGEST_DATA_DIR"
RATING_TTL_ENV_VAR = "STATEMENT_INGEST_RATING_TTL_SECONDS"
REJECT_LOW_CONFIDENCE_ENV_VAR = "STATEMENT_INGEST_REJECT_LOW_CONFIDENCE"

# Rows scanned from the top of a sheet when looking for the header row.
HEADER_SCAN_ROWS = 30

# Distinct keyword hits a header row needs before its layout is trusted.
CLASSIFIER_MIN_HITS = {
    SourceLayout.EXCHANGE_A: 2,
    SourceLayout.EXCHANGE_B: 2,
    SourceLayout.RATINGS_MASTER: 2,
    SourceLayout.HOLDINGS_STATEMENT: 2,
}

RATING_CACHE_TTL = timedelta(minutes=10)
LACS_DIVISOR = Decimal("100000")


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_ttl(name: str, default: timedelta) -> timedelta:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return timedelta(seconds=float(raw))
    except ValueError:
        return default


def _env_dir(name: str, default: Path) -> Path:
    if path := os.environ.get(name):
        return Path(path).expanduser()
    return default


@dataclass(slots=True, frozen=True)
class Settings:
    header_scan_rows: int
    classifier_min_hits: dict[SourceLayout, int]
    default_layout: SourceLayout
    reject_low_confidence: bool
    rating_cache_ttl: timedelta
    lacs_divisor: Decimal
    data_dir: Path = field(default=DATA_DIR)

    def with_overrides(self, **changes: object) -> "Settings":
        return replace(self, **changes)


def load_settings() -> Settings:
    return Settings(
        header_scan_rows=HEADER_SCAN_ROWS,
        classifier_min_hits=dict(CLASSIFIER_MIN_HITS),
        default_layout=SourceLayout.EXCHANGE_B,
        reject_low_confidence=_env_flag(REJECT_LOW_CONFIDENCE_ENV_VAR, False),
        rating_cache_ttl=_env_ttl(RATING_TTL_ENV_VAR, RATING_CACHE_TTL),
        lacs_divisor=LACS_DIVISOR,
        data_dir=_env_dir(DATA_DIR_ENV_VAR, DATA_DIR),
    )


SETTINGS = load_settings()
