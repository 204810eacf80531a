"""Credit-rating helpers and the ISIN rating lookup cache."""
from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Mapping

from .models import is_valid_isin
from .repositories import HOLDINGS, MASTER_RATINGS, RecordStore

logger = logging.getLogger(__name__)

UNRATED = "UNRATED"

_TIER_PATTERN = re.compile(r"(?<![A-Z0-9])(AAA|AA|BBB|BB|A|B)[+-]?(?![A-Z0-9])")


def compute_rating_group(text: object) -> str:
    """Coarsen free-text rating such as ``CRISIL AA+ (CE)`` to its tier."""
    if text is None:
        return UNRATED
    match = _TIER_PATTERN.search(str(text).upper())
    if match is None:
        return UNRATED
    return match.group(1)


def format_master_rating(raw: object) -> str:
    if raw is None:
        return ""
    parts = [re.sub(r"\s+", " ", part).strip() for part in str(raw).split("()")]
    return " | ".join(part for part in parts if part)


@dataclass(frozen=True)
class RatingDetails:
    rating: str = ""
    rating_group: str = UNRATED
    issuer_name: str = ""
    source: str | None = None

    @property
    def found(self) -> bool:
        return self.source is not None


_MISSING = RatingDetails()


class RatingLookupCache:
    """ISIN to rating lookups backed by the master list, then holdings.

    Both maps are loaded lazily on first use and replaced wholesale once the
    TTL has elapsed or ``refresh()`` is called. Readers work on whichever
    snapshot is current and never wait for a refresh in progress.
    """

    def __init__(
        self,
        store: RecordStore,
        ttl: timedelta,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._store = store
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._master: Mapping[str, RatingDetails] | None = None
        self._holdings: Mapping[str, RatingDetails] | None = None
        self._loaded_at: datetime | None = None

    def is_stale(self) -> bool:
        if self._loaded_at is None or self._master is None or self._holdings is None:
            return True
        return self._clock() - self._loaded_at >= self._ttl

    def refresh(self) -> None:
        with self._lock:
            self._reload()

    def _reload(self) -> None:
        master = self._load_master()
        holdings = self._load_holdings()
        self._master, self._holdings = master, holdings
        self._loaded_at = self._clock()
        logger.info("Rating cache refreshed: %d master, %d holdings ISINs", len(master), len(holdings))

    def refresh_if_stale(self) -> bool:
        """Reload once for all callers that saw a stale snapshot; True if this call reloaded."""
        if not self.is_stale():
            return False
        with self._lock:
            if not self.is_stale():
                return False
            self._reload()
        return True

    def lookup(self, isin: str) -> RatingDetails:
        self.refresh_if_stale()
        key = (isin or "").strip().upper()
        master, holdings = self._master or {}, self._holdings or {}
        if key in master:
            return master[key]
        return holdings.get(key, _MISSING)

    def _load_master(self) -> dict[str, RatingDetails]:
        ratings: dict[str, RatingDetails] = {}
        for document in self._store.find_all(MASTER_RATINGS):
            isin = str(document.get("isin") or "").strip().upper()
            if not is_valid_isin(isin):
                continue
            rating = document.get("rating") or document.get("rating_raw") or ""
            ratings[isin] = RatingDetails(
                rating=rating,
                rating_group=document.get("rating_group") or compute_rating_group(rating),
                issuer_name=document.get("issuer_name") or "",
                source="master",
            )
        return ratings

    def _load_holdings(self) -> dict[str, RatingDetails]:
        ratings: dict[str, RatingDetails] = {}
        for document in self._store.find_all(HOLDINGS):
            isin = str(document.get("isin") or "").strip().upper()
            rating = str(document.get("rating") or "").strip()
            if not rating or not is_valid_isin(isin):
                continue
            ratings[isin] = RatingDetails(
                rating=rating,
                rating_group=compute_rating_group(rating),
                issuer_name=document.get("issuer") or document.get("instrument_name") or "",
                source="holdings",
            )
        return ratings
