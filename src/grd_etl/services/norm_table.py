"""
In-memory Norma MINSAL cache shared by ingestion runs.

The table is read-mostly: lookups never take a lock, a reload builds a fresh
mapping and swaps the reference in one assignment, and at most one reload runs
at a time. Callers that arrive while a reload is in progress keep reading the
previous table.
"""

from __future__ import annotations
import logging
import threading
import time
from types import MappingProxyType
from typing import Callable, Mapping, Optional
from grd_etl.core.config import NORM_REFRESH_HOURS, NORM_SOURCE
from grd_etl.core.errors import NormLoadError
from grd_etl.extract.extract_norm import load_norm
from grd_etl.models.norm import NormEntry

log = logging.getLogger(__name__)

_EMPTY: Mapping[str, NormEntry] = MappingProxyType({})


class NormTable:
    def __init__(
        self,
        source=NORM_SOURCE,
        refresh_hours: float = NORM_REFRESH_HOURS,
        loader: Callable[..., Mapping[str, NormEntry]] = load_norm,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.refresh_seconds = refresh_hours * 3600
        self._loader = loader
        self._clock = clock
        self._entries: Mapping[str, NormEntry] = _EMPTY
        self._loaded_at: Optional[float] = None
        self._reload_lock = threading.Lock()

    @classmethod
    def from_entries(cls, entries: Mapping[str, NormEntry], **kwargs) -> "NormTable":
        """A table pre-seeded with entries (e.g. read back from the database)."""
        table = cls(loader=lambda _source: entries, **kwargs)
        table.refresh(force=True)
        return table

    @property
    def loaded(self) -> bool:
        return self._loaded_at is not None

    @property
    def last_loaded_at(self) -> Optional[float]:
        return self._loaded_at

    def __len__(self) -> int:
        return len(self._entries)

    def is_stale(self) -> bool:
        if self._loaded_at is None:
            return True
        return (self._clock() - self._loaded_at) > self.refresh_seconds

    def refresh(self, force: bool = False) -> Mapping[str, NormEntry]:
        """
        Reload the table if it was never loaded, is older than the refresh
        interval, or ``force`` is set. Returns the table now in effect.

        Raises NormLoadError only when no table has ever been loaded.
        """
        if not force and not self.is_stale():
            return self._entries

        if not self._reload_lock.acquire(blocking=not self.loaded):
            # another caller is reloading; serve what we have
            return self._entries
        try:
            # a concurrent reload may have finished while we waited
            if not force and not self.is_stale():
                return self._entries
            try:
                fresh = self._loader(self.source)
            except NormLoadError as e:
                if not self.loaded:
                    log.error("Norm load failed and no cached table is available: %s", e)
                    raise
                log.error("Norm reload failed, keeping cached table (%d codes): %s", len(self._entries), e)
                return self._entries

            self._entries = MappingProxyType(dict(fresh))
            self._loaded_at = self._clock()
            log.info("Norm table refreshed: %d GRD codes", len(self._entries))
            return self._entries
        finally:
            self._reload_lock.release()

    def lookup(self, code: Optional[str]) -> Optional[NormEntry]:
        if not code:
            return None
        return self._entries.get(code)

    def snapshot(self) -> Mapping[str, NormEntry]:
        """The current read-only table; never changes under the caller."""
        return self._entries
