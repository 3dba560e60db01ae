"""
Consultation cache - case fingerprint -> in-flight or completed session.

An OrderedDict LRU with TTL expiry. It is the only shared mutable
resource in the engine, so every write is a versioned compare-and-swap
made under a per-key lock: a fast-mode background completion and a
normal-mode write on the same fingerprint can never interleave partial
state. Lost races raise ``CacheWriteConflict`` from ``commit``; ``write``
retries them with tenacity and never lets them escape in practice.

Entries are deep-copied on the way in and out, so no caller ever holds a
reference to stored state.
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_random

from consilium.cache.similarity import SimilarityBreakdown, compare_cases
from consilium.confidence import AssessmentHistory
from consilium.exceptions import CacheWriteConflict
from consilium.models.case import Case
from consilium.models.enums import OpinionStatus, ProgressStatus, SessionStatus
from consilium.models.session import ConsultationSession
from consilium.utils.locks import KeyedLocks


logger = logging.getLogger(__name__)


PLANNED = (SessionStatus.SYNTHESIZED, SessionStatus.MONITORING)


@dataclass
class CacheEntry:
    """A stored session snapshot and its version."""

    session: ConsultationSession
    version: int
    expires_at: float


@dataclass(frozen=True)
class SimilarCase:
    """A cached session matched to a different but similar case."""

    session: ConsultationSession
    similarity: float
    breakdown: SimilarityBreakdown


@dataclass
class CacheStats:
    """Running counters for cache behaviour."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    conflicts: int = 0
    similar_hits: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def as_dict(self) -> dict:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "evictions": self.evictions,
            "conflicts": self.conflicts,
            "similar_hits": self.similar_hits,
            "hit_rate": round(self.hit_rate, 4),
        }


class ConsultationCache:
    """LRU + TTL session store with single-writer-per-key commits."""

    def __init__(
        self,
        max_entries: int = 1000,
        ttl_seconds: float = 24 * 60 * 60,
        write_attempts: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._max_entries = max_entries
        self._ttl_seconds = ttl_seconds
        self._write_attempts = write_attempts
        self._clock = clock
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._key_locks = KeyedLocks()
        self._session_index: dict[str, str] = {}
        self.stats = CacheStats()

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        entry = self._store.get(key)
        return entry is not None and not self._expired(entry)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Optional[ConsultationSession]:
        """Return a copy of the session stored under ``key``, or None."""
        session, _ = await self.get_versioned(key)
        return session

    async def get_versioned(self, key: str) -> tuple[Optional[ConsultationSession], int]:
        """
        Read a session together with its version.

        Returns:
            (copy of the session or None, version). Version 0 means absent.
        """
        entry = self._live_entry(key)
        if entry is None:
            self.stats.misses += 1
            return None, 0
        self.stats.hits += 1
        self._store.move_to_end(key)
        return entry.session.snapshot(), entry.version

    async def get_by_session_id(self, session_id: str) -> Optional[ConsultationSession]:
        """Look a session up by its id instead of its fingerprint."""
        key = self._session_index.get(session_id)
        if key is None:
            return None
        session = await self.get(key)
        if session is None or session.session_id != session_id:
            return None
        return session

    async def find_similar(self, case: Case, threshold: float = 0.8) -> Optional[SimilarCase]:
        """
        Best completed session for a case that is alike but not identical.

        Only sessions with a plan are candidates, and the case's own
        fingerprint is skipped (``get`` covers exact matches).

        Args:
            case: The incoming case
            threshold: Minimum similarity score, 0..1

        Returns:
            The best match at or above ``threshold``, or None
        """
        fingerprint = case.fingerprint()
        best: Optional[tuple[str, CacheEntry, SimilarityBreakdown]] = None

        for key in list(self._store):
            if key == fingerprint:
                continue
            entry = self._live_entry(key)
            if entry is None or entry.session.status not in PLANNED:
                continue
            breakdown = compare_cases(case, entry.session.case)
            if breakdown is None or breakdown.score < threshold:
                continue
            if best is None or breakdown.score > best[2].score:
                best = (key, entry, breakdown)

        if best is None:
            return None

        key, entry, breakdown = best
        self.stats.similar_hits += 1
        self._store.move_to_end(key)
        logger.info(
            "Similar case for %s: %s at %.0f%% (%s)",
            fingerprint,
            key,
            breakdown.score * 100,
            breakdown.as_dict(),
        )
        return SimilarCase(session=entry.session.snapshot(), similarity=breakdown.score, breakdown=breakdown)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def commit(
        self,
        key: str,
        session: ConsultationSession,
        expected_version: int,
    ) -> int:
        """
        Store ``session`` if the entry is still at ``expected_version``.

        Returns:
            The new version

        Raises:
            CacheWriteConflict: another writer committed first
        """
        async with self._key_locks.hold(key):
            entry = self._live_entry(key)
            current = entry.version if entry else 0
            if current != expected_version:
                self.stats.conflicts += 1
                raise CacheWriteConflict(key, expected_version, current)

            version = current + 1
            self._store[key] = CacheEntry(
                session=session.snapshot(),
                version=version,
                expires_at=self._clock() + self._ttl_seconds,
            )
            self._store.move_to_end(key)
            self._session_index[session.session_id] = key
            self.stats.sets += 1
            self._evict()
            return version

    async def write(self, key: str, session: ConsultationSession) -> int:
        """Store ``session`` under ``key``, retrying lost compare-and-swap races."""
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(CacheWriteConflict),
            stop=stop_after_attempt(self._write_attempts),
            wait=wait_random(0, 0.01),
            reraise=True,
        ):
            with attempt:
                entry = self._live_entry(key)
                version = await self.commit(key, session, entry.version if entry else 0)
        logger.debug("Cached %s (session %s, status %s, v%d)", key, session.session_id, session.status, version)
        return version

    async def invalidate(self, key: str) -> None:
        async with self._key_locks.hold(key):
            entry = self._store.pop(key, None)
            if entry:
                self._session_index.pop(entry.session.session_id, None)

    async def clear(self) -> None:
        self._store.clear()
        self._session_index.clear()

    # ------------------------------------------------------------------
    # Track record
    # ------------------------------------------------------------------

    def history_for(self, specialist_id: str) -> AssessmentHistory:
        """
        Immutable track-record snapshot for one specialist.

        Counts successful opinions in cached sessions, and milestone
        outcomes of the sessions it contributed to.
        """
        assessments = recorded = on_track = 0
        for entry in list(self._store.values()):
            if self._expired(entry):
                continue
            opinion = entry.session.opinions.get(specialist_id)
            if opinion is None or opinion.status != OpinionStatus.SUCCESS:
                continue
            assessments += 1
            for report in entry.session.milestone_reports:
                recorded += 1
                if report.progress_status == ProgressStatus.ON_TRACK:
                    on_track += 1
        return AssessmentHistory(
            assessments=assessments,
            outcomes_recorded=recorded,
            outcomes_on_track=on_track,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _expired(self, entry: CacheEntry) -> bool:
        return self._clock() >= entry.expires_at

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._expired(entry):
            del self._store[key]
            self._session_index.pop(entry.session.session_id, None)
            return None
        return entry

    def _evict(self) -> None:
        while len(self._store) > self._max_entries:
            key, entry = self._store.popitem(last=False)
            self._session_index.pop(entry.session.session_id, None)
            self.stats.evictions += 1
            logger.debug("Evicted %s", key)
