"""
Search orchestrator: resolve postcodes, expand months, fetch and flatten.

State is keyed by ``(postcodes, trigger)``. The date range is not part of
the key, so a date-only change reuses the cached result until the caller
bumps the manual trigger.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import httpx

from pipeline.config import settings
from pipeline.crimes import CrimeFetcher
from pipeline.errors import (
    CrimeDashboardError,
    NoValidPostcodesError,
    ValidationError,
    classify,
)
from pipeline.models import EnrichedCrimeRecord, SearchResultSet
from pipeline.months import is_month_key, months_between
from pipeline.postcodes import PostcodeResolver

logger = logging.getLogger(__name__)

SearchKey = tuple[tuple[str, ...], int]


class SearchStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class OrchestratorState:
    status: SearchStatus = SearchStatus.IDLE
    result: SearchResultSet = field(default_factory=SearchResultSet.empty)
    error: Optional[str] = None
    key: Optional[SearchKey] = None


def search_key(postcodes: list[str], trigger: int = 0) -> SearchKey:
    return (tuple(postcodes), trigger)


class SearchOrchestrator:
    """
    Runs the query/fetch pipeline and publishes its state.

    Only the most recently requested key publishes; a slower, superseded
    search still returns its result to its own caller.
    """

    def __init__(
        self,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        cache_ttl: float = settings.cache_ttl,
        retries: int = settings.retry_count,
        retry_delay: float = settings.retry_delay,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._transport = transport
        self._cache_ttl = cache_ttl
        self._retries = retries
        self._retry_delay = retry_delay
        self._clock = clock
        self._cache: dict[SearchKey, tuple[float, SearchResultSet]] = {}
        self._active_key: Optional[SearchKey] = None
        self.state = OrchestratorState()

    # ── Public API ────────────────────────────────────────────────

    async def search(
        self,
        postcodes: list[str],
        date_from: str,
        date_to: str,
        trigger: int = 0,
    ) -> SearchResultSet:
        """
        Run (or reuse) the search for ``(postcodes, trigger)``.

        A cache hit returns the earlier result, whose ``date_from``/``date_to``
        record the range it was actually fetched for.

        Raises a CrimeDashboardError once retries are exhausted.
        """
        key = search_key(postcodes, trigger)
        self._active_key = key

        if not postcodes:
            empty = SearchResultSet.empty()
            self._publish(key, SearchStatus.IDLE, empty)
            return empty

        if not (is_month_key(date_from) and is_month_key(date_to)):
            err = ValidationError("Dates must be YYYY-MM months")
            self._publish(key, SearchStatus.ERROR, self.state.result, err.message)
            raise err

        cached = self._cached(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            self._publish(key, SearchStatus.SUCCESS, cached)
            return cached

        self._publish(key, SearchStatus.LOADING, self.state.result)
        try:
            result = await self._run_with_retries(postcodes, date_from, date_to)
        except CrimeDashboardError as exc:
            self._publish(key, SearchStatus.ERROR, self.state.result, exc.message)
            raise

        self._cache[key] = (self._clock(), result)
        self._publish(key, SearchStatus.SUCCESS, result)
        return result

    def invalidate(self) -> None:
        """Forget every cached result."""
        self._cache.clear()

    # ── Private helpers ───────────────────────────────────────────

    def _cached(self, key: SearchKey) -> Optional[SearchResultSet]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, result = entry
        if self._clock() - stored_at > self._cache_ttl:
            del self._cache[key]
            return None
        return result

    def _publish(
        self,
        key: SearchKey,
        status: SearchStatus,
        result: SearchResultSet,
        error: Optional[str] = None,
    ) -> None:
        if key != self._active_key:
            logger.debug("Dropping stale %s for %s", status.value, key)
            return
        self.state = OrchestratorState(status=status, result=result, error=error, key=key)

    async def _run_with_retries(
        self, postcodes: list[str], date_from: str, date_to: str
    ) -> SearchResultSet:
        attempt = 0
        while True:
            try:
                return await self._run(postcodes, date_from, date_to)
            except Exception as exc:
                err = classify(exc)
                if attempt >= self._retries:
                    logger.error("Search for %s failed: %s", postcodes, err)
                    if err is exc:
                        raise
                    raise err from exc
                delay = self._retry_delay * (2 ** attempt)
                attempt += 1
                logger.warning(
                    "Search attempt %d for %s failed (%s); retrying in %.1fs",
                    attempt, postcodes, err, delay,
                )
                if delay:
                    await asyncio.sleep(delay)

    async def _run(
        self, postcodes: list[str], date_from: str, date_to: str
    ) -> SearchResultSet:
        async with httpx.AsyncClient(
            transport=self._transport, follow_redirects=True
        ) as client:
            resolver = PostcodeResolver(client)
            fetcher = CrimeFetcher(client)

            resolutions = await resolver.resolve_many(postcodes)
            valid = [r for r in resolutions if r.valid]
            if not valid:
                raise NoValidPostcodesError(postcodes)

            months = months_between(date_from, date_to)
            logger.info(
                "Searching %d postcode(s) across %d month(s)", len(valid), len(months)
            )

            crimes: list[EnrichedCrimeRecord] = []
            for month in months:
                crimes.extend(await fetcher.fetch_for_month(valid, month))

        return SearchResultSet(
            crimes=crimes, valid_postcodes=valid,
            date_from=date_from, date_to=date_to,
        )
