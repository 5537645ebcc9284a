"""One user's search session: state, orchestrator and history together."""

from __future__ import annotations

import logging
from typing import Optional

from pipeline.errors import CrimeDashboardError
from pipeline.history import PostcodeHistory
from pipeline.models import SearchResultSet
from pipeline.search import SearchKey, SearchOrchestrator, search_key
from pipeline.state import SearchState

logger = logging.getLogger(__name__)


class SearchSession:
    def __init__(
        self,
        orchestrator: SearchOrchestrator,
        history: PostcodeHistory,
        state: Optional[SearchState] = None,
    ):
        self.orchestrator = orchestrator
        self.history = history
        self.state = state or SearchState()
        self._last_key: Optional[SearchKey] = None

    @property
    def key(self) -> SearchKey:
        return search_key(self.state.postcodes, self.state.search_trigger)

    @property
    def needs_search(self) -> bool:
        """True when postcodes or the manual trigger changed since last run."""
        return self.key != self._last_key

    @property
    def result(self) -> SearchResultSet:
        return self.orchestrator.state.result

    async def search(self) -> SearchResultSet:
        """
        Search with the current state and record history on success.

        On failure the message lands in ``state.error`` and the error is
        re-raised.
        """
        state = self.state
        postcodes = list(state.postcodes)
        self._last_key = self.key

        state.set_loading(bool(postcodes))
        state.set_error(None)
        try:
            result = await self.orchestrator.search(
                postcodes, state.date_from, state.date_to, state.search_trigger
            )
        except CrimeDashboardError as exc:
            state.set_error(exc.message)
            raise
        finally:
            state.set_loading(False)

        for postcode in postcodes:
            self.history.add(postcode, state.date_from)
        logger.info("Search for %s returned %d crimes", postcodes, len(result.crimes))
        return result
