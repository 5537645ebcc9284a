"""Shared query layer for API and MCP server."""

from __future__ import annotations

from typing import Optional

from pipeline import aggregate
from pipeline.errors import ValidationError
from pipeline.history import HistoryStore, LocalStorage, PostcodeHistory
from pipeline.models import CrimeFilter
from pipeline.postcodes import parse_postcode_input
from pipeline.search import SearchOrchestrator
from pipeline.session import SearchSession
from pipeline.state import SearchState

_orchestrator = SearchOrchestrator()
_store = HistoryStore()
_history: Optional[PostcodeHistory] = None


def configure(
    orchestrator: SearchOrchestrator | None = None,
    storage: LocalStorage | None = None,
) -> None:
    """Swap the orchestrator and/or storage backend (tests, alternate deployments)."""
    global _orchestrator, _store, _history
    if orchestrator is not None:
        _orchestrator = orchestrator
    if storage is not None:
        _store = HistoryStore(storage)
    _history = None


def _get_history() -> PostcodeHistory:
    global _history
    if _history is None:
        _history = _store.load()
    return _history


# ── Search ───────────────────────────────────────────────────────────

async def search_crimes(
    postcodes: str,
    date_from: str,
    date_to: str,
    trigger: int = 0,
    postcode: str | None = None,
    category: str | None = None,
    outcome: str | None = None,
    sort: str = "month",
    direction: str = "desc",
) -> dict:
    """
    Run a search and return stats, filter options and the sorted table.

    ``dateFrom``/``dateTo`` in the response are the months the crimes were
    fetched for. A cached result for the same postcodes and *trigger* keeps
    its original range, so bump *trigger* to refetch for new dates.
    """
    parsed = parse_postcode_input(postcodes)
    if not parsed:
        raise ValidationError()

    state = SearchState(parsed, date_from, date_to)
    state.search_trigger = trigger
    session = SearchSession(_orchestrator, _get_history(), state)
    result = await session.search()

    rows = aggregate.filter_records(
        result.crimes,
        CrimeFilter(postcode=postcode, category=category, outcome=outcome),
    )
    rows = aggregate.sort_records(rows, sort, direction)
    return {
        "postcodes": parsed,
        "dateFrom": result.date_from or date_from,
        "dateTo": result.date_to or date_to,
        "validPostcodes": [r.model_dump() for r in result.valid_postcodes],
        "stats": aggregate.stats(result.crimes).model_dump(by_alias=True),
        "filters": aggregate.unique_values(result.crimes).model_dump(),
        "crimes": [r.model_dump(by_alias=True) for r in rows],
    }


# ── History ──────────────────────────────────────────────────────────

def get_history() -> list[dict]:
    return [e.model_dump(by_alias=True) for e in _get_history().entries]


def remove_history(postcode: str) -> list[dict]:
    _get_history().remove(postcode)
    return get_history()


def clear_history() -> list[dict]:
    _get_history().clear()
    return get_history()
