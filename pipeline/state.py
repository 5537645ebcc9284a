"""Search parameters container, URL mirroring and debounced input."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, MutableMapping
from typing import Any, Callable, Generic, Optional, TypeVar

from pipeline.config import settings
from pipeline.months import current_month, is_month_key
from pipeline.postcodes import parse_postcode_input

T = TypeVar("T")

Observer = Callable[["SearchState"], None]

# Query-string parameter names
POSTCODES_PARAM = "postcodes"
DATE_FROM_PARAM = "dateFrom"
DATE_TO_PARAM = "dateTo"
LEGACY_DATE_PARAM = "date"


class SearchState:
    """
    Single source of truth for the current search.

    Every setter commits the change and then calls each observer, in
    subscription order, before returning.
    """

    def __init__(
        self,
        postcodes: Optional[list[str]] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ):
        self.postcodes: list[str] = list(postcodes or [])
        self.date_from: str = date_from or current_month()
        self.date_to: str = date_to or current_month()
        self.is_loading = False
        self.error: Optional[str] = None
        self.search_trigger = 0
        self._observers: list[Observer] = []

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register *observer*; returns a callable that unregisters it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def set_postcodes(self, postcodes: list[str]) -> None:
        self._commit(postcodes=list(postcodes))

    def set_date_from(self, month: str) -> None:
        self._commit(date_from=month)

    def set_date_to(self, month: str) -> None:
        self._commit(date_to=month)

    def set_loading(self, loading: bool) -> None:
        self._commit(is_loading=loading)

    def set_error(self, error: Optional[str]) -> None:
        self._commit(error=error)

    def trigger_search(self) -> None:
        """Force a refetch of the current postcodes (e.g. after a date edit)."""
        self._commit(search_trigger=self.search_trigger + 1)

    def _commit(self, **changes: Any) -> None:
        for name, value in changes.items():
            setattr(self, name, value)
        for observer in list(self._observers):
            observer(self)


# ── URL mirroring ─────────────────────────────────────────────────────

def _month_param(params: Mapping[str, str], name: str) -> Optional[str]:
    value = params.get(name)
    return value if value and is_month_key(value) else None


def state_from_query_params(params: Mapping[str, str]) -> SearchState:
    """Seed a SearchState from URL parameters (legacy ``date`` included)."""
    postcodes_param = params.get(POSTCODES_PARAM)
    legacy = _month_param(params, LEGACY_DATE_PARAM)

    postcodes: list[str] = []
    if postcodes_param:
        postcodes = [pc.strip() for pc in postcodes_param.split(",")]

    return SearchState(
        postcodes=postcodes,
        date_from=_month_param(params, DATE_FROM_PARAM) or legacy,
        date_to=_month_param(params, DATE_TO_PARAM) or legacy,
    )


def query_params_for(state: SearchState) -> dict[str, str]:
    """Parameters describing *state*; empty values are left out."""
    params: dict[str, str] = {}
    if state.postcodes:
        params[POSTCODES_PARAM] = ",".join(state.postcodes)
    if state.date_from:
        params[DATE_FROM_PARAM] = state.date_from
    if state.date_to:
        params[DATE_TO_PARAM] = state.date_to
    return params


class UrlMirror:
    """
    Observer that keeps a query-parameter mapping in step with the state.

    Writes only happen after ``loaded()`` has been called, and only when a
    mirrored value actually differs, so the seeding pass never echoes back.
    """

    def __init__(self, params: MutableMapping[str, str]):
        self._params = params
        self._initialising = True

    def loaded(self) -> None:
        self._initialising = False

    def __call__(self, state: SearchState) -> None:
        if self._initialising:
            return
        wanted = query_params_for(state)
        names = (POSTCODES_PARAM, DATE_FROM_PARAM, DATE_TO_PARAM)
        current = {name: self._params.get(name) for name in names}
        if all(current[name] == wanted.get(name) for name in names):
            return

        for name in names:
            if name in wanted:
                self._params[name] = wanted[name]
            elif name in self._params:
                del self._params[name]
        if LEGACY_DATE_PARAM in self._params:
            del self._params[LEGACY_DATE_PARAM]


# ── Input validation ──────────────────────────────────────────────────

def validate_postcode_input(text: str) -> Optional[str]:
    """Return the search form's error message for *text*, or None if OK."""
    if not text.strip():
        return "Please enter at least one postcode"
    if not parse_postcode_input(text):
        return "Please enter at least one valid postcode"
    return None


class DebouncedValue(Generic[T]):
    """
    Commits a value only after *delay* seconds without another push.

    Each ``push`` restarts a single-shot timer on the running event loop;
    when it fires, ``value`` is updated and *on_commit* is called.
    """

    def __init__(
        self,
        on_commit: Callable[[T], None],
        delay: float = settings.debounce_delay,
        initial: Optional[T] = None,
    ):
        self._on_commit = on_commit
        self._delay = delay
        self._timer: Optional[asyncio.TimerHandle] = None
        self.pending: Optional[T] = None
        self.value: Optional[T] = initial

    def push(self, value: T) -> None:
        self.cancel()
        self.pending = value
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def is_pending(self) -> bool:
        return self._timer is not None

    def _fire(self) -> None:
        self._timer = None
        self.value = self.pending
        self._on_commit(self.value)
