"""
Shared fixtures: an in-memory fake of the postcode and police.uk services.

Everything runs against ``httpx.MockTransport``, so no test touches the
network. ``FakeServices`` records every request it sees, which lets tests
assert on call counts and ordering.
"""

from __future__ import annotations

import asyncio
import json
from typing import Optional

import httpx
import pytest

from pipeline.history import LocalStorage
from pipeline.search import SearchOrchestrator

POSTCODE_HOST = "api.getthedata.com"
CRIME_HOST = "data.police.uk"

WESTMINSTER = (51.501, -0.142)
MANCHESTER = (53.4808, -2.2426)


def pretty(postcode: str) -> str:
    """'SW1A1AA' -> 'SW1A 1AA', the lookup service's canonical form."""
    return f"{postcode[:-3]} {postcode[-3:]}"


def make_crime(
    category: str = "burglary",
    month: str = "2024-01",
    outcome: Optional[str] = "Under investigation",
    street: str = "On or near Parliament Street",
    lat: str = "51.501000",
    lng: str = "-0.142000",
    crime_id: int = 1,
) -> dict:
    return {
        "category": category,
        "location_type": "Force",
        "location": {
            "latitude": lat,
            "longitude": lng,
            "street": {"id": 1000 + crime_id, "name": street},
        },
        "context": "",
        "outcome_status": (
            {"category": outcome, "date": month} if outcome is not None else None
        ),
        "persistent_id": f"pid-{crime_id}",
        "id": crime_id,
        "location_subtype": "",
        "month": month,
    }


class FakeServices:
    def __init__(self) -> None:
        self.postcodes: dict[str, tuple[float, float]] = {}
        self.crimes: dict[tuple[float, float, str], list[dict]] = {}
        self.failing_crime_coords: set[tuple[float, float]] = set()
        self.raw_crime_bodies: dict[tuple[float, float], object] = {}  # served as-is
        self.lookup_failures = 0  # next N lookups answer 503
        self.delays: dict[str, float] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.entered: dict[str, asyncio.Event] = {}
        self.requests: list[httpx.Request] = []

    # ── Helpers for assertions ─────────────────────────────────────

    def lookups(self) -> list[str]:
        return [
            r.url.path.rsplit("/", 1)[-1]
            for r in self.requests if r.url.host == POSTCODE_HOST
        ]

    def crime_calls(self) -> list[tuple[float, float, str]]:
        return [
            (float(r.url.params["lat"]), float(r.url.params["lng"]), r.url.params["date"])
            for r in self.requests if r.url.host == CRIME_HOST
        ]

    # ── Transport ──────────────────────────────────────────────────

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == POSTCODE_HOST:
            return await self._lookup(request.url.path.rsplit("/", 1)[-1])
        if request.url.host == CRIME_HOST:
            params = request.url.params
            coords = (float(params["lat"]), float(params["lng"]))
            if coords in self.failing_crime_coords:
                return httpx.Response(500, json={"error": "upstream failure"})
            if coords in self.raw_crime_bodies:
                body = json.dumps(self.raw_crime_bodies[coords])
                return httpx.Response(
                    200, content=body, headers={"content-type": "application/json"}
                )
            return httpx.Response(
                200, json=self.crimes.get((*coords, params["date"]), [])
            )
        return httpx.Response(404)

    async def _lookup(self, postcode: str) -> httpx.Response:
        if postcode in self.entered:
            self.entered[postcode].set()
        if postcode in self.gates:
            await self.gates[postcode].wait()
        if postcode in self.delays:
            await asyncio.sleep(self.delays[postcode])
        if self.lookup_failures:
            self.lookup_failures -= 1
            return httpx.Response(503, json={"error": "busy"})
        if postcode not in self.postcodes:
            return httpx.Response(200, json={"status": "no_match", "data": {}})
        lat, lng = self.postcodes[postcode]
        return httpx.Response(200, json={
            "status": "match",
            "data": {
                "postcode": pretty(postcode),
                "latitude": str(lat),
                "longitude": str(lng),
                "country": "England",
            },
        })

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture()
def fake() -> FakeServices:
    services = FakeServices()
    services.postcodes["SW1A1AA"] = WESTMINSTER
    services.postcodes["M11AA"] = MANCHESTER
    return services


@pytest.fixture()
async def client(fake):
    async with httpx.AsyncClient(transport=fake.transport) as ac:
        yield ac


@pytest.fixture()
def orchestrator(fake) -> SearchOrchestrator:
    return SearchOrchestrator(transport=fake.transport, retry_delay=0)


@pytest.fixture()
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "storage.json")
