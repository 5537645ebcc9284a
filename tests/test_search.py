import asyncio

import pytest

from conftest import MANCHESTER, WESTMINSTER, make_crime
from pipeline.errors import NoValidPostcodesError, ValidationError
from pipeline.search import SearchOrchestrator, SearchStatus


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def test_end_to_end_single_postcode(orchestrator, fake):
    fake.crimes[(*WESTMINSTER, "2024-01")] = [make_crime(crime_id=i) for i in range(3)]

    result = await orchestrator.search(["SW1A1AA"], "2024-01", "2024-01")

    assert len(result.crimes) == 3
    assert [r.postcode for r in result.valid_postcodes] == ["SW1A 1AA"]
    assert orchestrator.state.status is SearchStatus.SUCCESS
    assert orchestrator.state.result == result


async def test_empty_postcodes_is_idle_without_network(orchestrator, fake):
    result = await orchestrator.search([], "2024-01", "2024-01")
    assert result.crimes == []
    assert orchestrator.state.status is SearchStatus.IDLE
    assert fake.requests == []


async def test_empty_postcodes_clears_previous_result(orchestrator, fake):
    fake.crimes[(*WESTMINSTER, "2024-01")] = [make_crime()]
    await orchestrator.search(["SW1A1AA"], "2024-01", "2024-01")
    await orchestrator.search([], "2024-01", "2024-01")
    assert orchestrator.state.result.crimes == []


async def test_months_fetched_in_ascending_order(orchestrator, fake):
    fake.crimes[(*WESTMINSTER, "2024-01")] = [make_crime(crime_id=1, month="2024-01")]
    fake.crimes[(*WESTMINSTER, "2024-03")] = [make_crime(crime_id=3, month="2024-03")]
    fake.crimes[(*MANCHESTER, "2024-01")] = [make_crime(crime_id=2, month="2024-01")]

    result = await orchestrator.search(["SW1A1AA", "M11AA"], "2024-01", "2024-03")

    assert [c[2] for c in fake.crime_calls()] == [
        "2024-01", "2024-01", "2024-02", "2024-02", "2024-03", "2024-03",
    ]
    assert [r.id for r in result.crimes] == [1, 2, 3]


async def test_reversed_range_queries_no_months(orchestrator, fake):
    result = await orchestrator.search(["SW1A1AA"], "2024-03", "2024-01")
    assert result.crimes == []
    assert fake.crime_calls() == []
    assert orchestrator.state.status is SearchStatus.SUCCESS


async def test_partial_postcode_failure_is_success(orchestrator, fake):
    fake.crimes[(*WESTMINSTER, "2024-01")] = [make_crime()]
    result = await orchestrator.search(["SW1A1AA", "ZZ99ZZ"], "2024-01", "2024-01")
    assert [r.postcode for r in result.valid_postcodes] == ["SW1A 1AA"]
    assert len(result.crimes) == 1


async def test_no_valid_postcodes_errors_after_two_retries(orchestrator, fake):
    with pytest.raises(NoValidPostcodesError):
        await orchestrator.search(["ZZ99ZZ"], "2024-01", "2024-01")

    assert fake.lookups() == ["ZZ99ZZ"] * 3
    assert fake.crime_calls() == []
    assert orchestrator.state.status is SearchStatus.ERROR
    assert orchestrator.state.error == "No valid postcodes provided"


async def test_transient_failure_is_retried(orchestrator, fake):
    fake.lookup_failures = 1
    result = await orchestrator.search(["SW1A1AA"], "2024-01", "2024-01")
    assert len(result.valid_postcodes) == 1
    assert orchestrator.state.status is SearchStatus.SUCCESS


async def test_cached_within_ttl(orchestrator, fake):
    first = await orchestrator.search(["SW1A1AA"], "2024-01", "2024-01")
    calls = len(fake.requests)
    second = await orchestrator.search(["SW1A1AA"], "2024-01", "2024-01")
    assert second is first
    assert len(fake.requests) == calls


async def test_cache_expires(fake):
    clock = FakeClock()
    orch = SearchOrchestrator(transport=fake.transport, retry_delay=0, clock=clock)
    await orch.search(["SW1A1AA"], "2024-01", "2024-01")
    calls = len(fake.requests)

    clock.now += 301
    await orch.search(["SW1A1AA"], "2024-01", "2024-01")
    assert len(fake.requests) == 2 * calls


async def test_date_change_alone_reuses_cached_result(orchestrator, fake):
    await orchestrator.search(["SW1A1AA"], "2024-01", "2024-01")
    calls = len(fake.requests)

    cached = await orchestrator.search(["SW1A1AA"], "2024-02", "2024-02")
    assert len(fake.requests) == calls
    assert (cached.date_from, cached.date_to) == ("2024-01", "2024-01")

    fresh = await orchestrator.search(["SW1A1AA"], "2024-02", "2024-02", trigger=1)
    assert fake.crime_calls()[-1] == (*WESTMINSTER, "2024-02")
    assert (fresh.date_from, fresh.date_to) == ("2024-02", "2024-02")


@pytest.mark.parametrize("date_from, date_to", [("2024-00", "2024-03"), ("2024-01", "2024-13")])
async def test_out_of_range_months_rejected_before_any_request(orchestrator, fake, date_from, date_to):
    with pytest.raises(ValidationError, match="YYYY-MM"):
        await orchestrator.search(["SW1A1AA"], date_from, date_to)
    assert fake.requests == []
    assert orchestrator.state.status is SearchStatus.ERROR


async def test_invalidate_forces_refetch(orchestrator, fake):
    await orchestrator.search(["SW1A1AA"], "2024-01", "2024-01")
    calls = len(fake.requests)
    orchestrator.invalidate()
    await orchestrator.search(["SW1A1AA"], "2024-01", "2024-01")
    assert len(fake.requests) == 2 * calls


async def test_superseded_search_does_not_publish(orchestrator, fake):
    fake.gates["SW1A1AA"] = asyncio.Event()
    fake.entered["SW1A1AA"] = asyncio.Event()

    slow = asyncio.create_task(orchestrator.search(["SW1A1AA"], "2024-01", "2024-01"))
    await fake.entered["SW1A1AA"].wait()

    fast = await orchestrator.search(["M11AA"], "2024-01", "2024-01")
    fake.gates["SW1A1AA"].set()
    slow_result = await slow

    assert [r.postcode for r in slow_result.valid_postcodes] == ["SW1A 1AA"]
    assert orchestrator.state.key == (("M11AA",), 0)
    assert orchestrator.state.result == fast
