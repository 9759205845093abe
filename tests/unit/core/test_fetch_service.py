import asyncio

import pytest

from hypercli.core.services.fetch_service import FetchRequest, FetchService
from hypercli.domain.errors import RemoteCallError, RetryExhaustedError
from hypercli.domain.models.resilience import TransportFailure


class CountingOperation:
    def __init__(self, value=None, error=None, delay=0.0):
        self.value = value
        self.error = error
        self.delay = delay
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.value


def test_second_fetch_is_served_from_cache(fetch_service: FetchService):
    op = CountingOperation(value={"id": "abc"})

    async def scenario():
        first = await fetch_service.fetch("resource", "abc", op)
        second = await fetch_service.fetch("resource", "abc", op)
        return first, second

    assert asyncio.run(scenario()) == ({"id": "abc"}, {"id": "abc"})
    assert op.calls == 1


def test_force_bypasses_cache_lookup(fetch_service: FetchService):
    op = CountingOperation(value=1)

    async def scenario():
        await fetch_service.fetch("resource", "abc", op)
        await fetch_service.fetch("resource", "abc", op, force=True)

    asyncio.run(scenario())
    assert op.calls == 2


def test_cache_expires_with_namespace_ttl(fetch_service: FetchService, clock):
    op = CountingOperation(value="blocks")
    asyncio.run(fetch_service.fetch("block", "b1", op))
    clock.advance(31)
    asyncio.run(fetch_service.fetch("block", "b1", op))
    assert op.calls == 2


def test_concurrent_fetches_share_one_remote_call(fetch_service: FetchService):
    op = CountingOperation(value="shared", delay=0.01)

    async def scenario():
        return await asyncio.gather(*(fetch_service.fetch("search", "tasks", op) for _ in range(3)))

    assert asyncio.run(scenario()) == ["shared"] * 3
    assert op.calls == 1
    assert fetch_service.stats()["deduplication"]["hits"] == 2


def test_should_cache_controls_storage(fetch_service: FetchService, response_cache):
    asyncio.run(fetch_service.fetch("search", "empty", CountingOperation(value=[]), should_cache=bool))
    assert response_cache.get("search", "empty") is None


def test_failures_are_retried_then_raised_and_not_cached(fetch_service: FetchService, response_cache, breakers):
    op = CountingOperation(error=TransportFailure(status=503))
    with pytest.raises(RetryExhaustedError):
        asyncio.run(fetch_service.fetch("page", "p1", op))
    assert op.calls == 3
    assert response_cache.stats()["sets"] == 0
    # The namespace is the default breaker target
    assert breakers.get("page").failure_count == 1


def test_fetch_many_isolates_failures(fetch_service: FetchService):
    requests = [
        FetchRequest("page", "p1", CountingOperation(value="one")),
        FetchRequest("page", "p2", CountingOperation(error=TransportFailure(status=404))),
        FetchRequest("page", "p3", CountingOperation(value="three"), target="pages"),
    ]
    outcomes = asyncio.run(fetch_service.fetch_many(requests, concurrency=2))
    assert [o.success for o in outcomes] == [True, False, True]
    assert [o.value for o in outcomes if o.success] == ["one", "three"]
    assert isinstance(outcomes[1].error, RemoteCallError)
