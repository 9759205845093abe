import pytest

from hypercli.core.services.fetch_service import FetchService
from hypercli.core.services.resolver_service import ResolverEngine
from hypercli.core.services.sync_service import SyncService
from hypercli.domain.models.resilience import RetryPolicy
from hypercli.infrastructure.cache.response_cache import ResponseCache
from hypercli.infrastructure.resilience.api_retry import RetryExecutor
from hypercli.infrastructure.resilience.circuit_breaker import CircuitBreakerRegistry


@pytest.fixture
def response_cache(clock):
    return ResponseCache(capacity=100, clock=clock)


@pytest.fixture
def breakers(clock):
    return CircuitBreakerRegistry(failure_threshold=3, cooldown_ms=60_000, clock=clock)


@pytest.fixture
def executor(breakers, fake_sleep):
    return RetryExecutor(
        breakers=breakers,
        policy=RetryPolicy(max_retries=2, base_delay_ms=100, max_delay_ms=1000),
        sleep=fake_sleep,
    )


@pytest.fixture
def fetch_service(response_cache, executor):
    return FetchService(response_cache, executor)


@pytest.fixture
def resolver(workspace_cache, fetch_service, gateway):
    return ResolverEngine(workspace_cache, fetch_service, gateway=gateway)


@pytest.fixture
def sync_service(gateway, workspace_cache, response_cache, executor):
    return SyncService(gateway, workspace_cache, response_cache, executor, policy=RetryPolicy(max_retries=2))
