import asyncio
import json

import pytest

from codelens.core.services.analysis_service import AnalysisService, create_analysis_service
from codelens.domain.errors import (
    AuthError,
    CodelensError,
    ConfigurationError,
    MalformedResponseError,
    QueueClearedError,
    RateLimitError,
)
from codelens.domain.events.api_events import (
    ApiCallDeferred,
    ApiCallFailed,
    CacheHit,
    RetryScheduled,
)
from codelens.infrastructure.config.settings import OrchestratorSettings
from codelens.infrastructure.monitoring.event_bus import EventBus
from codelens.infrastructure.resilience.rate_limiter import TokenBucketRateLimiter

FAST = dict(base_delay=0.01, max_delay=0.05, max_retries=3)
OPTIONS = {"language": "javascript", "rules": ["security"]}


@pytest.fixture
def events():
    bus = EventBus()
    received = []
    bus.subscribe(received.append)
    return bus, received


def _service(backend, event_bus=None, **settings):
    merged = {**FAST, **settings}
    return AnalysisService(backend=backend, settings=OrchestratorSettings(**merged), event_bus=event_bus)


@pytest.mark.asyncio
async def test_repeated_request_is_served_from_cache(stub_backend, sample_result, events):
    bus, received = events
    service = _service(stub_backend, event_bus=bus)

    first = await service.analyze("const x=1;", OPTIONS)
    second = await service.analyze("const x=1;", OPTIONS)

    assert first == sample_result
    assert second == sample_result
    assert stub_backend.call_count == 1
    assert sum(isinstance(e, CacheHit) for e in received) == 1
    service.destroy()


@pytest.mark.asyncio
async def test_caller_mutation_does_not_leak_into_cache(stub_backend):
    service = _service(stub_backend)

    first = await service.analyze("x", OPTIONS)
    first["issues"].append({"message": "caller mutation"})
    second = await service.analyze("x", OPTIONS)
    second["metrics"]["complexity"] = 99
    third = await service.analyze("x", OPTIONS)

    assert stub_backend.call_count == 1
    assert second["issues"] == []
    assert second is not first
    assert third["metrics"]["complexity"] == 1
    service.destroy()


@pytest.mark.asyncio
async def test_cache_hit_fingerprints_request_once(stub_backend, events, mocker):
    bus, received = events
    service = _service(stub_backend, event_bus=bus)
    await service.analyze("x", OPTIONS)
    fingerprint = mocker.spy(service.cache, "fingerprint")

    await service.analyze("x", OPTIONS)

    assert fingerprint.call_count == 1
    hits = [e for e in received if isinstance(e, CacheHit)]
    assert hits[0].cache_key == fingerprint.spy_return
    service.destroy()


@pytest.mark.asyncio
async def test_rule_order_does_not_defeat_cache(stub_backend):
    service = _service(stub_backend)

    await service.analyze("x", {"language": "python", "rules": ["security", "performance"]})
    await service.analyze("x", {"language": "python", "rules": ["performance", "security"]})

    assert stub_backend.call_count == 1
    service.destroy()


@pytest.mark.asyncio
async def test_transient_failures_are_retried_with_growing_delays(stub_backend_factory, sample_result, events):
    bus, received = events
    backend = stub_backend_factory(responses=[RateLimitError(), RateLimitError()])
    service = _service(backend, event_bus=bus)

    result = await service.analyze("const x=1;", OPTIONS)

    assert result == sample_result
    assert backend.call_count == 3
    delays = [e.delay_seconds for e in received if isinstance(e, RetryScheduled)]
    assert len(delays) == 2
    assert delays[0] < delays[1]
    assert all(d <= 0.05 * 1.1 for d in delays)
    assert all(e.provider == "stub" for e in received if isinstance(e, RetryScheduled))
    service.destroy()


@pytest.mark.asyncio
async def test_exhausted_retries_raise_and_cache_nothing(stub_backend_factory, events):
    bus, received = events
    backend = stub_backend_factory(responses=[RateLimitError() for _ in range(4)])
    service = _service(backend, event_bus=bus)

    with pytest.raises(RateLimitError) as exc_info:
        await service.analyze("code", OPTIONS)

    assert backend.call_count == 4
    assert exc_info.value.attempts == 4
    failed = [e for e in received if isinstance(e, ApiCallFailed)]
    assert failed[0].attempts == 4
    assert service.stats()["cache"]["size"] == 0
    service.destroy()


@pytest.mark.asyncio
async def test_auth_error_fails_fast(stub_backend_factory):
    backend = stub_backend_factory(responses=[AuthError("bad key", status_code=401)])
    service = _service(backend)

    with pytest.raises(AuthError):
        await service.analyze("code", OPTIONS)

    assert backend.call_count == 1
    service.destroy()


@pytest.mark.asyncio
async def test_malformed_reply_is_not_retried_or_cached(stub_backend_factory):
    backend = stub_backend_factory(responses=["this is not json"])
    service = _service(backend)

    with pytest.raises(MalformedResponseError):
        await service.analyze("code", OPTIONS)

    assert backend.call_count == 1
    assert service.stats()["cache"]["size"] == 0

    # The next identical request reaches the backend again.
    await service.analyze("code", OPTIONS)
    assert backend.call_count == 2
    service.destroy()


@pytest.mark.asyncio
async def test_unexpected_error_publishes_failure_event(stub_backend, events):
    bus, received = events

    def broken_selector(rules, content, language):
        raise KeyError("template")

    service = AnalysisService(
        backend=stub_backend,
        settings=OrchestratorSettings(**FAST),
        prompt_selector=broken_selector,
        event_bus=bus,
    )

    with pytest.raises(KeyError):
        await service.analyze("code", OPTIONS)

    failed = [e for e in received if isinstance(e, ApiCallFailed)]
    assert len(failed) == 1
    assert failed[0].error_type == "KeyError"
    assert failed[0].attempts == 1
    assert stub_backend.call_count == 0
    service.destroy()


@pytest.mark.asyncio
async def test_batch_respects_concurrency_ceiling(stub_backend_factory):
    backend = stub_backend_factory(delay=0.01)
    service = _service(backend, max_concurrency=3)
    items = [{"content": f"snippet {i}", "language": "python", "rules": []} for i in range(10)]

    results = await service.analyze_batch(items)

    assert len(results) == 10
    assert backend.call_count == 10
    assert backend.peak_active <= 3
    assert service.stats()["queue"] == {"queued": 0, "processing": 0}
    service.destroy()


@pytest.mark.asyncio
async def test_batch_results_are_positional_and_independent(stub_backend_factory):
    def respond(user_prompt):
        if "broken" in user_prompt:
            return "garbage"
        lines = user_prompt.count("\n")
        return json.dumps({"issues": [], "suggestions": [], "metrics": {"linesOfCode": lines}})

    backend = stub_backend_factory(default_response=respond)
    service = _service(backend, max_concurrency=2)
    items = [
        {"content": "ok one", "language": "python"},
        {"content": "broken", "language": "python"},
        {"content": "ok two", "language": "python"},
    ]

    results = await service.analyze_batch(items)

    assert isinstance(results[0], dict)
    assert isinstance(results[1], MalformedResponseError)
    assert isinstance(results[2], dict)
    service.destroy()


@pytest.mark.asyncio
async def test_batch_can_raise_first_failure(stub_backend_factory):
    backend = stub_backend_factory(responses=[AuthError("nope")])
    service = _service(backend, max_concurrency=1)

    with pytest.raises(AuthError):
        await service.analyze_batch(
            [{"content": "a", "language": "go"}, {"content": "b", "language": "go"}],
            raise_on_error=True,
        )
    assert backend.call_count == 2
    service.destroy()


@pytest.mark.asyncio
async def test_disabled_cache_always_calls_backend(stub_backend):
    service = _service(stub_backend, enable_cache=False)

    await service.analyze("same", OPTIONS)
    await service.analyze("same", OPTIONS)

    assert stub_backend.call_count == 2
    assert service.stats()["cache"]["size"] == 0
    service.destroy()


@pytest.mark.asyncio
async def test_prompt_and_model_parameters_reach_backend(stub_backend):
    service = _service(stub_backend, model="gpt-test", temperature=0.1, max_tokens=256)

    await service.analyze("SELECT 1", {"language": "sql", "rules": ["security"]})

    call = stub_backend.calls[0]
    assert "security" in call["system"].lower()
    assert "SELECT 1" in call["user"]
    assert call["params"] == {"model": "gpt-test", "temperature": 0.1, "max_tokens": 256}
    service.destroy()


@pytest.mark.asyncio
async def test_exhausted_rate_limiter_defers_call(stub_backend, events):
    bus, received = events
    limiter = TokenBucketRateLimiter(max_tokens=1, refill_rate=10)
    service = AnalysisService(
        backend=stub_backend,
        settings=OrchestratorSettings(enable_cache=False),
        rate_limiter=limiter,
        event_bus=bus,
    )

    await service.analyze("a", OPTIONS)
    await service.analyze("b", OPTIONS)

    deferred = [e for e in received if isinstance(e, ApiCallDeferred)]
    assert len(deferred) == 1
    assert deferred[0].wait_time_seconds > 0
    service.destroy()


@pytest.mark.asyncio
async def test_stats_clear_cache_and_reset_rate_limiter(stub_backend):
    service = _service(stub_backend, rate_limit_capacity=5)

    await service.analyze("a", OPTIONS)
    stats = service.stats()
    assert stats["cache"]["size"] == 1
    assert stats["rate_limiter"]["max_tokens"] == 5
    assert stats["rate_limiter"]["tokens"] < 5
    assert stats["backend_calls"] == 1

    service.clear_cache()
    service.reset_rate_limiter()

    assert service.stats()["cache"]["size"] == 0
    assert service.stats()["rate_limiter"]["tokens"] == 5
    service.destroy()


@pytest.mark.asyncio
async def test_destroy_is_idempotent_and_rejects_new_work(stub_backend):
    service = _service(stub_backend)
    await service.analyze("a", OPTIONS)
    cleanup_task = service._cleanup_task

    service.destroy()
    service.destroy()
    await asyncio.sleep(0)

    assert cleanup_task.cancelled() or cleanup_task.done()
    assert service.stats()["cache"]["size"] == 0
    with pytest.raises(CodelensError, match="destroyed"):
        await service.analyze("a", OPTIONS)


@pytest.mark.asyncio
async def test_destroy_fails_queued_requests_with_taxonomy_error(stub_backend_factory):
    gate = asyncio.Event()
    backend = stub_backend_factory(gate=gate)
    service = _service(backend, max_concurrency=1)

    running = asyncio.ensure_future(service.analyze("first", OPTIONS))
    queued = asyncio.ensure_future(service.analyze("second", OPTIONS))
    for _ in range(5):
        await asyncio.sleep(0)

    service.destroy()

    with pytest.raises(QueueClearedError):
        await queued
    assert not queued.cancelled()

    gate.set()
    assert (await running)["issues"] == []
    assert backend.call_count == 1
    assert service.stats()["cache"]["size"] == 0


@pytest.mark.asyncio
async def test_destroy_closes_backend(stub_backend):
    service = _service(stub_backend)

    service.destroy()
    service.destroy()

    assert stub_backend.closed is True


@pytest.mark.asyncio
async def test_context_manager_destroys_on_exit(stub_backend):
    async with _service(stub_backend) as service:
        await service.analyze("a", OPTIONS)

    with pytest.raises(CodelensError):
        await service.analyze("a", OPTIONS)


def test_create_analysis_service_requires_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ConfigurationError):
        create_analysis_service(OrchestratorSettings(api_key=None))


def test_create_analysis_service_uses_injected_backend(stub_backend):
    service = create_analysis_service(OrchestratorSettings(max_concurrency=2), backend=stub_backend)

    assert service.backend is stub_backend
    assert service.request_queue.max_concurrency == 2
