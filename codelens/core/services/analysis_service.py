"""
Core service for orchestrating code analysis requests.

Composes the response cache, the bounded request queue, the token bucket
rate limiter and the retry policy around a single remote backend call:

    cache hit? -> return
    queue slot -> rate limiter token -> retried backend call -> cache write

Repeated identical requests are answered from the cache before they reach
the queue, so they never take a concurrency slot or rate-limit budget.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from codelens.domain.errors import CodelensError
from codelens.domain.events.api_events import (
    ApiCallDeferred,
    ApiCallFailed,
    ApiCallInitiated,
    ApiCallSucceeded,
    CacheHit,
    DomainEvent,
    RetryScheduled,
)
from codelens.domain.interfaces.analysis_backend import AnalysisBackend
from codelens.domain.models.analysis import (
    AnalysisOptions,
    AnalysisResult,
    BatchItem,
    normalize_options,
)
from codelens.domain.models.common import ModelParams, PromptPair
from codelens.infrastructure.ai.openai.gpt_client import GptClient
from codelens.infrastructure.ai.prompts import select_prompts
from codelens.infrastructure.ai.response_parser import parse_analysis_response
from codelens.infrastructure.cache.caching_service import ResponseCache
from codelens.infrastructure.config.settings import OrchestratorSettings
from codelens.infrastructure.monitoring.event_bus import EventBus
from codelens.infrastructure.resilience.api_retry import RetryOptions, run_with_retry
from codelens.infrastructure.resilience.rate_limiter import TokenBucketRateLimiter
from codelens.infrastructure.resilience.request_queue import RequestQueue

logger = logging.getLogger(__name__)

ANALYZE_ENDPOINT = "analyze"

PromptSelector = Callable[[Sequence[str], str, str], PromptPair]
BatchOutcome = Union[AnalysisResult, BaseException]


class AnalysisService:
    """Orchestrates analysis calls against a rate-limited remote backend."""

    def __init__(
        self,
        backend: AnalysisBackend,
        settings: Optional[OrchestratorSettings] = None,
        cache: Optional[ResponseCache] = None,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        request_queue: Optional[RequestQueue] = None,
        prompt_selector: PromptSelector = select_prompts,
        event_bus: Optional[EventBus] = None,
    ):
        """Initializes the AnalysisService with its collaborators.

        Collaborators that are not injected are built from `settings`.
        """
        self.backend = backend
        self.settings = settings or OrchestratorSettings()
        self.cache = cache or ResponseCache(default_ttl=self.settings.cache_ttl)
        self.rate_limiter = rate_limiter or TokenBucketRateLimiter(
            max_tokens=self.settings.rate_limit_capacity,
            refill_rate=self.settings.rate_limit_refill_rate,
        )
        self.request_queue = request_queue or RequestQueue(self.settings.max_concurrency)
        self.prompt_selector = prompt_selector
        self.event_bus = event_bus or EventBus()

        self.retry_options = RetryOptions(
            max_retries=self.settings.max_retries,
            base_delay=self.settings.base_delay,
            max_delay=self.settings.max_delay,
            backoff_multiplier=self.settings.backoff_multiplier,
            on_retry=self._publish,
            endpoint=ANALYZE_ENDPOINT,
        )
        self.model_params = ModelParams({
            "model": self.settings.model,
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
        })

        self._cleanup_task: Optional["asyncio.Task[None]"] = None
        self._backend_calls = 0
        self._destroyed = False
        logger.info(
            f"AnalysisService initialized with backend: {backend.__class__.__name__} "
            f"(cache={'on' if self.settings.enable_cache else 'off'}, "
            f"concurrency={self.request_queue.max_concurrency})"
        )

    # --- Public API ---

    async def analyze(self, content: str, options: Mapping[str, Any]) -> AnalysisResult:
        """Analyzes one code snippet.

        Args:
            content: The source code to analyze.
            options: `{"language": str, "rules": [str, ...]}`.

        Returns:
            The backend's issues, suggestions and metrics.

        Raises:
            CodelensError: The terminal error after retries (or immediately
                for non-retryable failures). Nothing is cached on failure.
        """
        if self._destroyed:
            raise CodelensError("AnalysisService has been destroyed")

        normalized = normalize_options(options)

        if self.settings.enable_cache:
            self._ensure_cleanup_task()
            key = self.cache.fingerprint(content, normalized)
            cached = self.cache.get_by_key(key)
            if cached is not None:
                self._publish(CacheHit(cache_key=key))
                return cached

        return await self.request_queue.enqueue(lambda: self._run_admitted(content, normalized))

    async def analyze_batch(
        self,
        items: Sequence[Mapping[str, Any]],
        raise_on_error: bool = False,
    ) -> List[BatchOutcome]:
        """Analyzes all items concurrently.

        Results correspond positionally to `items`. A failed item does not
        affect its siblings: its slot holds the exception instance unless
        `raise_on_error` is set, in which case the first failure is raised
        once every item has settled.
        """
        outcomes = await asyncio.gather(
            *(self.analyze(item["content"], self._item_options(item)) for item in items),
            return_exceptions=True,
        )
        failures = [o for o in outcomes if isinstance(o, BaseException)]
        if failures:
            logger.warning(f"Batch finished with {len(failures)}/{len(items)} failed item(s).")
            if raise_on_error:
                raise failures[0]
        return list(outcomes)

    def stats(self) -> Dict[str, Any]:
        return {
            "cache": self.cache.stats(),
            "rate_limiter": self.rate_limiter.stats(),
            "queue": self.request_queue.stats(),
            "backend_calls": self._backend_calls,
        }

    def clear_cache(self) -> None:
        self.cache.clear()

    def reset_rate_limiter(self) -> None:
        self.rate_limiter.reset()

    def destroy(self) -> None:
        """Stops the cache sweep, drops queued work, clears the cache and closes the backend.

        Idempotent. Callers whose requests were still queued receive a
        `QueueClearedError`.
        """
        if self._destroyed:
            return
        self._destroyed = True
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            self._cleanup_task = None
        self.cache.clear()
        self.request_queue.clear()
        self.backend.close()
        logger.info("AnalysisService destroyed.")

    async def __aenter__(self) -> "AnalysisService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.destroy()

    # --- Internals ---

    @staticmethod
    def _item_options(item: Mapping[str, Any]) -> Dict[str, Any]:
        return {"language": item.get("language", ""), "rules": item.get("rules", [])}

    def _ensure_cleanup_task(self) -> None:
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = self.cache.start_auto_cleanup(self.settings.cache_cleanup_interval)

    def _publish(self, event: DomainEvent) -> None:
        if isinstance(event, RetryScheduled) and event.provider is None:
            event.provider = self.backend.provider_name
        self.event_bus.publish(event)

    async def _run_admitted(self, content: str, options: AnalysisOptions) -> AnalysisResult:
        """Body of a queued task: rate-limit token, then the retried backend call."""
        waited = await self.rate_limiter.wait_for_token()
        if waited > 0:
            self._publish(ApiCallDeferred(
                provider=self.backend.provider_name,
                endpoint=ANALYZE_ENDPOINT,
                wait_time_seconds=waited,
            ))

        try:
            result = await run_with_retry(lambda: self._call_backend(content, options), self.retry_options)
        except Exception as e:
            attempts = getattr(e, "attempts", 1)
            logger.error(f"Analysis failed after {attempts} attempt(s): {type(e).__name__}: {e}")
            self._publish(ApiCallFailed(
                provider=self.backend.provider_name,
                endpoint=ANALYZE_ENDPOINT,
                error_type=type(e).__name__,
                error_message=getattr(e, "message", None) or str(e),
                attempts=attempts,
            ))
            raise

        if self.settings.enable_cache and not self._destroyed:
            self.cache.set(content, result, options)
        return result

    async def _call_backend(self, content: str, options: AnalysisOptions) -> AnalysisResult:
        prompts = self.prompt_selector(options["rules"], content, options["language"])
        self._backend_calls += 1
        self._publish(ApiCallInitiated(provider=self.backend.provider_name, endpoint=ANALYZE_ENDPOINT))
        start_time = time.perf_counter()
        text = await self.backend.call(prompts["system"], prompts["user"], self.model_params)
        result = parse_analysis_response(text)
        self._publish(ApiCallSucceeded(
            provider=self.backend.provider_name,
            endpoint=ANALYZE_ENDPOINT,
            latency_ms=(time.perf_counter() - start_time) * 1000,
        ))
        return result


def create_analysis_service(
    settings: Optional[OrchestratorSettings] = None,
    backend: Optional[AnalysisBackend] = None,
) -> AnalysisService:
    """Builds the default wiring: configured settings and an OpenAI backend.

    Raises:
        ConfigurationError: Settings are invalid or no API key is available.
    """
    effective = settings or OrchestratorSettings.from_config()
    effective_backend = backend or GptClient(api_key=effective.api_key, model=effective.model)
    return AnalysisService(backend=effective_backend, settings=effective)
