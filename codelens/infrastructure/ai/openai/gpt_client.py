"""Concrete implementation of the AnalysisBackend interface using the OpenAI API.

Hides the specifics of the OpenAI client library and translates requests,
responses and SDK exceptions between the domain model and the OpenAI API.
"""

import asyncio
import logging
import os
import time
from typing import Any, Optional

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    BadRequestError,
    InternalServerError,
    OpenAI,
    PermissionDeniedError,
    RateLimitError as OpenAIRateLimitError,
    UnprocessableEntityError,
)

from codelens.domain.errors import (
    AuthError,
    BackendError,
    InvalidRequestError,
    MalformedResponseError,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    RequestTimeoutError,
    ServerError,
    ConfigurationError,
)
from codelens.domain.interfaces.analysis_backend import AnalysisBackend
from codelens.domain.models.common import AIResponse, ModelParams, PromptText, TokenUsage

logger = logging.getLogger(__name__)

QUOTA_ERROR_CODE = "insufficient_quota"


def translate_openai_error(error: Exception) -> BackendError:
    """Maps an OpenAI SDK exception onto the codelens error taxonomy."""
    message = getattr(error, "message", None) or str(error)
    status_code = getattr(error, "status_code", None)

    if isinstance(error, APITimeoutError):
        return RequestTimeoutError(f"OpenAI request timed out: {message}")
    if isinstance(error, APIConnectionError):
        return NetworkError(f"OpenAI connection failed: {message}")
    if isinstance(error, (AuthenticationError, PermissionDeniedError)):
        return AuthError(f"OpenAI authentication error: {message}", status_code=status_code)
    if isinstance(error, OpenAIRateLimitError):
        if getattr(error, "code", None) == QUOTA_ERROR_CODE:
            return QuotaExceededError(f"OpenAI quota exhausted: {message}", status_code=status_code)
        return RateLimitError(f"OpenAI rate limit exceeded: {message}", status_code=status_code)
    if isinstance(error, (BadRequestError, UnprocessableEntityError)):
        return InvalidRequestError(f"OpenAI rejected the request: {message}", status_code=status_code)
    if isinstance(error, InternalServerError):
        return ServerError(f"OpenAI server error: {message}", status_code=status_code)
    if isinstance(error, APIStatusError):
        return BackendError(f"OpenAI API error ({status_code}): {message}", status_code=status_code)
    return BackendError(f"Unexpected OpenAI error: {type(error).__name__}: {message}")


class GptClient(AnalysisBackend):
    """OpenAI implementation of the AnalysisBackend interface."""

    DEFAULT_MODEL = "gpt-4o-mini"
    provider_name = "openai"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, timeout: float = 60.0):
        """Initializes the OpenAI client.

        Args:
            api_key: OpenAI API key. Reads from OPENAI_API_KEY env var if None.
            model: Model used when a call does not name one.
            timeout: Per-request timeout in seconds.

        Raises:
            ConfigurationError: No API key could be found.
        """
        effective_api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not effective_api_key:
            raise ConfigurationError(
                "OpenAI API key not provided. Set OPENAI_API_KEY or openai.api_key in the config file."
            )

        # Retries are owned by the orchestrator's retry policy.
        self.client = OpenAI(api_key=effective_api_key, max_retries=0, timeout=timeout)
        self.model = model or self.DEFAULT_MODEL
        self.last_token_usage: Optional[TokenUsage] = None
        logger.info(f"GptClient initialized for model: {self.model}")

    def _extract_text(self, response: Any) -> str:
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise MalformedResponseError(f"Invalid response structure from OpenAI: {e}") from e
        if not content:
            raise MalformedResponseError("No text content in OpenAI response")

        usage = getattr(response, "usage", None)
        if usage is not None:
            self.last_token_usage = TokenUsage(
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
            )
        return content

    async def call(
        self,
        system_prompt: PromptText,
        user_prompt: PromptText,
        model_params: ModelParams,
    ) -> AIResponse:
        model = model_params.get("model") or self.model
        logger.debug(f"Sending analysis request to OpenAI model: {model}")
        start_time = time.perf_counter()
        try:
            response = await asyncio.to_thread(
                self.client.chat.completions.create,
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=model_params.get("temperature"),
                max_tokens=model_params.get("max_tokens"),
            )
        except (AuthenticationError, PermissionDeniedError) as e:
            logger.error(f"OpenAI Authentication Error: {e}")
            raise translate_openai_error(e) from e
        except OpenAIRateLimitError as e:
            logger.warning(f"OpenAI Rate Limit Error encountered: {e}")
            raise translate_openai_error(e) from e
        except (APIStatusError, APIConnectionError) as e:
            logger.warning(f"OpenAI API Error encountered: {type(e).__name__}: {e}")
            raise translate_openai_error(e) from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        text = self._extract_text(response)
        logger.debug(f"Received response from OpenAI in {latency_ms:.2f}ms. Usage: {self.last_token_usage}")
        return AIResponse(text)

    def close(self) -> None:
        """Closes the underlying OpenAI HTTP client."""
        self.client.close()
        logger.debug("GptClient closed.")
