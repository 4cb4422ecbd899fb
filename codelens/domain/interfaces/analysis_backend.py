"""Interface for the remote analysis backend.

Defines the contract for sending a system/user prompt pair to a language
model provider and receiving its textual reply.
"""

import abc

from ..models.common import AIResponse, ModelParams, PromptText


class AnalysisBackend(abc.ABC):
    """Abstract Base Class for remote analysis calls."""

    provider_name: str = "backend"

    @abc.abstractmethod
    async def call(
        self,
        system_prompt: PromptText,
        user_prompt: PromptText,
        model_params: ModelParams,
    ) -> AIResponse:
        """Sends one analysis request and returns the model's text reply.

        Args:
            system_prompt: Instructions for the model.
            user_prompt: The code to analyze, wrapped in the request prompt.
            model_params: Model identifier, temperature and max_tokens.

        Returns:
            The textual payload of the response.

        Raises:
            AuthError: Credentials rejected.
            RateLimitError: Provider answered 429.
            ServerError: Provider answered 500/503.
            RequestTimeoutError: The request timed out.
            NetworkError: Connection reset, refused or DNS failure.
            QuotaExceededError: Account quota exhausted.
            InvalidRequestError: Request rejected as malformed.
            MalformedResponseError: The reply carried no text.
        """
        pass

    def close(self) -> None:
        """Releases client resources such as HTTP connection pools. No-op by default."""
