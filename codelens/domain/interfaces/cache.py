"""Interface for response caching.

Defines the contract for a content-addressed store: entries are looked up
by the request content plus its options rather than by an explicit key.
"""

import abc
from typing import Any, Dict, Mapping, Optional


class CacheService(abc.ABC):
    """Abstract Base Class for content-addressed caching."""

    @abc.abstractmethod
    def get(self, content: str, options: Optional[Mapping[str, Any]] = None) -> Optional[Any]:
        """Retrieves the value stored for (content, options).

        Returns:
            The cached value if present and not expired, otherwise None.
        """
        pass

    @abc.abstractmethod
    def set(
        self,
        content: str,
        value: Any,
        options: Optional[Mapping[str, Any]] = None,
        ttl: Optional[float] = None,
    ) -> None:
        """Stores a value for (content, options).

        Args:
            content: Request content.
            value: The item to store.
            options: Request options; key order is irrelevant.
            ttl: Time-to-live in seconds (uses the cache default if None).
        """
        pass

    @abc.abstractmethod
    def has(self, content: str, options: Optional[Mapping[str, Any]] = None) -> bool:
        pass

    @abc.abstractmethod
    def cleanup(self) -> int:
        """Removes expired entries and returns how many were removed."""
        pass

    @abc.abstractmethod
    def clear(self) -> None:
        pass

    @abc.abstractmethod
    def stats(self) -> Dict[str, int]:
        pass
