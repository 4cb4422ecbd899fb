"""API Resilience Implementations.

Contains the token bucket rate limiter, the bounded FIFO request queue and
the retry policy with exponential backoff.
Bounded Context: API Resilience
"""
