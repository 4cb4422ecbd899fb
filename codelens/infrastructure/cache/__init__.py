"""Caching Service Implementation.

In-memory, content-addressed response cache with per-entry TTL and a
periodic expiry sweep.
Bounded Context: Cache Management
"""
