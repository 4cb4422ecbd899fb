"""Domain Event definitions.

Represents significant occurrences around backend calls (deferrals, retries,
failures, cache hits) that observers can subscribe to.
"""
