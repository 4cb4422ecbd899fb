"""AI backend implementations.

Contains prompt templates, reply parsing and the provider adapters that
implement the `AnalysisBackend` interface from the domain layer.
"""
