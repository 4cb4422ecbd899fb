"""codelens: bounded, cached, retrying orchestration of LLM code-analysis requests."""

__version__ = "0.1.0"
