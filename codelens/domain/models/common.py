"""Defines common Value Objects used across different domain contexts.

These objects represent simple values or concepts like source content,
prompts, cache fingerprints, etc., ensuring consistency and type safety.
"""

from typing import NewType, Dict, Any, TypedDict

# === Core Value Objects ===

# Using NewType for semantic clarity, although they are strings at runtime.
SourceContent = NewType("SourceContent", str)   # Code snippet submitted for analysis
Language = NewType("Language", str)             # e.g. 'javascript', 'python'
RuleName = NewType("RuleName", str)             # e.g. 'security', 'best-practices'
PromptText = NewType("PromptText", str)         # A system or user prompt
AIResponse = NewType("AIResponse", str)         # Raw text returned by the backend

# === Caching Context ===
CacheKey = NewType("CacheKey", str)             # Fingerprint of (content, options)

# === Backend Context ===
ModelParams = NewType("ModelParams", Dict[str, Any])  # {'model': ..., 'temperature': ..., 'max_tokens': ...}


class PromptPair(TypedDict):
    """System/user prompt pair produced by the rule selector."""
    system: PromptText
    user: PromptText


class TokenUsage(TypedDict):
    """Represents token usage information from an AI call."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
