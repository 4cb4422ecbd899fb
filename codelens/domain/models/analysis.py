"""Domain models specific to code analysis.

Requests and results are plain values: the orchestrator never attaches
identity to them, so they are expressed as TypedDicts that serialize
directly to and from the backend's JSON.
"""

from typing import Any, Dict, Iterable, List, Optional, TypedDict

from .common import Language, RuleName, SourceContent

# --- Findings ---

class Issue(TypedDict, total=False):
    """A single problem reported by the backend."""
    type: str       # 'security' | 'performance' | 'style' | 'bug' | 'smell'
    severity: str   # 'error' | 'warning' | 'info'
    message: str
    line: int
    column: int
    rule: str
    suggestion: str


class Suggestion(TypedDict, total=False):
    """An improvement proposed by the backend."""
    type: str       # 'improvement' | 'refactor' | 'optimization'
    message: str
    code: str
    impact: str     # 'low' | 'medium' | 'high'


class CodeMetrics(TypedDict, total=False):
    complexity: float
    maintainability: float
    linesOfCode: int
    duplicateLines: int
    testCoverage: Optional[float]


class AnalysisResult(TypedDict):
    """Result of one analysis call: the three top-level fields the backend must return."""
    issues: List[Issue]
    suggestions: List[Suggestion]
    metrics: CodeMetrics


# --- Requests ---

class AnalysisOptions(TypedDict):
    language: Language
    rules: List[RuleName]


class BatchItem(TypedDict):
    """One entry of `AnalysisService.analyze_batch`."""
    content: SourceContent
    language: Language
    rules: List[RuleName]


def normalize_options(options: Dict[str, Any]) -> AnalysisOptions:
    """Returns options with rules de-duplicated and sorted.

    Rules form a set: their order must not change the fingerprint or the prompt.
    """
    rules: Iterable[str] = options.get("rules") or []
    if isinstance(rules, str):
        rules = [rules]
    return AnalysisOptions(
        language=Language(str(options.get("language", ""))),
        rules=[RuleName(rule) for rule in sorted(set(rules))],
    )
