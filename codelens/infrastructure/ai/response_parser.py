"""Parsing of backend replies into `AnalysisResult` values."""

import json
import logging
import re
from typing import Any, Dict

from codelens.domain.errors import MalformedResponseError
from codelens.domain.models.analysis import AnalysisResult, CodeMetrics

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("issues", "suggestions", "metrics")
_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```")


def extract_json_text(text: str) -> str:
    """Returns the body of the first fenced block, or the whole text if unfenced."""
    match = _FENCED_JSON.search(text)
    if match and match.group(1):
        return match.group(1).strip()
    return text.strip()


def _normalize_metrics(metrics: Dict[str, Any]) -> CodeMetrics:
    normalized = CodeMetrics(
        complexity=metrics.get("complexity") or 0,
        maintainability=metrics.get("maintainability") if metrics.get("maintainability") is not None else 100,
        linesOfCode=metrics.get("linesOfCode") or 0,
        duplicateLines=metrics.get("duplicateLines") or 0,
    )
    if metrics.get("testCoverage") is not None:
        normalized["testCoverage"] = metrics["testCoverage"]
    return normalized


def parse_analysis_response(text: str) -> AnalysisResult:
    """Parses a fenced or bare JSON object holding issues, suggestions and metrics.

    Raises:
        MalformedResponseError: Invalid JSON, or a required field is missing.
    """
    try:
        parsed = json.loads(extract_json_text(text))
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse backend response: {e}")
        logger.debug(f"Raw backend response: {text}")
        raise MalformedResponseError(f"Response is not valid JSON: {e}", raw_text=text) from e

    if not isinstance(parsed, dict):
        raise MalformedResponseError("Response JSON is not an object", raw_text=text)

    missing = [name for name in REQUIRED_FIELDS if name not in parsed or parsed[name] is None]
    if missing:
        raise MalformedResponseError(
            f"Response is missing required field(s): {', '.join(missing)}", raw_text=text
        )
    if not isinstance(parsed["issues"], list) or not isinstance(parsed["suggestions"], list):
        raise MalformedResponseError("'issues' and 'suggestions' must be lists", raw_text=text)
    if not isinstance(parsed["metrics"], dict):
        raise MalformedResponseError("'metrics' must be an object", raw_text=text)

    return AnalysisResult(
        issues=parsed["issues"],
        suggestions=parsed["suggestions"],
        metrics=_normalize_metrics(parsed["metrics"]),
    )
