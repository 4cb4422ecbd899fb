"""Prompt templates for code analysis requests.

The rule set of a request selects one of four analysis types (general,
security, performance, quality); each type has its own system prompt and
user prompt builder. Every template asks for the same JSON response shape.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Sequence

from codelens.domain.models.common import PromptPair, PromptText

RESPONSE_FORMAT = """{
  "issues": [
    {
      "type": "security" | "performance" | "style" | "bug" | "smell",
      "severity": "error" | "warning" | "info",
      "message": "Description of the issue",
      "line": 10,
      "column": 5,
      "rule": "rule-name",
      "suggestion": "How to fix it"
    }
  ],
  "suggestions": [
    {
      "type": "improvement" | "refactor" | "optimization",
      "message": "Description of the suggestion",
      "code": "Suggested code snippet (optional)",
      "impact": "low" | "medium" | "high"
    }
  ],
  "metrics": {
    "complexity": 5,
    "maintainability": 85,
    "linesOfCode": 50,
    "duplicateLines": 0,
    "testCoverage": 80
  }
}"""

GENERAL = "general"
SECURITY = "security"
PERFORMANCE = "performance"
QUALITY = "quality"


@dataclass(frozen=True)
class PromptTemplate:
    system: str
    user: Callable[[str, str, Sequence[str]], str]


def _fenced(code: str, language: str) -> str:
    return f"```{language}\n{code}\n```"


def _general_user(code: str, language: str, rules: Sequence[str]) -> str:
    rules_text = f"\n\nFocus on these specific rules: {', '.join(rules)}" if rules else ""
    return (
        f"Analyze this {language} code:\n\n{_fenced(code, language)}{rules_text}\n\n"
        "Provide a comprehensive analysis in valid JSON format."
    )


def _security_user(code: str, language: str, rules: Sequence[str]) -> str:
    return (
        f"Perform a security analysis on this {language} code:\n\n{_fenced(code, language)}\n\n"
        "Identify all security vulnerabilities and provide remediation suggestions in JSON format."
    )


def _performance_user(code: str, language: str, rules: Sequence[str]) -> str:
    return (
        f"Analyze the performance characteristics of this {language} code:\n\n{_fenced(code, language)}\n\n"
        "Identify bottlenecks and optimization opportunities in JSON format."
    )


def _quality_user(code: str, language: str, rules: Sequence[str]) -> str:
    return (
        f"Evaluate the quality and maintainability of this {language} code:\n\n{_fenced(code, language)}\n\n"
        "Provide suggestions for improving code quality in JSON format."
    )


CODE_ANALYSIS_PROMPT = PromptTemplate(
    system=(
        "You are an expert code analyzer. Your task is to analyze code snippets and provide:\n"
        "1. Issues: security vulnerabilities, bugs, performance problems, code smells, and style issues\n"
        "2. Suggestions: improvements, refactoring opportunities, and optimizations\n"
        "3. Metrics: code complexity, maintainability score, and other quality metrics\n\n"
        f"Always respond with valid JSON in this exact format:\n{RESPONSE_FORMAT}\n\n"
        "Be specific about line numbers when possible. Focus on actionable feedback."
    ),
    user=_general_user,
)

SECURITY_ANALYSIS_PROMPT = PromptTemplate(
    system=(
        "You are a security expert specialized in code analysis. Focus on identifying:\n"
        "- SQL injection vulnerabilities\n"
        "- XSS (Cross-Site Scripting) risks\n"
        "- Authentication and authorization flaws\n"
        "- Sensitive data exposure\n"
        "- Insecure dependencies\n"
        "- Cryptographic issues\n"
        "- Input validation problems\n\n"
        f"Respond with valid JSON in this format, prioritizing security issues:\n{RESPONSE_FORMAT}"
    ),
    user=_security_user,
)

PERFORMANCE_ANALYSIS_PROMPT = PromptTemplate(
    system=(
        "You are a performance optimization expert. Focus on identifying:\n"
        "- Algorithm inefficiencies\n"
        "- Memory leaks\n"
        "- Unnecessary computations\n"
        "- N+1 query problems\n"
        "- Blocking operations\n"
        "- Resource management issues\n"
        "- Caching opportunities\n\n"
        f"Respond with valid JSON in this format, prioritizing performance issues:\n{RESPONSE_FORMAT}"
    ),
    user=_performance_user,
)

QUALITY_ANALYSIS_PROMPT = PromptTemplate(
    system=(
        "You are a code quality expert. Focus on:\n"
        "- Code complexity and readability\n"
        "- Naming conventions\n"
        "- Code duplication\n"
        "- Design patterns\n"
        "- SOLID principles\n"
        "- Clean code practices\n"
        "- Documentation quality\n\n"
        f"Respond with valid JSON in this format, prioritizing maintainability improvements:\n{RESPONSE_FORMAT}"
    ),
    user=_quality_user,
)

PROMPT_TEMPLATES: Dict[str, PromptTemplate] = {
    GENERAL: CODE_ANALYSIS_PROMPT,
    SECURITY: SECURITY_ANALYSIS_PROMPT,
    PERFORMANCE: PERFORMANCE_ANALYSIS_PROMPT,
    QUALITY: QUALITY_ANALYSIS_PROMPT,
}


def get_prompt_template(analysis_type: str = GENERAL) -> PromptTemplate:
    return PROMPT_TEMPLATES.get(analysis_type, CODE_ANALYSIS_PROMPT)


def get_analysis_type_from_rules(rules: Iterable[str]) -> str:
    """Maps a rule set to an analysis type. Security wins over performance, then quality."""
    rule_set = {rule.lower() for rule in rules}
    if any(SECURITY in rule for rule in rule_set):
        return SECURITY
    if any(PERFORMANCE in rule for rule in rule_set):
        return PERFORMANCE
    if QUALITY in rule_set or "maintainability" in rule_set:
        return QUALITY
    return GENERAL


def select_prompts(rules: Sequence[str], content: str, language: str) -> PromptPair:
    """Returns the system/user prompt pair for a request."""
    template = get_prompt_template(get_analysis_type_from_rules(rules))
    return PromptPair(
        system=PromptText(template.system),
        user=PromptText(template.user(content, language, list(rules))),
    )
