import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import pytest
from typer.testing import CliRunner

from codelens.domain.interfaces.analysis_backend import AnalysisBackend
from codelens.infrastructure.config import settings as config_settings

SAMPLE_RESULT: Dict[str, Any] = {
    "issues": [],
    "suggestions": [],
    "metrics": {"complexity": 1, "maintainability": 100, "linesOfCode": 1, "duplicateLines": 0},
}


class StubBackend(AnalysisBackend):
    """Scriptable backend that records calls and peak concurrency.

    `responses` is consumed in order; an Exception entry is raised instead of
    returned. Once exhausted, `default_response` is returned.
    """

    provider_name = "stub"

    def __init__(
        self,
        responses: Optional[List[Any]] = None,
        default_response: Any = None,
        delay: float = 0.0,
        gate: Optional[asyncio.Event] = None,
    ):
        self.responses = list(responses or [])
        self.default_response = default_response if default_response is not None else json.dumps(SAMPLE_RESULT)
        self.delay = delay
        self.gate = gate
        self.calls: List[Dict[str, Any]] = []
        self.active = 0
        self.peak_active = 0
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def call(self, system_prompt, user_prompt, model_params):
        self.calls.append({"system": system_prompt, "user": user_prompt, "params": dict(model_params)})
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses.pop(0) if self.responses else self.default_response
            if isinstance(response, Exception):
                raise response
            if callable(response):
                return response(user_prompt)
            return response
        finally:
            self.active -= 1

    def close(self):
        self.closed = True


@pytest.fixture
def sample_result() -> Dict[str, Any]:
    return json.loads(json.dumps(SAMPLE_RESULT))


@pytest.fixture
def stub_backend_factory() -> Callable[..., StubBackend]:
    return StubBackend


@pytest.fixture
def stub_backend() -> StubBackend:
    return StubBackend()


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keeps tests independent from the developer's config file and .env."""
    monkeypatch.setattr(config_settings, "_loaded", True)
    monkeypatch.setattr(config_settings, "_config", {})
    monkeypatch.setenv("OPENAI_API_KEY", "DUMMY_TEST_KEY_FOR_INIT")
    yield
    config_settings.clear_test_config()
