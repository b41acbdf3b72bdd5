import random
import time

import pytest

from tutor_core.agents.orchestrator import Orchestrator
from tutor_core.analysis.context_analyzer import ContextAnalyzer
from tutor_core.fallback.generator import FallbackGenerator, FallbackTable
from tutor_core.moderation.engine import ModerationEngine
from tutor_core.providers.registry import ModelConfig


class FakeAdapter:
    """按脚本返回结果的 Provider，记录被调用次数与顺序。"""

    def __init__(self, name, reply="ok", error=None, delay=0.0, configured=True, call_log=None):
        self.name = name
        self._reply = reply
        self._error = error
        self._delay = delay
        self._configured = configured
        self.calls = 0
        self.call_log = call_log if call_log is not None else []

    @property
    def configured(self):
        return self._configured

    def resolve_model(self, messages, params):
        return ModelConfig(params.model or "general", f"{self.name}-model", 256, 0.5)

    def complete(self, messages, params):
        self.calls += 1
        self.call_log.append(self.name)
        if self._delay:
            time.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return self._reply


@pytest.fixture(scope="session")
def moderation_engine():
    return ModerationEngine.from_yaml()


@pytest.fixture(scope="session")
def fallback_table():
    return FallbackTable.from_yaml()


@pytest.fixture
def make_orchestrator(moderation_engine, fallback_table):
    created = []

    def _make(adapters, **kwargs):
        kwargs.setdefault("attempt_timeout", 1.0)
        orchestrator = Orchestrator(
            moderation=moderation_engine,
            analyzer=ContextAnalyzer(),
            adapters=adapters,
            fallback=FallbackGenerator(fallback_table, rng=random.Random(0)),
            **kwargs,
        )
        created.append(orchestrator)
        return orchestrator

    yield _make
    for orchestrator in created:
        orchestrator.shutdown(wait=False)
