"""Shared test fixtures for PocketDr."""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from pocketdr.config import ChatConfig, Config, ServerConfig
from pocketdr.models.base import (
    CompletionOutcome,
    ConversationTurn,
    ModelDescriptor,
    ModelEndpoint,
    Success,
)


class ScriptedEndpoint(ModelEndpoint):
    """Endpoint that replays canned outcomes per model name."""

    def __init__(self, script: dict[str, list[CompletionOutcome]]):
        self._script = {name: list(outcomes) for name, outcomes in script.items()}
        self.calls: list[str] = []
        self.system_prompts: list[str] = []
        self.closed = False

    async def invoke(
        self,
        model: ModelDescriptor,
        system_prompt: str,
        history: Sequence[ConversationTurn],
        message: str,
    ) -> CompletionOutcome:
        self.calls.append(model.name)
        self.system_prompts.append(system_prompt)
        outcomes = self._script.get(model.name)
        if not outcomes:
            raise AssertionError(f"Unexpected call to {model.name}")
        if len(outcomes) > 1:
            return outcomes.pop(0)
        return outcomes[0]

    def call_count(self, name: str) -> int:
        return self.calls.count(name)

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    """Monotonic clock advanced only by FakeClock.sleep."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def scripted_endpoint():
    """Factory for ScriptedEndpoint instances."""
    return ScriptedEndpoint


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def models() -> list[ModelDescriptor]:
    return [ModelDescriptor("m1"), ModelDescriptor("m2"), ModelDescriptor("m3")]


@pytest.fixture
def config(models) -> Config:
    """Provide a test configuration with a fake key and three models."""
    return Config(
        server=ServerConfig(host="127.0.0.1", port=9999),
        chat=ChatConfig(api_key="test-key", models=models),
    )


@pytest.fixture
def hello() -> Success:
    return Success(text="Hello")
