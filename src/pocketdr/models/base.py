"""Abstract model endpoint interface and completion value types.

Every backend failure is reported as a ``CompletionOutcome`` value so the
retry and fallback layers can stay free of exception handling.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass


class Speaker(enum.StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ConversationTurn:
    """One message in a conversation."""

    speaker: Speaker
    text: str


@dataclass(frozen=True)
class ModelDescriptor:
    """A named backend model, in priority order within a list."""

    name: str
    supports_system_instruction: bool = True


@dataclass(frozen=True)
class Success:
    text: str


@dataclass(frozen=True)
class RateLimited:
    """Backend signaled throttling. Retryable."""

    model_name: str
    message: str


class UnavailableReason(enum.StrEnum):
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class Unavailable:
    """Non-retryable failure for this model."""

    model_name: str
    message: str
    reason: UnavailableReason = UnavailableReason.ERROR


CompletionOutcome = Success | RateLimited | Unavailable


class ModelEndpoint(ABC):
    """Abstract base class for backend model endpoints."""

    @abstractmethod
    async def invoke(
        self,
        model: ModelDescriptor,
        system_prompt: str,
        history: Sequence[ConversationTurn],
        message: str,
    ) -> CompletionOutcome:
        """Run one completion round trip. Must not raise for backend failures."""
        ...

    async def close(self) -> None:
        """Release transport resources. Default: nothing to release."""
