"""Multi-model fallback orchestration.

Turns one user message into one assistant reply by walking an ordered
model list:

1. Compose the system prompt once for the request
2. Try each model in order, with the rate-limit retry policy
3. Return the first success without touching later models
4. Otherwise return every failed attempt, in order, for the caller to map

The orchestrator keeps no state between calls. Each ``complete`` call
starts again at the first model.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from pocketdr.models.base import (
    ConversationTurn,
    ModelDescriptor,
    ModelEndpoint,
    RateLimited,
    Success,
    Unavailable,
    UnavailableReason,
)
from pocketdr.models.retry import (
    ClockFn,
    Deadline,
    RateLimitRetryPolicy,
    SleepFn,
    attempt_with_retry,
)
from pocketdr.prompts.composer import PromptComposer, UserProfile

logger = logging.getLogger(__name__)


class FailureKind(enum.StrEnum):
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class AttemptRecord:
    """Final failed outcome for one model."""

    model_name: str
    kind: FailureKind
    message: str

    @classmethod
    def from_outcome(cls, outcome: RateLimited | Unavailable) -> AttemptRecord:
        if isinstance(outcome, RateLimited):
            kind = FailureKind.RATE_LIMITED
        elif outcome.reason == UnavailableReason.NOT_FOUND:
            kind = FailureKind.NOT_FOUND
        else:
            kind = FailureKind.ERROR
        return cls(model_name=outcome.model_name, kind=kind, message=outcome.message)


@dataclass(frozen=True)
class Completed:
    text: str
    model_name: str
    attempts: tuple[AttemptRecord, ...] = ()


@dataclass(frozen=True)
class Exhausted:
    """Every model failed, or the deadline stopped the walk."""

    attempts: tuple[AttemptRecord, ...] = field(default_factory=tuple)
    deadline_exceeded: bool = False

    @property
    def rate_limited(self) -> bool:
        return any(a.kind == FailureKind.RATE_LIMITED for a in self.attempts)

    @property
    def all_not_found(self) -> bool:
        return bool(self.attempts) and all(
            a.kind == FailureKind.NOT_FOUND for a in self.attempts
        )

    def diagnostics(self) -> str:
        return "; ".join(f"{a.model_name}: {a.message}" for a in self.attempts)


CompletionResult = Completed | Exhausted


class FallbackOrchestrator:
    """Tries models in priority order until one answers."""

    def __init__(
        self,
        endpoint: ModelEndpoint,
        composer: PromptComposer,
        policy: RateLimitRetryPolicy | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        clock: ClockFn = time.monotonic,
        deadline_seconds: float = 0.0,
    ):
        self._endpoint = endpoint
        self._composer = composer
        self._policy = policy or RateLimitRetryPolicy()
        self._sleep = sleep
        self._clock = clock
        self._deadline_seconds = deadline_seconds

    @property
    def policy(self) -> RateLimitRetryPolicy:
        return self._policy

    async def complete(
        self,
        models: Sequence[ModelDescriptor],
        history: Sequence[ConversationTurn],
        message: str,
        profile: UserProfile | None = None,
        *,
        guest: bool = False,
    ) -> CompletionResult:
        system_prompt = self._composer.compose(profile, guest=guest)
        deadline = None
        if self._deadline_seconds > 0:
            deadline = Deadline.after(self._deadline_seconds, clock=self._clock)

        attempts: list[AttemptRecord] = []

        for model in models:
            if deadline is not None and deadline.expired():
                logger.warning(
                    "Deadline of %.1fs exceeded before trying %s",
                    self._deadline_seconds, model.name,
                )
                return Exhausted(attempts=tuple(attempts), deadline_exceeded=True)

            outcome = await attempt_with_retry(
                self._endpoint,
                model,
                system_prompt,
                history,
                message,
                policy=self._policy,
                sleep=self._sleep,
                deadline=deadline,
            )
            if isinstance(outcome, Success):
                if attempts:
                    logger.info(
                        "Model %s answered after %d failed attempt(s)",
                        model.name, len(attempts),
                    )
                return Completed(
                    text=outcome.text,
                    model_name=model.name,
                    attempts=tuple(attempts),
                )
            attempts.append(AttemptRecord.from_outcome(outcome))

        result = Exhausted(attempts=tuple(attempts))
        logger.warning("All models failed: %s", result.diagnostics() or "no models configured")
        return result
