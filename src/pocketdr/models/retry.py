"""Rate-limit retry policy for a single model.

Only throttling is retried, with a fixed backoff. Other failures return at
once so the fallback orchestrator can move on to the next model.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from pocketdr.config import ChatConfig
from pocketdr.models.base import (
    CompletionOutcome,
    ConversationTurn,
    ModelDescriptor,
    ModelEndpoint,
    RateLimited,
)

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]
ClockFn = Callable[[], float]


@dataclass(frozen=True)
class RateLimitRetryPolicy:
    """Retry policy for throttled model invocations.

    The backoff is fixed rather than exponential or jittered.
    """

    backoff_seconds: float = 3.0
    max_retries: int = 1

    @classmethod
    def from_chat_config(cls, chat: ChatConfig) -> RateLimitRetryPolicy:
        backoff = max(0.0, float(chat.backoff_seconds))
        retries = max(0, min(3, int(chat.max_retries)))
        return cls(backoff_seconds=backoff, max_retries=retries)


@dataclass(frozen=True)
class Deadline:
    """Absolute end-to-end ceiling measured on ``clock``."""

    expires_at: float
    clock: ClockFn = time.monotonic

    @classmethod
    def after(cls, seconds: float, clock: ClockFn = time.monotonic) -> Deadline:
        return cls(expires_at=clock() + seconds, clock=clock)

    def remaining(self) -> float:
        return self.expires_at - self.clock()

    def expired(self) -> bool:
        return self.remaining() <= 0


async def attempt_with_retry(
    endpoint: ModelEndpoint,
    model: ModelDescriptor,
    system_prompt: str,
    history: Sequence[ConversationTurn],
    message: str,
    *,
    policy: RateLimitRetryPolicy,
    sleep: SleepFn = asyncio.sleep,
    deadline: Deadline | None = None,
) -> CompletionOutcome:
    """Invoke one model, retrying after the fixed backoff when throttled.

    The final outcome is returned unchanged.
    """
    retries_left = policy.max_retries
    while True:
        outcome = await endpoint.invoke(model, system_prompt, history, message)
        if not isinstance(outcome, RateLimited):
            return outcome
        if retries_left <= 0:
            return outcome
        if deadline is not None and deadline.remaining() < policy.backoff_seconds:
            logger.info(
                "Rate limited on %s, skipping retry: deadline too close", model.name,
            )
            return outcome

        retries_left -= 1
        logger.info(
            "Rate limited on %s, waiting %.1fs before retry",
            model.name, policy.backoff_seconds,
        )
        if policy.backoff_seconds > 0:
            await sleep(policy.backoff_seconds)
