"""Engine lifecycle: wires up the chat components for the API server."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from pocketdr.config import Config
from pocketdr.exceptions import ModelError
from pocketdr.models.base import ConversationTurn, ModelEndpoint
from pocketdr.models.fallback import Completed, CompletionResult, FallbackOrchestrator
from pocketdr.models.gemini_provider import GeminiEndpoint
from pocketdr.models.retry import RateLimitRetryPolicy
from pocketdr.prompts.composer import PromptComposer, UserProfile

logger = logging.getLogger(__name__)

RATE_LIMIT_ERROR = "Rate limit exceeded. Please wait a minute and try again."
RATE_LIMIT_TEXT = (
    "⚠️ I'm currently experiencing high demand. "
    "Please wait a moment and try again."
)
NOT_FOUND_ERROR = (
    "Could not connect to any chat models. "
    "Please check the API key and model configuration."
)
GENERIC_ERROR = (
    "I'm having trouble connecting to the medical service. "
    "Please try again in a moment."
)
MISSING_KEY_ERROR = "Server configuration error: missing API key"


@dataclass(frozen=True)
class ChatReply:
    """HTTP-shaped result of one chat request."""

    status_code: int
    text: str = ""
    error: str | None = None
    model: str | None = None

    @property
    def ok(self) -> bool:
        return self.status_code == 200


def map_result(result: CompletionResult) -> ChatReply:
    """Map an orchestrator result onto a status code and user-facing text.

    Per-model diagnostics are logged, never returned.
    """
    if isinstance(result, Completed):
        return ChatReply(status_code=200, text=result.text, model=result.model_name)

    diagnostics = result.diagnostics()
    if result.rate_limited:
        logger.error("Chat exhausted under rate limiting: %s", diagnostics)
        return ChatReply(status_code=429, text=RATE_LIMIT_TEXT, error=RATE_LIMIT_ERROR)
    if result.all_not_found:
        logger.error("No chat model could be found: %s", diagnostics)
        return ChatReply(status_code=502, error=NOT_FOUND_ERROR)
    logger.error(
        "Chat exhausted (deadline_exceeded=%s): %s",
        result.deadline_exceeded, diagnostics or "no attempts",
    )
    return ChatReply(status_code=502, error=GENERIC_ERROR)


class ChatEngine:
    """Holds the chat components. Created during server lifespan."""

    def __init__(
        self,
        config: Config,
        endpoint: ModelEndpoint,
        composer: PromptComposer,
        orchestrator: FallbackOrchestrator,
    ):
        self.config = config
        self.endpoint = endpoint
        self.composer = composer
        self.orchestrator = orchestrator

    @property
    def models(self):
        return self.config.chat.models

    async def reply(
        self,
        message: str,
        history: Sequence[ConversationTurn] = (),
        profile: UserProfile | None = None,
        *,
        guest: bool = False,
    ) -> ChatReply:
        """Answer one user message.

        Raises ModelError for a blank message. Backend failures never
        raise; they come back as non-200 replies.
        """
        text = message.strip()
        if not text:
            raise ModelError("Message must not be empty")
        if not self.config.chat.api_key.strip():
            logger.error("Chat request rejected: no API key configured")
            return ChatReply(status_code=500, error=MISSING_KEY_ERROR)

        result = await self.orchestrator.complete(
            self.models, list(history), text, profile, guest=guest,
        )
        return map_result(result)

    async def shutdown(self) -> None:
        await self.endpoint.close()


async def create_engine(
    config: Config, composer: PromptComposer | None = None,
) -> ChatEngine:
    """Build a ChatEngine from configuration."""
    endpoint = GeminiEndpoint(config.chat)
    composer = composer or PromptComposer(persona=config.chat.persona)
    orchestrator = FallbackOrchestrator(
        endpoint,
        composer,
        RateLimitRetryPolicy.from_chat_config(config.chat),
        deadline_seconds=config.chat.deadline_seconds,
    )
    logger.info(
        "Chat engine ready: persona=%s models=%s",
        composer.persona, [m.name for m in config.chat.models],
    )
    return ChatEngine(
        config=config,
        endpoint=endpoint,
        composer=composer,
        orchestrator=orchestrator,
    )
