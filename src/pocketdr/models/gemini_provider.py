"""Gemini model endpoint.

Talks to the Generative Language REST API (``models/{name}:generateContent``)
and classifies every failure into a completion outcome instead of raising.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

import httpx

from pocketdr.config import ChatConfig
from pocketdr.models.base import (
    CompletionOutcome,
    ConversationTurn,
    ModelDescriptor,
    ModelEndpoint,
    RateLimited,
    Speaker,
    Success,
    Unavailable,
    UnavailableReason,
)

logger = logging.getLogger(__name__)

_RATE_LIMIT_STATUSES = {"RESOURCE_EXHAUSTED"}
_NOT_FOUND_STATUSES = {"NOT_FOUND"}


class GeminiEndpoint(ModelEndpoint):
    """Endpoint for Gemini models over HTTP."""

    SYSTEM_ACKNOWLEDGMENT = "Understood. I will follow these instructions."

    def __init__(self, config: ChatConfig, client: httpx.AsyncClient | None = None):
        self._config = config
        self._owns_client = client is None
        if client is None:
            headers: dict[str, str] = {}
            api_key = config.api_key.strip()
            if api_key:
                headers["x-goog-api-key"] = api_key
            client = httpx.AsyncClient(
                base_url=config.base_url,
                timeout=httpx.Timeout(config.request_timeout_seconds),
                headers=headers,
            )
        self._client = client

    def _build_contents(
        self,
        model: ModelDescriptor,
        system_prompt: str,
        history: Sequence[ConversationTurn],
        message: str,
    ) -> list[dict]:
        contents: list[dict] = []
        if system_prompt and not model.supports_system_instruction:
            # Models without systemInstruction get the prompt as a primed exchange.
            contents.append({"role": "user", "parts": [{"text": system_prompt}]})
            contents.append({
                "role": "model",
                "parts": [{"text": self.SYSTEM_ACKNOWLEDGMENT}],
            })
        for turn in history:
            role = "model" if turn.speaker == Speaker.ASSISTANT else "user"
            contents.append({"role": role, "parts": [{"text": turn.text}]})
        contents.append({"role": "user", "parts": [{"text": message}]})
        return contents

    def _build_payload(
        self,
        model: ModelDescriptor,
        system_prompt: str,
        history: Sequence[ConversationTurn],
        message: str,
    ) -> dict:
        payload: dict = {
            "contents": self._build_contents(model, system_prompt, history, message),
        }
        if system_prompt and model.supports_system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}

        generation: dict = {}
        if self._config.temperature is not None:
            generation["temperature"] = self._config.temperature
        if self._config.max_output_tokens is not None:
            generation["maxOutputTokens"] = self._config.max_output_tokens
        if generation:
            payload["generationConfig"] = generation
        return payload

    @staticmethod
    def _error_details(response: httpx.Response, limit: int = 300) -> tuple[str, str]:
        """Return (status, message) from a Google-style error body."""
        try:
            data = response.json()
        except ValueError:
            return "", response.text[:limit]
        error = data.get("error") if isinstance(data, dict) else None
        if not isinstance(error, dict):
            return "", response.text[:limit]
        return str(error.get("status", "")), str(error.get("message", ""))[:limit]

    @classmethod
    def classify_http_error(
        cls, model_name: str, response: httpx.Response,
    ) -> RateLimited | Unavailable:
        """Map a non-2xx response onto a failure outcome."""
        status, detail = cls._error_details(response)
        message = f"HTTP {response.status_code}"
        if status:
            message += f" {status}"
        if detail:
            message += f": {detail}"

        if response.status_code == 429 or status in _RATE_LIMIT_STATUSES:
            return RateLimited(model_name=model_name, message=message)
        if response.status_code == 404 or status in _NOT_FOUND_STATUSES:
            return Unavailable(
                model_name=model_name,
                message=message,
                reason=UnavailableReason.NOT_FOUND,
            )
        return Unavailable(model_name=model_name, message=message)

    @staticmethod
    def _extract_text(data: object) -> str:
        if not isinstance(data, dict):
            return ""
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            return ""
        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        parts = content.get("parts", []) if isinstance(content, dict) else []
        fragments = [
            str(part.get("text", ""))
            for part in parts
            if isinstance(part, dict) and part.get("text")
        ]
        return "".join(fragments).strip()

    @staticmethod
    def _block_reason(data: object) -> str:
        if not isinstance(data, dict):
            return ""
        feedback = data.get("promptFeedback")
        if isinstance(feedback, dict):
            return str(feedback.get("blockReason", "") or "")
        return ""

    async def invoke(
        self,
        model: ModelDescriptor,
        system_prompt: str,
        history: Sequence[ConversationTurn],
        message: str,
    ) -> CompletionOutcome:
        logger.debug(
            "Invoking model=%s history_turns=%d system_instruction=%s",
            model.name, len(history), model.supports_system_instruction,
        )

        start = time.monotonic()
        try:
            payload = self._build_payload(model, system_prompt, history, message)
            response = await self._client.post(
                f"/models/{model.name}:generateContent", json=payload,
            )
        except (ValueError, UnicodeError) as e:
            # Unencodable text or non-finite numbers in the request body.
            outcome: CompletionOutcome = Unavailable(
                model_name=model.name,
                message=f"Cannot encode request for {model.name}: {e}",
            )
            logger.warning("Model %s failed: %s", model.name, outcome.message)
            return outcome
        except httpx.TimeoutException as e:
            outcome = Unavailable(
                model_name=model.name,
                message=f"Model request timed out: {e}",
            )
            logger.warning("Model %s failed: %s", model.name, outcome.message)
            return outcome
        except httpx.HTTPError as e:
            outcome = Unavailable(
                model_name=model.name,
                message=f"Cannot reach model server at {self._client.base_url}: {e}",
            )
            logger.warning("Model %s failed: %s", model.name, outcome.message)
            return outcome
        latency = int((time.monotonic() - start) * 1000)

        if response.is_error:
            outcome = self.classify_http_error(model.name, response)
            logger.warning("Model %s failed: %s", model.name, outcome.message)
            return outcome

        try:
            data = response.json()
        except ValueError:
            outcome = Unavailable(
                model_name=model.name,
                message=f"Malformed response from {model.name}: not JSON",
            )
            logger.warning("Model %s failed: %s", model.name, outcome.message)
            return outcome

        text = self._extract_text(data)
        if not text:
            reason = self._block_reason(data)
            detail = f"blocked ({reason})" if reason else "missing candidate text"
            outcome = Unavailable(
                model_name=model.name,
                message=f"Empty response from {model.name}: {detail}",
            )
            logger.warning("Model %s failed: %s", model.name, outcome.message)
            return outcome

        logger.debug("Model %s answered in %dms", model.name, latency)
        return Success(text=text)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
