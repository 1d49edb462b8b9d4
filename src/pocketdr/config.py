"""Configuration loader for PocketDr.

Loads from pocketdr.toml with sensible defaults when file is absent.
Configuration is loaded once at startup and passed via dependency injection.
"""

from __future__ import annotations

import math
import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path

from pocketdr.exceptions import ConfigError
from pocketdr.models.base import ModelDescriptor

API_KEY_ENV_VAR = "GEMINI_API_KEY"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def _default_models() -> list[ModelDescriptor]:
    # Pro first for reasoning, then Flash for speed, then the legacy model.
    return [
        ModelDescriptor("gemini-1.5-pro"),
        ModelDescriptor("gemini-2.0-flash"),
        ModelDescriptor("gemini-pro", supports_system_instruction=False),
    ]


def _default_cors_origins() -> list[str]:
    # The web frontend dev server.
    return ["http://localhost:3000", "http://127.0.0.1:3000"]


@dataclass(frozen=True)
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 9000
    cors_origins: list[str] = field(default_factory=_default_cors_origins)


@dataclass(frozen=True)
class ChatConfig:
    """Backend credential, model priority list and retry settings."""

    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    persona: str = "aiva"
    models: list[ModelDescriptor] = field(default_factory=_default_models)
    backoff_seconds: float = 3.0
    max_retries: int = 1
    request_timeout_seconds: float = 60.0
    deadline_seconds: float = 0.0  # 0 = no end-to-end ceiling
    temperature: float | None = None
    max_output_tokens: int | None = None

    def __repr__(self) -> str:
        key_display = f"***{self.api_key[-4:]}" if self.api_key else ""
        return (
            f"ChatConfig(base_url={self.base_url!r}, persona={self.persona!r}, "
            f"models={[m.name for m in self.models]!r}, api_key={key_display!r})"
        )


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class Config:
    """Top-level PocketDr configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _parse_models(raw_models: object) -> list[ModelDescriptor]:
    """Parse the ordered [[chat.models]] list.

    Entries may be bare model names or tables with ``name`` and
    ``system_instruction`` keys.
    """
    if not isinstance(raw_models, list):
        raise ConfigError("chat.models must be a list")

    models: list[ModelDescriptor] = []
    for entry in raw_models:
        if isinstance(entry, str):
            name, supports_system = entry, True
        elif isinstance(entry, dict):
            name = entry.get("name", "")
            supports_system = entry.get("system_instruction", True)
        else:
            raise ConfigError(f"Invalid chat.models entry: {entry!r}")
        name = str(name).strip()
        if not name:
            raise ConfigError("chat.models entries need a non-empty name")
        models.append(ModelDescriptor(name, supports_system_instruction=bool(supports_system)))
    return models


def _optional_float(value: object, key: str) -> float | None:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"chat.{key} must be a number, got {value!r}") from e
    if not math.isfinite(number):
        raise ConfigError(f"chat.{key} must be finite, got {value!r}")
    return number


def _parse_chat_config(data: dict) -> ChatConfig:
    models = _default_models()
    if "models" in data:
        models = _parse_models(data["models"])

    max_tokens = data.get("max_output_tokens")
    try:
        return ChatConfig(
            api_key=str(data.get("api_key", "")),
            base_url=str(data.get("base_url", DEFAULT_BASE_URL)).rstrip("/"),
            persona=str(data.get("persona", "aiva")),
            models=models,
            backoff_seconds=float(data.get("backoff_seconds", 3.0)),
            max_retries=int(data.get("max_retries", 1)),
            request_timeout_seconds=float(data.get("request_timeout_seconds", 60.0)),
            deadline_seconds=float(data.get("deadline_seconds", 0.0)),
            temperature=_optional_float(data.get("temperature"), "temperature"),
            max_output_tokens=int(max_tokens) if max_tokens is not None else None,
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid [chat] section: {e}") from e


def _apply_env_overrides(chat: ChatConfig) -> ChatConfig:
    """Fill an empty api_key from the environment."""
    if chat.api_key:
        return chat
    env_key = os.environ.get(API_KEY_ENV_VAR, "").strip()
    if not env_key:
        return chat
    return replace(chat, api_key=env_key)


def resolve_config_path(path: Path | None = None) -> Path | None:
    """Return the effective pocketdr.toml path, or None when there is none."""
    if path is not None:
        return path
    candidates = [
        Path.cwd() / "pocketdr.toml",
        Path.home() / ".pocketdr" / "pocketdr.toml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def load_config(path: Path | None = None) -> Config:
    """Load configuration from a TOML file.

    If path is None, searches for pocketdr.toml in current directory then
    ~/.pocketdr/. Returns default config if no file is found. The
    GEMINI_API_KEY environment variable fills an unset api_key either way.
    """
    path = resolve_config_path(path)

    if path is None or not path.exists():
        return Config(chat=_apply_env_overrides(ChatConfig()))

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e

    server_data = raw.get("server", {})
    raw_origins = server_data.get("cors_origins", _default_cors_origins())
    if isinstance(raw_origins, str):
        raw_origins = [raw_origins]
    if not isinstance(raw_origins, list):
        raise ConfigError("server.cors_origins must be a list of origins")
    server = ServerConfig(
        host=server_data.get("host", "127.0.0.1"),
        port=server_data.get("port", 9000),
        cors_origins=[str(o).rstrip("/") for o in raw_origins if str(o).strip()],
    )

    chat = _apply_env_overrides(_parse_chat_config(raw.get("chat", {})))

    log_data = raw.get("logging", {})
    logging_cfg = LoggingConfig(level=str(log_data.get("level", "INFO")).upper())

    return Config(server=server, chat=chat, logging=logging_cfg)
