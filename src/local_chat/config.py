"""Configuration for local-chat.

Config discovery (first match wins):
  1. ``--config`` flag
  2. ``./local_chat.yaml``
  3. ``~/.config/local-chat/config.yaml``
  4. Built-in defaults

Environment variables override whatever the file provides:
  ``LOCAL_LLM_ENDPOINT``, ``LOCAL_LLM_MODEL_NAME``, ``LOCAL_LLM_API_KEY``,
  ``OTEL_EXPORTER_OTLP_ENDPOINT``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from local_chat.errors import ConfigError
from local_chat.types import DEFAULT_MAX_OUTPUT_TOKENS, DEFAULT_TEMPERATURE, ChatOptions

_logger = logging.getLogger(__name__)

DEFAULT_REDACTION = (
    "[REDACTED: Forbidden content detected. Please rephrase your request "
    "without harmful, illegal, or violent content.]"
)

DEFAULT_FORBIDDEN_KEYWORDS = [
    "bomb",
    "explosive",
    "weapon",
    "kill",
    "murder",
    "hack into",
    "malware",
    "poison",
]


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class EndpointSpec:
    """The OpenAI-compatible chat-completions endpoint to talk to.

    ``url`` is the full chat-completions URL, e.g.
    ``http://localhost:1234/v1/chat/completions``.  Most local servers ignore
    the credential, but one must still be configured.
    """

    url: str = ""
    model: str = ""
    api_key: str = ""
    timeout: float = 120

    def validate(self) -> None:
        missing = [
            name for name, value in (
                ("endpoint url (LOCAL_LLM_ENDPOINT)", self.url),
                ("model name (LOCAL_LLM_MODEL_NAME)", self.model),
                ("api key (LOCAL_LLM_API_KEY)", self.api_key),
            )
            if not value
        ]
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")


@dataclass
class AgentSpec:
    """Identity and instructions of the console assistant."""

    name: str = "LocalAssistant"
    instructions: str = (
        "You are a helpful AI assistant. Be concise and friendly in your responses."
    )
    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS

    @property
    def options(self) -> ChatOptions:
        return ChatOptions(
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
        )


@dataclass
class GuardrailSpec:
    """Keyword content filter applied to user input and model output."""

    enabled: bool = True
    keywords: list[str] = field(
        default_factory=lambda: list(DEFAULT_FORBIDDEN_KEYWORDS)
    )
    redaction: str = DEFAULT_REDACTION


@dataclass
class CacheSpec:
    """In-memory response cache (off by default)."""

    enabled: bool = False
    max_entries: int = 128


@dataclass
class TelemetrySpec:
    """OpenTelemetry export settings."""

    enabled: bool = True
    otlp_endpoint: str = "http://localhost:4318"
    service_name: str = "AgentOpenTelemetry"
    service_version: str = "1.0.0"
    source_name: str = "OpenTelemetryAspire.ConsoleApp"
    environment: str = "development"
    export_interval_ms: int = 10000


@dataclass
class ChatConfig:
    """Top-level config for local-chat."""

    endpoint: EndpointSpec = field(default_factory=EndpointSpec)
    agent: AgentSpec = field(default_factory=AgentSpec)
    guardrail: GuardrailSpec = field(default_factory=GuardrailSpec)
    cache: CacheSpec = field(default_factory=CacheSpec)
    telemetry: TelemetrySpec = field(default_factory=TelemetrySpec)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./local_chat.yaml"),
    Path.home() / ".config" / "local-chat" / "config.yaml",
]

# environment variable -> (section, attribute)
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "LOCAL_LLM_ENDPOINT": ("endpoint", "url"),
    "LOCAL_LLM_MODEL_NAME": ("endpoint", "model"),
    "LOCAL_LLM_API_KEY": ("endpoint", "api_key"),
    "OTEL_EXPORTER_OTLP_ENDPOINT": ("telemetry", "otlp_endpoint"),
}


def _parse_section(cls: type, raw: dict[str, Any] | None) -> Any:
    """Build a config section dataclass from *raw*, ignoring unknown and null keys."""
    if not raw:
        return cls()
    known = {
        k: v for k, v in raw.items()
        if v is not None and k in cls.__dataclass_fields__
    }
    unknown = set(raw) - set(cls.__dataclass_fields__)
    if unknown:
        _logger.warning(
            "Ignoring unknown %s keys: %s", cls.__name__, ", ".join(sorted(unknown)),
        )
    return cls(**known)


def apply_env_overrides(
    config: ChatConfig, environ: Mapping[str, str] | None = None,
) -> ChatConfig:
    """Overlay environment variables onto *config* in place and return it."""
    env = os.environ if environ is None else environ
    for var, (section, attr) in _ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            setattr(getattr(config, section), attr, value)
    return config


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ChatConfig:
    """Load configuration from YAML, then apply environment overrides.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.
    environ:
        Environment mapping; defaults to ``os.environ``.

    Returns
    -------
    ChatConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s; using defaults", path)
            config_path = None
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    raw: dict[str, Any] = {}
    if config_path is None:
        _logger.info("No config file found; using defaults")
    else:
        _logger.info("Loading config from %s", config_path)
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

    config = ChatConfig(
        endpoint=_parse_section(EndpointSpec, raw.get("endpoint")),
        agent=_parse_section(AgentSpec, raw.get("agent")),
        guardrail=_parse_section(GuardrailSpec, raw.get("guardrail")),
        cache=_parse_section(CacheSpec, raw.get("cache")),
        telemetry=_parse_section(TelemetrySpec, raw.get("telemetry")),
    )
    return apply_env_overrides(config, environ)
