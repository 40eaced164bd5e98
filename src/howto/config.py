"""Configuration management for HowTo.

Every setting is resolved with the same precedence:

1. Explicit overrides (constructor / CLI arguments)
2. Process environment variables
3. Local key=value file (.env at the repo root, or HOWTO_ENV_FILE)
4. Built-in defaults

The first non-empty value wins. Resolution itself is a pure function so it
can be tested without touching the filesystem or the process environment.
"""

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values
from pydantic import BaseModel, Field

from .errors import InvalidConfiguration

DEFAULTS: dict[str, str] = {
    # Video generation service
    "ODYSSEY_API_KEY": "",
    "ODYSSEY_DEVELOPER_EMAIL": "",
    "ODYSSEY_BASE_URL": "https://api.odyssey.ml",
    "ODYSSEY_GENERATE_PATH": "v1/generations",
    "ODYSSEY_JOBS_PATH": "v1/generations",
    "ODYSSEY_POLL_INTERVAL": "3",
    "ODYSSEY_MAX_POLL_ATTEMPTS": "200",
    "ODYSSEY_REQUEST_TIMEOUT": "60",
    # Cloud chat (OpenRouter / OpenAI-compatible)
    "OPENROUTER_API_KEY": "",
    "OPENROUTER_BASE_URL": "https://openrouter.ai/api/v1",
    "OPENROUTER_MODEL": "openrouter/free",
    "OPENROUTER_HTTP_REFERER": "",
    "OPENROUTER_APP_TITLE": "",
    # Local chat (Ollama)
    "OLLAMA_BASE_URL": "http://127.0.0.1:11434",
    "OLLAMA_MODEL": "llama3.2-vision:11b",
    "OLLAMA_REQUEST_TIMEOUT": "120",
    # Event log
    "HOWTO_LOG_CAPACITY": "500",
}

# Within a single layer, the first alias present wins.
ALIASES: dict[str, tuple[str, ...]] = {
    "OPENROUTER_API_KEY": ("OPENROUTER_API_KEY", "OPENAI_API_KEY"),
}

# Spellings accepted in the local file only.
_FILE_KEY_ALIASES = {
    "OpenRouter_API_Key": "OPENROUTER_API_KEY",
    "OpenAI_API_Key": "OPENAI_API_KEY",
}

ENV_FILE_VAR = "HOWTO_ENV_FILE"


@dataclass(frozen=True)
class ResolvedConfig:
    """Flat resolved settings plus the layer each value came from."""

    values: dict[str, str]
    sources: dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> str:
        return self.values.get(key, "")

    def source(self, key: str) -> str:
        return self.sources.get(key, "unset")


def _first_in_layer(layer: Mapping[str, Optional[str]], key: str) -> Optional[str]:
    for name in ALIASES.get(key, (key,)):
        value = layer.get(name)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def resolve(
    overrides: Mapping[str, Optional[str]],
    environment: Mapping[str, Optional[str]],
    file_config: Mapping[str, Optional[str]],
    defaults: Mapping[str, str] = DEFAULTS,
) -> ResolvedConfig:
    """Resolve every known key across the four layers.

    Args:
        overrides: Explicit values (highest precedence)
        environment: Process environment (or a stand-in mapping)
        file_config: Values parsed from the local key=value file
        defaults: Built-in defaults; defines the set of known keys

    Returns:
        ResolvedConfig with one value per known key
    """
    layers = (
        ("override", overrides),
        ("env", environment),
        ("file", file_config),
        ("default", defaults),
    )
    keys = list(defaults) + [k for k in overrides if k not in defaults]

    values: dict[str, str] = {}
    sources: dict[str, str] = {}
    for key in keys:
        for layer_name, layer in layers:
            value = _first_in_layer(layer, key)
            if value is not None:
                values[key] = value
                sources[key] = layer_name
                break
        else:
            values[key] = ""
    return ResolvedConfig(values=values, sources=sources)


def _find_repo_root(start_dir: Path) -> Path:
    """Find repository root by walking upward looking for .git or pyproject.toml."""
    current_dir = start_dir

    while True:
        if (current_dir / ".git").exists() or (current_dir / "pyproject.toml").exists():
            return current_dir

        parent_dir = current_dir.parent
        if parent_dir == current_dir:
            # No repo found, return original directory
            return start_dir

        current_dir = parent_dir


def find_env_file(
    start_dir: Optional[Path] = None,
    environment: Optional[Mapping[str, str]] = None,
) -> Path:
    """Locate the local key=value file.

    HOWTO_ENV_FILE wins; otherwise `.env` at the repo root above start_dir.
    """
    env = os.environ if environment is None else environment
    explicit = env.get(ENV_FILE_VAR)
    if explicit:
        return Path(explicit).expanduser()
    root = _find_repo_root(start_dir or Path.cwd())
    return root / ".env"


def load_env_file(path: Path) -> dict[str, str]:
    """Load a key=value file. Missing file yields an empty mapping."""
    if not path.is_file():
        return {}

    data: dict[str, str] = {}
    for key, value in dotenv_values(path).items():
        if value is None:
            continue
        data[_FILE_KEY_ALIASES.get(key, key)] = value
    return data


def _as_int(resolved: ResolvedConfig, key: str, *, minimum: int = 0) -> int:
    value = resolved.get(key)
    try:
        number = int(value)
    except ValueError:
        raise InvalidConfiguration(key, value, "must be an int") from None
    if number < minimum:
        raise InvalidConfiguration(key, value, f"must be >= {minimum}")
    return number


def _as_float(resolved: ResolvedConfig, key: str) -> float:
    value = resolved.get(key)
    try:
        number = float(value)
    except ValueError:
        raise InvalidConfiguration(key, value, "must be a number") from None
    if not math.isfinite(number):
        raise InvalidConfiguration(key, value, "must be finite")
    if number < 0:
        raise InvalidConfiguration(key, value, "must not be negative")
    return number


class VideoServiceConfig(BaseModel):
    """Settings for the video generation client."""

    api_key: str = Field(default="")
    developer_email: str = Field(default="")
    base_url: str = Field(default=DEFAULTS["ODYSSEY_BASE_URL"])
    generate_path: str = Field(default=DEFAULTS["ODYSSEY_GENERATE_PATH"])
    jobs_path: str = Field(default=DEFAULTS["ODYSSEY_JOBS_PATH"])
    poll_interval_seconds: float = Field(default=3.0)
    max_poll_attempts: Optional[int] = Field(default=200)  # None = poll forever
    request_timeout_seconds: float = Field(default=60.0)


class CloudChatConfig(BaseModel):
    """Settings for the OpenRouter / OpenAI-compatible chat client."""

    api_key: str = Field(default="")
    base_url: str = Field(default=DEFAULTS["OPENROUTER_BASE_URL"])
    model: str = Field(default=DEFAULTS["OPENROUTER_MODEL"])
    http_referer: Optional[str] = Field(default=None)
    app_title: Optional[str] = Field(default=None)
    request_timeout_seconds: float = Field(default=60.0)


class LocalChatConfig(BaseModel):
    """Settings for the Ollama chat client."""

    base_url: str = Field(default=DEFAULTS["OLLAMA_BASE_URL"])
    model: str = Field(default=DEFAULTS["OLLAMA_MODEL"])
    request_timeout_seconds: float = Field(default=120.0)


class EventLogConfig(BaseModel):
    capacity: int = Field(default=500)


class AppConfig(BaseModel):
    """Configuration for all HowTo components."""

    video: VideoServiceConfig = Field(default_factory=VideoServiceConfig)
    cloud_chat: CloudChatConfig = Field(default_factory=CloudChatConfig)
    local_chat: LocalChatConfig = Field(default_factory=LocalChatConfig)
    event_log: EventLogConfig = Field(default_factory=EventLogConfig)

    @classmethod
    def from_resolved(cls, resolved: ResolvedConfig) -> "AppConfig":
        """Build typed configuration from resolved flat values."""
        max_attempts = _as_int(resolved, "ODYSSEY_MAX_POLL_ATTEMPTS")

        return cls(
            video=VideoServiceConfig(
                api_key=resolved.get("ODYSSEY_API_KEY"),
                developer_email=resolved.get("ODYSSEY_DEVELOPER_EMAIL"),
                base_url=resolved.get("ODYSSEY_BASE_URL"),
                generate_path=resolved.get("ODYSSEY_GENERATE_PATH"),
                jobs_path=resolved.get("ODYSSEY_JOBS_PATH"),
                poll_interval_seconds=_as_float(resolved, "ODYSSEY_POLL_INTERVAL"),
                max_poll_attempts=max_attempts or None,
                request_timeout_seconds=_as_float(resolved, "ODYSSEY_REQUEST_TIMEOUT"),
            ),
            cloud_chat=CloudChatConfig(
                api_key=resolved.get("OPENROUTER_API_KEY"),
                base_url=resolved.get("OPENROUTER_BASE_URL"),
                model=resolved.get("OPENROUTER_MODEL"),
                http_referer=resolved.get("OPENROUTER_HTTP_REFERER") or None,
                app_title=resolved.get("OPENROUTER_APP_TITLE") or None,
            ),
            local_chat=LocalChatConfig(
                base_url=resolved.get("OLLAMA_BASE_URL"),
                model=resolved.get("OLLAMA_MODEL"),
                request_timeout_seconds=_as_float(resolved, "OLLAMA_REQUEST_TIMEOUT"),
            ),
            event_log=EventLogConfig(
                capacity=_as_int(resolved, "HOWTO_LOG_CAPACITY", minimum=1),
            ),
        )

    @classmethod
    def load(
        cls,
        overrides: Optional[Mapping[str, Optional[str]]] = None,
        environment: Optional[Mapping[str, str]] = None,
        env_file: Optional[Path] = None,
    ) -> "AppConfig":
        """Load configuration from overrides, environment, local file and defaults.

        Args:
            overrides: Explicit values keyed by env-var name (highest precedence)
            environment: Defaults to os.environ
            env_file: Defaults to find_env_file()
        """
        env = dict(os.environ) if environment is None else dict(environment)
        path = env_file if env_file is not None else find_env_file(environment=env)
        resolved = resolve(overrides or {}, env, load_env_file(path))
        return cls.from_resolved(resolved)

    def redacted(self) -> dict:
        """Configuration as a nested dict with secrets masked for display."""
        data = self.model_dump()
        for section in ("video", "cloud_chat"):
            key = data[section].get("api_key")
            data[section]["api_key"] = _mask(key)
        return data


def _mask(secret: Optional[str]) -> str:
    if not secret:
        return "(not set)"
    if len(secret) <= 8:
        return "****"
    return f"{secret[:4]}...{secret[-4:]}"
