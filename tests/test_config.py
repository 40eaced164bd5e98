"""Tests for layered configuration."""

import pytest

from howto.config import (
    DEFAULTS,
    AppConfig,
    find_env_file,
    load_env_file,
    resolve,
)
from howto.errors import InvalidConfiguration


def test_resolve_precedence_override_env_file_default():
    """Test that the first non-empty layer wins for each key."""
    resolved = resolve(
        overrides={"ODYSSEY_BASE_URL": "http://override"},
        environment={"ODYSSEY_BASE_URL": "http://env", "ODYSSEY_GENERATE_PATH": "env/gen"},
        file_config={
            "ODYSSEY_BASE_URL": "http://file",
            "ODYSSEY_GENERATE_PATH": "file/gen",
            "ODYSSEY_JOBS_PATH": "file/jobs",
        },
    )

    assert resolved.get("ODYSSEY_BASE_URL") == "http://override"
    assert resolved.source("ODYSSEY_BASE_URL") == "override"
    assert resolved.get("ODYSSEY_GENERATE_PATH") == "env/gen"
    assert resolved.source("ODYSSEY_GENERATE_PATH") == "env"
    assert resolved.get("ODYSSEY_JOBS_PATH") == "file/jobs"
    assert resolved.source("ODYSSEY_JOBS_PATH") == "file"
    assert resolved.get("OLLAMA_MODEL") == DEFAULTS["OLLAMA_MODEL"]
    assert resolved.source("OLLAMA_MODEL") == "default"


def test_resolve_skips_empty_values():
    """Test that empty or whitespace values fall through to the next layer."""
    resolved = resolve(
        overrides={"ODYSSEY_API_KEY": ""},
        environment={"ODYSSEY_API_KEY": "   "},
        file_config={"ODYSSEY_API_KEY": "from-file"},
    )

    assert resolved.get("ODYSSEY_API_KEY") == "from-file"


def test_resolve_unset_key_is_empty():
    resolved = resolve({}, {}, {})
    assert resolved.get("ODYSSEY_API_KEY") == ""
    assert resolved.source("ODYSSEY_API_KEY") == "unset"


def test_resolve_ignores_unrelated_environment():
    """Test that only known keys are resolved."""
    resolved = resolve({}, {"PATH": "/usr/bin"}, {})
    assert "PATH" not in resolved.values


def test_cloud_key_alias_falls_back_to_openai_key():
    """Test OPENROUTER_API_KEY falling back to OPENAI_API_KEY within a layer."""
    resolved = resolve({}, {"OPENAI_API_KEY": "sk-openai"}, {})
    assert resolved.get("OPENROUTER_API_KEY") == "sk-openai"

    resolved = resolve({}, {"OPENAI_API_KEY": "sk-openai", "OPENROUTER_API_KEY": "sk-or"}, {})
    assert resolved.get("OPENROUTER_API_KEY") == "sk-or"


def test_cloud_key_env_beats_file():
    """Test that an env alias still beats a file value."""
    resolved = resolve({}, {"OPENAI_API_KEY": "sk-env"}, {"OPENROUTER_API_KEY": "sk-file"})
    assert resolved.get("OPENROUTER_API_KEY") == "sk-env"


def test_load_env_file(tmp_path):
    """Test parsing a key=value file, including comments and key aliases."""
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# local secrets\n"
        "ODYSSEY_API_KEY=file-key\n"
        "\n"
        "OpenRouter_API_Key=sk-or-file\n"
        "ODYSSEY_BASE_URL=http://localhost:8000\n"
    )

    data = load_env_file(env_file)

    assert data["ODYSSEY_API_KEY"] == "file-key"
    assert data["OPENROUTER_API_KEY"] == "sk-or-file"
    assert data["ODYSSEY_BASE_URL"] == "http://localhost:8000"


def test_load_env_file_missing(tmp_path):
    assert load_env_file(tmp_path / "nope.env") == {}


def test_find_env_file_explicit(tmp_path):
    """Test that HOWTO_ENV_FILE takes precedence."""
    explicit = tmp_path / "custom.env"
    assert find_env_file(environment={"HOWTO_ENV_FILE": str(explicit)}) == explicit


def test_find_env_file_repo_root(tmp_path):
    """Test discovery of .env at the repo root."""
    (tmp_path / "pyproject.toml").write_text("[project]\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    assert find_env_file(start_dir=nested, environment={}) == tmp_path / ".env"


def test_app_config_defaults(tmp_path):
    """Test built-in defaults with an empty environment and no file."""
    config = AppConfig.load(environment={}, env_file=tmp_path / "missing.env")

    assert config.video.api_key == ""
    assert config.video.base_url == "https://api.odyssey.ml"
    assert config.video.generate_path == "v1/generations"
    assert config.video.jobs_path == "v1/generations"
    assert config.video.poll_interval_seconds == 3.0
    assert config.video.max_poll_attempts == 200
    assert config.cloud_chat.base_url == "https://openrouter.ai/api/v1"
    assert config.cloud_chat.model == "openrouter/free"
    assert config.cloud_chat.http_referer is None
    assert config.local_chat.base_url == "http://127.0.0.1:11434"
    assert config.local_chat.model == "llama3.2-vision:11b"
    assert config.event_log.capacity == 500


def test_app_config_layers(tmp_path):
    """Test that overrides, environment and file combine per key."""
    env_file = tmp_path / ".env"
    env_file.write_text("ODYSSEY_API_KEY=file-key\nOLLAMA_MODEL=file-model\nHOWTO_LOG_CAPACITY=42\n")

    config = AppConfig.load(
        overrides={"OLLAMA_MODEL": "override-model"},
        environment={"ODYSSEY_API_KEY": "env-key", "OPENROUTER_APP_TITLE": "HowTo"},
        env_file=env_file,
    )

    assert config.video.api_key == "env-key"
    assert config.local_chat.model == "override-model"
    assert config.cloud_chat.app_title == "HowTo"
    assert config.event_log.capacity == 42


def test_app_config_unbounded_polling(tmp_path):
    """Test that zero max attempts means poll without a bound."""
    config = AppConfig.load(environment={"ODYSSEY_MAX_POLL_ATTEMPTS": "0"}, env_file=tmp_path / "x")
    assert config.video.max_poll_attempts is None


@pytest.mark.parametrize(
    "key,value",
    [
        ("ODYSSEY_MAX_POLL_ATTEMPTS", "lots"),
        ("ODYSSEY_POLL_INTERVAL", "soon"),
        ("ODYSSEY_POLL_INTERVAL", "-1"),
        ("HOWTO_LOG_CAPACITY", "0"),
        ("ODYSSEY_POLL_INTERVAL", "inf"),
        ("ODYSSEY_REQUEST_TIMEOUT", "nan"),
    ],
)
def test_app_config_invalid_values(tmp_path, key, value):
    """Test that malformed numbers raise InvalidConfiguration."""
    with pytest.raises(InvalidConfiguration, match=key):
        AppConfig.load(environment={key: value}, env_file=tmp_path / "x")


def test_redacted_masks_secrets():
    """Test that secrets are masked for display."""
    config = AppConfig.model_validate({
        "video": {"api_key": "odyssey-secret-key"},
        "cloud_chat": {"api_key": ""},
    })

    redacted = config.redacted()

    assert redacted["video"]["api_key"] == "odys...-key"
    assert redacted["cloud_chat"]["api_key"] == "(not set)"
    assert redacted["local_chat"]["model"] == "llama3.2-vision:11b"
