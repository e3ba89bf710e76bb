import pytest

from sisyphus.loop.config import LoopConfig, get_config, reload_config
from sisyphus.loop.prompts import TemplateError
from sisyphus.loop.providers import AnthropicProvider, MockProvider, OpenAICompatibleProvider


ENV_VARS = [
    "PORT", "HOST", "LOG_LEVEL", "MODEL_PROVIDER", "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY", "OPENAI_BASE_URL", "MODEL_NAME", "MODEL_TEMPERATURE",
    "MODEL_MAX_TOKENS", "MODEL_THINKING", "THINKING_BUDGET_TOKENS",
    "CHARS_PER_BATCH", "BATCH_DELAY_MS", "MAX_OUTPUT_HISTORY",
    "MAX_SAVED_MESSAGES", "CONTEXT_RESET_TOKENS", "PERSISTENT_TOKEN_LIMIT",
    "RETRY_DELAY_SECONDS", "RESCHEDULE_DELAY_MS", "EARLY_CONTINUE_RATIO",
    "VIEWER_BUFFER_SIZE", "SYSTEM_PROMPT", "PROMPT_FIRST", "PROMPT_RESET",
    "PROMPT_CONTINUE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = LoopConfig.from_env()

    assert config.port == 3000
    assert config.provider == "anthropic"
    assert config.model_name == "claude-sonnet-4-5-20250929"
    assert config.max_tokens == 4096
    assert config.chars_per_batch == 1
    assert config.batch_delay == 0.053
    assert config.max_output_history == 3000
    assert config.max_saved_messages == 5
    assert config.context_reset_tokens == 5000
    assert config.persistent_token_limit == 128
    assert config.retry_delay_seconds == 5.0
    assert config.reschedule_delay == 0.1


def test_values_from_env(monkeypatch):
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("CONTEXT_RESET_TOKENS", "4000")
    monkeypatch.setenv("MODEL_THINKING", "yes")
    monkeypatch.setenv("MODEL_PROVIDER", "Mock")

    config = LoopConfig.from_env()

    assert config.port == 8080
    assert config.context_reset_tokens == 4000
    assert config.thinking is True
    assert config.provider == "mock"


def test_invalid_values_fall_back_to_defaults(monkeypatch, caplog):
    monkeypatch.setenv("PORT", "eighty")
    monkeypatch.setenv("BATCH_DELAY_MS", "-5")
    monkeypatch.setenv("MODEL_TEMPERATURE", "warm")
    monkeypatch.setenv("MODEL_THINKING", "maybe")

    config = LoopConfig.from_env()

    assert config.port == 3000
    assert config.batch_delay_ms == 53
    assert config.temperature == 1.0
    assert config.thinking is False
    assert "Invalid integer for PORT" in caplog.text


def test_prompt_overrides_are_validated(monkeypatch):
    monkeypatch.setenv("PROMPT_CONTINUE", "Go on (#MOOD)")
    config = LoopConfig.from_env()

    with pytest.raises(TemplateError):
        config.prompts


def test_prompt_overrides_unescape_newlines(monkeypatch):
    monkeypatch.setenv("SYSTEM_PROMPT", "Cycle #CYCLE\\nBe brief.")
    config = LoopConfig.from_env()

    assert config.prompts.system.text == "Cycle #CYCLE\nBe brief."


def test_missing_anthropic_key_is_fatal():
    config = LoopConfig.from_env()
    with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
        config.create_provider()


def test_create_providers(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    assert isinstance(LoopConfig.from_env().create_provider(), AnthropicProvider)

    monkeypatch.setenv("MODEL_PROVIDER", "openai")
    monkeypatch.setenv("OPENAI_BASE_URL", "http://localhost:8000/v1")
    provider = LoopConfig.from_env().create_provider()
    assert isinstance(provider, OpenAICompatibleProvider)
    assert provider.name.startswith("local")

    monkeypatch.setenv("MODEL_PROVIDER", "mock")
    assert isinstance(LoopConfig.from_env().create_provider(), MockProvider)

    monkeypatch.setenv("MODEL_PROVIDER", "carrier-pigeon")
    with pytest.raises(ValueError, match="Unknown provider"):
        LoopConfig.from_env().create_provider()


def test_thinking_budget_must_fit_in_max_tokens():
    config = LoopConfig(thinking=True, thinking_budget_tokens=4096, max_tokens=4096)
    with pytest.raises(ValueError):
        config.inference_params()


def test_reload_config_replaces_singleton(monkeypatch):
    first = reload_config()
    assert get_config() is first

    monkeypatch.setenv("PORT", "9999")
    second = reload_config()
    assert second is not first
    assert get_config().port == 9999
