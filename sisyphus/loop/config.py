"""
Loop Configuration

Reads configuration from environment variables with sensible defaults.
Malformed numbers and booleans fall back to the default with a warning;
only missing credentials for the selected provider are fatal.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from .prompts import PromptSet

logger = logging.getLogger(__name__)

TRUE_VALUES = ("true", "1", "yes", "on")
FALSE_VALUES = ("false", "0", "no", "off")


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value


def _env_int(name: str, default: int, minimum: Optional[int] = None) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {raw!r}, using default {default}")
        return default
    if minimum is not None and value < minimum:
        logger.warning(f"{name}={value} is below {minimum}, using default {default}")
        return default
    return value


def _env_float(name: str, default: float, minimum: Optional[float] = None) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        logger.warning(f"Invalid number for {name}: {raw!r}, using default {default}")
        return default
    if minimum is not None and value < minimum:
        logger.warning(f"{name}={value} is below {minimum}, using default {default}")
        return default
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    logger.warning(f"Invalid boolean for {name}: {raw!r}, using default {default}")
    return default


@dataclass
class LoopConfig:
    """Configuration for the generation loop and its HTTP surface."""

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    # Provider selection: anthropic, openai, mock
    provider: str = "anthropic"
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None

    # Model
    model_name: str = "claude-sonnet-4-5-20250929"
    temperature: float = 1.0
    max_tokens: int = 4096
    thinking: bool = False
    thinking_budget_tokens: int = 2000

    # Pacing
    chars_per_batch: int = 1
    batch_delay_ms: int = 53
    early_continue_ratio: float = 0.8
    reschedule_delay_ms: int = 100
    retry_delay_seconds: float = 5.0

    # Bounds
    max_output_history: int = 3000
    max_saved_messages: int = 5
    viewer_buffer_size: int = 10000

    # Context reset
    context_reset_tokens: int = 5000
    persistent_token_limit: int = 128

    # Prompt overrides (None means use the default template)
    system_prompt: Optional[str] = None
    prompt_first: Optional[str] = None
    prompt_reset: Optional[str] = None
    prompt_continue: Optional[str] = None

    _prompts: Optional[PromptSet] = field(default=None, init=False, repr=False, compare=False)

    @classmethod
    def from_env(cls) -> "LoopConfig":
        """Load configuration from environment variables."""
        return cls(
            host=_env_str("HOST", "0.0.0.0"),
            port=_env_int("PORT", 3000, minimum=1),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),

            provider=_env_str("MODEL_PROVIDER", "anthropic").lower(),
            anthropic_api_key=_env_str("ANTHROPIC_API_KEY"),
            openai_api_key=_env_str("OPENAI_API_KEY"),
            openai_base_url=_env_str("OPENAI_BASE_URL"),

            model_name=_env_str("MODEL_NAME", "claude-sonnet-4-5-20250929"),
            temperature=_env_float("MODEL_TEMPERATURE", 1.0, minimum=0.0),
            max_tokens=_env_int("MODEL_MAX_TOKENS", 4096, minimum=1),
            thinking=_env_bool("MODEL_THINKING", False),
            thinking_budget_tokens=_env_int("THINKING_BUDGET_TOKENS", 2000, minimum=1024),

            chars_per_batch=_env_int("CHARS_PER_BATCH", 1, minimum=1),
            batch_delay_ms=_env_int("BATCH_DELAY_MS", 53, minimum=0),
            early_continue_ratio=_env_float("EARLY_CONTINUE_RATIO", 0.8, minimum=0.0),
            reschedule_delay_ms=_env_int("RESCHEDULE_DELAY_MS", 100, minimum=0),
            retry_delay_seconds=_env_float("RETRY_DELAY_SECONDS", 5.0, minimum=0.0),

            max_output_history=_env_int("MAX_OUTPUT_HISTORY", 3000, minimum=1),
            max_saved_messages=_env_int("MAX_SAVED_MESSAGES", 5, minimum=1),
            viewer_buffer_size=_env_int("VIEWER_BUFFER_SIZE", 10000, minimum=1),

            context_reset_tokens=_env_int("CONTEXT_RESET_TOKENS", 5000, minimum=1),
            persistent_token_limit=_env_int("PERSISTENT_TOKEN_LIMIT", 128, minimum=1),

            # Prompts (use \n for newlines in .env)
            system_prompt=_env_str("SYSTEM_PROMPT"),
            prompt_first=_env_str("PROMPT_FIRST"),
            prompt_reset=_env_str("PROMPT_RESET"),
            prompt_continue=_env_str("PROMPT_CONTINUE"),
        )

    @property
    def prompts(self) -> PromptSet:
        """The prompt templates, built (and validated) on first use."""
        if self._prompts is None:
            self._prompts = PromptSet.build(
                self.persistent_token_limit,
                system=self.system_prompt,
                first=self.prompt_first,
                reset=self.prompt_reset,
                cont=self.prompt_continue,
            )
        return self._prompts

    @property
    def batch_delay(self) -> float:
        return self.batch_delay_ms / 1000

    @property
    def reschedule_delay(self) -> float:
        return self.reschedule_delay_ms / 1000

    def inference_params(self):
        from .providers import InferenceParams

        params = InferenceParams(
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            thinking=self.thinking,
            thinking_budget_tokens=self.thinking_budget_tokens,
        )
        params.validate()
        return params

    def create_provider(self):
        """
        Create the upstream provider selected by ``provider``.

        Raises:
            ValueError: Missing credentials or unknown provider name
        """
        from .providers import (
            AnthropicProvider,
            MockProvider,
            OpenAICompatibleProvider,
        )

        if self.provider == "anthropic":
            if not self.anthropic_api_key:
                raise ValueError("ANTHROPIC_API_KEY not set")
            return AnthropicProvider(
                api_key=self.anthropic_api_key,
                model=self.model_name,
                params=self.inference_params(),
            )

        elif self.provider == "openai":
            # Local servers don't need a key, api.openai.com does
            if not self.openai_api_key and not self.openai_base_url:
                raise ValueError("OPENAI_API_KEY not set")
            return OpenAICompatibleProvider(
                model=self.model_name,
                api_key=self.openai_api_key,
                base_url=self.openai_base_url,
                params=self.inference_params(),
                provider_name="openai" if not self.openai_base_url else "local",
            )

        elif self.provider == "mock":
            return MockProvider(model=self.model_name)

        else:
            raise ValueError(f"Unknown provider: {self.provider}")

    def describe(self) -> list[str]:
        """Startup banner lines."""
        return [
            f"Provider: {self.provider}",
            f"Model: {self.model_name}",
            f"Temperature: {self.temperature}",
            f"Thinking: {'enabled' if self.thinking else 'disabled'}",
            f"Persistent tokens: {self.persistent_token_limit} (x2 messages shown at reset)",
            f"Reset at: {self.context_reset_tokens} tokens",
        ]


# Singleton config instance
_config: Optional[LoopConfig] = None


def get_config() -> LoopConfig:
    """Get the global loop config, loading from env if needed."""
    global _config
    if _config is None:
        _config = LoopConfig.from_env()
    return _config


def reload_config() -> LoopConfig:
    """Force reload config from environment."""
    global _config
    _config = LoopConfig.from_env()
    return _config
