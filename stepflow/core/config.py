"""
Pydantic Settings-based configuration for stepflow.

Timing, viewport, export and explanation parameters are loaded from
environment variables (prefix ``STEPFLOW_``) or a .env file. Strict
validation is enforced at startup.
"""

import sys
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """
    Application configuration with strict validation.

    API keys are optional: without one the explanation agent answers from
    the scenario's own narrative copy.
    """

    model_config = SettingsConfigDict(
        env_prefix="STEPFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============================================
    # Engine Timing
    # ============================================

    autoplay_interval_ms: int = Field(
        default=2000,
        ge=100,
        le=60000,
        description="Autoplay cadence between step advances",
    )

    settle_delay_ms: int = Field(
        default=50,
        ge=0,
        le=2000,
        description="Delay between a step change and camera framing",
    )

    camera_duration_ms: int = Field(
        default=800,
        ge=0,
        le=10000,
        description="Duration of step-driven camera transitions",
    )

    initial_fit_delay_ms: int = Field(
        default=200,
        ge=0,
        le=5000,
        description="Delay before the fit-all framing on first mount",
    )

    # ============================================
    # Viewport Configuration
    # ============================================

    viewport_width: int = Field(
        default=1280,
        ge=320,
        le=3840,
        description="Diagram viewport width in pixels",
    )

    viewport_height: int = Field(
        default=720,
        ge=240,
        le=2160,
        description="Diagram viewport height in pixels",
    )

    device_class: Literal["auto", "compact", "spacious"] = Field(
        default="auto",
        description="Viewport profile; 'auto' applies the device heuristic",
    )

    fallback_node_width: float = Field(
        default=180.0,
        gt=0,
        description="Width assumed for nodes that have not been measured",
    )

    fallback_node_height: float = Field(
        default=60.0,
        gt=0,
        description="Height assumed for nodes that have not been measured",
    )

    theme_mode: Literal["light", "dark"] = Field(
        default="dark",
        description="Default palette when no preference has been stored",
    )

    # ============================================
    # Export Configuration
    # ============================================

    export_fps: int = Field(
        default=12,
        ge=1,
        le=60,
        description="Frame rate for GIF export",
    )

    hold_frames: int = Field(
        default=6,
        ge=0,
        le=120,
        description="Extra frames held on the terminal step before looping",
    )

    output_dir: Path = Field(
        default=Path("./output"),
        description="Directory for exported artifacts",
    )

    chromium_executable_path: Optional[Path] = Field(
        default=None,
        description="Path to Chromium executable (auto-detected if not set)",
    )

    browser_timeout_ms: int = Field(
        default=30000,
        ge=1000,
        le=300000,
        description="Browser operation timeout in milliseconds",
    )

    ffmpeg_path: Optional[Path] = Field(
        default=None,
        description="Path to FFmpeg executable (auto-detected if not set)",
    )

    # ============================================
    # Explanation Provider Configuration
    # ============================================

    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key (optional, must start with 'sk-' if provided)",
    )

    gemini_api_key: Optional[str] = Field(
        default=None,
        description="Google Gemini API key (optional)",
    )

    anthropic_api_key: Optional[str] = Field(
        default=None,
        description="Anthropic API key (optional, must start with 'sk-ant-' if provided)",
    )

    openai_model: str = Field(
        default="gpt-3.5-turbo",
        description="LiteLLM model identifier for the OpenAI provider",
    )

    gemini_model: str = Field(
        default="gemini/gemini-2.5-flash-lite",
        description="LiteLLM model identifier for the Gemini provider",
    )

    claude_model: str = Field(
        default="anthropic/claude-sonnet-4-20250514",
        description="LiteLLM model identifier for the Claude provider",
    )

    llm_timeout_s: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Timeout for explanation requests",
    )

    use_hardcoded_explanations: bool = Field(
        default=False,
        description="Always answer from scenario copy, never call a provider",
    )

    preferences_path: Path = Field(
        default=Path.home() / ".stepflow" / "preferences.json",
        description="JSON file backing persisted preferences",
    )

    # ============================================
    # Logging Configuration
    # ============================================

    log_level: str = Field(
        default="WARNING",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    structured_logging: bool = Field(
        default=True,
        description="Enable structured JSON logging",
    )

    # ============================================
    # Validators
    # ============================================

    @field_validator("openai_api_key")
    @classmethod
    def validate_openai_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate OpenAI API key format if provided."""
        if v is not None and not v.startswith("sk-"):
            raise ValueError("STEPFLOW_OPENAI_API_KEY must start with 'sk-'")
        return v

    @field_validator("anthropic_api_key")
    @classmethod
    def validate_anthropic_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate Anthropic API key format if provided."""
        if v is not None and not v.startswith("sk-ant-"):
            raise ValueError("STEPFLOW_ANTHROPIC_API_KEY must start with 'sk-ant-'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v_upper

    @model_validator(mode="after")
    def validate_timing(self) -> "Config":
        """Framing must settle well inside one autoplay interval."""
        if self.settle_delay_ms >= self.autoplay_interval_ms:
            raise ValueError(
                "STEPFLOW_SETTLE_DELAY_MS must be smaller than STEPFLOW_AUTOPLAY_INTERVAL_MS"
            )
        return self

    def api_key_for(self, provider: str) -> Optional[str]:
        """Return the configured key for an explanation provider."""
        return {
            "openai": self.openai_api_key,
            "gemini": self.gemini_api_key,
            "claude": self.anthropic_api_key,
        }.get(provider)

    def model_for(self, provider: str) -> str:
        """Return the LiteLLM model identifier for an explanation provider."""
        return {
            "openai": self.openai_model,
            "gemini": self.gemini_model,
            "claude": self.claude_model,
        }.get(provider, self.openai_model)


def load_config() -> Config:
    """
    Load and validate configuration.

    Terminates the process immediately if configuration is invalid.

    Returns:
        Config: Validated configuration object
    """
    try:
        return Config()
    except Exception as e:
        print(f"FATAL: Configuration validation failed: {e}", file=sys.stderr)
        sys.exit(1)


# Global configuration instance, initialized on first use
_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance.

    Returns:
        Config: The global configuration object
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config
