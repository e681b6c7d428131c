"""
Configuration for the Coding Prompt Evaluation Harness

This module defines the configuration dataclass used to initialize the
harness. Configuration is:
    1. Read from the process environment, after an optional .env file
    2. Checked once when loaded (provider name, rate limit, data path)
    3. Free of credential checks: a missing API key is reported only when
       a model call is about to be made (MissingCredentialError)

Configuration Hierarchy:
    EvaluationConfiguration
    ├── LLM Settings (provider, API keys, model names, rate limit)
    ├── Storage Settings (JSON data directory)
    └── Logging Settings (level)

Usage:
    from coding_prompt_eval.core.config import EvaluationConfiguration

    config = EvaluationConfiguration.from_environment()

Author: Shubham Singh
Date: October 2026
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from coding_prompt_eval.core.enums import ModelOption
from coding_prompt_eval.core.exceptions import ConfigurationError


# =============================================================================
# STAGE 1: DEFAULT VALUES
# =============================================================================


class ConfigDefaults:
    """Values used when the environment leaves a setting unset."""

    # -------------------------------------------------------------------------
    # 1.1 Model Service
    # -------------------------------------------------------------------------
    DEFAULT_PROVIDER = "gemini"
    DEFAULT_GEMINI_MODEL = ModelOption.GEMINI_2_0_FLASH.value
    DEFAULT_OPENAI_MODEL = "gpt-4o"
    DEFAULT_RATE_LIMIT_DELAY = 0.5

    # -------------------------------------------------------------------------
    # 1.2 Storage and Logging Defaults
    # -------------------------------------------------------------------------
    DEFAULT_DATA_DIR = "coding_eval_data"
    DEFAULT_LOG_LEVEL = "INFO"


SUPPORTED_PROVIDERS = ("gemini", "openai")

# Keys under which an API key may be kept in the persisted settings store
API_KEY_SETTINGS = {
    "gemini": "gemini_api_key",
    "openai": "openai_api_key",
}


# =============================================================================
# STAGE 2: CONFIGURATION DATACLASS
# =============================================================================


@dataclass
class EvaluationConfiguration:
    """
    Configuration for the evaluation harness.

    What it does:
        Encapsulates every setting needed to build an EvaluationHarness:
        which model provider to call, the keys, and where to keep data.

    Example:
        >>> config = EvaluationConfiguration.from_environment()
        >>> config.active_model
        'gemini-2.0-flash-exp'
    """

    # -------------------------------------------------------------------------
    # 2.1 Model Service
    # -------------------------------------------------------------------------
    llm_provider: str = ConfigDefaults.DEFAULT_PROVIDER
    """Provider behind every model call: 'gemini' or 'openai'."""

    gemini_api_key: Optional[str] = None
    """Google Gemini API key."""

    gemini_model: str = ConfigDefaults.DEFAULT_GEMINI_MODEL
    """Default Gemini model for extraction, test runs and improvement."""

    openai_api_key: Optional[str] = None
    """OpenAI API key."""

    openai_model: str = ConfigDefaults.DEFAULT_OPENAI_MODEL
    """Default OpenAI model."""

    rate_limit_delay: float = ConfigDefaults.DEFAULT_RATE_LIMIT_DELAY
    """Delay between API calls in seconds."""

    # -------------------------------------------------------------------------
    # 2.2 Storage Configuration
    # -------------------------------------------------------------------------
    data_directory: str = ConfigDefaults.DEFAULT_DATA_DIR
    """Directory holding the JSON store (cases, runs, prompts, settings)."""

    # -------------------------------------------------------------------------
    # 2.3 Logging Configuration
    # -------------------------------------------------------------------------
    log_level: str = ConfigDefaults.DEFAULT_LOG_LEVEL

    # -------------------------------------------------------------------------
    # 2.4 Derived Properties
    # -------------------------------------------------------------------------

    @property
    def active_model(self) -> str:
        """Model name of the selected provider."""
        return self.gemini_model if self.llm_provider == "gemini" else self.openai_model

    @property
    def active_api_key(self) -> Optional[str]:
        """API key of the selected provider, if configured in the environment."""
        return self.gemini_api_key if self.llm_provider == "gemini" else self.openai_api_key

    @property
    def api_key_setting(self) -> str:
        """Settings-store key that may hold the selected provider's API key."""
        return API_KEY_SETTINGS[self.llm_provider]

    # -------------------------------------------------------------------------
    # 2.5 Validation Methods
    # -------------------------------------------------------------------------

    def validate(self) -> None:
        """
        Reject settings the harness cannot start with.

        Raises:
            ConfigurationError: Unknown provider, negative delay, or a
                data path that is a file
        """
        if self.llm_provider not in SUPPORTED_PROVIDERS:
            raise ConfigurationError(
                f"Unsupported LLM provider: {self.llm_provider}",
                context={"supported": list(SUPPORTED_PROVIDERS)},
            )

        if self.rate_limit_delay < 0:
            raise ConfigurationError(
                f"Rate limit delay must be >= 0, got {self.rate_limit_delay}",
                context={"setting": "RATE_LIMIT_DELAY"},
            )

        data_dir = Path(self.data_directory)
        if data_dir.exists() and not data_dir.is_dir():
            raise ConfigurationError(
                f"Data directory is not a directory: {self.data_directory}",
                context={"setting": "DATA_DIRECTORY", "path": str(data_dir)},
            )

    # -------------------------------------------------------------------------
    # 2.6 Factory Methods
    # -------------------------------------------------------------------------

    @classmethod
    def from_environment(
        cls, env_file: Optional[str] = None, validate_on_load: bool = True
    ) -> "EvaluationConfiguration":
        """
        Build a configuration from LLM_PROVIDER, *_API_KEY, *_MODEL,
        RATE_LIMIT_DELAY, DATA_DIRECTORY and LOG_LEVEL.

        STAGE 1: Load .env file (if specified or found in the working directory)
        STAGE 2: Read environment variables
        STAGE 3: Validate configuration (optional)

        Raises:
            ConfigurationError: If settings are invalid
        """
        # STAGE 1: Load .env file
        if env_file:
            load_dotenv(env_file)
        else:
            default_env = Path.cwd() / ".env"
            if default_env.exists():
                load_dotenv(default_env)

        # STAGE 2: Read environment variables
        gemini_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        openai_key = os.getenv("OPENAI_API_KEY")

        try:
            rate_limit_delay = float(
                os.getenv("RATE_LIMIT_DELAY", ConfigDefaults.DEFAULT_RATE_LIMIT_DELAY)
            )
        except ValueError as e:
            raise ConfigurationError(
                "RATE_LIMIT_DELAY must be a number", context={"setting": "RATE_LIMIT_DELAY"}
            ) from e

        config = cls(
            llm_provider=os.getenv("LLM_PROVIDER", ConfigDefaults.DEFAULT_PROVIDER).lower(),
            gemini_api_key=gemini_key,
            gemini_model=os.getenv("GEMINI_MODEL", ConfigDefaults.DEFAULT_GEMINI_MODEL),
            openai_api_key=openai_key,
            openai_model=os.getenv("OPENAI_MODEL", ConfigDefaults.DEFAULT_OPENAI_MODEL),
            rate_limit_delay=rate_limit_delay,
            data_directory=os.getenv("DATA_DIRECTORY", ConfigDefaults.DEFAULT_DATA_DIR),
            log_level=os.getenv("LOG_LEVEL", ConfigDefaults.DEFAULT_LOG_LEVEL).upper(),
        )

        # STAGE 3: Validate
        if validate_on_load:
            config.validate()

        return config

    def to_dict(self) -> dict:
        """Settings with keys masked, for the startup log line."""
        return {
            "llm_provider": self.llm_provider,
            "gemini_model": self.gemini_model,
            "openai_model": self.openai_model,
            "gemini_api_key": "***" if self.gemini_api_key else None,
            "openai_api_key": "***" if self.openai_api_key else None,
            "rate_limit_delay": self.rate_limit_delay,
            "data_directory": self.data_directory,
            "log_level": self.log_level,
        }
