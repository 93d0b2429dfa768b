"""
Runtime configuration.

Settings come from the process environment, optionally seeded from a
``.env`` file in the working directory. Nothing here is required: without an
``OPENAI_API_KEY`` the pipeline simply runs its pattern extractors alone.
"""

import logging
import os
from dataclasses import dataclass
from datetime import date
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError


DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT = 120.0     # seconds per language-model request
DEFAULT_MAX_RETRIES = 3
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class Settings:
    """Configuration shared by every parse call."""
    openai_api_key: Optional[str] = None   # Credential; None means AI stages are skipped
    model: str = DEFAULT_MODEL             # Chat completion model name
    timeout: float = DEFAULT_TIMEOUT       # Hard per-request timeout in seconds
    max_retries: int = DEFAULT_MAX_RETRIES # Attempt ceiling for one language-model call
    default_year: Optional[int] = None     # Year appended to "May 12"-style dates
    semester_start: Optional[date] = None  # Used for week-derived dates and bound warnings
    semester_end: Optional[date] = None
    log_level: str = "INFO"

    @property
    def has_credential(self) -> bool:
        return bool(self.openai_api_key and self.openai_api_key.strip())

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Build settings from environment variables.

        Args:
            env_file: Optional path to a dotenv file. When omitted, a ``.env``
                in the current directory is loaded if present.

        Returns:
            Settings instance

        Raises:
            ConfigurationError: If a numeric or date variable cannot be parsed
        """
        load_dotenv(env_file)

        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            model=os.getenv("STUDIORA_MODEL", DEFAULT_MODEL),
            timeout=_env_number("STUDIORA_TIMEOUT", DEFAULT_TIMEOUT, float),
            max_retries=_env_number("STUDIORA_MAX_RETRIES", DEFAULT_MAX_RETRIES, int),
            default_year=_env_number("STUDIORA_DEFAULT_YEAR", None, int),
            semester_start=_env_date("STUDIORA_SEMESTER_START"),
            semester_end=_env_date("STUDIORA_SEMESTER_END"),
            log_level=os.getenv("STUDIORA_LOG_LEVEL", "INFO").upper(),
        )


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _env_date(name: str) -> Optional[date]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw.strip())
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an ISO date (YYYY-MM-DD), got {raw!r}") from e


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for command-line use."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
