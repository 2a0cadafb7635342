"""
Application configuration.

Pydantic Settings model for the loan XIRR service. Values are read from
environment variables and an optional ``.env`` file; solver policy
constants live here so deployments can override them without code changes.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Database ---
    DATABASE_URI: str = "sqlite:///data/app.db"

    # --- Solver policy ---
    XIRR_GUESS: float = 0.1
    XIRR_TOLERANCE: float = 0.001
    XIRR_MAX_ITERATIONS: int = 100

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""  # empty: console only
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_solver_policy(self) -> "AppConfig":
        """Reject solver settings that would make every run fail."""
        if not self.XIRR_TOLERANCE > 0:
            raise ValueError("XIRR_TOLERANCE must be greater than zero")
        if self.XIRR_MAX_ITERATIONS < 1:
            raise ValueError("XIRR_MAX_ITERATIONS must be at least 1")

        if not Path(".env").exists():
            logging.getLogger("loan_xirr.config").debug(
                "No .env file found; configuration loaded from environment or defaults."
            )
        return self

    @property
    def log_level(self) -> int:
        """Numeric level for ``LOG_LEVEL``; unknown names fall back to INFO."""
        level = logging.getLevelName(self.LOG_LEVEL.upper())
        return level if isinstance(level, int) else logging.INFO


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Prefer passing an ``AppConfig`` explicitly (the app factory and the
    recalculator both accept one); this exists for entry points that have
    nothing to inject.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance


def reset_config() -> None:
    """Drop the cached singleton so the next ``get_config`` re-reads the environment."""
    global _config_instance
    with _config_lock:
        _config_instance = None
