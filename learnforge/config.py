"""
Configuration Management
========================

Handles loading enforcement thresholds from environment variables and config files.
"""

import json
import logging
import os
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from typing import Optional, Union

from learnforge.db.connection import sqlite_url
from learnforge.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "learnforge_config.json"
ENV_PREFIX = "LEARNFORGE_"
DEFAULT_DB_PATH = Path(".learnforge") / "enforcement.db"


@dataclass
class EnforcementConfig:
    """Thresholds and amounts used by the enforcement engine."""

    # Minimum time on a step before completion counts (minutes)
    minimum_step_minutes: int = 2

    # Skips before serious consequences
    skip_warning_threshold: int = 2
    skip_consequence_threshold: int = 3

    # Failure thresholds (attempt number on a step)
    failures_before_remediation: int = 2
    failures_before_slowdown: int = 4

    # Study debt amounts (minutes)
    skip_debt_minutes: int = 10
    failure_debt_minutes: int = 15
    abandon_debt_minutes: int = 20
    debt_expiry_days: int = 7
    streak_debt_minutes_per_day: int = 5
    streak_debt_cap_minutes: int = 60

    # Inactivity thresholds (days)
    inactivity_warning_days: int = 3
    inactivity_consequence_days: int = 7

    # Proof requirements
    min_explanation_length: int = 100
    min_explanation_words: int = 15
    min_explanation_unique_words: int = 10
    min_quiz_score: int = 70
    remediation_quiz_score: int = 80

    # Window for "recent" skip/failure counts in the user state
    recent_window_days: int = 30

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "EnforcementConfig":
        """
        Load configuration from multiple sources in precedence order:
        1. Environment variables (LEARNFORGE_<FIELD>)
        2. Config file (learnforge_config.json, or `path`)
        3. Default values
        """
        known = {f.name for f in fields(cls)}
        config: dict = {}

        config_path = Path(path) if path else Path(CONFIG_FILENAME)
        if config_path.exists():
            try:
                with open(config_path, "r") as f:
                    file_config = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigError(f"Failed to load config file {config_path}: {e}") from e

            for key, value in file_config.items():
                if key not in known:
                    logger.warning("Ignoring unknown config key %r in %s", key, config_path)
                    continue
                config[key] = _coerce_int(key, value)

        for name in known:
            env_value = os.environ.get(ENV_PREFIX + name.upper())
            if env_value:
                config[name] = _coerce_int(name, env_value)

        return cls(**config)


def _coerce_int(name: str, value) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from e


def get_database_url() -> str:
    """Database URL from LEARNFORGE_DB_URL, else a local SQLite file."""
    env_url = os.environ.get(ENV_PREFIX + "DB_URL")
    if env_url:
        return env_url
    return sqlite_url(DEFAULT_DB_PATH)
