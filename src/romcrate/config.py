"""Configuration settings for romcrate."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

CONFIG_ENV_VAR = "ROMCRATE_CONFIG"
DB_PATH_ENV_VAR = "ROMCRATE_DB_PATH"

DEFAULT_HOME = Path.home() / ".romcrate"


@dataclass
class Settings:
    """Application settings.

    Values come from (lowest to highest precedence): defaults, an optional
    YAML config file, environment variables, and CLI options applied by
    the caller.
    """

    # Index database
    db_path: Path = field(default_factory=lambda: DEFAULT_HOME / "romcrate.db")

    # Where rebuilt game archives are written
    output_dir: Path = field(default_factory=Path.cwd)

    # Root log level for the CLI
    log_level: str = "WARNING"

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Settings":
        """Load settings from a YAML file and the environment.

        Args:
            path: Config file. If None, uses:
                  1. ROMCRATE_CONFIG env var
                  2. ~/.romcrate/config.yaml (if it exists)

        Returns:
            Settings instance

        Raises:
            ValueError: If the config file is not a valid YAML mapping or names
                an unknown log level
        """
        if path is None:
            env_path = os.environ.get(CONFIG_ENV_VAR)
            path = Path(env_path) if env_path else DEFAULT_HOME / "config.yaml"

        path = Path(path)
        settings = cls()

        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                try:
                    raw = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ValueError(f"Invalid YAML in config file {path}: {e}") from e

            if not isinstance(raw, dict):
                raise ValueError(f"Config file must be a YAML mapping: {path}")

            known = {f.name for f in fields(cls)}
            for key, value in raw.items():
                if key not in known or value is None:
                    continue
                if key in ("db_path", "output_dir"):
                    value = Path(value).expanduser()
                elif key == "log_level":
                    value = str(value).upper()
                    if not isinstance(logging.getLevelName(value), int):
                        raise ValueError(f"Unknown log_level {value!r} in {path}")
                setattr(settings, key, value)

        env_db = os.environ.get(DB_PATH_ENV_VAR)
        if env_db:
            settings.db_path = Path(env_db).expanduser()

        return settings
