"""Runtime configuration.

Resolution order (later wins):
1. DEFAULT_CONFIG below.
2. An optional JSON file.
3. Environment variables, after loading a .env file with python-dotenv.

Environment variables:
    MAFIA_EVENT_LOG_PATH      JSONL file mirroring the audit log
    MAFIA_CHECK_INVARIANTS    "true"/"false"
    MAFIA_BIG_BOSS_THRESHOLD  integer
    MAFIA_LOG_LEVEL           logging level name
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import find_dotenv, load_dotenv


DEFAULT_CONFIG: dict[str, Any] = {
    "event_log_path": None,
    "check_invariants": True,
    "big_boss_threshold": 0,
    "log_level": "WARNING",
}

ENV_PREFIX = "MAFIA_"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _parse_log_level(name: str, raw: str) -> str:
    level = raw.strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"{name} is not a logging level: {raw!r}")
    return level


def _parse_path(name: str, raw: str) -> Optional[str]:
    return raw.strip() or None


_PARSERS = {
    "event_log_path": _parse_path,
    "check_invariants": _parse_bool,
    "big_boss_threshold": _parse_int,
    "log_level": _parse_log_level,
}


def load_config(
    config_path: Optional[Path] = None,
    env_file: Optional[Path] = None,
) -> dict[str, Any]:
    """Build the configuration dict.

    Args:
        config_path: Optional JSON file with any subset of the keys in
            DEFAULT_CONFIG.
        env_file: .env file to load. When omitted, python-dotenv searches
            for a .env file from the working directory upwards. Variables
            already set in the environment are not overridden.

    Raises:
        ValueError: On unknown keys in the JSON file or unparseable
            environment values.
    """
    config = dict(DEFAULT_CONFIG)

    if config_path is not None:
        with config_path.open("r", encoding="utf-8") as handle:
            file_config = json.load(handle)
        unknown = set(file_config) - set(DEFAULT_CONFIG)
        if unknown:
            raise ValueError(f"Unknown config keys in {config_path}: {sorted(unknown)}")
        config.update(file_config)

    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv(find_dotenv(usecwd=True))

    for key, parse in _PARSERS.items():
        env_name = ENV_PREFIX + key.upper()
        raw = os.getenv(env_name)
        if raw is not None:
            config[key] = parse(env_name, raw)

    return config
