from __future__ import annotations
import io
import json
import os
import logging
from logging.config import dictConfig
from typing import Optional

import yaml

from .config import get_config


def _stdout_only(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "std": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"}
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "std",
                "level": level,
            }
        },
        "loggers": {
            "storeclass": {"level": level, "handlers": ["stdout"], "propagate": False},
        },
    }


def load_logging_config(path: str) -> dict:
    """Read a dictConfig mapping from a JSON or YAML file."""
    with open(path, "r", encoding="utf-8") as fh:
        text = fh.read()
    try:
        # Try JSON first
        return json.loads(text)
    except json.JSONDecodeError:
        return yaml.safe_load(io.StringIO(text))


def setup_logging(level: Optional[str] = None, config_path_env: str = "STORECLASS_LOGCFG") -> None:
    """
    Configure logging for applications embedding storeclass.

    The library itself never calls this; it only emits records through
    ``logging.getLogger(__name__)``.
    - If STORECLASS_LOGCFG points to a YAML/JSON dictConfig file, we load it.
    - Otherwise the ``storeclass`` logger tree gets a stdout handler at
      ``level`` (or the configured STORECLASS_LOG_LEVEL).
    """
    cfg_path = os.getenv(config_path_env, "").strip()
    if cfg_path and os.path.exists(cfg_path):
        dictConfig(load_logging_config(cfg_path))
        return

    level = (level or get_config().log_level).upper()
    dictConfig(_stdout_only(level))


__all__ = ["setup_logging", "load_logging_config"]
