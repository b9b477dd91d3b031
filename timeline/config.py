"""
Engine configuration, stored as JSON next to the repo.

Missing keys fall back to DEFAULT_CONFIG, so older config files keep working.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "engine.json"

DEFAULT_CONFIG = {
    "grace_period_s": 10.0,
    "max_freeze_tokens": 3,
    "default_rest_s": 900.0,
    "tick_interval_ms": 1000,
    "undo_start_window_s": 60.0,
    "rest_prompt_threshold_s": 3000.0,
    "autosave": True,
}


def load_config(path: Optional[Path] = None) -> dict:
    path = path or CONFIG_PATH
    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                cfg = json.load(f)
            if isinstance(cfg, dict):
                return {**DEFAULT_CONFIG, **cfg}
            logger.warning("Config at %s is not an object, using defaults.", path)
        except json.JSONDecodeError:
            logger.warning("Bad engine config at %s, using defaults.", path)
    return DEFAULT_CONFIG.copy()


def save_config(config: dict, path: Optional[Path] = None) -> None:
    path = path or CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)


def reset_config(path: Optional[Path] = None) -> dict:
    config = DEFAULT_CONFIG.copy()
    save_config(config, path)
    return config
