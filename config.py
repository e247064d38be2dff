"""Centralized configuration for Coloring Book Studio."""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parent
OUTPUT_DIR = Path(os.getenv("CB_OUTPUT_DIR", str(PROJECT_ROOT)))
EXPORTS_DIR = OUTPUT_DIR / "exports"

# -----------------------------------------------------------------------------
# Batch limits
# -----------------------------------------------------------------------------
MAX_BOOKS_PER_BATCH = int(os.getenv("CB_MAX_BOOKS_PER_BATCH", "10"))
MAX_PAGES_PER_BOOK = int(os.getenv("CB_MAX_PAGES_PER_BOOK", "40"))
DEFAULT_PAGES_PER_BOOK = int(os.getenv("CB_DEFAULT_PAGES_PER_BOOK", "10"))

# Orchestration defaults. config.json in project root can override
# (see get_orchestration_config).
ORCHESTRATION_CONFIG: dict[str, Any] = {
    "concurrency": {
        "page_ideas": 3,
        "prompts": 2,
    },
    "delays": {
        "bulk_generation_sec": 0.0,
        "single_generation_sec": 0.3,
        "enhance_sec": 0.5,
        "process_sec": 1.0,
    },
    "pause_poll_interval_sec": 0.5,
    "image": {
        "bulk_size": "1024x1536",
        "enhance_scale": 2,
        "margin_percent": 3,
    },
}

IMAGE_SIZES = {
    "portrait": "1024x1536",
    "landscape": "1536x1024",
    "square": "1024x1024",
}


def _load_orchestration_overrides_from_json(config_path: Path) -> dict[str, Any]:
    """Read the "orchestration" section of config.json. Returns {} when absent or unreadable."""
    if not config_path.exists():
        return {}
    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f) or {}
    except (OSError, ValueError):
        return {}
    if not isinstance(data, dict):
        return {}
    section = data.get("orchestration", {})
    return section if isinstance(section, dict) else {}


def get_orchestration_config(config_path: Path | None = None) -> dict[str, Any]:
    """Build orchestration config from ORCHESTRATION_CONFIG, merging config.json overrides.

    Only keys already present in ORCHESTRATION_CONFIG are overridden; nested
    sections are merged key by key.
    """
    cfg = copy.deepcopy(ORCHESTRATION_CONFIG)
    if config_path is None:
        config_path = PROJECT_ROOT / "config.json"
    overrides = _load_orchestration_overrides_from_json(config_path)
    for key, value in overrides.items():
        if key not in cfg:
            continue
        if isinstance(cfg[key], dict):
            if isinstance(value, dict):
                cfg[key].update({k: v for k, v in value.items() if k in cfg[key] and v is not None})
        elif value is not None:
            cfg[key] = value
    return cfg
