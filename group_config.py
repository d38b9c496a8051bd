"""Configuration shared by the group maker scripts.

All tunables live in ``DEFAULT_CONFIG``; scripts accept ``--config file.json``
whose content is deep-merged over the defaults.
"""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Optional

# =============== CONFIG ====================
DEFAULT_CONFIG = {
    # Grouping
    "GROUP_SIZE": 4,
    "SEED": None,              # int for reproducible shuffles, None for system randomness
    "COMPACT_COHORTS": False,  # pack locked cohorts into the lowest free groups on reshuffle

    # Display / export
    "THEME": "numeric",

    # Roster import (header aliases are matched case-insensitively)
    "NAME_ALIASES": ["name", "student", "student_name", "student name"],
    "PROGRAM_ALIASES": [
        "program",
        "programme",
        "study_program",
        "study programme",
        "studyprogram",
        "major",
    ],

    # Remote roster download
    "ROSTER_CACHE": "roster.csv",
    "FORCE_REFRESH": False,
    "USER_AGENT": "Mozilla/5.0 (GroupMaker/1.0)",
}


def deep_update(dst: dict, src: dict) -> dict:
    """Recursively merge ``src`` into ``dst`` and return ``dst``."""
    for key, value in src.items():
        if isinstance(value, dict) and isinstance(dst.get(key), dict):
            deep_update(dst[key], value)
        else:
            dst[key] = value
    return dst


def build_config(overrides: dict | None = None) -> dict:
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    if overrides:
        unknown = sorted(k for k in overrides if k not in cfg)
        if unknown:
            raise KeyError(f"Unknown config key(s): {', '.join(unknown)}")
        deep_update(cfg, overrides)
    return cfg


def load_config(path: Optional[Path]) -> dict:
    """Read JSON overrides from ``path`` (if given) and merge them over the defaults."""
    if path is None:
        return build_config()
    overrides = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(overrides, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return build_config(overrides)
