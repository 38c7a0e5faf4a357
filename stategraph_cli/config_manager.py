"""Configuration manager for the StateGraph CLI using TOML files."""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Dict, List

import toml

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.toml"

DEFAULT_TERMINAL_KEYWORDS: List[str] = [
    "completed", "cancelled", "canceled", "deleted", "archived",
    "final", "terminal", "closed", "rejected",
]

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "search": {
        "limit": 20,
        "min_score": 3,
    },
    "analysis": {
        "platforms": ["web", "mobile"],
        "terminal_keywords": DEFAULT_TERMINAL_KEYWORDS,
        "mappings": {},
    },
    "discovery": {
        "cache_dir": "",
        "max_workers": 0,
    },
}


def config_file() -> Path:
    """Location of config.toml under the current STATEGRAPH_HOME."""
    from . import config

    return config.BASE_DIR / CONFIG_FILENAME


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    path = config_file()
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}


def _save_full_config(config: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    path = config_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(path, "w", encoding="utf-8") as f:
            toml.dump(config, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config %s: %s", path, exc)
        return False


def load_section(name: str) -> Dict[str, Any]:
    """Return one config section with defaults filled in."""
    section = copy.deepcopy(DEFAULT_CONFIG.get(name, {}))
    stored = load_full_config().get(name)
    if isinstance(stored, dict):
        section.update(stored)
    return section


def load_search_config() -> Dict[str, Any]:
    return load_section("search")


def load_analysis_config() -> Dict[str, Any]:
    return load_section("analysis")


def load_discovery_config() -> Dict[str, Any]:
    return load_section("discovery")


def save_section(name: str, values: Dict[str, Any]) -> bool:
    """Merge *values* into section *name*, preserving other sections."""
    config = load_full_config()
    section = config.get(name) if isinstance(config.get(name), dict) else {}
    section.update(values)
    config[name] = section
    return _save_full_config(config)


def save_platforms(platforms: List[str]) -> bool:
    """Persist the platform set the coverage rule expects."""
    return save_section("analysis", {"platforms": list(platforms)})


def save_state_mapping(alias: str, state: str) -> bool:
    """Record an explicit alias for the name registry."""
    mappings = dict(load_analysis_config().get("mappings") or {})
    mappings[alias] = state
    return save_section("analysis", {"mappings": mappings})
