"""Configuration paths and tunables for the StateGraph CLI."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("STATEGRAPH_HOME", str(Path.home() / ".stategraph"))).expanduser()
STATE_FILE = BASE_DIR / "state.json"

# Per-project cache, relative to the project root
CACHE_SUBDIR = Path(".implications-framework") / "cache"
DISCOVERY_FILE = "discovery-result.json"
INDEX_FILE = "intelligence-index.json"

SOURCE_EXTENSIONS = {".js", ".mjs", ".cjs", ".jsx", ".ts"}
SKIP_DIRS = {
    "node_modules", ".git", "dist", "build", "coverage", ".next",
    ".cache", ".implications-framework", "__pycache__", ".venv",
}

# Load configuration from ~/.stategraph/config.toml
from .config_manager import (  # noqa: E402
    load_analysis_config,
    load_discovery_config,
    load_search_config,
)

_search_config = load_search_config()
_analysis_config = load_analysis_config()
_discovery_config = load_discovery_config()

SEARCH_LIMIT = int(_search_config["limit"])
SEARCH_MIN_SCORE = float(_search_config["min_score"])

EXPECTED_PLATFORMS = list(_analysis_config["platforms"])
TERMINAL_KEYWORDS = list(_analysis_config["terminal_keywords"])
STATE_MAPPINGS = dict(_analysis_config["mappings"])

# 0 means "run extraction on the calling thread"
MAX_WORKERS = int(_discovery_config["max_workers"]) or None
if _discovery_config.get("cache_dir"):
    CACHE_SUBDIR = Path(_discovery_config["cache_dir"])


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
