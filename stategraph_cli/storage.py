"""Persistence for discovery manifests, index snapshots and project state.

Layout:
- ``<project>/.implications-framework/cache/discovery-result.json`` holds the
  manifest written by discovery.
- ``intelligence-index.json`` beside it holds the last built index snapshot.
- ``$STATEGRAPH_HOME/state.json`` records named projects and the current one.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

from . import config
from .config import STATE_FILE, ensure_base_dirs
from .models import DiscoveryResult, document_to_dict

if TYPE_CHECKING:
    from .indexer import SearchIndex

logger = logging.getLogger(__name__)


# ===================================================================
# Per-project cache files
# ===================================================================

def cache_dir(project_path: Path) -> Path:
    return Path(project_path) / config.CACHE_SUBDIR


def discovery_cache_path(project_path: Path) -> Path:
    return cache_dir(project_path) / config.DISCOVERY_FILE


def index_cache_path(project_path: Path) -> Path:
    return cache_dir(project_path) / config.INDEX_FILE


def save_discovery_result(result: DiscoveryResult, project_path: Path) -> Path:
    """Write the manifest where the index cache looks for it."""
    path = discovery_cache_path(project_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
    logger.info("Saved discovery result to %s", path)
    return path


def load_discovery_result(project_path: Path) -> Optional[DiscoveryResult]:
    """Read the cached manifest, or None when discovery has not run."""
    path = discovery_cache_path(project_path)
    if not path.exists():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Unreadable discovery cache %s: %s", path, exc)
        return None
    return DiscoveryResult.from_dict(payload)


def persist_index(index: "SearchIndex") -> Path:
    """Write a JSON snapshot of *index* next to the discovery cache."""
    path = index_cache_path(Path(index.project_path))
    path.parent.mkdir(parents=True, exist_ok=True)
    payload: Dict[str, Any] = {
        "projectPath": index.project_path,
        "builtAt": datetime.fromtimestamp(index.built_at, tz=timezone.utc).isoformat(),
        "stats": index.stats.to_dict(),
        "states": [document_to_dict(d) for d in index.states],
        "transitions": [document_to_dict(d) for d in index.transitions],
        "validations": [document_to_dict(d) for d in index.validations],
        "conditions": [document_to_dict(d) for d in index.conditions],
        "setups": [document_to_dict(d) for d in index.setups],
        "byTicket": {k: [d.id for d in v] for k, v in sorted(index.by_ticket.items())},
        "byField": {k: [d.id for d in v] for k, v in sorted(index.by_field.items())},
    }
    path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
    logger.info("Persisted index snapshot to %s", path)
    return path


def remove_index_snapshot(project_path: Path) -> bool:
    path = index_cache_path(project_path)
    if not path.exists():
        return False
    path.unlink()
    return True


# ===================================================================
# ProjectManager
# ===================================================================

class ProjectManager:
    """Track named projects and which one commands operate on by default."""

    def __init__(self) -> None:
        ensure_base_dirs()

    def _load_state(self) -> Dict[str, Any]:
        if not STATE_FILE.exists():
            return {"current_project": None, "projects": {}}
        try:
            payload = json.loads(STATE_FILE.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return {"current_project": None, "projects": {}}
        payload.setdefault("projects", {})
        return payload

    def _save_state(self, payload: Dict[str, Any]) -> None:
        ensure_base_dirs()
        STATE_FILE.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def list_projects(self) -> Dict[str, str]:
        return dict(sorted(self._load_state()["projects"].items()))

    def register_project(self, project_name: str, project_path: Path) -> None:
        state = self._load_state()
        state["projects"][project_name] = str(Path(project_path).resolve())
        self._save_state(state)

    def project_path(self, project_name: str) -> Optional[Path]:
        raw = self._load_state()["projects"].get(project_name)
        return Path(raw) if raw else None

    def set_current_project(self, project_name: str) -> None:
        state = self._load_state()
        state["current_project"] = project_name
        self._save_state(state)

    def get_current_project(self) -> Optional[str]:
        return self._load_state().get("current_project")

    def unload_project(self) -> None:
        state = self._load_state()
        state["current_project"] = None
        self._save_state(state)

    def forget_project(self, project_name: str) -> bool:
        state = self._load_state()
        if project_name not in state["projects"]:
            return False
        del state["projects"][project_name]
        if state.get("current_project") == project_name:
            state["current_project"] = None
        self._save_state(state)
        return True
