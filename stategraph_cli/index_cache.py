"""Per-project cache of built search indexes.

The cache is an ordinary object owned by whoever needs it (the CLI creates
one per invocation, a long-running host would keep one around).  Several
projects can be cached side by side.  A snapshot is rebuilt when the
project's discovery manifest is newer than the snapshot, or on request.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .errors import NoIndexDataError
from .indexer import SearchIndex, build_search_index
from .models import DiscoveryResult
from .storage import discovery_cache_path, load_discovery_result

logger = logging.getLogger(__name__)

ManifestLoader = Callable[[Path], Optional[DiscoveryResult]]


class IndexCache:
    """Holds the latest :class:`SearchIndex` per project path.

    Readers get whatever snapshot is current; replacement happens under a
    lock so two concurrent rebuilds of one project never interleave.
    """

    def __init__(
        self,
        loader: ManifestLoader = load_discovery_result,
        builder: Callable[..., SearchIndex] = build_search_index,
        max_workers: Optional[int] = None,
    ) -> None:
        self._loader = loader
        self._builder = builder
        self._max_workers = max_workers
        self._entries: Dict[str, SearchIndex] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(project_path: Path) -> str:
        return str(Path(project_path).resolve())

    def get(self, project_path: Path, force: bool = False) -> SearchIndex:
        """Return a current index for *project_path*, building if needed.

        Raises:
            NoIndexDataError: no discovery manifest exists for the project.
        """
        key = self._key(project_path)
        current = self._entries.get(key)
        if current is not None and not force and not self.is_stale(key, current):
            logger.debug("Index cache hit for %s", key)
            return current

        with self._lock:
            current = self._entries.get(key)
            if current is not None and not force and not self.is_stale(key, current):
                return current
            manifest = self._loader(Path(key))
            if manifest is None:
                raise NoIndexDataError(key)
            index = self._builder(manifest, Path(key), max_workers=self._max_workers)
            self._entries[key] = index
            logger.info("Built index for %s", key)
            return index

    def rebuild(self, project_path: Path) -> SearchIndex:
        return self.get(project_path, force=True)

    def invalidate(self, project_path: Optional[Path] = None) -> None:
        """Drop one project's snapshot, or every snapshot when no path is given."""
        with self._lock:
            if project_path is None:
                self._entries.clear()
            else:
                self._entries.pop(self._key(project_path), None)

    def is_stale(self, key: str, index: SearchIndex) -> bool:
        manifest = discovery_cache_path(Path(key))
        try:
            return manifest.stat().st_mtime > index.built_at
        except FileNotFoundError:
            return False

    def cached_projects(self) -> List[str]:
        return sorted(self._entries)

    def __contains__(self, project_path: object) -> bool:
        return isinstance(project_path, (str, Path)) and self._key(Path(project_path)) in self._entries
