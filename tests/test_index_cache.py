"""Tests for the per-project index cache."""

import os
import threading
import time
from pathlib import Path

import pytest

from stategraph_cli.errors import NoIndexDataError
from stategraph_cli.index_cache import IndexCache
from stategraph_cli.indexer import SearchIndex
from stategraph_cli.models import DiscoveryResult
from stategraph_cli.storage import discovery_cache_path, save_discovery_result


class _CountingBuilder:
    def __init__(self, delay: float = 0.0):
        self.calls = 0
        self.delay = delay
        self._lock = threading.Lock()

    def __call__(self, manifest, project_root, max_workers=None):
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return SearchIndex(project_path=str(project_root))


def _loader(project_path: Path) -> DiscoveryResult:
    return DiscoveryResult(project_path=str(project_path))


class TestIndexCache:
    """Tests for snapshot reuse, replacement and isolation."""

    def test_second_get_reuses_snapshot(self, temp_dir: Path):
        builder = _CountingBuilder()
        cache = IndexCache(loader=_loader, builder=builder)

        first = cache.get(temp_dir)
        assert cache.get(temp_dir) is first
        assert builder.calls == 1
        assert temp_dir in cache

    def test_force_rebuild_replaces_snapshot(self, temp_dir: Path):
        builder = _CountingBuilder()
        cache = IndexCache(loader=_loader, builder=builder)

        first = cache.get(temp_dir)
        second = cache.rebuild(temp_dir)

        assert second is not first
        assert cache.get(temp_dir) is second
        assert builder.calls == 2

    def test_missing_manifest(self, temp_dir: Path):
        cache = IndexCache(loader=lambda _: None, builder=_CountingBuilder())

        with pytest.raises(NoIndexDataError):
            cache.get(temp_dir)
        assert temp_dir not in cache

    def test_projects_are_isolated(self, temp_dir: Path):
        one, two = temp_dir / "one", temp_dir / "two"
        one.mkdir()
        two.mkdir()
        cache = IndexCache(loader=_loader, builder=_CountingBuilder())

        first = cache.get(one)
        other = cache.get(two)
        cache.invalidate(two)

        assert first is not other
        assert one in cache
        assert two not in cache
        assert cache.get(one) is first
        assert cache.cached_projects() == [str(one.resolve())]

    def test_invalidate_all(self, temp_dir: Path):
        cache = IndexCache(loader=_loader, builder=_CountingBuilder())
        cache.get(temp_dir)
        cache.invalidate()

        assert cache.cached_projects() == []

    def test_newer_manifest_triggers_rebuild(self, sample_project_path: Path, sample_discovery):
        save_discovery_result(sample_discovery, sample_project_path)
        cache = IndexCache()

        first = cache.get(sample_project_path)
        assert first.counts["states"] == 6
        assert cache.get(sample_project_path) is first

        later = first.built_at + 60
        os.utime(discovery_cache_path(sample_project_path), (later, later))

        assert cache.get(sample_project_path) is not first

    def test_concurrent_gets_build_once(self, temp_dir: Path):
        builder = _CountingBuilder(delay=0.05)
        cache = IndexCache(loader=_loader, builder=builder)
        results = []

        def worker():
            results.append(cache.get(temp_dir))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert builder.calls == 1
        assert len({id(index) for index in results}) == 1
