"""Pytest configuration and fixtures for StateGraph CLI tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from stategraph_cli.discovery import discover_project
from stategraph_cli.indexer import SearchIndex, build_search_index
from stategraph_cli.models import DiscoveryResult
from stategraph_cli.registry import StateRegistry
from stategraph_cli.storage import ProjectManager

FIXTURE_PROJECT = Path(__file__).parent / "fixtures" / "implications_project"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path(temp_dir: Path) -> Path:
    """Copy of the booking implications project (cache files land in the copy)."""
    target = temp_dir / "bookings_app"
    shutil.copytree(FIXTURE_PROJECT, target)
    return target


@pytest.fixture
def temp_project_manager(temp_dir: Path, monkeypatch) -> ProjectManager:
    """Create a ProjectManager with temporary storage."""
    base_dir = temp_dir / "home"
    state_file = base_dir / "state.json"

    # Patch both config AND storage modules (storage imports at module load)
    monkeypatch.setattr("stategraph_cli.config.BASE_DIR", base_dir)
    monkeypatch.setattr("stategraph_cli.config.STATE_FILE", state_file)
    monkeypatch.setattr("stategraph_cli.storage.STATE_FILE", state_file)

    return ProjectManager()


@pytest.fixture
def sample_discovery(sample_project_path: Path) -> DiscoveryResult:
    return discover_project(sample_project_path)


@pytest.fixture
def sample_index(sample_discovery: DiscoveryResult, sample_project_path: Path) -> SearchIndex:
    return build_search_index(sample_discovery, sample_project_path)


@pytest.fixture
def sample_registry(sample_discovery: DiscoveryResult) -> StateRegistry:
    return StateRegistry().build(sample_discovery)


@pytest.fixture
def pending_source() -> str:
    return (
        FIXTURE_PROJECT / "tests" / "implications" / "bookings" / "PendingBookingImplications.js"
    ).read_text(encoding="utf-8")


@pytest.fixture
def rejected_source() -> str:
    return (
        FIXTURE_PROJECT / "tests" / "implications" / "bookings" / "RejectedBookingImplications.js"
    ).read_text(encoding="utf-8")
