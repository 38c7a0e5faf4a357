"""Tests for project discovery and the manifest format."""

from pathlib import Path

from stategraph_cli.discovery import (
    discover_project,
    iter_source_files,
    looks_like_implication,
    ui_coverage,
)
from stategraph_cli.models import DiscoveryResult


class TestDiscoverProject:
    """Tests for crawling the booking fixture project."""

    def test_finds_implications(self, sample_discovery: DiscoveryResult):
        names = sorted(Path(f.path).name for f in sample_discovery.implications)

        assert names == [
            "AcceptedBookingImplications.js",
            "BaseBookingImplications.js",
            "CompletedBookingImplications.js",
            "DraftBookingImplications.js",
            "OrphanBookingImplications.js",
            "PendingBookingImplications.js",
            "RejectedBookingImplications.js",
        ]
        assert sample_discovery.errors == []

    def test_skips_vendor_directories(self, sample_project_path: Path):
        files = [p.relative_to(sample_project_path).as_posix() for p in iter_source_files(sample_project_path)]

        assert "src/utils/helpers.js" in files
        assert not any(f.startswith("node_modules/") for f in files)

    def test_metadata(self, sample_discovery: DiscoveryResult):
        by_status = {f.status: f for f in sample_discovery.implications}
        pending = by_status["pending"].metadata

        assert pending["className"] == "PendingBookingImplications"
        assert pending["statusLabel"] == "Pending Booking"
        assert pending["hasXStateConfig"] is True
        assert pending["hasMirrorsOn"] is True
        assert pending["parseQuality"] == "literal"
        assert pending["uiCoverage"]["total"] == 2
        assert by_status["rejected"].metadata["parseQuality"] == "regex"

    def test_mirrors_only_file(self, sample_discovery: DiscoveryResult):
        base = next(f for f in sample_discovery.implications if f.class_name == "BaseBookingImplications")

        assert base.status is None
        assert base.state_name == "BaseBookingImplications"
        assert base.has_xstate_config is False
        assert base.has_mirrors_on is True

    def test_transitions(self, sample_discovery: DiscoveryResult):
        edges = [(t["from"], t["event"], t["to"]) for t in sample_discovery.transitions]

        assert len(edges) == 9
        assert edges.count(("pending", "EXPIRE", "rejected")) == 2
        assert ("draft", "CONFIRM", "acepted") in edges

    def test_manifest_round_trip(self, sample_discovery: DiscoveryResult):
        restored = DiscoveryResult.from_dict(sample_discovery.to_dict())

        assert restored.project_path == sample_discovery.project_path
        assert [f.path for f in restored.implications] == [f.path for f in sample_discovery.implications]
        assert restored.transitions == sample_discovery.transitions

    def test_parallel_discovery_matches_serial(self, sample_project_path: Path, sample_discovery: DiscoveryResult):
        parallel = discover_project(sample_project_path, max_workers=4)

        assert [f.path for f in parallel.implications] == [f.path for f in sample_discovery.implications]
        assert parallel.transitions == sample_discovery.transitions


class TestHelpers:
    """Tests for discovery helpers."""

    def test_looks_like_implication(self):
        assert looks_like_implication("static xstateConfig = {}")
        assert looks_like_implication("class DoneImplications {}")
        assert not looks_like_implication("module.exports = {}")

    def test_ui_coverage(self):
        coverage = ui_coverage({
            "web": {"home": [{"visible": ["a"]}, {"hidden": ["b"]}], "empty": []},
            "mobile": {},
        })

        assert coverage["total"] == 3
        assert coverage["platforms"]["web"]["total"] == 3
        assert coverage["platforms"]["web"]["screens"][0] == {"visible": ["a"], "name": "home", "index": 0}
        assert coverage["platforms"]["web"]["screens"][2] == {"name": "empty"}
        assert coverage["platforms"]["mobile"]["total"] == 0
