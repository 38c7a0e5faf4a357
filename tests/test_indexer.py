"""Tests for search index construction."""

from pathlib import Path

from stategraph_cli.indexer import (
    SearchIndex,
    build_search_index,
    extract_ticket_ids,
    humanize,
    tokenize,
)
from stategraph_cli.models import DiscoveredFile, DiscoveryResult


def _manifest(*paths: str, transitions=None) -> DiscoveryResult:
    return DiscoveryResult(
        project_path="/virtual",
        implications=[DiscoveredFile(path=p) for p in paths],
        transitions=list(transitions or []),
    )


def _state_source(status: str, on: str = "{}", extra: str = "") -> str:
    return (
        f"class {status.title()}Implications {{\n"
        f"  static xstateConfig = {{ meta: {{ status: '{status}' }}, on: {on} }};\n"
        f"  {extra}\n"
        "}\n"
    )


class TestTextHelpers:
    """Tests for tokenizing and label helpers."""

    def test_tokenize(self):
        assert tokenize("Booking_Details-screen.v2 a") == ["booking", "details", "screen", "v2"]
        assert tokenize(None) == []

    def test_humanize(self):
        assert humanize("pending_booking") == "Pending Booking"
        assert humanize("pendingBooking") == "Pending Booking"

    def test_extract_ticket_ids(self):
        assert extract_ticket_ids("SC-1 and PP-42, again SC-1") == ["SC-1", "PP-42"]
        assert extract_ticket_ids("sc-1 lowercase") == []
        assert extract_ticket_ids(None) == []


class TestBuildSampleIndex:
    """Tests against the booking fixture project."""

    def test_counts(self, sample_index: SearchIndex):
        stats = sample_index.stats

        assert sample_index.counts == {
            "states": 6,
            "transitions": 8,
            "validations": 11,
            "conditions": 4,
            "setups": 2,
        }
        assert stats.files_seen == 7
        assert stats.files_indexed == 6
        assert stats.files_skipped == 1
        assert stats.degraded == 1
        assert stats.errors == 0
        assert stats.tickets == 4

    def test_state_document(self, sample_index: SearchIndex):
        pending = sample_index.by_state["pending"]

        assert pending.status_label == "Pending Booking"
        assert pending.platform == "web"
        assert pending.entity == "booking"
        assert pending.class_name == "PendingBookingImplications"
        assert pending.required_fields == ("bookingId", "clubName")
        assert pending.transition_count == 3
        assert "fields: bookingId clubName" in pending.text

    def test_state_without_platform_is_unknown(self, sample_index: SearchIndex):
        assert sample_index.by_state["rejected"].platform == "unknown"

    def test_multi_variant_transition_is_one_edge(self, sample_index: SearchIndex):
        expire = sample_index.get("pending.EXPIRE")

        assert expire.to_state == "rejected"
        assert expire.platforms == ("web", "mobile")
        assert [t.id for t in sample_index.by_event["EXPIRE"]] == ["pending.EXPIRE"]

    def test_validation_ids(self, sample_index: SearchIndex):
        ids = {v.id for v in sample_index.validations}

        assert "pending.web.bookingDetailsScreen" in ids
        assert "pending.web.bookingDetailsScreen.status_badge" in ids
        assert "pending.web.bookingDetailsScreen.request_title" in ids
        assert "pending.mobile.notificationsScreen.pending_notice" in ids
        assert "rejected.web.bookingDetailsScreen.reject_reason" in ids

    def test_block_document(self, sample_index: SearchIndex):
        badge = sample_index.get("pending.web.bookingDetailsScreen.status_badge")

        assert badge.label == "SC-13092 Pending badge is shown"
        assert badge.block_id == "status_badge"
        assert badge.has_conditions is True
        assert badge.block_type == "ui-assertion"
        assert "booking.manageGroups truthy" in badge.text

    def test_condition_ids_and_operators(self, sample_index: SearchIndex):
        ids = sorted(c.id for c in sample_index.conditions)

        assert ids == [
            "accepted.web.bookingDetailsScreen.check_in.paid",
            "pending.web.bookingDetailsScreen.status_badge.chk_1",
            "pending.web.bookingDetailsScreen.status_badge.chk_groups",
            "rejected.web.bookingDetailsScreen.reject_reason.chk_0",
        ]
        auto_accept = sample_index.get("pending.web.bookingDetailsScreen.status_badge.chk_1")
        assert auto_accept.operator == "equals"
        assert auto_accept.value is False

    def test_lookup_tables(self, sample_index: SearchIndex):
        assert sorted(sample_index.by_ticket) == ["PP-42", "SC-13092", "SC-13500", "SC-20001"]
        assert [c.id for c in sample_index.by_field["ispaid"]] == [
            "accepted.web.bookingDetailsScreen.check_in.paid",
        ]
        assert "booking.payment.ispaid" in sample_index.by_field
        assert "ACCEPT" in sample_index.by_event

    def test_setup_documents(self, sample_index: SearchIndex):
        assert sorted(s.id for s in sample_index.setups) == [
            "accepted.setup.pending",
            "pending.setup.initial",
        ]
        pending = sample_index.get("pending.setup.initial")
        assert pending.doc_type == "setup"
        assert pending.text.startswith("How to reach Pending Booking from initial via web")
        assert pending.test_file == "tests/bookings/Pending-Web-UNIT.spec.js"
        assert pending.action_name == "requestBooking"
        assert "pending.setup.initial" in sample_index.inverted_index["reach"]

    def test_observer_setup_is_skipped(self, sample_index: SearchIndex):
        assert sample_index.get("accepted.setup.draft") is None

    def test_every_document_is_term_indexed(self, sample_index: SearchIndex):
        indexed = set().union(*sample_index.inverted_index.values())
        assert indexed == set(sample_index.documents)

    def test_rebuild_is_equivalent(self, sample_discovery, sample_project_path: Path, sample_index: SearchIndex):
        again = build_search_index(sample_discovery, sample_project_path, max_workers=4)

        assert again is not sample_index
        assert again.counts == sample_index.counts
        assert set(again.documents) == set(sample_index.documents)
        assert again.inverted_index == sample_index.inverted_index


class TestBuildEdgeCases:
    """Tests for degraded inputs."""

    def test_duplicate_status_keeps_first(self):
        sources = {
            "a.js": _state_source("open", "{ CLOSE: 'closed' }"),
            "b.js": _state_source("open", "{ REOPEN: 'open' }"),
        }
        index = build_search_index(_manifest("a.js", "b.js"), Path("/virtual"), read_source=sources.__getitem__)

        assert index.by_state["open"].source_file == "a.js"
        assert [t.id for t in index.transitions] == ["open.CLOSE"]
        assert index.stats.files_skipped == 1

    def test_status_clashing_with_transition_id_is_skipped(self):
        sources = {
            "a.js": _state_source("order", "{ ship: 'order.ship' }"),
            "b.js": _state_source("order.ship"),
            "c.js": _state_source("other"),
        }
        index = build_search_index(
            _manifest("a.js", "b.js", "c.js"), Path("/virtual"), read_source=sources.__getitem__
        )

        assert "other" in index.by_state
        assert "order.ship" not in index.by_state
        assert index.get("order.ship").doc_type == "transition"
        assert index.stats.files_indexed == 2
        assert index.stats.files_skipped == 1
        assert index.stats.errors == 0

    def test_indexing_failure_does_not_stop_the_build(self, monkeypatch):
        from stategraph_cli import indexer

        original = indexer._IndexBuilder.add_screen

        def flaky_add_screen(self, status, *args):
            if status == "bad":
                raise RuntimeError("boom")
            return original(self, status, *args)

        monkeypatch.setattr(indexer._IndexBuilder, "add_screen", flaky_add_screen)
        ui = "static mirrorsOn = { UI: { web: { homeScreen: [{ description: 'Home' }] } } };"
        sources = {
            "bad.js": _state_source("bad", extra=ui),
            "good.js": _state_source("good", extra=ui),
        }
        index = build_search_index(_manifest("bad.js", "good.js"), Path("/virtual"), read_source=sources.__getitem__)

        assert index.stats.errors == 1
        assert index.stats.error_files == ["bad.js"]
        assert "good.web.homeScreen" in index.documents

    def test_unreadable_file_is_counted(self):
        def reader(path: str) -> str:
            if path == "missing.js":
                raise FileNotFoundError(path)
            return _state_source("open")

        index = build_search_index(_manifest("missing.js", "ok.js"), Path("/virtual"), read_source=reader)

        assert index.stats.errors == 1
        assert index.stats.error_files == ["missing.js"]
        assert list(index.by_state) == ["open"]

    def test_manifest_only_transitions(self):
        manifest = _manifest(
            "a.js",
            transitions=[
                {"from": "open", "to": "closed", "event": "CLOSE"},
                {"from": "ghost", "to": "open", "event": "HAUNT", "platforms": ["web"]},
                {"from": "", "to": "open", "event": "SKIP"},
            ],
        )
        index = build_search_index(manifest, Path("/virtual"), read_source=lambda _: _state_source("open", "{ CLOSE: 'closed' }"))

        assert sorted(t.id for t in index.transitions) == ["ghost.HAUNT", "open.CLOSE"]
        assert index.get("ghost.HAUNT").platforms == ("web",)

    def test_empty_manifest(self):
        index = build_search_index(_manifest(), Path("/virtual"))

        assert index.counts == {"states": 0, "transitions": 0, "validations": 0, "conditions": 0, "setups": 0}
        assert index.stats.files_seen == 0


class TestIdempotence:
    def test_documents_are_identical_across_builds(self, sample_discovery, sample_project_path: Path):
        first = build_search_index(sample_discovery, sample_project_path)
        second = build_search_index(sample_discovery, sample_project_path)

        assert first.documents == second.documents
        assert first.by_ticket.keys() == second.by_ticket.keys()
