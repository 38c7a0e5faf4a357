"""Tests for tiered extraction from implication source files."""

from stategraph_cli.extractor import extract, locate_literal, normalize_transitions, normalize_ui
from stategraph_cli.models import ParseQuality


class TestLocateLiteral:
    """Tests for finding declared literals."""

    def test_static_class_field(self):
        source = "class A {\n  static xstateConfig = { meta: { status: 'a' } };\n}"
        assert locate_literal(source, "xstateConfig") == "{ meta: { status: 'a' } }"

    def test_object_property(self):
        source = "module.exports = { mirrorsOn: { UI: {} }, other: 1 };"
        assert locate_literal(source, "mirrorsOn") == "{ UI: {} }"

    def test_member_access_is_not_a_declaration(self):
        source = "const x = Base.mirrorsOn.UI;\nconst y = { mirrorsOn: { UI: { web: {} } } };"
        assert locate_literal(source, "mirrorsOn") == "{ UI: { web: {} } }"

    def test_missing(self):
        assert locate_literal("const a = 1;", "xstateConfig") is None


class TestExtractLiteralTier:
    """Tests for files whose literals evaluate statically."""

    def test_pending_metadata(self, pending_source: str):
        result = extract(pending_source)

        assert result.parse_quality is ParseQuality.LITERAL
        assert result.class_name == "PendingBookingImplications"
        assert result.status == "pending"
        assert result.xstate_id == "pending"
        assert result.meta["statusLabel"] == "Pending Booking"
        assert result.meta["requiredFields"] == ["bookingId", "clubName"]
        assert result.has_xstate_config and result.has_mirrors_on

    def test_pending_transitions(self, pending_source: str):
        result = extract(pending_source)
        pairs = [(t.event, t.target) for t in result.transitions]

        assert pairs == [
            ("ACCEPT", "accepted"),
            ("REJECT", "rejected"),
            ("EXPIRE", "rejected"),
            ("EXPIRE", "rejected"),
        ]
        accept = result.transitions[0]
        assert accept.platforms == ["web"]
        assert accept.description == "Club manager accepts the booking request"
        assert accept.step_descriptions == ["Open booking details", "Click accept button"]
        assert [t.platforms for t in result.transitions[2:]] == [["web"], ["mobile"]]

    def test_pending_ui(self, pending_source: str):
        ui = extract(pending_source).ui_validation

        assert sorted(ui) == ["mobile", "web"]
        details = ui["web"]["bookingDetailsScreen"]
        assert len(details) == 1
        blocks = details[0]["blocks"]
        assert [b["id"] for b in blocks] == ["status_badge", "request_title"]
        # interpolated template label has no static value
        assert blocks[1]["label"] is None
        # a bare screen object is normalised to a one-element list
        assert len(ui["mobile"]["notificationsScreen"]) == 1


class TestExtractRegexTier:
    """Tests for files that only the regex fallback can read."""

    def test_rejected_meta_and_transitions(self, rejected_source: str):
        result = extract(rejected_source)

        assert result.parse_quality is ParseQuality.REGEX
        assert result.status == "rejected"
        assert result.meta["statusLabel"] == "Rejected Booking"
        assert result.meta["entity"] == "booking"
        assert "platform" not in result.meta
        assert [(t.event, t.target, t.platforms) for t in result.transitions] == [
            ("REOPEN", "pending", ["web"]),
        ]

    def test_rejected_ui_through_helper_call(self, rejected_source: str):
        ui = extract(rejected_source).ui_validation
        definition = ui["web"]["bookingDetailsScreen"][0]

        assert definition["description"] == "Rejected booking shows the reason"
        block = definition["blocks"][0]
        assert block["id"] == "reject_reason"
        assert block["label"] == "SC-13500 Reason is displayed"
        checks = block["conditions"]["blocks"][0]["data"]["checks"]
        assert checks == [{"field": "booking.rejectReason", "operator": "truthy"}]

    def test_worst_tier_wins(self):
        source = (
            "class MixedImplications {\n"
            "  static xstateConfig = { meta: { status: 'mixed' }, on: { GO: 'done' } };\n"
            "  static mirrorsOn = { UI: { web: { homeScreen: helper({ description: 'Home' }) } } };\n"
            "}\n"
        )
        result = extract(source)

        assert result.parse_quality is ParseQuality.REGEX
        assert result.status == "mixed"
        assert result.ui_validation["web"]["homeScreen"][0]["description"] == "Home"


class TestExtractEdgeCases:
    """Tests for inputs with nothing to extract."""

    def test_plain_module(self):
        result = extract("const a = 1;\nmodule.exports = a;\n")

        assert result.parse_quality is ParseQuality.NONE
        assert result.status is None
        assert not result.has_xstate_config
        assert not result.has_mirrors_on

    def test_unterminated_literal_is_not_located(self):
        result = extract("class BrokenImplications { static xstateConfig = { meta: { status: 'x' } ")

        assert result.parse_quality is ParseQuality.NONE
        assert result.class_name == "BrokenImplications"

    def test_huge_code_point_escape_does_not_raise(self):
        source = (
            "class A { static xstateConfig = { meta: "
            "{ status: 'x', statusLabel: '\\u{FFFFFFFFFFFFFFFFFFFF}' } }; }"
        )
        result = extract(source)

        assert result.status == "x"
        assert result.parse_quality is ParseQuality.LITERAL

    def test_class_name_prefers_implications_suffix(self):
        source = "class Helper {}\nclass DoneImplications { static xstateConfig = { meta: {} }; }"
        assert extract(source).class_name == "DoneImplications"


class TestNormalizers:
    """Tests for shape normalisation helpers."""

    def test_normalize_transitions_shapes(self):
        specs = normalize_transitions({
            "A": "x",
            "B": {"target": "y", "platforms": ["web"]},
            "C": [{"target": "z"}, "w"],
            "D": {"no": 1},
            "E": "",
            "F": {"target": "v", "meta": {"platform": "mobile"}},
            "G": {"target": "u", "actionDetails": {"platform": "web", "description": "Go"}},
        })

        assert [(s.event, s.target) for s in specs] == [
            ("A", "x"), ("B", "y"), ("C", "z"), ("C", "w"), ("F", "v"), ("G", "u"),
        ]
        assert specs[4].platforms == ["mobile"]
        assert specs[5].platforms == ["web"]
        assert specs[5].description == "Go"

    def test_normalize_ui(self):
        ui = {"web": {"s": {"a": 1}, "t": [{"b": 1}, "junk"]}, "bad": "x"}
        assert normalize_ui(ui) == {"web": {"s": [{"a": 1}], "t": [{"b": 1}]}}
        assert normalize_ui(None) == {}
