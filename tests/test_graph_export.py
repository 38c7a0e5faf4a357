"""Tests for DOT and HTML graph export."""

from pathlib import Path

from stategraph_cli.graph_export import export_dot, export_html
from stategraph_cli.indexer import SearchIndex


class TestExportDot:
    def test_states_and_edges(self, sample_index: SearchIndex, temp_dir: Path):
        out = temp_dir / "graph.dot"
        export_dot(sample_index, out)
        dot = out.read_text(encoding="utf-8")

        assert dot.startswith("digraph StateGraph {")
        assert '"pending" [label="Pending Booking"];' in dot
        assert '"pending" -> "accepted" [label="ACCEPT"];' in dot

    def test_dangling_target_is_marked(self, sample_index: SearchIndex, temp_dir: Path):
        out = temp_dir / "graph.dot"
        export_dot(sample_index, out)
        dot = out.read_text(encoding="utf-8")

        assert '"acepted" [label="acepted", style=dashed, color="red"];' in dot
        assert '"draft" -> "acepted" [label="CONFIRM"];' in dot

    def test_focus_keeps_neighbours(self, sample_index: SearchIndex, temp_dir: Path):
        out = temp_dir / "graph.dot"
        export_dot(sample_index, out, focus="orphan")
        dot = out.read_text(encoding="utf-8")

        assert '"orphan"' in dot
        assert '"pending"' not in dot
        assert "->" not in dot


class TestExportHtml:
    def test_html_page(self, sample_index: SearchIndex, temp_dir: Path):
        out = temp_dir / "graph.html"
        export_html(sample_index, out, focus="completed")
        page = out.read_text(encoding="utf-8")

        assert page.startswith("<!doctype html>")
        assert "StateGraph: bookings_app" in page
        assert '"completed"' in page
        assert '"accepted"' in page
        assert '"draft"' not in page
