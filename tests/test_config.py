"""Tests for TOML configuration loading and saving."""

from pathlib import Path

import pytest

from stategraph_cli import config_manager


@pytest.fixture
def config_home(temp_dir: Path, monkeypatch) -> Path:
    home = temp_dir / "home"
    monkeypatch.setattr("stategraph_cli.config.BASE_DIR", home)
    return home


class TestConfigManager:
    """Tests for config.toml sections."""

    def test_defaults_without_file(self, config_home: Path):
        assert not config_manager.config_file().exists()
        assert config_manager.load_search_config() == {"limit": 20, "min_score": 3}
        analysis = config_manager.load_analysis_config()
        assert analysis["platforms"] == ["web", "mobile"]
        assert "completed" in analysis["terminal_keywords"]
        assert config_manager.load_discovery_config()["max_workers"] == 0

    def test_defaults_are_not_shared(self, config_home: Path):
        config_manager.load_analysis_config()["platforms"].append("tv")
        assert config_manager.load_analysis_config()["platforms"] == ["web", "mobile"]

    def test_save_platforms_preserves_other_sections(self, config_home: Path):
        assert config_manager.save_section("search", {"limit": 5})
        assert config_manager.save_platforms(["web", "tablet"])

        assert config_manager.config_file() == config_home / "config.toml"
        assert config_manager.load_analysis_config()["platforms"] == ["web", "tablet"]
        assert config_manager.load_search_config()["limit"] == 5
        assert config_manager.load_search_config()["min_score"] == 3

    def test_save_state_mapping_accumulates(self, config_home: Path):
        config_manager.save_state_mapping("done", "completed")
        config_manager.save_state_mapping("gone", "deleted")

        assert config_manager.load_analysis_config()["mappings"] == {
            "done": "completed",
            "gone": "deleted",
        }

    def test_corrupt_file_falls_back_to_defaults(self, config_home: Path):
        config_home.mkdir(parents=True)
        (config_home / "config.toml").write_text("[search\nlimit = ", encoding="utf-8")

        assert config_manager.load_full_config() == {}
        assert config_manager.load_search_config()["limit"] == 20
