"""Tests for Mender CLI commands."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from mender.cli import app
from mender.healing.models import AttemptResult, HealingAttempt
from mender.healing.session_log import HealingLogger, SessionState, SessionStateStore

runner = CliRunner()


@pytest.fixture
def seeded_store(store, make_pattern):
    """Store holding one promotable and one weak pattern."""
    store.save_learned([
        make_pattern("Click the Save button", confidence=0.95, success_count=8),
        make_pattern("Open the menu", confidence=0.1, success_count=1, journeys=1),
    ])
    return store


def _invoke(store, *args: str):
    return runner.invoke(app, ["--store", str(store.root), *args])


def _write_log(directory: Path, journey_id: str = "JRN-0001") -> HealingLogger:
    logger = HealingLogger(journey_id, directory)
    logger.log_attempt(HealingAttempt(
        attempt=1,
        failure_type="selector",
        fix_type="selector-refine",
        file="tests/login.spec.ts",
        change="Replaced CSS selector",
        result=AttemptResult.PASS,
        duration_ms=1200,
    ))
    logger.mark_healed()
    return logger


class TestVersionAndConfig:
    """Tests for global options."""

    def test_version_shows_version(self) -> None:
        """Test that --version prints version info."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "Mender v" in result.stdout

    def test_invalid_config(self, tmp_path: Path) -> None:
        """Test that an invalid config file exits with an error."""
        config = tmp_path / "mender.yaml"
        config.write_text("healing:\n  max_attempts: 99\n")
        result = runner.invoke(app, ["--config", str(config), "patterns", "stats"])
        assert result.exit_code == 1
        assert "Error loading config:" in result.stdout

    def test_store_root_from_config(self, tmp_path: Path, seeded_store) -> None:
        """Test that the config file's store root is used without --store."""
        config = tmp_path / "mender.yaml"
        config.write_text(f"store:\n  root: {json.dumps(str(seeded_store.root))}\n")
        result = runner.invoke(app, ["--config", str(config), "patterns", "stats", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["total"] == 2


class TestPatternsCommands:
    """Tests for the patterns command group."""

    def test_stats_json(self, seeded_store) -> None:
        """Test statistics as JSON."""
        result = _invoke(seeded_store, "patterns", "stats", "--json")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["total"] == 2
        assert data["high_confidence"] == 1
        assert data["low_confidence"] == 1

    def test_stats_table(self, seeded_store) -> None:
        """Test the statistics panel."""
        result = _invoke(seeded_store, "patterns", "stats")
        assert result.exit_code == 0
        assert "Total patterns" in result.stdout

    def test_list_empty(self, store) -> None:
        """Test listing an empty store."""
        result = _invoke(store, "patterns", "list")
        assert result.exit_code == 0
        assert "No learned patterns yet." in result.stdout

    def test_list_with_limit(self, seeded_store) -> None:
        """Test that the limit truncates the listing, most confident first."""
        result = _invoke(seeded_store, "patterns", "list", "--limit", "1")
        assert result.exit_code == 0
        assert "LPTEST0001" in result.stdout
        assert "LPTEST0002" not in result.stdout
        assert "1 more" in result.stdout

    def test_match_json(self, seeded_store) -> None:
        """Test that a known phrase resolves to its pattern."""
        result = _invoke(seeded_store, "patterns", "match", "click the save button", "--json")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["patternId"] == "LPTEST0001"
        assert data["source"] == "learned"

    def test_match_table(self, seeded_store) -> None:
        """Test the human-readable match output."""
        result = _invoke(seeded_store, "patterns", "match", "Click the Save button")
        assert result.exit_code == 0
        assert "LPTEST0001" in result.stdout

    def test_no_match(self, seeded_store) -> None:
        """Test that an unknown phrase exits non-zero."""
        result = _invoke(seeded_store, "patterns", "match", "Drag the card")
        assert result.exit_code == 1
        assert "No pattern matches" in result.stdout

    def test_prune(self, seeded_store) -> None:
        """Test pruning with configured thresholds."""
        result = _invoke(seeded_store, "patterns", "prune")
        assert result.exit_code == 0
        assert "Removed 1 pattern(s), 1 remaining." in result.stdout
        assert seeded_store.find("Open the menu") is None

    def test_export(self, seeded_store, tmp_path: Path) -> None:
        """Test exporting confident patterns."""
        output = tmp_path / "triggers.json"
        result = _invoke(seeded_store, "patterns", "export", "--output", str(output))
        assert result.exit_code == 0
        assert "Exported 1 pattern(s) to" in result.stdout
        assert len(json.loads(output.read_text())["patterns"]) == 1


class TestPromotionCommands:
    """Tests for the promotion command group."""

    def test_analyze(self, seeded_store) -> None:
        """Test the analysis summary line."""
        result = _invoke(seeded_store, "promotion", "analyze")
        assert result.exit_code == 0
        assert "patterns analyzed" in result.stdout
        assert "1 promotable" in result.stdout

    def test_analyze_json(self, seeded_store) -> None:
        """Test the JSON report."""
        result = _invoke(seeded_store, "promotion", "analyze", "--json")
        assert result.exit_code == 0
        assert '"eligible_for_promotion": 1' in result.stdout

    def test_analyze_export(self, seeded_store, tmp_path: Path) -> None:
        """Test that the report and generated module are written."""
        export_dir = tmp_path / "reports"
        result = _invoke(seeded_store, "promotion", "analyze", "--export-dir", str(export_dir))
        assert result.exit_code == 0
        assert "Report written to" in result.stdout
        assert len(list(export_dir.glob("promotion-report-*.json"))) == 1
        assert len(list(export_dir.glob("promoted-patterns-*.py"))) == 1

    def test_promote(self, seeded_store) -> None:
        """Test promoting every eligible pattern."""
        result = _invoke(seeded_store, "promotion", "promote")
        assert result.exit_code == 0
        assert "Promoted 1 pattern(s)." in result.stdout
        assert "1 not eligible:" in result.stdout
        assert seeded_store.find("Click the Save button").promoted_to_core

    def test_promote_selected(self, seeded_store) -> None:
        """Test that ids restrict promotion."""
        result = _invoke(seeded_store, "promotion", "promote", "LPTEST0002")
        assert result.exit_code == 0
        assert "Promoted 0 pattern(s)." in result.stdout
        assert not seeded_store.find("Click the Save button").promoted_to_core


class TestHealLogCommands:
    """Tests for the heal-log command group."""

    def test_show(self, tmp_path: Path) -> None:
        """Test the session panel and attempts table."""
        _write_log(tmp_path)
        result = runner.invoke(app, ["heal-log", "show", "JRN-0001", "--dir", str(tmp_path)])
        assert result.exit_code == 0
        assert "JRN-0001" in result.stdout
        assert "healed" in result.stdout
        assert "selector-refine" in result.stdout

    def test_show_by_path_as_json(self, tmp_path: Path) -> None:
        """Test that a log file path can be given directly."""
        logger = _write_log(tmp_path)
        result = runner.invoke(app, ["heal-log", "show", str(logger.path), "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["journey_id"] == "JRN-0001"
        assert data["status"] == "healed"

    def test_show_markdown(self, tmp_path: Path) -> None:
        """Test markdown rendering."""
        _write_log(tmp_path)
        result = runner.invoke(
            app, ["heal-log", "show", "JRN-0001", "--dir", str(tmp_path), "--markdown"]
        )
        assert result.exit_code == 0
        assert "Healing Log: JRN-0001" in result.stdout

    def test_show_missing(self, tmp_path: Path) -> None:
        """Test that a missing log exits non-zero."""
        result = runner.invoke(app, ["heal-log", "show", "JRN-0404", "--dir", str(tmp_path)])
        assert result.exit_code == 1
        assert "No readable heal log at" in result.stdout

    def test_summary_empty(self, tmp_path: Path) -> None:
        """Test the summary of an empty directory."""
        result = runner.invoke(app, ["heal-log", "summary", "--dir", str(tmp_path)])
        assert result.exit_code == 0
        assert "No heal logs found." in result.stdout

    def test_summary(self, tmp_path: Path) -> None:
        """Test the summary across sessions."""
        _write_log(tmp_path, "JRN-0001")
        _write_log(tmp_path, "JRN-0002")
        result = runner.invoke(app, ["heal-log", "summary", "--dir", str(tmp_path)])
        assert result.exit_code == 0
        assert "Success rate" in result.stdout
        assert "100%" in result.stdout
        assert "selector-refine: 2" in result.stdout

    def test_summary_json(self, tmp_path: Path) -> None:
        """Test the summary as JSON."""
        _write_log(tmp_path)
        result = runner.invoke(app, ["heal-log", "summary", "--dir", str(tmp_path), "--json"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["total_sessions"] == 1
        assert data["status_counts"]["healed"] == 1

    def test_clear_state(self, tmp_path: Path) -> None:
        """Test clearing saved session state."""
        SessionStateStore(tmp_path).save(SessionState(journey_id="JRN-0001"))
        args = ["heal-log", "clear-state", "JRN-0001", "--dir", str(tmp_path)]

        result = runner.invoke(app, args)
        assert result.exit_code == 0
        assert "Cleared session state for" in result.stdout

        result = runner.invoke(app, args)
        assert result.exit_code == 0
        assert "No saved session state for" in result.stdout
