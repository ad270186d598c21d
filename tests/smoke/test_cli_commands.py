"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import io
import os
import subprocess
import sys
from datetime import datetime
from pathlib import Path

import pytest
from rich.console import Console
from typer.testing import CliRunner

from rudiment_coach import cli
from rudiment_coach.catalog import RudimentCatalog
from rudiment_coach.cli import AppContext, app, save_outcome
from rudiment_coach.clock import FixedClock
from rudiment_coach.config import get_settings
from rudiment_coach.state_store import RudimentProgress, StateStore

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent

runner = CliRunner()


def run_cli_command(command: str, data_dir: Path, timeout: int = 30) -> tuple[int, str, str]:
    """
    Run a CLI command in a subprocess and return exit code, stdout, stderr.

    Args:
        command: The command to run (after 'python -m rudiment_coach')
        data_dir: Directory for the practice database
        timeout: Maximum time to wait

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    full_command = f"{sys.executable} -m rudiment_coach {command}"

    result = subprocess.run(
        full_command,
        shell=True,
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        timeout=timeout,
        env={**os.environ, "RUDIMENT_DATA_DIR": str(data_dir)},
    )

    return result.returncode, result.stdout, result.stderr


@pytest.fixture(autouse=True)
def isolated_data_dir(monkeypatch, tmp_path):
    """Point the CLI at an empty database for every test."""
    monkeypatch.setenv("RUDIMENT_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("RUDIMENT_CATALOG_PATH", raising=False)
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self, tmp_path):
        """Main help should display without errors."""
        code, stdout, stderr = run_cli_command("--help", tmp_path)

        assert code == 0, f"Help failed: {stderr}"
        assert "rudiment" in stdout.lower()
        assert "Commands" in stdout

    @pytest.mark.parametrize("command", ["today", "skills", "streak", "drill", "score", "reset"])
    def test_command_help(self, command):
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0, result.output


class TestCLIToday:
    """Test today command."""

    def test_fresh_install(self):
        result = runner.invoke(app, ["today"])

        assert result.exit_code == 0, result.output
        assert "Streak: 0 days" in result.output
        assert "Today's drills" in result.output
        assert "single-stroke-roll" in result.output

    def test_custom_tempo(self):
        result = runner.invoke(app, ["today", "--bpm", "100"])

        assert result.exit_code == 0
        assert "@ 100 bpm" in result.output


class TestCLIScore:
    """Test score command and the commands that read what it saved."""

    def test_score_then_streak(self):
        result = runner.invoke(
            app, ["score", "flam", "-s", "sticking=5", "-s", "evenness=5", "-s", "tempo=5", "--bpm", "80"]
        )
        assert result.exit_code == 0, result.output
        assert "RepScore: 5.0" in result.output
        assert "86 bpm" in result.output

        result = runner.invoke(app, ["streak"])
        assert result.exit_code == 0
        assert "Streak: 1 day" in result.output

        result = runner.invoke(app, ["skills"])
        assert result.exit_code == 0
        assert "3.25" in result.output

    def test_unknown_rudiment(self):
        result = runner.invoke(app, ["score", "cowbell-solo"])

        assert result.exit_code == 2
        assert "Unknown rudiment" in result.output

    @pytest.mark.parametrize("raw", ["sticking=9", "groove=3", "sticking", "tempo=fast"])
    def test_bad_score(self, raw):
        result = runner.invoke(app, ["score", "flam", "-s", raw])

        assert result.exit_code == 2
        assert "Criteria:" in result.output

    def test_unscored_criteria_default_to_three(self):
        result = runner.invoke(app, ["score", "drag"])

        assert result.exit_code == 0
        assert "RepScore: 3.0" in result.output


class TestCLIReset:
    """Test reset command."""

    def test_reset_clears_history(self):
        runner.invoke(app, ["score", "flam"])
        result = runner.invoke(app, ["reset", "--yes"])
        assert result.exit_code == 0
        assert "cleared" in result.output

        result = runner.invoke(app, ["streak"])
        assert "Streak: 0 days" in result.output

    def test_reset_declined(self):
        result = runner.invoke(app, ["reset"], input="n\n")
        assert result.exit_code == 0
        assert "Nothing changed" in result.output


class TestCLICatalog:
    """Test loading a custom catalog file."""

    def test_custom_catalog(self, monkeypatch, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text('[{"id": "ratamacue", "name": "Ratamacue", "tier": 4, "sticking": "LRLR"}]')
        monkeypatch.setenv("RUDIMENT_CATALOG_PATH", str(path))
        get_settings.cache_clear()

        result = runner.invoke(app, ["today"])
        assert result.exit_code == 0
        assert "ratamacue" in result.output

    def test_broken_catalog_exits(self, monkeypatch, tmp_path):
        path = tmp_path / "catalog.json"
        path.write_text("{")
        monkeypatch.setenv("RUDIMENT_CATALOG_PATH", str(path))
        get_settings.cache_clear()

        result = runner.invoke(app, ["today"])
        assert result.exit_code == 2


def block_writes(store: StateStore) -> None:
    """Make every write to the practice database fail."""
    store.conn.execute("""
        CREATE TRIGGER reject_writes BEFORE INSERT ON kv_store
        BEGIN SELECT RAISE(ABORT, 'disk full'); END
    """)


class TestCLISaveFailure:
    """A drill outcome that cannot be saved is reported, never dropped silently."""

    def test_score_reports_unsaved_session(self, tmp_path):
        with StateStore(tmp_path / "state.db") as store:
            block_writes(store)

        result = runner.invoke(app, ["score", "flam", "-s", "sticking=5"])

        assert result.exit_code == 1
        assert "Could not save practice data" in result.output
        assert "This session was NOT logged." in result.output
        assert "Session Summary" not in result.output

        with StateStore(tmp_path / "state.db") as store:
            assert store.progress.load() == {}
            assert store.sessions.load() == []

    @pytest.fixture
    def save_context(self, tmp_path, monkeypatch):
        output = io.StringIO()
        monkeypatch.setattr(cli, "console", Console(file=output, width=120))
        store = StateStore(tmp_path / "retry.db")
        block_writes(store)
        ctx = AppContext(
            settings=get_settings(),
            store=store,
            catalog=RudimentCatalog(),
            clock=FixedClock(datetime(2026, 3, 10, 18, 30)),
        )
        yield ctx, output
        store.close()

    def test_retry_after_failure_saves(self, save_context, monkeypatch):
        ctx, output = save_context
        prompts: list[str] = []

        def retry_once_storage_recovers(prompt, default=True):
            prompts.append(prompt)
            ctx.store.conn.execute("DROP TRIGGER reject_writes")
            return True

        monkeypatch.setattr(cli.Confirm, "ask", retry_once_storage_recovers)

        outcome = save_outcome(ctx, "flam", 4.0)

        assert outcome is not None
        assert prompts == ["Retry saving?"]
        assert "Could not save practice data" in output.getvalue()
        assert "NOT logged" not in output.getvalue()
        assert ctx.store.progress.get("flam").rating == outcome.progress.rating
        assert ctx.store.sessions.load() == ["2026-03-10"]

    def test_declined_retry_reports_unsaved_session(self, save_context, monkeypatch):
        ctx, output = save_context
        monkeypatch.setattr(cli.Confirm, "ask", lambda prompt, default=True: False)

        assert save_outcome(ctx, "flam", 4.0) is None
        assert "This session was NOT logged." in output.getvalue()
        assert ctx.store.progress.load() == {}


class TestCLIStoreLifecycle:
    """Every command closes the practice database it opened."""

    def test_store_closed_after_each_command(self, monkeypatch):
        closed: list[str] = []

        class TrackingStore(StateStore):
            def close(self):
                closed.append(str(self.db_path))
                super().close()

        monkeypatch.setattr(cli, "StateStore", TrackingStore)

        assert runner.invoke(app, ["today"]).exit_code == 0
        assert runner.invoke(app, ["score", "flam"]).exit_code == 0
        assert runner.invoke(app, ["score", "cowbell-solo"]).exit_code == 2
        assert len(closed) == 3


class TestCLISkills:
    """Test skills command."""

    def test_overdue_rudiment_shows_days_late(self, tmp_path):
        with StateStore(tmp_path / "state.db") as store:
            store.progress.save({"flam": RudimentProgress(rating=2.1, next_due_at=datetime(2020, 1, 1))})

        result = runner.invoke(app, ["skills"])

        assert result.exit_code == 0
        assert "2.10" in result.output
        assert "d late)" in result.output
        assert "new" in result.output
