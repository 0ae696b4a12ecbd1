"""Tests for Place Mini CLI — proves CLI dispatches correctly."""

import json
import logging
import os
from pathlib import Path

import pytest

from placemini import cli
from placemini.cli import build_parser, main
from placemini.logging_cfg import resolve_level, setup_logging


class TestCLIParsing:
    def test_status_command(self) -> None:
        args = build_parser().parse_args(["status", "--session", "post-1"])
        assert args.command == "status"
        assert args.session == "post-1"

    def test_vote_command(self) -> None:
        args = build_parser().parse_args([
            "vote", "--session", "post-1", "--voter", "alice",
            "--row", "2", "--col", "3", "--color", "#E50000",
        ])
        assert args.command == "vote"
        assert (args.row, args.col) == (2, 3)
        assert args.color == "#E50000"

    def test_frame_accepts_negative_delta(self) -> None:
        args = build_parser().parse_args([
            "frame", "--session", "post-1", "--current", "3", "--delta", "-1",
        ])
        assert args.delta == -1

    def test_global_options(self, tmp_path: Path) -> None:
        args = build_parser().parse_args([
            "--data", str(tmp_path), "--log-level", "DEBUG", "tick", "--session", "s",
        ])
        assert args.data == tmp_path
        assert args.log_level == "DEBUG"


class TestCLIExecution:
    @pytest.fixture
    def data_args(self, tmp_path: Path) -> list[str]:
        return ["--data", str(tmp_path)]

    def test_no_command_shows_help(self, capsys) -> None:
        assert main([]) == 0
        assert "placemini" in capsys.readouterr().out

    def test_check_invariants_runs(self) -> None:
        assert main(["check-invariants"]) == 0

    def test_open_then_status(self, data_args: list[str], capsys) -> None:
        assert main(data_args + ["open", "--session", "post-1"]) == 0
        capsys.readouterr()
        assert main(data_args + ["status", "--session", "post-1"]) == 0
        status = json.loads(capsys.readouterr().out)
        assert status["active"]
        assert status["frame_count"] == 0

    def test_vote_e2e(self, data_args: list[str], tmp_path: Path, capsys) -> None:
        exit_code = main(data_args + [
            "vote", "--session", "post-1", "--voter", "alice",
            "--row", "0", "--col", "0", "--color", "#E50000",
        ])
        assert exit_code == 0
        assert "Vote recorded" in capsys.readouterr().out
        assert (tmp_path / "canvas.db").exists()
        assert (tmp_path / "events.jsonl").exists()

        assert main(data_args + [
            "select", "--session", "post-1", "--voter", "alice", "--row", "0", "--col", "0",
        ]) == 0
        cell = json.loads(capsys.readouterr().out)
        assert cell["has_voted"]
        assert cell["counts"]["#E50000"] == 1

    def test_duplicate_vote_fails(self, data_args: list[str], capsys) -> None:
        vote = data_args + [
            "vote", "--session", "post-1", "--voter", "alice",
            "--row", "1", "--col", "1", "--color", "#0000EA",
        ]
        assert main(vote) == 0
        assert main(vote) == 1
        assert "already voted" in capsys.readouterr().err

    def test_tick_e2e(self, data_args: list[str], capsys) -> None:
        assert main(data_args + ["tick", "--session", "post-1"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["settled"] is False
        assert data["frame_count"] == 0

    def test_frame_outside_history_fails(self, data_args: list[str]) -> None:
        assert main(data_args + [
            "frame", "--session", "post-1", "--current", "0", "--delta", "-1",
        ]) == 1


class TestCLILogging:
    @pytest.fixture(autouse=True)
    def _reset_logging(self):
        yield
        setup_logging("WARNING")

    def test_dotenv_log_level_applies(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("PLACEMINI_LOG_LEVEL=DEBUG\n", encoding="utf-8")
        monkeypatch.setattr(cli, "DOTENV_PATH", env_file)
        monkeypatch.delenv("PLACEMINI_LOG_LEVEL", raising=False)
        try:
            assert main(["--data", str(tmp_path / "data"), "status", "--session", "s"]) == 0
            assert logging.getLogger().level == logging.DEBUG
        finally:
            os.environ.pop("PLACEMINI_LOG_LEVEL", None)

    def test_log_dir_writes_file(self, tmp_path: Path) -> None:
        log_dir = tmp_path / "logs"
        assert main([
            "--data", str(tmp_path / "data"), "--log-level", "INFO",
            "--log-dir", str(log_dir), "open", "--session", "post-1",
        ]) == 0
        text = (log_dir / "placemini.log").read_text(encoding="utf-8")
        assert "Opened session post-1" in text

    def test_log_dir_from_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("PLACEMINI_LOG_DIR", str(tmp_path / "env-logs"))
        args = build_parser().parse_args(["status", "--session", "s"])
        assert args.log_dir == tmp_path / "env-logs"

    @pytest.mark.parametrize("name,expected", [
        ("debug", logging.DEBUG),
        (" Warning ", logging.WARNING),
        ("chatty", logging.INFO),
        (logging.ERROR, logging.ERROR),
    ])
    def test_level_names_resolved(self, name, expected: int) -> None:
        assert resolve_level(name) == expected
