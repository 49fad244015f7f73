"""Tests for the forge-score command line."""

from __future__ import annotations

import json
import logging
import os

import pytest

from forgescore.entrypoints.worker import build_parser, main


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    """Point the CLI at a throwaway SQLite database and data dir."""
    for key in list(os.environ):
        if key.startswith("FORGE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("FORGE_TEST_MODE", "true")
    monkeypatch.setenv("FORGE_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("FORGE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("FORGE_DATABASE__URL", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")

    root = logging.getLogger()
    root_handlers, root_level = list(root.handlers), root.level
    events = logging.getLogger("event")
    event_handlers = list(events.handlers)
    yield tmp_path
    for handler in list(events.handlers):
        if handler not in event_handlers:
            events.removeHandler(handler)
            handler.close()
    for handler in list(root.handlers):
        if handler not in root_handlers:
            root.removeHandler(handler)
    root.setLevel(root_level)


def _json_out(capsys):
    return json.loads(capsys.readouterr().out)


class TestParser:
    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_verify_arguments(self):
        args = build_parser().parse_args(
            [
                "verify",
                "--builder",
                "b1",
                "--delivery-id",
                "d1",
                "--deployment-url",
                "https://app.example.com",
            ]
        )
        assert args.command == "verify"
        assert args.deployment_url == "https://app.example.com"
        assert args.repo_url is None

    def test_history_limit(self):
        args = build_parser().parse_args(["--log-level", "DEBUG", "history", "--builder", "b1", "--limit", "3"])
        assert args.limit == 3
        assert args.log_level == "DEBUG"


class TestCommands:
    """End-to-end runs of main() against SQLite."""

    def test_init_db(self, cli_env):
        assert main(["init-db"]) == 0
        assert (cli_env / "cli.db").exists()
        assert (cli_env / "data" / "logs").is_dir()

    def test_recompute_then_process(self, cli_env, capsys):
        main(["init-db"])
        capsys.readouterr()

        assert main(["recompute", "--builder", "b1"]) == 0
        queued = _json_out(capsys)
        assert queued["queued"] is True

        assert main(["process-queue"]) == 0
        assert _json_out(capsys) == {"processed": 1, "failed": 0, "total": 1}

        assert main(["history", "--builder", "b1"]) == 0
        history = _json_out(capsys)
        assert len(history) == 1
        assert history[0]["reason"] == "manual"

    def test_recompute_rate_limited(self, cli_env, capsys):
        main(["init-db"])
        main(["recompute", "--builder", "b1"])
        main(["process-queue"])
        capsys.readouterr()

        assert main(["recompute", "--builder", "b1"]) == 2
        refused = _json_out(capsys)
        assert refused["queued"] is False
        assert refused["retry_after_seconds"] > 0

    def test_empty_queue(self, cli_env, capsys):
        main(["init-db"])
        capsys.readouterr()
        assert main(["process-queue", "--limit", "5"]) == 0
        assert _json_out(capsys) == {"processed": 0, "failed": 0, "total": 0}

    def test_verify_without_targets(self, cli_env, capsys):
        main(["init-db"])
        capsys.readouterr()
        assert main(["verify", "--builder", "b1", "--delivery-id", "d1"]) == 0
        out = _json_out(capsys)
        assert out["evidence_count"] == 0
        assert out["verification"]["status"] == "pending"
