"""Tests for the command-line entry point."""

import json
import logging
from datetime import timedelta
from unittest.mock import patch

import pytest

import fetch_news
from newsdesk.models import ContentItem, PipelineStatus, utcnow
from newsdesk.storage.database import Database


@pytest.fixture
def cli_config(tmp_path):
    cfg = {
        "db_path": str(tmp_path / "cli.db"),
        "log_path": str(tmp_path / "pipeline.log"),
        "retention_hours": 168,
    }
    with patch("fetch_news.load_config", return_value=cfg), \
            patch("fetch_news.setup_logging", return_value=logging.getLogger("test")):
        yield cfg


class TestParser:
    def test_run_with_source(self) -> None:
        args = fetch_news.build_parser().parse_args(["run", "--source", "CBC"])

        assert args.command == "run"
        assert args.source == "CBC"

    def test_providers_reset(self) -> None:
        args = fetch_news.build_parser().parse_args(["providers", "reset", "--provider", "claude"])

        assert args.action == "reset"
        assert args.provider == "claude"

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            fetch_news.build_parser().parse_args([])


class TestCommands:
    def test_status_prints_json(self, cli_config, capsys) -> None:
        with Database(cli_config["db_path"]) as db:
            db.upsert_status(PipelineStatus(current_source="Done", progress=3, total=3))

        assert fetch_news.main(["status"]) == 0

        printed = json.loads(capsys.readouterr().out)
        assert printed["current_source"] == "Done"
        assert printed["is_running"] is False

    def test_reset(self, cli_config) -> None:
        with Database(cli_config["db_path"]) as db:
            db.upsert_status(PipelineStatus(is_running=True))

        assert fetch_news.main(["reset"]) == 0

        with Database(cli_config["db_path"]) as db:
            assert not db.get_status().is_running

    def test_cleanup_keeps_recent_and_pinned(self, cli_config) -> None:
        old = utcnow() - timedelta(hours=200)
        with Database(cli_config["db_path"]) as db:
            db.insert_draft(ContentItem(source_id=None, url="https://e.com/old", title="Old", created_at=old))
            pinned = db.insert_draft(ContentItem(source_id=None, url="https://e.com/pin", title="Pin", created_at=old))
            db.update_item(pinned, is_pinned=True)
            db.insert_draft(ContentItem(source_id=None, url="https://e.com/new", title="New"))

        assert fetch_news.main(["cleanup"]) == 0

        with Database(cli_config["db_path"]) as db:
            assert db.count_items() == 2

    @patch("fetch_news.build_context")
    def test_providers_status_notes_per_process_counters(self, mock_build, cli_config, caplog, capsys) -> None:
        mock_build.return_value.ai.status.return_value = {"gemini": {"failures": 0, "healthy": True}}
        caplog.set_level(logging.INFO, logger="test")

        assert fetch_news.main(["providers", "status"]) == 0

        assert "per process" in caplog.text
        assert json.loads(capsys.readouterr().out)["gemini"]["healthy"] is True

    @patch("fetch_news.run_pipeline")
    @patch("fetch_news.build_context")
    def test_run_busy_returns_error(self, mock_build, mock_run, cli_config) -> None:
        mock_run.side_effect = fetch_news.PipelineAlreadyRunning("busy")

        assert fetch_news.main(["run"]) == 1
        mock_build.return_value.close.assert_called_once()
