"""Tests for the __main__.py command line interface."""

from datetime import datetime
from unittest.mock import patch

import pytest

from cliprecall.__main__ import build_parser, format_entry, main, run_app
from cliprecall.config import Settings
from cliprecall.models import ClipboardEntry, ContentType
from cliprecall.storage import StorageManager
from cliprecall.utils import compute_hash

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + (640).to_bytes(4, "big") + (480).to_bytes(4, "big") + b"\x00" * 8


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    for key in ("CLIPRECALL_STORE_SENSITIVE", "CLIPRECALL_SENSITIVE_TTL", "CLIPRECALL_MAX_HISTORY"):
        monkeypatch.delenv(key, raising=False)
    path = tmp_path / "history.db"
    with patch("cliprecall.__main__.DB_PATH", path), patch("cliprecall.__main__.ensure_dirs"):
        yield path


@pytest.fixture
def seed(db_path):
    def _seed(*texts: str) -> list[int]:
        with StorageManager(db_path) as mgr:
            return [mgr.insert_or_touch(ContentType.TEXT, t, None, compute_hash(t)) for t in texts]

    return _seed


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


class TestFormatEntry:
    def test_text_entry(self):
        entry = ClipboardEntry(
            id=7,
            content_type=ContentType.TEXT,
            text_content="hello\nworld",
            image_bytes=None,
            content_hash="h",
            created_at=datetime(2026, 5, 1, 9, 30, 0),
            pinned=True,
            is_sensitive=True,
            tags=["a", "b"],
        )
        line = format_entry(entry)
        assert line.startswith("     7  PS  2026-05-01 09:30:00  hello world")
        assert line.endswith("#a #b")

    def test_image_with_bytes_shows_dimensions(self):
        entry = ClipboardEntry(
            id=1,
            content_type=ContentType.IMAGE,
            text_content=None,
            image_bytes=PNG,
            content_hash="h",
            created_at=datetime(2026, 5, 1, 9, 30, 0),
        )
        assert "[Image: 640x480]" in format_entry(entry)


class TestParser:
    def test_default_has_no_command(self):
        assert build_parser().parse_args([]).command is None

    def test_tag_requires_a_tag(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["tag", "1"])


class TestCommands:
    def test_list_empty(self, db_path, capsys):
        assert _run(["list"]) == 0
        assert "(No clipboard history)" in capsys.readouterr().out

    def test_list_entries(self, seed, capsys):
        seed("first entry", "second entry")
        assert _run(["list", "-n", "1"]) == 0
        out = capsys.readouterr().out
        assert "second entry" in out
        assert "first entry" not in out

    def test_search_fuzzy(self, seed, capsys):
        seed("clipboard", "history")
        assert _run(["search", "cbd"]) == 0
        out = capsys.readouterr().out
        assert "clipboard" in out
        assert "history" not in out

    def test_search_literal(self, seed, capsys):
        seed("clipboard", "history")
        assert _run(["search", "--literal", "story"]) == 0
        out = capsys.readouterr().out
        assert "history" in out
        assert "clipboard" not in out

    def test_pin_and_unpin(self, seed, db_path):
        (entry_id,) = seed("pin me")
        assert _run(["pin", str(entry_id)]) == 0
        with StorageManager(db_path) as mgr:
            assert mgr.get_entry(entry_id).pinned is True
        assert _run(["unpin", str(entry_id)]) == 0
        with StorageManager(db_path) as mgr:
            assert mgr.get_entry(entry_id).pinned is False

    def test_pin_missing_entry(self, db_path, capsys):
        assert _run(["pin", "999"]) == 1
        assert "No entry with id 999" in capsys.readouterr().out

    def test_tag_and_untag(self, seed, db_path, capsys):
        (entry_id,) = seed("tag me")
        assert _run(["tag", str(entry_id), "work", "sql", "work"]) == 0
        assert "Tags: sql, work" in capsys.readouterr().out
        assert _run(["untag", str(entry_id)]) == 0
        with StorageManager(db_path) as mgr:
            assert mgr.get_entry(entry_id).tags == []

    def test_delete(self, seed, db_path, capsys):
        first, second = seed("keep", "drop")
        assert _run(["delete", str(second)]) == 0
        assert f"Deleted entry {second}" in capsys.readouterr().out
        with StorageManager(db_path) as mgr:
            assert [e.id for e in mgr.list_entries()] == [first]

    def test_delete_missing_entry(self, db_path, capsys):
        assert _run(["delete", "999"]) == 1
        assert "No entry with id 999" in capsys.readouterr().out

    def test_stats(self, seed, db_path, capsys):
        first, _ = seed("a", "b")
        with StorageManager(db_path) as mgr:
            mgr.set_pinned(first, True)
        assert _run(["stats"]) == 0
        out = capsys.readouterr().out
        assert "Entries: 2" in out
        assert "Pinned:  1" in out

    def test_sweep(self, db_path, capsys):
        assert _run(["sweep"]) == 0
        assert "Removed 0 expired entries" in capsys.readouterr().out

    def test_clear_confirmed(self, seed, db_path):
        seed("a", "b")
        assert _run(["clear", "--yes"]) == 0
        with StorageManager(db_path) as mgr:
            assert mgr.count() == 0

    def test_clear_declined(self, seed, db_path):
        seed("a")
        with patch("builtins.input", return_value="n"):
            assert _run(["clear"]) == 1
        with StorageManager(db_path) as mgr:
            assert mgr.count() == 1

    def test_copy_text(self, seed):
        (entry_id,) = seed("copy me")
        with patch("cliprecall.pasteboard.MacPasteboard") as mock_pb_class:
            assert _run(["copy", str(entry_id)]) == 0
        mock_pb_class.return_value.write_text.assert_called_once_with("copy me")

    def test_copy_image(self, db_path):
        with StorageManager(db_path) as mgr:
            entry_id = mgr.insert_or_touch(ContentType.IMAGE, None, PNG, compute_hash(PNG))
        with patch("cliprecall.pasteboard.MacPasteboard") as mock_pb_class:
            assert _run(["copy", str(entry_id)]) == 0
        mock_pb_class.return_value.write_image.assert_called_once_with(PNG)

    @patch("cliprecall.__main__.run_app", return_value=0)
    def test_default_runs_app(self, mock_run):
        assert _run([]) == 0
        mock_run.assert_called_once()

    @patch("cliprecall.__main__.run_app", return_value=0)
    def test_run_command(self, mock_run):
        assert _run(["run"]) == 0
        mock_run.assert_called_once()


class TestRunApp:
    @patch("cliprecall.scheduler.ExpirySweeper")
    @patch("cliprecall.monitor.ClipboardMonitor")
    @patch("cliprecall.pasteboard.MacPasteboard")
    @patch("cliprecall.__main__.StorageManager")
    @patch("cliprecall.__main__.wait_for_interrupt", side_effect=KeyboardInterrupt)
    @patch("cliprecall.__main__.logging.StreamHandler")
    @patch("cliprecall.__main__.logging.FileHandler")
    @patch("cliprecall.__main__.logging.basicConfig")
    @patch("cliprecall.__main__.ensure_dirs")
    def test_runs_until_interrupted(
        self,
        mock_dirs,
        mock_logging,
        _mock_file_handler,
        _mock_stream_handler,
        _mock_wait,
        mock_storage_class,
        _mock_pasteboard,
        mock_monitor_class,
        mock_sweeper_class,
    ):
        monitor = mock_monitor_class.return_value
        sweeper = mock_sweeper_class.return_value
        storage = mock_storage_class.return_value

        assert run_app(Settings()) == 0

        mock_dirs.assert_called_once()
        call_kwargs = mock_logging.call_args[1]
        assert call_kwargs["level"] == 20  # logging.INFO
        assert len(call_kwargs["handlers"]) == 2
        sweeper.run_once.assert_called_once()
        monitor.start.assert_called_once()
        sweeper.start.assert_called_once()
        monitor.stop.assert_called_once()
        sweeper.stop.assert_called_once()
        storage.close.assert_called_once()
