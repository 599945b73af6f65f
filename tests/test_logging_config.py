"""Tests for logging setup."""
import logging
import tempfile
from datetime import datetime, timedelta
from pathlib import Path


def test_setup_logging_writes_daily_file():
    """setup_logging should log DEBUG to a dated file."""
    from audiofeed.logging_config import setup_logging

    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir) / "logs"
        root = setup_logging(log_dir, retention_days=7)
        try:
            logging.getLogger("audiofeed.test").debug("[TEST] hello")
            for handler in root.handlers:
                handler.flush()

            log_file = log_dir / f"{datetime.now().strftime('%Y-%m-%d')}.log"
            assert log_file.exists()
            assert "[TEST] hello" in log_file.read_text(encoding="utf-8")
            assert logging.getLogger("urllib3").level == logging.WARNING
        finally:
            for handler in list(root.handlers):
                handler.close()
                root.removeHandler(handler)


def test_cleanup_old_logs_keeps_recent_and_foreign_files():
    """Only dated logs past retention are deleted."""
    from audiofeed.logging_config import cleanup_old_logs

    with tempfile.TemporaryDirectory() as tmpdir:
        log_dir = Path(tmpdir)
        old = log_dir / f"{(datetime.now() - timedelta(days=40)).strftime('%Y-%m-%d')}.log"
        recent = log_dir / f"{(datetime.now() - timedelta(days=1)).strftime('%Y-%m-%d')}.log"
        foreign = log_dir / "notes.log"
        for path in (old, recent, foreign):
            path.write_text("x")

        cleanup_old_logs(log_dir, retention_days=30)

        assert not old.exists()
        assert recent.exists()
        assert foreign.exists()
