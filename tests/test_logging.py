"""Tests for per-account and error log files."""

import logging
from pathlib import Path

from filter_move_mail.logging import get_account_logger


def flush(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.flush()


class TestAccountLogs:
    """Tests for log file routing."""

    def test_account_log_file(self, tmp_path: Path) -> None:
        logger = get_account_logger("Work Mail")
        logger.info("3 message(s) moved")
        flush(logger)

        text = (tmp_path / "logs" / "filter-move-mail-Work-Mail.log").read_text()
        assert "3 message(s) moved" in text
        assert get_account_logger("Work Mail") is logger

    def test_errors_reach_shared_log(self, tmp_path: Path) -> None:
        get_account_logger("Home").error("Move failed")
        logging.getLogger("filter_move_mail.rules.engine").error("Engine failure")

        error_log = logging.getLogger("filter-move-mail.errors")
        flush(error_log)
        text = (tmp_path / "logs" / "filter-move-mail-error.log").read_text()
        assert "[Home] Move failed" in text
        assert "Engine failure" in text

    def test_error_log_created_alongside_foreign_handlers(self, tmp_path: Path) -> None:
        """Handlers added by others (e.g. log capture) do not replace the file."""
        error_log = logging.getLogger("filter-move-mail.errors")
        foreign = logging.NullHandler()
        error_log.addHandler(foreign)
        try:
            get_account_logger("Home").error("Move failed")
            flush(error_log)
        finally:
            error_log.removeHandler(foreign)

        text = (tmp_path / "logs" / "filter-move-mail-error.log").read_text()
        assert "[Home] Move failed" in text
