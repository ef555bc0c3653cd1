"""
Tests for secure logging
"""

import logging

import pytest

from sessionguard.core.config import LoggingConfig
from sessionguard.core.logging import (
    SecureLogFilter,
    SecureRotatingFileHandler,
    configure_root_logger,
    get_secure_logger,
)


def _filtered(msg, *args):
    record = logging.LogRecord("sessionguard.test", logging.INFO, __file__, 1, msg, args, None)
    SecureLogFilter().filter(record)
    return record.getMessage()


class TestSecureLogFilter:
    """Test redaction of sensitive values"""

    def test_password_assignment(self):
        assert "hunter2" not in _filtered("login with password=hunter2")
        assert "hunter2" not in _filtered("senha: hunter2")

    def test_argon2_digest(self):
        digest = "$argon2id$v=19$m=1024,t=1,p=1$c2FsdHNhbHQ$aGFzaGhhc2g"
        assert "aGFzaGhhc2g" not in _filtered("stored %s", digest)

    def test_hex_token_in_args(self):
        token = "ab" * 32
        assert token not in _filtered("cookie value %s", token)

    def test_connection_string(self):
        assert "pw@db" not in _filtered("connecting to postgresql://app:pw@db/x")

    def test_plain_messages_untouched(self):
        assert _filtered("User %s logged in from %s", 7, "10.0.0.1") == "User 7 logged in from 10.0.0.1"

    def test_records_never_dropped(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "token=abc", None, None)
        assert SecureLogFilter().filter(record) is True


class TestHandlers:
    """Test logger and handler setup"""

    def test_rotating_handler_rejects_traversal(self, tmp_path):
        with pytest.raises(ValueError):
            SecureRotatingFileHandler(tmp_path / ".." / "escape.log")

    def test_rotating_handler_creates_directory(self, tmp_path):
        handler = SecureRotatingFileHandler(tmp_path / "nested" / "app.log")
        handler.close()
        assert (tmp_path / "nested").is_dir()

    def test_get_secure_logger_writes_redacted_file(self, tmp_path):
        logger = get_secure_logger(
            "sessionguard.test.file",
            log_dir=tmp_path,
            enable_console=False,
            enable_json=True,
        )
        logger.info("reset with password=hunter2")
        for handler in logger.handlers:
            handler.flush()

        content = (tmp_path / "sessionguard_test_file.log").read_text()
        assert "hunter2" not in content
        assert '"level": "INFO"' in content

        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    def test_configure_root_logger_is_repeatable(self, tmp_path):
        root = logging.getLogger()
        config = LoggingConfig(level="WARNING", enable_file=True)

        configure_root_logger(config, tmp_path)
        configure_root_logger(config, tmp_path)

        ours = [h for h in root.handlers if getattr(h, "_sessionguard", False)]
        assert len(ours) == 2
        assert root.level == logging.WARNING

        for handler in ours:
            root.removeHandler(handler)
            handler.close()
