# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for the logging helpers."""

import logging
from unittest.mock import patch

from remotessh.utils import logging as rlogging


class TestGetLogger:
    """Test logger naming and output routing"""

    def test_names_are_namespaced(self):
        """Test logger names are placed under remotessh"""
        assert rlogging.get_logger("remotessh.resolver").name == "remotessh.resolver"
        assert rlogging.get_logger("plugins.installer").name == "remotessh.plugins.installer"

    def test_console_output_suppressed(self):
        """Test console_output=False keeps messages off the console"""
        logger = rlogging.get_logger("remotessh.test")

        with patch.object(logger.console, "print") as mock_print:
            logger.info("quiet", console_output=False)
            logger.warning("quiet", console_output=False)
            logger.error("quiet", exc=RuntimeError("x"), console_output=False)

        mock_print.assert_not_called()

    def test_success_goes_to_console(self):
        """Test success messages are printed to the console"""
        logger = rlogging.get_logger("remotessh.test")

        with patch.object(logger.console, "print") as mock_print:
            logger.success("tunnel up")

        assert "tunnel up" in mock_print.call_args[0][0]

    def test_exception_logs_traceback(self, caplog):
        """Test exception() records exc_info"""
        logger = rlogging.get_logger("remotessh.test")

        with patch.object(logger.console, "print"), caplog.at_level(logging.ERROR):
            try:
                raise ValueError("bad")
            except ValueError:
                logger.exception("failed")

        assert any(r.exc_info for r in caplog.records if r.getMessage() == "failed")


class TestDebugMode:
    """Test debug mode switches"""

    def test_env_var(self, monkeypatch):
        """Test REMOTESSH_DEBUG enables debug mode"""
        monkeypatch.setattr(rlogging, "_debug_mode", False)
        monkeypatch.setenv("REMOTESSH_DEBUG", "1")

        assert rlogging.is_debug_mode()

    def test_late_debug_flag(self, monkeypatch):
        """Test configure_logging(debug=True) after setup lowers the level"""
        monkeypatch.setattr(rlogging, "_configured", True)
        monkeypatch.setattr(rlogging, "_debug_mode", False)
        monkeypatch.delenv("REMOTESSH_DEBUG", raising=False)
        root = logging.getLogger("remotessh")
        monkeypatch.setattr(root, "level", logging.INFO)

        rlogging.configure_logging(debug=True)

        assert rlogging.is_debug_mode()
        assert root.level == logging.DEBUG
