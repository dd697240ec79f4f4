# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Unified logging for remotessh.

This module provides:
1. Centralized logging configuration
2. Debug mode via REMOTESSH_DEBUG env var or programmatic flag
3. Log levels via REMOTESSH_LOG_LEVEL env var
4. Dual output: Rich console for CLI, rotating file for debugging
5. Daemon mode: stderr-only for long-running tunnel processes

Usage:
    from remotessh.utils.logging import get_logger, configure_logging

    # In CLI entry point:
    configure_logging(debug=debug)

    # In any module:
    logger = get_logger(__name__)
    logger.info("Resolving authority", console_output=False)
    logger.error("Tunnel failed", exc=exception)

Environment Variables:
    REMOTESSH_DEBUG=1          Enable debug mode (verbose output)
    REMOTESSH_LOG_LEVEL=DEBUG  Set log level (DEBUG, INFO, WARNING, ERROR)
    REMOTESSH_LOG_FILE=/path   Override log file location
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console

from remotessh.paths import HostPaths

# Global state
_configured = False
_debug_mode = False
_daemon_mode = False
_log_file: Optional[Path] = None

# Shared Rich console instance (stderr so command output stays pipeable)
console = Console(stderr=True)

# Custom log level for success messages
SUCCESS_LEVEL = 25
logging.addLevelName(SUCCESS_LEVEL, "SUCCESS")


def _get_log_file() -> Path:
    """Get the log file path."""
    global _log_file
    if _log_file:
        return _log_file

    env_log_file = os.environ.get("REMOTESSH_LOG_FILE")
    if env_log_file:
        _log_file = Path(env_log_file)
    else:
        _log_file = HostPaths.log_dir() / "remotessh.log"

    _log_file.parent.mkdir(parents=True, exist_ok=True)
    return _log_file


def is_debug_mode() -> bool:
    """Check if debug mode is enabled."""
    return _debug_mode or os.environ.get("REMOTESSH_DEBUG", "").lower() in ("1", "true", "yes")


def configure_logging(
    debug: bool = False,
    daemon: bool = False,
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
) -> None:
    """Configure the logging system.

    Should be called once at application startup. Later calls can only
    switch debug mode on.

    Args:
        debug: Enable debug mode (verbose output, debug to console)
        daemon: Daemon mode (stderr only, no Rich formatting)
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Override log file path
    """
    global _configured, _debug_mode, _daemon_mode, _log_file

    if _configured:
        # Modules configure defaults on import; the CLI flag comes later
        if debug and not _debug_mode:
            _debug_mode = True
            logging.getLogger("remotessh").setLevel(logging.DEBUG)
        return

    _debug_mode = debug or is_debug_mode()
    _daemon_mode = daemon

    if log_file:
        _log_file = log_file

    if log_level:
        level_name = log_level.upper()
    else:
        level_name = os.environ.get(
            "REMOTESSH_LOG_LEVEL", "DEBUG" if _debug_mode else "INFO"
        ).upper()

    level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger("remotessh")
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    # File handler with rotation, captures everything
    try:
        file_handler = RotatingFileHandler(
            _get_log_file(),
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root_logger.addHandler(file_handler)
    except OSError:
        # Can't write log file, continue without it
        pass

    if _daemon_mode:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(level)
        stderr_handler.setFormatter(logging.Formatter("%(name)s: %(levelname)s: %(message)s"))
        root_logger.addHandler(stderr_handler)

    _configured = True

    root_logger.debug(
        f"Logging configured: level={level_name}, debug={_debug_mode}, daemon={_daemon_mode}"
    )
    if _log_file:
        root_logger.debug(f"Log file: {_log_file}")


class RemoteSSHLogger:
    """Logger wrapper with Rich console output.

    Library code passes console_output=False so that only CLI commands
    print; everything still reaches the log file.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(name)
        self.console = console

    def debug(self, message: str, console_output: bool = False) -> None:
        """Log debug message. Shown on console only in debug mode."""
        self.logger.debug(message)
        if console_output or is_debug_mode():
            if _daemon_mode:
                print(f"DEBUG: {message}", file=sys.stderr)
            else:
                self.console.print(f"[dim][DEBUG] {message}[/dim]", highlight=False)

    def info(self, message: str, console_output: bool = True) -> None:
        """Log info message."""
        self.logger.info(message)
        if console_output and not _daemon_mode:
            self.console.print(f"[blue]{message}[/blue]", highlight=False)
        elif console_output and _daemon_mode:
            print(f"INFO: {message}", file=sys.stderr)

    def success(self, message: str, console_output: bool = True) -> None:
        """Log success message (green output)."""
        self.logger.log(SUCCESS_LEVEL, message)
        if console_output and not _daemon_mode:
            self.console.print(f"[green]✓ {message}[/green]", highlight=False)
        elif console_output and _daemon_mode:
            print(f"SUCCESS: {message}", file=sys.stderr)

    def warning(self, message: str, console_output: bool = True) -> None:
        """Log warning message (yellow output)."""
        self.logger.warning(message)
        if console_output and not _daemon_mode:
            self.console.print(f"[yellow]⚠ {message}[/yellow]", highlight=False)
        elif console_output and _daemon_mode:
            print(f"WARNING: {message}", file=sys.stderr)

    def error(
        self,
        message: str,
        exc: Optional[BaseException] = None,
        console_output: bool = True,
    ) -> None:
        """Log error message (red output).

        Args:
            message: Error message
            exc: Optional exception to include in log
            console_output: Output to console
        """
        if exc:
            self.logger.error(f"{message}: {exc}", exc_info=exc)
            error_msg = f"{message}: {exc}"
        else:
            self.logger.error(message)
            error_msg = message

        if console_output and not _daemon_mode:
            self.console.print(f"[red]✗ {error_msg}[/red]", highlight=False)
        elif console_output and _daemon_mode:
            print(f"ERROR: {error_msg}", file=sys.stderr)

    def exception(self, message: str, console_output: bool = True) -> None:
        """Log exception with full traceback. Call from within an except block."""
        self.logger.exception(message)
        if console_output and not _daemon_mode:
            self.console.print(f"[red]✗ {message}[/red]", highlight=False)
            if is_debug_mode():
                self.console.print_exception()
        elif console_output and _daemon_mode:
            print(f"ERROR: {message}", file=sys.stderr)


def get_logger(name: str) -> RemoteSSHLogger:
    """Get or create a logger for a module.

    Args:
        name: Module name (typically __name__)
    """
    if not _configured:
        configure_logging()

    # Ensure name is under remotessh namespace
    if not name.startswith("remotessh"):
        name = f"remotessh.{name}"

    return RemoteSSHLogger(name)
