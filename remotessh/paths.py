# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Centralized path definitions for remotessh.

Usage:
    from remotessh.paths import HostPaths

    config_file = HostPaths.config_file()
    history = HostPaths.history_file()
"""

import os
from pathlib import Path


class HostPaths:
    """Paths on the local machine where the remotessh CLI runs."""

    # XDG config directory for remotessh
    @staticmethod
    def config_dir() -> Path:
        """~/.config/remotessh/ (or REMOTESSH_CONFIG_DIR)"""
        override = os.getenv("REMOTESSH_CONFIG_DIR")
        if override:
            return Path(override)
        return Path.home() / ".config" / "remotessh"

    @staticmethod
    def config_file() -> Path:
        """~/.config/remotessh/config.yml"""
        return HostPaths.config_dir() / "config.yml"

    # XDG data directory
    @staticmethod
    def data_dir() -> Path:
        """~/.local/share/remotessh/"""
        return Path.home() / ".local" / "share" / "remotessh"

    @staticmethod
    def history_file() -> Path:
        """~/.local/share/remotessh/history.yml - recently opened remote locations."""
        return HostPaths.data_dir() / "history.yml"

    # XDG state directory
    @staticmethod
    def state_dir() -> Path:
        """~/.local/state/remotessh/"""
        return Path.home() / ".local" / "state" / "remotessh"

    @staticmethod
    def log_dir() -> Path:
        """~/.local/state/remotessh/logs/"""
        return HostPaths.state_dir() / "logs"
