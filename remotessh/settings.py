# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""User settings from ~/.config/remotessh/config.yml."""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from remotessh.paths import HostPaths

logger = logging.getLogger(__name__)

KNOWN_PLATFORMS = ("linux", "macos", "windows")


class RemoteSSHSettings(BaseModel):
    """Settings consumed by the resolver and the CLI.

    Example config.yml:

        connect_timeout: 30
        remote_platform:
          buildbox: linux
        default_extensions: [ms-python.python]
        server_installer: mypkg.install:install_server
    """

    model_config = ConfigDict(extra="ignore")

    server_download_url_template: Optional[str] = None
    default_extensions: List[str] = Field(default_factory=list)
    remote_platform: Dict[str, str] = Field(default_factory=dict)
    remote_server_listen_on_socket: bool = False
    connect_timeout: int = Field(default=60, gt=0)
    ssh_binary: str = "ssh"
    extra_ssh_options: List[str] = Field(default_factory=list)
    tunnel_grace_seconds: float = Field(default=1.0, gt=0)
    server_installer: Optional[str] = None  # "module:attribute"

    @field_validator("remote_platform")
    @classmethod
    def validate_platforms(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Restrict per-host overrides to known platform names."""
        for host, platform in v.items():
            if platform not in KNOWN_PLATFORMS:
                raise ValueError(
                    f"remote_platform for '{host}' must be one of {', '.join(KNOWN_PLATFORMS)}"
                )
        return v


def load_settings(path: Optional[Path] = None) -> RemoteSSHSettings:
    """Load settings from YAML, falling back to defaults on any problem."""
    config_path = path or HostPaths.config_file()
    if not config_path.exists():
        return RemoteSSHSettings()

    try:
        with open(config_path) as f:
            raw_config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config from {config_path}: {e}")
        return RemoteSSHSettings()

    if not isinstance(raw_config, dict):
        logger.warning(f"Ignoring {config_path}: expected a mapping at top level")
        return RemoteSSHSettings()

    try:
        return RemoteSSHSettings.model_validate(raw_config)
    except ValidationError as e:
        logger.warning(f"Config validation errors: {e}")
        return RemoteSSHSettings()


# Singleton instance
_settings: Optional[RemoteSSHSettings] = None


def get_settings() -> RemoteSSHSettings:
    """Get the global settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
