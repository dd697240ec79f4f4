# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Recently opened remote locations, most recent first per host."""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from remotessh.paths import HostPaths

logger = logging.getLogger(__name__)


class RemoteLocationHistory:
    """Persists ``{host: [path, ...]}`` to a YAML file."""

    def __init__(self, path: Optional[Path] = None):
        self.path = path or HostPaths.history_file()
        self._history: Dict[str, List[str]] = self._load()

    def _load(self) -> Dict[str, List[str]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load location history from {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed location history in {self.path}")
            return {}
        return {
            str(host): [str(p) for p in paths]
            for host, paths in data.items()
            if isinstance(paths, list)
        }

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(self._history, f, default_flow_style=False, sort_keys=True)

    def get_history(self) -> Dict[str, List[str]]:
        return {host: list(paths) for host, paths in self._history.items()}

    def add_location(self, host: str, path: str) -> bool:
        """Remember a location. Returns False if it was already known."""
        locations = self._history.setdefault(host, [])
        if path in locations:
            return False
        locations.insert(0, path)
        self._save()
        return True

    def remove_location(self, host: str, path: str) -> bool:
        """Forget a location. Returns False if it was not known."""
        locations = self._history.get(host, [])
        if path not in locations:
            return False
        locations.remove(path)
        if not locations:
            del self._history[host]
        self._save()
        return True
