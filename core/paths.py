# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""
Hearth Paths — single source of truth for all data file locations.

Resolution order:
  1. HEARTH_DATA_DIR environment variable
  2. Default: ~/.hearth/

Usage:
    from core.paths import get_paths
    p = get_paths()
    p.users_dir         # ~/.hearth/users/
    p.user_dir("u1")    # ~/.hearth/users/u1/
    p.config_file       # ~/.hearth/hearth-config.json

For tests:
    from core.paths import configure
    configure(tmp_path)  # all paths now rooted under tmp_path
"""

import os
from pathlib import Path
from typing import Optional


class HearthPaths:
    """Central registry of every file and directory Hearth uses."""

    def __init__(self, data_dir: Optional[Path] = None):
        if data_dir is not None:
            self._root = Path(data_dir)
        else:
            env = os.environ.get("HEARTH_DATA_DIR")
            if env:
                self._root = Path(env).expanduser()
            else:
                self._root = Path.home() / ".hearth"

    # ------------------------------------------------------------------
    # Root
    # ------------------------------------------------------------------
    @property
    def data_dir(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Per-user document store
    # ------------------------------------------------------------------
    @property
    def users_dir(self) -> Path:
        return self._root / "users"

    def user_dir(self, user_id: str) -> Path:
        return self.users_dir / user_id

    def collection_dir(self, user_id: str, collection: str) -> Path:
        return self.user_dir(user_id) / collection

    # ------------------------------------------------------------------
    # Config & logs
    # ------------------------------------------------------------------
    @property
    def config_file(self) -> Path:
        return self._root / "hearth-config.json"

    @property
    def log_file(self) -> Path:
        return self._root / "hearth.log"

    # ------------------------------------------------------------------
    # Directory creation
    # ------------------------------------------------------------------
    def ensure_dirs(self) -> None:
        """Create all required directories."""
        for d in (self.data_dir, self.users_dir):
            d.mkdir(parents=True, exist_ok=True)


# ===========================================================================
# Singleton
# ===========================================================================

_instance: Optional[HearthPaths] = None


def get_paths() -> HearthPaths:
    """Return the global HearthPaths singleton (lazy-init)."""
    global _instance
    if _instance is None:
        _instance = HearthPaths()
    return _instance


def configure(data_dir: Path) -> HearthPaths:
    """
    Override the global paths singleton. Used by tests and embedding apps.

    Returns the new instance for convenience.
    """
    global _instance
    _instance = HearthPaths(data_dir=data_dir)
    return _instance


def reset() -> None:
    """Reset singleton so next get_paths() re-reads env."""
    global _instance
    _instance = None
