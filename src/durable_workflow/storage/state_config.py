"""State directory configuration.

Default SQLite location is isolated per working directory using a hash of
the CWD, so projects started from different directories never share state:

    ~/.durable_workflow/
      states/
        <hash-of-cwd>/
          state.db

``DURABLE_WORKFLOW_STATE_DIR`` overrides the whole state directory.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

STATE_DIR_ENV = "DURABLE_WORKFLOW_STATE_DIR"


class StateConfig:
    """State directory configuration for SqliteStore.

    Example:
        state_dir = StateConfig.get_state_dir()
        # ~/.durable_workflow/states/a1b2c3d4e5f6a7b8/
    """

    @staticmethod
    def get_state_dir() -> Path:
        """Return (and create) the state directory for the current working directory."""
        override = os.getenv(STATE_DIR_ENV)
        if override:
            state_dir = Path(override).expanduser()
        else:
            cwd_hash = hashlib.sha256(str(Path.cwd()).encode()).hexdigest()[:16]
            state_dir = Path.home() / ".durable_workflow" / "states" / cwd_hash

        state_dir.mkdir(parents=True, exist_ok=True)
        return state_dir

    @staticmethod
    def get_db_path() -> Path:
        return StateConfig.get_state_dir() / "state.db"


__all__ = ["STATE_DIR_ENV", "StateConfig"]
