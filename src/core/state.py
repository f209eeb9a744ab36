"""
state.py
- Loads and saves the adapter's persistent state to disk.
- Stores:
    - permanent_credential: API key minted during first boot (write-once)
    - first_boot_completed / bootstrap_revoked: bootstrap progress
    - discovered_apps: app id -> dashboard tile id already created
    - removed_apps: app ids excluded from sync
    - last_sync_at: advisory timestamp of the last sync

The file is written atomically (temp file + os.replace) with owner-only permissions.
A missing file yields an empty state; a corrupt one is logged and replaced by an empty state.
"""

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from loguru import logger

from core.constants import STATE_FILE_MODE, STATE_VERSION
from core.errors import StateError


class AdapterState:
    def __init__(self):
        self.version = STATE_VERSION
        self.permanent_credential = None
        self.bootstrap_revoked = False
        self.first_boot_completed = False
        self.board_id = None
        self.federated_login_digest = None
        self.discovered_apps = {}
        self.removed_apps = set()
        self.last_sync_at = None

    # --- Credential ---
    def set_permanent_credential(self, credential):
        """
        Record the permanent credential. It can be set once per state file lifetime.

        Raises:
            StateError: If a different credential is already stored.
        """
        if not credential:
            raise StateError("Refusing to store an empty permanent credential")
        if self.permanent_credential and self.permanent_credential != credential:
            raise StateError("Permanent credential is already set and cannot be replaced")
        self.permanent_credential = credential

    # --- Bootstrap Progress ---
    def mark_first_boot_completed(self):
        self.first_boot_completed = True

    def mark_bootstrap_revoked(self):
        self.bootstrap_revoked = True

    # --- App Bookkeeping ---
    def is_discovered(self, app_id):
        return app_id in self.discovered_apps

    def is_removed(self, app_id):
        return app_id in self.removed_apps

    def mark_discovered(self, app_id, tile_id):
        if app_id in self.removed_apps:
            raise StateError(f"App {app_id!r} is excluded from sync and cannot be recorded as discovered")
        self.discovered_apps[app_id] = tile_id

    def mark_removed(self, app_id):
        """Exclude an app from future syncs. Returns the tile id it had, if any."""
        tile_id = self.discovered_apps.pop(app_id, None)
        self.removed_apps.add(app_id)
        return tile_id

    def restore(self, app_id):
        """Lift an exclusion so the next sync creates the tile again. Returns True if it was excluded."""
        if app_id not in self.removed_apps:
            return False
        self.removed_apps.discard(app_id)
        return True

    def update_sync_time(self, now=None):
        self.last_sync_at = (now or datetime.now(timezone.utc)).isoformat()

    # --- Serialisation ---
    def to_dict(self):
        return {
            "version": self.version,
            "permanent_credential": self.permanent_credential,
            "bootstrap_revoked": self.bootstrap_revoked,
            "first_boot_completed": self.first_boot_completed,
            "board_id": self.board_id,
            "federated_login_digest": self.federated_login_digest,
            "discovered_apps": dict(sorted(self.discovered_apps.items())),
            "removed_apps": sorted(self.removed_apps),
            "last_sync_at": self.last_sync_at,
        }

    @classmethod
    def from_dict(cls, data):
        """
        Rebuild state from a parsed JSON document.

        Raises:
            StateError: If the document does not have the expected shape.
        """
        if not isinstance(data, dict):
            raise StateError(f"State document must be an object, got {type(data).__name__}")

        state = cls()
        state.version = str(data.get("version") or STATE_VERSION)

        credential = data.get("permanent_credential")
        if credential is not None and not isinstance(credential, str):
            raise StateError("permanent_credential must be a string")
        state.permanent_credential = credential or None

        for flag in ("bootstrap_revoked", "first_boot_completed"):
            value = data.get(flag, False)
            if not isinstance(value, bool):
                raise StateError(f"{flag} must be true or false, got {value!r}")
            setattr(state, flag, value)
        state.board_id = data.get("board_id") or None
        state.federated_login_digest = data.get("federated_login_digest") or None

        discovered = data.get("discovered_apps") or {}
        if not isinstance(discovered, dict) or not all(isinstance(v, str) for v in discovered.values()):
            raise StateError("discovered_apps must map app ids to tile ids")
        removed = data.get("removed_apps") or []
        if not isinstance(removed, list) or not all(isinstance(v, str) for v in removed):
            raise StateError("removed_apps must be a list of app ids")

        state.removed_apps = set(removed)
        overlap = state.removed_apps.intersection(discovered)
        if overlap:
            logger.warning(f"[state] Apps both discovered and removed, keeping them excluded: {sorted(overlap)}")
        state.discovered_apps = {k: v for k, v in discovered.items() if k not in state.removed_apps}

        state.last_sync_at = data.get("last_sync_at") or None
        return state

    def summary(self):
        """Secret-free overview used by the status command."""
        return {
            "first_boot_completed": self.first_boot_completed,
            "permanent_credential": "present" if self.permanent_credential else "absent",
            "bootstrap_revoked": self.bootstrap_revoked,
            "board_id": self.board_id,
            "discovered_apps": len(self.discovered_apps),
            "removed_apps": len(self.removed_apps),
            "last_sync_at": self.last_sync_at,
        }


def load_state(path):
    """
    Load adapter state from disk (JSON file).

    Returns:
        AdapterState: Parsed state, or an empty state if the file is missing or corrupt.
    """
    if not Path(path).exists():
        logger.debug(f"[state] No state file at {path}, starting empty.")
        return AdapterState()

    try:
        with open(path, "r") as f:
            return AdapterState.from_dict(json.load(f))
    except (OSError, ValueError, StateError) as e:
        logger.warning(f"[state] State file {path} is unreadable or corrupt, starting from empty state: {e}")
        return AdapterState()


def save_state(state, path):
    """
    Atomically persist state as formatted JSON readable only by the owner.

    Args:
        state (AdapterState): The state to persist.
        path (str): Destination file.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
    try:
        os.fchmod(fd, STATE_FILE_MODE)
        with os.fdopen(fd, "w") as f:
            json.dump(state.to_dict(), f, indent=2)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
    logger.debug(f"[state] Saved state to {target}")
