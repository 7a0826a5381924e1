"""Atomic JSON persistence for the registry document."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from persistid.core.models import RegistryState

logger = logging.getLogger(__name__)

_DEFAULT_BACKUPS = 3


class RegistryStore:
    """Atomic JSON registry store with backup rotation and corruption recovery.

    Each :meth:`save` is a single tmp-write + fsync + ``os.replace``, so a
    reader never observes a partially written file.
    """

    def __init__(
        self,
        state_dir: Path,
        filename: str = "registry.json",
        backup_count: int = _DEFAULT_BACKUPS,
    ) -> None:
        self._state_dir = state_dir
        self._path = state_dir / filename
        self._backup_count = backup_count

    @property
    def path(self) -> Path:
        return self._path

    # -- Public API ----------------------------------------------------------

    def load(self) -> RegistryState:
        data = self._load_file(self._path)
        if data is None:
            return RegistryState()
        return RegistryState.model_validate(data)

    def save(self, state: RegistryState) -> None:
        self._save_file(self._path, self.dump(state))

    @staticmethod
    def dump(state: RegistryState) -> dict:
        """Canonical form: scopes and their identifiers in sorted order."""
        return {
            "scopes": {
                scope: sorted(ids) for scope, ids in sorted(state.scopes.items())
            }
        }

    # -- Internals -----------------------------------------------------------

    def _load_file(self, path: Path) -> dict | None:
        """Load JSON from *path*, falling back to backups on missing/corrupt files."""
        candidates = [
            path,
            *(path.parent / f"{path.name}.bak.{i}" for i in range(1, self._backup_count + 1)),
        ]
        for candidate in candidates:
            data = self._try_read_json(candidate)
            if data is None:
                continue
            try:
                RegistryState.model_validate(data)
            except ValidationError:
                logger.warning("Ignoring malformed registry file %s", candidate)
                continue
            if candidate != path:
                logger.warning("Registry %s unreadable; recovered from %s", path, candidate)
            return data
        return None

    @staticmethod
    def _try_read_json(path: Path) -> dict | None:
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    def _save_file(self, path: Path, data: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)

        # Rotate backups: oldest is dropped, .bak.N-1 -> .bak.N, ..., file -> .bak.1
        if self._backup_count > 0:
            for i in range(self._backup_count, 1, -1):
                src = path.parent / f"{path.name}.bak.{i - 1}"
                dst = path.parent / f"{path.name}.bak.{i}"
                if src.exists():
                    os.replace(src, dst)

            if path.exists():
                os.replace(path, path.parent / f"{path.name}.bak.1")

        # Atomic write via tmp + fsync + replace
        tmp_path = path.parent / f"{path.name}.tmp"
        content = json.dumps(data, indent=2, sort_keys=True) + "\n"
        fd = os.open(str(tmp_path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
        try:
            os.write(fd, content.encode("utf-8"))
            os.fsync(fd)
        finally:
            os.close(fd)

        os.replace(tmp_path, path)
        logger.debug("Saved registry to %s", path)
