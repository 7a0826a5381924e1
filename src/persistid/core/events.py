"""Mutation journal for the registry.

Each registry mutation is written as one JSON line before the call returns.
On startup the journal is scanned for regenerations that were started but
never completed, which point at an interrupted session.
"""

from __future__ import annotations

import datetime
import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from persistid.core.models import Event

logger = logging.getLogger(__name__)


class JournalLog:
    """JSONL journal numbering its own entries.

    Sequence numbers continue from the highest one already on disk, so a new
    session appends after the previous one.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._seq: int | None = None

    @property
    def path(self) -> Path:
        return self._path

    def record(self, type_: str, **data: Any) -> Event:
        """Append an event of *type_* carrying *data* and fsync it."""
        if self._seq is None:
            self._seq = self.last_seq()
        self._seq += 1
        event = Event(
            seq=self._seq,
            type=type_,
            timestamp=datetime.datetime.now(datetime.UTC),
            data=data,
        )

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self._path), os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
        try:
            os.write(fd, (event.model_dump_json() + "\n").encode("utf-8"))
            os.fsync(fd)
        finally:
            os.close(fd)
        return event

    def __iter__(self) -> Iterator[Event]:
        # A crash mid-write leaves a truncated last line; skip anything unparsable.
        if not self._path.exists():
            return
        with self._path.open(encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                if not line.strip():
                    continue
                try:
                    yield Event.model_validate_json(line)
                except ValidationError:
                    logger.warning("Skipping malformed journal line %d in %s", lineno, self._path)

    def read_all(self) -> list[Event]:
        return list(self)

    def last_seq(self) -> int:
        return max((e.seq for e in self), default=0)

    def find_unmatched(
        self, start_type: str, end_type: str, key: str = "object_key"
    ) -> list[Event]:
        """Return *start_type* events not followed by an *end_type* event for the same ``data[key]``."""
        pending: dict[object, Event] = {}
        for event in self:
            if key not in event.data:
                continue
            if event.type == start_type:
                pending[event.data[key]] = event
            elif event.type == end_type:
                pending.pop(event.data[key], None)
        return sorted(pending.values(), key=lambda e: e.seq)
