"""Live object enumeration.

The host environment owns the objects that hold identifiers. The registry
only sees them through an :class:`ObjectSource`, which lists the containers
that still exist and the objects inside each one.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from persistid.core.models import LiveObject

logger = logging.getLogger(__name__)


@runtime_checkable
class ObjectSource(Protocol):
    """Enumerates live containers and the objects they hold."""

    def scopes(self) -> list[str]:
        """Return the scope keys of every container that currently exists."""
        ...

    def objects(self, scope: str) -> Iterable[LiveObject]:
        """Return the live objects inside *scope*."""
        ...


class InMemoryObjectSource:
    """Object source backed by a list of :class:`LiveObject` instances.

    Objects are returned by reference, so identifiers written back by the
    registry are visible to the caller.
    """

    def __init__(self, objects: Iterable[LiveObject] = ()) -> None:
        self._objects: list[LiveObject] = list(objects)

    def add(self, obj: LiveObject) -> LiveObject:
        self._objects.append(obj)
        return obj

    def remove(self, key: str) -> LiveObject | None:
        for i, obj in enumerate(self._objects):
            if obj.key == key:
                return self._objects.pop(i)
        return None

    def get(self, key: str) -> LiveObject | None:
        return next((o for o in self._objects if o.key == key), None)

    def drop_scope(self, scope: str) -> list[LiveObject]:
        dropped = [o for o in self._objects if o.scope == scope]
        self._objects = [o for o in self._objects if o.scope != scope]
        return dropped

    def scopes(self) -> list[str]:
        return sorted({o.scope for o in self._objects})

    def objects(self, scope: str) -> list[LiveObject]:
        return [o for o in self._objects if o.scope == scope]

    def __iter__(self) -> Iterator[LiveObject]:
        return iter(self._objects)

    def __len__(self) -> int:
        return len(self._objects)


class ObjectFile(BaseModel):
    """On-disk layout read by :class:`JsonObjectSource`."""

    scopes: list[str] = Field(default_factory=list)
    objects: list[LiveObject] = Field(default_factory=list)


class JsonObjectSource(InMemoryObjectSource):
    """Object source loaded from a JSON file, writable back after repairs.

    The optional ``scopes`` list names containers that exist but hold no
    objects; scopes of listed objects are always included.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        data = ObjectFile.model_validate(json.loads(path.read_text(encoding="utf-8")))
        super().__init__(data.objects)
        self._extra_scopes = set(data.scopes)
        logger.debug("Loaded %d objects from %s", len(data.objects), path)

    @property
    def path(self) -> Path:
        return self._path

    def scopes(self) -> list[str]:
        return sorted(set(super().scopes()) | self._extra_scopes)

    def save(self) -> None:
        data = ObjectFile(scopes=sorted(self._extra_scopes), objects=list(self))
        self._path.write_text(
            json.dumps(data.model_dump(mode="json"), indent=2) + "\n",
            encoding="utf-8",
        )
        logger.debug("Wrote %d objects to %s", len(self), self._path)
