"""Core domain models for persistid.

All domain objects are Pydantic models. Identifiers are random, non-zero
32-bit values; zero is the "unassigned" sentinel.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, RootModel, field_validator

MAX_IDENTIFIER = 0xFFFFFFFF

# ---------------------------------------------------------------------------
# Identifier
# ---------------------------------------------------------------------------


class Identifier(RootModel[int]):
    """Immutable 32-bit persistent identifier. ``Identifier(0)`` is unassigned."""

    model_config = ConfigDict(frozen=True)

    root: Annotated[int, Field(ge=0, le=MAX_IDENTIFIER)] = 0

    @classmethod
    def parse(cls, text: str) -> Identifier:
        """Parse decimal or ``0x``-prefixed hexadecimal text."""
        stripped = text.strip().lower()
        if stripped.startswith("0x"):
            return cls(int(stripped, 16))
        return cls(int(stripped, 10))

    @property
    def value(self) -> int:
        return self.root

    @property
    def is_valid(self) -> bool:
        return self.root != 0

    def __int__(self) -> int:
        return self.root

    def __index__(self) -> int:
        return self.root

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Identifier):
            return NotImplemented
        return self.root < other.root

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Identifier):
            return NotImplemented
        return self.root <= other.root

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Identifier):
            return NotImplemented
        return self.root > other.root

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Identifier):
            return NotImplemented
        return self.root >= other.root

    def __str__(self) -> str:
        return "Invalid" if self.root == 0 else f"0x{self.root:08X}"

    def __repr__(self) -> str:
        return f"Identifier({self})"


UNASSIGNED = Identifier(0)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ScopeEntry(BaseModel):
    """Identifiers registered within one container."""

    model_config = ConfigDict(frozen=True)

    scope: str
    members: frozenset[Identifier] = Field(default_factory=frozenset)

    @field_validator("members")
    @classmethod
    def _no_sentinel(cls, members: frozenset[Identifier]) -> frozenset[Identifier]:
        if UNASSIGNED in members:
            raise ValueError("scope members cannot contain the unassigned identifier")
        return members


class RegistryState(BaseModel):
    """Persisted registry layout, written to ``.persistid/state/registry.json``.

    Totals and the flattened identifier set are derived on load and never
    stored.
    """

    scopes: dict[str, list[int]] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Live objects
# ---------------------------------------------------------------------------


class ObjectRef(BaseModel):
    """Location of a live object: its container scope and runtime key."""

    model_config = ConfigDict(frozen=True)

    scope: str
    key: str


class LiveObject(BaseModel):
    """An object holding a persistent identifier inside a container."""

    model_config = ConfigDict(validate_assignment=True)

    key: str
    scope: str
    identifier: Identifier = Field(default_factory=Identifier)

    @property
    def ref(self) -> ObjectRef:
        return ObjectRef(scope=self.scope, key=self.key)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class DiscrepancyKind(StrEnum):
    orphaned_identifier = "orphaned_identifier"
    unregistered_live_identifier = "unregistered_live_identifier"
    cross_scope_duplicate = "cross_scope_duplicate"
    scope_mismatch = "scope_mismatch"


class Discrepancy(BaseModel):
    """A mismatch between the persisted registry and the live object graph."""

    kind: DiscrepancyKind
    identifier: Identifier
    scope: str | None = None  # registered scope, if any
    holders: list[ObjectRef] = Field(default_factory=list)


class RepairResult(BaseModel):
    """Summary of an explicit repair pass."""

    unregistered: int = 0
    registered: int = 0
    moved: int = 0
    reassigned: int = 0
    skipped_duplicates: list[Identifier] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.unregistered + self.registered + self.moved + self.reassigned


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class ScopeState(StrEnum):
    active = "active"
    removed = "removed"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class RegistryConfig(BaseModel):
    """Configuration for a registry session, loaded once at process start."""

    registry_file: str = "registry.json"
    max_allocation_attempts: int = Field(default=1000, ge=1)
    backup_count: int = Field(default=3, ge=0)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "OFF"] = "WARNING"
    json_logs: bool = False
    journal_enabled: bool = True


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------


class Event(BaseModel):
    """A single entry in the append-only mutation journal."""

    seq: int
    type: str
    timestamp: datetime
    data: dict[str, Any] = Field(default_factory=dict)
