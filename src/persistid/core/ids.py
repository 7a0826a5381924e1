"""Random 32-bit identifier allocation with collision retry.

Values are drawn uniformly rather than from a counter so that containers
edited independently can later be merged without coordinating a shared
sequence. Every draw is checked against the whole registry.
"""

from __future__ import annotations

import logging
import random

from persistid import metrics
from persistid.core.models import Identifier
from persistid.core.registry import ScopedRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 1000


class AllocationExhaustedError(RuntimeError):
    """Raised when no free identifier was found within the retry cap."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"No free identifier found after {attempts} attempts")


class IdentifierAllocator:
    """Draws free identifiers and reserves them in a :class:`ScopedRegistry`."""

    def __init__(
        self,
        registry: ScopedRegistry,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        rng: random.Random | None = None,
    ) -> None:
        self._registry = registry
        self._max_attempts = max_attempts
        self._rng = rng or random.SystemRandom()

    @property
    def registry(self) -> ScopedRegistry:
        return self._registry

    def bind(self, registry: ScopedRegistry) -> None:
        self._registry = registry

    def generate(self) -> Identifier:
        """Return a non-zero value not registered anywhere, without reserving it."""
        for attempt in range(1, self._max_attempts + 1):
            candidate = self._rng.getrandbits(32)
            if candidate != 0 and not self._registry.contains(candidate):
                if attempt > 1:
                    logger.debug("Found free identifier after %d attempts", attempt)
                return Identifier(candidate)
            metrics.ALLOCATION_COLLISIONS_TOTAL.inc()

        metrics.ALLOCATIONS_EXHAUSTED_TOTAL.inc()
        logger.error("Identifier allocation exhausted after %d attempts", self._max_attempts)
        raise AllocationExhaustedError(self._max_attempts)

    def allocate(self, scope: str) -> Identifier:
        """Draw a free identifier and register it under *scope*.

        The registration is persisted before this returns.

        Raises:
            AllocationExhaustedError: If the retry cap was reached.
        """
        identifier = self._registry.register(scope, self.generate())
        metrics.ALLOCATIONS_TOTAL.inc()
        logger.debug("Allocated %s in scope '%s'", identifier, scope)
        return identifier
