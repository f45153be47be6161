"""NestManager -- creation and bookkeeping of nests per landscape polygon.

Each nest-suitable polygon has a nest capacity.  Females searching on
different threads may try to claim the last free slot of the same
polygon, so every polygon has its own lock; nests in different polygons
never contend.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from osmia.nesting.nest import Nest

if TYPE_CHECKING:
    from numpy.random import Generator

    from osmia.simulation.config import NestingConfig
    from osmia.world.landscape import Landscape

logger = logging.getLogger(__name__)


@dataclass
class NestManager:
    """All nests of a landscape, grouped by polygon.

    Attributes:
        landscape: Supplies polygon capacities and nest probabilities.
        cfg: Nesting parameters.
    """

    landscape: Landscape
    cfg: NestingConfig
    _nests: dict[int, list[Nest]] = field(default_factory=dict, init=False, repr=False)
    _locks: dict[int, threading.Lock] = field(default_factory=dict, init=False, repr=False)
    _registry_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def _polygon_lock(self, polygon: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(polygon)
            if lock is None:
                lock = self._locks[polygon] = threading.Lock()
                self._nests.setdefault(polygon, [])
            return lock

    def capacity(self, polygon: int) -> int:
        """Return how many more nests ``polygon`` can take."""
        habitat = self.landscape.habitats[polygon]
        return max(0, habitat.max_nests - len(self._nests.get(polygon, ())))

    def create_nest(self, x: float, y: float, rng: Generator) -> Nest | None:
        """Try to build a nest at ``(x, y)``.

        The spot must lie in a nest-suitable polygon, pass that polygon's
        nest probability, and the polygon must still have capacity.

        Args:
            x: Position east (m).
            y: Position north (m).
            rng: Random generator.

        Returns:
            The new open nest, or None if no nest can be built there.
        """
        habitat = self.landscape.nest_possible(x, y)
        if habitat is None:
            return None
        if rng.random() >= habitat.nest_probability:
            return None
        delay = int(rng.integers(0, self.cfg.microsite_delay_max + 1))
        with self._polygon_lock(habitat.polygon):
            nests = self._nests[habitat.polygon]
            if len(nests) >= habitat.max_nests:
                return None
            nest = Nest(x=x, y=y, polygon=habitat.polygon, microsite_delay=delay)
            nests.append(nest)
        logger.debug("Created nest at (%.0f, %.0f) in polygon %d", x, y, habitat.polygon)
        return nest

    def add_existing(self, x: float, y: float, polygon: int, microsite_delay: int = 0) -> Nest:
        """Register a nest that already holds brood, ignoring capacity."""
        with self._polygon_lock(polygon):
            nest = Nest(x=x, y=y, polygon=polygon, microsite_delay=microsite_delay)
            self._nests[polygon].append(nest)
        return nest

    def release_nest(self, nest: Nest) -> None:
        """Forget a nest and free its slot in the polygon."""
        with self._polygon_lock(nest.polygon):
            nests = self._nests[nest.polygon]
            if nest in nests:
                nests.remove(nest)

    def nests_in(self, polygon: int) -> list[Nest]:
        """Return a snapshot of the nests of one polygon."""
        with self._polygon_lock(polygon):
            return list(self._nests[polygon])

    def all_nests(self) -> list[Nest]:
        """Return a snapshot of every nest."""
        with self._registry_lock:
            polygons = list(self._nests)
        return [nest for polygon in polygons for nest in self.nests_in(polygon)]

    def release_empty(self, is_occupied: Callable[[int], bool]) -> int:
        """Discard sealed nests none of whose cells hold a live bee.

        Called between days, typically at the end of the emergence season.

        Args:
            is_occupied: Returns True if a handle still refers to a live bee.

        Returns:
            Number of nests released.
        """
        released = 0
        for nest in self.all_nests():
            if nest.is_open():
                continue
            if not any(is_occupied(handle) for handle in nest.occupants()):
                self.release_nest(nest)
                released += 1
        if released:
            logger.debug("Released %d empty nests", released)
        return released
