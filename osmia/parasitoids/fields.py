"""ParasitoidField -- coarse density grids of nest parasitoids.

Each parasitoid type (bombyliid flies, cleptoparasites) is stored as a
separate NumPy 2D array of individuals per grid cell.  The field
provides density reads and attack bookkeeping; daily mortality and
dispersal live in ``dispersal.py``.

Attacks are recorded from many bee threads at once, so writes take the
field lock.  The daily update runs between days, when no bee is stepping.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from osmia.bees.bee import Parasitoid
from osmia.simulation.config import ParasitismConfig

PARASITOID_TYPES: tuple[Parasitoid, ...] = (Parasitoid.BOMBYLIID, Parasitoid.CLEPTOPARASITE)


@dataclass
class ParasitoidLayer:
    """One parasitoid population stored as a 2D NumPy array.

    Attributes:
        ptype: Which parasitoid this layer represents.
        grid: Individuals per cell (≥ 0).
        dispersal_rate: Fraction moving to neighbouring cells per day.
        mortality_rate: Fraction dying per day.
    """

    ptype: Parasitoid
    grid: NDArray[np.float64]
    dispersal_rate: float = 0.001
    mortality_rate: float = 0.01


@dataclass
class ParasitoidField:
    """All parasitoid layers for a landscape.

    Attributes:
        width: Landscape extent east-west (m).
        height: Landscape extent north-south (m).
        cell_size: Side of a parasitoid grid cell (m).
        layers: Mapping from parasitoid type to its layer.
    """

    width: float
    height: float
    cell_size: float = 1000.0
    layers: dict[Parasitoid, ParasitoidLayer] = field(init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        """Create one empty layer per parasitoid type."""
        shape = (self.rows, self.cols)
        self.layers = {
            ptype: ParasitoidLayer(ptype=ptype, grid=np.zeros(shape, dtype=np.float64))
            for ptype in PARASITOID_TYPES
        }

    @classmethod
    def from_config(cls, width: float, height: float, cfg: ParasitismConfig) -> ParasitoidField:
        """Build a field with uniform starting densities and configured rates."""
        pfield = cls(width=width, height=height, cell_size=cfg.field_cell_size)
        for i, ptype in enumerate(PARASITOID_TYPES):
            layer = pfield.layers[ptype]
            layer.grid[:] = cfg.start_density[i]
            layer.dispersal_rate = cfg.dispersal[i]
            layer.mortality_rate = cfg.daily_mortality[i]
        return pfield

    @property
    def cols(self) -> int:
        """Number of grid columns."""
        return max(1, int(np.ceil(self.width / self.cell_size)))

    @property
    def rows(self) -> int:
        """Number of grid rows."""
        return max(1, int(np.ceil(self.height / self.cell_size)))

    def _index(self, x: float, y: float) -> tuple[int, int]:
        col = min(self.cols - 1, max(0, int(x // self.cell_size)))
        row = min(self.rows - 1, max(0, int(y // self.cell_size)))
        return row, col

    def density(self, ptype: Parasitoid, x: float, y: float) -> float:
        """Read the parasitoid density around a position.

        Args:
            ptype: Which parasitoid to read.
            x: Position east (m).
            y: Position north (m).

        Returns:
            Individuals in the grid cell holding ``(x, y)``.
        """
        return float(self.layers[ptype].grid[self._index(x, y)])

    def add(self, ptype: Parasitoid, x: float, y: float, amount: float = 1.0) -> None:
        """Add parasitoids in the grid cell holding ``(x, y)``.

        Args:
            ptype: Which parasitoid to add.
            x: Position east (m).
            y: Position north (m).
            amount: Individuals to add (must be ≥ 0).
        """
        with self._lock:
            self.layers[ptype].grid[self._index(x, y)] += amount

    def total(self, ptype: Parasitoid) -> float:
        """Return the landscape-wide population of one parasitoid."""
        return float(self.layers[ptype].grid.sum())
