"""Landscape -- the spatial container the bees forage and nest in.

Positions are in metres.  The landscape stores a pollen score and a
polygon id per grid cell; polygon properties (habitat class, nest
capacity) live in :class:`Habitat` records.  All queries are read-only
once the landscape has been populated, so bees on different threads
may call them without locking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from osmia.world.habitat import Habitat, HabitatType

if TYPE_CHECKING:
    from numpy.random import Generator


@dataclass
class Landscape:
    """A rectangular landscape on a regular grid.

    Attributes:
        width: Extent east-west (m).
        height: Extent north-south (m).
        cell_size: Side of a grid cell (m).
        pollen: Pollen score per cell, indexed ``[row, col]``.
        polygons: Polygon id per cell, indexed ``[row, col]``.
        habitats: Polygon records by id.
    """

    width: float
    height: float
    cell_size: float = 10.0
    pollen: NDArray[np.float64] = field(init=False, repr=False)
    polygons: NDArray[np.int64] = field(init=False, repr=False)
    habitats: dict[int, Habitat] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Start as a single pollen-free grassland polygon."""
        self.pollen = np.zeros((self.rows, self.cols), dtype=np.float64)
        self.polygons = np.zeros((self.rows, self.cols), dtype=np.int64)
        self.habitats = {0: Habitat.of_type(0, HabitatType.GRASSLAND, max_nests=0)}

    @property
    def cols(self) -> int:
        """Number of grid columns."""
        return max(1, int(self.width // self.cell_size))

    @property
    def rows(self) -> int:
        """Number of grid rows."""
        return max(1, int(self.height // self.cell_size))

    def contains(self, x: float, y: float) -> bool:
        """Return True if ``(x, y)`` lies on the map."""
        return 0.0 <= x < self.cols * self.cell_size and 0.0 <= y < self.rows * self.cell_size

    def clamp(self, x: float, y: float) -> tuple[float, float]:
        """Return the closest on-map position to ``(x, y)``."""
        top_x = self.cols * self.cell_size - 1e-6
        top_y = self.rows * self.cell_size - 1e-6
        return min(max(x, 0.0), top_x), min(max(y, 0.0), top_y)

    def _index(self, x: float, y: float) -> tuple[int, int]:
        if not self.contains(x, y):
            msg = f"({x}, {y}) out of bounds for {self.width}x{self.height} m"
            raise IndexError(msg)
        return int(y // self.cell_size), int(x // self.cell_size)

    def pollen_at(self, x: float, y: float) -> float:
        """Return the pollen score at ``(x, y)``.

        Raises:
            IndexError: If the position is off the map.
        """
        return float(self.pollen[self._index(x, y)])

    def polygon_at(self, x: float, y: float) -> int:
        """Return the polygon id at ``(x, y)``.

        Raises:
            IndexError: If the position is off the map.
        """
        return int(self.polygons[self._index(x, y)])

    def habitat_at(self, x: float, y: float) -> Habitat:
        """Return the polygon record at ``(x, y)``."""
        return self.habitats[self.polygon_at(x, y)]

    def nest_possible(self, x: float, y: float) -> Habitat | None:
        """Return the polygon at ``(x, y)`` if nests can be built there."""
        if not self.contains(x, y):
            return None
        habitat = self.habitat_at(x, y)
        return habitat if habitat.can_nest else None

    def pollen_at_offsets(
        self,
        x: float,
        y: float,
        offsets: NDArray[np.int64],
    ) -> NDArray[np.float64]:
        """Return pollen scores at ``(x, y) + offsets``.

        Off-map points score ``nan`` so callers can tell them apart
        from empty cells.

        Args:
            x: Origin east (m).
            y: Origin north (m).
            offsets: ``(N, 2)`` array of ``(dx, dy)`` offsets in metres.
        """
        px = x + offsets[:, 0]
        py = y + offsets[:, 1]
        cols = np.floor(px / self.cell_size).astype(np.int64)
        rows = np.floor(py / self.cell_size).astype(np.int64)
        inside = (px >= 0) & (py >= 0) & (cols < self.cols) & (rows < self.rows)
        scores = np.full(len(offsets), np.nan)
        scores[inside] = self.pollen[rows[inside], cols[inside]]
        return scores

    def mean_pollen(self, x: float, y: float, offsets: NDArray[np.int64]) -> float:
        """Return the mean pollen score over the on-map points of a mask."""
        scores = self.pollen_at_offsets(x, y, offsets)
        if np.all(np.isnan(scores)):
            return 0.0
        return float(np.nanmean(scores))

    def populate(
        self,
        rng: Generator,
        *,
        num_polygons: int = 40,
        num_patches: int = 30,
        patch_radius: float = 150.0,
        pollen_per_cell: tuple[float, float] = (0.5, 2.5),
        max_nests: int = 200,
    ) -> None:
        """Lay out habitat polygons and clustered flower patches.

        Polygons are the Voronoi cells of random seed points, each given
        a random habitat class.  Pollen is placed in circular patches
        whose score falls off towards the edge.

        Args:
            rng: Seeded random generator.
            num_polygons: Number of habitat polygons.
            num_patches: Number of flower patches.
            patch_radius: Radius of each patch (m).
            pollen_per_cell: (min, max) score at a patch centre.
            max_nests: Nest capacity of each nest-suitable polygon.
        """
        centres_x = (np.arange(self.cols) + 0.5) * self.cell_size
        centres_y = (np.arange(self.rows) + 0.5) * self.cell_size
        grid_x, grid_y = np.meshgrid(centres_x, centres_y)

        seeds_x = rng.uniform(0.0, self.cols * self.cell_size, num_polygons)
        seeds_y = rng.uniform(0.0, self.rows * self.cell_size, num_polygons)
        nearest = np.full(grid_x.shape, np.inf)
        for pid in range(num_polygons):
            dist = (grid_x - seeds_x[pid]) ** 2 + (grid_y - seeds_y[pid]) ** 2
            closer = dist < nearest
            self.polygons[closer] = pid
            nearest[closer] = dist[closer]

        kinds = list(HabitatType)
        self.habitats = {
            pid: Habitat.of_type(pid, kinds[int(rng.integers(0, len(kinds)))], max_nests)
            for pid in range(num_polygons)
        }

        lo, hi = pollen_per_cell
        for _ in range(num_patches):
            cx = float(rng.uniform(0.0, self.cols * self.cell_size))
            cy = float(rng.uniform(0.0, self.rows * self.cell_size))
            dist = np.hypot(grid_x - cx, grid_y - cy)
            inside = dist <= patch_radius
            # Linear falloff: cells near the centre get more pollen
            self.pollen[inside] += float(rng.uniform(lo, hi)) * (
                1.0 - dist[inside] / (patch_radius + self.cell_size)
            )

    def random_nest_site(self, rng: Generator, attempts: int = 1000) -> tuple[float, float, Habitat] | None:
        """Draw a random position inside a nest-suitable polygon.

        Returns:
            ``(x, y, habitat)`` or None if no suitable spot was found.
        """
        for _ in range(attempts):
            x = float(rng.uniform(0.0, self.cols * self.cell_size))
            y = float(rng.uniform(0.0, self.rows * self.cell_size))
            habitat = self.nest_possible(x, y)
            if habitat is not None:
                return x, y, habitat
        return None
