"""Forage masks -- precomputed search offsets around a nest.

``ForageMask`` is the coarse mask: concentric rings, each sampled in the
eight compass directions, used to look for the nearest usable pollen
nearest-first.  ``DetailedForageMask`` lists every grid offset within a
radius, ordered by distance, for callers that need to look at all
resources in range.

Both masks are built once per run and shared read-only by all threads;
their arrays are flagged non-writeable.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from osmia.world.landscape import Landscape

# Unit vectors for N, NE, E, SE, S, SW, W, NW
_DIRECTIONS: tuple[tuple[float, float], ...] = (
    (0.0, -1.0),
    (math.sqrt(0.5), -math.sqrt(0.5)),
    (1.0, 0.0),
    (math.sqrt(0.5), math.sqrt(0.5)),
    (0.0, 1.0),
    (-math.sqrt(0.5), math.sqrt(0.5)),
    (-1.0, 0.0),
    (-math.sqrt(0.5), -math.sqrt(0.5)),
)


@dataclass(frozen=True)
class ForageMask:
    """Coarse ring-by-direction search mask.

    Ring ``r`` lies at radius ``(r + 1) * step``.  Diagonal offsets are
    scaled by 1/√2 so that every point of a ring is at the same distance.

    Attributes:
        step: Distance between rings (m).
        rings: Number of rings.
        offsets: Integer ``(rings, 8, 2)`` array of ``(dx, dy)``.
    """

    step: float
    rings: int = 20
    offsets: NDArray[np.int64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Fill the offset table."""
        table = np.zeros((self.rings, len(_DIRECTIONS), 2), dtype=np.int64)
        for ring in range(self.rings):
            radius = self.radius(ring)
            for d, (ux, uy) in enumerate(_DIRECTIONS):
                table[ring, d] = (round(ux * radius), round(uy * radius))
        table.setflags(write=False)
        object.__setattr__(self, "offsets", table)

    def radius(self, ring: int) -> float:
        """Return the distance of ring ``ring`` from the centre."""
        return (ring + 1) * self.step

    def ring_offsets(self, ring: int) -> NDArray[np.int64]:
        """Return the ``(8, 2)`` offsets of one ring."""
        return self.offsets[ring]

    def rings_within(self, distance: float) -> int:
        """Return how many rings lie no farther than ``distance``."""
        if distance < self.step:
            return 0
        return min(self.rings, int(distance // self.step))


@dataclass(frozen=True)
class DetailedForageMask:
    """Every grid offset within ``max_distance``, nearest first.

    Attributes:
        step: Grid spacing of the offsets (m).
        max_distance: Radius of the mask (m).
        offsets: Integer ``(N, 2)`` array of ``(dx, dy)``.
        distances: Distance of each offset from the centre.
    """

    step: float
    max_distance: float
    offsets: NDArray[np.int64] = field(init=False, repr=False)
    distances: NDArray[np.float64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Enumerate the square around the centre and keep the disc."""
        n = int(self.max_distance // self.step)
        axis = np.arange(-n, n + 1) * self.step
        dx, dy = np.meshgrid(axis, axis)
        dx = dx.ravel()
        dy = dy.ravel()
        dist = np.hypot(dx, dy)
        keep = dist <= self.max_distance
        order = np.argsort(dist[keep], kind="stable")
        offsets = np.column_stack((dx[keep], dy[keep]))[order].round().astype(np.int64)
        distances = dist[keep][order]
        offsets.setflags(write=False)
        distances.setflags(write=False)
        object.__setattr__(self, "offsets", offsets)
        object.__setattr__(self, "distances", distances)

    def __len__(self) -> int:
        return len(self.offsets)


@dataclass(frozen=True)
class ForageSite:
    """The best pollen source found by a coarse search."""

    score: float
    distance: float
    x: float
    y: float


def nearest_resource(
    landscape: Landscape,
    x: float,
    y: float,
    mask: ForageMask,
    max_distance: float,
    min_score: float,
) -> ForageSite | None:
    """Search outward ring by ring for usable pollen.

    Returns the richest point of the first ring that holds any point at
    or above ``min_score``, or None if nothing usable lies within
    ``max_distance``.

    Args:
        landscape: Source of pollen scores.
        x: Search centre east (m).
        y: Search centre north (m).
        mask: Coarse forage mask.
        max_distance: Farthest ring to look at (m).
        min_score: Lowest pollen score worth collecting.
    """
    for ring in range(mask.rings_within(max_distance)):
        offsets = mask.ring_offsets(ring)
        scores = landscape.pollen_at_offsets(x, y, offsets)
        usable = np.where(np.isnan(scores), -np.inf, scores)
        best = int(np.argmax(usable))
        if usable[best] >= min_score:
            dx, dy = offsets[best]
            return ForageSite(
                score=float(usable[best]),
                distance=mask.radius(ring),
                x=x + float(dx),
                y=y + float(dy),
            )
    return None
