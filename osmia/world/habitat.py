"""Habitat -- one landscape polygon and its suitability for nesting.

Pollen is stored on the landscape grid; the polygon only carries the
properties that apply to it as a whole.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class HabitatType(Enum):
    """Broad land-cover classes relevant to cavity-nesting bees."""

    ARABLE = "arable"
    GRASSLAND = "grassland"
    HEDGEROW = "hedgerow"
    WOODLAND_EDGE = "woodland_edge"
    URBAN = "urban"
    WATER = "water"


# Probability that a cavity suitable for nesting exists in a polygon.
NEST_PROBABILITY: dict[HabitatType, float] = {
    HabitatType.ARABLE: 0.0,
    HabitatType.GRASSLAND: 0.05,
    HabitatType.HEDGEROW: 0.6,
    HabitatType.WOODLAND_EDGE: 0.8,
    HabitatType.URBAN: 0.4,
    HabitatType.WATER: 0.0,
}


@dataclass
class Habitat:
    """A landscape polygon.

    Attributes:
        polygon: Polygon id, as stored in the landscape polygon grid.
        habitat: Land-cover class.
        nest_probability: Chance that a visited spot offers a cavity.
        max_nests: Nest capacity of the polygon.
    """

    polygon: int
    habitat: HabitatType = HabitatType.GRASSLAND
    nest_probability: float = 0.0
    max_nests: int = 0

    @classmethod
    def of_type(cls, polygon: int, habitat: HabitatType, max_nests: int) -> Habitat:
        """Create a polygon with the default nest probability of its class."""
        probability = NEST_PROBABILITY[habitat]
        return cls(
            polygon=polygon,
            habitat=habitat,
            nest_probability=probability,
            max_nests=max_nests if probability > 0 else 0,
        )

    @property
    def can_nest(self) -> bool:
        """Return True if nests can ever be built here."""
        return self.nest_probability > 0 and self.max_nests > 0
