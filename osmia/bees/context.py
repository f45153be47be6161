"""DayContext -- everything a bee may consult while stepping one day."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from numpy.random import Generator

    from osmia.bees.population import BeePopulation
    from osmia.foraging.mask import DetailedForageMask, ForageMask
    from osmia.nesting.manager import NestManager
    from osmia.parasitoids.fields import ParasitoidField
    from osmia.simulation.config import SimulationConfig
    from osmia.simulation.records import StageRecords
    from osmia.world.landscape import Landscape


@dataclass(frozen=True)
class DayContext:
    """Inputs of one simulated day.

    Each worker thread gets its own copy via :meth:`with_rng`, so the
    generator is never shared between threads.

    Attributes:
        config: Immutable run configuration.
        day: Simulation day.
        day_in_year: Day of year (0-based).
        temperature: Today's mean temperature (°C).
        flying_hours: Hours warm enough to forage today.
        prewinter_ended: Season flag for overwintering cocoons.
        overwinter_ended: Season flag for overwintering cocoons.
        landscape: Pollen and habitat queries.
        nests: Nest creation and bookkeeping.
        population: Handle store for new and transformed bees.
        forage_mask: Coarse search mask.
        detailed_mask: Detailed search mask.
        rng: This worker's random generator.
        parasitoids: Parasitoid densities (mechanistic parasitism).
        records: Stage statistics, if recorded.
    """

    config: SimulationConfig
    day: int
    day_in_year: int
    temperature: float
    flying_hours: int
    prewinter_ended: bool
    overwinter_ended: bool
    landscape: Landscape
    nests: NestManager
    population: BeePopulation
    forage_mask: ForageMask
    detailed_mask: DetailedForageMask
    rng: Generator
    parasitoids: ParasitoidField | None = None
    records: StageRecords | None = None

    def with_rng(self, rng: Generator) -> DayContext:
        """Return a copy of the context using another generator."""
        return replace(self, rng=rng)
