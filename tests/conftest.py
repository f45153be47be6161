"""Shared fixtures for the osmia test suite."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import numpy as np
import pytest
from numpy.random import Generator

from osmia.bees.context import DayContext
from osmia.bees.population import BeePopulation
from osmia.foraging.mask import DetailedForageMask, ForageMask
from osmia.nesting.manager import NestManager
from osmia.simulation.config import SimulationConfig
from osmia.simulation.records import StageRecords
from osmia.world.habitat import Habitat, HabitatType
from osmia.world.landscape import Landscape


@pytest.fixture
def rng() -> Generator:
    """A deterministic random generator for reproducible tests."""
    return np.random.default_rng(seed=12345)


@pytest.fixture
def default_config() -> SimulationConfig:
    """Default simulation config (no YAML file needed)."""
    return SimulationConfig()


@pytest.fixture
def small_landscape() -> Landscape:
    """A 2 x 2 km hedgerow with uniform pollen, suitable for nesting everywhere."""
    landscape = Landscape(width=2000.0, height=2000.0, cell_size=10.0)
    landscape.habitats = {0: Habitat.of_type(0, HabitatType.HEDGEROW, max_nests=500)}
    landscape.pollen[:] = 1.0
    return landscape


@pytest.fixture
def population() -> BeePopulation:
    """An empty population store."""
    return BeePopulation()


@pytest.fixture
def make_context(
    default_config: SimulationConfig,
    small_landscape: Landscape,
    population: BeePopulation,
    rng: Generator,
) -> Callable[..., DayContext]:
    """Factory for day contexts on the small landscape.

    Keyword arguments override the context fields; ``config`` may be
    replaced to change parameters.
    """
    nests = NestManager(landscape=small_landscape, cfg=default_config.nesting)
    records = StageRecords()

    def _make(**overrides: Any) -> DayContext:
        config = overrides.pop("config", default_config)
        values: dict[str, Any] = {
            "config": config,
            "day": 0,
            "day_in_year": 100,
            "temperature": 20.0,
            "flying_hours": 10,
            "prewinter_ended": True,
            "overwinter_ended": True,
            "landscape": small_landscape,
            "nests": nests,
            "population": population,
            "forage_mask": ForageMask(
                step=config.foraging.coarse_step,
                rings=config.foraging.forage_steps,
            ),
            "detailed_mask": DetailedForageMask(
                step=config.foraging.detailed_mask_step,
                max_distance=config.foraging.typical_homing_distance,
            ),
            "rng": rng,
            "parasitoids": None,
            "records": records,
        }
        values.update(overrides)
        return DayContext(**values)

    return _make
