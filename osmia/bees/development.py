"""Development engine -- degree-day and time-based stage progression.

Eggs, larvae and pupae develop by accumulating degree-days above a
stage threshold.  The prepupa develops in calendar days, counted only on
days warm enough, against an individual target.  The overwintering
cocoon runs through prewintering, overwintering and a countdown to
spring emergence driven by the season flags.

All functions are pure apart from the bee fields they document; the
daily temperature is always an argument.
"""

from __future__ import annotations

import math
from enum import Enum, auto
from typing import TYPE_CHECKING

from osmia.bees.bee import Bee, LifeStage

if TYPE_CHECKING:
    from numpy.random import Generator

    from osmia.simulation.config import DevelopmentConfig, FemaleConfig


def degree_days(temperature: float, threshold: float) -> float:
    """Return the day's degree-days above ``threshold`` (never negative)."""
    return max(0.0, temperature - threshold)


def accumulate(units: float, temperature: float, threshold: float) -> float:
    """Add one day's degree-days to ``units``."""
    return units + degree_days(temperature, threshold)


def is_complete(units: float, total: float) -> bool:
    """Return True once accumulated units reach the stage total."""
    return units >= total


def stage_requirements(stage: LifeStage, cfg: DevelopmentConfig) -> tuple[float, float]:
    """Return ``(threshold, total degree-days)`` of a degree-day stage.

    Raises:
        ValueError: For stages that do not develop by degree-days.
    """
    match stage:
        case LifeStage.EGG:
            return cfg.egg_threshold, cfg.egg_total_degree_days
        case LifeStage.LARVA:
            return cfg.larva_threshold, cfg.larva_total_degree_days
        case LifeStage.PUPA:
            return cfg.pupa_threshold, cfg.pupa_total_degree_days
        case _:
            msg = f"{stage.name} does not develop by degree-days"
            raise ValueError(msg)


def draw_prepupal_target(cfg: DevelopmentConfig, rng: Generator) -> float:
    """Draw an individual prepupal duration around the nominal value.

    Args:
        cfg: Development parameters.
        rng: Random generator.

    Returns:
        ``nominal × (1 + U(-variation, variation))`` days.
    """
    spread = cfg.prepupa_variation
    return cfg.prepupa_nominal_days * (1.0 + float(rng.uniform(-spread, spread)))


def develop(bee: Bee, temperature: float, cfg: DevelopmentConfig) -> bool:
    """Advance an egg, larva, prepupa or pupa by one day.

    Args:
        bee: The developing bee; its accumulators are updated in place.
        temperature: Today's mean temperature (°C).
        cfg: Development parameters.

    Returns:
        True when the stage is complete and the bee should transform.
    """
    if bee.stage is LifeStage.PREPUPA:
        if temperature > cfg.prepupa_temperature_threshold:
            bee.time_units += 1.0
        return is_complete(bee.time_units, bee.target_days)

    threshold, total = stage_requirements(bee.stage, cfg)
    bee.thermal_units = accumulate(bee.thermal_units, temperature, threshold)
    return is_complete(bee.thermal_units, total)


def draw_emergence_offset(cfg: DevelopmentConfig, rng: Generator) -> int:
    """Draw the extra days a cocoon waits beyond its degree-day estimate."""
    weights = cfg.emergence_day_weights
    total = float(sum(weights))
    return int(rng.choice(len(weights), p=[w / total for w in weights]))


def emergence_counter(
    overwinter_units: float,
    offset: int,
    microsite_delay: int,
    cfg: DevelopmentConfig,
) -> int:
    """Return the countdown in warm days before a cocoon emerges.

    More overwintering degree-days mean an earlier emergence.

    Args:
        overwinter_units: Final overwintering degree-days.
        offset: Individual offset from :func:`draw_emergence_offset`.
        microsite_delay: Extra delay imposed by the nest's aspect.
        cfg: Development parameters.
    """
    base = int(cfg.emergence_counter_const + cfg.emergence_counter_slope * overwinter_units)
    return base + offset + microsite_delay


def female_mass_from_provision(provision: float, cfg: FemaleConfig) -> float:
    """Convert a provision mass into adult female body mass.

    ``const + slope × provision`` clamped to the species mass bounds.
    """
    mass = cfg.mass_from_provision_const + cfg.mass_from_provision_slope * provision
    return min(cfg.mass_max, max(cfg.mass_min, mass))


def forage_efficiency(age: int) -> float:
    """Return the hourly pollen collection rate (mg/h) at an adult age.

    Rises over the first days of adult life and declines after about
    three weeks; zero on the day of emergence.
    """
    if age < 1:
        return 0.0
    return 21.643 / (1.0 + math.exp((math.log(age) - math.log(18.888)) * 3.571))


class CocoonEvent(Enum):
    """Outcome of one overwintering day."""

    NONE = auto()
    FINALISED = auto()
    EMERGE = auto()


def develop_in_cocoon(
    bee: Bee,
    temperature: float,
    *,
    prewinter_ended: bool,
    overwinter_ended: bool,
    microsite_delay: int,
    cfg: DevelopmentConfig,
    rng: Generator,
) -> CocoonEvent:
    """Advance an overwintering adult in its cocoon by one day.

    Before the end of prewintering, warm days add prewintering
    degree-days.  During winter, overwintering degree-days accumulate.
    On the first day after winter ends the emergence counter is fixed;
    afterwards it counts down on days warm enough to fly.

    Args:
        bee: The cocoon; ``prewinter_units``, ``thermal_units`` and
            ``emergence_counter`` are updated in place.
        temperature: Today's mean temperature (°C).
        prewinter_ended: Season flag set once autumn cooling is detected.
        overwinter_ended: Season flag set at the end of winter.
        microsite_delay: Extra emergence delay of the cocoon's nest.
        cfg: Development parameters.
        rng: Random generator.

    Returns:
        FINALISED on the day the counter is set, EMERGE once it runs
        out, NONE otherwise.
    """
    if bee.emergence_counter is not None:
        if temperature >= cfg.emergence_threshold:
            bee.emergence_counter -= 1
        if bee.emergence_counter < 1:
            return CocoonEvent.EMERGE
        return CocoonEvent.NONE

    if not prewinter_ended:
        bee.prewinter_units = accumulate(
            bee.prewinter_units, temperature, cfg.prewinter_threshold
        )
    elif not overwinter_ended:
        bee.thermal_units = accumulate(
            bee.thermal_units, temperature, cfg.overwinter_threshold
        )
    else:
        bee.emergence_counter = emergence_counter(
            bee.thermal_units,
            draw_emergence_offset(cfg, rng),
            microsite_delay,
            cfg,
        )
        return CocoonEvent.FINALISED
    return CocoonEvent.NONE
