"""Mortality model -- daily, winter and parasitoid-induced death.

Every check is a single Bernoulli draw against a configured rate, so
outcomes are reproducible for a given generator state.  Parasitism is
decided once, when the mother closes the cell, and is permanent.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from osmia.bees.bee import Bee, LifeStage, Parasitoid

if TYPE_CHECKING:
    from numpy.random import Generator

    from osmia.parasitoids.fields import ParasitoidField
    from osmia.simulation.config import MortalityConfig, ParasitismConfig


def daily_rate(stage: LifeStage, cfg: MortalityConfig) -> float:
    """Return the daily death probability of a stage.

    The cocoon has no daily rate: it is exposed once, to winter mortality.
    """
    match stage:
        case LifeStage.EGG:
            return cfg.egg_daily
        case LifeStage.LARVA:
            return cfg.larva_daily
        case LifeStage.PREPUPA:
            return cfg.prepupa_daily
        case LifeStage.PUPA:
            return cfg.pupa_daily
        case LifeStage.FEMALE:
            return cfg.female_daily
        case _:
            return 0.0


def dies_today(stage: LifeStage, cfg: MortalityConfig, rng: Generator) -> bool:
    """Draw today's background death for a bee of ``stage``."""
    return bool(rng.random() < daily_rate(stage, cfg))


def exposed_to_daily_mortality(bee: Bee) -> bool:
    """Return True if the bee is subject to daily mortality today.

    Eggs and larvae are only exposed once their nest has been sealed.
    """
    if bee.stage in (LifeStage.EGG, LifeStage.LARVA):
        return bee.nest is not None and not bee.nest.is_open()
    return bee.stage in (LifeStage.PREPUPA, LifeStage.PUPA)


def winter_mortality_probability(prewinter_units: float, cfg: MortalityConfig) -> float:
    """Return the probability of dying over winter.

    Warm autumns (many prewintering degree-days) deplete reserves.
    """
    percent = cfg.winter_slope * prewinter_units + cfg.winter_const
    return min(1.0, max(0.0, percent / 100.0))


def dies_over_winter(prewinter_units: float, cfg: MortalityConfig, rng: Generator) -> bool:
    """Draw winter death once the overwintering degree-days are final."""
    return bool(rng.random() < winter_mortality_probability(prewinter_units, cfg))


def female_dies_today(age: int, cfg: MortalityConfig, rng: Generator) -> bool:
    """Return True if an adult dies of old age or background mortality."""
    if age > cfg.female_lifespan:
        return True
    return dies_today(LifeStage.FEMALE, cfg, rng)


def lethal_delay(parasitoid: Parasitoid, cfg: ParasitismConfig) -> int | None:
    """Return days from parasitism to death, or None when not parasitised."""
    match parasitoid:
        case Parasitoid.BOMBYLIID:
            return cfg.bombyliid_lethal_days
        case Parasitoid.CLEPTOPARASITE:
            return cfg.cleptoparasite_lethal_days
        case _:
            return None


def parasitoid_kills_today(bee: Bee, cfg: ParasitismConfig) -> bool:
    """Return True once the parasitoid's lethal delay has elapsed.

    Stage transitions do not reset the clock: ``parasitised_at`` and
    ``age`` are carried across them.
    """
    delay = lethal_delay(bee.parasitoid, cfg)
    if delay is None or bee.parasitised_at is None:
        return False
    return bee.age - bee.parasitised_at >= delay


def calc_parasitised(
    days_open: int,
    x: float,
    y: float,
    cfg: ParasitismConfig,
    rng: Generator,
    parasitoids: ParasitoidField | None = None,
) -> Parasitoid:
    """Decide whether a cell closed after ``days_open`` days is parasitised.

    The probability model scales the risk linearly with open time and
    then splits events between bombyliids and cleptoparasites.  The
    mechanistic model uses the local parasitoid densities instead, and a
    successful attack adds one parasitoid to the field.

    Args:
        days_open: Days the cell was exposed while being provisioned.
        x: Nest position east (m).
        y: Nest position north (m).
        cfg: Parasitism parameters.
        rng: Random generator.
        parasitoids: Density field, required by the mechanistic model.

    Returns:
        The parasitoid type, or ``Parasitoid.NONE``.

    Raises:
        ValueError: If the mechanistic model is enabled without a field.
    """
    if days_open <= 0:
        return Parasitoid.NONE

    if not cfg.mechanistic:
        if rng.random() >= cfg.prob_per_open_day * days_open:
            return Parasitoid.NONE
        if rng.random() < cfg.bombyliid_probability:
            return Parasitoid.BOMBYLIID
        return Parasitoid.CLEPTOPARASITE

    if parasitoids is None:
        msg = "mechanistic parasitism needs a parasitoid field"
        raise ValueError(msg)
    for ptype, chance in zip(
        (Parasitoid.BOMBYLIID, Parasitoid.CLEPTOPARASITE),
        cfg.attack_chance,
        strict=True,
    ):
        density = parasitoids.density(ptype, x, y)
        if rng.random() < 1.0 - math.exp(-chance * density * days_open):
            parasitoids.add(ptype, x, y)
            return ptype
    return Parasitoid.NONE
