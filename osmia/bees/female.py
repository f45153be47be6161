"""Adult female behaviour -- nest search, provisioning and egg laying.

A female emerges with a lifetime egg load set by her body mass.  After a
short prenesting period she disperses to find a nest site, then
alternates between deciding the next cell (sex and provision target)
and foraging until the cell is provisioned, when she lays an egg and
closes the cell.  A nest is sealed when its planned cell count is
reached; she then searches for another until her nest quota or egg load
is used up.

Key relationships:

- **Egg load**: ``nests × (0.0371 × mass + 2.8399) ± 3``.
- **Sex allocation**: the female share of a nest follows a logistic
  decline with the mother's age whose young-age plateau rises with her
  mass.  Daughters are laid first, in the innermost cells.
- **Provisioning**: daughter cells follow the cocoon-mass curve of the
  mother's age and mass; son cells get a provision between the male
  bounds.  Hourly pollen intake follows the age-dependent foraging
  efficiency and the quality and distance of the nearest resource.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from osmia.bees.bee import Bee, BeeState, LifeStage, NestingPlan
from osmia.bees.development import forage_efficiency
from osmia.bees.mortality import calc_parasitised
from osmia.foraging.mask import nearest_resource
from osmia.nesting.nest import NestSealedError

if TYPE_CHECKING:
    from numpy.random import Generator

    from osmia.bees.context import DayContext
    from osmia.nesting.nest import Nest
    from osmia.simulation.config import FemaleConfig

logger = logging.getLogger(__name__)

# -- Egg load ----------------------------------------------------------------

_EGGS_PER_NEST_MASS_SLOPE = 0.0371
_EGGS_PER_NEST_CONST = 2.8399
_EGG_LOAD_SPREAD = 3.0  # ± eggs around the mass prediction


def initial_plan(mass: float, cfg: FemaleConfig, rng: Generator) -> NestingPlan:
    """Return the reproductive plan of a newly emerged female.

    Args:
        mass: Body mass (mg).
        cfg: Female parameters.
        rng: Random generator.
    """
    expected = cfg.total_nests_possible * (_EGGS_PER_NEST_MASS_SLOPE * mass + _EGGS_PER_NEST_CONST)
    spread = float(rng.uniform(-_EGG_LOAD_SPREAD, _EGG_LOAD_SPREAD))
    return NestingPlan(eggs_to_lay=max(0, int(expected + spread)), eggs_this_nest=0)


def plan_eggs_per_nest(cfg: FemaleConfig, rng: Generator) -> int:
    """Draw the number of cells a female intends to build in one nest."""
    a, b = cfg.eggs_per_nest_beta
    span = cfg.max_eggs_per_nest - cfg.min_eggs_per_nest
    return cfg.min_eggs_per_nest + int(float(rng.beta(a, b)) * span)


def sex_ratio(age: int, mass: float, cfg: FemaleConfig) -> float:
    """Return the share of daughters a mother of ``age`` and ``mass`` lays.

    Young mothers lay a share that rises linearly with body mass; the
    share falls logistically towards a floor as the mother ages.
    """
    c, floor, _, d = cfg.sex_ratio_age_logistic
    slope, intercept = cfg.sex_ratio_mass_linear
    plateau = slope * mass + intercept
    ratio = floor + (plateau - floor) / (1.0 + math.exp(-d * (age - c)))
    return min(1.0, max(0.0, ratio))


def female_cell_target(age: int, mass: float, cfg: FemaleConfig) -> float:
    """Return the provision mass a mother puts in a daughter's cell.

    Heavier mothers make heavier daughters; cocoon mass declines by
    ``lifetime_cocoon_mass_loss`` as the mother ages.
    """
    c, floor, _, d = cfg.cocoon_mass_age_logistic
    slope, intercept = cfg.cocoon_mass_mass_linear
    first = slope * mass + intercept + cfg.lifetime_cocoon_mass_loss / 2.0
    cocoon = floor + (first - floor) / (1.0 + math.exp(-d * (age - c)))
    provision = cfg.provision_base + cfg.provision_from_cocoon * cocoon
    return min(cfg.female_max_target, max(cfg.female_min_target, provision))


def male_cell_target(cfg: FemaleConfig, rng: Generator) -> float:
    """Draw the provision mass of a son's cell."""
    return float(rng.uniform(cfg.male_min_target, cfg.male_max_target))


def start_nest(bee: Bee, nest: Nest, cfg: FemaleConfig, rng: Generator) -> None:
    """Take possession of a freshly created nest and plan its cells."""
    plan = bee.plan
    nest.provisioner = bee.handle
    bee.nest = nest
    bee.x, bee.y = nest.x, nest.y
    plan.eggs_this_nest = min(plan_eggs_per_nest(cfg, rng), plan.eggs_to_lay)
    plan.females_planned = round(sex_ratio(bee.age, bee.mass, cfg) * plan.eggs_this_nest)
    plan.females_laid = 0


# -- State handlers ----------------------------------------------------------


def emerged(bee: Bee, ctx: DayContext) -> BeeState:
    """Wait out the prenesting period, then look for a nest."""
    if bee.age < ctx.config.female.prenesting_days:
        bee.step_done = True
        return BeeState.EMERGED
    if bee.nest is not None:
        return BeeState.REPRODUCTIVE_BEHAVIOUR
    return BeeState.DISPERSE


def disperse(bee: Bee, ctx: DayContext) -> BeeState:
    """Try a series of candidate nest sites around the current position.

    Each candidate lies at a Beta-distributed fraction of the maximum
    homing distance in a random direction.  It is accepted if nests can
    be built there, there is enough pollen within the typical homing
    distance, and the polygon still has room.  Otherwise the female
    ends the day at the last candidate and tries again tomorrow.
    """
    fcfg = ctx.config.female
    forage = ctx.config.foraging
    a, b = fcfg.dispersal_beta
    x, y = bee.x, bee.y
    for _ in range(fcfg.find_nest_attempts):
        distance = float(ctx.rng.beta(a, b)) * forage.max_homing_distance
        angle = float(ctx.rng.uniform(0.0, 2.0 * math.pi))
        x, y = ctx.landscape.clamp(
            bee.x + distance * math.cos(angle),
            bee.y + distance * math.sin(angle),
        )
        if ctx.landscape.nest_possible(x, y) is None:
            continue
        if ctx.landscape.mean_pollen(x, y, ctx.detailed_mask.offsets) < forage.nest_site_min_pollen:
            continue
        nest = ctx.nests.create_nest(x, y, ctx.rng)
        if nest is not None:
            start_nest(bee, nest, fcfg, ctx.rng)
            return BeeState.REPRODUCTIVE_BEHAVIOUR

    bee.x, bee.y = x, y
    bee.step_done = True
    return BeeState.DISPERSE


def reproductive_behaviour(bee: Bee, ctx: DayContext) -> BeeState:
    """Decide what comes next: a new cell, a new nest, or the end."""
    plan = bee.plan
    fcfg = ctx.config.female
    nest = bee.nest
    if plan.eggs_to_lay <= 0:
        return BeeState.DIE
    if nest is None:
        return BeeState.DISPERSE

    if not nest.is_open() or nest.cell_count() >= plan.eggs_this_nest:
        nest.seal()
        bee.nest = None
        plan.nests_made += 1
        if plan.nests_made >= fcfg.total_nests_possible:
            return BeeState.DIE
        return BeeState.DISPERSE

    plan.cell_is_female = plan.females_laid < plan.females_planned
    if plan.cell_is_female:
        plan.cell_target = female_cell_target(bee.age, bee.mass, fcfg)
    else:
        plan.cell_target = male_cell_target(fcfg, ctx.rng)
    plan.cell_provision = 0.0
    plan.cell_open_days = 1
    return BeeState.NEST_PROVISIONING


def nest_provisioning(bee: Bee, ctx: DayContext) -> BeeState:
    """Spend one flying hour foraging, or close the cell if it is full."""
    plan = bee.plan
    fcfg = ctx.config.female
    forage = ctx.config.foraging

    if plan.cell_provision >= plan.cell_target and (
        plan.cell_open_days >= fcfg.min_cell_construction_days
    ):
        lay_egg(bee, ctx)
        return BeeState.REPRODUCTIVE_BEHAVIOUR

    if bee.forage_hours <= 0:
        bee.step_done = True
        return BeeState.NEST_PROVISIONING

    site = nearest_resource(
        ctx.landscape,
        bee.nest.x,
        bee.nest.y,
        ctx.forage_mask,
        forage.max_homing_distance,
        forage.pollen_give_up_threshold,
    )
    if site is None:
        # nothing worth collecting in range today
        bee.forage_hours = 0
        bee.step_done = True
        return BeeState.NEST_PROVISIONING

    bee.forage_hours -= 1
    quality = min(1.0, site.score * forage.pollen_score_to_mg)
    proximity = max(0.0, 1.0 - site.distance / forage.max_homing_distance)
    plan.cell_provision += forage_efficiency(bee.age) * quality * proximity
    return BeeState.NEST_PROVISIONING


def lay_egg(bee: Bee, ctx: DayContext) -> Bee:
    """Close the provisioned cell with a new egg.

    Returns:
        The new egg record.

    Raises:
        NestSealedError: If the female's nest no longer accepts cells.
    """
    plan = bee.plan
    nest = bee.nest
    egg = Bee(
        uid=ctx.population.new_uid(),
        stage=LifeStage.EGG,
        mass=min(plan.cell_provision, plan.cell_target),
        x=nest.x,
        y=nest.y,
        nest=nest,
        is_female=plan.cell_is_female,
    )
    egg.set_parasitoid(
        calc_parasitised(
            plan.cell_open_days,
            nest.x,
            nest.y,
            ctx.config.parasitism,
            ctx.rng,
            ctx.parasitoids,
        )
    )
    handle = ctx.population.add(egg)
    if not nest.append_cell(handle):
        ctx.population.retire(handle)
        msg = f"female {bee.uid} tried to lay into a sealed nest at ({nest.x:.0f}, {nest.y:.0f})"
        logger.error(msg)
        raise NestSealedError(msg)

    plan.eggs_to_lay -= 1
    if plan.cell_is_female:
        plan.females_laid += 1
    plan.cell_provision = 0.0
    plan.cell_open_days = 0
    if ctx.records is not None:
        ctx.records.record_egg()
    return egg
