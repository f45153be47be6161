"""Life-stage state machine.

``step`` dispatches on the bee's current state, performs that state's
action and returns the next state.  A handler sets ``bee.step_done``
when the bee has finished for the day; ``run_day`` keeps stepping until
then.  ``begin_day`` runs for every bee before anyone steps.

Developing stages cycle through DEVELOP until their development is
complete, then NEXT_STAGE builds the successor record.  The adult
female moves through EMERGED, DISPERSE, REPRODUCTIVE_BEHAVIOUR and
NEST_PROVISIONING.  DIE is terminal from any state and always runs,
even when the bee had already finished its day.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING

from osmia.bees import female
from osmia.bees.bee import Bee, BeeState, LifeStage
from osmia.bees.development import (
    CocoonEvent,
    develop,
    develop_in_cocoon,
    draw_prepupal_target,
    female_mass_from_provision,
)
from osmia.bees.mortality import (
    dies_over_winter,
    dies_today,
    exposed_to_daily_mortality,
    female_dies_today,
    parasitoid_kills_today,
)

if TYPE_CHECKING:
    from osmia.bees.context import DayContext

logger = logging.getLogger(__name__)

# Upper bound on state changes in one day; exceeding it is a bug.
MAX_STATE_CHANGES = 1000


def begin_day(bee: Bee, ctx: DayContext) -> None:
    """Prepare a bee for a new day.

    Adults age, receive today's flying hours and face background
    mortality, which interrupts whatever they were doing.  A cell that
    stays open counts one more exposed day.
    """
    bee.step_done = False
    if bee.stage is not LifeStage.FEMALE or not bee.alive:
        return
    bee.age += 1
    bee.stage_age += 1
    bee.forage_hours = ctx.flying_hours
    if bee.state is BeeState.NEST_PROVISIONING and bee.plan is not None:
        bee.plan.cell_open_days += 1
    if female_dies_today(bee.age, ctx.config.mortality, ctx.rng):
        bee.state = BeeState.DIE


def step(bee: Bee, ctx: DayContext) -> BeeState:
    """Run the action of the bee's current state and return the next one."""
    match bee.state:
        case BeeState.INITIAL:
            return _initial(bee, ctx)
        case BeeState.DEVELOP:
            return _develop(bee, ctx)
        case BeeState.NEXT_STAGE:
            return _next_stage(bee, ctx)
        case BeeState.EMERGED:
            return female.emerged(bee, ctx)
        case BeeState.DISPERSE:
            return female.disperse(bee, ctx)
        case BeeState.REPRODUCTIVE_BEHAVIOUR:
            return female.reproductive_behaviour(bee, ctx)
        case BeeState.NEST_PROVISIONING:
            return female.nest_provisioning(bee, ctx)
        case BeeState.DIE:
            return _die(bee, ctx)
    msg = f"unhandled state {bee.state}"
    raise ValueError(msg)


def run_day(bee: Bee, ctx: DayContext) -> None:
    """Step a bee until it has finished the day.

    Raises:
        RuntimeError: If the bee does not settle within MAX_STATE_CHANGES.
    """
    for _ in range(MAX_STATE_CHANGES):
        if not bee.alive:
            return
        if bee.step_done and bee.state is not BeeState.DIE:
            return
        bee.state = step(bee, ctx)
    msg = f"bee {bee.uid} ({bee.stage.name}) did not finish its day in state {bee.state.name}"
    logger.error(msg)
    raise RuntimeError(msg)


def enter_stage(bee: Bee, ctx: DayContext) -> None:
    """Draw the stage-specific individual traits of a new stage record."""
    if bee.stage is LifeStage.PREPUPA:
        bee.target_days = draw_prepupal_target(ctx.config.development, ctx.rng)
    elif bee.stage is LifeStage.FEMALE and bee.plan is None:
        bee.plan = female.initial_plan(bee.mass, ctx.config.female, ctx.rng)


# -- State handlers ----------------------------------------------------------


def _initial(bee: Bee, ctx: DayContext) -> BeeState:
    enter_stage(bee, ctx)
    if bee.stage is LifeStage.FEMALE:
        return BeeState.EMERGED
    return BeeState.DEVELOP


def _develop(bee: Bee, ctx: DayContext) -> BeeState:
    """One day of development for an egg, larva, prepupa, pupa or cocoon."""
    cfg = ctx.config
    bee.age += 1
    bee.stage_age += 1
    bee.step_done = True

    if parasitoid_kills_today(bee, cfg.parasitism):
        return BeeState.DIE

    if bee.stage is LifeStage.IN_COCOON:
        return _overwinter(bee, ctx)

    if exposed_to_daily_mortality(bee) and dies_today(bee.stage, cfg.mortality, ctx.rng):
        return BeeState.DIE

    if develop(bee, ctx.temperature, cfg.development):
        bee.step_done = False
        return BeeState.NEXT_STAGE
    return BeeState.DEVELOP


def _overwinter(bee: Bee, ctx: DayContext) -> BeeState:
    cfg = ctx.config
    if ctx.overwinter_ended and ctx.day_in_year >= cfg.development.emergence_deadline_day:
        return BeeState.DIE

    event = develop_in_cocoon(
        bee,
        ctx.temperature,
        prewinter_ended=ctx.prewinter_ended,
        overwinter_ended=ctx.overwinter_ended,
        microsite_delay=bee.nest.microsite_delay if bee.nest is not None else 0,
        cfg=cfg.development,
        rng=ctx.rng,
    )
    match event:
        case CocoonEvent.FINALISED:
            if dies_over_winter(bee.prewinter_units, cfg.mortality, ctx.rng):
                return BeeState.DIE
        case CocoonEvent.EMERGE:
            bee.step_done = False
            return BeeState.NEXT_STAGE
    return BeeState.DEVELOP


def _next_stage(bee: Bee, ctx: DayContext) -> BeeState:
    """Replace this stage record by a record of the following stage.

    The successor carries identity, age, mass, sex, parasitism and nest
    forward and starts with fresh stage counters.  Inside the nest it
    takes over the same cell.  An adult leaves the nest; parasitised
    individuals and males are not followed beyond the cocoon.
    """
    if ctx.records is not None:
        ctx.records.record_duration(bee.stage, bee.stage_age)

    if bee.stage is LifeStage.IN_COCOON:
        if bee.is_parasitised or not bee.is_female:
            return BeeState.DIE
        successor = _emerge(bee, ctx)
        ctx.population.add(successor)
        ctx.population.retire(bee.handle)
        bee.step_done = True
        return BeeState.NEXT_STAGE

    successor = dataclasses.replace(
        bee,
        stage=bee.stage.next(),
        handle=-1,
        state=BeeState.DEVELOP,
        stage_age=0,
        thermal_units=0.0,
        time_units=0.0,
        target_days=0.0,
        step_done=True,
    )
    enter_stage(successor, ctx)
    handle = ctx.population.add(successor)
    if bee.nest is not None:
        with bee.nest.locked():
            bee.nest.replace_occupant(bee.handle, handle)
    ctx.population.retire(bee.handle)
    bee.step_done = True
    return BeeState.NEXT_STAGE


def _emerge(bee: Bee, ctx: DayContext) -> Bee:
    """Build the adult female that leaves the cocoon."""
    mass = female_mass_from_provision(bee.mass, ctx.config.female)
    adult = Bee(
        uid=bee.uid,
        stage=LifeStage.FEMALE,
        mass=mass,
        x=bee.x,
        y=bee.y,
        nest=None,
        is_female=True,
        state=BeeState.EMERGED,
        step_done=True,
    )
    enter_stage(adult, ctx)
    if ctx.records is not None:
        ctx.records.record_emergence(mass)
    return adult


def _die(bee: Bee, ctx: DayContext) -> BeeState:
    """Remove the bee from the living; a provisioning mother seals her nest."""
    nest = bee.nest
    if (
        bee.stage is LifeStage.FEMALE
        and nest is not None
        and nest.provisioner == bee.handle
        and nest.is_open()
    ):
        nest.seal()
    bee.alive = False
    bee.step_done = True
    if ctx.records is not None:
        ctx.records.record_death(bee.stage)
    return BeeState.DIE
