"""Bee -- one individual, whatever its life stage.

A single record type is used for every stage; ``stage`` tells which of
the fields are meaningful.  Developing stages use the thermal and time
accumulators, the cocoon uses the prewinter accumulator and emergence
counter, and only an adult female carries a :class:`NestingPlan`.

Each stage of an individual lives in its own record under its own
population handle.  ``uid`` is shared by all records of one individual
so that its life history can be followed across transitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from osmia.nesting.nest import Nest


class LifeStage(Enum):
    """Life stages in their fixed developmental order."""

    EGG = auto()
    LARVA = auto()
    PREPUPA = auto()
    PUPA = auto()
    IN_COCOON = auto()
    FEMALE = auto()

    def next(self) -> LifeStage:
        """Return the stage that follows this one.

        Raises:
            ValueError: If called on the adult stage.
        """
        order = list(LifeStage)
        index = order.index(self)
        if index == len(order) - 1:
            msg = "an adult female has no successor stage"
            raise ValueError(msg)
        return order[index + 1]

    @property
    def is_developing(self) -> bool:
        """Return True for the stages that still live inside a nest cell."""
        return self is not LifeStage.FEMALE


class BeeState(Enum):
    """Behavioural states of the life-stage state machine."""

    INITIAL = auto()
    DEVELOP = auto()
    NEXT_STAGE = auto()
    EMERGED = auto()
    DISPERSE = auto()
    REPRODUCTIVE_BEHAVIOUR = auto()
    NEST_PROVISIONING = auto()
    DIE = auto()


class Parasitoid(Enum):
    """What, if anything, is consuming the cell's occupant."""

    NONE = auto()
    BOMBYLIID = auto()
    CLEPTOPARASITE = auto()


@dataclass
class NestingPlan:
    """Reproductive bookkeeping of an adult female.

    Attributes:
        eggs_to_lay: Remaining lifetime egg load.
        eggs_this_nest: Cells planned for the current nest.
        females_planned: Daughters planned for the current nest.
        females_laid: Daughters already laid in the current nest.
        nests_made: Nests completed and sealed so far.
        cell_target: Provision mass (mg) needed to close the open cell.
        cell_provision: Provision mass (mg) collected for the open cell.
        cell_is_female: Sex of the egg the open cell is provisioned for.
        cell_open_days: Days the open cell has been exposed.
    """

    eggs_to_lay: int
    eggs_this_nest: int
    females_planned: int = 0
    females_laid: int = 0
    nests_made: int = 0
    cell_target: float = 0.0
    cell_provision: float = 0.0
    cell_is_female: bool = True
    cell_open_days: int = 0


@dataclass
class Bee:
    """A single bee at one life stage.

    Attributes:
        uid: Identity of the individual, kept across stage transitions.
        stage: Current life stage.
        mass: Provision mass (mg) while developing; body mass as an adult.
        x: Position east (m).
        y: Position north (m).
        nest: Nest holding the cell (developing) or being built (adult).
            ``None`` only for an adult without a nest.
        is_female: Sex; males are not followed beyond the cocoon.
        handle: Population slot of this stage record (-1 until added).
        state: Current behavioural state.
        age: Days since the egg was laid (developing) or since emergence.
        stage_age: Days spent in the current stage.
        parasitoid: Parasitoid attacking this individual, if any.
        parasitised_at: ``age`` on the day parasitism was set.
        thermal_units: Degree-days accumulated in the current stage.
        time_units: Elapsed qualifying days (prepupa).
        target_days: Individual prepupal duration.
        prewinter_units: Prewintering degree-days (cocoon).
        emergence_counter: Days left before emergence, set once the
            overwintering degree-days are final (cocoon).
        forage_hours: Flying hours left today (adult).
        plan: Reproductive bookkeeping (adult).
        step_done: True once today's work is finished.
        alive: False once the bee has died.
    """

    uid: int
    stage: LifeStage
    mass: float
    x: float
    y: float
    nest: Nest | None = None
    is_female: bool = True
    handle: int = -1
    state: BeeState = BeeState.INITIAL
    age: int = 0
    stage_age: int = 0
    parasitoid: Parasitoid = Parasitoid.NONE
    parasitised_at: int | None = None
    thermal_units: float = 0.0
    time_units: float = 0.0
    target_days: float = 0.0
    prewinter_units: float = 0.0
    emergence_counter: int | None = None
    forage_hours: int = 0
    plan: NestingPlan | None = None
    step_done: bool = False
    alive: bool = True

    @property
    def is_parasitised(self) -> bool:
        """Return True if a parasitoid has been assigned."""
        return self.parasitoid is not Parasitoid.NONE

    def set_parasitoid(self, parasitoid: Parasitoid) -> None:
        """Mark the bee as parasitised.

        The status is permanent: a second assignment, or an attempt to
        clear it, is ignored.

        Args:
            parasitoid: The attacking parasitoid type.
        """
        if self.is_parasitised or parasitoid is Parasitoid.NONE:
            return
        self.parasitoid = parasitoid
        self.parasitised_at = self.age
