"""Tests for osmia.bees.female -- nesting, provisioning and egg laying."""

from __future__ import annotations

from collections.abc import Callable

import pytest
from numpy.random import Generator

from osmia.bees.bee import Bee, BeeState, LifeStage, NestingPlan
from osmia.bees.context import DayContext
from osmia.bees.female import (
    disperse,
    emerged,
    female_cell_target,
    initial_plan,
    lay_egg,
    nest_provisioning,
    plan_eggs_per_nest,
    reproductive_behaviour,
    sex_ratio,
)
from osmia.bees.lifecycle import run_day
from osmia.bees.population import BeePopulation
from osmia.nesting.nest import Nest, NestSealedError
from osmia.simulation.config import FemaleConfig
from osmia.world.habitat import Habitat, HabitatType
from osmia.world.landscape import Landscape


def _female(population: BeePopulation, *, nest: Nest | None = None, **plan: object) -> Bee:
    bee = Bee(
        uid=population.new_uid(),
        stage=LifeStage.FEMALE,
        mass=100.0,
        x=1000.0,
        y=1000.0,
        nest=nest,
        age=10,
        forage_hours=10,
        plan=NestingPlan(**{"eggs_to_lay": 20, "eggs_this_nest": 5, **plan}),
    )
    population.add(bee)
    if nest is not None:
        nest.provisioner = bee.handle
    return bee


class TestPlanning:
    """Tests for egg load, nest size and sex allocation."""

    def test_egg_load_scales_with_mass(self, rng: Generator) -> None:
        cfg = FemaleConfig()
        light = [initial_plan(40.0, cfg, rng).eggs_to_lay for _ in range(200)]
        heavy = [initial_plan(150.0, cfg, rng).eggs_to_lay for _ in range(200)]
        assert sum(heavy) > sum(light)
        # 5 * (0.0371 * 100 + 2.8399) = 32.75, +- 3
        loads = {initial_plan(100.0, cfg, rng).eggs_to_lay for _ in range(200)}
        assert min(loads) >= 29
        assert max(loads) <= 35

    def test_eggs_per_nest_bounds(self, rng: Generator) -> None:
        cfg = FemaleConfig()
        sizes = [plan_eggs_per_nest(cfg, rng) for _ in range(1000)]
        assert min(sizes) >= cfg.min_eggs_per_nest
        assert max(sizes) <= cfg.max_eggs_per_nest

    def test_daughter_share_falls_with_age(self) -> None:
        cfg = FemaleConfig()
        shares = [sex_ratio(age, 100.0, cfg) for age in (1, 10, 20, 30)]
        assert shares == sorted(shares, reverse=True)
        assert all(0.0 <= s <= 1.0 for s in shares)

    def test_heavier_mothers_have_more_daughters(self) -> None:
        cfg = FemaleConfig()
        assert sex_ratio(1, 150.0, cfg) > sex_ratio(1, 60.0, cfg)

    def test_daughter_cell_target_bounds(self) -> None:
        cfg = FemaleConfig()
        for age in (1, 15, 40):
            for mass in (25.0, 100.0, 200.0):
                target = female_cell_target(age, mass, cfg)
                assert cfg.female_min_target <= target <= cfg.female_max_target

    def test_minimum_daughter_target(self) -> None:
        # (25 - 4) / 0.25
        assert FemaleConfig().female_min_target == pytest.approx(84.0)


class TestNestSearch:
    """Tests for the prenesting wait and dispersal."""

    def test_prenesting_wait(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
    ) -> None:
        ctx = make_context()
        bee = _female(population)
        bee.age = 1
        assert emerged(bee, ctx) is BeeState.EMERGED
        assert bee.step_done
        bee.age = 2
        bee.step_done = False
        assert emerged(bee, ctx) is BeeState.DISPERSE

    def test_disperse_finds_nest(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
        small_landscape: Landscape,
    ) -> None:
        ctx = make_context()
        bee = _female(population)
        assert disperse(bee, ctx) is BeeState.REPRODUCTIVE_BEHAVIOUR
        nest = bee.nest
        assert nest is not None
        assert nest.is_open()
        assert nest.provisioner == bee.handle
        assert (bee.x, bee.y) == (nest.x, nest.y)
        assert small_landscape.contains(nest.x, nest.y)
        assert 3 <= bee.plan.eggs_this_nest <= 20
        assert 0 <= bee.plan.females_planned <= bee.plan.eggs_this_nest
        assert nest in ctx.nests.all_nests()

    def test_disperse_fails_without_sites(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
        small_landscape: Landscape,
    ) -> None:
        small_landscape.habitats = {0: Habitat.of_type(0, HabitatType.ARABLE, max_nests=100)}
        ctx = make_context()
        bee = _female(population)
        assert disperse(bee, ctx) is BeeState.DISPERSE
        assert bee.step_done
        assert bee.nest is None
        assert small_landscape.contains(bee.x, bee.y)

    def test_disperse_needs_pollen(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
        small_landscape: Landscape,
    ) -> None:
        small_landscape.pollen[:] = 0.0
        ctx = make_context()
        bee = _female(population)
        assert disperse(bee, ctx) is BeeState.DISPERSE
        assert ctx.nests.all_nests() == []


class TestNestBuilding:
    """Tests for cell decisions, provisioning and egg laying."""

    @pytest.fixture
    def nest(self) -> Nest:
        return Nest(x=1000.0, y=1000.0, polygon=0)

    def test_new_cell(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
        nest: Nest,
    ) -> None:
        ctx = make_context()
        bee = _female(population, nest=nest, females_planned=2)
        assert reproductive_behaviour(bee, ctx) is BeeState.NEST_PROVISIONING
        assert bee.plan.cell_is_female
        assert bee.plan.cell_target >= ctx.config.female.female_min_target
        assert bee.plan.cell_open_days == 1
        assert bee.plan.cell_provision == 0.0

    def test_sons_after_daughters(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
        nest: Nest,
    ) -> None:
        ctx = make_context()
        bee = _female(population, nest=nest, females_planned=2, females_laid=2)
        reproductive_behaviour(bee, ctx)
        cfg = ctx.config.female
        assert not bee.plan.cell_is_female
        assert cfg.male_min_target <= bee.plan.cell_target <= cfg.male_max_target

    def test_provisioning_then_laying(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
        nest: Nest,
    ) -> None:
        ctx = make_context()
        bee = _female(population, nest=nest, cell_target=30.0, cell_open_days=1)
        state = BeeState.NEST_PROVISIONING
        for _ in range(20):
            state = nest_provisioning(bee, ctx)
            if state is not BeeState.NEST_PROVISIONING:
                break
        assert state is BeeState.REPRODUCTIVE_BEHAVIOUR
        assert 0 < bee.forage_hours < 10
        assert nest.cell_count() == 1
        assert bee.plan.eggs_to_lay == 19
        assert bee.plan.cell_provision == 0.0
        assert ctx.records.eggs_laid == 1

        egg = population.get(nest.occupants()[0])
        assert egg.stage is LifeStage.EGG
        assert egg.mass == 30.0
        assert egg.nest is nest
        assert egg.uid != bee.uid

    def test_out_of_hours(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
        nest: Nest,
    ) -> None:
        ctx = make_context()
        bee = _female(population, nest=nest, cell_target=1e6, cell_open_days=1)
        bee.state = BeeState.NEST_PROVISIONING
        run_day(bee, ctx)
        assert bee.forage_hours == 0
        assert bee.step_done
        assert bee.state is BeeState.NEST_PROVISIONING
        assert bee.plan.cell_provision > 0.0
        assert nest.cell_count() == 0

    def test_no_pollen_in_range(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
        small_landscape: Landscape,
        nest: Nest,
    ) -> None:
        small_landscape.pollen[:] = 0.0
        ctx = make_context()
        bee = _female(population, nest=nest, cell_target=100.0, cell_open_days=1)
        assert nest_provisioning(bee, ctx) is BeeState.NEST_PROVISIONING
        assert bee.forage_hours == 0
        assert bee.plan.cell_provision == 0.0

    def test_cell_waits_minimum_construction_time(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
        nest: Nest,
    ) -> None:
        ctx = make_context()
        bee = _female(population, nest=nest, cell_target=30.0, cell_provision=50.0, cell_open_days=0)
        nest_provisioning(bee, ctx)
        assert nest.cell_count() == 0

    def test_full_day_builds_several_cells(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
        nest: Nest,
    ) -> None:
        ctx = make_context()
        bee = _female(population, nest=nest, eggs_this_nest=30, cell_target=30.0, cell_open_days=1)
        bee.plan.cell_is_female = False
        bee.state = BeeState.NEST_PROVISIONING
        run_day(bee, ctx)
        assert nest.cell_count() >= 1
        assert bee.plan.eggs_to_lay == 20 - nest.cell_count()

    def test_seal_at_nest_quota(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
        nest: Nest,
    ) -> None:
        ctx = make_context()
        bee = _female(population, nest=nest, eggs_this_nest=3)
        for handle in (50, 51, 52):
            nest.append_cell(handle)
        assert reproductive_behaviour(bee, ctx) is BeeState.DISPERSE
        assert not nest.is_open()
        assert bee.nest is None
        assert bee.plan.nests_made == 1

    def test_last_nest_ends_life(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
        nest: Nest,
    ) -> None:
        ctx = make_context()
        bee = _female(population, nest=nest, eggs_this_nest=1, nests_made=4)
        nest.append_cell(50)
        assert reproductive_behaviour(bee, ctx) is BeeState.DIE

    def test_no_eggs_left(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
        nest: Nest,
    ) -> None:
        ctx = make_context()
        bee = _female(population, nest=nest, eggs_to_lay=0)
        assert reproductive_behaviour(bee, ctx) is BeeState.DIE

    def test_laying_into_sealed_nest_raises(
        self,
        make_context: Callable[..., DayContext],
        population: BeePopulation,
        nest: Nest,
    ) -> None:
        ctx = make_context()
        bee = _female(population, nest=nest, cell_target=30.0, cell_provision=30.0, cell_open_days=1)
        nest.seal()
        with pytest.raises(NestSealedError):
            lay_egg(bee, ctx)
        assert nest.cell_count() == 0
        assert bee.plan.eggs_to_lay == 20
