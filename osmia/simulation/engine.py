"""SimulationEngine -- the daily loop.

Owns all top-level simulation state and advances it one day at a time
in three phases:

1. Begin day: build the day's context (temperature, flying hours,
   season flags), age adults and apply their background mortality,
   update the parasitoid populations.
2. Step: every live bee runs its state machine until it is done for the
   day.  Bees are split into one chunk per worker, each chunk with its
   own random generator, and the chunks run on a thread pool.  Bees in
   the same nest synchronise through the nest lock only.
3. End day: commit births, deaths and stage transitions, advance the
   season clock, clean up empty nests after the emergence season and
   log the day.

The day boundary is a barrier: no bee starts day ``d + 1`` before every
bee has finished day ``d``.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import numpy as np
from numpy.random import Generator, SeedSequence

from osmia.bees.bee import Bee, BeeState, LifeStage
from osmia.bees.context import DayContext
from osmia.bees.lifecycle import begin_day, run_day
from osmia.bees.population import BeePopulation
from osmia.foraging.mask import DetailedForageMask, ForageMask
from osmia.nesting.manager import NestManager
from osmia.parasitoids.dispersal import update_field
from osmia.parasitoids.fields import ParasitoidField
from osmia.simulation.config import SimulationConfig
from osmia.simulation.records import StageRecords
from osmia.world.landscape import Landscape
from osmia.world.weather import DAYS_PER_YEAR, JUNE_1, SeasonClock, Weather, flying_hours

logger = logging.getLogger(__name__)


@dataclass
class SimulationEngine:
    """Drives the simulation forward day by day.

    Attributes:
        config: Loaded simulation configuration.
        landscape: Pollen and habitat map; populated from the seed if
            not given.
        weather: Daily temperatures; synthetic from the seed if not given.
        nests: Nest bookkeeping per polygon.
        population: Every bee record, by handle.
        parasitoids: Parasitoid density field.
        season: Overwintering season flags.
        records: Stage statistics of the current year.
        forage_mask: Coarse search mask shared by all bees.
        detailed_mask: Detailed search mask shared by all bees.
        rng: Master generator for engine-level draws.
        day: Current simulation day.
    """

    config: SimulationConfig
    landscape: Landscape | None = None
    weather: Weather | None = None
    nests: NestManager = field(init=False)
    population: BeePopulation = field(init=False)
    parasitoids: ParasitoidField = field(init=False)
    season: SeasonClock = field(init=False)
    records: StageRecords = field(init=False)
    forage_mask: ForageMask = field(init=False)
    detailed_mask: DetailedForageMask = field(init=False)
    rng: Generator = field(init=False)
    day: int = 0
    _seeds: SeedSequence = field(init=False, repr=False)
    _context: DayContext | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        """Build landscape, weather, masks and collaborators from config."""
        cfg = self.config
        self._seeds = SeedSequence(cfg.seed)
        self.rng = np.random.default_rng(self._seeds.spawn(1)[0])

        if self.landscape is None:
            self.landscape = Landscape(
                width=cfg.landscape_width,
                height=cfg.landscape_height,
                cell_size=cfg.landscape_cell_size,
            )
            self.landscape.populate(self.rng, max_nests=cfg.nesting.max_nests_per_polygon)
        if self.weather is None:
            if cfg.weather.csv_path:
                self.weather = Weather.from_csv(cfg.weather.csv_path, cfg.start_day_in_year)
            else:
                self.weather = Weather.synthetic(
                    max(cfg.days, DAYS_PER_YEAR),
                    cfg.weather,
                    self.rng,
                    start_day_in_year=cfg.start_day_in_year,
                )

        self.nests = NestManager(landscape=self.landscape, cfg=cfg.nesting)
        self.population = BeePopulation()
        self.parasitoids = ParasitoidField.from_config(
            cfg.landscape_width,
            cfg.landscape_height,
            cfg.parasitism,
        )
        self.season = SeasonClock.for_day(cfg.start_day_in_year)
        self.records = StageRecords()
        self.forage_mask = ForageMask(step=cfg.foraging.coarse_step, rings=cfg.foraging.forage_steps)
        self.detailed_mask = DetailedForageMask(
            step=cfg.foraging.detailed_mask_step,
            max_distance=cfg.foraging.typical_homing_distance,
        )

    def seed_cocoons(self, count: int | None = None) -> int:
        """Place overwintering cocoons, each in its own sealed nest.

        Their provision masses are uniform between the female target
        bounds and they carry the configured initial overwintering
        degree-days.

        Args:
            count: Cocoons to create (default ``config.start_cocoons``).

        Returns:
            Number of cocoons actually placed.
        """
        count = self.config.start_cocoons if count is None else count
        fcfg = self.config.female
        placed = 0
        for _ in range(count):
            site = self.landscape.random_nest_site(self.rng)
            if site is None:
                logger.warning("No nest-suitable polygon left; placed %d of %d cocoons", placed, count)
                break
            x, y, habitat = site
            nest = self.nests.add_existing(
                x,
                y,
                habitat.polygon,
                microsite_delay=int(self.rng.integers(0, self.config.nesting.microsite_delay_max + 1)),
            )
            cocoon = Bee(
                uid=self.population.new_uid(),
                stage=LifeStage.IN_COCOON,
                mass=float(self.rng.uniform(fcfg.female_min_target, fcfg.female_max_target)),
                x=x,
                y=y,
                nest=nest,
                thermal_units=self.config.development.initial_overwinter_degree_days,
            )
            nest.append_cell(self.population.add(cocoon))
            nest.seal()
            placed += 1
        self.population.commit()
        logger.info("Seeded %d overwintering cocoons", placed)
        return placed

    def context(self) -> DayContext:
        """Return the context of the current day."""
        if self._context is None or self._context.day != self.day:
            temperature = self.weather.temperature(self.day)
            self._context = DayContext(
                config=self.config,
                day=self.day,
                day_in_year=self.weather.day_in_year(self.day),
                temperature=temperature,
                flying_hours=flying_hours(temperature, self.config.foraging),
                prewinter_ended=self.season.prewinter_ended,
                overwinter_ended=self.season.overwinter_ended,
                landscape=self.landscape,
                nests=self.nests,
                population=self.population,
                forage_mask=self.forage_mask,
                detailed_mask=self.detailed_mask,
                rng=self.rng,
                parasitoids=self.parasitoids,
                records=self.records,
            )
        return self._context

    def begin_day(self) -> None:
        """Prepare every live bee and the parasitoids for the day."""
        ctx = self.context()
        for bee in self.population.live():
            begin_day(bee, ctx)
        if self.config.parasitism.mechanistic:
            update_field(self.parasitoids)

    def step_day(self) -> None:
        """Run every live bee until it is done for the day."""
        ctx = self.context()
        bees = self.population.live()
        workers = min(self.config.workers, max(1, len(bees)))
        chunks = [bees[i::workers] for i in range(workers)]
        generators = [np.random.default_rng(s) for s in self._seeds.spawn(workers)]

        if workers == 1:
            self._run_chunk(chunks[0], ctx.with_rng(generators[0]))
            return
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="osmia") as pool:
            futures = [
                pool.submit(self._run_chunk, chunk, ctx.with_rng(gen))
                for chunk, gen in zip(chunks, generators, strict=True)
            ]
            for future in futures:
                future.result()

    @staticmethod
    def _run_chunk(bees: list[Bee], ctx: DayContext) -> None:
        for bee in bees:
            run_day(bee, ctx)

    def end_day(self) -> None:
        """Commit the day's changes and advance the season."""
        ctx = self.context()
        dead = self.population.commit()
        self.season.update(ctx.day_in_year, self.weather.recent(self.day, 6), self.config.weather)
        if ctx.day_in_year == JUNE_1:
            self.nests.release_empty(self.population.is_alive)

        if logger.isEnabledFor(logging.DEBUG):
            counts = self.population.by_stage()
            logger.debug(
                "day %d (doy %d) %.1f°C: %s, %d died",
                self.day,
                ctx.day_in_year,
                ctx.temperature,
                ", ".join(f"{s.name.lower()}={n}" for s, n in counts.items()),
                len(dead),
            )
        if ctx.day_in_year == DAYS_PER_YEAR - 1:
            logger.info("Year summary (day %d): %s", self.day, self.records.summary())
            self.records.reset()
        self.day += 1

    def step(self) -> None:
        """Advance the simulation by one day."""
        self.begin_day()
        self.step_day()
        self.end_day()

    def run(self, days: int) -> None:
        """Run the simulation for a fixed number of days.

        Args:
            days: Number of days to advance.
        """
        for _ in range(days):
            self.step()

    def stage_counts(self) -> dict[LifeStage, int]:
        """Return the number of live bees per life stage."""
        return self.population.by_stage()

    def active_females(self) -> list[Bee]:
        """Return the live adults that are not yet dead today."""
        return [
            b
            for b in self.population.live()
            if b.stage is LifeStage.FEMALE and b.state is not BeeState.DIE
        ]
