"""Tests for osmia.simulation -- config loading, engine and command line."""

import logging
from dataclasses import replace
from pathlib import Path

import pytest

from osmia.__main__ import build_parser, main
from osmia.bees.bee import Bee, LifeStage
from osmia.bees.population import BeePopulation
from osmia.simulation.config import (
    ConfigError,
    DevelopmentConfig,
    MortalityConfig,
    SimulationConfig,
)
from osmia.simulation.engine import SimulationEngine
from osmia.simulation.records import StageRecords
from osmia.world.landscape import Landscape
from osmia.world.weather import Weather

_DEFAULT_YAML = Path(__file__).resolve().parent.parent / "config" / "default.yaml"


class TestSimulationConfig:
    """Tests for YAML config loading and validation."""

    def test_defaults(self) -> None:
        cfg = SimulationConfig()
        assert cfg.seed == 42
        assert cfg.workers == 1
        assert cfg.development.egg_total_degree_days == 86.0
        assert cfg.female.female_min_target == pytest.approx(84.0)

    def test_from_yaml(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "test.yaml"
        yaml_file.write_text(
            "seed: 99\n"
            "workers: 3\n"
            "development:\n"
            "  larva_threshold: 5.0\n"
            "  emergence_day_weights: [1, 2, 3]\n"
            "parasitism:\n"
            "  mechanistic: true\n"
        )
        cfg = SimulationConfig.from_yaml(yaml_file)
        assert cfg.seed == 99
        assert cfg.workers == 3
        assert cfg.development.larva_threshold == 5.0
        assert cfg.development.emergence_day_weights == (1, 2, 3)
        assert cfg.development.egg_threshold == 0.0
        assert cfg.parasitism.mechanistic
        assert cfg.mortality == MortalityConfig()

    def test_default_file_matches_defaults(self) -> None:
        cfg = SimulationConfig.from_yaml(_DEFAULT_YAML)
        defaults = SimulationConfig()
        assert cfg.development == defaults.development
        assert cfg.mortality == defaults.mortality
        assert cfg.female == defaults.female

    def test_unknown_key(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "bad.yaml"
        yaml_file.write_text("mortality:\n  egg_dayly: 0.1\n")
        with pytest.raises(ConfigError, match="egg_dayly"):
            SimulationConfig.from_yaml(yaml_file)

    def test_negative_threshold(self) -> None:
        with pytest.raises(ConfigError):
            SimulationConfig(development=DevelopmentConfig(egg_threshold=-1.0))

    def test_probability_out_of_range(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "bad.yaml"
        yaml_file.write_text("mortality:\n  pupa_daily: 1.5\n")
        with pytest.raises(ConfigError):
            SimulationConfig.from_yaml(yaml_file)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            SimulationConfig.from_yaml(tmp_path / "nope.yaml")

    def test_config_is_frozen(self) -> None:
        cfg = SimulationConfig()
        with pytest.raises(AttributeError):
            cfg.seed = 1  # type: ignore[misc]


class TestBeePopulation:
    """Tests for handle allocation and between-day commits."""

    def _bee(self, population: BeePopulation) -> Bee:
        return Bee(uid=population.new_uid(), stage=LifeStage.EGG, mass=100.0, x=0.0, y=0.0)

    def test_added_records_wait_for_commit(self, population: BeePopulation) -> None:
        bee = self._bee(population)
        handle = population.add(bee)
        assert bee.handle == handle
        assert population.get(handle) is bee
        assert population.live() == []
        population.commit()
        assert population.live() == [bee]

    def test_handles_are_unique(self, population: BeePopulation) -> None:
        handles = {population.add(self._bee(population)) for _ in range(50)}
        assert len(handles) == 50

    def test_commit_removes_dead_and_retired(self, population: BeePopulation) -> None:
        dying = self._bee(population)
        retired = self._bee(population)
        kept = self._bee(population)
        for bee in (dying, retired, kept):
            population.add(bee)
        population.commit()

        dying.alive = False
        population.retire(retired.handle)
        assert not population.is_alive(retired.handle)
        removed = population.commit()
        assert removed == [dying]
        assert population.live() == [kept]
        with pytest.raises(KeyError):
            population.get(dying.handle)

    def test_by_stage(self, population: BeePopulation) -> None:
        population.add(self._bee(population))
        population.add(Bee(uid=9, stage=LifeStage.PUPA, mass=1.0, x=0.0, y=0.0))
        population.commit()
        counts = population.by_stage()
        assert counts[LifeStage.EGG] == 1
        assert counts[LifeStage.PUPA] == 1
        assert counts[LifeStage.FEMALE] == 0


class TestStageRecords:
    """Tests for yearly statistics."""

    def test_summary_and_reset(self) -> None:
        records = StageRecords()
        records.record_duration(LifeStage.EGG, 5)
        records.record_duration(LifeStage.EGG, 7)
        records.record_egg()
        assert records.mean_duration(LifeStage.EGG) == 6.0
        assert records.mean_duration(LifeStage.PUPA) is None
        assert records.summary()["eggs_laid"] == 1
        records.reset()
        assert records.eggs_laid == 0
        assert records.mean_duration(LifeStage.EGG) is None


@pytest.fixture
def spring_config() -> SimulationConfig:
    """A small run starting on 1 March, just before emergence."""
    return SimulationConfig(
        seed=7,
        start_cocoons=40,
        landscape_width=2000.0,
        landscape_height=2000.0,
        start_day_in_year=60,
    )


def _engine(config: SimulationConfig, landscape: Landscape) -> SimulationEngine:
    engine = SimulationEngine(
        config=config,
        landscape=landscape,
        weather=Weather.constant(20.0, start_day_in_year=60),
    )
    engine.seed_cocoons()
    return engine


def _snapshot(engine: SimulationEngine) -> list[tuple[int, int, str, str, float]]:
    return sorted(
        (b.uid, b.handle, b.stage.name, b.state.name, round(b.mass, 6))
        for b in engine.population.live()
    )


class TestSimulationEngine:
    """Tests for the daily loop."""

    def test_engine_initialises(self, default_config: SimulationConfig) -> None:
        engine = SimulationEngine(
            config=replace(default_config, landscape_width=1000.0, landscape_height=1000.0),
        )
        assert engine.day == 0
        assert engine.landscape.cols == 100
        assert len(engine.weather.temperatures) >= 365
        assert engine.forage_mask.offsets.shape == (20, 8, 2)

    def test_seed_cocoons(self, spring_config: SimulationConfig, small_landscape: Landscape) -> None:
        engine = _engine(spring_config, small_landscape)
        counts = engine.stage_counts()
        assert counts[LifeStage.IN_COCOON] == 40
        assert len(engine.nests.all_nests()) == 40
        for nest in engine.nests.all_nests():
            assert not nest.is_open()
            assert nest.cell_count() == 1

    def test_step_advances_day(self, spring_config: SimulationConfig, small_landscape: Landscape) -> None:
        engine = _engine(spring_config, small_landscape)
        engine.step()
        assert engine.day == 1
        assert engine.context().day_in_year == 61

    def test_cocoons_emerge_and_lay(
        self,
        spring_config: SimulationConfig,
        small_landscape: Landscape,
    ) -> None:
        engine = _engine(spring_config, small_landscape)
        engine.run(80)
        assert engine.records.eggs_laid > 0
        assert engine.records.female_masses
        counts = engine.stage_counts()
        assert counts[LifeStage.IN_COCOON] == 0
        assert counts[LifeStage.EGG] + counts[LifeStage.LARVA] > 0

    def test_empty_nests_released_after_emergence(
        self,
        spring_config: SimulationConfig,
        small_landscape: Landscape,
    ) -> None:
        engine = _engine(spring_config, small_landscape)
        seeded = engine.nests.all_nests()
        engine.run(95)
        remaining = engine.nests.all_nests()
        assert not any(nest in remaining for nest in seeded)

    def test_determinism(self, spring_config: SimulationConfig, small_landscape: Landscape) -> None:
        """Same seed and one worker give identical runs."""
        first = _engine(spring_config, small_landscape)
        second = _engine(spring_config, small_landscape)
        first.run(70)
        second.run(70)
        assert _snapshot(first) == _snapshot(second)
        assert first.records.eggs_laid == second.records.eggs_laid

    def test_parallel_run(self, spring_config: SimulationConfig, small_landscape: Landscape) -> None:
        engine = _engine(replace(spring_config, workers=4), small_landscape)
        engine.run(70)
        assert engine.day == 70
        assert engine.records.eggs_laid > 0
        for nest in engine.nests.all_nests():
            handles = nest.occupants()
            assert len(handles) == len(set(handles))

    def test_mechanistic_parasitism_run(
        self,
        spring_config: SimulationConfig,
        small_landscape: Landscape,
    ) -> None:
        cfg = replace(
            spring_config,
            parasitism=replace(spring_config.parasitism, mechanistic=True),
        )
        engine = _engine(cfg, small_landscape)
        engine.run(70)
        assert engine.records.eggs_laid > 0


class TestCommandLine:
    """Tests for the ``python -m osmia`` entry point."""

    def test_parser_defaults(self) -> None:
        args = build_parser().parse_args([])
        assert args.config.name == "default.yaml"
        assert args.days is None
        assert args.log_level == "INFO"

    def test_short_run(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        yaml_file = tmp_path / "small.yaml"
        yaml_file.write_text(
            "seed: 3\n"
            "start_cocoons: 5\n"
            "landscape_width: 1000.0\n"
            "landscape_height: 1000.0\n"
        )
        caplog.set_level(logging.INFO, logger="osmia")
        main(["-c", str(yaml_file), "-d", "3", "-w", "2"])
        assert "Finished 3 days" in caplog.text
