"""Config -- load simulation parameters from YAML files.

All calibrated constants (development thresholds, mortality rates,
parasitism parameters, fecundity curves, foraging and nesting limits)
live in YAML and are parsed into typed, frozen dataclasses here.  The
configuration is immutable once loaded; per-day inputs such as the
temperature are passed to the agents explicitly and never stored here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when a configuration value is missing, unknown or out of range."""


def _check_probability(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        msg = f"{name} must lie in [0, 1], got {value}"
        raise ConfigError(msg)


def _check_non_negative(name: str, value: float) -> None:
    if value < 0:
        msg = f"{name} must be >= 0, got {value}"
        raise ConfigError(msg)


def _check_positive(name: str, value: float) -> None:
    if value <= 0:
        msg = f"{name} must be > 0, got {value}"
        raise ConfigError(msg)


def _check_bounds(name: str, low: float, high: float) -> None:
    if low > high:
        msg = f"{name}: minimum {low} exceeds maximum {high}"
        raise ConfigError(msg)


@dataclass(frozen=True)
class DevelopmentConfig:
    """Thermal development of the immature stages.

    Attributes:
        egg_threshold: Lower developmental threshold for eggs (°C).
        egg_total_degree_days: Degree-days needed to hatch.
        larva_threshold: Lower developmental threshold for larvae (°C).
        larva_total_degree_days: Degree-days needed to spin a cocoon.
        prepupa_nominal_days: Nominal prepupal duration in days.
        prepupa_variation: Half-width of the uniform individual spread
            around the nominal prepupal duration (0.1 = ±10%).
        prepupa_temperature_threshold: A prepupal day only counts when the
            mean temperature is above this value (°C).
        pupa_threshold: Lower developmental threshold for pupae (°C).
        pupa_total_degree_days: Degree-days needed to eclose.
        prewinter_threshold: Threshold for prewintering degree-days (°C).
        overwinter_threshold: Threshold for overwintering degree-days (°C).
        initial_overwinter_degree_days: Overwintering degree-days carried
            by the cocoons that seed a run starting on 1 January.
        emergence_threshold: Days at or above this temperature count down
            the emergence counter (°C).
        emergence_counter_const: Intercept of the emergence counter line.
        emergence_counter_slope: Slope of the emergence counter line
            against overwintering degree-days.
        emergence_day_weights: Relative weights of an extra 0..N day
            emergence offset.
        emergence_deadline_day: Day of year after which an unemerged
            cocoon dies.
    """

    egg_threshold: float = 0.0
    egg_total_degree_days: float = 86.0
    larva_threshold: float = 4.5
    larva_total_degree_days: float = 422.0
    prepupa_nominal_days: float = 45.0
    prepupa_variation: float = 0.1
    prepupa_temperature_threshold: float = 0.0
    pupa_threshold: float = 1.1
    pupa_total_degree_days: float = 570.0

    prewinter_threshold: float = 15.0
    overwinter_threshold: float = 0.0
    initial_overwinter_degree_days: float = 320.0
    emergence_threshold: float = 5.0
    emergence_counter_const: float = 35.4819
    emergence_counter_slope: float = -0.0147
    emergence_day_weights: tuple[float, ...] = (8, 7, 9, 24, 20, 8, 6, 5, 5, 4, 4)
    emergence_deadline_day: int = 150

    def validate(self) -> None:
        """Raise ConfigError for thresholds or totals outside their domain."""
        for name in (
            "egg_threshold",
            "larva_threshold",
            "pupa_threshold",
            "prepupa_temperature_threshold",
        ):
            _check_non_negative(name, getattr(self, name))
        for name in (
            "egg_total_degree_days",
            "larva_total_degree_days",
            "pupa_total_degree_days",
            "prepupa_nominal_days",
        ):
            _check_positive(name, getattr(self, name))
        _check_probability("prepupa_variation", self.prepupa_variation)
        if not self.emergence_day_weights or sum(self.emergence_day_weights) <= 0:
            msg = "emergence_day_weights must hold at least one positive weight"
            raise ConfigError(msg)
        if any(w < 0 for w in self.emergence_day_weights):
            msg = "emergence_day_weights must not be negative"
            raise ConfigError(msg)


@dataclass(frozen=True)
class MortalityConfig:
    """Daily and winter mortality.

    Attributes:
        egg_daily: Daily death probability of an egg in a sealed nest.
        larva_daily: Daily death probability of a larva in a sealed nest.
        prepupa_daily: Daily death probability of a prepupa.
        pupa_daily: Daily death probability of a pupa.
        female_daily: Background daily death probability of an adult.
        female_lifespan: Maximum adult age in days.
        winter_slope: Winter mortality (%) per prewintering degree-day.
        winter_const: Winter mortality (%) intercept.
    """

    egg_daily: float = 0.0014
    larva_daily: float = 0.0014
    prepupa_daily: float = 0.003
    pupa_daily: float = 0.003
    female_daily: float = 0.02
    female_lifespan: int = 60
    winter_slope: float = 0.05
    winter_const: float = -4.63

    def validate(self) -> None:
        """Raise ConfigError for probabilities outside [0, 1]."""
        for name in ("egg_daily", "larva_daily", "prepupa_daily", "pupa_daily", "female_daily"):
            _check_probability(name, getattr(self, name))
        _check_positive("female_lifespan", self.female_lifespan)


@dataclass(frozen=True)
class ParasitismConfig:
    """Cell parasitism by bombyliid flies and cleptoparasites.

    Attributes:
        mechanistic: Use the parasitoid density field instead of the
            open-time probability model.
        prob_per_open_day: Probability of parasitism per day a cell was
            left open (probability model).
        bombyliid_probability: Share of parasitism events attributed to
            bombyliids (probability model).
        attack_chance: Per-capita attack chance of each parasitoid type
            (bombyliid, cleptoparasite) per open day (mechanistic model).
        bombyliid_lethal_days: Days from parasitism to the host's death.
        cleptoparasite_lethal_days: Days from parasitism to the host's death.
        field_cell_size: Side of a parasitoid grid cell in metres.
        start_density: Initial parasitoids per grid cell (bombyliid,
            cleptoparasite).
        daily_mortality: Fraction of each parasitoid population dying per day.
        dispersal: Fraction of each parasitoid population moving to the
            neighbouring cells per day.
    """

    mechanistic: bool = False
    prob_per_open_day: float = 0.0075
    bombyliid_probability: float = 0.5
    attack_chance: tuple[float, float] = (0.00001, 0.00002)
    bombyliid_lethal_days: int = 60
    cleptoparasite_lethal_days: int = 20
    field_cell_size: float = 1000.0
    start_density: tuple[float, float] = (2.0, 2.0)
    daily_mortality: tuple[float, float] = (0.01, 0.01)
    dispersal: tuple[float, float] = (0.001, 0.0001)

    def validate(self) -> None:
        """Raise ConfigError for probabilities or rates out of range."""
        _check_probability("prob_per_open_day", self.prob_per_open_day)
        _check_probability("bombyliid_probability", self.bombyliid_probability)
        for name in ("attack_chance", "daily_mortality", "dispersal"):
            for value in getattr(self, name):
                _check_probability(name, value)
        for value in self.start_density:
            _check_non_negative("start_density", value)
        _check_positive("bombyliid_lethal_days", self.bombyliid_lethal_days)
        _check_positive("cleptoparasite_lethal_days", self.cleptoparasite_lethal_days)
        _check_positive("field_cell_size", self.field_cell_size)


@dataclass(frozen=True)
class FemaleConfig:
    """Adult female body mass, fecundity and provisioning.

    Attributes:
        mass_from_provision_const: Intercept of adult mass vs provision mass.
        mass_from_provision_slope: Slope of adult mass vs provision mass.
        mass_min: Lightest possible adult female (mg).
        mass_max: Heaviest possible adult female (mg).
        male_mass_min: Lightest possible male (mg).
        male_mass_max: Heaviest possible male (mg).
        prenesting_days: Days between emergence and the first nest search.
        find_nest_attempts: Candidate sites tried per dispersal day.
        dispersal_beta: Beta distribution (a, b) of dispersal distance as
            a fraction of the maximum homing distance.
        total_nests_possible: Lifetime nest quota.
        min_eggs_per_nest: Smallest planned nest.
        max_eggs_per_nest: Largest planned nest.
        eggs_per_nest_beta: Beta distribution (a, b) of the planned nest
            size between the two limits.
        sex_ratio_age_logistic: (c, b, unused, d) of the female share
            logistic against mother age.
        sex_ratio_mass_linear: (slope, intercept) of the young-mother
            female share against mother mass.
        cocoon_mass_age_logistic: (c, b, unused, d) of the female cocoon
            mass logistic against mother age.
        cocoon_mass_mass_linear: (slope, intercept) of the average female
            cocoon mass against mother mass.
        lifetime_cocoon_mass_loss: Decline in cocoon mass from the first
            to the last daughter (mg).
        provision_from_cocoon: Provision mass per unit cocoon mass.
        provision_base: Provision mass offset (mg).
        min_cell_construction_days: A cell is never closed sooner.
    """

    mass_from_provision_const: float = 4.0
    mass_from_provision_slope: float = 0.25
    mass_min: float = 25.0
    mass_max: float = 200.0
    male_mass_min: float = 88.0
    male_mass_max: float = 105.0
    prenesting_days: int = 2
    find_nest_attempts: int = 20
    dispersal_beta: tuple[float, float] = (10.0, 5.0)
    total_nests_possible: int = 5
    min_eggs_per_nest: int = 3
    max_eggs_per_nest: int = 30
    eggs_per_nest_beta: tuple[float, float] = (1.0, 4.0)
    sex_ratio_age_logistic: tuple[float, float, float, float] = (
        14.90257909,
        0.09141286,
        0.6031729,
        -0.39213001,
    )
    sex_ratio_mass_linear: tuple[float, float] = (0.0055, -0.1025)
    cocoon_mass_age_logistic: tuple[float, float, float, float] = (
        18.04087868,
        104.19820591,
        133.74150303,
        -0.17686981,
    )
    cocoon_mass_mass_linear: tuple[float, float] = (0.3, 65.1)
    lifetime_cocoon_mass_loss: float = 30.0
    provision_from_cocoon: float = 3.247
    provision_base: float = 40.0
    min_cell_construction_days: int = 1

    @property
    def female_min_target(self) -> float:
        """Smallest provision mass that yields a viable female."""
        return (self.mass_min - self.mass_from_provision_const) / self.mass_from_provision_slope

    @property
    def female_max_target(self) -> float:
        """Provision mass beyond which adult mass is clamped."""
        return (self.mass_max - self.mass_from_provision_const) / self.mass_from_provision_slope

    @property
    def male_min_target(self) -> float:
        """Smallest provision mass for a male cell."""
        return (self.male_mass_min - self.mass_from_provision_const) / self.mass_from_provision_slope

    @property
    def male_max_target(self) -> float:
        """Largest provision mass for a male cell."""
        return (self.male_mass_max - self.mass_from_provision_const) / self.mass_from_provision_slope

    def validate(self) -> None:
        """Raise ConfigError for inverted bounds or empty quotas."""
        _check_bounds("mass", self.mass_min, self.mass_max)
        _check_bounds("male_mass", self.male_mass_min, self.male_mass_max)
        _check_bounds("eggs_per_nest", self.min_eggs_per_nest, self.max_eggs_per_nest)
        _check_positive("mass_from_provision_slope", self.mass_from_provision_slope)
        _check_positive("find_nest_attempts", self.find_nest_attempts)
        _check_positive("total_nests_possible", self.total_nests_possible)
        _check_positive("min_eggs_per_nest", self.min_eggs_per_nest)
        _check_non_negative("prenesting_days", self.prenesting_days)
        _check_non_negative("min_cell_construction_days", self.min_cell_construction_days)


@dataclass(frozen=True)
class ForagingConfig:
    """Homing distances, search masks and pollen collection.

    Attributes:
        typical_homing_distance: Distance (m) within which half of the
            foraging takes place; radius of the coarse search mask.
        max_homing_distance: Distance (m) beyond which females never
            forage or disperse.
        forage_steps: Number of rings in the coarse search mask.
        detailed_mask_step: Grid step (m) of the detailed search mask.
        pollen_give_up_threshold: Lowest pollen score worth collecting.
        pollen_score_to_mg: Pollen score of 1.0 expressed as a fraction of
            the hourly foraging efficiency.
        nest_site_min_pollen: Mean pollen score within the typical homing
            distance required to accept a nest site.
        min_temp_for_flying: Days colder than this give no flying hours.
        max_forage_hours: Flying hours on a warm day.
        hours_per_degree: Flying hours gained per degree above the
            flying threshold.
    """

    typical_homing_distance: float = 600.0
    max_homing_distance: float = 1430.0
    forage_steps: int = 20
    detailed_mask_step: float = 50.0
    pollen_give_up_threshold: float = 0.75
    pollen_score_to_mg: float = 0.8
    nest_site_min_pollen: float = 0.1
    min_temp_for_flying: float = 6.0
    max_forage_hours: int = 10
    hours_per_degree: float = 1.0

    @property
    def coarse_step(self) -> float:
        """Spacing between coarse mask rings."""
        return self.typical_homing_distance / (self.forage_steps - 1)

    def validate(self) -> None:
        """Raise ConfigError for degenerate masks or distances."""
        _check_bounds("homing_distance", self.typical_homing_distance, self.max_homing_distance)
        _check_positive("typical_homing_distance", self.typical_homing_distance)
        _check_positive("detailed_mask_step", self.detailed_mask_step)
        if self.forage_steps < 2:
            msg = f"forage_steps must be >= 2, got {self.forage_steps}"
            raise ConfigError(msg)
        _check_non_negative("pollen_give_up_threshold", self.pollen_give_up_threshold)
        _check_non_negative("max_forage_hours", self.max_forage_hours)


@dataclass(frozen=True)
class NestingConfig:
    """Nest placement limits.

    Attributes:
        max_nests_per_polygon: Default nest capacity of a suitable polygon.
        microsite_delay_max: Largest extra emergence delay (days) a nest's
            aspect can impose on its cocoons.
    """

    max_nests_per_polygon: int = 200
    microsite_delay_max: int = 15

    def validate(self) -> None:
        """Raise ConfigError for negative limits."""
        _check_non_negative("max_nests_per_polygon", self.max_nests_per_polygon)
        _check_non_negative("microsite_delay_max", self.microsite_delay_max)


@dataclass(frozen=True)
class WeatherConfig:
    """Synthetic daily temperature series.

    Attributes:
        mean_temperature: Annual mean daily temperature (°C).
        amplitude: Half the summer-winter difference (°C).
        noise: Standard deviation of day-to-day noise (°C).
        coldest_day: Day of year of the temperature minimum.
        csv_path: Optional file of daily temperatures overriding the
            synthetic series.
        prewinter_end_temperature: Autumn days below this count towards
            the end of prewintering (°C).
        prewinter_end_latest_day: Day of year by which prewintering is
            considered over even without a detected cold spell.
    """

    mean_temperature: float = 9.0
    amplitude: float = 9.0
    noise: float = 2.0
    coldest_day: int = 15
    csv_path: str | None = None
    prewinter_end_temperature: float = 13.0
    prewinter_end_latest_day: int = 334

    def validate(self) -> None:
        """Raise ConfigError for negative spreads."""
        _check_non_negative("amplitude", self.amplitude)
        _check_non_negative("noise", self.noise)


_SECTIONS: dict[str, type] = {
    "development": DevelopmentConfig,
    "mortality": MortalityConfig,
    "parasitism": ParasitismConfig,
    "female": FemaleConfig,
    "foraging": ForagingConfig,
    "nesting": NestingConfig,
    "weather": WeatherConfig,
}


def _build_section(cls: type, data: dict[str, Any] | None, name: str) -> Any:
    """Instantiate one section dataclass from a YAML mapping.

    Lists are turned into tuples so the section stays hashable.

    Raises:
        ConfigError: If the mapping holds keys the section does not know.
    """
    data = data or {}
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        msg = f"unknown key(s) in section '{name}': {sorted(unknown)}"
        raise ConfigError(msg)
    values = {k: tuple(v) if isinstance(v, list) else v for k, v in data.items()}
    return cls(**values)


@dataclass(frozen=True)
class SimulationConfig:
    """Top-level simulation configuration.

    Attributes:
        seed: RNG seed for deterministic replay.
        days: Default run length for the command line.
        workers: Threads used to step the bees each day.
        start_cocoons: Overwintering cocoons seeded at day 0.
        landscape_width: Landscape extent east-west (m).
        landscape_height: Landscape extent north-south (m).
        landscape_cell_size: Side of a landscape grid cell (m).
        start_day_in_year: Day of year of simulation day 0.
    """

    seed: int = 42
    days: int = 365
    workers: int = 1
    start_cocoons: int = 200
    landscape_width: float = 5000.0
    landscape_height: float = 5000.0
    landscape_cell_size: float = 10.0
    start_day_in_year: int = 0

    development: DevelopmentConfig = field(default_factory=DevelopmentConfig)
    mortality: MortalityConfig = field(default_factory=MortalityConfig)
    parasitism: ParasitismConfig = field(default_factory=ParasitismConfig)
    female: FemaleConfig = field(default_factory=FemaleConfig)
    foraging: ForagingConfig = field(default_factory=ForagingConfig)
    nesting: NestingConfig = field(default_factory=NestingConfig)
    weather: WeatherConfig = field(default_factory=WeatherConfig)

    def __post_init__(self) -> None:
        """Validate every section; configuration errors are fatal."""
        _check_positive("workers", self.workers)
        _check_non_negative("start_cocoons", self.start_cocoons)
        _check_positive("landscape_cell_size", self.landscape_cell_size)
        if self.landscape_width < self.landscape_cell_size or (
            self.landscape_height < self.landscape_cell_size
        ):
            msg = "landscape must be at least one cell wide and high"
            raise ConfigError(msg)
        if not 0 <= self.start_day_in_year < 365:
            msg = f"start_day_in_year must lie in [0, 365), got {self.start_day_in_year}"
            raise ConfigError(msg)
        for name in _SECTIONS:
            getattr(self, name).validate()

    @classmethod
    def from_yaml(cls, path: str | Path) -> SimulationConfig:
        """Load configuration from a YAML file.

        Args:
            path: Path to the YAML config file.

        Returns:
            A populated, validated SimulationConfig instance.

        Raises:
            FileNotFoundError: If the config file does not exist.
            ConfigError: If a value is unknown or out of range.
        """
        path = Path(path)
        with path.open("r") as f:
            data = yaml.safe_load(f) or {}

        sections = {
            name: _build_section(section_cls, data.get(name), name)
            for name, section_cls in _SECTIONS.items()
        }
        config = cls(
            seed=data.get("seed", cls.seed),
            days=data.get("days", cls.days),
            workers=data.get("workers", cls.workers),
            start_cocoons=data.get("start_cocoons", cls.start_cocoons),
            landscape_width=data.get("landscape_width", cls.landscape_width),
            landscape_height=data.get("landscape_height", cls.landscape_height),
            landscape_cell_size=data.get(
                "landscape_cell_size",
                cls.landscape_cell_size,
            ),
            start_day_in_year=data.get(
                "start_day_in_year",
                cls.start_day_in_year,
            ),
            **sections,
        )
        logger.info("Loaded configuration from %s (seed=%d)", path, config.seed)
        return config
