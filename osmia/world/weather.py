"""Weather and season clock.

``Weather`` supplies the daily mean temperature and the flying hours
derived from it.  ``SeasonClock`` keeps the two flags that drive the
overwintering cocoon: the end of prewintering, detected from a sustained
autumn cooling, and the end of overwintering on 1 March.  Both flags are
cleared again on 1 June, after the emergence season.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from numpy.random import Generator

    from osmia.simulation.config import ForagingConfig, WeatherConfig

DAYS_PER_YEAR = 365
MARCH_1 = 59
JUNE_1 = 151
SEPTEMBER_1 = 243


@dataclass
class Weather:
    """A daily temperature series.

    Attributes:
        temperatures: Mean temperature (°C) per simulation day; the
            series repeats if the run is longer.
        start_day_in_year: Day of year of simulation day 0.
    """

    temperatures: NDArray[np.float64]
    start_day_in_year: int = 0

    @classmethod
    def synthetic(
        cls,
        days: int,
        cfg: WeatherConfig,
        rng: Generator,
        start_day_in_year: int = 0,
    ) -> Weather:
        """Build a sinusoidal annual cycle with Gaussian day-to-day noise.

        Args:
            days: Length of the series.
            cfg: Weather parameters.
            rng: Seeded random generator.
            start_day_in_year: Day of year of the first value.
        """
        doy = (np.arange(days) + start_day_in_year) % DAYS_PER_YEAR
        phase = 2.0 * np.pi * (doy - cfg.coldest_day) / DAYS_PER_YEAR
        temps = cfg.mean_temperature - cfg.amplitude * np.cos(phase)
        if cfg.noise > 0:
            temps = temps + rng.normal(0.0, cfg.noise, days)
        return cls(temperatures=temps, start_day_in_year=start_day_in_year)

    @classmethod
    def from_csv(cls, path: str | Path, start_day_in_year: int = 0) -> Weather:
        """Load one mean temperature per line (or the last column of a CSV).

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the file holds no temperatures.
        """
        data = np.loadtxt(Path(path), delimiter=",", ndmin=2, comments="#")
        if data.size == 0:
            msg = f"no temperatures in {path}"
            raise ValueError(msg)
        return cls(temperatures=data[:, -1].astype(np.float64), start_day_in_year=start_day_in_year)

    @classmethod
    def constant(cls, temperature: float, days: int = DAYS_PER_YEAR, start_day_in_year: int = 0) -> Weather:
        """A flat series, mostly useful in tests."""
        return cls(temperatures=np.full(days, float(temperature)), start_day_in_year=start_day_in_year)

    def temperature(self, day: int) -> float:
        """Return the mean temperature of simulation day ``day``."""
        return float(self.temperatures[day % len(self.temperatures)])

    def recent(self, day: int, count: int) -> list[float]:
        """Return the temperatures of ``day - count + 1`` .. ``day``, oldest first."""
        return [self.temperature(d) for d in range(day - count + 1, day + 1)]

    def day_in_year(self, day: int) -> int:
        """Return the day of year (0-based) of simulation day ``day``."""
        return (self.start_day_in_year + day) % DAYS_PER_YEAR


def flying_hours(temperature: float, cfg: ForagingConfig) -> int:
    """Return the hours warm enough to forage on a day.

    Zero below the flying threshold; one extra hour per
    ``1 / hours_per_degree`` degrees above it, up to the daily maximum.
    """
    if temperature < cfg.min_temp_for_flying:
        return 0
    hours = 1 + int((temperature - cfg.min_temp_for_flying) * cfg.hours_per_degree)
    return min(cfg.max_forage_hours, hours)


def cooling_detected(temps: Sequence[float], threshold: float) -> bool:
    """Return True if the last six days show a sustained autumn cooling.

    The last three days must be colder than ``threshold``, and either the
    three days before them fell by more than a degree each, or four days
    were cold after a drop of at least three degrees.

    Args:
        temps: At least six daily temperatures, oldest first.
        threshold: The cold-day temperature (°C).
    """
    if len(temps) < 6:
        return False
    t5, t4, t3, t2, t1, t0 = temps[-6:]
    cold = t2 < threshold and t1 < threshold and t0 < threshold
    sharp_drop = t5 - t4 > 1.0 and t4 - t3 > 1.0
    long_cold = t3 < threshold and t5 - t4 >= 3.0
    return cold and (sharp_drop or long_cold)


@dataclass
class SeasonClock:
    """Season flags read by overwintering cocoons.

    Attributes:
        prewinter_ended: True from the autumn cooling until 1 June.
        overwinter_ended: True from 1 March until 1 June.
    """

    prewinter_ended: bool = True
    overwinter_ended: bool = False

    @classmethod
    def for_day(cls, day_in_year: int) -> SeasonClock:
        """Return the flags for a run starting on ``day_in_year``.

        A start between 1 June and 1 September is before prewintering
        has ended; a start in autumn is treated as already past it.
        """
        if MARCH_1 <= day_in_year < JUNE_1:
            return cls(prewinter_ended=True, overwinter_ended=True)
        if JUNE_1 <= day_in_year < SEPTEMBER_1:
            return cls(prewinter_ended=False, overwinter_ended=False)
        return cls(prewinter_ended=True, overwinter_ended=False)

    def update(self, day_in_year: int, recent_temps: Sequence[float], cfg: WeatherConfig) -> None:
        """Advance the flags at the end of a day.

        Args:
            day_in_year: Day of year that has just finished.
            recent_temps: The last six daily temperatures, oldest first.
            cfg: Weather parameters.
        """
        if day_in_year > SEPTEMBER_1 and not self.prewinter_ended:
            if cooling_detected(recent_temps, cfg.prewinter_end_temperature) or (
                day_in_year >= cfg.prewinter_end_latest_day
            ):
                self.prewinter_ended = True
        if day_in_year == MARCH_1:
            self.overwinter_ended = True
        if day_in_year == JUNE_1:
            self.prewinter_ended = False
            self.overwinter_ended = False
