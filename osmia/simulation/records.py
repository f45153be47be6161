"""StageRecords -- per-stage durations, deaths and egg counts.

Bees on several threads report into the same recorder, so every write
takes the recorder lock.  The engine logs a summary and resets the
records at the end of each simulated year.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import dataclass, field

import numpy as np

from osmia.bees.bee import LifeStage


@dataclass
class StageRecords:
    """Running statistics of one simulated year."""

    durations: dict[LifeStage, list[int]] = field(
        default_factory=lambda: defaultdict(list),
    )
    deaths: dict[LifeStage, int] = field(default_factory=lambda: defaultdict(int))
    eggs_laid: int = 0
    female_masses: list[float] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def record_duration(self, stage: LifeStage, days: int) -> None:
        """Record how long a bee spent in ``stage`` before transforming."""
        with self._lock:
            self.durations[stage].append(days)

    def record_death(self, stage: LifeStage) -> None:
        """Count a death in ``stage``."""
        with self._lock:
            self.deaths[stage] += 1

    def record_egg(self) -> None:
        """Count one egg laid."""
        with self._lock:
            self.eggs_laid += 1

    def record_emergence(self, mass: float) -> None:
        """Record the body mass of a newly emerged female."""
        with self._lock:
            self.female_masses.append(mass)

    def mean_duration(self, stage: LifeStage) -> float | None:
        """Return the mean recorded duration of ``stage``, or None."""
        with self._lock:
            values = self.durations.get(stage)
            if not values:
                return None
            return float(np.mean(values))

    def summary(self) -> dict[str, float | int | None]:
        """Return a flat dict suitable for logging."""
        result: dict[str, float | int | None] = {
            f"{stage.name.lower()}_days": self.mean_duration(stage) for stage in LifeStage
        }
        with self._lock:
            result["eggs_laid"] = self.eggs_laid
            result["females_emerged"] = len(self.female_masses)
            result["mean_female_mass"] = (
                float(np.mean(self.female_masses)) if self.female_masses else None
            )
            result["deaths"] = sum(self.deaths.values())
        return result

    def reset(self) -> None:
        """Clear all records for the next year."""
        with self._lock:
            self.durations.clear()
            self.deaths.clear()
            self.eggs_laid = 0
            self.female_masses.clear()
