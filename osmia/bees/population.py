"""BeePopulation -- handle-based store of every bee record.

Nests refer to their occupants by integer handle, never by object, so a
stage transition or a death cannot leave a nest pointing at freed state.
Records added during a day (new eggs, successor stages) are pending
until ``commit`` runs between days; records retired or dead during a day
disappear at the same point.
"""

from __future__ import annotations

import itertools
import threading
from collections import Counter
from dataclasses import dataclass, field

from osmia.bees.bee import Bee, LifeStage


@dataclass
class BeePopulation:
    """All bees of a run, keyed by handle."""

    _live: dict[int, Bee] = field(default_factory=dict, init=False, repr=False)
    _pending: dict[int, Bee] = field(default_factory=dict, init=False, repr=False)
    _retired: set[int] = field(default_factory=set, init=False, repr=False)
    _handles: itertools.count = field(default_factory=itertools.count, init=False, repr=False)
    _uids: itertools.count = field(default_factory=itertools.count, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def new_uid(self) -> int:
        """Allocate the identity of a new individual."""
        with self._lock:
            return next(self._uids)

    def add(self, bee: Bee) -> int:
        """Register a new record and return its handle.

        The record becomes visible to ``live()`` after the next commit.
        """
        with self._lock:
            handle = next(self._handles)
            bee.handle = handle
            self._pending[handle] = bee
        return handle

    def retire(self, handle: int) -> None:
        """Drop a record superseded by its successor stage at the next commit."""
        with self._lock:
            self._retired.add(handle)

    def get(self, handle: int) -> Bee:
        """Return the record behind ``handle``.

        Raises:
            KeyError: If the handle is unknown or already removed.
        """
        with self._lock:
            if handle in self._live:
                return self._live[handle]
            return self._pending[handle]

    def is_alive(self, handle: int) -> bool:
        """Return True if ``handle`` refers to a live, current record."""
        with self._lock:
            bee = self._live.get(handle) or self._pending.get(handle)
            return bee is not None and bee.alive and handle not in self._retired

    def live(self) -> list[Bee]:
        """Return a snapshot of the committed records."""
        with self._lock:
            return list(self._live.values())

    def commit(self) -> list[Bee]:
        """Remove dead and retired records and activate pending ones.

        Returns:
            The dead records that were removed.
        """
        with self._lock:
            dead = [b for b in self._live.values() if not b.alive]
            for bee in dead:
                del self._live[bee.handle]
            for handle in self._retired:
                self._live.pop(handle, None)
                self._pending.pop(handle, None)
            self._retired.clear()
            for handle, bee in self._pending.items():
                if bee.alive:
                    self._live[handle] = bee
            self._pending.clear()
        return dead

    def by_stage(self) -> dict[LifeStage, int]:
        """Count committed live records per life stage."""
        counts: Counter[LifeStage] = Counter(b.stage for b in self.live() if b.alive)
        return {stage: counts.get(stage, 0) for stage in LifeStage}

    def __len__(self) -> int:
        with self._lock:
            return len(self._live)
