"""Nest -- an ordered sequence of brood cells shared by many agents.

Cells hold population handles, oldest first.  A nest is built by one
female and is open while she provisions it; once sealed it never takes
another cell.  Cells are never removed: when an occupant dies or leaves,
its handle stays behind as an inert entry.

Every mutation goes through a per-nest re-entrant lock so that bees in
the same nest can be stepped on different threads.  ``append_cell``
takes the lock itself; ``replace_occupant`` must be called inside
``with nest.locked():`` so that a caller can combine it with other
reads atomically.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class NestSealedError(RuntimeError):
    """Raised when a female tries to lay into a nest that is no longer open."""


class NestLockError(RuntimeError):
    """Raised when the nest lock protocol is violated."""


@dataclass(eq=False)
class Nest:
    """A cavity nest at a fixed location.

    Attributes:
        x: Position east (m).
        y: Position north (m).
        polygon: Landscape polygon the nest belongs to.
        microsite_delay: Extra emergence delay (days) from the nest aspect.
        provisioner: Handle of the female building the nest, if any.
    """

    x: float
    y: float
    polygon: int
    microsite_delay: int = 0
    provisioner: int | None = None
    _cells: list[int] = field(default_factory=list, init=False, repr=False)
    _open: bool = field(default=True, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)
    _holder: int | None = field(default=None, init=False, repr=False)
    _depth: int = field(default=0, init=False, repr=False)

    @contextmanager
    def locked(self) -> Iterator[Nest]:
        """Hold the nest lock for the duration of a ``with`` block.

        Re-entrant for the same thread; released on every exit path.
        """
        with self._lock:
            self._holder = threading.get_ident()
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
                if self._depth == 0:
                    self._holder = None

    def holds_lock(self) -> bool:
        """Return True if the calling thread holds the nest lock."""
        return self._holder == threading.get_ident()

    def append_cell(self, handle: int) -> bool:
        """Add a new cell holding ``handle`` at the end of the nest.

        Args:
            handle: Population handle of the egg.

        Returns:
            True if the cell was added; False if the nest is sealed.
        """
        with self.locked():
            if not self._open:
                return False
            self._cells.append(handle)
            return True

    def replace_occupant(self, old: int, new: int) -> None:
        """Swap the occupant of one cell, keeping the cell order.

        The caller must hold the lock.

        Args:
            old: Handle currently stored in the cell.
            new: Handle to store instead.

        Raises:
            NestLockError: If the lock is not held or ``old`` is absent.
        """
        if not self.holds_lock():
            msg = f"replace_occupant({old}, {new}) called without the nest lock"
            logger.error(msg)
            raise NestLockError(msg)
        try:
            index = self._cells.index(old)
        except ValueError:
            msg = f"handle {old} is not in the nest at ({self.x}, {self.y})"
            logger.error(msg)
            raise NestLockError(msg) from None
        self._cells[index] = new

    def cell_count(self) -> int:
        """Return the number of cells ever created in this nest."""
        with self.locked():
            return len(self._cells)

    def occupants(self) -> list[int]:
        """Return a snapshot of the cell handles, oldest first."""
        with self.locked():
            return list(self._cells)

    def is_open(self) -> bool:
        """Return True while the nest still accepts cells."""
        return self._open

    def set_open(self, flag: bool) -> None:
        """Set the open flag.

        Reopening a sealed nest is not part of the life cycle and nothing
        in the model does it.
        """
        with self.locked():
            self._open = flag

    def seal(self) -> None:
        """Close the nest for good and release its provisioner."""
        with self.locked():
            if self._open:
                logger.debug(
                    "Sealed nest at (%.0f, %.0f) with %d cells",
                    self.x,
                    self.y,
                    len(self._cells),
                )
            self._open = False
            self.provisioner = None
