"""Daily mortality and dispersal of parasitoid populations.

Operates on the raw NumPy arrays inside ``ParasitoidLayer`` objects.
Separated from ``fields.py`` so that the population dynamics can be
changed independently of the density bookkeeping.
"""

from __future__ import annotations

from osmia.parasitoids.fields import ParasitoidField, ParasitoidLayer


def apply_mortality(layer: ParasitoidLayer) -> None:
    """Remove the layer's daily mortality fraction in place."""
    layer.grid *= 1.0 - layer.mortality_rate


def disperse(layer: ParasitoidLayer) -> None:
    """Move a fraction of each cell's population to its neighbours.

    Each cell gives ``dispersal_rate`` of its population equally to its
    eight neighbours.  Individuals that would leave the map stay put, so
    the total is conserved.

    Args:
        layer: The parasitoid layer to disperse.
    """
    rate = layer.dispersal_rate
    if rate <= 0:
        return

    grid = layer.grid
    rows, cols = grid.shape
    share = grid * rate / 8.0
    moved = grid.copy()
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            if dx == 0 and dy == 0:
                continue
            src_rows = slice(max(0, -dy), rows - max(0, dy))
            src_cols = slice(max(0, -dx), cols - max(0, dx))
            dst_rows = slice(max(0, dy), rows - max(0, -dy))
            dst_cols = slice(max(0, dx), cols - max(0, -dx))
            moved[src_rows, src_cols] -= share[src_rows, src_cols]
            moved[dst_rows, dst_cols] += share[src_rows, src_cols]
    grid[:] = moved


def update_field(field: ParasitoidField) -> None:
    """Run one day of mortality and dispersal on every layer."""
    for layer in field.layers.values():
        apply_mortality(layer)
        disperse(layer)
