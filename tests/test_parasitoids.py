"""Tests for osmia.parasitoids -- density fields, mortality, dispersal."""

import numpy as np
import pytest

from osmia.bees.bee import Parasitoid
from osmia.parasitoids.dispersal import apply_mortality, disperse, update_field
from osmia.parasitoids.fields import PARASITOID_TYPES, ParasitoidField
from osmia.simulation.config import ParasitismConfig


@pytest.fixture
def small_field() -> ParasitoidField:
    """A 5 x 5 km field of 1 km cells, empty."""
    return ParasitoidField(width=5000.0, height=5000.0, cell_size=1000.0)


class TestParasitoidField:
    """Tests for field setup and density bookkeeping."""

    def test_one_layer_per_type(self, small_field: ParasitoidField) -> None:
        assert set(small_field.layers) == set(PARASITOID_TYPES)
        for layer in small_field.layers.values():
            assert layer.grid.shape == (5, 5)
            assert layer.grid.sum() == 0.0

    def test_partial_cells_round_up(self) -> None:
        pfield = ParasitoidField(width=2500.0, height=900.0, cell_size=1000.0)
        assert (pfield.rows, pfield.cols) == (1, 3)

    def test_from_config(self) -> None:
        cfg = ParasitismConfig(start_density=(2.0, 3.0), daily_mortality=(0.1, 0.2))
        pfield = ParasitoidField.from_config(3000.0, 3000.0, cfg)
        assert pfield.density(Parasitoid.BOMBYLIID, 100.0, 100.0) == 2.0
        assert pfield.density(Parasitoid.CLEPTOPARASITE, 2900.0, 2900.0) == 3.0
        assert pfield.layers[Parasitoid.CLEPTOPARASITE].mortality_rate == 0.2
        assert pfield.total(Parasitoid.BOMBYLIID) == pytest.approx(18.0)

    def test_add_and_read(self, small_field: ParasitoidField) -> None:
        small_field.add(Parasitoid.BOMBYLIID, 1500.0, 2500.0)
        small_field.add(Parasitoid.BOMBYLIID, 1999.0, 2001.0, amount=2.0)
        assert small_field.density(Parasitoid.BOMBYLIID, 1000.0, 2000.0) == 3.0
        assert small_field.density(Parasitoid.CLEPTOPARASITE, 1000.0, 2000.0) == 0.0

    def test_positions_off_the_field_are_clamped(self, small_field: ParasitoidField) -> None:
        small_field.add(Parasitoid.CLEPTOPARASITE, -10.0, 9999.0)
        assert small_field.layers[Parasitoid.CLEPTOPARASITE].grid[4, 0] == 1.0


class TestDynamics:
    """Tests for daily mortality and dispersal."""

    def test_mortality_fraction(self, small_field: ParasitoidField) -> None:
        layer = small_field.layers[Parasitoid.BOMBYLIID]
        layer.grid[:] = 10.0
        layer.mortality_rate = 0.1
        apply_mortality(layer)
        np.testing.assert_allclose(layer.grid, 9.0)

    def test_dispersal_conserves_total(self, small_field: ParasitoidField) -> None:
        layer = small_field.layers[Parasitoid.BOMBYLIID]
        layer.grid[0, 0] = 100.0
        layer.grid[2, 2] = 50.0
        layer.dispersal_rate = 0.4
        disperse(layer)
        assert layer.grid.sum() == pytest.approx(150.0)
        assert layer.grid.min() >= 0.0

    def test_dispersal_spreads_to_neighbours(self, small_field: ParasitoidField) -> None:
        layer = small_field.layers[Parasitoid.CLEPTOPARASITE]
        layer.grid[2, 2] = 80.0
        layer.dispersal_rate = 0.5
        disperse(layer)
        assert layer.grid[2, 2] == pytest.approx(40.0)
        for row, col in ((1, 1), (1, 2), (1, 3), (2, 1), (2, 3), (3, 1), (3, 2), (3, 3)):
            assert layer.grid[row, col] == pytest.approx(5.0)
        assert layer.grid[0, 0] == 0.0

    def test_zero_rate_is_a_no_op(self, small_field: ParasitoidField) -> None:
        layer = small_field.layers[Parasitoid.BOMBYLIID]
        layer.grid[1, 1] = 7.0
        layer.dispersal_rate = 0.0
        disperse(layer)
        assert layer.grid[1, 1] == 7.0

    def test_update_field(self) -> None:
        cfg = ParasitismConfig(start_density=(10.0, 10.0), daily_mortality=(0.5, 0.0))
        pfield = ParasitoidField.from_config(3000.0, 3000.0, cfg)
        update_field(pfield)
        assert pfield.total(Parasitoid.BOMBYLIID) == pytest.approx(45.0)
        assert pfield.total(Parasitoid.CLEPTOPARASITE) == pytest.approx(90.0)
