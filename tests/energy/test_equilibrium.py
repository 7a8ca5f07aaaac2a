from __future__ import annotations

import math

import pytest
from numpy.testing import assert_array_equal

from mcmoves.energy import Equilibrium, TitrationProcess


def test_titration_process():
    """Test the `TitrationProcess` class."""
    process = TitrationProcess("HA", "A", pKa=4.5, pH=7.0)

    assert process.one_of_us("HA")
    assert process.one_of_us("A")
    assert not process.one_of_us("Na")

    assert process.is_bound("HA")
    assert not process.is_bound("A")

    assert process.swap("HA") == "A"
    assert process.swap("A") == "HA"

    with pytest.raises(ValueError, match="does not take part"):
        process.swap("Na")

    assert process.free_energy == pytest.approx(-2.5 * math.log(10.0))
    assert process.energy("A") == pytest.approx(process.free_energy)
    assert process.energy("HA") == 0.0


def test_equilibrium(titration_space):
    """Test the `Equilibrium` class."""
    first = TitrationProcess("HA", "A", pKa=4.0, pH=7.0)
    second = TitrationProcess("A", "A2", pKa=10.0, pH=7.0)
    equilibrium = Equilibrium([first, second])

    assert equilibrium.matching("A") == [first, second]
    assert equilibrium.matching("HA") == [first]
    assert equilibrium.matching("M") == []

    assert equilibrium.energy("HA") == 0.0
    assert equilibrium.energy("A") == pytest.approx(-3.0 * math.log(10.0))
    assert equilibrium.energy("A2") == pytest.approx(3.0 * math.log(10.0))

    assert_array_equal(equilibrium.find_sites(titration_space), [1, 2, 3, 4])

    data = equilibrium.to_dict()

    assert data["name"] == "Equilibrium"

    restored = Equilibrium.from_dict(data)

    assert restored.processes == [first, second]
