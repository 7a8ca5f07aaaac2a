from __future__ import annotations

import numpy as np
import pytest
from numpy.random import PCG64
from numpy.random import Generator as RNG
from numpy.testing import assert_allclose
from tests.conftest import zero_pair

from mcmoves.energy import PairHamiltonian
from mcmoves.moves import AtomicTranslation, PolarizeMove
from mcmoves.space import Space, Species


@pytest.fixture(name="polar_space")
def polar_space_fixture() -> Space:
    """Two polarizable particles and one plain particle in a periodic cube of 20 Å."""
    space = Space(
        np.eye(3) * 20.0,
        species=[Species("P", dp=1.0, polarizability=0.5), Species("X", dp=1.0)],
    )
    space.add_group(
        "pool", ["P", "P", "X"], [[5.0, 5.0, 5.0], [10.0, 10.0, 10.0], [15.0, 15.0, 15.0]], molecular=False
    )

    return space


def coupled_field(config, index):
    """A uniform field plus a fraction of the dipoles of the other particles."""
    dipoles = config.arrays["dipoles"]
    others = np.delete(dipoles, index, axis=0).sum(axis=0)

    return np.array([0.0, 0.0, 2.0]) + 0.2 * others


def test_polarize_move(polar_space):
    """Test the `PolarizeMove` class."""
    hamiltonian = PairHamiltonian(polar_space, zero_pair, field=coupled_field)
    inner = AtomicTranslation(polar_space, hamiltonian, rng=RNG(PCG64(19)), group="pool")
    move = PolarizeMove(inner, threshold=1e-10)

    assert move.title == "Polarizable Single Particle Translation"
    assert_allclose(move.polarizable(), [0, 1])

    move.move(5)

    # Self-consistent solution of mu = 0.5 * (2 + 0.2 * mu).
    dipole = 1.0 / 0.9

    assert move.acceptance == 1.0
    assert move.iterations > 0
    assert_allclose(polar_space.atoms.arrays["dipoles"][:2, 2], dipole)
    assert_allclose(polar_space.atoms.arrays["dipoles"][:2, :2], 0.0)
    assert_allclose(polar_space.atoms.arrays["dipoles"][2], 0.0)
    assert_allclose(polar_space.trial.arrays["dipoles"], polar_space.atoms.arrays["dipoles"])
    assert polar_space.check() == []

    data = move.to_dict()

    assert data["name"] == "PolarizeMove"
    assert data["kwargs"]["threshold"] == 1e-10
    assert data["kwargs"]["max_iterations"] == 40
    assert data["kwargs"]["move"]["name"] == "AtomicTranslation"


def test_polarize_move_divergence(polar_space):
    """Test that diverging dipoles raise a `RuntimeError`."""

    def runaway(config, index):
        return 10.0 * config.arrays["dipoles"][index] + np.array([1.0, 0.0, 0.0])

    hamiltonian = PairHamiltonian(polar_space, zero_pair, field=runaway)
    move = PolarizeMove(
        AtomicTranslation(polar_space, hamiltonian, rng=RNG(PCG64(19)), group="pool"),
        max_iterations=10,
    )

    with pytest.raises(RuntimeError, match="did not converge"):
        move.move()


def test_polarize_move_without_field(polar_space):
    """Test that a hamiltonian without electric field cannot polarize."""
    hamiltonian = PairHamiltonian(polar_space, zero_pair)
    move = PolarizeMove(AtomicTranslation(polar_space, hamiltonian, rng=RNG(PCG64(19)), group="pool"))

    with pytest.raises(NotImplementedError, match="electric fields"):
        move.move()
