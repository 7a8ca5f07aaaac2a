from __future__ import annotations

import numpy as np
import pytest
from numpy.random import PCG64
from numpy.random import Generator as RNG

from mcmoves.energy import Equilibrium, PairHamiltonian, TitrationProcess
from mcmoves.mc.criteria import Criteria
from mcmoves.moves.core import BaseMove
from mcmoves.space import Space, Species


def zero_pair(r2, first, second):
    """Ideal system, every pair energy vanishes."""
    return np.zeros_like(r2)


def hard_spheres(r2, first, second):
    """Infinite energy on overlap of the particle radii."""
    contact = (first["radii"] + second["radii"]) ** 2
    return np.where(r2 < contact, np.inf, 0.0)


def soft_repulsion(r2, first, second):
    """Smooth, bounded repulsion between charged and neutral particles."""
    return 2.0 * np.exp(-r2 / 4.0) + 0.1 * first["initial_charges"] * second[
        "initial_charges"
    ] * np.exp(-r2 / 25.0)


@pytest.fixture(name="rng")
def rng_fixture() -> RNG:
    return RNG(PCG64(42))


@pytest.fixture(name="species")
def species_fixture() -> list[Species]:
    return [
        Species("Na", charge=1.0, radius=1.0, mass=23.0, activity=0.05, dp=2.0),
        Species("Cl", charge=-1.0, radius=1.0, mass=35.5, activity=0.05, dp=2.0),
        Species("M", radius=0.5, mass=10.0, dp=1.0, dprot=1.0),
        Species("HA", radius=0.5, mass=1.0),
        Species("A", charge=-1.0, radius=0.5, mass=1.0),
    ]


@pytest.fixture(name="salt_space")
def salt_space_fixture(species, rng) -> Space:
    """Periodic cube of 40 Å with a salt pool of 4 Na and 4 Cl and two dimers."""
    space = Space(np.eye(3) * 40.0, pbc=True, species=species)

    space.add_group("dimer", ["M", "M"], [[10.0, 10.0, 10.0], [11.0, 10.0, 10.0]])
    space.add_group("dimer", ["M", "M"], [[25.0, 25.0, 25.0], [25.0, 26.0, 25.0]])
    space.add_group(
        "salt",
        ["Na"] * 4 + ["Cl"] * 4,
        rng.random((8, 3)) * 40.0,
        molecular=False,
    )

    return space


@pytest.fixture(name="ideal")
def ideal_fixture(salt_space) -> PairHamiltonian:
    return PairHamiltonian(salt_space, zero_pair)


@pytest.fixture(name="soft")
def soft_fixture(salt_space) -> PairHamiltonian:
    return PairHamiltonian(salt_space, soft_repulsion)


@pytest.fixture(name="chain_space")
def chain_space_fixture(species) -> Space:
    """Periodic cube of 50 Å holding one linear chain of 8 monomers along x."""
    space = Space(np.eye(3) * 50.0, pbc=True, species=species)

    positions = [[20.0 + i, 25.0, 25.0] for i in range(8)]
    space.add_group("chain", ["M"] * 8, positions)

    return space


@pytest.fixture(name="titration_space")
def titration_space_fixture(species) -> Space:
    """A molecule with four titratable sites, initially deprotonated, and an empty salt pool."""
    space = Space(np.eye(3) * 60.0, pbc=True, species=species)

    space.add_group(
        "protein",
        ["M", "A", "A", "A", "A"],
        [[30.0, 30.0, 30.0], [31.0, 30.0, 30.0], [29.0, 30.0, 30.0], [30.0, 31.0, 30.0], [30.0, 29.0, 30.0]],
    )
    space.add_group("salt", [], [], molecular=False)

    return space


@pytest.fixture(name="equilibrium")
def equilibrium_fixture() -> Equilibrium:
    return Equilibrium([TitrationProcess("HA", "A", pKa=4.0, pH=4.0)])


class DummyMove(BaseMove):
    """A move whose proposal outcome and energy change are fixed by the test."""

    title = "Dummy"

    def __init__(
        self,
        *args,
        proposal: bool | None = True,
        energy: float = 0.0,
        alternate: float | None = None,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)

        self.proposal = proposal
        self.energy = energy
        self.alternate = alternate
        self.calls: list[str] = []

    def propose_trial(self) -> bool | None:
        self.calls.append("propose")
        return self.proposal

    def energy_change(self) -> float:
        self.calls.append("energy")
        self.alternate_return_energy = self.alternate
        return self.energy

    def accept(self) -> None:
        self.calls.append("accept")

    def reject(self) -> None:
        self.calls.append("reject")


class DummyCriteria(Criteria):
    """A criteria that always accepts, without drawing random numbers."""

    def evaluate(self, energy_change, rng) -> bool:
        return True
