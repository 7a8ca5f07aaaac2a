"""Acid/base equilibria of titratable sites."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

if TYPE_CHECKING:
    from mcmoves.space import Space


@dataclass
class TitrationProcess:
    """
    Protonation equilibrium between a bound (protonated) and a free species, ``bound ⇌ free + H⁺``.

    Attributes
    ----------
    bound : str
        Name of the protonated species.
    free : str
        Name of the deprotonated species.
    pKa : float
        Acid dissociation constant.
    pH : float
        Solution pH.
    """

    bound: str
    free: str
    pKa: float
    pH: float = 7.0

    def one_of_us(self, name: str) -> bool:
        """Whether `name` takes part in the process."""
        return name in (self.bound, self.free)

    def is_bound(self, name: str) -> bool:
        return name == self.bound

    def swap(self, name: str) -> str:
        """Species on the other side of the equilibrium."""
        if not self.one_of_us(name):
            raise ValueError(f"Species `{name}` does not take part in {self}.")

        return self.free if name == self.bound else self.bound

    @property
    def free_energy(self) -> float:
        """Intrinsic free energy of the free state relative to the bound state, in kT."""
        return math.log(10.0) * (self.pKa - self.pH)

    def energy(self, name: str) -> float:
        """Intrinsic energy of species `name` in this process."""
        return self.free_energy if name == self.free else 0.0


class Equilibrium:
    """
    Collection of titration processes providing intrinsic site energies.

    Parameters
    ----------
    processes : list[TitrationProcess]
        The processes, a species may appear in several of them.
    """

    def __init__(self, processes: list[TitrationProcess]) -> None:
        self.processes = processes

    def energy(self, name: str) -> float:
        """Sum of the intrinsic energies of `name` over the processes it takes part in."""
        return sum(
            process.energy(name)
            for process in self.processes
            if process.one_of_us(name)
        )

    def matching(self, name: str) -> list[TitrationProcess]:
        return [process for process in self.processes if process.one_of_us(name)]

    def find_sites(self, space: Space) -> np.ndarray:
        """Indices of the particles whose species takes part in any process."""
        names = {
            name for process in self.processes for name in (process.bound, process.free)
        }
        identifiers = [space.species_id(name) for name in names if name in space.species]

        return np.flatnonzero(np.isin(space.atoms.arrays["species"], identifiers))

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.__class__.__name__,
            "kwargs": {"processes": [asdict(process) for process in self.processes]},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Equilibrium:
        return cls(
            [TitrationProcess(**process) for process in data["kwargs"]["processes"]]
        )
