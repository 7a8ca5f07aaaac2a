"""Particle species and live-index trackers."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from ase.units import _Nav

if TYPE_CHECKING:
    from collections.abc import Iterator

    from numpy.random import Generator


@dataclass
class Species:
    """
    Read-only properties of a particle type.

    Attributes
    ----------
    name : str
        Unique name of the species.
    charge : float
        Valency in units of the elementary charge.
    radius : float
        Radius in Å, used by collision and cluster criteria.
    mass : float
        Weight used for mass centers.
    activity : float
        Activity in mol/L; species with a non-zero activity are grand canonical candidates.
    dp : float
        Translational displacement parameter in Å.
    dprot : float
        Rotational displacement parameter in radians.
    polarizability : float
        Isotropic polarizability used for induced dipoles.
    symbol : str
        Chemical symbol written into the `Atoms` object, ``"X"`` for coarse-grained beads.
    """

    name: str
    charge: float = 0.0
    radius: float = 0.0
    mass: float = 1.0
    activity: float = 0.0
    dp: float = 0.0
    dprot: float = 0.0
    polarizability: float = 0.0
    symbol: str = "X"

    @property
    def chemical_potential(self) -> float:
        """Chemical potential βμ = ln(activity · N_A · 1e-27), in kT for activities in mol/L."""
        if self.activity <= 0.0:
            raise ValueError(
                f"Species `{self.name}` has no activity, chemical potential undefined."
            )

        return math.log(self.activity * _Nav * 1e-27)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.__class__.__name__, "kwargs": asdict(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Species:
        return cls(**data["kwargs"])


class SpeciesTracker:
    """
    Set of particle indices supporting O(1) insert, erase, membership and uniform sampling.

    The indices are stored in a list, and a dictionary maps each index to its position in
    the list. Erasing swaps the last element into the freed slot.

    Parameters
    ----------
    indices : Iterable[int], optional
        Initial indices.
    """

    __slots__ = ("_indices", "_positions")

    def __init__(self, indices=()) -> None:
        self._indices: list[int] = []
        self._positions: dict[int, int] = {}

        for index in indices:
            self.insert(index)

    def insert(self, index: int) -> None:
        """Add `index` to the tracker, ignoring duplicates."""
        index = int(index)

        if index in self._positions:
            return

        self._positions[index] = len(self._indices)
        self._indices.append(index)

    def erase(self, index: int) -> None:
        """
        Remove `index` from the tracker.

        Raises
        ------
        KeyError
            If `index` is not tracked.
        """
        position = self._positions.pop(int(index))
        last = self._indices.pop()

        if position < len(self._indices):
            self._indices[position] = last
            self._positions[last] = position

    def sample(self, rng: Generator, size: int = 1) -> list[int]:
        """
        Draw `size` distinct indices uniformly at random.

        Each index is drawn with one `rng.integers` call and redrawn when already chosen, so
        the cost depends on `size` only.
        """
        population = len(self._indices)

        if size > population:
            raise ValueError(f"Cannot sample {size} indices from a tracker holding {population}.")

        chosen: list[int] = []

        while len(chosen) < size:
            index = self._indices[int(rng.integers(population))]

            if index not in chosen:
                chosen.append(index)

        return chosen

    def shift(self, start: int, offset: int) -> None:
        """Add `offset` to every tracked index greater than or equal to `start`."""
        self._indices = [i + offset if i >= start else i for i in self._indices]
        self._positions = {index: n for n, index in enumerate(self._indices)}

    def __contains__(self, index: object) -> bool:
        return index in self._positions

    def __len__(self) -> int:
        return len(self._indices)

    def __iter__(self) -> Iterator[int]:
        return iter(self._indices)

    def __repr__(self) -> str:
        return f"SpeciesTracker({sorted(self._indices)})"
