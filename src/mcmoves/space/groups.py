"""Groups of particles and the change record of a trial move."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.random import Generator

    from mcmoves.typing import Vector


@dataclass
class Group:
    """
    Contiguous range of particle indices forming a molecule or an atomic pool.

    Attributes
    ----------
    start : int
        Index of the first particle.
    length : int
        Number of particles.
    name : str
        Name of the molecule type or pool.
    molecular : bool
        Whether the group is a rigid or flexible molecule (True) or a pool of free atoms (False).
    cm : Vector
        Mass center in the current configuration.
    cm_trial : Vector
        Mass center in the trial configuration.
    """

    start: int
    length: int
    name: str
    molecular: bool = True
    cm: Vector = field(default_factory=lambda: np.zeros(3))
    cm_trial: Vector = field(default_factory=lambda: np.zeros(3))

    @property
    def stop(self) -> int:
        return self.start + self.length

    @property
    def indices(self) -> np.ndarray:
        return np.arange(self.start, self.stop)

    def contains(self, index: int) -> bool:
        return self.start <= index < self.stop

    def empty(self) -> bool:
        return self.length == 0

    def random(self, rng: Generator) -> int:
        """Random particle index inside the group."""
        if self.empty():
            raise ValueError(f"Cannot draw a particle from empty group `{self.name}`.")

        return self.start + int(rng.integers(self.length))

    def accept(self) -> None:
        """Copy the trial mass center to the current one."""
        self.cm = self.cm_trial.copy()

    def undo(self) -> None:
        """Copy the current mass center to the trial one."""
        self.cm_trial = self.cm.copy()

    def __len__(self) -> int:
        return self.length

    def __iter__(self):
        return iter(range(self.start, self.stop))


@dataclass
class Change:
    """
    Record of what a trial move touched.

    Attributes
    ----------
    groups : dict[int, set[int]]
        Moved group index mapped to moved particle indices. An empty set means the whole group moved.
    geometry_change : bool
        Whether the cell changed.
    dV : float
        Volume change of the trial.
    """

    groups: dict[int, set[int]] = field(default_factory=dict)
    geometry_change: bool = False
    dV: float = 0.0

    def add(self, group_index: int, particle_index: int | None = None) -> None:
        """Mark a particle, or the whole group when `particle_index` is None, as moved."""
        moved = self.groups.setdefault(group_index, set())

        if particle_index is not None:
            moved.add(int(particle_index))

    def add_group(self, group_index: int) -> None:
        self.groups[group_index] = set()

    def clear(self) -> None:
        self.groups.clear()
        self.geometry_change = False
        self.dV = 0.0

    def empty(self) -> bool:
        return not self.groups and not self.geometry_change

    def __bool__(self) -> bool:
        return not self.empty()
