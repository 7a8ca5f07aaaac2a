"""Internal moves of linear polymers: crankshaft, pivot and reptation."""

from __future__ import annotations

from typing import Any

import numpy as np

from mcmoves.moves.core import BaseMove
from mcmoves.operations import Sphere
from mcmoves.space import geometry


class PolymerMove(BaseMove):
    """
    Base class of the moves acting on a random molecule of the drawn target.

    Parameters
    ----------
    *args
        Positional arguments of [`BaseMove`][mcmoves.moves.core.BaseMove].
    **kwargs
        Keyword arguments of [`BaseMove`][mcmoves.moves.core.BaseMove], `targets` being required.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)

        if not self.targets:
            raise ValueError(f"{self.title}: at least one molecule target is required.")

        for name in self.targets:
            if not self.space.find_molecules(name):
                raise ValueError(f"{self.title}: `{name}` is not a molecular group.")

        self.moved_group: int | None = None
        self.moved_indices: list[int] = []

    def select_group(self) -> int:
        groups = self.space.find_molecules(self.current_molecule)  # type: ignore[arg-type]
        return groups[int(self.rng.integers(len(groups)))]

    def energy_change(self) -> float:
        if self.moved_group is None:
            return 0.0

        if geometry.collision(self.space.trial.positions[self.moved_indices], self.space.trial):
            return np.inf

        return self.hamiltonian.energy_change(self.space)

    def accept(self) -> None:
        space = self.space
        group = space.groups[self.moved_group]  # type: ignore[index]

        msd = float(
            np.sum(
                geometry.sqdist(
                    space.atoms.positions[self.moved_indices],
                    space.trial.positions[self.moved_indices],
                    space.atoms,
                )
            )
        )

        self.statistics.accept(group.name, True, msd)
        space.accept_particles(self.moved_indices)
        group.accept()

    def reject(self) -> None:
        if self.moved_group is None:
            return

        group = self.space.groups[self.moved_group]

        self.statistics.accept(group.name, False)
        self.space.undo_particles(self.moved_indices)
        group.undo()


class CrankShaft(PolymerMove):
    """
    Rotate the monomers between two random end points about the axis joining them.

    End points are redrawn until the number of monomers strictly between them lies in
    ``[minlen, maxlen]``. The angle is ``dp1 * (r - 0.5)`` with `dp1` from the target.
    Chains shorter than three monomers, or too short for `minlen`, give a no-op trial.

    Parameters
    ----------
    *args
        Positional arguments of [`BaseMove`][mcmoves.moves.core.BaseMove].
    minlen : int, optional
        Minimum number of monomers to rotate, by default 1.
    maxlen : int, optional
        Maximum number of monomers to rotate, by default 4.
    **kwargs
        Keyword arguments of [`BaseMove`][mcmoves.moves.core.BaseMove].
    """

    title = "CrankShaft"

    def __init__(self, *args, minlen: int = 1, maxlen: int = 4, **kwargs) -> None:
        super().__init__(*args, **kwargs)

        if minlen > maxlen:
            raise ValueError(f"{self.title}: `minlen` ({minlen}) exceeds `maxlen` ({maxlen}).")

        self.minlen = minlen
        self.maxlen = maxlen
        self.angle = 0.0

    def segment_length(self, begin: int, end: int) -> int:
        return abs(begin - end) - 1

    def shortest(self) -> int:
        """Smallest chain length for which an axis can be found."""
        return max(3, self.minlen + 2)

    def find_particles(self, group_index: int) -> tuple[int, int, list[int]]:
        """Draw the axis end points and return them with the monomers to rotate."""
        group = self.space.groups[group_index]

        while True:
            begin = group.random(self.rng)
            end = group.random(self.rng)

            if self.minlen <= self.segment_length(begin, end) <= self.maxlen:
                break

        low, high = sorted((begin, end))

        return begin, end, list(range(low + 1, high))

    def propose_trial(self) -> bool:
        self.moved_group = None
        self.moved_indices = []

        group_index = self.select_group()
        group = self.space.groups[group_index]

        if len(group) < self.shortest():
            return False

        space = self.space
        dp = self.target.dp1  # type: ignore[union-attr]

        begin, end, indices = self.find_particles(group_index)

        self.angle = dp * (self.rng.random() - 0.5)

        origin = space.atoms.positions[begin]
        axis = geometry.minimum_image(space.atoms.positions[end] - origin, space.atoms)
        matrix = geometry.rotation_matrix(axis, self.angle)

        space.trial.positions[indices] = geometry.rotate(
            space.atoms.positions[indices], matrix, origin, space.atoms
        )
        space.update_mass_center(group_index)

        for index in indices:
            space.change.add(group_index, index)

        self.moved_group = group_index
        self.moved_indices = indices

        return True

    def describe(self) -> str:
        return f"  {'Min/max length to move':<28s}{self.minlen} {self.maxlen}"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"].update({"minlen": self.minlen, "maxlen": self.maxlen})
        return data


class Pivot(CrankShaft):
    """
    Rotate one end of a chain about the axis joining two random monomers.

    The axis spans between `minlen` (1) and `maxlen` bonds. With probability one half the
    monomers after the second end point are rotated, otherwise those before it.
    """

    title = "Polymer Pivot Move"

    def __init__(self, *args, **kwargs) -> None:
        kwargs["minlen"] = 1
        super().__init__(*args, **kwargs)

    def segment_length(self, begin: int, end: int) -> int:
        return abs(begin - end)

    def find_particles(self, group_index: int) -> tuple[int, int, list[int]]:
        group = self.space.groups[group_index]
        indices: list[int] = []

        while not indices:
            while True:
                begin = group.random(self.rng)
                end = group.random(self.rng)

                if self.minlen <= self.segment_length(begin, end) <= self.maxlen:
                    break

            if self.rng.random() > 0.5:
                indices = list(range(end + 1, group.stop))
            else:
                indices = list(range(group.start, end))

        return begin, end, indices


class Reptation(PolymerMove):
    """
    Slither a linear chain one bond towards its head or its tail.

    Every monomer takes the position of its neighbor and the chosen end is regrown at the
    old end position plus a random unit vector times the bond length. The bond length is
    `bondlength` when positive, otherwise the current length of the end bond.

    Parameters
    ----------
    *args
        Positional arguments of [`BaseMove`][mcmoves.moves.core.BaseMove].
    bondlength : float, optional
        Bond length of the regrown end in Å, by default -1 (measured).
    **kwargs
        Keyword arguments of [`BaseMove`][mcmoves.moves.core.BaseMove].
    """

    title = "Linear Polymer Reptation"

    def __init__(self, *args, bondlength: float = -1.0, **kwargs) -> None:
        super().__init__(*args, **kwargs)

        self.bondlength = bondlength
        self.regrowth = Sphere()

    def propose_trial(self) -> bool:
        self.moved_group = None
        self.moved_indices = []

        space = self.space
        group_index = self.select_group()
        group = space.groups[group_index]

        if len(group) < 2:
            return False

        current = space.atoms.positions
        trial = space.trial.positions

        if self.rng.random() > 0.5:
            first, second = group.start, group.start + 1
            trial[group.start + 1 : group.stop] = current[group.start : group.stop - 1]
        else:
            first, second = group.stop - 1, group.stop - 2
            trial[group.start : group.stop - 1] = current[group.start + 1 : group.stop]

        if self.bondlength > 0:
            bond = self.bondlength
        else:
            bond = float(np.sqrt(geometry.sqdist(current[first], current[second], space.atoms)))

        trial[first] = current[first] + self.regrowth.calculate(self.rng, bond)
        trial[group.indices] = geometry.boundary(trial[group.indices], space.trial)

        space.update_mass_center(group_index)
        space.change.add_group(group_index)

        self.moved_group = group_index
        self.moved_indices = group.indices.tolist()

        return True

    def accept(self) -> None:
        group = self.space.groups[self.moved_group]  # type: ignore[index]

        msd = float(geometry.sqdist(group.cm, group.cm_trial, self.space.atoms))

        self.statistics.accept(group.name, True, msd)
        self.space.accept_particles(self.moved_indices)
        group.accept()

    def describe(self) -> str:
        return f"  {'Bond length [Å]':<28s}{self.bondlength} (-1 = automatic)"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"]["bondlength"] = self.bondlength
        return data
