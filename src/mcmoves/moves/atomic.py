"""Single particle translation and rotation moves."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np

from mcmoves.moves.core import BaseMove
from mcmoves.operations import Box, Rotation
from mcmoves.space import geometry

if TYPE_CHECKING:
    from mcmoves.typing import Direction


class AtomicMove(BaseMove):
    """
    Base class for moves acting on one particle at a time.

    The particle is either given explicitly with `index`, or drawn at random from a group
    named after the current target key (or `group` when no targets are configured). An
    empty group makes the trial a no-op.

    Parameters
    ----------
    *args
        Positional arguments of [`BaseMove`][mcmoves.moves.core.BaseMove].
    group : str, optional
        Name of the group to draw particles from when no targets are configured.
    index : int, optional
        Explicit particle to move on every trial.
    **kwargs
        Keyword arguments of [`BaseMove`][mcmoves.moves.core.BaseMove].

    Attributes
    ----------
    moved_index : int | None
        Particle moved by the running trial.
    moved_group : int | None
        Group holding the moved particle.
    """

    def __init__(
        self, *args, group: str | None = None, index: int | None = None, **kwargs
    ) -> None:
        super().__init__(*args, **kwargs)

        if group is not None and not self.space.find_groups(group):
            raise ValueError(f"{self.title}: no group named `{group}` in the space.")

        if group is None and index is None and not self.targets:
            raise ValueError(
                f"{self.title}: a target, a group or a particle index is required."
            )

        self.group = group
        self.index = index

        self.moved_index: int | None = None
        self.moved_group: int | None = None

    def select_particle(self) -> bool:
        """Pick the particle of the running trial, False if none is available."""
        self.moved_index = None
        self.moved_group = None

        if self.index is not None:
            self.moved_index = self.index
            self.moved_group = self.space.find_group(self.index)
            return True

        name = self.current_molecule or self.group
        groups = self.space.find_groups(name)  # type: ignore[arg-type]
        group_index = groups[int(self.rng.integers(len(groups)))]

        if self.space.groups[group_index].empty():
            return False

        self.moved_group = group_index
        self.moved_index = self.space.groups[group_index].random(self.rng)

        return True

    @property
    def direction(self) -> Direction:
        target = self.target
        return target.direction if target is not None else np.ones(3)

    def commit(self, accepted: bool, msd: float = 0.0) -> None:
        if self.moved_index is None or self.moved_group is None:
            return

        space = self.space
        group = space.groups[self.moved_group]

        self.statistics.accept(space.species_of(self.moved_index).name, accepted, msd)

        if accepted:
            space.accept_particles([self.moved_index])
            if group.molecular:
                group.accept()
        else:
            space.undo_particles([self.moved_index])
            if group.molecular:
                group.undo()

    def reject(self) -> None:
        self.commit(False)

    def energy_change(self) -> float:
        if self.moved_index is None:
            return 0.0

        if geometry.collision(self.space.trial.positions[self.moved_index], self.space.trial):
            return np.inf

        return self.hamiltonian.energy_change(self.space)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"].update({"group": self.group, "index": self.index})
        return data


class AtomicTranslation(AtomicMove):
    """
    Translate a single particle by ``direction * dp * (r - 0.5)`` along each axis.

    The step `dp` is the `dp` of the particle species, or `genericdp` when the species
    value is below 1e-6. Statistics are keyed by species name and record the squared
    displacement.

    Parameters
    ----------
    *args
        Positional arguments of [`AtomicMove`][mcmoves.moves.atomic.AtomicMove].
    genericdp : float, optional
        Fallback displacement parameter in Å, by default 0.0.
    **kwargs
        Keyword arguments of [`AtomicMove`][mcmoves.moves.atomic.AtomicMove].
    """

    title = "Single Particle Translation"

    def __init__(self, *args, genericdp: float = 0.0, **kwargs) -> None:
        super().__init__(*args, **kwargs)

        self.genericdp = genericdp
        self.operation = Box()

    def step_size(self, index: int) -> float:
        dp = self.space.species_of(index).dp
        return dp if dp >= 1e-6 else self.genericdp

    def propose_trial(self) -> bool:
        if not self.select_particle():
            return False

        space = self.space
        i = self.moved_index
        group = space.groups[self.moved_group]  # type: ignore[index]

        self.operation.direction = self.direction
        displacement = self.operation.calculate(self.rng, self.step_size(i))  # type: ignore[arg-type]

        space.trial.positions[i] = geometry.boundary(
            space.atoms.positions[i] + displacement, space.trial
        )

        if group.molecular:
            space.update_mass_center(self.moved_group)  # type: ignore[arg-type]

        space.change.add(self.moved_group, i)  # type: ignore[arg-type]

        return True

    def accept(self) -> None:
        i = self.moved_index
        msd = float(
            geometry.sqdist(
                self.space.atoms.positions[i], self.space.trial.positions[i], self.space.atoms
            )
        )
        self.commit(True, msd)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"]["genericdp"] = self.genericdp
        return data


class AtomicRotation(AtomicMove):
    """
    Rotate a single particle by ``dprot * (r - 0.5)`` radians about a random axis.

    The dipole moment of the particle is rotated. When the particle belongs to a molecule
    with more than one site, its position is also rotated about the molecule mass center.
    Statistics record the squared rotation angle in degrees.

    Parameters
    ----------
    *args
        Positional arguments of [`AtomicMove`][mcmoves.moves.atomic.AtomicMove].
    genericdprot : float, optional
        Fallback rotational parameter in radians, by default 0.0.
    **kwargs
        Keyword arguments of [`AtomicMove`][mcmoves.moves.atomic.AtomicMove].
    """

    title = "Single Particle Rotation"

    def __init__(self, *args, genericdprot: float = 0.0, **kwargs) -> None:
        super().__init__(*args, **kwargs)

        self.genericdprot = genericdprot
        self.operation = Rotation()

    def propose_trial(self) -> bool:
        if not self.select_particle():
            return False

        space = self.space
        i = self.moved_index
        group = space.groups[self.moved_group]  # type: ignore[index]

        dprot = space.species_of(i).dprot  # type: ignore[arg-type]
        dprot = dprot if dprot >= 1e-6 else self.genericdprot

        matrix = self.operation.calculate(self.rng, dprot)

        space.trial.arrays["dipoles"][i] = matrix @ space.atoms.arrays["dipoles"][i]

        if group.molecular and len(group) > 1:
            space.trial.positions[i] = geometry.rotate(
                space.atoms.positions[[i]], matrix, group.cm, space.trial
            )[0]
            space.update_mass_center(self.moved_group)  # type: ignore[arg-type]

        space.change.add(self.moved_group, i)  # type: ignore[arg-type]

        return True

    def accept(self) -> None:
        self.commit(True, float(np.degrees(self.operation.angle) ** 2))

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"]["genericdprot"] = self.genericdprot
        return data
