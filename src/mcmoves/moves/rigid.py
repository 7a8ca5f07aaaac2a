"""Rigid body moves of molecular groups."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from mcmoves.moves.core import BaseMove
from mcmoves.operations import Box, Rotation
from mcmoves.space import geometry

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mcmoves.typing import Displacement, RotationMatrix


def intra_distances(positions: np.ndarray, atoms) -> np.ndarray:
    """Minimum image distance matrix of a set of positions."""
    vectors = positions[None, :, :] - positions[:, None, :]
    shape = vectors.shape[:2]

    return np.sqrt(
        np.sum(geometry.minimum_image(vectors.reshape(-1, 3), atoms) ** 2, axis=1)
    ).reshape(shape)


class TranslateRotate(BaseMove):
    """
    Rotate a random molecule of the drawn target about its mass center, then translate it.

    The rotation angle is ``dp2 * (r - 0.5)`` about a random unit axis, with `dp2` capped
    at 4π, and the translation is ``direction * dp1 * (r - 0.5)`` per axis. Both are taken
    from the target parameters. A trial with both parameters below 1e-6 has zero energy.

    Statistics are keyed by molecule name and record the squared mass center displacement.

    Parameters
    ----------
    *args
        Positional arguments of [`BaseMove`][mcmoves.moves.core.BaseMove].
    **kwargs
        Keyword arguments of [`BaseMove`][mcmoves.moves.core.BaseMove], `targets` being required.

    Attributes
    ----------
    moved_group : int | None
        Group moved by the running trial.
    moved_indices : list[int]
        Every particle displaced by the running trial.
    dp_trans : float
        Translational parameter of the running trial.
    dp_rot : float
        Rotational parameter of the running trial.
    """

    title = "Molecular Translation and Rotation"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)

        if not self.targets:
            raise ValueError(f"{self.title}: at least one molecule target is required.")

        for name in self.targets:
            if not self.space.find_molecules(name):
                raise ValueError(f"{self.title}: `{name}` is not a molecular group.")

        self.rotation = Rotation()
        self.translation = Box()

        self.moved_group: int | None = None
        self.moved_indices: list[int] = []
        self.dp_trans = 0.0
        self.dp_rot = 0.0
        self.max_intra_error = 0.0

    def select_group(self) -> int | None:
        """Draw a non-empty molecule of the current target, None if there is none."""
        groups = self.space.find_molecules(self.current_molecule)  # type: ignore[arg-type]
        group_index = groups[int(self.rng.integers(len(groups)))]

        if self.space.groups[group_index].empty():
            return None

        return group_index

    def draw_displacement(self) -> tuple[RotationMatrix | None, Displacement]:
        """Draw the rotation (None when disabled) and the translation of one trial."""
        target = self.target

        self.dp_trans = target.dp1  # type: ignore[union-attr]
        self.dp_rot = min(target.dp2, 4.0 * np.pi)  # type: ignore[union-attr]

        matrix = None
        translation = np.zeros(3)

        if self.dp_rot > 1e-6:
            matrix = self.rotation.calculate(self.rng, self.dp_rot)

        if self.dp_trans > 1e-6:
            self.translation.direction = target.direction  # type: ignore[union-attr]
            translation = self.translation.calculate(self.rng, self.dp_trans)

        return matrix, translation

    def displace(
        self,
        group_index: int,
        matrix: RotationMatrix | None,
        translation: Displacement,
        extra: Sequence[int] = (),
    ) -> None:
        """
        Rotate a group, plus optional extra particles, about the group mass center and
        translate them, writing the result in the trial configuration.
        """
        space = self.space
        group = space.groups[group_index]
        indices = np.concatenate([group.indices, np.asarray(extra, dtype=int)])

        positions = space.atoms.positions[indices]

        if matrix is not None:
            positions = geometry.rotate(positions, matrix, group.cm, space.atoms)

        space.trial.positions[indices] = geometry.boundary(positions + translation, space.trial)
        group.cm_trial = geometry.boundary(group.cm + translation, space.trial)

        space.change.add_group(group_index)

        for index in extra:
            space.change.add(space.find_group(int(index)), int(index))

        self.moved_indices.extend(int(i) for i in indices)

        if len(group) > 1:
            error = np.abs(
                intra_distances(space.trial.positions[group.indices], space.trial)
                - intra_distances(space.atoms.positions[group.indices], space.atoms)
            ).max()
            self.max_intra_error = max(self.max_intra_error, float(error))

    def propose_trial(self) -> bool:
        self.moved_group = None
        self.moved_indices = []

        group_index = self.select_group()

        if group_index is None:
            return False

        matrix, translation = self.draw_displacement()

        self.moved_group = group_index
        self.displace(group_index, matrix, translation)

        return True

    def energy_change(self) -> float:
        if self.moved_group is None:
            return 0.0

        if self.dp_trans < 1e-6 and self.dp_rot < 1e-6:
            return 0.0

        if geometry.collision(self.space.trial.positions[self.moved_indices], self.space.trial):
            return np.inf

        return self.hamiltonian.energy_change(self.space)

    def accept(self) -> None:
        space = self.space
        group = space.groups[self.moved_group]  # type: ignore[index]

        msd = float(geometry.sqdist(group.cm, group.cm_trial, space.atoms))

        self.statistics.accept(group.name, True, msd)
        space.accept_particles(self.moved_indices)
        group.accept()

    def reject(self) -> None:
        if self.moved_group is None:
            return

        space = self.space
        group = space.groups[self.moved_group]

        self.statistics.accept(group.name, False)
        space.undo_particles(self.moved_indices)
        group.undo()

    def check(self) -> list[str]:
        if self.max_intra_error > 1e-7:
            return [
                f"{self.title}: intra-molecular distances changed by up to {self.max_intra_error:.3g} Å."
            ]

        return []


class TranslateRotateNbody(TranslateRotate):
    """
    Move every molecular group of the targets at once.

    Each group is rotated about its own mass center with an independent random axis, and
    all groups share one translation ``dp1 * (r - 0.5) * direction``. Parameters are those
    of the drawn target.
    """

    title = "Molecular Translation and Rotation (N-body)"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)

        self.moved_groups: list[int] = sorted(
            {n for name in self.targets for n in self.space.find_molecules(name)}
        )

    def propose_trial(self) -> bool:
        self.moved_group = None
        self.moved_indices = []

        groups = [n for n in self.moved_groups if not self.space.groups[n].empty()]

        if not groups:
            return False

        target = self.target

        self.dp_trans = target.dp1  # type: ignore[union-attr]
        self.dp_rot = min(target.dp2, 4.0 * np.pi)  # type: ignore[union-attr]

        translation = np.zeros(3)

        if self.dp_trans > 1e-6:
            self.translation.direction = target.direction  # type: ignore[union-attr]
            translation = self.translation.calculate(self.rng, self.dp_trans)

        for group_index in groups:
            matrix = None

            if self.dp_rot > 1e-6:
                matrix = self.rotation.calculate(self.rng, self.dp_rot)

            self.displace(group_index, matrix, translation)

        self.moved_group = groups[0]

        return True

    def accept(self) -> None:
        space = self.space

        for group_index in self.space.change.groups:
            group = space.groups[group_index]
            msd = float(geometry.sqdist(group.cm, group.cm_trial, space.atoms))
            self.statistics.accept(group.name, True, msd)
            group.accept()

        space.accept_particles(self.moved_indices)

    def reject(self) -> None:
        if self.moved_group is None:
            return

        space = self.space

        for group_index in self.space.change.groups:
            group = space.groups[group_index]
            self.statistics.accept(group.name, False)
            group.undo()

        space.undo_particles(self.moved_indices)

    def describe(self) -> str:
        return f"  {'Number of groups':<28s}{len(self.moved_groups)}"


class TranslateRotateTwobody(TranslateRotateNbody):
    """
    Symmetric move of exactly two molecules of different types.

    The first molecule of each of the two targets is displaced along the unit vector
    joining their mass centers, by ``+R`` and ``-R`` with ``R = u * dp * (r - 0.5)``, `dp`
    being the smallest `dp1` of the two targets. Each molecule is also rotated about its
    own mass center with the `dp2` of its target.

    Raises
    ------
    ValueError
        If the targets do not resolve to two different molecular groups.
    """

    title = "Molecular Translation and Rotation (2-body, symmetric)"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)

        if len(self.targets) != 2:
            raise ValueError(
                f"{self.title}: exactly two molecule targets are required, got {len(self.targets)}."
            )

        self.moved_groups = [self.space.find_molecules(name)[0] for name in self.targets]
        self.pair_dp = min(target.dp1 for target in self.targets.values())

    def propose_trial(self) -> bool:
        self.moved_group = None
        self.moved_indices = []

        space = self.space
        first, second = (space.groups[n] for n in self.moved_groups)

        if first.empty() or second.empty():
            return False

        vector = geometry.minimum_image(second.cm - first.cm, space.atoms)
        displacement = vector / np.linalg.norm(vector) * self.pair_dp * (self.rng.random() - 0.5)

        self.dp_trans = self.pair_dp
        self.dp_rot = 0.0

        for sign, group_index in zip((1.0, -1.0), self.moved_groups):
            dp_rot = min(self.targets[space.groups[group_index].name].dp2, 4.0 * np.pi)
            matrix = None

            if dp_rot > 1e-6:
                matrix = self.rotation.calculate(self.rng, dp_rot)
                self.dp_rot = max(self.dp_rot, dp_rot)

            translation = sign * displacement if self.pair_dp > 1e-6 else np.zeros(3)

            self.displace(group_index, matrix, translation)

        self.moved_group = self.moved_groups[0]

        return True
