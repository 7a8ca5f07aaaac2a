"""
Cluster moves: a molecule is displaced together with the particles or molecules found
around it, and the acceptance is corrected with the bias of the cluster construction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Self

import numpy as np

from mcmoves.moves.core import MoveDecorator
from mcmoves.moves.rigid import TranslateRotate, intra_distances
from mcmoves.operations import Sphere
from mcmoves.space import geometry

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from ase.atoms import Atoms
    from numpy.random import Generator as RNG

    from mcmoves.energy import Hamiltonian
    from mcmoves.space import Space

    ProbabilityFunction = Callable[[Space, Atoms, int, int], float]


def contact_probability(
    space: Space, config: Atoms, group_index: int, index: int, threshold: float
) -> float:
    """
    Step function: 1 when particle `index` is closer than ``threshold + r_i + r_j`` to any
    other particle of group `group_index`, 0 otherwise.
    """
    members = space.groups[group_index].indices
    members = members[members != index]

    if len(members) == 0:
        return 0.0

    radii = config.arrays["radii"]
    contact = threshold + radii[index] + radii[members]
    distances = geometry.sqdist(config.positions[index], config.positions[members], config)

    return 1.0 if np.any(distances < contact**2) else 0.0


class TranslateRotateCluster(MoveDecorator):
    """
    Decorate a [`TranslateRotate`][mcmoves.moves.rigid.TranslateRotate] move so that the
    particles of an atomic group close to the moved molecule follow it.

    Every particle `i` of the mobile group joins the cluster when ``P_old(i) > r``. The
    cluster is rotated and translated together with the molecule about its mass center.
    The bias ``Π (1 - P_trial(l)) / (1 - P_old(l))`` over the non-members corrects the
    acceptance; the returned energy is ``Δu - log(bias)`` while the reported energy is
    ``Δu``. Moved-to-moved pairs are left out since the cluster moves rigidly.

    Parameters
    ----------
    move : TranslateRotate
        The inner molecular move.
    mobile : str
        Name of the atomic group holding the candidate particles.
    threshold : float, optional
        Surface distance in Å of the default step probability, by default 0.0.
    probability : ProbabilityFunction, optional
        ``probability(space, config, group_index, index)`` replacing the step function.
    runfraction : float, optional
        Run fraction, by default the one of the inner move.

    Raises
    ------
    ValueError
        If `mobile` does not name exactly one atomic group.
    """

    title = "Cluster Molecular Translation and Rotation"

    def __init__(
        self,
        move: TranslateRotate,
        mobile: str,
        threshold: float = 0.0,
        probability: ProbabilityFunction | None = None,
        runfraction: float | None = None,
    ) -> None:
        super().__init__(move, runfraction)

        groups = self.space.find_atomic(mobile)

        if len(groups) != 1:
            raise ValueError(
                f"{self.title}: expected one atomic group named `{mobile}`, found {len(groups)}."
            )

        self.mobile = mobile
        self.mobile_group = groups[0]
        self.threshold = threshold
        self.probability = probability

        self.members: list[int] = []
        self.bias = 1.0

        self.cluster_size_sum = 0.0
        self.bias_sum = 0.0
        self.bias_count = 0

    @classmethod
    def build(
        cls,
        space: Space,
        hamiltonian: Hamiltonian,
        rng: RNG | None = None,
        mobile: str = "",
        threshold: float = 0.0,
        probability: ProbabilityFunction | None = None,
        **kwargs,
    ) -> Self:
        """Create the inner [`TranslateRotate`][mcmoves.moves.rigid.TranslateRotate] from `kwargs` and wrap it."""
        return cls(
            TranslateRotate(space, hamiltonian, rng=rng, **kwargs),
            mobile,
            threshold=threshold,
            probability=probability,
        )

    def cluster_probability(self, config: Atoms, index: int) -> float:
        """Probability that particle `index` belongs to the cluster of the moved molecule."""
        group_index = self.inner.moved_group

        if self.probability is not None:
            return self.probability(self.space, config, group_index, index)

        return contact_probability(self.space, config, group_index, index, self.threshold)

    def propose_trial(self) -> bool:
        inner = self.inner
        inner.moved_group = None
        inner.moved_indices = []
        self.members = []

        group_index = inner.select_group()

        if group_index is None:
            return False

        inner.moved_group = group_index

        config = self.space.atoms

        self.members = [
            int(i)
            for i in self.space.groups[self.mobile_group].indices
            if self.cluster_probability(config, int(i)) > self.rng.random()
        ]

        matrix, translation = inner.draw_displacement()
        inner.displace(group_index, matrix, translation, extra=self.members)

        return True

    def energy_change(self) -> float:
        inner = self.inner
        space = self.space

        if inner.moved_group is None:
            return 0.0

        members = set(self.members)
        bias = 1.0

        for index in space.groups[self.mobile_group].indices:
            if int(index) in members:
                continue

            bias *= (1.0 - self.cluster_probability(space.trial, int(index))) / (
                1.0 - self.cluster_probability(space.atoms, int(index))
            )

        self.bias = bias
        self.bias_sum += bias
        self.bias_count += 1

        if bias < 1e-7:
            return np.inf

        if inner.dp_rot < 1e-6 and inner.dp_trans < 1e-6:
            return 0.0

        moved = np.asarray(inner.moved_indices, dtype=int)

        if geometry.collision(space.trial.positions[moved], space.trial):
            return np.inf

        hamiltonian = self.hamiltonian
        static = np.setdiff1d(np.arange(len(space.atoms)), moved)

        unew = hamiltonian.g_external(space.trial, inner.moved_group)

        if unew == np.inf:
            return np.inf

        uold = hamiltonian.g_external(space.atoms, inner.moved_group)

        for index in self.members:
            unew += hamiltonian.i_external(space.trial, index)
            uold += hamiltonian.i_external(space.atoms, index)

        du = (
            unew
            - uold
            + hamiltonian.cross(space.trial, moved, static)
            - hamiltonian.cross(space.atoms, moved, static)
        )

        self.alternate_return_energy = du

        return du - np.log(bias)

    def accept(self) -> None:
        self.inner.accept()
        self.cluster_size_sum += len(self.members)

    def describe(self) -> str:
        lines = [self.inner.info(), f"  {'Cluster threshold [Å]':<28s}{self.threshold}"]

        if self.accepted_count:
            lines.append(
                f"  {'Average cluster size':<28s}{self.cluster_size_sum / self.accepted_count:.3f}"
            )

        if self.bias_count and self.threshold > 1e-9:
            lines.append(
                f"  {'Average bias':<28s}{self.bias_sum / self.bias_count:.4f} (0=reject, 1=accept)"
            )

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"].update({"mobile": self.mobile, "threshold": self.threshold})
        return data


class ClusterMove(TranslateRotate):
    """
    Rotate or translate a random molecule together with the molecules clustered around it.

    Starting from the drawn molecule, [`get_cluster_around_molecule`][mcmoves.moves.cluster.ClusterMove.get_cluster_around_molecule]
    adds every molecular group with at least one atom ``t`` such that
    ``P(center, t) > r``, then recurses from the added molecule. Molecule types listed in
    `static` for the name of the center molecule are never added around it.

    With ``dp2 > 1e-6`` the whole cluster is rotated about its mass center by
    ``dp2 * (r - 0.5)`` around one random axis, unless the cluster span (largest distance
    to the cluster mass center plus the largest intra-molecular distance) exceeds half of a
    box side; such a trial, and every trial with rotation disabled, translates the cluster
    by ``dp1 / 2`` along a random unit vector instead.

    For each non-cluster, non-static molecule ``l``, ``a = 1 - Π(1 - P_trial)`` and
    ``b = 1 - Π(1 - P_old)`` over its atoms. Both 1 or both 0 leave the bias unchanged,
    one 1 with the other 0 rejects the trial, otherwise the bias is multiplied by
    ``(1 - a) / (1 - b)``.

    Parameters
    ----------
    *args
        Positional arguments of [`BaseMove`][mcmoves.moves.core.BaseMove].
    threshold : float | dict[str, float], optional
        Surface distance in Å of the step probability, per center molecule name.
    static : Sequence[str] | dict[str, Sequence[str]], optional
        Names of molecules never added to a cluster, either for every center molecule or
        per center molecule name.
    probability : ProbabilityFunction, optional
        ``probability(space, config, center_group, index)`` replacing the step function.
    **kwargs
        Keyword arguments of [`BaseMove`][mcmoves.moves.core.BaseMove], `targets` being required.
    """

    title = "Cluster Move"

    def __init__(
        self,
        *args,
        threshold: float | dict[str, float] = 0.0,
        static: Sequence[str] | dict[str, Sequence[str]] = (),
        probability: ProbabilityFunction | None = None,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)

        self.threshold = threshold
        self.static: list[str] | dict[str, list[str]] = (
            {name: list(names) for name, names in static.items()}
            if isinstance(static, dict)
            else list(static)
        )
        self.probability = probability
        self.fallback = Sphere()

        self.cluster: list[int] = []
        self.rotated = False
        self.too_big_count = 0

        self.cluster_size_sum = 0.0
        self.bias_sum = 0.0
        self.bias_count = 0

    def threshold_of(self, name: str) -> float:
        if isinstance(self.threshold, dict):
            return self.threshold.get(name, 0.0)

        return self.threshold

    def cluster_probability(self, config: Atoms, center: int, index: int) -> float:
        """Probability that atom `index` belongs to the cluster around group `center`."""
        if self.probability is not None:
            return self.probability(self.space, config, center, index)

        threshold = self.threshold_of(self.space.groups[center].name)

        return contact_probability(self.space, config, center, index, threshold)

    def static_of(self, name: str) -> list[str]:
        if isinstance(self.static, dict):
            return self.static.get(name, [])

        return self.static

    def candidates(self, center: int) -> list[int]:
        """Molecular groups allowed in the cluster around group `center`."""
        static = self.static_of(self.space.groups[center].name)

        return [
            n
            for n, group in enumerate(self.space.groups)
            if group.molecular and not group.empty() and group.name not in static
        ]

    def get_cluster_around_molecule(self, center: int) -> None:
        """Recursively add to `cluster` the molecules attached to group `center`."""
        config = self.space.atoms

        for group_index in self.candidates(center):
            if group_index in self.cluster:
                continue

            for index in self.space.groups[group_index].indices:
                if self.cluster_probability(config, center, int(index)) > self.rng.random():
                    self.cluster.append(group_index)
                    self.get_cluster_around_molecule(group_index)
                    break

    def cluster_indices(self) -> np.ndarray:
        return np.concatenate([self.space.groups[n].indices for n in self.cluster])

    def too_big(self) -> bool:
        """Whether rotating the cluster could split a molecule across the periodic boundary."""
        space = self.space
        config = space.atoms

        internal = max(
            float(intra_distances(config.positions[space.groups[n].indices], config).max())
            for n in self.cluster
        )

        indices = self.cluster_indices()
        center = geometry.mass_center(
            config.positions[indices], config.get_masses()[indices], config
        )
        span = float(np.sqrt(geometry.sqdist(center, config.positions[indices], config)).max())

        return bool(np.any(span + internal > 0.5 * config.cell.lengths()))

    def propose_trial(self) -> bool:
        self.moved_group = None
        self.moved_indices = []
        self.cluster = []
        self.rotated = False

        group_index = self.select_group()

        if group_index is None:
            return False

        self.moved_group = group_index
        self.cluster = [group_index]
        self.get_cluster_around_molecule(group_index)

        target = self.target
        space = self.space

        self.dp_trans = target.dp1  # type: ignore[union-attr]
        self.dp_rot = min(target.dp2, 4.0 * np.pi)  # type: ignore[union-attr]

        indices = self.cluster_indices()
        positions = space.atoms.positions[indices]

        if self.dp_rot > 1e-6:
            matrix = self.rotation.calculate(self.rng, self.dp_rot)

            if self.too_big():
                self.too_big_count += 1
            else:
                center = geometry.mass_center(
                    positions, space.atoms.get_masses()[indices], space.atoms
                )
                space.trial.positions[indices] = geometry.rotate(
                    positions, matrix, center, space.atoms
                )
                self.rotated = True

        if not self.rotated:
            translation = self.fallback.calculate(self.rng, 0.5 * self.dp_trans)
            space.trial.positions[indices] = geometry.boundary(
                positions + translation, space.trial
            )

        for n in self.cluster:
            space.update_mass_center(n)
            space.change.add_group(n)

            if len(space.groups[n]) > 1:
                members = space.groups[n].indices
                error = np.abs(
                    intra_distances(space.trial.positions[members], space.trial)
                    - intra_distances(space.atoms.positions[members], space.atoms)
                ).max()
                self.max_intra_error = max(self.max_intra_error, float(error))

        self.moved_indices = indices.tolist()

        return True

    def cluster_bias(self) -> float:
        """Bias of the cluster construction, 0 when the reverse move is impossible."""
        space = self.space
        bias = 1.0

        for center in self.cluster:
            for other in self.candidates(center):
                if other in self.cluster:
                    continue

                a = 1.0
                b = 1.0

                for index in space.groups[other].indices:
                    a *= 1.0 - self.cluster_probability(space.trial, center, int(index))
                    b *= 1.0 - self.cluster_probability(space.atoms, center, int(index))

                a = 1.0 - a
                b = 1.0 - b

                if abs(a - 1.0) < 1e-9 and abs(b - 1.0) < 1e-9:
                    continue

                if abs(a) < 1e-9 and abs(b) < 1e-9:
                    continue

                if (abs(a - 1.0) < 1e-9 and abs(b) < 1e-9) or (
                    abs(a) < 1e-9 and abs(b - 1.0) < 1e-9
                ):
                    return 0.0

                bias *= (1.0 - a) / (1.0 - b)

        return bias

    def energy_change(self) -> float:
        if self.moved_group is None:
            return 0.0

        space = self.space
        hamiltonian = self.hamiltonian

        bias = self.cluster_bias()

        self.bias_sum += bias
        self.bias_count += 1

        if bias < 1e-7:
            return np.inf

        if self.dp_rot < 1e-6 and self.dp_trans < 1e-6:
            return 0.0

        if geometry.collision(space.trial.positions[self.moved_indices], space.trial):
            return np.inf

        unew = sum(hamiltonian.g_external(space.trial, n) for n in self.cluster)

        if unew == np.inf:
            return np.inf

        uold = sum(hamiltonian.g_external(space.atoms, n) for n in self.cluster)

        outside = [n for n in range(len(space.groups)) if n not in self.cluster]

        for n in self.cluster:
            for m in outside:
                unew += hamiltonian.g2g(space.trial, n, m)
                uold += hamiltonian.g2g(space.atoms, n, m)

        for position, n in enumerate(self.cluster):
            for m in self.cluster[position + 1 :]:
                unew += hamiltonian.g2g(space.trial, n, m)
                uold += hamiltonian.g2g(space.atoms, n, m)

        du = unew - uold
        self.alternate_return_energy = du

        return du - np.log(bias)

    def accept(self) -> None:
        space = self.space
        group = space.groups[self.moved_group]  # type: ignore[index]

        msd = float(geometry.sqdist(group.cm, group.cm_trial, space.atoms))

        self.statistics.accept(group.name, True, msd)
        space.accept_particles(self.moved_indices)

        for n in self.cluster:
            space.groups[n].accept()

        self.cluster_size_sum += len(self.cluster)

    def reject(self) -> None:
        if self.moved_group is None:
            return

        space = self.space

        self.statistics.accept(space.groups[self.moved_group].name, False)
        space.undo_particles(self.moved_indices)

        for n in self.cluster:
            space.groups[n].undo()

    def describe(self) -> str:
        lines = [f"  {'Cluster threshold [Å]':<28s}{self.threshold}"]

        if self.accepted_count:
            lines.append(
                f"  {'Average cluster size':<28s}{self.cluster_size_sum / self.accepted_count:.3f}"
            )

        if self.bias_count:
            lines.append(
                f"  {'Average bias':<28s}{self.bias_sum / self.bias_count:.4f} (0=reject, 1=accept)"
            )

        lines.append(f"  {'Too big for rotation':<28s}{self.too_big_count}")

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"].update({"threshold": self.threshold, "static": self.static})
        return data

