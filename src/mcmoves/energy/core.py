"""Energy functions consumed by the Monte Carlo moves. All energies are in units of kT."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import numpy as np

from mcmoves.space import geometry

if TYPE_CHECKING:
    from collections.abc import Callable

    from ase.atoms import Atoms

    from mcmoves.energy.equilibrium import Equilibrium
    from mcmoves.space import Space
    from mcmoves.typing import IntegerArray, Vector

    PairFunction = Callable[[np.ndarray, dict[str, np.ndarray], dict[str, np.ndarray]], np.ndarray]
    ExternalFunction = Callable[[np.ndarray, dict[str, np.ndarray], Atoms], np.ndarray]
    FieldFunction = Callable[[Atoms, int], Vector]


class Hamiltonian(ABC):
    """
    Base class for energy evaluation against either configuration of a [`Space`][mcmoves.space.Space].

    Every method takes the configuration to evaluate (`space.atoms` or `space.trial`) as
    its first argument. Subclasses implement the pair terms; everything else is derived.

    Parameters
    ----------
    space : Space
        The particle store.
    equilibrium : Equilibrium, optional
        Titration processes giving intrinsic site energies through
        [`i_internal`][mcmoves.energy.Hamiltonian.i_internal].
    """

    def __init__(self, space: Space, equilibrium: Equilibrium | None = None) -> None:
        self.space = space
        self.equilibrium = equilibrium

    @abstractmethod
    def cross(self, config: Atoms, first: IntegerArray, second: IntegerArray) -> float:
        """
        Pair energy summed over every pair (i, j) with i in `first` and j in `second`.

        The two index sets are assumed disjoint.
        """
        ...

    @abstractmethod
    def all2p(self, config: Atoms, particles: Atoms, index: int) -> float:
        """Energy of particle `index` of `particles` (not part of `config`) with every particle of `config`."""
        ...

    @abstractmethod
    def p2p(self, config: Atoms, particles: Atoms, first: int, second: int) -> float:
        """Pair energy between two particles that are not part of `config`."""
        ...

    def p_external(self, config: Atoms, particles: Atoms, index: int) -> float:
        """External energy of a particle that is not part of `config`."""
        return 0.0

    def i_external(self, config: Atoms, index: int) -> float:
        return 0.0

    def i2i(self, config: Atoms, first: int, second: int) -> float:
        return self.cross(config, [first], [second])

    def i2all(self, config: Atoms, index: int) -> float:
        others = np.delete(np.arange(len(config)), index)
        return self.cross(config, [index], others)

    def i2g(self, config: Atoms, index: int, group_index: int) -> float:
        group = self.space.groups[group_index].indices
        return self.cross(config, [index], group[group != index])

    def g2g(self, config: Atoms, first: int, second: int) -> float:
        if first == second:
            return 0.0

        return self.cross(
            config,
            self.space.groups[first].indices,
            self.space.groups[second].indices,
        )

    def internal_pairs(self, config: Atoms, indices: IntegerArray) -> float:
        """Pair energy summed over every unordered pair inside `indices`."""
        indices = np.asarray(indices, dtype=int)

        return sum(
            self.cross(config, indices[n : n + 1], indices[n + 1 :])
            for n in range(len(indices) - 1)
        )

    def g_internal(self, config: Atoms, group_index: int) -> float:
        return self.internal_pairs(config, self.space.groups[group_index].indices)

    def g_external(self, config: Atoms, group_index: int) -> float:
        return sum(
            self.i_external(config, i) for i in self.space.groups[group_index].indices
        )

    def i_internal(self, config: Atoms, index: int) -> float:
        """Intrinsic energy of the particle state, e.g. a titratable site."""
        if self.equilibrium is None:
            return 0.0

        species = self.space.species_list[int(config.arrays["species"][index])]

        return self.equilibrium.energy(species.name)

    def i_total(self, config: Atoms, index: int) -> float:
        return (
            self.i2all(config, index)
            + self.i_external(config, index)
            + self.i_internal(config, index)
        )

    def v2v(self, config: Atoms, particles: Atoms) -> float:
        """Energy of every particle of `particles` with the particles of `config`."""
        return sum(self.all2p(config, particles, i) for i in range(len(particles)))

    def pressure_term(
        self, pressure: float, volume: float, new_volume: float, molecules: int
    ) -> float:
        """
        Work term of a volume change at constant pressure.

        Parameters
        ----------
        pressure : float
            Pressure in kT/Å³.
        volume : float
            Current volume in Å³.
        new_volume : float
            Trial volume in Å³.
        molecules : int
            Number of independent molecules, atomic particles counting one each.

        Returns
        -------
        float
            ``P (V' - V) - (N + 1) ln(V'/V)`` in kT.
        """
        return pressure * (new_volume - volume) - (molecules + 1) * np.log(
            new_volume / volume
        )

    def field(self, config: Atoms, index: int) -> Vector:
        """Electric field at particle `index`, required by polarizable moves."""
        raise NotImplementedError(
            f"{self.__class__.__name__} does not provide electric fields."
        )

    def subset_energy(self, config: Atoms, indices: IntegerArray) -> float:
        """Energy of the particles in `indices`: with each other, with the rest, and external terms."""
        indices = np.asarray(sorted(set(np.asarray(indices, dtype=int).tolist())), dtype=int)

        if len(indices) == 0:
            return 0.0

        rest = np.setdiff1d(np.arange(len(config)), indices)
        energy = self.cross(config, indices, rest) + self.internal_pairs(config, indices)

        for i in indices:
            energy += self.i_external(config, i) + self.i_internal(config, i)

        return energy

    def system_energy(self, config: Atoms) -> float:
        """Total energy of a configuration."""
        return self.subset_energy(config, np.arange(len(config)))

    def energy_change(self, space: Space) -> float:
        """
        Energy difference trial minus current, restricted to the particles listed in the change record.

        A geometry change falls back to the full system energy difference.
        """
        change = space.change

        if change.geometry_change:
            return self.system_energy(space.trial) - self.system_energy(space.atoms)

        moved: set[int] = set()

        for group_index, particles in change.groups.items():
            moved |= particles or set(space.groups[group_index].indices.tolist())

        if not moved:
            return 0.0

        new = self.subset_energy(space.trial, list(moved))

        if np.isinf(new) and new > 0:
            return np.inf

        return new - self.subset_energy(space.atoms, list(moved))

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.__class__.__name__,
            "equilibrium": self.equilibrium.to_dict() if self.equilibrium else None,
        }


def particle_properties(config: Atoms, indices: IntegerArray) -> dict[str, np.ndarray]:
    """Per-particle arrays other than positions, restricted to `indices`."""
    return {
        name: array[indices]
        for name, array in config.arrays.items()
        if name != "positions"
    }


class PairHamiltonian(Hamiltonian):
    """
    Hamiltonian built from a user supplied pair function and an optional external potential.

    The pair function receives squared minimum image distances and two dictionaries of
    per-particle properties (`initial_charges`, `radii`, `species`, `dipoles`, ...), all
    broadcast to the same length, and returns the pair energies in kT.

    Parameters
    ----------
    space : Space
        The particle store.
    pair : PairFunction
        ``pair(r2, first, second) -> energies``.
    external : ExternalFunction, optional
        ``external(positions, properties, config) -> energies`` for every particle.
    cutoff : float, optional
        Pairs beyond this distance do not interact.
    field : FieldFunction, optional
        ``field(config, index) -> vector`` for polarizable systems.
    equilibrium : Equilibrium, optional
        Titration processes giving intrinsic site energies.

    Examples
    --------
    ``` python
    def hard_spheres(r2, first, second):
        contact = (first["radii"] + second["radii"]) ** 2
        return np.where(r2 < contact, np.inf, 0.0)


    hamiltonian = PairHamiltonian(space, hard_spheres)
    ```
    """

    def __init__(
        self,
        space: Space,
        pair: PairFunction,
        external: ExternalFunction | None = None,
        cutoff: float | None = None,
        field: FieldFunction | None = None,
        equilibrium: Equilibrium | None = None,
    ) -> None:
        super().__init__(space, equilibrium)

        self.pair = pair
        self.external = external
        self.cutoff = cutoff
        self.field_function = field

    def _sum(
        self,
        config: Atoms,
        first_positions: np.ndarray,
        first: dict[str, np.ndarray],
        second_positions: np.ndarray,
        second: dict[str, np.ndarray],
    ) -> float:
        size_first, size_second = len(first_positions), len(second_positions)

        if size_first == 0 or size_second == 0:
            return 0.0

        vectors = second_positions[None, :, :] - first_positions[:, None, :]
        r2 = np.sum(geometry.minimum_image(vectors.reshape(-1, 3), config) ** 2, axis=1)

        energies = np.asarray(
            self.pair(
                r2,
                {k: np.repeat(v, size_second, axis=0) for k, v in first.items()},
                {k: np.concatenate([v] * size_first) for k, v in second.items()},
            ),
            dtype=float,
        )

        if self.cutoff is not None:
            energies = np.where(r2 < self.cutoff**2, energies, 0.0)

        return float(np.sum(energies))

    def cross(self, config: Atoms, first: IntegerArray, second: IntegerArray) -> float:
        first = np.asarray(first, dtype=int)
        second = np.asarray(second, dtype=int)

        return self._sum(
            config,
            config.positions[first],
            particle_properties(config, first),
            config.positions[second],
            particle_properties(config, second),
        )

    def all2p(self, config: Atoms, particles: Atoms, index: int) -> float:
        others = np.arange(len(config))

        return self._sum(
            config,
            particles.positions[[index]],
            particle_properties(particles, [index]),
            config.positions,
            particle_properties(config, others),
        )

    def p2p(self, config: Atoms, particles: Atoms, first: int, second: int) -> float:
        return self._sum(
            config,
            particles.positions[[first]],
            particle_properties(particles, [first]),
            particles.positions[[second]],
            particle_properties(particles, [second]),
        )

    def i_external(self, config: Atoms, index: int) -> float:
        if self.external is None:
            return 0.0

        energies = self.external(
            config.positions[[index]], particle_properties(config, [index]), config
        )

        return float(np.sum(energies))

    def p_external(self, config: Atoms, particles: Atoms, index: int) -> float:
        if self.external is None:
            return 0.0

        energies = self.external(
            particles.positions[[index]], particle_properties(particles, [index]), config
        )

        return float(np.sum(energies))

    def field(self, config: Atoms, index: int) -> Vector:
        if self.field_function is None:
            return super().field(config, index)

        return np.asarray(self.field_function(config, index), dtype=float)
