"""Module holding the current and trial particle configurations."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np
from ase.atoms import Atoms
from ase.data import atomic_numbers

from mcmoves.space import geometry
from mcmoves.space.groups import Change, Group
from mcmoves.space.species import Species, SpeciesTracker
from mcmoves.utils.atoms import insert_atoms, search_molecules

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from mcmoves.typing import IntegerArray, Positions, Vector


class Space:
    """
    Particle store shared by the moves and the energy functions. Two index-aligned ASE
    `Atoms` objects are kept: `atoms` holds the current configuration and `trial` the
    configuration proposed by the running move. Outside the indices listed in `change`,
    both are identical at the start and at the end of every move.

    Per-particle properties are ASE arrays: positions, `initial_charges`, masses, and the
    custom arrays `species` (index into `species_list`), `radii` and `dipoles`.

    Parameters
    ----------
    cell : Any
        Simulation cell, anything accepted by `Atoms.set_cell`.
    pbc : bool | Sequence[bool]
        Periodicity of each cell vector.
    species : Iterable[Species]
        Particle types known to the space.

    Attributes
    ----------
    atoms : Atoms
        The current configuration.
    trial : Atoms
        The trial configuration.
    groups : list[Group]
        Molecules and atomic pools, as contiguous index ranges.
    species : dict[str, Species]
        Species by name.
    species_list : list[Species]
        Species by integer id, as stored in the `species` array.
    trackers : dict[str, SpeciesTracker]
        Live indices of each species in the current configuration.
    change : Change
        Record of what the running move touched.
    """

    def __init__(
        self,
        cell: Any,
        pbc: bool | Sequence[bool] = True,
        species: Iterable[Species] = (),
    ) -> None:
        self.atoms = Atoms(cell=cell, pbc=pbc)

        self.atoms.set_initial_charges(np.zeros(0))
        self.atoms.set_masses(np.zeros(0))
        self.atoms.new_array("species", np.zeros(0, dtype=int))
        self.atoms.new_array("radii", np.zeros(0))
        self.atoms.new_array("dipoles", np.zeros((0, 3)))

        self.trial = self.atoms.copy()

        self.groups: list[Group] = []
        self.species: dict[str, Species] = {}
        self.species_list: list[Species] = []
        self.trackers: dict[str, SpeciesTracker] = {}
        self.change = Change()

        for item in species:
            self.add_species(item)

    def add_species(self, species: Species) -> None:
        """Register a particle type, raising `ValueError` on duplicated names."""
        if species.name in self.species:
            raise ValueError(f"Species `{species.name}` is already defined.")

        self.species[species.name] = species
        self.species_list.append(species)
        self.trackers[species.name] = SpeciesTracker()

    def species_id(self, name: str) -> int:
        """Integer id of species `name`."""
        try:
            return self.species_list.index(self.species[name])
        except KeyError as error:
            raise KeyError(
                f"Species `{name}` not defined. Available species: {list(self.species)}"
            ) from error

    def species_of(self, index: int, trial: bool = False) -> Species:
        """Species of particle `index` in the current (or trial) configuration."""
        config = self.trial if trial else self.atoms
        return self.species_list[int(config.arrays["species"][index])]

    def create_particles(
        self, names: Sequence[str], positions: Positions | Sequence[Vector]
    ) -> Atoms:
        """
        Build an `Atoms` object carrying every per-particle array for the given species.

        Parameters
        ----------
        names : Sequence[str]
            Species name of each particle.
        positions : Positions
            Cartesian positions, wrapped into the cell.

        Returns
        -------
        Atoms
            The new particles, not yet part of the space.
        """
        species = [self.species[name] for name in names]
        positions = np.asarray(positions, dtype=float).reshape(-1, 3)

        particles = Atoms(
            symbols=[item.symbol for item in species],
            positions=geometry.boundary(positions, self.atoms),
            cell=self.atoms.cell,
            pbc=self.atoms.pbc,
        )

        particles.set_initial_charges([item.charge for item in species])
        particles.set_masses([item.mass for item in species])
        particles.new_array(
            "species", np.array([self.species_id(name) for name in names], dtype=int)
        )
        particles.new_array("radii", np.array([item.radius for item in species]))
        particles.new_array("dipoles", np.zeros((len(species), 3)))

        return particles

    def add_group(
        self,
        name: str,
        species: Sequence[str],
        positions: Positions | Sequence[Vector],
        molecular: bool = True,
    ) -> Group:
        """
        Append a molecule or an atomic pool to both configurations.

        Parameters
        ----------
        name : str
            Name of the molecule type or pool.
        species : Sequence[str]
            Species name of each particle.
        positions : Positions
            Positions of the particles.
        molecular : bool, optional
            Whether the group is a molecule, by default True.

        Returns
        -------
        Group
            The new group.
        """
        group = Group(start=len(self.atoms), length=0, name=name, molecular=molecular)
        self.groups.append(group)

        if len(species):
            self.insert(len(self.groups) - 1, self.create_particles(species, positions))

        return group

    @classmethod
    def from_atoms(
        cls,
        atoms: Atoms,
        species: Iterable[Species],
        cutoff: float | None = None,
        pool_name: str = "atoms",
    ) -> Space:
        """
        Build a space from an ASE `Atoms` object. Chemical symbols are matched to species
        names. With a `cutoff`, bonded clusters of more than one atom become molecular
        groups named by their chemical formula and the remaining atoms form one atomic pool.

        Raises
        ------
        ValueError
            If a detected molecule does not occupy a contiguous index range.
        """
        space = cls(atoms.cell.copy(), atoms.pbc.copy(), species)
        symbols = atoms.get_chemical_symbols()

        if cutoff is None:
            components = [np.arange(len(atoms))]
        else:
            components = search_molecules(atoms, cutoff)

        free = [int(c[0]) for c in components if len(c) == 1]

        for component in components:
            if len(component) == 1:
                continue

            if np.any(np.diff(component) != 1):
                raise ValueError(
                    f"Molecule with atoms {component.tolist()} is not contiguous in the `Atoms` object."
                )

            name = (
                atoms[component].get_chemical_formula()
                if cutoff is not None
                else pool_name
            )
            space.add_group(
                name,
                [symbols[i] for i in component],
                atoms.positions[component],
                molecular=cutoff is not None,
            )

        if free:
            space.add_group(
                pool_name,
                [symbols[i] for i in free],
                atoms.positions[free],
                molecular=False,
            )

        return space

    def find_molecules(self, name: str) -> list[int]:
        """Indices of the molecular groups named `name`."""
        return [
            n
            for n, group in enumerate(self.groups)
            if group.molecular and group.name == name
        ]

    def find_atomic(self, name: str) -> list[int]:
        """Indices of the atomic groups named `name`."""
        return [
            n
            for n, group in enumerate(self.groups)
            if not group.molecular and group.name == name
        ]

    def find_groups(self, name: str) -> list[int]:
        return [n for n, group in enumerate(self.groups) if group.name == name]

    def find_group(self, index: int) -> int:
        """Index of the group holding particle `index`."""
        for n, group in enumerate(self.groups):
            if group.contains(index):
                return n

        raise IndexError(f"Particle {index} does not belong to any group.")

    def insert(self, group_index: int, particles: Atoms) -> list[int]:
        """
        Insert particles at the end of a group, in both configurations.

        Subsequent groups and every species tracker are renumbered, and the mass center of
        a molecular group is recomputed.

        Returns
        -------
        list[int]
            Indices of the inserted particles.
        """
        group = self.groups[group_index]
        position = group.stop
        count = len(particles)

        insert_atoms(self.atoms, particles, position)
        insert_atoms(self.trial, particles, position)

        for n, other in enumerate(self.groups):
            if n != group_index and other.start >= position:
                other.start += count

        group.length += count

        for tracker in self.trackers.values():
            tracker.shift(position, count)

        inserted = list(range(position, position + count))

        for index in inserted:
            self.trackers[self.species_of(index).name].insert(index)

        if group.molecular:
            self.update_mass_center(group_index, trial=False)
            group.undo()

        return inserted

    def erase(self, index: int) -> None:
        """Remove particle `index` from both configurations, shrinking its group."""
        group_index = self.find_group(index)
        group = self.groups[group_index]

        self.trackers[self.species_of(index).name].erase(index)

        del self.atoms[int(index)]
        del self.trial[int(index)]

        group.length -= 1

        for n, other in enumerate(self.groups):
            if n != group_index and other.start > index:
                other.start -= 1

        for tracker in self.trackers.values():
            tracker.shift(index + 1, -1)

        if group.molecular:
            self.update_mass_center(group_index, trial=False)
            group.undo()

    def set_species(self, index: int, name: str, trial: bool = True) -> None:
        """Change the species of particle `index`, updating charge, radius, mass and symbol."""
        config = self.trial if trial else self.atoms
        species = self.species[name]

        config.arrays["species"][index] = self.species_id(name)
        config.arrays["initial_charges"][index] = species.charge
        config.arrays["radii"][index] = species.radius
        config.arrays["masses"][index] = species.mass
        config.arrays["numbers"][index] = atomic_numbers[species.symbol]

    def accept_particles(self, indices: IntegerArray) -> None:
        """Copy trial particle data to the current configuration, keeping trackers in sync."""
        indices = np.asarray(indices, dtype=int)

        for index in indices:
            old = self.species_of(index).name
            new = self.species_of(index, trial=True).name

            if old != new:
                self.trackers[old].erase(index)
                self.trackers[new].insert(index)

        for name, array in self.trial.arrays.items():
            self.atoms.arrays[name][indices] = array[indices]

    def undo_particles(self, indices: IntegerArray) -> None:
        """Copy current particle data to the trial configuration."""
        indices = np.asarray(indices, dtype=int)

        for name, array in self.atoms.arrays.items():
            self.trial.arrays[name][indices] = array[indices]

    def accept_group(self, group_index: int) -> None:
        group = self.groups[group_index]
        self.accept_particles(group.indices)
        group.accept()

    def undo_group(self, group_index: int) -> None:
        group = self.groups[group_index]
        self.undo_particles(group.indices)
        group.undo()

    def mass_center(self, group_index: int, trial: bool = True) -> Vector:
        """Mass center of a group in the trial (default) or current configuration."""
        config = self.trial if trial else self.atoms
        indices = self.groups[group_index].indices

        return geometry.mass_center(
            config.positions[indices], config.get_masses()[indices], config
        )

    def update_mass_center(self, group_index: int, trial: bool = True) -> None:
        """Recompute `cm_trial` (or `cm`) of a group from the particle positions."""
        group = self.groups[group_index]
        center = self.mass_center(group_index, trial=trial)

        if trial:
            group.cm_trial = center
        else:
            group.cm = center

    def volume(self, trial: bool = False) -> float:
        return geometry.volume(self.trial if trial else self.atoms)

    def set_volume(self, volume: float, trial: bool = True) -> None:
        """Isotropically scale the cell (not the particles) to `volume`."""
        config = self.trial if trial else self.atoms
        factor = (volume / geometry.volume(config)) ** (1.0 / 3.0)
        config.set_cell(config.cell.array * factor, scale_atoms=False)

    def accept_volume(self) -> None:
        self.atoms.set_cell(self.trial.cell.array.copy(), scale_atoms=False)

    def undo_volume(self) -> None:
        self.trial.set_cell(self.atoms.cell.array.copy(), scale_atoms=False)

    def total_charge(self, trial: bool = False) -> float:
        config = self.trial if trial else self.atoms
        return float(config.get_initial_charges().sum())

    def count(self, name: str) -> int:
        """Number of live particles of species `name`."""
        return len(self.trackers[name])

    def check(self, tolerance: float = 1e-7) -> list[str]:
        """
        Check consistency between both configurations outside the change record.

        Returns
        -------
        list[str]
            Human readable descriptions of every violation found.
        """
        errors = []

        if len(self.atoms) != len(self.trial):
            return [f"Size mismatch: {len(self.atoms)} vs {len(self.trial)} particles."]

        touched: set[int] = set()

        for group_index, particles in self.change.groups.items():
            touched |= particles or set(self.groups[group_index].indices.tolist())

        untouched = np.setdiff1d(np.arange(len(self.atoms)), list(touched))

        if not self.change.geometry_change:
            difference = self.atoms.positions[untouched] - self.trial.positions[untouched]
            if np.any(np.abs(difference) > tolerance):
                errors.append("Current and trial positions differ outside the change record.")

        for name in ("species", "initial_charges"):
            if np.any(self.atoms.arrays[name][untouched] != self.trial.arrays[name][untouched]):
                errors.append(f"Current and trial `{name}` differ outside the change record.")

        for n, group in enumerate(self.groups):
            if group.molecular and not group.empty():
                drift = geometry.sqdist(group.cm, self.mass_center(n, trial=False), self.atoms)
                if drift > tolerance:
                    errors.append(f"Mass center of group {n} (`{group.name}`) is out of sync.")

        for name, tracker in self.trackers.items():
            identifier = self.species_id(name)
            expected = set(np.flatnonzero(self.atoms.arrays["species"] == identifier).tolist())
            if set(tracker) != expected:
                errors.append(f"Tracker of species `{name}` is out of sync.")

        return errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.__class__.__name__,
            "atoms": self.atoms.copy(),
            "species": [item.to_dict() for item in self.species_list],
            "groups": [
                {
                    "start": group.start,
                    "length": group.length,
                    "name": group.name,
                    "molecular": group.molecular,
                }
                for group in self.groups
            ],
        }

    def __repr__(self) -> str:
        return f"Space(particles={len(self.atoms)}, groups={len(self.groups)}, species={list(self.species)})"
