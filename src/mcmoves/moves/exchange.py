"""
Grand canonical moves exchanging salt with a reservoir of fixed activity, optionally
coupled to the protonation of titratable sites.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, Self

import numpy as np
from ase.units import _Nav

from mcmoves.energy import Equilibrium
from mcmoves.moves.core import BaseMove
from mcmoves.moves.statistics import AcceptanceMap
from mcmoves.space import geometry

if TYPE_CHECKING:
    from ase.atoms import Atoms
    from numpy.random import Generator as RNG

    from mcmoves.energy import Hamiltonian
    from mcmoves.space import Space, Species

MOLAR_TO_NUMBER_DENSITY = _Nav * 1e-27
"""Particles per Å³ in a 1 mol/L solution."""


class GrandCanonicalSalt(BaseMove):
    """
    Insert or delete a neutral combination of one cation and one anion species.

    A random (cation, anion) pair is drawn among the species with an activity above 1e-10
    and a non-zero charge, and the move exchanges ``Na = |z_anion|`` cations together with
    ``Nb = |z_cation|`` anions. Insertion and deletion are chosen with equal probability.
    A deletion with too few particles in the system is a no-op; the available particles
    are still drawn so that the random stream advances as for a deletion.

    For an insertion, ``u = ln Π(N + 1 + n)/V - Na μa - Nb μb + U_new`` and for a deletion
    ``u = -ln Π(N - Nk + 1 + n)/V + Na μa + Nb μb - U_old``, the products running over
    every exchanged particle. The potential energy difference alone is reported through
    `alternate_return_energy`.

    Parameters
    ----------
    *args
        Positional arguments of [`BaseMove`][mcmoves.moves.core.BaseMove].
    group : str, optional
        Name of the atomic group receiving inserted ions, by default "salt".
    **kwargs
        Keyword arguments of [`BaseMove`][mcmoves.moves.core.BaseMove].

    Attributes
    ----------
    cations : list[Species]
        Exchangeable cation species.
    anions : list[Species]
        Exchangeable anion species.
    density_sum : dict[str, float]
        Running sum of the concentration of every exchangeable species, in mol/L.
    density_count : int
        Number of samples in `density_sum`.
    """

    title = "Grand Canonical Salt"

    def __init__(self, *args, group: str = "salt", **kwargs) -> None:
        super().__init__(*args, **kwargs)

        groups = self.space.find_atomic(group)

        if len(groups) != 1:
            raise ValueError(
                f"{self.title}: expected one atomic group named `{group}`, found {len(groups)}."
            )

        self.group = group
        self.salt_group = groups[0]

        ions = [
            species
            for species in self.space.species_list
            if species.activity > 1e-10 and abs(species.charge) > 1e-10
        ]

        self.cations: list[Species] = [species for species in ions if species.charge > 0]
        self.anions: list[Species] = [species for species in ions if species.charge < 0]

        if not self.cations or not self.anions:
            raise ValueError(
                f"{self.title}: at least one cation and one anion with a positive activity are required."
            )

        self.density_sum: dict[str, float] = {species.name: 0.0 for species in ions}
        self.density_count = 0

        self.inserting = False
        self.inserted: Atoms | None = None
        self.deleted: list[int] = []
        self.exchange: list[tuple[Species, int]] = []

    @property
    def ions(self) -> list[Species]:
        return self.cations + self.anions

    def random_pair(self) -> list[tuple[Species, int]]:
        """Draw a (cation, anion) pair and the number of particles of each to exchange."""
        cation = self.cations[int(self.rng.integers(len(self.cations)))]
        anion = self.anions[int(self.rng.integers(len(self.anions)))]

        return [
            (cation, int(round(abs(anion.charge)))),
            (anion, int(round(abs(cation.charge)))),
        ]

    def random_particles(self, names: list[str]) -> Atoms:
        positions = [geometry.random_position(self.space.atoms, self.rng) for _ in names]
        return self.space.create_particles(names, positions)

    def propose_salt(self) -> bool:
        self.inserted = None
        self.deleted = []
        self.exchange = self.random_pair()
        self.inserting = bool(self.rng.random() > 0.5)

        if self.inserting:
            self.inserted = self.random_particles(
                [species.name for species, count in self.exchange for _ in range(count)]
            )
            return True

        short = False

        for species, count in self.exchange:
            tracker = self.space.trackers[species.name]
            short |= len(tracker) < count
            self.deleted.extend(tracker.sample(self.rng, min(count, len(tracker))))

        if short:
            self.deleted = []
            return False

        return True

    def propose_trial(self) -> bool:
        return self.propose_salt()

    def ideal_factor(self) -> float:
        """Product of the ideal-gas factors of the exchanged particles."""
        volume = self.space.volume()
        factor = 1.0

        for species, count in self.exchange:
            population = self.space.count(species.name)

            for n in range(count):
                if self.inserting:
                    factor *= (population + 1 + n) / volume
                else:
                    factor *= (population - count + 1 + n) / volume

        return factor

    def salt_energy(self) -> float:
        hamiltonian = self.hamiltonian
        config = self.space.atoms
        chemical = sum(count * species.chemical_potential for species, count in self.exchange)

        if self.inserting:
            inserted = self.inserted
            potential = hamiltonian.v2v(config, inserted)  # type: ignore[arg-type]

            if potential == np.inf:
                return np.inf

            for first in range(len(inserted)):  # type: ignore[arg-type]
                potential += hamiltonian.p_external(config, inserted, first)  # type: ignore[arg-type]

                for second in range(first + 1, len(inserted)):  # type: ignore[arg-type]
                    potential += hamiltonian.p2p(config, inserted, first, second)  # type: ignore[arg-type]

            self.alternate_return_energy = potential

            return math.log(self.ideal_factor()) - chemical + potential

        potential = sum(hamiltonian.i_total(config, i) for i in self.deleted)
        potential -= hamiltonian.internal_pairs(config, self.deleted)

        self.alternate_return_energy = -potential

        return -math.log(self.ideal_factor()) + chemical - potential

    def energy_change(self) -> float:
        return self.salt_energy()

    def salt_key(self) -> str:
        return " ".join(species.name for species, _ in self.exchange)

    def update_density(self) -> None:
        volume = self.space.volume()

        for name in self.density_sum:
            self.density_sum[name] += self.space.count(name) / volume / MOLAR_TO_NUMBER_DENSITY

        self.density_count += 1

    def density(self, name: str) -> float:
        """Average concentration of species `name` in mol/L."""
        return self.density_sum[name] / self.density_count if self.density_count else 0.0

    def commit_salt(self, accepted: bool) -> None:
        if self.exchange:
            self.statistics.accept(self.salt_key(), accepted)

        if accepted:
            if self.inserting:
                self.space.insert(self.salt_group, self.inserted)  # type: ignore[arg-type]
            else:
                for index in sorted(self.deleted, reverse=True):
                    self.space.erase(index)

        self.inserted = None
        self.deleted = []
        self.update_density()

    def accept(self) -> None:
        self.commit_salt(True)

    def reject(self) -> None:
        self.commit_salt(False)

    def describe(self) -> str:
        lines = [f"  {'Species':<12s}{'activity':>12s}{'<c>/M':>12s}{'γ':>12s}"]

        for species in self.ions:
            average = self.density(species.name)
            coefficient = species.activity / average if average > 0 else float("nan")
            lines.append(
                f"  {species.name:<12s}{species.activity:>12.4g}{average:>12.4g}{coefficient:>12.4g}"
            )

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"]["group"] = self.group
        data["attributes"].update(
            {"density_sum": dict(self.density_sum), "density_count": self.density_count}
        )
        return data


class GrandCanonicalTitration(GrandCanonicalSalt):
    """
    Grand canonical salt exchange coupled to the protonation of titratable sites.

    Each trial is, with equal probability, a salt exchange or a titration; it falls back to
    a salt exchange when the system holds no titratable site. A titration draws a
    monovalent exchangeable ion, a random site and one of the processes the site takes
    part in, swaps the site species in the trial configuration and keeps the system
    neutral by exchanging the ion: protonation deletes a cation or inserts an anion,
    deprotonation inserts a cation or deletes an anion.

    The intrinsic energy of the site state comes from
    [`i_internal`][mcmoves.energy.Hamiltonian.i_internal]. An insertion contributes
    ``ln((N + 1)/V) - μ`` and a deletion ``ln(V/N) + μ``; the interaction between the site
    and a deleted ion is counted once.

    Parameters
    ----------
    *args
        Positional arguments of [`GrandCanonicalSalt`][mcmoves.moves.exchange.GrandCanonicalSalt].
    equilibrium : Equilibrium, optional
        Titration processes, by default the ones of the hamiltonian.
    neutralize : bool, optional
        Insert monovalent ions at construction until the system is neutral.
    **kwargs
        Keyword arguments of [`GrandCanonicalSalt`][mcmoves.moves.exchange.GrandCanonicalSalt].

    Attributes
    ----------
    salt_count : int
        Number of salt trials.
    titration_count : int
        Number of titration trials.
    site_statistics : AcceptanceMap
        Acceptance per site index.
    charge_sum : dict[str, float]
        Running sum of the charge of every molecule type holding titratable sites.
    """

    title = "Grand Canonical Titration"

    def __init__(
        self,
        *args,
        equilibrium: Equilibrium | None = None,
        neutralize: bool = False,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)

        self.equilibrium = equilibrium or self.hamiltonian.equilibrium

        if self.equilibrium is None:
            raise ValueError(f"{self.title}: titration processes are required.")

        self.monovalent = [species for species in self.ions if abs(abs(species.charge) - 1) < 1e-6]

        if not self.monovalent:
            raise ValueError(f"{self.title}: at least one monovalent exchangeable ion is required.")

        self.neutralize = neutralize

        if neutralize:
            self.make_neutral()

        self.titrating = False
        self.site: int | None = None
        self.ion: Species | None = None

        self.salt_count = 0
        self.salt_accepted = 0
        self.titration_count = 0
        self.titration_accepted = 0
        self.site_statistics = AcceptanceMap()

        self.charge_sum: dict[str, float] = {}
        self.charge_count = 0

    def make_neutral(self) -> None:
        """Insert monovalent ions into the salt group until the total charge vanishes."""
        while abs(charge := self.space.total_charge()) > 1e-6:
            sign = -1.0 if charge > 0 else 1.0
            candidates = [species for species in self.monovalent if species.charge * sign > 0]

            if not candidates:
                raise ValueError(
                    f"{self.title}: no monovalent ion available to neutralize a charge of {charge:.3f}."
                )

            self.space.insert(self.salt_group, self.random_particles([candidates[0].name]))

    def propose_trial(self) -> bool:
        self.titrating = False
        self.site = None
        self.ion = None
        self.exchange = []

        sites = self.equilibrium.find_sites(self.space)  # type: ignore[union-attr]

        if self.rng.random() > 0.5 or len(sites) == 0:
            self.salt_count += 1
            return self.propose_salt()

        self.titrating = True
        self.titration_count += 1
        self.inserted = None
        self.deleted = []

        space = self.space
        ion = self.monovalent[int(self.rng.integers(len(self.monovalent)))]
        site = int(sites[int(self.rng.integers(len(sites)))])

        current = space.species_of(site).name
        processes = self.equilibrium.matching(current)  # type: ignore[union-attr]
        process = processes[int(self.rng.integers(len(processes)))]
        new = process.swap(current)

        protonation = process.is_bound(new)
        self.inserting = protonation != (ion.charge > 0)

        self.ion = ion
        self.site = site
        self.exchange = [(ion, 1)]

        if self.inserting:
            self.inserted = self.random_particles([ion.name])
        elif space.count(ion.name) == 0:
            return False
        else:
            self.deleted = space.trackers[ion.name].sample(self.rng, 1)

        space.set_species(site, new, trial=True)
        space.change.add(space.find_group(site), site)

        return True

    def titration_energy(self) -> float:
        space = self.space
        hamiltonian = self.hamiltonian
        current, trial = space.atoms, space.trial
        site = self.site
        ion = self.ion

        potential_new = hamiltonian.i_internal(trial, site)  # type: ignore[arg-type]
        potential_old = hamiltonian.i_internal(current, site)  # type: ignore[arg-type]

        site_new = hamiltonian.i2all(trial, site) + hamiltonian.i_external(trial, site)  # type: ignore[arg-type]
        site_old = hamiltonian.i2all(current, site) + hamiltonian.i_external(current, site)  # type: ignore[arg-type]

        volume = space.volume()
        population = space.count(ion.name)  # type: ignore[union-attr]

        salt_new = 0.0
        salt_old = 0.0

        if self.inserting:
            ideal = math.log((population + 1) / volume) - ion.chemical_potential  # type: ignore[union-attr]
            salt_new = hamiltonian.all2p(trial, self.inserted, 0) + hamiltonian.p_external(  # type: ignore[arg-type]
                trial, self.inserted, 0  # type: ignore[arg-type]
            )
        else:
            index = self.deleted[0]
            ideal = math.log(volume / population) + ion.chemical_potential  # type: ignore[union-attr]
            salt_old = hamiltonian.i2all(current, index) + hamiltonian.i_external(current, index)
            site_new -= hamiltonian.i2i(trial, index, site)  # type: ignore[arg-type]
            site_old -= hamiltonian.i2i(current, index, site)  # type: ignore[arg-type]

        new = potential_new + salt_new + site_new
        old = potential_old + salt_old + site_old

        self.alternate_return_energy = new - old

        return ideal + new - old

    def energy_change(self) -> float:
        if self.titrating:
            return self.titration_energy()

        return self.salt_energy()

    def record_charges(self) -> None:
        charges = self.space.atoms.get_initial_charges()
        sites = self.equilibrium.find_sites(self.space)  # type: ignore[union-attr]
        names = set()

        for site in sites:
            group = self.space.groups[self.space.find_group(int(site))]
            if group.molecular:
                names.add(group.name)

        for name in names:
            for n in self.space.find_molecules(name):
                self.charge_sum[name] = self.charge_sum.get(name, 0.0) + float(
                    charges[self.space.groups[n].indices].sum()
                )

        self.charge_count += 1

    def average_charge(self, name: str) -> float:
        """Average net charge of one molecule of type `name`."""
        molecules = len(self.space.find_molecules(name))

        if not self.charge_count or not molecules or name not in self.charge_sum:
            return 0.0

        return self.charge_sum[name] / self.charge_count / molecules

    def commit_titration(self, accepted: bool) -> None:
        space = self.space
        site = self.site

        if site is None:
            return

        self.site_statistics.accept(site, accepted)
        self.statistics.accept("titration", accepted)

        group_index = space.find_group(site)
        group = space.groups[group_index]

        if accepted:
            self.titration_accepted += 1
            space.accept_particles([site])

            if group.molecular:
                space.update_mass_center(group_index)
                group.accept()

            if self.inserting:
                space.insert(self.salt_group, self.inserted)  # type: ignore[arg-type]
            else:
                space.erase(self.deleted[0])
        else:
            space.undo_particles([site])

        self.inserted = None
        self.deleted = []
        self.update_density()
        self.record_charges()

    def accept(self) -> None:
        if self.titrating:
            self.commit_titration(True)
        else:
            self.salt_accepted += 1
            self.commit_salt(True)

    def reject(self) -> None:
        if self.titrating:
            self.commit_titration(False)
        else:
            self.commit_salt(False)

    def describe(self) -> str:
        lines = [
            super().describe(),
            f"  {'Salt trials':<28s}{self.salt_count}",
            f"  {'Salt acceptance':<28s}{100 * self.salt_accepted / max(self.salt_count, 1):.2f}%",
            f"  {'Titration trials':<28s}{self.titration_count}",
            f"  {'Titration acceptance':<28s}{100 * self.titration_accepted / max(self.titration_count, 1):.2f}%",
        ]

        for name in self.charge_sum:
            lines.append(f"  {'<Z> ' + name:<28s}{self.average_charge(name):.4f}")

        if len(self.site_statistics):
            lines.append(self.site_statistics.info(key_label="Site"))

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"].update(
            {"equilibrium": self.equilibrium.to_dict(), "neutralize": False}  # type: ignore[union-attr]
        )
        data["attributes"].update(
            {
                "salt_count": self.salt_count,
                "salt_accepted": self.salt_accepted,
                "titration_count": self.titration_count,
                "titration_accepted": self.titration_accepted,
            }
        )
        return data

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        space: Space,
        hamiltonian: Hamiltonian,
        rng: RNG | None = None,
    ) -> Self:
        data = {**data, "kwargs": dict(data.get("kwargs", {}))}
        equilibrium = data["kwargs"].get("equilibrium")

        if isinstance(equilibrium, dict):
            data["kwargs"]["equilibrium"] = Equilibrium.from_dict(equilibrium)

        return super().from_dict(data, space, hamiltonian, rng)
