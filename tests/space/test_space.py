from __future__ import annotations

import numpy as np
import pytest
from ase import Atoms
from ase.build import molecule
from numpy.testing import assert_allclose, assert_array_equal

from mcmoves.space import Space, Species


def test_space(salt_space):
    """Test the `Space` class."""
    assert len(salt_space.atoms) == 12
    assert len(salt_space.trial) == 12
    assert len(salt_space.groups) == 3

    assert salt_space.find_molecules("dimer") == [0, 1]
    assert salt_space.find_atomic("salt") == [2]
    assert salt_space.find_groups("salt") == [2]
    assert salt_space.find_molecules("salt") == []

    assert salt_space.count("Na") == 4
    assert salt_space.count("Cl") == 4
    assert salt_space.count("M") == 4

    assert salt_space.total_charge() == pytest.approx(0.0)
    assert salt_space.check() == []

    assert salt_space.species_of(0).name == "M"
    assert salt_space.species_of(4).name == "Na"
    assert salt_space.species_of(11).name == "Cl"

    assert_allclose(salt_space.groups[0].cm, [10.5, 10.0, 10.0])
    assert_allclose(salt_space.groups[1].cm_trial, [25.0, 25.5, 25.0])

    assert_array_equal(salt_space.atoms.arrays["radii"][:4], 0.5)
    assert_array_equal(salt_space.atoms.get_initial_charges()[4:8], 1.0)
    assert salt_space.atoms.arrays["dipoles"].shape == (12, 3)

    assert salt_space.find_group(5) == 2
    assert salt_space.find_group(2) == 1

    with pytest.raises(IndexError, match="does not belong"):
        salt_space.find_group(12)

    with pytest.raises(KeyError, match="not defined"):
        salt_space.species_id("K")

    with pytest.raises(ValueError, match="already defined"):
        salt_space.add_species(Species("Na"))

    assert "particles=12" in repr(salt_space)


def test_space_insert_erase(salt_space):
    """Test insertion and deletion of particles in the `Space` class."""
    particles = salt_space.create_particles(["M"], [[12.0, 10.0, 10.0]])
    inserted = salt_space.insert(0, particles)

    assert inserted == [2]
    assert len(salt_space.groups[0]) == 3
    assert salt_space.groups[1].start == 3
    assert salt_space.groups[2].start == 5

    assert set(salt_space.trackers["Na"]) == {5, 6, 7, 8}
    assert set(salt_space.trackers["M"]) == {0, 1, 2, 3, 4}
    assert_allclose(salt_space.groups[0].cm, [11.0, 10.0, 10.0])
    assert salt_space.check() == []

    salt_space.erase(6)

    assert len(salt_space.groups[2]) == 7
    assert salt_space.count("Na") == 3
    assert set(salt_space.trackers["Cl"]) == {8, 9, 10, 11}
    assert salt_space.check() == []

    salt_space.erase(1)

    assert len(salt_space.groups[0]) == 2
    assert salt_space.groups[1].start == 2
    assert_allclose(salt_space.groups[0].cm, [11.0, 10.0, 10.0])
    assert salt_space.check() == []

    with pytest.raises(KeyError):
        salt_space.trackers["Na"].erase(100)


def test_space_trial_updates(salt_space):
    """Test the accept and undo paths of the `Space` class."""
    salt_space.trial.positions[4] += 1.0
    salt_space.change.add(2, 4)

    assert salt_space.check() == []

    salt_space.change.clear()

    assert salt_space.check() != []

    salt_space.undo_particles([4])

    assert salt_space.check() == []

    salt_space.set_species(4, "Cl")

    assert salt_space.species_of(4).name == "Na"
    assert salt_space.species_of(4, trial=True).name == "Cl"
    assert salt_space.trial.get_initial_charges()[4] == -1.0
    assert salt_space.trial.get_masses()[4] == 35.5

    salt_space.accept_particles([4])

    assert salt_space.count("Na") == 3
    assert salt_space.count("Cl") == 5
    assert 4 in salt_space.trackers["Cl"]
    assert salt_space.total_charge() == pytest.approx(-2.0)
    assert salt_space.check() == []

    salt_space.trial.positions[[0, 1]] += 2.0
    salt_space.update_mass_center(0)

    assert_allclose(salt_space.groups[0].cm_trial, [12.5, 12.0, 12.0])
    assert_allclose(salt_space.groups[0].cm, [10.5, 10.0, 10.0])

    salt_space.accept_group(0)

    assert_allclose(salt_space.groups[0].cm, [12.5, 12.0, 12.0])
    assert salt_space.check() == []

    salt_space.trial.positions[[2, 3]] += 2.0
    salt_space.update_mass_center(1)
    salt_space.undo_group(1)

    assert_allclose(salt_space.trial.positions[2], [25.0, 25.0, 25.0])
    assert_allclose(salt_space.groups[1].cm_trial, [25.0, 25.5, 25.0])


def test_space_volume(salt_space):
    """Test the volume handling of the `Space` class."""
    assert salt_space.volume() == pytest.approx(64000.0)

    salt_space.set_volume(8000.0)

    assert salt_space.volume(trial=True) == pytest.approx(8000.0)
    assert salt_space.volume() == pytest.approx(64000.0)
    assert_allclose(salt_space.trial.positions, salt_space.atoms.positions)

    salt_space.undo_volume()

    assert salt_space.volume(trial=True) == pytest.approx(64000.0)

    salt_space.set_volume(27000.0)
    salt_space.accept_volume()

    assert salt_space.volume() == pytest.approx(27000.0)
    assert_allclose(salt_space.atoms.cell.lengths(), [30.0, 30.0, 30.0])


def test_space_periodic_mass_center(species):
    """Test that mass centers are computed across periodic boundaries."""
    space = Space(np.eye(3) * 40.0, species=species)
    space.add_group("dimer", ["M", "M"], [[39.0, 5.0, 5.0], [0.5, 5.0, 5.0]])

    assert_allclose(space.groups[0].cm, [39.75, 5.0, 5.0])
    assert_allclose(space.mass_center(0, trial=False), [39.75, 5.0, 5.0])

    positions = space.create_particles(["M"], [[41.0, -1.0, 5.0]]).positions

    assert_allclose(positions, [[1.0, 39.0, 5.0]])


def test_space_from_atoms():
    """Test the creation of a `Space` from an `Atoms` object."""
    water = molecule("H2O")
    other = molecule("H2O")
    other.translate([10.0, 0.0, 0.0])

    atoms = water + other + Atoms("Na", positions=[[5.0, 10.0, 5.0]])
    atoms.set_cell(np.eye(3) * 30.0)
    atoms.set_pbc(True)
    atoms.wrap()

    species = [
        Species("O", charge=-0.8, mass=16.0, symbol="O"),
        Species("H", charge=0.4, mass=1.0, symbol="H"),
        Species("Na", charge=1.0, mass=23.0, symbol="Na"),
    ]

    space = Space.from_atoms(atoms, species, cutoff=1.2)

    assert len(space.groups) == 3
    assert space.find_molecules("H2O") == [0, 1]
    assert space.find_atomic("atoms") == [2]
    assert space.count("H") == 4
    assert space.count("Na") == 1
    assert space.atoms.get_chemical_symbols() == atoms.get_chemical_symbols()
    assert_allclose(space.atoms.positions, atoms.positions)
    assert space.check() == []

    pool = Space.from_atoms(atoms, species)

    assert len(pool.groups) == 1
    assert not pool.groups[0].molecular
    assert len(pool.groups[0]) == 7

    mixed = atoms[[0, 6, 1, 2, 3, 4, 5]]

    with pytest.raises(ValueError, match="not contiguous"):
        Space.from_atoms(mixed, species, cutoff=1.2)


def test_space_to_dict(salt_space):
    """Test the `to_dict` method of the `Space` class."""
    data = salt_space.to_dict()

    assert data["name"] == "Space"
    assert len(data["atoms"]) == 12
    assert data["atoms"] is not salt_space.atoms
    assert [item["kwargs"]["name"] for item in data["species"]] == ["Na", "Cl", "M", "HA", "A"]
    assert data["groups"][2] == {"start": 4, "length": 8, "name": "salt", "molecular": False}
    assert Species.from_dict(data["species"][0]) == salt_space.species["Na"]
