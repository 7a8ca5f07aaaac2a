from __future__ import annotations

import numpy as np
import pytest
from numpy.random import PCG64
from numpy.random import Generator as RNG
from numpy.testing import assert_allclose
from tests.conftest import zero_pair

from mcmoves.energy import PairHamiltonian
from mcmoves.moves import ClusterMove, TranslateRotate, TranslateRotateCluster
from mcmoves.moves.cluster import contact_probability
from mcmoves.moves.rigid import intra_distances
from mcmoves.space import Space, geometry


@pytest.fixture(name="cluster_space")
def cluster_space_fixture(species) -> Space:
    """Two dimers in contact and one far away in a periodic cube of 40 Å."""
    space = Space(np.eye(3) * 40.0, species=species)

    space.add_group("mol", ["M", "M"], [[10.0, 10.0, 10.0], [11.0, 10.0, 10.0]])
    space.add_group("mol", ["M", "M"], [[10.0, 12.0, 10.0], [11.0, 12.0, 10.0]])
    space.add_group("mol", ["M", "M"], [[30.0, 30.0, 30.0], [31.0, 30.0, 30.0]])

    return space


@pytest.fixture(name="ion_space")
def ion_space_fixture(species) -> Space:
    """One dimer with a sodium ion next to it and a chloride ion far away."""
    space = Space(np.eye(3) * 40.0, species=species)

    space.add_group("mol", ["M", "M"], [[20.0, 20.0, 20.0], [21.0, 20.0, 20.0]])
    space.add_group("ions", ["Na", "Cl"], [[20.0, 21.5, 20.0], [5.0, 5.0, 5.0]], molecular=False)

    return space


def test_contact_probability(ion_space):
    """Test the `contact_probability` function."""
    atoms = ion_space.atoms

    assert contact_probability(ion_space, atoms, 0, 2, 0.5) == 1.0
    assert contact_probability(ion_space, atoms, 0, 3, 0.5) == 0.0
    assert contact_probability(ion_space, atoms, 0, 3, 30.0) == 1.0

    empty = Space(np.eye(3) * 40.0, species=list(ion_space.species.values()))
    empty.add_group("mol", ["M"], [[1.0, 1.0, 1.0]])

    assert contact_probability(empty, empty.atoms, 0, 0, 10.0) == 0.0


def test_cluster_move_isolated(salt_space, ideal):
    """Test that molecules far apart always move alone with a unit bias."""
    move = ClusterMove(
        salt_space,
        ideal,
        rng=RNG(PCG64(9)),
        targets={"dimer": {"dp1": 1.0, "dp2": 0.5}},
        threshold=0.1,
    )

    for _ in range(30):
        move.move()

        assert len(move.cluster) == 1

    assert move.acceptance == 1.0
    assert move.bias_sum == move.bias_count
    assert move.too_big_count == 0
    assert salt_space.check() == []
    assert "Average cluster size" in move.describe()


def test_cluster_move_rigid(cluster_space):
    """Test that clustered molecules move as one rigid body."""
    move = ClusterMove(
        cluster_space,
        PairHamiltonian(cluster_space, zero_pair),
        rng=RNG(PCG64(9)),
        targets={"mol": {"dp1": 2.0, "dp2": 1.0}},
        threshold=1.5,
    )

    distances = intra_distances(cluster_space.atoms.positions[:4], cluster_space.atoms)

    for _ in range(40):
        move.move()

        if move.moved_group in (0, 1):
            assert sorted(move.cluster) == [0, 1]
        else:
            assert move.cluster == [2]

        assert_allclose(
            intra_distances(cluster_space.atoms.positions[:4], cluster_space.atoms),
            distances,
            atol=1e-8,
        )

    assert move.acceptance == 1.0
    assert move.rotated
    assert cluster_space.check() == []


def test_cluster_move_translation(cluster_space):
    """Test that a cluster without rotation is translated by half the step."""
    move = ClusterMove(
        cluster_space,
        PairHamiltonian(cluster_space, zero_pair),
        rng=RNG(PCG64(9)),
        targets={"mol": {"dp1": 2.0}},
        threshold=1.5,
        static=["mol"],
    )

    for _ in range(20):
        before = [group.cm.copy() for group in cluster_space.groups]
        move.move()

        assert not move.rotated
        assert len(move.cluster) == 1

        shift = geometry.minimum_image(
            cluster_space.groups[move.moved_group].cm - before[move.moved_group],
            cluster_space.atoms,
        )

        assert np.linalg.norm(shift) == pytest.approx(1.0)

    data = move.to_dict()

    assert data["kwargs"]["threshold"] == 1.5
    assert data["kwargs"]["static"] == ["mol"]


def test_translate_rotate_cluster(ion_space):
    """Test that close mobile particles follow the moved molecule."""
    hamiltonian = PairHamiltonian(ion_space, zero_pair)
    move = TranslateRotateCluster.build(
        ion_space,
        hamiltonian,
        RNG(PCG64(9)),
        mobile="ions",
        threshold=0.5,
        targets={"mol": {"dp1": 1.0, "dp2": 0.5}},
    )

    assert isinstance(move.inner, TranslateRotate)
    assert move.rng is move.inner.rng

    chloride = ion_space.atoms.positions[3].copy()

    for _ in range(30):
        move.move()

        assert move.members == [2]
        assert move.bias == 1.0
        assert np.sqrt(
            geometry.sqdist(ion_space.atoms.positions[0], ion_space.atoms.positions[2], ion_space.atoms)
        ) == pytest.approx(1.5)

    assert move.acceptance == 1.0
    assert_allclose(ion_space.atoms.positions[3], chloride)
    assert ion_space.check() == []
    assert "Average cluster size" in move.info()

    data = move.to_dict()

    assert data["name"] == "TranslateRotateCluster"
    assert data["kwargs"]["mobile"] == "ions"
    assert data["kwargs"]["threshold"] == 0.5
    assert data["kwargs"]["move"]["name"] == "TranslateRotate"

    with pytest.raises(ValueError, match="expected one atomic group"):
        TranslateRotateCluster(move.inner, "mol")


def decaying_probability(space, config, group_index, index):
    """Probability falling off with the distance to the first particle of the group."""
    first = space.groups[group_index].start
    distance = np.sqrt(geometry.sqdist(config.positions[first], config.positions[index], config))

    return 0.5 * float(np.exp(-distance / 20.0))


def trial_only_probability(space, config, group_index, index):
    """Every particle joins the cluster in the trial configuration, none in the current one."""
    return 1.0 if config is space.trial else 0.0


def test_translate_rotate_cluster_bias(ion_space):
    """Test that a fractional cluster probability biases the returned energy."""
    move = TranslateRotateCluster.build(
        ion_space,
        PairHamiltonian(ion_space, zero_pair),
        RNG(PCG64(5)),
        mobile="ions",
        probability=decaying_probability,
        targets={"mol": {"dp1": 2.0, "dp2": 1.0}},
    )
    move.select_target()

    mobile = ion_space.groups[move.mobile_group].indices
    biased = 0

    for _ in range(20):
        assert move.propose_trial()

        energy = move.energy_change()
        outside = [int(i) for i in mobile if int(i) not in move.members]
        expected = np.prod(
            [
                (1.0 - decaying_probability(ion_space, ion_space.trial, 0, i))
                / (1.0 - decaying_probability(ion_space, ion_space.atoms, 0, i))
                for i in outside
            ]
        )

        assert move.bias == pytest.approx(expected)
        assert energy == pytest.approx(move.alternate_return_energy - np.log(expected))

        if outside:
            assert abs(move.bias - 1.0) > 1e-6
            biased += 1

        move.reject()
        ion_space.change.clear()

    assert biased > 0
    assert ion_space.check() == []


def test_cluster_bias_rejection(ion_space, cluster_space):
    """Test that a cluster that cannot be built in reverse is always rejected."""
    positions = ion_space.atoms.positions.copy()
    move = TranslateRotateCluster.build(
        ion_space,
        PairHamiltonian(ion_space, zero_pair),
        RNG(PCG64(5)),
        mobile="ions",
        probability=trial_only_probability,
        targets={"mol": {"dp1": 1.0, "dp2": 0.5}},
    )

    move.move(10)

    assert move.trial_count == 10
    assert move.accepted_count == 0
    assert move.members == []
    assert move.bias == 0.0
    assert move.bias_sum == 0.0
    assert_allclose(ion_space.atoms.positions, positions)
    assert ion_space.check() == []

    positions = cluster_space.atoms.positions.copy()
    cluster = ClusterMove(
        cluster_space,
        PairHamiltonian(cluster_space, zero_pair),
        rng=RNG(PCG64(5)),
        targets={"mol": {"dp1": 1.0, "dp2": 0.5}},
        probability=trial_only_probability,
    )

    cluster.move(10)

    assert cluster.accepted_count == 0
    assert len(cluster.cluster) == 1
    assert cluster.bias_sum == 0.0
    assert_allclose(cluster_space.atoms.positions, positions)
    assert cluster_space.check() == []


def test_cluster_move_too_big(species):
    """Test that a cluster spanning half of the box is translated instead of rotated."""
    space = Space(np.eye(3) * 3.6, species=species)
    space.add_group("mol", ["M", "M"], [[1.0, 1.0, 1.0], [2.0, 1.0, 1.0]])
    space.add_group("mol", ["M", "M"], [[1.0, 2.5, 1.0], [2.0, 2.5, 1.0]])

    move = ClusterMove(
        space,
        PairHamiltonian(space, zero_pair),
        rng=RNG(PCG64(9)),
        targets={"mol": {"dp1": 1.0, "dp2": 1.0}},
        threshold=1.0,
    )

    distances = intra_distances(space.atoms.positions, space.atoms)

    for _ in range(15):
        before = [group.cm.copy() for group in space.groups]
        move.move()

        assert not move.rotated
        assert sorted(move.cluster) == [0, 1]

        shifts = [
            geometry.minimum_image(space.groups[n].cm - before[n], space.atoms) for n in (0, 1)
        ]

        assert np.linalg.norm(shifts[0]) == pytest.approx(0.5)
        assert_allclose(shifts[0], shifts[1], atol=1e-8)
        assert_allclose(intra_distances(space.atoms.positions, space.atoms), distances, atol=1e-8)

    assert move.too_big_count == 15
    assert move.acceptance == 1.0
    assert "Too big for rotation" in move.describe()
    assert space.check() == []


def test_cluster_move_static_per_center(species):
    """Test that the molecules kept out of a cluster depend on the center molecule."""
    space = Space(np.eye(3) * 40.0, species=species)
    space.add_group("mol", ["M", "M"], [[10.0, 10.0, 10.0], [11.0, 10.0, 10.0]])
    space.add_group("mol", ["M", "M"], [[10.0, 12.0, 10.0], [11.0, 12.0, 10.0]])
    space.add_group("wall", ["M", "M"], [[10.0, 14.0, 10.0], [11.0, 14.0, 10.0]])

    hamiltonian = PairHamiltonian(space, zero_pair)
    move = ClusterMove(
        space,
        hamiltonian,
        rng=RNG(PCG64(9)),
        targets={"mol": {"dp1": 1.0}, "wall": {"dp1": 1.0}},
        threshold=1.5,
        static={"wall": ["mol"]},
    )

    assert move.candidates(0) == [0, 1, 2]
    assert move.candidates(2) == [2]

    move.cluster = [2]
    move.get_cluster_around_molecule(2)

    assert move.cluster == [2]

    move.cluster = [0]
    move.get_cluster_around_molecule(0)

    assert sorted(move.cluster) == [0, 1, 2]
    assert move.to_dict()["kwargs"]["static"] == {"wall": ["mol"]}

    shared = ClusterMove(
        space,
        hamiltonian,
        rng=RNG(PCG64(9)),
        targets={"mol": {"dp1": 1.0}},
        threshold=1.5,
        static=["mol"],
    )
    shared.cluster = [0]
    shared.get_cluster_around_molecule(0)

    assert shared.cluster == [0]
    assert shared.candidates(2) == [2]
