from __future__ import annotations

from io import StringIO

import numpy as np
import pytest
from numpy.random import PCG64
from numpy.random import Generator as RNG
from tests.conftest import zero_pair

from mcmoves.energy import PairHamiltonian
from mcmoves.io import Logger
from mcmoves.mc import MoveStorage, Propagator
from mcmoves.moves import AtomicTranslation, GrandCanonicalSalt, TranslateRotate
from mcmoves.space import Space


@pytest.fixture(name="propagator")
def propagator_fixture(salt_space, soft) -> Propagator:
    propagator = Propagator(salt_space, soft, seed=42)

    propagator.add_move(AtomicTranslation(salt_space, soft, rng=propagator.rng, group="salt"))
    propagator.add_move(
        TranslateRotate(
            salt_space, soft, rng=propagator.rng, targets={"dimer": {"dp1": 1.0, "dp2": 0.5}}
        ),
        probability=0.5,
    )

    return propagator


def test_propagator(propagator, salt_space, soft):
    """Test the `Propagator` class."""
    assert list(propagator.moves) == ["AtomicTranslation", "TranslateRotate"]
    assert propagator.moves["TranslateRotate"].probability == 0.5
    assert propagator.uinit is None
    assert propagator.drift() == 0.0

    propagator.run(20)

    assert propagator.step_count == 20
    assert propagator.uinit == pytest.approx(soft.system_energy(salt_space.atoms) - propagator.dusum)
    assert propagator.drift() == pytest.approx(0.0, abs=1e-8)
    assert propagator.current_energy() == pytest.approx(soft.system_energy(salt_space.atoms))
    assert propagator.test() == []
    assert salt_space.check() == []

    trials = sum(storage.move.trial_count for storage in propagator.moves.values())

    assert trials >= 2 * 20

    info = propagator.info()

    assert "Energy drift [kT]" in info
    assert "[AtomicTranslation] weight 1.0" in info
    assert "[TranslateRotate] weight 0.5, tag `moltransrot`" in info


def test_propagator_errors(salt_space, ideal):
    """Test the errors of the `Propagator` class."""
    propagator = Propagator(salt_space, ideal, seed=42)

    with pytest.raises(ValueError, match="no moves"):
        propagator.run(1)

    move = AtomicTranslation(salt_space, ideal, rng=propagator.rng, group="salt")

    with pytest.raises(ValueError, match="non-negative"):
        propagator.add_move(move, probability=-1.0)

    other = Space(np.eye(3) * 10.0, species=list(salt_space.species.values()))
    other.add_group("salt", ["Na"], [[1.0, 1.0, 1.0]], molecular=False)

    with pytest.raises(ValueError, match="does not act on the space"):
        propagator.add_move(AtomicTranslation(other, PairHamiltonian(other, zero_pair), group="salt"))


def test_propagator_names(salt_space, ideal):
    """Test that repeated move names receive a numbered suffix."""
    propagator = Propagator(salt_space, ideal, seed=42)

    for _ in range(3):
        propagator.add_move(AtomicTranslation(salt_space, ideal, rng=propagator.rng, group="salt"))

    propagator.add_move(
        MoveStorage(AtomicTranslation(salt_space, ideal, group="salt"), 2.0), name="custom"
    )

    assert list(propagator.moves) == [
        "AtomicTranslation",
        "AtomicTranslation_2",
        "AtomicTranslation_3",
        "custom",
    ]
    assert propagator.moves["custom"].probability == 2.0


def test_propagator_selection(propagator):
    """Test the number and weights of the move selections of one step."""
    assert len(list(propagator.yield_moves())) == 2

    propagator.max_cycles = 3000
    names = list(propagator.yield_moves())

    assert len(names) == 3000
    assert names.count("TranslateRotate") / 3000 == pytest.approx(1 / 3, abs=0.03)

    propagator.moves["TranslateRotate"].probability = 0.0

    assert set(propagator.yield_moves()) == {"AtomicTranslation"}

    propagator.moves["AtomicTranslation"].probability = 0.0

    assert list(propagator.yield_moves()) == []


def test_propagator_from_config(salt_space, ideal):
    """Test building a `Propagator` from configuration tags."""
    propagator = Propagator.from_config(
        [
            {"atomtranslate": {"group": "salt"}},
            {"moltransrot": {"targets": {"dimer": {"dp1": 1.0}}, "probability": 0.5}},
            {"atomgc": {"group": "salt", "probability": 0.2}},
            {"atomtranslate": {"targets": {"dimer": {}}}},
        ],
        salt_space,
        ideal,
        seed=7,
        max_cycles=4,
    )

    assert list(propagator.moves) == ["atomtranslate", "moltransrot", "atomgc", "atomtranslate_2"]
    assert isinstance(propagator.moves["atomgc"].move, GrandCanonicalSalt)
    assert propagator.moves["atomgc"].probability == 0.2
    assert propagator.moves["moltransrot"].move.targets["dimer"].dp1 == 1.0
    assert all(storage.move.rng is propagator.rng for storage in propagator.moves.values())
    assert propagator.seed == 7
    assert propagator.max_cycles == 4

    propagator.run(5)

    assert salt_space.check() == []
    assert propagator.drift() == pytest.approx(0.0, abs=1e-10)

    single = Propagator.from_config({"atomtranslate": {"group": "salt"}}, salt_space, ideal)

    assert list(single.moves) == ["atomtranslate"]

    with pytest.raises(KeyError, match="not registered"):
        Propagator.from_config({"teleport": {}}, salt_space, ideal)


def test_propagator_serialization(propagator, salt_space, soft):
    """Test the `to_dict` and `from_dict` methods of the `Propagator` class."""
    propagator.run(5)

    data = propagator.to_dict()

    assert data["name"] == "Propagator"
    assert data["kwargs"]["seed"] == 42
    assert data["kwargs"]["max_cycles"] is None
    assert data["attributes"]["step_count"] == 5
    assert data["moves"]["TranslateRotate"]["probability"] == 0.5
    assert data["moves"]["AtomicTranslation"]["move"]["name"] == "AtomicTranslation"

    restored = Propagator.from_dict(data, salt_space, soft)

    assert restored.step_count == 5
    assert restored.uinit == propagator.uinit
    assert restored.dusum == propagator.dusum
    assert list(restored.moves) == list(propagator.moves)
    assert restored.moves["TranslateRotate"].probability == 0.5
    assert restored.moves["AtomicTranslation"].move.rng is restored.rng
    assert (
        restored.moves["AtomicTranslation"].move.trial_count
        == propagator.moves["AtomicTranslation"].move.trial_count
    )
    assert restored.rng.random() == propagator.rng.random()

    overridden = Propagator.from_dict(data, salt_space, soft, max_cycles=10)

    assert overridden.max_cycles == 10


def test_propagator_logging(salt_space, ideal):
    """Test the default logger of the `Propagator` class."""
    string_io = StringIO()

    propagator = Propagator(salt_space, ideal, seed=1, logfile=string_io)
    move = AtomicTranslation(salt_space, ideal, rng=propagator.rng, group="salt")
    propagator.add_move(move)

    assert isinstance(propagator.default_logger, Logger)

    propagator.default_logger.add_move_fields(move, "trans")
    propagator.run(3)

    lines = string_io.getvalue().splitlines()

    assert len(lines) == 1 + 4
    assert lines[0].split() == ["Step", "Energy[kT]", "Drift[kT]", "Volume[Å3]", "Acc[trans]"]
    assert lines[-1].split()[0] == "3"
    assert float(lines[-1].split()[3]) == pytest.approx(salt_space.volume())

    propagator.run(2)

    assert len(string_io.getvalue().splitlines()) == 1 + 4 + 2

    propagator.close()

    assert string_io.closed


def test_propagator_average_energy(salt_space, soft):
    """Test the running average of the energy."""
    propagator = Propagator(salt_space, soft, seed=3)
    propagator.add_move(
        AtomicTranslation(salt_space, soft, rng=RNG(PCG64(3)), group="salt")
    )

    assert propagator.average_energy == 0.0

    energies = []

    for _ in propagator.irun(10):
        energies.append(propagator.current_energy())

    assert propagator.average_energy == pytest.approx(np.mean(energies))
