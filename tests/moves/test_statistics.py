from __future__ import annotations

import pytest

from mcmoves.moves import AcceptanceMap, MoveStatistics


def test_move_statistics():
    """Test the `MoveStatistics` class."""
    record = MoveStatistics()

    assert record.ratio == 0.0
    assert record.msd == 0.0

    record = MoveStatistics(trials=4, accepted=1, msd_sum=2.0)

    assert record.ratio == 0.25
    assert record.msd == 0.5


def test_acceptance_map():
    """Test the `AcceptanceMap` class."""
    statistics = AcceptanceMap()

    statistics.accept("Na", True, 0.12)
    statistics.accept("Na", False, 5.0)
    statistics.accept(("0", "1"), True)

    assert len(statistics) == 2
    assert "Na" in statistics
    assert "Cl" not in statistics
    assert list(statistics) == ["Na", ("0", "1")]

    assert statistics.ratio("Na") == 0.5
    assert statistics.msd("Na") == pytest.approx(0.06)
    assert statistics.ratio("Cl") == 0.0
    assert statistics.msd("Cl") == 0.0

    assert statistics.to_dict()["Na"] == {"trials": 2, "accepted": 1, "msd_sum": 0.12}

    lines = statistics.info(key_label="Species").split("\n")

    assert len(lines) == 3
    assert lines[0].startswith("Species")
    assert "MSD[Å²]" in lines[0]
    assert lines[1].startswith("Na")
    assert "50.00%" in lines[1]
