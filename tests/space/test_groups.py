from __future__ import annotations

import numpy as np
import pytest
from numpy.testing import assert_array_equal

from mcmoves.space import Change, Group


def test_group(rng):
    """Test the `Group` class."""
    group = Group(start=4, length=3, name="water")

    assert group.stop == 7
    assert group.molecular
    assert len(group) == 3
    assert list(group) == [4, 5, 6]
    assert_array_equal(group.indices, [4, 5, 6])
    assert group.contains(6)
    assert not group.contains(7)
    assert not group.empty()

    assert {group.random(rng) for _ in range(100)} == {4, 5, 6}

    group.cm_trial = np.array([1.0, 2.0, 3.0])
    group.accept()

    assert_array_equal(group.cm, [1.0, 2.0, 3.0])

    group.cm_trial[0] = 5.0

    assert group.cm[0] == 1.0

    group.undo()

    assert_array_equal(group.cm_trial, [1.0, 2.0, 3.0])

    empty = Group(start=7, length=0, name="salt", molecular=False)

    assert empty.empty()

    with pytest.raises(ValueError, match="empty group"):
        empty.random(rng)


def test_change():
    """Test the `Change` class."""
    change = Change()

    assert change.empty()
    assert not change

    change.add(1, 5)
    change.add(1, 6)
    change.add(2)

    assert change.groups == {1: {5, 6}, 2: set()}
    assert change

    change.add_group(1)

    assert change.groups[1] == set()

    change.clear()

    assert change.empty()

    change.geometry_change = True
    change.dV = 10.0

    assert not change.empty()

    change.clear()

    assert not change.geometry_change
    assert change.dV == 0.0
