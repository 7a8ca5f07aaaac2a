from __future__ import annotations

import math

import numpy as np
import pytest
from numpy.random import PCG64
from numpy.random import Generator as RNG

from mcmoves.mc import Criteria, MetropolisCriteria
from mcmoves.registry import get_typed_class


def test_metropolis_criteria():
    """Test the `MetropolisCriteria` class."""
    criteria = MetropolisCriteria()
    rng = RNG(PCG64(5))
    reference = RNG(PCG64(5))

    assert criteria.evaluate(-1.0, rng)
    assert criteria.evaluate(0.0, rng)
    assert criteria.evaluate(-math.inf, rng)
    assert not criteria.evaluate(math.inf, rng)

    reference.random(4)

    assert rng.random() == reference.random()

    accepted = np.mean([criteria.evaluate(1.0, rng) for _ in range(20_000)])

    assert accepted == pytest.approx(math.exp(-1.0), abs=0.01)


def test_metropolis_criteria_nan():
    """Test that a NaN energy change is rejected with a warning."""
    criteria = MetropolisCriteria()

    with pytest.warns(UserWarning, match="NaN"):
        assert not criteria.evaluate(math.nan, RNG(PCG64(5)))


def test_criteria_serialization():
    """Test the `to_dict` and `from_dict` methods of the `Criteria` classes."""
    data = MetropolisCriteria().to_dict()

    assert data == {"name": "MetropolisCriteria"}

    criteria_class = get_typed_class(data["name"], Criteria)

    assert criteria_class is MetropolisCriteria
    assert isinstance(criteria_class.from_dict(data), MetropolisCriteria)

    with pytest.raises(TypeError):
        Criteria()  # type: ignore[abstract]
