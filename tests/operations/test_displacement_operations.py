from __future__ import annotations

import numpy as np
import pytest
from numpy.testing import assert_allclose

from mcmoves.operations import Box, Rotation, Sphere
from mcmoves.registry import get_class


def test_box(rng):
    """Test the `Box` class."""
    box = Box(2.0)

    displacements = np.array([box.calculate(rng) for _ in range(5000)])

    assert np.all(np.abs(displacements) <= 1.0)
    assert_allclose(displacements.var(axis=0), 4.0 / 12.0, rtol=0.1)

    box.direction = np.array([1.0, 0.0, 1.0])

    displacements = np.array([box.calculate(rng, 0.5) for _ in range(100)])

    assert np.all(displacements[:, 1] == 0.0)
    assert np.all(np.abs(displacements) <= 0.25)

    data = box.to_dict()

    assert data == {"name": "Box", "kwargs": {"step_size": 2.0, "direction": [1.0, 0.0, 1.0]}}

    restored = get_class("Box").from_dict(data)

    assert restored.step_size == 2.0
    assert_allclose(restored.direction, [1.0, 0.0, 1.0])


def test_sphere(rng):
    """Test the `Sphere` class."""
    sphere = Sphere(0.7)

    displacements = np.array([sphere.calculate(rng) for _ in range(2000)])

    assert_allclose(np.linalg.norm(displacements, axis=1), 0.7)
    assert_allclose(displacements.mean(axis=0), 0.0, atol=0.05)

    assert np.linalg.norm(sphere.calculate(rng, 2.0)) == pytest.approx(2.0)


def test_rotation(rng):
    """Test the `Rotation` class."""
    rotation = Rotation(0.5)

    for _ in range(100):
        matrix = rotation.calculate(rng)

        assert abs(rotation.angle) <= 0.25
        assert np.linalg.norm(rotation.axis) == pytest.approx(1.0)
        assert_allclose(matrix @ matrix.T, np.eye(3), atol=1e-12)
        assert_allclose(matrix @ rotation.axis, rotation.axis, atol=1e-12)

    matrix = rotation.calculate(rng, 0.0)

    assert rotation.angle == 0.0
    assert_allclose(matrix, np.eye(3), atol=1e-12)


def test_random_streams(rng):
    """Test that every operation draws a fixed amount of random numbers."""
    reference = np.random.Generator(np.random.PCG64(42))

    Box().calculate(rng, 0.0)
    Sphere().calculate(rng, 0.0)
    Rotation().calculate(rng, 0.0)

    reference.random(3)
    reference.uniform(0, 1)
    reference.uniform(0, 1)
    reference.random()
    reference.uniform(0, 1)
    reference.uniform(0, 1)

    assert rng.random() == reference.random()
