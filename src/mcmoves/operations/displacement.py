from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np

from mcmoves.operations.core import Operation
from mcmoves.space.geometry import rotation_matrix

if TYPE_CHECKING:
    from numpy.random import Generator

    from mcmoves.typing import Direction, Displacement, RotationMatrix


class DisplacementOperation(Operation):
    """
    Base class for displacement operations.

    Parameters
    ----------
    step_size : float, optional
        The step size of the operation (default is 1.0).

    Attributes
    ----------
    step_size : float
        The step size of the operation.
    """

    __slots__ = ("step_size",)

    def __init__(self, step_size: float = 1.0) -> None:
        self.step_size = step_size

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "kwargs": {"step_size": self.step_size}}


class Box(DisplacementOperation):
    """
    Uniform displacement inside a box, ``direction * step_size * (r - 0.5)`` per axis.

    The variance along an unmasked axis is ``step_size**2 / 12``.

    Parameters
    ----------
    step_size : float, optional
        Edge length of the box (default is 1.0).
    direction : Direction, optional
        Per-axis mask or weight, by default (1, 1, 1).
    """

    __slots__ = ("direction",)

    def __init__(
        self, step_size: float = 1.0, direction: Direction | None = None
    ) -> None:
        super().__init__(step_size)
        self.direction = np.ones(3) if direction is None else np.asarray(direction, dtype=float)

    def calculate(
        self, rng: Generator, step_size: float | None = None
    ) -> Displacement:
        step_size = self.step_size if step_size is None else step_size
        return self.direction * step_size * (rng.random(3) - 0.5)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"]["direction"] = self.direction.tolist()
        return data


class Sphere(DisplacementOperation):
    """
    Displacement of length `step_size` in a uniformly random direction.

    Parameters
    ----------
    step_size : float, optional
        The radius of the sphere (default is 1.0).
    """

    def calculate(
        self, rng: Generator, step_size: float | None = None
    ) -> Displacement:
        step_size = self.step_size if step_size is None else step_size

        phi = rng.uniform(0, 2 * np.pi)
        cos_theta = rng.uniform(-1, 1)
        sin_theta = np.sqrt(1 - cos_theta**2)

        return step_size * np.array(
            [sin_theta * np.cos(phi), sin_theta * np.sin(phi), cos_theta]
        )


class Rotation(DisplacementOperation):
    """
    Rotation by ``step_size * (r - 0.5)`` radians about a uniformly random axis.

    Parameters
    ----------
    step_size : float, optional
        Width of the angle distribution in radians (default is 1.0).

    Attributes
    ----------
    axis : Direction
        Unit axis of the last rotation.
    angle : float
        Angle of the last rotation.
    """

    __slots__ = ("angle", "axis")

    def __init__(self, step_size: float = 1.0) -> None:
        super().__init__(step_size)
        self.axis: Direction = np.array([0.0, 0.0, 1.0])
        self.angle: float = 0.0

    def calculate(
        self, rng: Generator, step_size: float | None = None
    ) -> RotationMatrix:
        step_size = self.step_size if step_size is None else step_size

        self.angle = step_size * (rng.random() - 0.5)
        self.axis = Sphere().calculate(rng)

        return rotation_matrix(self.axis, self.angle)
