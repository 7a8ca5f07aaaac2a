"""Boundary-aware geometry helpers acting on the cell and periodicity of an `Atoms` object."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from ase.geometry import find_mic, wrap_positions

if TYPE_CHECKING:
    from ase.atoms import Atoms
    from numpy.random import Generator

    from mcmoves.typing import Masses, Positions, RotationMatrix, Vector


def minimum_image(vectors: np.ndarray, atoms: Atoms) -> np.ndarray:
    """
    Apply the minimum image convention to distance vectors.

    Parameters
    ----------
    vectors : np.ndarray
        Distance vectors, shape (3,) or (N, 3).
    atoms : Atoms
        The configuration providing the cell and periodic boundary conditions.

    Returns
    -------
    np.ndarray
        The shortest periodic images of `vectors`, same shape as the input.
    """
    vectors = np.asarray(vectors, dtype=float)

    if not atoms.pbc.any():
        return vectors

    mic, _ = find_mic(np.atleast_2d(vectors), atoms.cell, atoms.pbc)

    return mic.reshape(vectors.shape)


def sqdist(a: np.ndarray, b: np.ndarray, atoms: Atoms) -> np.ndarray:
    """Squared minimum image distance between `a` and `b` (broadcast over rows)."""
    vectors = minimum_image(np.asarray(b) - np.asarray(a), atoms)
    return np.sum(vectors**2, axis=-1)


def boundary(positions: np.ndarray, atoms: Atoms) -> np.ndarray:
    """Wrap positions back into the cell along periodic directions."""
    positions = np.asarray(positions, dtype=float)

    if not atoms.pbc.any():
        return positions

    wrapped = wrap_positions(np.atleast_2d(positions), atoms.cell, atoms.pbc, eps=0.0)

    return wrapped.reshape(positions.shape)


def collision(positions: np.ndarray, atoms: Atoms) -> bool:
    """
    Check whether any position lies outside the cell along a non-periodic direction.

    Parameters
    ----------
    positions : np.ndarray
        Positions to test, shape (3,) or (N, 3).
    atoms : Atoms
        The configuration providing the cell.

    Returns
    -------
    bool
        True if a hard wall is crossed.
    """
    if atoms.pbc.all():
        return False

    positions = np.atleast_2d(positions)

    if positions.size == 0:
        return False

    scaled = atoms.cell.scaled_positions(positions)[:, ~atoms.pbc]

    return bool(np.any((scaled < 0.0) | (scaled > 1.0)))


def random_position(atoms: Atoms, rng: Generator) -> Vector:
    """Uniformly distributed random position inside the cell."""
    return rng.random(3) @ atoms.cell.array


def volume(atoms: Atoms) -> float:
    """Volume of the cell."""
    return float(abs(atoms.cell.volume))


def mass_center(positions: Positions, masses: Masses, atoms: Atoms) -> Vector:
    """
    Mass center of a set of positions, unwrapped around the first position.

    Parameters
    ----------
    positions : Positions
        Positions of the particles.
    masses : Masses
        Weights of the particles.
    atoms : Atoms
        The configuration providing the cell and periodicity.

    Returns
    -------
    Vector
        The boundary-wrapped mass center. Zero for an empty selection.
    """
    positions = np.asarray(positions, dtype=float)

    if len(positions) == 0:
        return np.zeros(3)

    reference = positions[0]
    unwrapped = reference + minimum_image(positions - reference, atoms)
    center = np.average(unwrapped, axis=0, weights=masses)

    return boundary(center, atoms)


def rotation_matrix(axis: Vector, angle: float) -> RotationMatrix:
    """Rotation matrix for a right-handed rotation of `angle` radians about `axis`."""
    axis = np.asarray(axis, dtype=float)
    axis = axis / np.linalg.norm(axis)

    cross = np.array(
        [
            [0.0, -axis[2], axis[1]],
            [axis[2], 0.0, -axis[0]],
            [-axis[1], axis[0], 0.0],
        ]
    )

    return (
        np.eye(3) + np.sin(angle) * cross + (1.0 - np.cos(angle)) * (cross @ cross)
    )


def rotate(
    positions: Positions, matrix: RotationMatrix, origin: Vector, atoms: Atoms
) -> Positions:
    """Rotate positions about `origin`, using minimum image vectors, then wrap."""
    vectors = minimum_image(np.asarray(positions) - origin, atoms)
    return boundary(origin + vectors @ matrix.T, atoms)
