"""Volume move of the isothermal-isobaric ensemble."""

from __future__ import annotations

import math
from typing import Any

import numpy as np
from ase.units import _Nav

from mcmoves.moves.core import BaseMove
from mcmoves.space import geometry

MILLIMOLAR = 1e-3 * _Nav * 1e-27
"""Number density in Å⁻³ of a 1 mM ideal solution, i.e. a pressure of 1 mM in kT/Å³."""


class Isobaric(BaseMove):
    """
    Isotropic volume fluctuations at constant pressure.

    The trial volume is ``V' = exp(ln V + (r - 0.5) dp)``. Molecular groups are translated
    so that their mass centers scale with ``(V'/V)^(1/3)`` while atomic particles are
    scaled individually. The energy is the full system energy difference plus
    ``P ΔV - (N + 1) ln(V'/V)``, N counting molecular groups and atomic particles.

    Parameters
    ----------
    *args
        Positional arguments of [`BaseMove`][mcmoves.moves.core.BaseMove].
    dp : float
        Displacement parameter of the logarithm of the volume. Values below 1e-6 disable the move.
    pressure : float
        Pressure in mM.
    **kwargs
        Keyword arguments of [`BaseMove`][mcmoves.moves.core.BaseMove].
    """

    title = "Isobaric Volume Fluctuations"

    def __init__(self, *args, dp: float, pressure: float, **kwargs) -> None:
        super().__init__(*args, **kwargs)

        if not self.space.groups:
            raise ValueError(f"{self.title}: the space holds no group to scale.")

        self.dp = dp
        self.pressure = pressure

        if dp < 1e-6:
            self.runfraction = 0.0

        self.volume = 0.0
        self.new_volume = 0.0

        self.volume_sum = 0.0
        self.inverse_volume_sum = 0.0
        self.samples = 0

    @property
    def reduced_pressure(self) -> float:
        """Pressure in kT/Å³."""
        return self.pressure * MILLIMOLAR

    def molecules(self) -> int:
        return sum(
            1 if group.molecular else len(group)
            for group in self.space.groups
            if not group.empty()
        )

    def propose_trial(self) -> bool:
        space = self.space

        self.volume = space.volume()
        self.new_volume = math.exp(math.log(self.volume) + (self.rng.random() - 0.5) * self.dp)

        factor = (self.new_volume / self.volume) ** (1.0 / 3.0)

        space.set_volume(self.new_volume, trial=True)

        for n, group in enumerate(space.groups):
            if group.empty():
                continue

            indices = group.indices
            positions = space.atoms.positions[indices]

            if group.molecular:
                shift = group.cm * (factor - 1.0)
                group.cm_trial = geometry.boundary(group.cm + shift, space.trial)
                positions = positions + shift
            else:
                positions = positions * factor

            space.trial.positions[indices] = geometry.boundary(positions, space.trial)
            space.change.add_group(n)

        space.change.geometry_change = True
        space.change.dV = self.new_volume - self.volume

        return True

    def energy_change(self) -> float:
        du = self.hamiltonian.energy_change(self.space)

        if du == np.inf:
            return np.inf

        return du + self.hamiltonian.pressure_term(
            self.reduced_pressure, self.volume, self.new_volume, self.molecules()
        )

    def accept(self) -> None:
        space = self.space

        self.statistics.accept("volume", True, (self.new_volume - self.volume) ** 2)

        space.accept_particles(np.arange(len(space.atoms)))
        space.accept_volume()

        for group in space.groups:
            group.accept()

        self.sample()

    def reject(self) -> None:
        space = self.space

        self.statistics.accept("volume", False)

        space.undo_particles(np.arange(len(space.atoms)))
        space.undo_volume()

        for group in space.groups:
            group.undo()

        self.sample()

    def sample(self) -> None:
        volume = self.space.volume()

        self.volume_sum += volume
        self.inverse_volume_sum += 1.0 / volume
        self.samples += 1

    def describe(self) -> str:
        lines = [
            f"  {'Displacement parameter':<28s}{self.dp}",
            f"  {'Pressure [mM]':<28s}{self.pressure}",
            f"  {'Number of molecules':<28s}{self.molecules()}",
        ]

        if self.samples:
            volume = self.volume_sum / self.samples
            inverse = self.inverse_volume_sum / self.samples

            lines += [
                f"  {'<V> [Å³]':<28s}{volume:.6g}",
                f"  {'<V>^(1/3) [Å]':<28s}{volume ** (1 / 3):.6g}",
                f"  {'<N/V> [mM]':<28s}{self.molecules() * inverse / MILLIMOLAR:.6g}",
                f"  {'Osmotic coefficient':<28s}{self.reduced_pressure / (self.molecules() * inverse):.6g}",
            ]

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"].update({"dp": self.dp, "pressure": self.pressure})
        return data
