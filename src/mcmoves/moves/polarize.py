"""Induced dipole relaxation wrapped around any move."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np

from mcmoves.moves.core import MoveDecorator

if TYPE_CHECKING:
    from mcmoves.moves.core import BaseMove


class PolarizeMove(MoveDecorator):
    """
    After the trial of the inner move, iterate the induced dipoles ``μ_i = α_i E_i`` of
    every polarizable particle in the trial configuration until self-consistency.

    The electric field comes from [`field`][mcmoves.energy.Hamiltonian.field] and the
    polarizability from the particle species. The energy change is the difference of the
    total system energies, the inner move energy being bypassed.

    Parameters
    ----------
    move : BaseMove
        The inner move.
    threshold : float, optional
        Convergence criterion on the largest dipole change, by default 0.001.
    max_iterations : int, optional
        Iterations before giving up, by default 40.
    runfraction : float, optional
        Run fraction, by default the one of the inner move.

    Raises
    ------
    RuntimeError
        If the dipoles do not converge within `max_iterations`.
    """

    def __init__(
        self,
        move: BaseMove,
        threshold: float = 0.001,
        max_iterations: int = 40,
        runfraction: float | None = None,
    ) -> None:
        super().__init__(move, runfraction)

        self.title = f"Polarizable {move.title}"
        self.threshold = threshold
        self.max_iterations = max_iterations
        self.iterations = 0

    def polarizable(self) -> np.ndarray:
        species = self.space.trial.arrays["species"]
        alpha = np.array([self.space.species_list[s].polarizability for s in species])

        return np.flatnonzero(alpha > 0.0)

    def induce(self) -> None:
        """Iterate the induced dipoles of the trial configuration to self-consistency."""
        space = self.space
        trial = space.trial
        indices = self.polarizable()

        if len(indices) == 0:
            return

        alpha = np.array([space.species_of(int(i), trial=True).polarizability for i in indices])

        for iteration in range(1, self.max_iterations + 1):
            fields = np.array([self.hamiltonian.field(trial, int(i)) for i in indices])
            dipoles = alpha[:, None] * fields
            change = np.abs(dipoles - trial.arrays["dipoles"][indices]).max()

            trial.arrays["dipoles"][indices] = dipoles

            if change < self.threshold:
                self.iterations += iteration
                return

        raise RuntimeError(
            f"{self.title}: induced dipoles did not converge within {self.max_iterations} iterations."
        )

    def propose_trial(self) -> bool | None:
        proposed = self.inner.propose_trial()

        if proposed is not False:
            self.induce()

        return proposed

    def energy_change(self) -> float:
        if self.inner.energy_change() == np.inf:
            return np.inf

        return self.hamiltonian.system_energy(self.space.trial) - self.hamiltonian.system_energy(
            self.space.atoms
        )

    def accept(self) -> None:
        self.inner.accept()
        self.space.accept_particles(self.polarizable())

    def reject(self) -> None:
        self.inner.reject()
        self.space.undo_particles(self.polarizable())

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"].update(
            {"threshold": self.threshold, "max_iterations": self.max_iterations}
        )
        return data
