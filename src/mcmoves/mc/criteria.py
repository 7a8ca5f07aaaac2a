from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any
from warnings import warn

if TYPE_CHECKING:
    from numpy.random import Generator


class Criteria(ABC):
    """
    Base class for Monte Carlo acceptance criteria.

    Implementations must provide an `evaluate` method deciding from a reduced energy
    change (in kT) whether a trial move is accepted.
    """

    @abstractmethod
    def evaluate(self, energy_change: float, rng: Generator) -> bool:
        """
        Evaluate whether a Monte Carlo move should be accepted.

        Parameters
        ----------
        energy_change : float
            The energy change of the trial move in kT.
        rng : Generator
            The random number generator of the move.

        Returns
        -------
        bool
            True if the move is accepted, False otherwise.
        """
        ...

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.__class__.__name__}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Criteria:
        return cls(**data.get("kwargs", {}))


class MetropolisCriteria(Criteria):
    """
    Metropolis criterion: accept with probability min(1, exp(-Δu)).

    A random number is drawn on every call, whatever the sign of Δu, so that replicas
    sharing a seed consume identical random streams. A NaN energy change is reported with
    a warning and rejected.
    """

    def evaluate(self, energy_change: float, rng: Generator) -> bool:
        """
        Evaluate the Metropolis criterion.

        Parameters
        ----------
        energy_change : float
            The energy change of the trial move in kT.
        rng : Generator
            The random number generator of the move.

        Returns
        -------
        bool
            True if the move is accepted, False otherwise.
        """
        random_number = rng.random()

        if math.isnan(energy_change):
            warn(
                "Energy change is NaN, the trial move is rejected.", UserWarning, 2
            )
            return False

        if energy_change == math.inf:
            return False

        if energy_change <= 0.0:
            return True

        return random_number <= math.exp(-energy_change)
