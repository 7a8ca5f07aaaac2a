from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from numpy.random import Generator


class Operation(ABC):
    """
    Abstract base class for random perturbations used by Monte Carlo moves.

    Operations only draw random numbers and return the perturbation; applying it to a
    configuration is the job of the move. Every call draws the same amount of random
    numbers regardless of its parameters, so random streams stay aligned between replicas.
    """

    __slots__ = ()

    @abstractmethod
    def calculate(self, rng: Generator, *args, **kwargs) -> Any:
        """
        Draw a perturbation.

        Parameters
        ----------
        rng : Generator
            The random number generator of the move.
        *args, **kwargs
            Additional arguments for the operation.

        Returns
        -------
        Any
            The perturbation, typically a displacement vector or a rotation.
        """
        ...

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the operation to a dictionary.

        Returns
        -------
        dict[str, Any]
            A dictionary representation of the operation.
        """
        return {"name": self.__class__.__name__}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Operation:
        """
        Create an operation from a dictionary.

        Parameters
        ----------
        data : dict[str, Any]
            The dictionary representation of the operation.

        Returns
        -------
        Operation
            The operation object created from the dictionary.
        """
        return cls(**data.get("kwargs", {}))
