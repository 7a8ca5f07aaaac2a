from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from mcmoves.space import Space


@runtime_checkable
class MoveProtocol(Protocol):
    """
    Closed interface of a trial move. The engine calls the hooks in the fixed order
    `propose_trial` → `energy_change` → `accept` | `reject`, one trial at a time.
    Specialized behavior is added by wrapping a move exposing this interface, see
    [`MoveDecorator`][mcmoves.moves.core.MoveDecorator].
    """

    space: Space

    def propose_trial(self) -> bool | None:
        """
        Perturb the trial configuration and fill the change record.

        Returns
        -------
        bool | None
            False when the trial is a no-op (failed precondition), True or None otherwise.
        """
        ...

    def energy_change(self) -> float:
        """
        Energy change of the proposed trial.

        Returns
        -------
        float
            Energy difference in kT, +inf forces rejection.
        """
        ...

    def accept(self) -> None:
        """Copy the trial state to the current state."""
        ...

    def reject(self) -> None:
        """Restore the trial state from the current state."""
        ...

    def describe(self) -> str:
        """Move specific lines of the summary text."""
        ...

    def move(self, n: int = 1) -> float:
        """
        Run `n` trial cycles.

        Returns
        -------
        float
            The cumulative energy change of the accepted trials in kT.
        """
        ...

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the move to a dictionary.

        Returns
        -------
        dict[str, Any]
            A dictionary representation of the move.
        """
        ...
