from __future__ import annotations

import atexit
from contextlib import ExitStack, suppress
from typing import TYPE_CHECKING, Any, Final, Self
from warnings import warn

if TYPE_CHECKING:
    from collections.abc import Callable

    from mcmoves.io.core import Observer


class ObserverManager:
    """
    Hold the observers of a simulation and close their files on exit. Cleanup callbacks
    are registered on an [`ExitStack`][contextlib.ExitStack], run when the manager is
    closed, used as a context manager exits, or when the interpreter terminates.

    Attributes
    ----------
    exitstack : ExitStack
        The exit stack holding the cleanup callbacks.
    observers : dict[str, Observer]
        Attached observers, keyed by name.

    Example
    -------
    ``` python
    with ObserverManager() as manager:
        manager.attach_observer("log", Logger("run.log", interval=10))
    ```
    """

    def __init__(self) -> None:
        self.exitstack: Final[ExitStack] = ExitStack()

        self.observers: dict[str, Observer] = {}

        atexit.register(self.close)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args, **kwargs) -> None:
        self.close()

    __del__ = __exit__

    def close(self) -> None:
        """Run every registered cleanup callback."""
        with suppress(OSError, AttributeError, ValueError):
            self.exitstack.close()
            atexit.unregister(self.close)

    def register(self, resource: Callable) -> Any:
        """
        Register a cleanup callback, typically a `close` method.

        Parameters
        ----------
        resource : Callable
            The callback to run on close.

        Returns
        -------
        Any
            The callback, as returned by `ExitStack.callback`.
        """
        return self.exitstack.callback(resource)

    def attach_observer(self, name: str, observer: Observer) -> None:
        """
        Attach an observer under `name`, replacing any observer with the same name.

        Parameters
        ----------
        name : str
            The name of the observer.
        observer : Observer
            The observer to attach.
        """
        observer.attach_simulation(self)
        self.observers[name] = observer

    def detach_observer(self, name: str, close: bool = False) -> None:
        """
        Detach an observer by name, warning when it is not attached.

        Parameters
        ----------
        name : str
            The name of the observer to detach.
        close : bool, optional
            Also close the observer, by default False.
        """
        if observer := self.observers.pop(name, None):
            if close:
                observer.close()
        else:
            warn(f"`Observer` '{name}' not found when deleting.", UserWarning, 2)

    def due(self, step: int) -> list[Observer]:
        """
        Observers scheduled at `step`: every positive `interval` steps, or only at step
        ``abs(interval)`` for a negative interval.

        Parameters
        ----------
        step : int
            The step count of the simulation.

        Returns
        -------
        list[Observer]
            The scheduled observers, in attachment order.
        """
        return [
            observer
            for observer in self.observers.values()
            if (observer.interval > 0 and step % observer.interval == 0)
            or (observer.interval < 0 and step == -observer.interval)
        ]

    def notify(self, step: int) -> None:
        """Call every observer scheduled at `step`."""
        for observer in self.due(step):
            observer()
