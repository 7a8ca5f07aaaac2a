from __future__ import annotations

from typing import IO, TYPE_CHECKING, Final

from numpy.random import PCG64
from numpy.random import Generator as RNG

from mcmoves.io.file import ObserverManager
from mcmoves.io.logger import Logger

if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path
    from typing import Any


class Driver:
    """
    Base class for step based simulations, providing the random number generator, the
    observer management and the run loop. Not intended to be used directly, subclasses
    implement [`step`][mcmoves.mc.driver.Driver.step].

    Parameters
    ----------
    seed : int, optional
        Seed of the PCG64 random number generator, drawn at random when None.
    logfile : Logger | IO | Path | str, optional
        Logger observer to auto-attach, by default None.
    logging_interval : int, optional
        Interval at which to call the observers, by default 1.
    logging_mode : str, optional
        Mode in which to open the observers, by default "a".

    Attributes
    ----------
    step_count : int
        The current step count of the simulation.
    max_steps : int
        The step count at which the current run stops.
    file_manager : ObserverManager
        Attached observers and their file resources.
    default_logger : Logger | None
        The default logger of the simulation, if set.
    """

    def __init__(
        self,
        seed: int | None = None,
        logfile: Logger | IO | Path | str | None = None,
        logging_interval: int = 1,
        logging_mode: str = "a",
    ) -> None:
        self._seed: Final = seed if seed is not None else int(PCG64().random_raw())
        self._rng = RNG(PCG64(self._seed))

        self.logging_interval = logging_interval
        self.logging_mode = logging_mode

        self.step_count: int = 0
        self.max_steps: int = 0

        self.file_manager: Final = ObserverManager()

        self.default_logger = logfile

    @property
    def rng(self) -> RNG:
        """The random number generator shared with the moves."""
        return self._rng

    @property
    def seed(self) -> int:
        return self._seed

    def irun(self, steps: int = 100_000_000) -> Generator[Any, None, None]:
        """
        Run the simulation as a `Generator`.

        Parameters
        ----------
        steps : int
            Maximum number of simulation steps to perform, by default 100,000,000.

        Yields
        ------
        Any
            The result of each simulation step.
        """
        self.validate_simulation()

        self.max_steps = self.step_count + steps

        if self.step_count == 0:
            if self.default_logger:
                self.default_logger.write_header()

            self.call_observers()

        while not self.converged():
            yield self.step()
            self.step_count += 1

            self.call_observers()

    def call_observers(self) -> None:
        """Call the attached observers scheduled at the current step count."""
        self.file_manager.notify(self.step_count)

    def validate_simulation(self) -> None:
        """Check that the simulation is set up before running, overridden by subclasses."""

    def run(self, steps: int = 100_000_000) -> None:
        """
        Run the simulation for a given number of steps.

        Parameters
        ----------
        steps : int, optional
            Maximum number of simulation steps to perform, by default 100,000,000.
        """
        for _ in self.irun(steps):
            pass

    def step(self) -> Any:
        """Perform a single step."""
        raise NotImplementedError(
            f"The `step` method must be implemented in subclasses of {self.__class__.__name__}."
        )

    def converged(self) -> bool:
        """True once the maximum number of steps is reached."""
        return self.step_count >= self.max_steps

    def to_dict(self) -> dict[str, Any]:
        """
        Return a dictionary representation of the `Driver` object.

        Returns
        -------
        dict[str, Any]
            A dictionary representation of the `Driver` object.
        """
        return {
            "name": self.__class__.__name__,
            "rng_state": self._rng.bit_generator.state,
            "kwargs": {
                "logging_interval": self.logging_interval,
                "logging_mode": self.logging_mode,
                "seed": self._seed,
            },
            "attributes": {"step_count": self.step_count},
        }

    @property
    def default_logger(self) -> Logger | None:
        return self._default_logger

    @default_logger.setter
    def default_logger(self, default_logger: Logger | IO | Path | str | None) -> None:
        """(Un)set the default logger from a `Logger` or a file path."""
        if default_logger is None:
            self._default_logger = None
            return

        if not isinstance(default_logger, Logger):
            self._default_logger = Logger(
                logfile=default_logger,
                interval=self.logging_interval,
                mode=self.logging_mode,
            )
        else:
            self._default_logger = default_logger

        self.file_manager.attach_observer("default_logger", self._default_logger)

    def close(self) -> None:
        """Close the attached observers."""
        self.file_manager.close()
