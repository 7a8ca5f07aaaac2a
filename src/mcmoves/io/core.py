from __future__ import annotations

import atexit
import sys
from contextlib import suppress
from io import IOBase
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mcmoves.io.file import ObserverManager


class Observer:
    """
    Callable attached to a [`Driver`][mcmoves.mc.driver.Driver], called every `interval` steps.

    Parameters
    ----------
    interval : int
        Positive values call the observer every `interval` steps, negative values only at
        step ``abs(interval)``.
    """

    def __init__(self, interval: int = 1) -> None:
        super().__init__()
        self.interval = interval

        atexit.register(self.close)

    def __call__(self, *args, **kwargs): ...

    def close(self) -> None: ...

    __del__ = close

    def attach_simulation(self, file_manager: ObserverManager) -> None: ...

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the observer to a dictionary.

        Returns
        -------
        dict[str, Any]
            A dictionary representation of the observer.
        """
        return {"name": self.__class__.__name__, "kwargs": {"interval": self.interval}}


class TextObserver(Observer):
    """
    Observer writing text to a file, a path or a stream.

    Parameters
    ----------
    file : IO | Path | str
        The path or file object to write to, "-" for standard output.
    interval : int
        The interval at which to call the observer.
    mode : str
        The mode in which to open the file, by default "a".
    encoding : str, optional
        Text encoding, "utf-8" for text modes.
    """

    accept_stream: bool = True

    def __init__(
        self,
        file: IO | Path | str,
        interval: int = 1,
        mode: str = "a",
        encoding: str | None = None,
    ) -> None:
        super().__init__(interval)

        self.mode: str = mode
        self.encoding: str | None = encoding or ("utf-8" if "b" not in mode else None)

        self.file = file

    def __repr__(self):
        return f"{self.__class__.__name__}({self.__str__()}, {self.mode})"

    def __str__(self):
        if self._file in (sys.stdout, sys.stderr, sys.stdin):
            return f"Stream:{self._file.name}"

        name = getattr(self._file, "name", None)

        if isinstance(name, str) and name not in ("", "."):
            return f"Path:{name}"

        return f"Class:{self._file.__class__.__name__}"

    @property
    def file(self) -> IO:
        """The opened file object."""
        return self._file

    @file.setter
    def file(self, value: IO | str | Path) -> None:
        if hasattr(self, "_file"):
            self.close()

        if value == "-":
            self._file: IO = sys.stdout
            return

        if isinstance(value, str):
            value = Path(value)

        if isinstance(value, Path):
            self._file = value.open(mode=self.mode, encoding=self.encoding)
        elif hasattr(value, "write") or isinstance(value, IOBase):
            if getattr(value, "closed", False):
                raise ValueError(
                    f"Impossible to link a closed file for '{self.__class__.__name__}'."
                )

            if not self.accept_stream and not getattr(value, "seekable", lambda: False)():
                raise ValueError(
                    f"{self.__class__.__name__} does not accept non-file streams (non-seekable)."
                )

            self._file = value
        else:
            raise TypeError(
                f"Invalid file type: {type(value)}. Expected str, Path, or file-like object."
            )

    def attach_simulation(self, file_manager: ObserverManager) -> None:
        """Register the file to be closed together with the simulation files."""
        file_manager.register(self.close)

    def close(self) -> None:
        """Close the file if it is not a standard stream."""
        if not hasattr(self, "_file"):
            return

        if self._file not in (sys.stdout, sys.stderr, sys.stdin):
            with suppress(OSError, AttributeError, ValueError):
                self._file.close()

                atexit.unregister(self.close)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"]["mode"] = self.mode
        return data


class SummaryObserver(TextObserver):
    """
    Write the summary text of a simulation, e.g. the move statistics of a
    [`Propagator`][mcmoves.mc.core.Propagator], every `interval` steps.

    Parameters
    ----------
    simulation : Any
        Object exposing an `info()` method returning text.
    file : IO | Path | str
        The path or file object to write to.
    interval : int, optional
        The interval at which to write, by default 1, see [`Observer`][mcmoves.io.core.Observer].
    mode : str, optional
        File mode, by default "w".
    """

    def __init__(
        self, simulation: Any, file: IO | Path | str, interval: int = 1, mode: str = "w"
    ) -> None:
        super().__init__(file=file, interval=interval, mode=mode)

        self.simulation = simulation

    def __call__(self) -> None:
        self._file.write(self.simulation.info() + "\n\n")
        self._file.flush()
