"""Tabular logging of Monte Carlo runs."""

from __future__ import annotations

from typing import IO, TYPE_CHECKING

from mcmoves.io.core import TextObserver
from mcmoves.utils.strings import get_auto_header_format

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path
    from typing import Any

    from mcmoves.mc.core import Propagator
    from mcmoves.moves.core import BaseMove


class Logger(TextObserver):
    """
    Write one line of registered fields per call. If created manually, fields must be added
    with [`add_field`][mcmoves.io.logger.Logger.add_field]:

    ``` python
    logger.add_field("Volume[Å3]", space.volume)
    ```

    [`add_propagator_fields`][mcmoves.io.logger.Logger.add_propagator_fields] is called
    automatically by the [`Propagator`][mcmoves.mc.core.Propagator] when its `logfile`
    parameter is set.

    Parameters
    ----------
    logfile : IO | str | Path
        File path or open file object for logging, use "-" for standard output.
    interval : int
        Interval at which lines are written.
    mode : str
        File opening mode if logfile is a filename or path.

    Attributes
    ----------
    fields : dict[str | tuple[str, ...], dict[str, Any]]
        Fields to log with their function and formats.
    """

    def __init__(
        self,
        logfile: IO | str | Path,
        interval: int,
        mode: str = "a",
        **observer_kwargs: Any,
    ) -> None:
        super().__init__(file=logfile, interval=interval, mode=mode, **observer_kwargs)

        self.fields: dict[str | tuple[str, ...], dict[str, Any]] = {}

    def __call__(self) -> None:
        """Write a new line with the current value of every field."""
        parts = []

        for field in self.fields.values():
            value = field["function"]()

            if field["is_list"]:
                parts.append(field["str_format"].format(*value))
            else:
                parts.append(field["str_format"].format(value))

        self._file.write(" ".join(parts) + "\n")
        self._file.flush()

    def create_header(self) -> str:
        """
        Create the header line from the configured fields.

        Returns
        -------
        str
            Formatted header string.
        """
        to_write = []

        for name, field in self.fields.items():
            if field["is_list"]:
                to_write.append(field["header_format"].format(*name))
            else:
                to_write.append(field["header_format"].format(name))

        return " ".join(to_write)

    def add_field(
        self,
        name: str | list[str] | tuple[str, ...],
        function: Callable[[], Any],
        str_format: str = "{:10.3f}",
        header_format: str | None = None,
        is_list: bool = False,
    ) -> None:
        """
        Add one field tracking a value that changes during the run.

        Parameters
        ----------
        name
            Name of the field, a list of names when `is_list` is True.
        function
            Callable returning the value of the field.
        str_format
            Format string of the value.
        header_format
            Format string of the name in the header line, derived from `str_format` when None.
        is_list
            Whether `function` returns a sequence of values.
        """
        if isinstance(name, list):
            name = tuple(name)

        if header_format is None:
            header_format = get_auto_header_format(str_format)

        self.fields[name] = {
            "function": function,
            "str_format": str_format,
            "header_format": header_format,
            "is_list": is_list,
        }

    def add_propagator_fields(self, simulation: Propagator) -> None:
        """
        Add the commonly used fields of a [`Propagator`][mcmoves.mc.core.Propagator]:

        - Step: the current step.
        - Energy[kT]: the current energy, ``uinit + dusum``.
        - Drift[kT]: the energy drift, see [`drift`][mcmoves.mc.core.Propagator.drift].
        - Volume[Å3]: the current volume.

        Parameters
        ----------
        simulation
            The propagator to track.
        """
        names = ["Step", "Energy[kT]", "Drift[kT]", "Volume[Å3]"]
        functions = [
            lambda: simulation.step_count,
            simulation.current_energy,
            simulation.drift,
            simulation.space.volume,
        ]
        str_formats = ["{:<12d}", "{:>16.6g}", "{:>12.3e}", "{:>14.6g}"]

        for name, function, str_format in zip(names, functions, str_formats, strict=True):
            self.add_field(name, function, str_format)

    def add_move_fields(self, move: BaseMove, label: str | None = None) -> None:
        """
        Add the acceptance ratio of `move` in percent.

        Parameters
        ----------
        move
            The move to track.
        label
            Column name, by default the class name of the move.
        """
        label = label or move.__class__.__name__

        self.add_field(f"Acc[{label}]", lambda: 100 * move.acceptance, "{:>10.2f}")

    def remove_fields(self, pattern: str) -> None:
        """
        Remove fields whose names contain `pattern`. Compound fields are removed when any
        of their names matches.
        """
        for field_name in list(self.fields):
            names = field_name if isinstance(field_name, tuple) else (field_name,)

            if any(pattern in name for name in names):
                self.fields.pop(field_name)

    def write_header(self) -> None:
        """Write the header line to the log file."""
        self._file.write(f"{self.create_header()}\n")
