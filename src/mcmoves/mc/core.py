"""Module to assemble and run Monte Carlo move sequences."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass
from typing import IO, TYPE_CHECKING, Self

import numpy as np

from mcmoves.mc.driver import Driver
from mcmoves.registry import get_tag, get_tagged_class, get_typed_class

if TYPE_CHECKING:
    from collections.abc import Generator, Mapping, Sequence
    from pathlib import Path
    from typing import Any

    from numpy.random import Generator as RNG

    from mcmoves.energy import Hamiltonian
    from mcmoves.io.logger import Logger
    from mcmoves.moves.core import BaseMove
    from mcmoves.space import Space

    MoveConfig = Mapping[str, dict[str, Any]] | Sequence[Mapping[str, dict[str, Any]]]


class Propagator(Driver):
    """
    Run a weighted random sequence of moves on a [`Space`][mcmoves.space.Space]. Each step
    performs `max_cycles` selections, a move being drawn with probability proportional to
    its weight and called with [`move`][mcmoves.moves.core.BaseMove.move].

    The propagator keeps the energy bookkeeping of the run: `uinit` is the system energy
    when the run starts, `dusum` the sum of the energy changes returned by the moves, and
    [`drift`][mcmoves.mc.core.Propagator.drift] the difference between the current system
    energy and ``uinit + dusum``.

    Parameters
    ----------
    space : Space
        The particle store.
    hamiltonian : Hamiltonian
        The energy functions.
    max_cycles : int, optional
        Move selections per step, by default the number of moves.
    seed : int, optional
        Seed of the random number generator shared with the moves.
    logfile : Logger | IO | Path | str, optional
        Logger to auto-attach, filled with
        [`add_propagator_fields`][mcmoves.io.logger.Logger.add_propagator_fields].
    logging_interval : int, optional
        Interval at which to call the observers, by default 1.
    logging_mode : str, optional
        Mode in which to open the observers, by default "a".

    Attributes
    ----------
    moves : dict[str, MoveStorage]
        The moves with their selection weights.
    uinit : float | None
        System energy at the start of the run, None before the first run.
    dusum : float
        Cumulative energy change returned by the moves.
    """

    def __init__(
        self,
        space: Space,
        hamiltonian: Hamiltonian,
        max_cycles: int | None = None,
        seed: int | None = None,
        logfile: Logger | IO | Path | str | None = None,
        logging_interval: int = 1,
        logging_mode: str = "a",
    ) -> None:
        self.space = space
        self.hamiltonian = hamiltonian
        self.max_cycles = max_cycles

        self.moves: dict[str, MoveStorage] = {}

        self.uinit: float | None = None
        self.dusum: float = 0.0
        self.energy_sum: float = 0.0
        self.energy_samples: int = 0

        super().__init__(
            seed=seed,
            logfile=logfile,
            logging_interval=logging_interval,
            logging_mode=logging_mode,
        )

        if self.default_logger:
            self.default_logger.add_propagator_fields(self)

    def add_move(
        self, move: BaseMove | MoveStorage, name: str | None = None, probability: float = 1.0
    ) -> str:
        """
        Add a move to the sequence.

        Parameters
        ----------
        move : BaseMove | MoveStorage
            The move, or a storage holding the move and its weight.
        name : str, optional
            Unique name of the move, by default derived from its class name.
        probability : float, optional
            Selection weight, by default 1.0.

        Returns
        -------
        str
            The name under which the move is stored.
        """
        if not isinstance(move, MoveStorage):
            if probability < 0.0:
                raise ValueError(
                    f"Move probability must be non-negative, got {probability}."
                )

            move = MoveStorage(move=move, probability=probability)

        if move.move.space is not self.space:
            raise ValueError(
                f"`{move.move.__class__.__name__}` does not act on the space of this propagator."
            )

        name = name or move.move.__class__.__name__
        base, count = name, 1

        while name in self.moves:
            count += 1
            name = f"{base}_{count}"

        self.moves[name] = move

        return name

    @classmethod
    def from_config(
        cls,
        config: MoveConfig,
        space: Space,
        hamiltonian: Hamiltonian,
        **kwargs: Any,
    ) -> Self:
        """
        Build a propagator from configuration tags.

        Parameters
        ----------
        config : Mapping | Sequence[Mapping]
            Move tags (see `mcmoves.moves.move_tags`) mapped to the keyword arguments of
            the move. A sequence of single entry mappings allows repeated tags. The
            optional `probability` keyword sets the selection weight.
        space : Space
            The particle store.
        hamiltonian : Hamiltonian
            The energy functions.
        **kwargs : Any
            Keyword arguments of the propagator.

        Returns
        -------
        Self
            The propagator holding one move per entry.

        Raises
        ------
        KeyError
            If a tag is not registered.

        Examples
        --------
        ``` python
        propagator = Propagator.from_config(
            [
                {"moltransrot": {"targets": {"water": {"dp1": 0.5, "dp2": 0.3}}}},
                {"atomgc": {"group": "salt", "probability": 0.2}},
            ],
            space,
            hamiltonian,
            seed=42,
        )
        ```
        """
        import mcmoves.moves  # noqa: F401
        from mcmoves.moves.core import BaseMove

        propagator = cls(space, hamiltonian, **kwargs)
        entries = [config] if not isinstance(config, list | tuple) else config

        for entry in entries:
            for tag, move_kwargs in entry.items():
                move_kwargs = dict(move_kwargs or {})
                probability = move_kwargs.pop("probability", 1.0)

                move_class: type[BaseMove] = get_tagged_class(tag, BaseMove)
                move = move_class.build(space, hamiltonian, rng=propagator.rng, **move_kwargs)

                propagator.add_move(move, name=tag, probability=probability)

        return propagator

    def validate_simulation(self) -> None:
        """
        Check that moves are attached and initialize the energy bookkeeping.

        Raises
        ------
        ValueError
            If no move was added.
        """
        if not self.moves:
            raise ValueError(f"{self.__class__.__name__}: no moves to perform.")

        if self.uinit is None:
            self.uinit = self.hamiltonian.system_energy(self.space.atoms)

    def yield_moves(self) -> Generator[str, None, None]:
        """
        Yield the names of the moves of one step, drawn with `rng.choice` according to
        the selection weights, which are read again before every draw.

        Yields
        ------
        str
            The name of the move to perform.
        """
        names = list(self.moves)
        cycles = self.max_cycles if self.max_cycles is not None else len(names)

        for _ in range(cycles):
            weights = np.array([self.moves[name].probability for name in names])

            if weights.sum() <= 0.0:
                return

            yield names[self._rng.choice(len(names), p=weights / weights.sum())]

    def step(self) -> float:
        """
        Perform one step.

        Returns
        -------
        float
            The energy change of the step in kT.
        """
        energy = 0.0

        for name in self.yield_moves():
            energy += self.moves[name].move.move()

        self.dusum += energy
        self.energy_sum += self.current_energy()
        self.energy_samples += 1

        return energy

    def current_energy(self) -> float:
        """Energy of the current configuration from the bookkeeping, ``uinit + dusum``."""
        return (self.uinit or 0.0) + self.dusum

    @property
    def average_energy(self) -> float:
        """Running average of the energy over the steps performed."""
        if not self.energy_samples:
            return self.current_energy()

        return self.energy_sum / self.energy_samples

    def drift(self) -> float:
        """
        Energy drift of the run.

        Returns
        -------
        float
            ``u_now - (uinit + dusum)`` where `u_now` is evaluated from scratch, in kT.
        """
        if self.uinit is None:
            return 0.0

        return self.hamiltonian.system_energy(self.space.atoms) - self.current_energy()

    def test(self) -> list[str]:
        """
        Check the invariants of the space and of every move.

        Returns
        -------
        list[str]
            Descriptions of every violation, prefixed by the move name.
        """
        return [
            f"{name}: {message}"
            for name, storage in self.moves.items()
            for message in storage.move.test()
        ]

    def info(self) -> str:
        """Summary text of the run followed by the summary of every move."""
        lines = [
            f"{self.__class__.__name__}",
            f"  {'Steps':<28s}{self.step_count}",
            f"  {'Seed':<28s}{self._seed}",
            f"  {'Initial energy [kT]':<28s}{self.uinit if self.uinit is not None else float('nan'):.6g}",
            f"  {'Energy change [kT]':<28s}{self.dusum:.6g}",
            f"  {'Average energy [kT]':<28s}{self.average_energy:.6g}",
            f"  {'Energy drift [kT]':<28s}{self.drift():.3e}",
        ]

        for name, storage in self.moves.items():
            header = f"\n[{name}] weight {storage.probability}"

            if tag := get_tag(type(storage.move)):
                header += f", tag `{tag}`"

            lines.append(header)
            lines.append(storage.move.info())

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """
        Return a dictionary representation of the propagator.

        Returns
        -------
        dict[str, Any]
            Keyword arguments, random state, energy bookkeeping and moves.
        """
        dictionary = super().to_dict()

        dictionary["kwargs"]["max_cycles"] = self.max_cycles
        dictionary["attributes"].update(
            {
                "uinit": self.uinit,
                "dusum": self.dusum,
                "energy_sum": self.energy_sum,
                "energy_samples": self.energy_samples,
            }
        )
        dictionary["moves"] = {
            name: storage.to_dict() for name, storage in self.moves.items()
        }

        return dictionary

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        space: Space,
        hamiltonian: Hamiltonian,
        **kwargs_override: Any,
    ) -> Self:
        """
        Restore a propagator from [`to_dict`][mcmoves.mc.core.Propagator.to_dict].

        Parameters
        ----------
        data : dict[str, Any]
            A dictionary representation of the propagator.
        space : Space
            The particle store, already holding the saved configuration.
        hamiltonian : Hamiltonian
            The energy functions.
        **kwargs_override : Any
            Keyword arguments replacing the saved ones.

        Returns
        -------
        Self
            The restored propagator, moves sharing its random number generator.
        """
        import mcmoves.moves  # noqa: F401

        kwargs = deepcopy(data.get("kwargs", {})) | kwargs_override

        propagator = cls(space, hamiltonian, **kwargs)

        if "rng_state" in data:
            propagator._rng.bit_generator.state = data["rng_state"]

        for key, value in data.get("attributes", {}).items():
            setattr(propagator, key, value)

        for name, storage_data in data.get("moves", {}).items():
            storage = MoveStorage.from_dict(storage_data, space, hamiltonian, propagator.rng)
            propagator.moves[name] = storage

        return propagator

    def __repr__(self) -> str:
        return f"Propagator(space={self.space}, max_cycles={self.max_cycles}, seed={self._seed}, moves={list(self.moves)}, step_count={self.step_count})"


@dataclass
class MoveStorage:
    """
    Dataclass holding a move and its selection weight.

    Attributes
    ----------
    move : BaseMove
        The move object.
    probability : float
        Selection weight of the move.
    """

    move: BaseMove
    probability: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        return {"move": self.move.to_dict(), "probability": self.probability}

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        space: Space,
        hamiltonian: Hamiltonian,
        rng: RNG | None = None,
    ) -> MoveStorage:
        """
        Load the storage from a dictionary, the move class being looked up in the registry.

        Parameters
        ----------
        data : dict[str, Any]
            A dictionary representation of the storage.
        space : Space
            The particle store.
        hamiltonian : Hamiltonian
            The energy functions.
        rng : Generator, optional
            Random number generator given to the move.
        """
        from mcmoves.moves.core import BaseMove

        move_data = data["move"]
        move_class: type[BaseMove] = get_typed_class(move_data["name"], BaseMove)

        return cls(
            move=move_class.from_dict(move_data, space, hamiltonian, rng),
            probability=data.get("probability", 1.0),
        )
