"""Module for the base move engine."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from copy import deepcopy
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Self

import numpy as np
from numpy.random import PCG64
from numpy.random import Generator as RNG

from mcmoves.mc.criteria import Criteria, MetropolisCriteria
from mcmoves.moves.statistics import AcceptanceMap
from mcmoves.registry import get_typed_class

if TYPE_CHECKING:
    from mcmoves.energy import Hamiltonian
    from mcmoves.space import Space
    from mcmoves.typing import Direction


@dataclass
class MoleculeTarget:
    """
    Per molecule-type parameters of a move.

    Attributes
    ----------
    probability : float
        Weight of the key when one is drawn at the start of [`move`][mcmoves.moves.core.BaseMove.move].
    per_atom : bool
        Multiply the repeat count by the size of the first group with this name.
    per_molecule : bool
        Multiply the repeat count by the number of groups with this name.
    repeat : int
        Base number of trials per call.
    direction : Direction
        Per-axis mask of translations.
    dp1 : float
        First displacement parameter, usually translational in Å.
    dp2 : float
        Second displacement parameter, usually rotational in radians.
    """

    probability: float = 1.0
    per_atom: bool = False
    per_molecule: bool = False
    repeat: int = 1
    direction: Direction = field(default_factory=lambda: np.ones(3))
    dp1: float = 0.0
    dp2: float = 0.0

    def __post_init__(self) -> None:
        self.direction = np.asarray(self.direction, dtype=float)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["direction"] = self.direction.tolist()
        return data


class BaseMove(ABC):
    """
    Engine shared by every trial move. A call to [`move`][mcmoves.moves.core.BaseMove.move]
    drives the trial cycle: run-fraction gate, proposal, energy evaluation, acceptance
    decision and commit. Subclasses implement the hooks `propose_trial`, `energy_change`,
    `accept`, `reject` and optionally `describe`; the engine never reorders them.

    Parameters
    ----------
    space : Space
        The particle store, borrowed mutably during each cycle.
    hamiltonian : Hamiltonian
        The energy functions.
    rng : Generator, optional
        Random number generator, a new PCG64 generator when None.
    runfraction : float, optional
        Probability of running a trial on each attempt, by default 1.0.
    targets : dict[str, MoleculeTarget | dict], optional
        Molecule names with their move parameters.
    criteria : Criteria, optional
        Acceptance criteria, by default [`MetropolisCriteria`][mcmoves.mc.criteria.MetropolisCriteria].

    Attributes
    ----------
    title : ClassVar[str]
        Human readable name of the move.
    statistics : AcceptanceMap
        Per-key acceptance and displacement statistics.
    trial_count : int
        Number of trials that passed the run-fraction gate.
    accepted_count : int
        Number of accepted trials.
    noop_count : int
        Number of trials skipped because of a failed precondition.
    dusum : float
        Cumulative returned energy change in kT.
    wall_time : float
        Seconds spent inside `move`.
    alternate_return_energy : float | None
        When set by `energy_change`, reported instead of the energy used for acceptance.
    current_molecule : str | None
        Target key drawn for the running call.
    """

    title: ClassVar[str] = "Move"

    def __init__(
        self,
        space: Space,
        hamiltonian: Hamiltonian,
        rng: RNG | None = None,
        runfraction: float = 1.0,
        targets: dict[str, MoleculeTarget | dict[str, Any]] | None = None,
        criteria: Criteria | None = None,
    ) -> None:
        self.space = space
        self.hamiltonian = hamiltonian
        self.rng = rng if rng is not None else RNG(PCG64())
        self.runfraction = runfraction
        self.criteria = criteria or MetropolisCriteria()

        self.targets: dict[str, MoleculeTarget] = {}

        for name, target in (targets or {}).items():
            if not space.find_groups(name):
                raise ValueError(
                    f"{self.title}: no group named `{name}` in the space. Available groups: {sorted({g.name for g in space.groups})}"
                )

            self.targets[name] = (
                target if isinstance(target, MoleculeTarget) else MoleculeTarget(**target)
            )

        self.statistics = AcceptanceMap()

        self.trial_count: int = 0
        self.accepted_count: int = 0
        self.noop_count: int = 0
        self.dusum: float = 0.0
        self.wall_time: float = 0.0

        self.alternate_return_energy: float | None = None
        self.current_molecule: str | None = None

    @abstractmethod
    def propose_trial(self) -> bool | None: ...

    @abstractmethod
    def energy_change(self) -> float: ...

    @abstractmethod
    def accept(self) -> None: ...

    @abstractmethod
    def reject(self) -> None: ...

    def describe(self) -> str:
        return ""

    @property
    def target(self) -> MoleculeTarget | None:
        """Parameters of the target key drawn for the running call."""
        if self.current_molecule is None:
            return None

        return self.targets[self.current_molecule]

    def select_target(self) -> str:
        """Draw one target key, weighted by the target probabilities."""
        names = list(self.targets)
        weights = np.array([self.targets[name].probability for name in names])

        self.current_molecule = names[self.rng.choice(len(names), p=weights / weights.sum())]

        return self.current_molecule

    def repeat(self) -> int:
        """Number of trials per unit of `n` for the current target."""
        target = self.target

        if target is None:
            return 1

        repeat = target.repeat
        groups = self.space.find_groups(self.current_molecule)  # type: ignore[arg-type]

        if target.per_molecule:
            repeat *= len(groups)

        if target.per_atom and groups:
            repeat *= len(self.space.groups[groups[0]])

        return repeat

    def run(self) -> bool:
        """Run-fraction gate. A random number is always drawn."""
        return bool(self.rng.random() < self.runfraction)

    def move(self, n: int = 1) -> float:
        """
        Perform `n` trial cycles, each repeated according to the drawn target.

        Parameters
        ----------
        n : int, optional
            The number of cycles, by default 1.

        Returns
        -------
        float
            The cumulative energy change of the accepted trials in kT.
        """
        start = time.perf_counter()

        if self.targets:
            self.select_target()

        energy = 0.0

        for _ in range(n * self.repeat()):
            if self.run():
                energy += self.cycle()

        self.wall_time += time.perf_counter() - start

        return energy

    def cycle(self) -> float:
        """
        One propose → evaluate → decide → commit pass.

        Returns
        -------
        float
            The returned energy change, zero when rejected.
        """
        self.alternate_return_energy = None
        self.trial_count += 1

        if self.propose_trial() is False:
            self.noop_count += 1
            self.criteria.evaluate(0.0, self.rng)
            self.reject()
            self.space.change.clear()
            return 0.0

        energy = self.energy_change()

        if self.criteria.evaluate(energy, self.rng):
            self.accept()
            self.accepted_count += 1

            if self.alternate_return_energy is not None:
                energy = self.alternate_return_energy
        else:
            self.reject()
            energy = 0.0

        self.space.change.clear()
        self.dusum += energy

        return energy

    @property
    def acceptance(self) -> float:
        """Overall acceptance ratio."""
        return self.accepted_count / self.trial_count if self.trial_count else 0.0

    def check(self) -> list[str]:
        """Move specific invariant checks, see [`test`][mcmoves.moves.core.BaseMove.test]."""
        return []

    def test(self) -> list[str]:
        """
        Check numeric invariants of the space and of the move.

        Returns
        -------
        list[str]
            Descriptions of every violation, empty when everything holds.
        """
        return self.space.check() + self.check()

    def info(self) -> str:
        """Summary text of the move."""
        lines = [
            f"{self.title}",
            f"  {'Run fraction':<28s}{100 * self.runfraction:.1f}%",
            f"  {'Number of trials':<28s}{self.trial_count}",
            f"  {'Acceptance':<28s}{100 * self.acceptance:.2f}%",
            f"  {'No-op trials':<28s}{self.noop_count}",
            f"  {'Total energy change [kT]':<28s}{self.dusum:.6g}",
            f"  {'Wall time [s]':<28s}{self.wall_time:.3f}",
        ]

        description = self.describe()

        if description:
            lines.append(description)

        if len(self.statistics):
            lines.append(self.statistics.info())

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the move to a dictionary.

        Returns
        -------
        dict[str, Any]
            Constructor keyword arguments under "kwargs" and statistics under "attributes".
        """
        return {
            "name": self.__class__.__name__,
            "kwargs": {
                "runfraction": self.runfraction,
                "targets": {name: t.to_dict() for name, t in self.targets.items()},
                "criteria": self.criteria.to_dict(),
            },
            "attributes": {
                "trial_count": self.trial_count,
                "accepted_count": self.accepted_count,
                "noop_count": self.noop_count,
                "dusum": self.dusum,
                "wall_time": self.wall_time,
            },
            "statistics": self.statistics.to_dict(),
        }

    @classmethod
    def build(
        cls, space: Space, hamiltonian: Hamiltonian, rng: RNG | None = None, **kwargs
    ) -> Self:
        """Create the move from configuration keyword arguments, as done by the propagator."""
        return cls(space, hamiltonian, rng=rng, **kwargs)

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        space: Space,
        hamiltonian: Hamiltonian,
        rng: RNG | None = None,
    ) -> Self:
        """
        Create a move from a dictionary.

        Parameters
        ----------
        data : dict[str, Any]
            The dictionary representation of the move.
        space : Space
            The particle store.
        hamiltonian : Hamiltonian
            The energy functions.
        rng : Generator, optional
            The random number generator.

        Returns
        -------
        Self
            The move created from the dictionary.
        """
        kwargs = deepcopy(data.get("kwargs", {}))

        if isinstance(kwargs.get("criteria"), dict):
            criteria_data = kwargs["criteria"]
            criteria_class: type[Criteria] = get_typed_class(
                criteria_data["name"], Criteria
            )
            kwargs["criteria"] = criteria_class.from_dict(criteria_data)

        instance = cls.build(space, hamiltonian, rng=rng, **kwargs)

        for key, value in data.get("attributes", {}).items():
            setattr(instance, key, value)

        return instance


class MoveDecorator(BaseMove):
    """
    Move wrapping an inner move, sharing its space, energy functions, random number
    generator and targets. Hooks default to the inner move; subclasses override the ones
    they augment.

    Parameters
    ----------
    move : BaseMove
        The inner move.
    runfraction : float, optional
        Run fraction of the decorated move, by default the one of the inner move.
    """

    def __init__(self, move: BaseMove, runfraction: float | None = None) -> None:
        super().__init__(
            move.space,
            move.hamiltonian,
            rng=move.rng,
            runfraction=move.runfraction if runfraction is None else runfraction,
            criteria=move.criteria,
        )

        self.inner = move
        self.targets = move.targets

    def select_target(self) -> str:
        name = self.inner.select_target()
        self.current_molecule = name
        return name

    def propose_trial(self) -> bool | None:
        return self.inner.propose_trial()

    def energy_change(self) -> float:
        energy = self.inner.energy_change()
        self.alternate_return_energy = self.inner.alternate_return_energy
        return energy

    def accept(self) -> None:
        self.inner.accept()

    def reject(self) -> None:
        self.inner.reject()

    def describe(self) -> str:
        return self.inner.info()

    def check(self) -> list[str]:
        return self.inner.check()

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"] = {"move": self.inner.to_dict(), "runfraction": self.runfraction}
        return data

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        space: Space,
        hamiltonian: Hamiltonian,
        rng: RNG | None = None,
    ) -> Self:
        kwargs = deepcopy(data.get("kwargs", {}))
        move_data = kwargs.pop("move")
        move_class: type[BaseMove] = get_typed_class(move_data["name"], BaseMove)

        instance = cls(move_class.from_dict(move_data, space, hamiltonian, rng), **kwargs)

        for key, value in data.get("attributes", {}).items():
            setattr(instance, key, value)

        return instance
