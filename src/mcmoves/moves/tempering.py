"""
Replica exchange (parallel tempering) between simulations running in separate processes
or threads, coupled through a communicator.
"""

from __future__ import annotations

import queue
import threading
import time
from typing import TYPE_CHECKING, Any, Protocol, Self, runtime_checkable

import numpy as np
from numpy.random import PCG64
from numpy.random import Generator as RNG

from mcmoves.moves.core import BaseMove

if TYPE_CHECKING:
    from collections.abc import Callable

    from ase.atoms import Atoms

    from mcmoves.energy import Hamiltonian
    from mcmoves.space import Space


class ReplicaExchangeError(RuntimeError):
    """Raised when the data received from a partner replica is inconsistent."""


@runtime_checkable
class Communicator(Protocol):
    """Point to point channel between replicas."""

    rank: int
    size: int

    def exchange(self, partner: int, array: np.ndarray) -> np.ndarray:
        """Send `array` to `partner` and return the array it sent back."""
        ...

    def abort(self) -> None: ...


class MPICommunicator:
    """
    [`Communicator`][mcmoves.moves.tempering.Communicator] on top of `mpi4py`.

    Arrays are exchanged with paired non-blocking send and receive, the sizes first, then
    the data. Both requests are completed before returning.

    Parameters
    ----------
    comm : MPI.Comm, optional
        The communicator, by default `MPI.COMM_WORLD`.
    timeout : float, optional
        Seconds to wait for a partner before raising `TimeoutError`, by default forever.
    tag : int, optional
        Base message tag, by default 8100.
    """

    def __init__(self, comm=None, timeout: float | None = None, tag: int = 8100) -> None:
        from mpi4py import MPI

        self.MPI = MPI
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.timeout = timeout
        self.tag = tag

        self.rank: int = self.comm.Get_rank()
        self.size: int = self.comm.Get_size()

    def wait(self, requests: list) -> None:
        if self.timeout is None:
            self.MPI.Request.Waitall(requests)
            return

        start = time.perf_counter()

        while not self.MPI.Request.Testall(requests):
            if time.perf_counter() - start > self.timeout:
                for request in requests:
                    request.Cancel()

                raise TimeoutError(
                    f"Rank {self.rank}: no answer from partner within {self.timeout} s."
                )

            time.sleep(1e-4)

    def swap(self, partner: int, send: np.ndarray, receive: np.ndarray, tag: int) -> None:
        MPI = self.MPI

        requests = [
            self.comm.Irecv([receive, MPI.DOUBLE], source=partner, tag=tag),
            self.comm.Isend([send, MPI.DOUBLE], dest=partner, tag=tag),
        ]

        self.wait(requests)

    def exchange(self, partner: int, array: np.ndarray) -> np.ndarray:
        send = np.ascontiguousarray(array, dtype=np.float64).ravel()
        size = np.empty(1, dtype=np.float64)

        self.swap(partner, np.array([send.size], dtype=np.float64), size, self.tag)

        receive = np.empty(int(size[0]), dtype=np.float64)
        self.swap(partner, send, receive, self.tag + 1)

        return receive

    def abort(self) -> None:
        self.comm.Abort(1)


class LocalCommunicator:
    """
    In-process [`Communicator`][mcmoves.moves.tempering.Communicator] for replicas running
    in threads, built with [`create`][mcmoves.moves.tempering.LocalCommunicator.create].

    Parameters
    ----------
    rank : int
        Rank of this replica.
    size : int
        Number of replicas.
    channels : dict[tuple[int, int], queue.Queue]
        Shared mailboxes keyed by (sender, receiver).
    timeout : float, optional
        Seconds to wait for a partner, by default 30.
    aborted : threading.Event, optional
        Event shared by the replicas, set by [`abort`][mcmoves.moves.tempering.LocalCommunicator.abort].
    """

    def __init__(
        self,
        rank: int,
        size: int,
        channels: dict[tuple[int, int], queue.Queue],
        timeout: float | None = 30.0,
        aborted: threading.Event | None = None,
    ) -> None:
        self.rank = rank
        self.size = size
        self.channels = channels
        self.timeout = timeout
        self.aborted = aborted if aborted is not None else threading.Event()

    @classmethod
    def create(cls, size: int, timeout: float | None = 30.0) -> list[LocalCommunicator]:
        """One connected communicator per replica."""
        channels = {
            (sender, receiver): queue.Queue()
            for sender in range(size)
            for receiver in range(size)
            if sender != receiver
        }
        aborted = threading.Event()

        return [cls(rank, size, channels, timeout, aborted) for rank in range(size)]

    def exchange(self, partner: int, array: np.ndarray) -> np.ndarray:
        self.channels[(self.rank, partner)].put(np.array(array, dtype=np.float64).ravel())

        try:
            return self.channels[(partner, self.rank)].get(timeout=self.timeout)
        except queue.Empty as error:
            raise TimeoutError(
                f"Rank {self.rank}: no answer from partner {partner} within {self.timeout} s."
            ) from error

    def abort(self) -> None:
        self.aborted.set()


class ParallelTempering(BaseMove):
    """
    Swap configurations between neighboring replicas.

    Each trial pairs replicas (``dr = ±1`` drawn at random, added by even ranks and
    subtracted by odd ones), exchanges positions, charges, species, dipoles and volume
    with the partner, evaluates the received configuration with the local Hamiltonian and
    swaps the local energy changes so both replicas take the same decision. Replicas must
    therefore share the seed of their random number generators.

    A round without a valid partner returns +∞. The reported energy is the local change
    ``u_new - u_old`` only.

    Parameters
    ----------
    space : Space
        The particle store.
    hamiltonian : Hamiltonian
        The local energy functions.
    communicator : Communicator
        The channel to the other replicas.
    rng : Generator, optional
        Random number generator, identical on every replica.
    seed : int, optional
        Seed of the generator when `rng` is None, by default 0.
    energy_function : Callable[[Atoms], float], optional
        Total energy of a configuration, by default `hamiltonian.system_energy`.
    **kwargs
        Keyword arguments of [`BaseMove`][mcmoves.moves.core.BaseMove].
    """

    title = "Parallel Tempering"

    def __init__(
        self,
        space: Space,
        hamiltonian: Hamiltonian,
        communicator: Communicator,
        rng: RNG | None = None,
        seed: int = 0,
        energy_function: Callable[[Atoms], float] | None = None,
        **kwargs,
    ) -> None:
        super().__init__(
            space, hamiltonian, rng=rng if rng is not None else RNG(PCG64(seed)), **kwargs
        )

        self.communicator = communicator
        self.seed = seed
        self.energy_function = energy_function or hamiltonian.system_energy

        self.partner = -1
        self.current_energy: float | None = None
        self.sent_volume = 0.0
        self.received_volume = 0.0

    @classmethod
    def build(
        cls,
        space: Space,
        hamiltonian: Hamiltonian,
        rng: RNG | None = None,
        communicator: Communicator | None = None,
        **kwargs,
    ) -> Self:
        """
        Create the move, connecting to `MPI.COMM_WORLD` when no communicator is given.

        The shared `rng` is ignored: the move draws from its own generator seeded with
        `seed` so that every replica makes the same draws.
        """
        if communicator is None:
            communicator = MPICommunicator()

        return cls(space, hamiltonian, communicator, **kwargs)

    def set_current_energy(self, energy: float) -> None:
        """Provide the energy of the current configuration to skip its evaluation on the next trial."""
        self.current_energy = energy

    def find_partner(self) -> int:
        rank = self.communicator.rank
        dr = 1 if self.rng.random() > 0.5 else -1

        self.partner = rank + dr if rank % 2 == 0 else rank - dr

        return self.partner

    def good_partner(self) -> bool:
        return 0 <= self.partner < self.communicator.size and self.partner != self.communicator.rank

    def key(self) -> str:
        low, high = sorted((self.communicator.rank, self.partner))
        return f"{low} <-> {high}"

    def pack(self) -> np.ndarray:
        config = self.space.atoms

        return np.concatenate(
            [
                [self.space.volume(), len(config)],
                config.positions.ravel(),
                config.get_initial_charges(),
                config.arrays["species"].astype(float),
                config.arrays["dipoles"].ravel(),
            ]
        )

    def fail(self, message: str) -> None:
        self.communicator.abort()
        raise ReplicaExchangeError(f"{self.title} (rank {self.communicator.rank}): {message}")

    def unpack(self, data: np.ndarray) -> None:
        space = self.space
        size = len(space.atoms)

        self.received_volume = float(data[0])

        if self.received_volume < 1e-6:
            self.fail(f"invalid volume {self.received_volume} received from rank {self.partner}.")

        if int(data[1]) != size or len(data) != 2 + 8 * size:
            self.fail(
                f"rank {self.partner} sent {int(data[1])} particles, {size} expected."
            )

        offset = 2
        positions = data[offset : offset + 3 * size].reshape(size, 3)
        offset += 3 * size
        charges = data[offset : offset + size]
        offset += size
        species = data[offset : offset + size].astype(int)
        offset += size
        dipoles = data[offset:].reshape(size, 3)

        for index in np.flatnonzero(species != space.atoms.arrays["species"]):
            space.set_species(int(index), space.species_list[species[index]].name, trial=True)

        space.set_volume(self.received_volume, trial=True)

        space.trial.positions[:] = positions
        space.trial.arrays["initial_charges"][:] = charges
        space.trial.arrays["dipoles"][:] = dipoles

        for n, group in enumerate(space.groups):
            if group.molecular and not group.empty():
                space.update_mass_center(n)

        space.change.geometry_change = True
        space.change.dV = self.received_volume - self.sent_volume

        for n in range(len(space.groups)):
            space.change.add_group(n)

    def propose_trial(self) -> bool:
        self.find_partner()

        if self.good_partner():
            self.sent_volume = self.space.volume()
            self.unpack(self.communicator.exchange(self.partner, self.pack()))

        return True

    def energy_change(self) -> float:
        self.alternate_return_energy = 0.0

        if not self.good_partner():
            return np.inf

        if self.current_energy is not None:
            uold = self.current_energy
        else:
            uold = self.energy_function(self.space.atoms)

        unew = self.energy_function(self.space.trial)
        du = unew - uold

        du_partner = float(self.communicator.exchange(self.partner, np.array([du]))[0])

        self.current_energy = None
        self.alternate_return_energy = du

        return du + du_partner

    def accept(self) -> None:
        if not self.good_partner():
            return

        space = self.space

        self.statistics.accept(self.key(), True)
        space.accept_particles(np.arange(len(space.atoms)))
        space.accept_volume()

        for group in space.groups:
            group.accept()

    def reject(self) -> None:
        if not self.good_partner():
            return

        space = self.space

        self.statistics.accept(self.key(), False)
        space.undo_particles(np.arange(len(space.atoms)))
        space.undo_volume()

        for group in space.groups:
            group.undo()

    def describe(self) -> str:
        return "\n".join(
            [
                f"  {'Process rank':<28s}{self.communicator.rank}",
                f"  {'Number of replicas':<28s}{self.communicator.size}",
            ]
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["kwargs"]["seed"] = self.seed
        return data
