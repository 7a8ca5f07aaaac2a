"""Acceptance and displacement statistics of Monte Carlo moves."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Hashable, Iterator


@dataclass
class MoveStatistics:
    """
    Running statistics of one key.

    Attributes
    ----------
    trials : int
        Number of recorded trials.
    accepted : int
        Number of accepted trials.
    msd_sum : float
        Sum of the squared displacements of all trials, zero for rejected ones.
    """

    trials: int = 0
    accepted: int = 0
    msd_sum: float = 0.0

    @property
    def ratio(self) -> float:
        return self.accepted / self.trials if self.trials else 0.0

    @property
    def msd(self) -> float:
        return self.msd_sum / self.trials if self.trials else 0.0


class AcceptanceMap:
    """
    Per-key acceptance ratio and mean squared displacement. Keys are arbitrary hashables,
    typically species names, molecule names, site indices or replica pairs.

    Example
    -------
    ``` python
    statistics = AcceptanceMap()
    statistics.accept("Na", True, 0.12)
    statistics.accept("Na", False)

    statistics.ratio("Na")  # 0.5
    statistics.msd("Na")  # 0.06
    ```
    """

    def __init__(self) -> None:
        self.records: dict[Hashable, MoveStatistics] = {}

    def accept(self, key: Hashable, accepted: bool, msd: float = 0.0) -> None:
        """
        Record one trial.

        Parameters
        ----------
        key : Hashable
            The key to record the trial under.
        accepted : bool
            Whether the trial was accepted.
        msd : float, optional
            Squared displacement of the trial, only counted when accepted.
        """
        record = self.records.setdefault(key, MoveStatistics())
        record.trials += 1

        if accepted:
            record.accepted += 1
            record.msd_sum += msd

    def ratio(self, key: Hashable) -> float:
        return self.records[key].ratio if key in self.records else 0.0

    def msd(self, key: Hashable) -> float:
        return self.records[key].msd if key in self.records else 0.0

    def info(self, key_label: str = "Key", msd_unit: str = "Å²") -> str:
        """Text table with one line per key."""
        lines = [f"{key_label:<16s}{'Trials':>12s}{'Acceptance':>14s}{'MSD[' + msd_unit + ']':>16s}"]

        for key, record in self.records.items():
            lines.append(
                f"{str(key):<16s}{record.trials:>12d}{100 * record.ratio:>13.2f}%{record.msd:>16.4g}"
            )

        return "\n".join(lines)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        """Raw records keyed by the string form of each key."""
        return {str(key): asdict(record) for key, record in self.records.items()}

    def __contains__(self, key: object) -> bool:
        return key in self.records

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)
