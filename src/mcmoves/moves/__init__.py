"""Module for the Monte Carlo trial moves."""

from __future__ import annotations

from mcmoves.moves.atomic import AtomicMove, AtomicRotation, AtomicTranslation
from mcmoves.moves.cluster import ClusterMove, TranslateRotateCluster, contact_probability
from mcmoves.moves.core import BaseMove, MoleculeTarget, MoveDecorator
from mcmoves.moves.exchange import GrandCanonicalSalt, GrandCanonicalTitration
from mcmoves.moves.isobaric import Isobaric
from mcmoves.moves.polarize import PolarizeMove
from mcmoves.moves.polymer import CrankShaft, Pivot, PolymerMove, Reptation
from mcmoves.moves.protocol import MoveProtocol
from mcmoves.moves.rigid import TranslateRotate, TranslateRotateNbody, TranslateRotateTwobody
from mcmoves.moves.statistics import AcceptanceMap, MoveStatistics
from mcmoves.moves.tempering import (
    Communicator,
    LocalCommunicator,
    MPICommunicator,
    ParallelTempering,
    ReplicaExchangeError,
)
from mcmoves.registry import register_class, register_tag

__all__ = [
    "AcceptanceMap",
    "AtomicMove",
    "AtomicRotation",
    "AtomicTranslation",
    "BaseMove",
    "ClusterMove",
    "Communicator",
    "CrankShaft",
    "GrandCanonicalSalt",
    "GrandCanonicalTitration",
    "Isobaric",
    "LocalCommunicator",
    "MPICommunicator",
    "MoleculeTarget",
    "MoveDecorator",
    "MoveProtocol",
    "MoveStatistics",
    "ParallelTempering",
    "Pivot",
    "PolarizeMove",
    "PolymerMove",
    "ReplicaExchangeError",
    "Reptation",
    "TranslateRotate",
    "TranslateRotateCluster",
    "TranslateRotateNbody",
    "TranslateRotateTwobody",
    "contact_probability",
]

moves_registry: dict[str, type[BaseMove]] = {
    "AtomicTranslation": AtomicTranslation,
    "AtomicRotation": AtomicRotation,
    "GrandCanonicalSalt": GrandCanonicalSalt,
    "GrandCanonicalTitration": GrandCanonicalTitration,
    "TranslateRotate": TranslateRotate,
    "TranslateRotateNbody": TranslateRotateNbody,
    "TranslateRotateTwobody": TranslateRotateTwobody,
    "TranslateRotateCluster": TranslateRotateCluster,
    "ClusterMove": ClusterMove,
    "Isobaric": Isobaric,
    "CrankShaft": CrankShaft,
    "Pivot": Pivot,
    "Reptation": Reptation,
    "ParallelTempering": ParallelTempering,
    "PolarizeMove": PolarizeMove,
}

move_tags: dict[str, type[BaseMove]] = {
    "atomtranslate": AtomicTranslation,
    "atomrotate": AtomicRotation,
    "atomgc": GrandCanonicalSalt,
    "gctit": GrandCanonicalTitration,
    "moltransrot": TranslateRotate,
    "moltransrotnbody": TranslateRotateNbody,
    "moltransrot2body": TranslateRotateTwobody,
    "moltransrotcluster": TranslateRotateCluster,
    "clustermove": ClusterMove,
    "isobaric": Isobaric,
    "crankshaft": CrankShaft,
    "pivot": Pivot,
    "reptate": Reptation,
    "temper": ParallelTempering,
}
"""Configuration tags understood by [`Propagator.from_config`][mcmoves.mc.core.Propagator.from_config]."""

for name, cls in moves_registry.items():
    register_class(cls, name)

for tag, cls in move_tags.items():
    register_tag(tag, cls)
