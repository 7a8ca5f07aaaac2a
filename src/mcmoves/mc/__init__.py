"""Monte Carlo drivers and acceptance criteria."""

from __future__ import annotations

from mcmoves.mc.core import MoveStorage, Propagator
from mcmoves.mc.criteria import Criteria, MetropolisCriteria
from mcmoves.mc.driver import Driver
from mcmoves.registry import register_class

__all__ = ["Criteria", "Driver", "MetropolisCriteria", "MoveStorage", "Propagator"]

mc_registry = {
    "MetropolisCriteria": MetropolisCriteria,
    "MoveStorage": MoveStorage,
    "Propagator": Propagator,
}

for name, mc_class in mc_registry.items():
    register_class(mc_class, name)
