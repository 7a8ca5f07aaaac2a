"""Random perturbations used by the moves."""

from __future__ import annotations

from mcmoves.operations.core import Operation
from mcmoves.operations.displacement import (
    Box,
    DisplacementOperation,
    Rotation,
    Sphere,
)
from mcmoves.registry import register_class

__all__ = ["Box", "DisplacementOperation", "Operation", "Rotation", "Sphere"]

operations_registry = {
    "Box": Box,
    "Rotation": Rotation,
    "Sphere": Sphere,
}

for name, cls in operations_registry.items():
    register_class(cls, name)
