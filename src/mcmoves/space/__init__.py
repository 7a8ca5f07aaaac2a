"""Particle store, groups, species and geometry services."""

from __future__ import annotations

from mcmoves.registry import register_class
from mcmoves.space import geometry
from mcmoves.space.core import Space
from mcmoves.space.groups import Change, Group
from mcmoves.space.species import Species, SpeciesTracker

__all__ = ["Change", "Group", "Space", "Species", "SpeciesTracker", "geometry"]

space_registry = {"Space": Space, "Species": Species}

for name, cls in space_registry.items():
    register_class(cls, name)
