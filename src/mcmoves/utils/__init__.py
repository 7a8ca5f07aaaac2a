"""Utility functions."""

from __future__ import annotations

from mcmoves.utils.atoms import insert_atoms, search_molecules
from mcmoves.utils.strings import get_auto_header_format

__all__ = ["get_auto_header_format", "insert_atoms", "search_molecules"]
