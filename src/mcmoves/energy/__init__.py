"""Energy evaluation services."""

from __future__ import annotations

from mcmoves.energy.core import Hamiltonian, PairHamiltonian, particle_properties
from mcmoves.energy.equilibrium import Equilibrium, TitrationProcess
from mcmoves.registry import register_class

__all__ = [
    "Equilibrium",
    "Hamiltonian",
    "PairHamiltonian",
    "TitrationProcess",
    "particle_properties",
]

energy_registry = {
    "Equilibrium": Equilibrium,
    "PairHamiltonian": PairHamiltonian,
    "TitrationProcess": TitrationProcess,
}

for name, cls in energy_registry.items():
    register_class(cls, name)
