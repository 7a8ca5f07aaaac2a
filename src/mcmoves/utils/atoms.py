"""Utility functions for working with atoms."""

from __future__ import annotations

from typing import TYPE_CHECKING

import networkx as nx
import numpy as np
from ase.neighborlist import neighbor_list

if TYPE_CHECKING:
    from ase.atoms import Atoms


def search_molecules(
    atoms: Atoms, cutoff: float | list[float] | tuple[float] | dict[tuple[str, str], float]
) -> list[np.ndarray]:
    """Search for bonded clusters of atoms.

    Parameters
    ----------
    atoms
        The Atoms object to search.
    cutoff
        The cutoff distance used for bonding. Can be a single float, one value per atom,
        or a dictionary with pairs of chemical symbols as keys.

    Returns
    -------
    list[np.ndarray]
        Sorted atom indices of each connected component, ordered by their first index.
    """
    indices, neighbors = neighbor_list(
        "ij", atoms, cutoff=cutoff, self_interaction=False
    )

    graph = nx.Graph()
    graph.add_nodes_from(range(len(atoms)))
    graph.add_edges_from(zip(indices.tolist(), neighbors.tolist(), strict=True))

    components = [
        np.sort(np.fromiter(component, dtype=int))
        for component in nx.connected_components(graph)
    ]

    return sorted(components, key=lambda component: component[0])


def insert_atoms(atoms: Atoms, new_atoms: Atoms, index: int) -> None:
    """Insert atoms into an Atoms object at `index`, in place.

    Parameters
    ----------
    atoms
        The Atoms object to insert atoms into.
    new_atoms
        The Atoms object with the atoms to insert.
    index
        The position at which the new atoms are inserted.
    """
    for name in atoms.arrays:
        if name == "masses":
            new_array = new_atoms.get_masses()
        elif name in new_atoms.arrays:
            new_array = new_atoms.arrays[name]
        else:
            new_array = np.zeros(
                (len(new_atoms), *atoms.arrays[name].shape[1:]),
                dtype=atoms.arrays[name].dtype,
            )

        atoms.arrays[name] = np.insert(atoms.arrays[name], index, new_array, axis=0)

    for name, array in new_atoms.arrays.items():
        if name not in atoms.arrays:
            new_array = np.zeros((len(atoms), *array.shape[1:]), dtype=array.dtype)
            new_array[index : index + len(new_atoms)] = array

            atoms.set_array(name, new_array)
