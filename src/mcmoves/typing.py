from __future__ import annotations

from numpy import dtype, floating, integer, ndarray

IntegerArray = list[int] | tuple[int, ...] | ndarray[tuple[int], dtype[integer]]

Direction = ndarray[tuple[3], dtype[floating]]
Displacement = ndarray[tuple[3], dtype[floating]]
Vector = ndarray[tuple[3], dtype[floating]]

RotationMatrix = ndarray[tuple[3, 3], dtype[floating]]

Masses = ndarray[tuple[int], dtype[floating]]
Positions = ndarray[tuple[int, 3], dtype[floating]]
