# control_lattice.py
"""
Finite set of control inputs applied at every expansion of the lattice search.
"""

import itertools
from typing import Iterable, Optional, Sequence

import numpy as np


class ControlLattice:
    """
    Deterministically ordered control vectors and the primitive duration.

    Parameters
    ----------
    controls : iterable of array-like
        Control vectors, all of the same dimension. Order is kept.
    dt : float
        Duration of every primitive generated from this lattice.
    """

    def __init__(self, controls: Iterable, dt: float):
        controls = [np.asarray(u, dtype=float).ravel() for u in controls]
        self.dt = float(dt)
        if controls:
            self.controls = np.vstack(controls)
        else:
            self.controls = np.zeros((0, 0))
        self.controls.setflags(write=False)

    @classmethod
    def from_bounds(cls, umax: float, du: float, dim: int, dt: float,
                    active_axes: Optional[Sequence[int]] = None) -> "ControlLattice":
        """
        Sample each active axis on [-umax, umax] with step du.

        Order is lexicographic with the last axis varying fastest. Inactive
        axes stay at zero (a planar lattice in a 3D state).
        """
        if umax <= 0 or du <= 0:
            return cls([], dt)
        steps = int(np.floor(umax / du + 1e-9))
        samples = [k * du for k in range(-steps, steps + 1)]
        axes = list(range(dim)) if active_axes is None else list(active_axes)

        controls = []
        for combo in itertools.product(samples, repeat=len(axes)):
            u = np.zeros(dim)
            u[axes] = combo
            controls.append(u)
        return cls(controls, dt)

    @property
    def dim(self) -> int:
        return self.controls.shape[1] if len(self) else 0

    @property
    def umax(self) -> float:
        return float(np.max(np.abs(self.controls))) if len(self) else 0.0

    def enumerate(self) -> np.ndarray:
        """All controls, shape (N, dim), in their fixed order."""
        return self.controls

    def __len__(self):
        return self.controls.shape[0]

    def __iter__(self):
        return iter(self.controls)

    def __repr__(self):
        return f"ControlLattice({len(self)} controls, dim={self.dim}, dt={self.dt})"
