# state.py
"""
Kinodynamic waypoint used by primitives, trajectories and the lattice search.
"""

from dataclasses import dataclass, field
from enum import IntFlag
from typing import Optional, Sequence

import numpy as np


class Constraint(IntFlag):
    """Which derivatives of a State are meaningful when matching."""
    NONE = 0
    POS = 1
    VEL = 2
    ACC = 4
    JRK = 8


DERIVATIVE_FLAGS = (Constraint.POS, Constraint.VEL, Constraint.ACC, Constraint.JRK)


def _vec(x, dim):
    if x is None:
        return np.zeros(dim)
    return np.asarray(x, dtype=float).reshape(dim)


@dataclass(eq=False)
class State:
    """
    Position, velocity, acceleration and jerk of a 2D or 3D point robot.

    Parameters
    ----------
    pos : array-like
        Position, shape (2,) or (3,). Fixes the dimension of the state.
    vel, acc, jrk : array-like, optional
        Higher derivatives, zero when omitted.
    constraints : Constraint
        Components that are constrained (matched against) rather than free.
    """
    pos: np.ndarray
    vel: Optional[np.ndarray] = None
    acc: Optional[np.ndarray] = None
    jrk: Optional[np.ndarray] = None
    constraints: Constraint = Constraint.POS | Constraint.VEL
    valid: bool = field(default=True, repr=False)

    def __post_init__(self):
        self.pos = np.asarray(self.pos, dtype=float).ravel()
        dim = self.pos.shape[0]
        if dim not in (2, 3):
            raise ValueError(f"State dimension must be 2 or 3, got {dim}")
        self.vel = _vec(self.vel, dim)
        self.acc = _vec(self.acc, dim)
        self.jrk = _vec(self.jrk, dim)
        self.constraints = Constraint(self.constraints)

    @classmethod
    def invalid(cls, dim: int = 3) -> "State":
        """Sentinel returned when a trajectory is evaluated out of range."""
        return cls(np.full(dim, np.nan), constraints=Constraint.NONE, valid=False)

    @classmethod
    def from_flags(cls, pos, vel=None, acc=None, jrk=None,
                   use_pos=True, use_vel=True, use_acc=False, use_jrk=False) -> "State":
        """Build a State from the four use_* booleans."""
        flags = Constraint.NONE
        for used, flag in zip((use_pos, use_vel, use_acc, use_jrk), DERIVATIVE_FLAGS):
            if used:
                flags |= flag
        return cls(pos, vel, acc, jrk, constraints=flags)

    @property
    def dim(self) -> int:
        return self.pos.shape[0]

    @property
    def use_pos(self) -> bool:
        return bool(self.constraints & Constraint.POS)

    @property
    def use_vel(self) -> bool:
        return bool(self.constraints & Constraint.VEL)

    @property
    def use_acc(self) -> bool:
        return bool(self.constraints & Constraint.ACC)

    @property
    def use_jrk(self) -> bool:
        return bool(self.constraints & Constraint.JRK)

    def is_valid(self) -> bool:
        return self.valid

    def derivative(self, k: int) -> np.ndarray:
        """Return the k-th derivative (0 = position ... 3 = jerk)."""
        return (self.pos, self.vel, self.acc, self.jrk)[k]

    def derivatives(self) -> np.ndarray:
        """Stacked derivatives, shape (4, dim)."""
        return np.vstack([self.pos, self.vel, self.acc, self.jrk])

    def control_order(self) -> int:
        """
        Derivative driven by the control input when none is configured.

        Counts the leading constrained components from position: POS gives
        velocity control (1), POS|VEL acceleration control (2), POS|VEL|ACC
        jerk control (3) and all four snap control (4).
        """
        order = 0
        for flag in DERIVATIVE_FLAGS:
            if not self.constraints & flag:
                break
            order += 1
        return max(order, 1)

    def with_constraints(self, constraints: Constraint) -> "State":
        return State(self.pos.copy(), self.vel.copy(), self.acc.copy(),
                     self.jrk.copy(), constraints=constraints)

    def copy(self) -> "State":
        return State(self.pos.copy(), self.vel.copy(), self.acc.copy(),
                     self.jrk.copy(), constraints=self.constraints, valid=self.valid)

    @staticmethod
    def coincident(a: "State", b: "State", tolerances: Sequence[float]) -> bool:
        """
        True when every component constrained in both states matches.

        Parameters
        ----------
        a, b : State
            States to compare.
        tolerances : sequence of float
            Per-derivative tolerance on the Euclidean norm of the difference,
            indexed position, velocity, acceleration, jerk. Missing entries
            default to the last one given.
        """
        if not (a.valid and b.valid) or a.dim != b.dim:
            return False
        shared = a.constraints & b.constraints
        for k, flag in enumerate(DERIVATIVE_FLAGS):
            if not shared & flag:
                continue
            tol = tolerances[min(k, len(tolerances) - 1)]
            if np.linalg.norm(a.derivative(k) - b.derivative(k)) > tol:
                return False
        return True
