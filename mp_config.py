"""
Configuration for the motion primitive lattice planner.

Module-level constants are the defaults; PlannerConfig copies them and is
what a planning query actually reads.
"""

import json
from dataclasses import asdict, dataclass, field, fields
from typing import List, Optional, Sequence

import numpy as np

from control_lattice import ControlLattice

# Search
EPSILON = 1.0           # Heuristic inflation (1.0 = optimal, >1.0 = weighted A*)
MAX_EXPANSIONS = None   # Expansion budget, None = unlimited
MAX_TIME = None         # Wall-clock budget in seconds, None = unlimited

# Kinodynamic limits (<= 0 disables a check)
VMAX = 1.0
AMAX = 1.0
JMAX = 1.0
UMAX = 0.5

# Lattice
DT = 1.0                # Duration of every primitive (seconds)
DU = 0.5                # Control sampling step
CONTROL_ORDER = None    # 1 vel, 2 acc, 3 jrk, 4 snp; None = infer from start flags

# Cost: sum_k COST_WEIGHTS[k] * J(k) + W * dt. None = unit weight on J(control order)
W = 10.0
COST_WEIGHTS = None

# Goal tolerance (<= 0 disables velocity/acceleration checks)
TOL_POS = 0.5
TOL_VEL = 0.5
TOL_ACC = 0.5

# Key quantisation: (pos, vel, acc, jrk) cell sizes, None = derived from map and lattice
KEY_RESOLUTION = None

# Real-time stepping
TIME_BUDGET_PER_STEP = 0.02   # seconds per step() call
ITERATIONS_PER_CHECK = 5      # check the clock every N expansions

# Anytime schedule
EPSILON_SCHEDULE = (3.0, 2.0, 1.5, 1.0)


class ConfigurationError(ValueError):
    """Malformed planner parameters; raised before any search starts."""


@dataclass
class PlannerConfig:
    """
    Planner parameters, defaults taken from the module constants.

    Setters return self so a config can be built fluently::

        cfg = PlannerConfig().set_epsilon(1.0).set_dt(1.0).set_tol(0.2, 0.1, 1.0)
    """
    epsilon: float = EPSILON
    vmax: float = VMAX
    amax: float = AMAX
    jmax: float = JMAX
    umax: float = UMAX
    dt: float = DT
    du: float = DU
    controls: Optional[List[List[float]]] = None
    control_order: Optional[int] = CONTROL_ORDER
    w: float = W
    cost_weights: Optional[List[float]] = COST_WEIGHTS
    max_expansions: Optional[int] = MAX_EXPANSIONS
    max_time: Optional[float] = MAX_TIME
    tol_pos: float = TOL_POS
    tol_vel: float = TOL_VEL
    tol_acc: float = TOL_ACC
    key_resolution: Optional[List[float]] = KEY_RESOLUTION
    check_continuity: bool = False
    epsilon_schedule: Sequence[float] = field(default_factory=lambda: list(EPSILON_SCHEDULE))

    # ------------------------------------------------------------------
    # Builder surface
    # ------------------------------------------------------------------

    def set_epsilon(self, epsilon):
        self.epsilon = float(epsilon)
        return self

    def set_vmax(self, vmax):
        self.vmax = float(vmax)
        return self

    def set_amax(self, amax):
        self.amax = float(amax)
        return self

    def set_jmax(self, jmax):
        self.jmax = float(jmax)
        return self

    def set_umax(self, umax):
        self.umax = float(umax)
        return self

    def set_dt(self, dt):
        self.dt = float(dt)
        return self

    def set_w(self, w):
        self.w = float(w)
        return self

    def set_max_num(self, max_expansions):
        """Expansion budget; negative or None means unlimited."""
        if max_expansions is None or max_expansions < 0:
            self.max_expansions = None
        else:
            self.max_expansions = int(max_expansions)
        return self

    def set_u(self, controls):
        """Explicit control set, overriding (umax, du) sampling."""
        self.controls = [np.asarray(u, dtype=float).ravel().tolist() for u in controls]
        return self

    def set_tol(self, tol_pos, tol_vel=None, tol_acc=None):
        self.tol_pos = float(tol_pos)
        if tol_vel is not None:
            self.tol_vel = float(tol_vel)
        if tol_acc is not None:
            self.tol_acc = float(tol_acc)
        return self

    def set_control_order(self, order):
        self.control_order = None if order is None else int(order)
        return self

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def goal_tolerances(self):
        """(pos, vel, acc) tolerances."""
        return (self.tol_pos, self.tol_vel, self.tol_acc)

    def limits(self):
        """(vmax, amax, jmax, umax) in the order Primitive.validate takes them."""
        return (self.vmax, self.amax, self.jmax, self.umax)

    def edge_weights(self, control_order: int) -> List[float]:
        """Weights on J(0..4); unit weight on the control derivative by default."""
        if self.cost_weights is not None:
            return [float(x) for x in self.cost_weights]
        weights = [0.0] * 5
        weights[control_order] = 1.0
        return weights

    def build_lattice(self, dim: int) -> ControlLattice:
        if self.controls is not None:
            return ControlLattice(self.controls, self.dt)
        return ControlLattice.from_bounds(self.umax, self.du, dim, self.dt)

    # ------------------------------------------------------------------
    # Validation / IO
    # ------------------------------------------------------------------

    def validate(self):
        """
        Raise ConfigurationError for parameters no search could use.

        Returns
        -------
        PlannerConfig
            self, for chaining.
        """
        errors = []
        if not self.dt or self.dt <= 0:
            errors.append(f"dt must be positive, got {self.dt}")
        if self.umax is None or self.umax <= 0:
            errors.append(f"umax must be positive, got {self.umax}")
        if self.epsilon is None or self.epsilon < 1.0:
            errors.append(f"epsilon must be >= 1, got {self.epsilon}")
        if self.controls is None and (self.du is None or self.du <= 0):
            errors.append(f"du must be positive, got {self.du}")
        if self.controls is not None and len(self.controls) == 0:
            errors.append("control set is empty")
        if self.w is None or self.w < 0:
            errors.append(f"w must be non-negative, got {self.w}")
        if self.control_order is not None and self.control_order not in (1, 2, 3, 4):
            errors.append(f"control_order must be 1..4, got {self.control_order}")
        if self.tol_pos is None or self.tol_pos < 0:
            errors.append(f"tol_pos must be non-negative, got {self.tol_pos}")
        for name in ("tol_vel", "tol_acc"):
            if getattr(self, name) is None:
                errors.append(f"{name} must be a number")
        if self.cost_weights is not None:
            if any(x < 0 for x in self.cost_weights):
                errors.append(f"cost_weights must be non-negative, got {self.cost_weights}")
        if self.key_resolution is not None:
            if any(r is not None and r <= 0 for r in self.key_resolution):
                errors.append(f"key_resolution entries must be positive, got {self.key_resolution}")
        if self.max_time is not None and self.max_time <= 0:
            errors.append(f"max_time must be positive, got {self.max_time}")
        if any(e < 1.0 for e in self.epsilon_schedule):
            errors.append(f"epsilon_schedule entries must be >= 1, got {list(self.epsilon_schedule)}")

        if errors:
            raise ConfigurationError("; ".join(errors))
        return self

    @classmethod
    def from_dict(cls, data: dict) -> "PlannerConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"unknown planner options: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_json(cls, filename: str) -> "PlannerConfig":
        with open(filename, 'r') as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["epsilon_schedule"] = list(self.epsilon_schedule)
        return data

    def save(self, filename: str):
        with open(filename, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
