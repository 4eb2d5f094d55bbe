# primitive.py
"""
Motion primitive: a fixed-duration polynomial segment obtained by holding a
constant control input on one derivative of position.

With control order k the k-th derivative of position equals the control u
for the whole segment and the lower derivatives integrate from the start
state, so each axis is a polynomial of degree k (at most 4 for snap control).
Coefficients are stored in ascending powers, one column per axis.
"""

from math import factorial
from typing import Dict, Optional, Sequence

import numpy as np
from numpy.polynomial import polynomial as P

from state import State

# Highest power stored per axis
MAX_DEGREE = 5

# Slack when comparing against kinodynamic limits
BOUND_EPS = 1e-9

# Names of the supported control orders
CONTROL_NAMES = {1: "vel", 2: "acc", 3: "jrk", 4: "snp"}


class Primitive:
    """
    Constant-control segment of duration dt starting at a State.

    Parameters
    ----------
    start : State
        Start state. Derivatives below the control order are integrated.
    u : array-like
        Control vector, same dimension as the state.
    dt : float
        Segment duration (seconds).
    control_order : int, optional
        Derivative driven by u (1 = velocity ... 4 = snap). Inferred from the
        constraint flags of the start state when omitted.
    limits : sequence of float, optional
        (vmax, amax, jmax, umax). When given the primitive is validated on
        construction and is_validated() reports the outcome; otherwise it
        stays unvalidated until validate() is called.
    """

    def __init__(self, start: State, u, dt: float, control_order: Optional[int] = None,
                 limits: Optional[Sequence[float]] = None):
        self.start = start
        self.dim = start.dim
        self.u = np.asarray(u, dtype=float).ravel()
        self.dt = float(dt)
        self.control_order = int(control_order) if control_order else start.control_order()

        if self.u.shape[0] != self.dim:
            raise ValueError(f"control has dimension {self.u.shape[0]}, state has {self.dim}")
        if self.control_order not in CONTROL_NAMES:
            raise ValueError(f"unsupported control order {self.control_order}")

        # coeffs[i, axis] multiplies t**i
        coeffs = np.zeros((MAX_DEGREE + 1, self.dim))
        for i in range(self.control_order):
            coeffs[i] = start.derivative(i) / factorial(i)
        coeffs[self.control_order] = self.u / factorial(self.control_order)
        self.coeffs = coeffs

        # derivative coefficient tables, index k -> (MAX_DEGREE + 1 - k, dim)
        self._derivs = [coeffs] + [P.polyder(coeffs, k) for k in range(1, MAX_DEGREE + 1)]
        self._J: Dict[int, float] = {}
        self._max_abs: Dict[int, np.ndarray] = {}
        self._validated: Optional[bool] = None
        if limits is not None:
            self.validate(*limits)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def derivative_coeffs(self, k: int) -> np.ndarray:
        """Coefficients of the k-th derivative, ascending powers, one column per axis."""
        if k <= MAX_DEGREE:
            return self._derivs[k]
        return np.zeros((1, self.dim))

    def evaluate(self, t: float) -> State:
        """
        State at local time t.

        Returns
        -------
        State
            Position to jerk at t, or the invalid sentinel when t lies outside
            [0, dt].
        """
        if t < -BOUND_EPS or t > self.dt + BOUND_EPS:
            return State.invalid(self.dim)
        t = min(max(t, 0.0), self.dt)
        pos, vel, acc, jrk = (P.polyval(t, self._derivs[k]) for k in range(4))
        return State(pos, vel, acc, jrk, constraints=self.start.constraints)

    def evaluate_derivative(self, ts, k: int = 0) -> np.ndarray:
        """k-th derivative at an array of times, shape (N, dim)."""
        ts = np.atleast_1d(np.asarray(ts, dtype=float))
        return np.atleast_2d(P.polyval(ts, self.derivative_coeffs(k))).T.reshape(ts.shape[0], self.dim)

    def end_state(self) -> State:
        return self.evaluate(self.dt)

    def sample(self, num: int) -> np.ndarray:
        """Positions at num + 1 evenly spaced times over [0, dt], shape (num + 1, dim)."""
        ts = np.linspace(0.0, self.dt, int(num) + 1)
        return self.evaluate_derivative(ts, 0)

    # ------------------------------------------------------------------
    # Cost functional
    # ------------------------------------------------------------------

    def J(self, k: int) -> float:
        """
        Integral over [0, dt] of the squared k-th derivative, summed over axes.

        Computed in closed form from the coefficient tables.
        """
        if k not in self._J:
            total = 0.0
            d = self.derivative_coeffs(k)
            for axis in range(self.dim):
                sq = P.polymul(d[:, axis], d[:, axis])
                total += float(P.polyval(self.dt, P.polyint(sq)))
            self._J[k] = total
        return self._J[k]

    def cost(self, weights: Sequence[float], w_time: float = 0.0) -> float:
        """Weighted blend of J(0..) plus w_time * dt."""
        total = w_time * self.dt
        for k, weight in enumerate(weights):
            if weight:
                total += weight * self.J(k)
        return total

    # ------------------------------------------------------------------
    # Bounds
    # ------------------------------------------------------------------

    def _critical_times(self, coeffs: np.ndarray) -> np.ndarray:
        """Endpoints plus real roots of coeffs inside (0, dt)."""
        times = [0.0, self.dt]
        roots = P.polyroots(coeffs) if np.any(coeffs) else np.array([])
        for r in roots:
            if abs(r.imag) < 1e-9 and 0.0 < r.real < self.dt:
                times.append(float(r.real))
        return np.array(times)

    def max_abs(self, k: int) -> np.ndarray:
        """
        Per-axis maximum of |k-th derivative| over [0, dt].

        Parameters
        ----------
        k : int
            Derivative order (1 = velocity, 2 = acceleration, 3 = jerk).

        Returns
        -------
        np.ndarray
            Shape (dim,).
        """
        if k not in self._max_abs:
            d = self.derivative_coeffs(k)
            dd = self.derivative_coeffs(k + 1)
            result = np.zeros(self.dim)
            for axis in range(self.dim):
                ts = self._critical_times(dd[:, axis])
                result[axis] = np.max(np.abs(P.polyval(ts, d[:, axis])))
            self._max_abs[k] = result
        return self._max_abs[k]

    def max_speed(self) -> float:
        """Upper bound on the speed along the segment."""
        return float(np.linalg.norm(self.max_abs(1)))

    def bounds(self):
        """
        Axis-aligned bounding box of the position curve.

        Returns
        -------
        tuple of np.ndarray
            (lower, upper), each shape (dim,).
        """
        lower = np.zeros(self.dim)
        upper = np.zeros(self.dim)
        vel = self.derivative_coeffs(1)
        for axis in range(self.dim):
            ts = self._critical_times(vel[:, axis])
            values = P.polyval(ts, self.coeffs[:, axis])
            lower[axis] = values.min()
            upper[axis] = values.max()
        return lower, upper

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, vmax: float = None, amax: float = None, jmax: float = None,
                 umax: float = None) -> bool:
        """
        Check the control and the velocity/acceleration/jerk limits per axis.

        A limit of None or <= 0 disables that check.
        """
        valid = True
        if umax is not None and umax > 0 and np.any(np.abs(self.u) > umax + BOUND_EPS):
            valid = False
        else:
            for k, limit in ((1, vmax), (2, amax), (3, jmax)):
                if limit is None or limit <= 0:
                    continue
                if np.any(self.max_abs(k) > limit + BOUND_EPS):
                    valid = False
                    break
        self._validated = valid
        return valid

    def is_validated(self) -> bool:
        """Result of the last validation, on construction or by validate() (False if never validated)."""
        return bool(self._validated)

    def __repr__(self):
        return (f"Primitive({CONTROL_NAMES[self.control_order]}={self.u.tolist()}, "
                f"dt={self.dt}, start={self.start.pos.tolist()})")
