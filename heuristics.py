# heuristics.py
"""
Cost-to-go estimates for the lattice search.

All estimates bound the default edge cost (rho * control effort + w * time)
from below over the whole goal region. For a fixed duration T the minimum
effort of the unconstrained problem splits into orthogonal residual terms;
each residual is shrunk by what the goal tolerances allow, w * T is added,
and the sum is minimised over T >= T_bar, where T_bar is the time needed at
maximum speed.
"""

import logging

import numpy as np
from numpy.polynomial import Polynomial

from state import State

logger = logging.getLogger(__name__)

# Durations below this are ignored when scanning stationary points
MIN_DURATION = 1e-6

# Geometric duration intervals of the goal-region minimisation
REGION_INTERVALS = 256

# Coarse duration scan (times max(T_bar, 1 ms)) that caps the minimisation range
REGION_SCAN = np.geomspace(1.0, 1e5, 41)


def time_lower_bound(state: State, goal: State, vmax: float, tol_pos: float = 0.0) -> float:
    """Time to cover the largest axis gap at vmax (0 if vmax is disabled)."""
    if vmax is None or vmax <= 0:
        return 0.0
    gap = np.max(np.abs(goal.pos - state.pos)) - tol_pos
    return max(gap, 0.0) / vmax


def _best_duration(cost, stationary_roots, t_bar):
    """Minimum of cost(T) over the candidate durations >= t_bar."""
    candidates = [t_bar] if t_bar > MIN_DURATION else []
    for r in stationary_roots:
        if abs(r.imag) < 1e-8 and r.real > max(t_bar, MIN_DURATION):
            candidates.append(float(r.real))
    if not candidates:
        return 0.0
    return min(cost(t) for t in candidates)


def double_integrator_cost(p0, v0, p1, v1, w: float, rho: float = 1.0, t_bar: float = 0.0) -> float:
    """
    Min over T of w*T + rho * (min integral of |a|^2 from (p0, v0) to (p1, v1)).

    For fixed T the effort is 12|dp|^2/T^3 - 12 (v0+v1).dp/T^2
    + 4 (|v0|^2 + v0.v1 + |v1|^2)/T; its stationary points in T are the
    positive roots of w T^4 + rho c3 T^2 + rho c2 T + rho c1.
    """
    if w <= 0:
        return 0.0
    dp = np.asarray(p1, dtype=float) - np.asarray(p0, dtype=float)
    v0 = np.asarray(v0, dtype=float)
    v1 = np.asarray(v1, dtype=float)

    c1 = -36.0 * dp.dot(dp)
    c2 = 24.0 * (v0 + v1).dot(dp)
    c3 = -4.0 * (v0.dot(v0) + v0.dot(v1) + v1.dot(v1))

    def cost(t):
        return w * t + rho * (-c1 / 3.0 / t ** 3 - c2 / 2.0 / t ** 2 - c3 / t)

    roots = np.roots([w, 0.0, rho * c3, rho * c2, rho * c1])
    return _best_duration(cost, roots, t_bar)


def _jerk_coefficients(dp, v0, v1, a0, a1, t):
    """alpha, beta, gamma of the min-jerk polynomial for duration t (per axis arrays)."""
    res_p = dp - v0 * t - 0.5 * a0 * t ** 2
    res_v = v1 - v0 - a0 * t
    res_a = a1 - a0
    alpha = (720.0 * res_p - 360.0 * t * res_v + 60.0 * t ** 2 * res_a) / t ** 5
    beta = (-360.0 * t * res_p + 168.0 * t ** 2 * res_v - 24.0 * t ** 3 * res_a) / t ** 5
    gamma = (60.0 * t ** 2 * res_p - 24.0 * t ** 3 * res_v + 3.0 * t ** 4 * res_a) / t ** 5
    return alpha, beta, gamma


def min_jerk_effort(dp, v0, v1, a0, a1, t: float) -> float:
    """Integral of |jerk|^2 of the minimum-jerk connection of duration t."""
    alpha, beta, gamma = _jerk_coefficients(dp, v0, v1, a0, a1, t)
    return float(np.sum(gamma ** 2 * t + beta * gamma * t ** 2
                        + (beta ** 2 + alpha * gamma) * t ** 3 / 3.0
                        + alpha * beta * t ** 4 / 4.0 + alpha ** 2 * t ** 5 / 20.0))


def triple_integrator_cost(p0, v0, a0, p1, v1, a1, w: float, rho: float = 1.0,
                           t_bar: float = 0.0) -> float:
    """
    Min over T of w*T + rho * (min integral of |j|^2) with position,
    velocity and acceleration fixed at both ends.

    The effort times T^10 is a polynomial Q(T); stationary points are the
    positive roots of w T^11 + rho (T Q'(T) - 10 Q(T)).
    """
    if w <= 0:
        return 0.0
    p0, v0, a0 = (np.asarray(x, dtype=float) for x in (p0, v0, a0))
    p1, v1, a1 = (np.asarray(x, dtype=float) for x in (p1, v1, a1))
    dp = p1 - p0

    T = Polynomial([0.0, 1.0])
    Q = Polynomial([0.0])
    for axis in range(dp.shape[0]):
        res_p = Polynomial([dp[axis], -v0[axis], -0.5 * a0[axis]])
        res_v = Polynomial([v1[axis] - v0[axis], -a0[axis]])
        res_a = a1[axis] - a0[axis]
        A = 720.0 * res_p - 360.0 * T * res_v + 60.0 * T ** 2 * res_a
        B = -360.0 * T * res_p + 168.0 * T ** 2 * res_v - 24.0 * T ** 3 * res_a
        C = 60.0 * T ** 2 * res_p - 24.0 * T ** 3 * res_v + 3.0 * T ** 4 * res_a
        Q = Q + (C * C * T + B * C * T ** 2 + (B * B + A * C) * T ** 3 / 3.0
                 + A * B * T ** 4 / 4.0 + A * A * T ** 5 / 20.0)

    stationary = w * T ** 11 + rho * (T * Q.deriv() - 10.0 * Q)

    def cost(t):
        return w * t + rho * min_jerk_effort(dp, v0, v1, a0, a1, t)

    return _best_duration(cost, stationary.roots(), t_bar)


# ----------------------------------------------------------------------
# Goal regions
# ----------------------------------------------------------------------

def _polyval(coeffs, tau):
    """sum_i coeffs[i] * tau**i; vector coefficients give one row per tau."""
    return sum(np.multiply.outer(tau ** i, c) for i, c in enumerate(coeffs))


def _residual_effort(terms, tau):
    """sum_k weight_k * max(|r_k(tau)| - slack_k(tau), 0)^2 at each tau."""
    total = 0.0
    for weight, coeffs, slack in terms:
        reach = np.linalg.norm(_polyval(coeffs, tau), axis=-1) - _polyval(slack, tau)
        total = total + weight * np.maximum(reach, 0.0) ** 2
    return total


def _region_cost(terms, w: float, rho: float, t_bar: float) -> float:
    """
    Lower bound of min over T >= t_bar of w*T + rho * tau * effort(tau),
    tau = 1/T, with effort from _residual_effort.

    Each term is (weight, residual coefficients, slack coefficients), both
    polynomials in tau with the slack coefficients non-negative. A coarse
    scan gives a reachable value U, so durations above U / w never win. The
    range below is split into geometric intervals, and each interval is
    bounded with its end points and a Lipschitz bound on the residual.
    """
    if w <= 0:
        return 0.0
    scan = max(t_bar, 1e-3) * REGION_SCAN
    upper = float(np.min(w * scan + rho / scan * _residual_effort(terms, 1.0 / scan)))
    t_max = upper / w

    t_lo = t_bar if t_bar > MIN_DURATION else 1e-3 * t_max
    if t_max <= t_lo:
        return upper

    edges = np.geomspace(t_lo, t_max, REGION_INTERVALS + 1)
    lo, hi = edges[:-1], edges[1:]
    tau_min, tau_max = 1.0 / hi, 1.0 / lo
    tau_mid = 0.5 * (tau_min + tau_max)
    half_width = 0.5 * (tau_max - tau_min)

    effort = np.zeros(REGION_INTERVALS)
    for weight, coeffs, slack in terms:
        lipschitz = sum(i * np.linalg.norm(c) * tau_max ** (i - 1)
                        for i, c in enumerate(coeffs) if i > 0)
        reach = (np.linalg.norm(_polyval(coeffs, tau_mid), axis=-1)
                 - lipschitz * half_width - _polyval(slack, tau_max))
        effort += weight * np.maximum(reach, 0.0) ** 2
    best = min(float(np.min(w * lo + rho * tau_min * effort)), upper)

    if t_bar <= MIN_DURATION:
        # below t_lo only residuals that do not depend on T are bounded
        constant = sum(weight * max(np.linalg.norm(coeffs[0]) - slack[0], 0.0) ** 2
                       for weight, coeffs, slack in terms
                       if len(coeffs) == 1 and len(slack) == 1)
        best = min(best, rho * constant / t_lo)
    return best


def double_integrator_region_cost(p0, v0, p1, v1, w: float, rho: float = 1.0,
                                  t_bar: float = 0.0, tol_pos: float = 0.0,
                                  tol_vel: float = 0.0) -> float:
    """
    Lower bound of double_integrator_cost over every end state within
    tol_pos of p1 and tol_vel of v1 (Euclidean).

    With s = (v0 + v1) / 2 and tau = 1/T the effort is
    tau * (|v1 - v0|^2 + 12 |dp tau - s|^2); moving the end state inside the
    region changes the first residual by at most tol_vel and the second by
    at most tol_pos tau + tol_vel / 2.
    """
    if tol_pos <= 0 and tol_vel <= 0:
        return double_integrator_cost(p0, v0, p1, v1, w, rho, t_bar)
    p0, v0, p1, v1 = (np.asarray(x, dtype=float) for x in (p0, v0, p1, v1))
    terms = [
        (1.0, [v1 - v0], [tol_vel]),
        (12.0, [-0.5 * (v0 + v1), p1 - p0], [0.5 * tol_vel, tol_pos]),
    ]
    return _region_cost(terms, w, rho, t_bar)


def triple_integrator_region_cost(p0, v0, a0, p1, v1, a1, w: float, rho: float = 1.0,
                                  t_bar: float = 0.0, tol_pos: float = 0.0,
                                  tol_vel: float = 0.0, tol_acc: float = 0.0) -> float:
    """
    Lower bound of triple_integrator_cost over every end state within the
    position, velocity and acceleration tolerances.

    In the shifted Legendre basis the min-jerk effort is
    tau * (|r0|^2 + 3 |r1|^2 + 5 |r2|^2) with tau = 1/T and
    r0 = da, r1 = 2 dv tau - 2 a0 - da,
    r2 = da - (6 dv + 12 v0) tau + 12 dp tau^2.
    """
    if tol_pos <= 0 and tol_vel <= 0 and tol_acc <= 0:
        return triple_integrator_cost(p0, v0, a0, p1, v1, a1, w, rho, t_bar)
    p0, v0, a0 = (np.asarray(x, dtype=float) for x in (p0, v0, a0))
    p1, v1, a1 = (np.asarray(x, dtype=float) for x in (p1, v1, a1))
    dp, dv, da = p1 - p0, v1 - v0, a1 - a0
    terms = [
        (1.0, [da], [tol_acc]),
        (3.0, [-2.0 * a0 - da, 2.0 * dv], [tol_acc, 2.0 * tol_vel]),
        (5.0, [da, -6.0 * dv - 12.0 * v0, 12.0 * dp], [tol_acc, 6.0 * tol_vel, 12.0 * tol_pos]),
    ]
    return _region_cost(terms, w, rho, t_bar)


class LatticeHeuristic:
    """
    Picks the tightest available estimate for a goal and control order.

    Parameters
    ----------
    goal : State
        Goal state with its constraint flags.
    control_order : int
        Derivative driven by the control (2 = acceleration, 3 = jerk, ...).
    vmax : float
        Velocity bound used for the time lower bound (<= 0 disables it).
    w : float
        Time weight of the edge cost.
    rho : float
        Weight of the control effort J(control_order) in the edge cost.
    tolerances : tuple of float
        (tol_pos, tol_vel, tol_acc) of the goal test. A velocity or
        acceleration tolerance <= 0 leaves that component free, as in
        goal_reached.
    """

    def __init__(self, goal: State, control_order: int, vmax: float, w: float,
                 rho: float = 1.0, tolerances=(0.0, 0.0, 0.0)):
        self.goal = goal
        self.control_order = control_order
        self.vmax = vmax
        self.w = w
        self.rho = rho
        self.tol_pos, self.tol_vel, self.tol_acc = (float(t) for t in tolerances)

        vel_fixed = goal.use_vel and self.tol_vel > 0
        acc_fixed = goal.use_acc and self.tol_acc > 0
        if not goal.use_pos:
            self.kind = "zero"
        elif control_order == 2 and vel_fixed and rho > 0:
            self.kind = "acc"
        elif control_order == 3 and vel_fixed and acc_fixed and rho > 0:
            self.kind = "jrk"
        else:
            self.kind = "time"
        logger.debug(f"Heuristic '{self.kind}' (control order {control_order}, w={w}, rho={rho}, "
                     f"tolerances {tuple(tolerances)})")

    def __call__(self, state: State) -> float:
        if self.kind == "zero":
            return 0.0
        t_bar = time_lower_bound(state, self.goal, self.vmax, self.tol_pos)
        if self.kind == "acc":
            return double_integrator_region_cost(state.pos, state.vel, self.goal.pos, self.goal.vel,
                                                 self.w, self.rho, t_bar, self.tol_pos, self.tol_vel)
        if self.kind == "jrk":
            return triple_integrator_region_cost(state.pos, state.vel, state.acc,
                                                 self.goal.pos, self.goal.vel, self.goal.acc,
                                                 self.w, self.rho, t_bar,
                                                 self.tol_pos, self.tol_vel, self.tol_acc)
        return self.w * t_bar
