# trajectory.py
"""
Trajectory made of consecutive primitives.
"""

import logging
from typing import List, Sequence

import numpy as np

from primitive import Primitive
from state import State

logger = logging.getLogger(__name__)

# Default tolerance on boundary mismatches between segments
CONTINUITY_TOL = 1e-6


class TrajectoryError(ValueError):
    """Raised for malformed trajectories (empty, mixed dims, discontinuous)."""


class Trajectory:
    """
    Ordered primitives with a total duration.

    Parameters
    ----------
    primitives : sequence of Primitive
        Segments in time order.
    strict : bool
        Raise TrajectoryError when two consecutive segments do not join
        within tol. When False the mismatch is only logged; the search uses
        this since it builds segments end to end.
    tol : float
        Continuity tolerance on each matched derivative.
    """

    def __init__(self, primitives: Sequence[Primitive], strict: bool = True,
                 tol: float = CONTINUITY_TOL):
        self.primitives: List[Primitive] = list(primitives)
        if not self.primitives:
            raise TrajectoryError("trajectory needs at least one primitive")

        self.dim = self.primitives[0].dim
        if any(p.dim != self.dim for p in self.primitives):
            raise TrajectoryError("primitives have mixed dimensions")

        durations = np.array([p.dt for p in self.primitives])
        # start time of each segment, plus the total at the end
        self.times = np.concatenate([[0.0], np.cumsum(durations)])
        self.total_time = float(self.times[-1])

        self._check_continuity(strict, tol)

    def _check_continuity(self, strict: bool, tol: float):
        for i in range(len(self.primitives) - 1):
            end = self.primitives[i].end_state()
            nxt = self.primitives[i + 1]
            for k in range(nxt.control_order):
                gap = np.linalg.norm(end.derivative(k) - nxt.start.derivative(k))
                if gap > tol:
                    msg = f"segment {i} -> {i + 1}: derivative {k} jumps by {gap:.3g}"
                    if strict:
                        raise TrajectoryError(msg)
                    logger.warning(msg)

    def get_total_time(self) -> float:
        return self.total_time

    def get_primitives(self) -> List[Primitive]:
        return list(self.primitives)

    def is_empty(self) -> bool:
        return self.total_time <= 0.0

    def __len__(self):
        return len(self.primitives)

    def evaluate(self, t: float) -> State:
        """
        State at global time t.

        Returns the invalid sentinel State when t is outside [0, total_time].
        """
        if t < 0.0 or t > self.total_time:
            return State.invalid(self.dim)
        # last segment owns t == total_time
        idx = int(np.searchsorted(self.times, t, side='right')) - 1
        idx = min(max(idx, 0), len(self.primitives) - 1)
        return self.primitives[idx].evaluate(t - self.times[idx])

    def sample(self, num: int) -> List[State]:
        """num + 1 evenly spaced states from 0 to total_time."""
        return [self.evaluate(t) for t in np.linspace(0.0, self.total_time, int(num) + 1)]

    def get_waypoints(self) -> List[State]:
        """Segment boundary states, first start to last end."""
        waypoints = [self.primitives[0].start]
        waypoints.extend(p.end_state() for p in self.primitives)
        return waypoints

    def J(self, k: int) -> float:
        """Sum of the segment cost functionals J(k)."""
        return float(sum(p.J(k) for p in self.primitives))

    def max_abs(self, k: int) -> np.ndarray:
        """Per-axis max of |k-th derivative| over the whole trajectory."""
        return np.max(np.vstack([p.max_abs(k) for p in self.primitives]), axis=0)

    def __repr__(self):
        return f"Trajectory({len(self.primitives)} segments, T={self.total_time:.3f}s)"
