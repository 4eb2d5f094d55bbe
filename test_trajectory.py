# test_trajectory.py
"""
Trajectories built from chained primitives: timing, global evaluation,
accumulated cost and the continuity check.
"""

import logging

import numpy as np
import pytest

from primitive import Primitive
from state import Constraint, State
from trajectory import Trajectory, TrajectoryError

PV = Constraint.POS | Constraint.VEL


def chain(controls, dt=1.0, start=None):
    state = start if start is not None else State([0.0, 0.0], constraints=PV)
    primitives = []
    for u in controls:
        pr = Primitive(state, u, dt)
        primitives.append(pr)
        state = pr.end_state()
    return primitives


def test_timing_and_waypoints():
    traj = Trajectory(chain([[0.5, 0.0], [0.0, 0.5], [-0.5, -0.5]]))
    assert len(traj) == 3
    assert traj.get_total_time() == pytest.approx(3.0)
    np.testing.assert_allclose(traj.times, [0.0, 1.0, 2.0, 3.0])
    assert not traj.is_empty()

    waypoints = traj.get_waypoints()
    assert len(waypoints) == 4
    np.testing.assert_allclose(waypoints[0].pos, [0.0, 0.0])
    np.testing.assert_allclose(waypoints[1].pos, [0.25, 0.0])
    np.testing.assert_allclose(waypoints[1].vel, [0.5, 0.0])
    np.testing.assert_allclose(waypoints[-1].vel, [0.0, 0.0])


def test_evaluate_global_time():
    primitives = chain([[0.5, 0.0], [-0.5, 0.0]])
    traj = Trajectory(primitives)

    np.testing.assert_allclose(traj.evaluate(0.0).pos, [0.0, 0.0])
    # segment boundary belongs to the next segment and matches the previous end
    np.testing.assert_allclose(traj.evaluate(1.0).pos, primitives[0].end_state().pos)
    np.testing.assert_allclose(traj.evaluate(1.5).pos, primitives[1].evaluate(0.5).pos)
    np.testing.assert_allclose(traj.evaluate(2.0).pos, [0.5, 0.0])
    np.testing.assert_allclose(traj.evaluate(2.0).vel, [0.0, 0.0])

    assert not traj.evaluate(-0.01).is_valid()
    assert not traj.evaluate(2.01).is_valid()

    samples = traj.sample(4)
    assert len(samples) == 5
    assert all(s.is_valid() for s in samples)


def test_cost_and_bounds_accumulate():
    primitives = chain([[0.5, 0.0], [0.0, 0.5]])
    traj = Trajectory(primitives)
    assert traj.J(2) == pytest.approx(0.5)
    assert traj.J(1) == pytest.approx(primitives[0].J(1) + primitives[1].J(1))
    np.testing.assert_allclose(traj.max_abs(1), [0.5, 0.5])
    np.testing.assert_allclose(traj.max_abs(2), [0.5, 0.5])


def test_continuity_is_enforced():
    first = Primitive(State([0.0, 0.0], constraints=PV), [0.5, 0.0], 1.0)
    # restarts from rest although the first segment ends moving
    second = Primitive(State(first.end_state().pos, constraints=PV), [0.0, 0.0], 1.0)
    with pytest.raises(TrajectoryError):
        Trajectory([first, second])


def test_continuity_warning_when_not_strict(caplog):
    first = Primitive(State([0.0, 0.0], constraints=PV), [0.5, 0.0], 1.0)
    second = Primitive(State([3.0, 0.0], constraints=PV), [0.0, 0.0], 1.0)
    with caplog.at_level(logging.WARNING, logger="trajectory"):
        traj = Trajectory([first, second], strict=False)
    assert len(traj) == 2
    assert "jumps" in caplog.text


def test_malformed():
    with pytest.raises(TrajectoryError):
        Trajectory([])
    flat = Primitive(State([0.0, 0.0]), [0.0, 0.0], 1.0)
    space = Primitive(State([0.0, 0.0, 0.0]), [0.0, 0.0, 0.0], 1.0)
    with pytest.raises(TrajectoryError):
        Trajectory([flat, space])


def test_zero_duration_hold():
    hold = Primitive(State([1.0, 1.0], constraints=PV), [0.0, 0.0], 0.0)
    traj = Trajectory([hold])
    assert traj.is_empty()
    np.testing.assert_allclose(traj.evaluate(0.0).pos, [1.0, 1.0])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
