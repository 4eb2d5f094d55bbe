# test_collision.py
"""
Collision checking of primitives against the occupancy field.
Covers sample density, the bounding-box test at the map edge and thin
obstacles that a coarse sampling would step over.
"""

import numpy as np
import pytest

from collision import (num_collision_samples, primitive_collision_free, primitive_in_bounds,
                       trajectory_collision_free)
from config import VAL_OCC, VAL_UNKNOWN
from occupancy_field import OccupancyField
from primitive import Primitive
from state import Constraint, State
from trajectory import Trajectory

PV = Constraint.POS | Constraint.VEL


def test_multiple_scenarios():
    field = OccupancyField.empty([0.0, 0.0], [40, 20], 0.25)

    # Test 1: straight segment in free space
    start = State([1.0, 1.0], vel=[1.0, 0.0], constraints=PV)
    pr = Primitive(start, [0.0, 0.0], 2.0)
    assert primitive_collision_free(field, pr)

    # Test 2: single occupied cell on the way
    blocked = field.with_cells([field.float_to_int([2.1, 1.0])], VAL_OCC)
    assert not primitive_collision_free(blocked, pr)

    # Test 3: unknown cells are not free either
    unknown = field.with_cells([field.float_to_int([2.1, 1.0])], VAL_UNKNOWN)
    assert not primitive_collision_free(unknown, pr)

    # Test 4: obstacle next to the path
    beside = field.with_cells([field.float_to_int([2.1, 1.6])], VAL_OCC)
    assert primitive_collision_free(beside, pr)


def test_sample_density():
    start = State([1.0, 1.0], vel=[1.0, 0.0], constraints=PV)
    pr = Primitive(start, [0.0, 0.0], 2.0)
    # 2 m of travel with samples at most half a 0.25 m cell apart
    assert num_collision_samples(pr, 0.25) == 16
    assert num_collision_samples(Primitive(State([1.0, 1.0]), [0.0, 0.0], 1.0), 0.25) == 1


def test_thin_wall_is_not_skipped():
    field = OccupancyField.empty([0.0, 0.0], [40, 20], 0.25)
    wall = [[8, y] for y in range(20)]
    field = field.with_cells(wall, VAL_OCC)

    # fast primitive crossing the one-cell wall at x in [2.0, 2.25)
    start = State([0.5, 2.0], vel=[3.0, 0.0], constraints=PV)
    pr = Primitive(start, [0.0, 0.0], 1.0)
    assert not primitive_collision_free(field, pr)


def test_bounding_box_at_map_edge():
    field = OccupancyField.empty([0.0, 0.0], [40, 20], 0.25)
    # overshoots x = 10 and comes back: end state inside, curve outside
    start = State([9.0, 2.0], vel=[2.0, 0.0], constraints=PV)
    pr = Primitive(start, [-2.0, 0.0], 2.0)
    assert pr.end_state().pos[0] == pytest.approx(9.0)
    assert not primitive_in_bounds(field, pr)
    assert not primitive_collision_free(field, pr)

    inside = Primitive(State([5.0, 2.0], vel=[1.0, 0.0], constraints=PV), [-1.0, 0.0], 2.0)
    assert primitive_in_bounds(field, inside)


def test_trajectory_check():
    field = OccupancyField.empty([0.0, 0.0], [40, 20], 0.25)
    first = Primitive(State([1.0, 1.0], constraints=PV), [0.5, 0.0], 1.0)
    second = Primitive(first.end_state(), [-0.5, 0.0], 1.0)
    traj = Trajectory([first, second])
    assert trajectory_collision_free(field, traj)

    blocked = field.with_cells([field.float_to_int(second.evaluate(0.5).pos)], VAL_OCC)
    assert not trajectory_collision_free(blocked, traj)


if __name__ == "__main__":
    test_multiple_scenarios()
    test_sample_density()
    test_thin_wall_is_not_skipped()
    test_bounding_box_at_map_edge()
    test_trajectory_check()
    print("All collision tests passed.")
