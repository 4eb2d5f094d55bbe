"""
Demo of the motion primitive lattice planner on a 2D map.

Usage: python mp_demo.py [map.json]
Without an argument config.MAP_FILE is tried, then an empty map of
config.MAP_DIM cells.
"""

import logging
import sys
import time

import numpy as np

from config import (DEMO_GOAL, DEMO_START, MAP_DIM, MAP_FILE, MAP_ORIGIN, MAP_RESOLUTION,
                    ROBOT_RADIUS)
from lattice_search import LatticeSearch
from map_loader import load_map
from mp_config import PlannerConfig
from occupancy_field import OccupancyField
from state import Constraint, State


def build_config(u_max=0.5):
    """Planner parameters of the reference 2D run."""
    du = u_max
    U = []
    for dx in np.arange(-u_max, u_max + 1e-9, du):
        for dy in np.arange(-u_max, u_max + 1e-9, du):
            U.append([dx, dy])

    return (PlannerConfig()
            .set_epsilon(1.0)   # greedy param (1 = optimal)
            .set_vmax(1.0)
            .set_amax(1.0)
            .set_jmax(1.0)
            .set_umax(u_max)
            .set_dt(1.0)        # duration of each primitive
            .set_w(10)          # time weight in the edge cost
            .set_max_num(-1)    # no expansion budget
            .set_u(U)
            .set_tol(0.2, 0.1, 1))


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if len(sys.argv) > 2:
        print("Usage: python mp_demo.py [map.json]")
        return 1

    filename = sys.argv[1] if len(sys.argv) == 2 else MAP_FILE
    try:
        field = load_map(filename)
    except FileNotFoundError:
        if len(sys.argv) == 2:
            print(f"Cannot find input file [{filename}]!")
            return 1
        print(f"Map file {filename} not found, using empty map")
        field = OccupancyField.empty(MAP_ORIGIN, MAP_DIM, MAP_RESOLUTION)
    field = field.dilate(ROBOT_RADIUS)

    flags = Constraint.POS | Constraint.VEL
    start = State(DEMO_START, constraints=flags)
    goal = State(DEMO_GOAL, constraints=flags)

    planner = LatticeSearch(field, build_config())

    t0 = time.perf_counter()
    result = planner.plan(start, goal)
    elapsed = (time.perf_counter() - t0) * 1000.0
    print(f"MP Planner takes: {elapsed:.3f} ms")
    print(f"MP Planner expanded states: {len(planner.get_close_set())}")

    if not result.success:
        print(f"No plan found ({result.status.value})")
        return 0

    traj = result.trajectory
    print(f"Total time T: {traj.get_total_time():f}")
    print(f"Total J:  J(0) = {traj.J(0):f}, J(1) = {traj.J(1):f}, "
          f"J(2) = {traj.J(2):f}, J(3) = {traj.J(3):f}")
    for w in traj.get_waypoints():
        print(f"  pos {np.round(w.pos, 3)}  vel {np.round(w.vel, 3)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
