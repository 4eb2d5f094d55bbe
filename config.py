# config.py

import numpy as np

# Occupancy values stored in the map buffer
VAL_FREE = 0
VAL_OCC = 100
VAL_UNKNOWN = -1

# Default map geometry (meters / cells), sized for the 2D demo run
MAP_RESOLUTION = 0.25
MAP_ORIGIN = np.array([0.0, -5.0])
MAP_DIM = np.array([160, 40])

# Robot radius used when inflating obstacles (0 = point robot)
ROBOT_RADIUS = 0.0

# Demo mission
DEMO_START = np.array([2.5, -3.5])
DEMO_GOAL = np.array([37.0, 2.5])

# Collision sampling: max travel between two samples, in cells
COLLISION_SAMPLE_CELLS = 0.5

# Demo map file written/read by mp_demo.py
MAP_FILE = "map_obstacles.json"
