# collision.py

import numpy as np

from config import COLLISION_SAMPLE_CELLS


def num_collision_samples(primitive, resolution, sample_cells=COLLISION_SAMPLE_CELLS):
    """
    Number of uniform time steps needed so consecutive samples of the
    primitive are at most sample_cells * resolution apart.

    Parameters
    ----------
    primitive : Primitive
        Segment to sample.
    resolution : float
        Cell size of the map.
    sample_cells : float
        Max travel between two samples, in cells.

    Returns
    -------
    int
        Number of steps (samples = steps + 1), at least 1.
    """
    travel = primitive.max_speed() * primitive.dt
    step = sample_cells * resolution
    return max(1, int(np.ceil(travel / step)))


def primitive_in_bounds(field, primitive):
    """True when the bounding box of the primitive lies inside the map."""
    lower, upper = primitive.bounds()
    return bool(np.all(lower >= field.origin) and np.all(upper < field.upper))


def primitive_collision_free(field, primitive, sample_cells=COLLISION_SAMPLE_CELLS):
    """
    Check a primitive against an occupancy field.

    The position curve is sampled densely enough that no cell can be skipped
    between samples; any occupied, unknown or out-of-bounds sample rejects.

    Parameters
    ----------
    field : OccupancyField
        Map to check against (only read).
    primitive : Primitive
        Segment to check.

    Returns
    -------
    bool
        True if every sample lies in a free cell.
    """
    if not primitive_in_bounds(field, primitive):
        return False

    n = num_collision_samples(primitive, field.resolution, sample_cells)
    pts = primitive.sample(n)
    return bool(np.all(field.points_free(pts)))


def trajectory_collision_free(field, trajectory, sample_cells=COLLISION_SAMPLE_CELLS):
    """Check every segment of a trajectory."""
    for primitive in trajectory.get_primitives():
        if not primitive_collision_free(field, primitive, sample_cells):
            return False
    return True
