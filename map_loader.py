"""
Map files for the lattice planner.

A map is a JSON document with the grid geometry and either the raw cells or
the obstacle shapes drawn in the map editor:

    {
      "origin": [0.0, -5.0], "dim": [160, 40], "resolution": 0.25,
      "data": [...],                                   # optional, x fastest
      "circles": [{"center": [x, y], "radius": r}],    # optional
      "rectangles": [{"corner1": [x, y], "corner2": [x, y]}]
    }
"""

import json
import logging

import numpy as np

from config import VAL_FREE, VAL_OCC
from occupancy_field import OccupancyField

logger = logging.getLogger(__name__)


def _cell_centres(origin, dim, resolution):
    """World coordinates of every cell centre, shape (*dim, ndim)."""
    axes = [origin[i] + (np.arange(dim[i]) + 0.5) * resolution for i in range(len(dim))]
    return np.stack(np.meshgrid(*axes, indexing='ij'), axis=-1)


def rasterize(origin, dim, resolution, circles=(), rectangles=(), data=None) -> OccupancyField:
    """
    Build an occupancy field from obstacle shapes.

    Parameters
    ----------
    origin, dim, resolution
        Grid geometry.
    circles : list of (center, radius)
        Discs (spheres in 3D); a cell is occupied when its centre is inside.
    rectangles : list of (corner1, corner2)
        Axis-aligned boxes given by opposite corners.
    data : array-like, optional
        Initial cell values, free when omitted.
    """
    origin = np.asarray(origin, dtype=float)
    dim = np.asarray(dim, dtype=int)
    base = OccupancyField(origin, dim, resolution, data)
    centres = _cell_centres(origin, dim, resolution)

    occupied = np.zeros(tuple(dim), dtype=bool)
    for center, radius in circles:
        center = np.asarray(center, dtype=float)
        if center.shape[0] != dim.shape[0]:
            raise ValueError(f"circle centre {center} does not match a {dim.shape[0]}D map")
        occupied |= np.linalg.norm(centres - center, axis=-1) <= radius
    for corner1, corner2 in rectangles:
        corner1 = np.asarray(corner1, dtype=float)
        corner2 = np.asarray(corner2, dtype=float)
        if corner1.shape[0] != dim.shape[0] or corner2.shape[0] != dim.shape[0]:
            raise ValueError(f"rectangle {corner1}, {corner2} does not match a {dim.shape[0]}D map")
        lo = np.minimum(corner1, corner2)
        hi = np.maximum(corner1, corner2)
        occupied |= np.all((centres >= lo) & (centres <= hi), axis=-1)

    grid = base.data.copy()
    grid[occupied] = VAL_OCC
    return OccupancyField(origin, dim, resolution, grid)


def parse_map(data: dict) -> OccupancyField:
    """Build a field from an already decoded map document."""
    for key in ('origin', 'dim', 'resolution'):
        if key not in data:
            raise ValueError(f"map is missing '{key}'")

    circles = [(np.array(c['center']), float(c['radius'])) for c in data.get('circles', [])]
    rectangles = [(np.array(r['corner1']), np.array(r['corner2'])) for r in data.get('rectangles', [])]
    cells = np.array(data['data'], dtype=np.int8) if 'data' in data else None

    field = rasterize(data['origin'], data['dim'], data['resolution'],
                      circles, rectangles, cells)
    logger.info(f"Loaded map {field.dim.tolist()} at {field.resolution}m: "
                f"{len(circles)} circles, {len(rectangles)} rectangles, "
                f"{field.count(VAL_OCC)} occupied cells")
    return field


def load_map(filename: str) -> OccupancyField:
    """Load a map file; I/O and JSON errors propagate to the caller."""
    with open(filename, 'r') as f:
        return parse_map(json.load(f))


def save_map(field: OccupancyField, filename: str):
    """Save a field as raw cells (x fastest)."""
    data = {
        'origin': [float(x) for x in field.origin],
        'dim': [int(x) for x in field.dim],
        'resolution': float(field.resolution),
        'data': field.data.ravel(order='F').astype(int).tolist(),
    }
    with open(filename, 'w') as f:
        json.dump(data, f)
    logger.info(f"Map saved to {filename}")


def wall_map(origin, dim, resolution, wall_x: float, thickness: float = None,
             gap=None) -> OccupancyField:
    """
    Field with a wall across the whole map at x = wall_x.

    Parameters
    ----------
    gap : (float, float), optional
        Open interval along y left free in the wall.
    """
    origin = np.asarray(origin, dtype=float)
    dim = np.asarray(dim, dtype=int)
    if thickness is None:
        thickness = resolution
    upper = origin + dim * resolution

    corner1 = origin.copy()
    corner2 = upper.copy()
    corner1[0] = wall_x
    corner2[0] = wall_x + thickness
    rectangles = [(corner1, corner2)]

    if gap is not None:
        below = corner2.copy()
        below[1] = gap[0]
        above = corner1.copy()
        above[1] = gap[1]
        rectangles = [(corner1, below), (above, corner2)]
    return rasterize(origin, dim, resolution, rectangles=rectangles)


def enclosure(field: OccupancyField, point, width: int = 1) -> OccupancyField:
    """Occupy every cell within width cells of the one containing point, leaving it free."""
    centre = field.float_to_int(point)
    cells = []
    for offset in np.ndindex(*(2 * width + 1,) * field.ndim):
        offset = np.array(offset) - width
        if np.any(offset != 0):
            cells.append(centre + offset)
    grid = field.with_cells(cells, VAL_OCC).data.copy()
    grid[tuple(centre)] = VAL_FREE
    return OccupancyField(field.origin, field.dim, field.resolution, grid)
