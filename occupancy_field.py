# occupancy_field.py
"""
Dense 2D/3D occupancy grid used for collision checking.

The field is built once from a loaded map and never mutated afterwards:
the buffer is flagged read-only so several planning queries can share it.
Operations that change occupancy (inflation, marking cells) return a new field.
"""

import logging
from typing import Iterable, Optional

import numpy as np
from scipy.ndimage import binary_dilation

from config import VAL_FREE, VAL_OCC, VAL_UNKNOWN

logger = logging.getLogger(__name__)


class OccupancyField:
    """
    Voxel map with origin, per-axis dimension and a uniform resolution.

    Parameters
    ----------
    origin : array-like
        World coordinates of the corner of cell (0, 0[, 0]).
    dim : array-like of int
        Number of cells per axis.
    resolution : float
        Cell edge length in meters.
    data : np.ndarray, optional
        Occupancy values, shape ``tuple(dim)`` (or flat with x fastest).
        All cells free when omitted.
    """

    def __init__(self, origin, dim, resolution: float, data: Optional[np.ndarray] = None):
        self.origin = np.asarray(origin, dtype=float).ravel()
        self.dim = np.asarray(dim, dtype=int).ravel()
        self.resolution = float(resolution)

        if self.origin.shape != self.dim.shape or self.dim.shape[0] not in (2, 3):
            raise ValueError(f"origin {self.origin} and dim {self.dim} must both be 2D or 3D")
        if self.resolution <= 0:
            raise ValueError(f"resolution must be positive, got {resolution}")
        if np.any(self.dim <= 0):
            raise ValueError(f"dim must be positive, got {self.dim}")

        shape = tuple(int(d) for d in self.dim)
        if data is None:
            grid = np.full(shape, VAL_FREE, dtype=np.int8)
        else:
            grid = np.asarray(data)
            if grid.ndim == 1:
                if grid.size != int(np.prod(self.dim)):
                    raise ValueError(f"data has {grid.size} cells, expected {int(np.prod(self.dim))}")
                # x varies fastest in the flat layout
                grid = grid.reshape(shape, order='F')
            elif grid.shape != shape:
                raise ValueError(f"data shape {grid.shape} does not match dim {shape}")
            grid = grid.astype(np.int8, copy=True)

        grid.setflags(write=False)
        self.data = grid

        logger.debug(f"Occupancy field {shape} at {self.origin}, resolution {self.resolution}m")

    @classmethod
    def empty(cls, origin, dim, resolution: float) -> "OccupancyField":
        """All-free field."""
        return cls(origin, dim, resolution)

    @property
    def ndim(self) -> int:
        return self.dim.shape[0]

    @property
    def upper(self) -> np.ndarray:
        """World coordinates of the far corner of the map."""
        return self.origin + self.dim * self.resolution

    # ------------------------------------------------------------------
    # Coordinate conversion
    # ------------------------------------------------------------------

    def float_to_int(self, pt) -> np.ndarray:
        """World point(s) to cell address(es); works on (dim,) or (N, dim)."""
        pt = np.asarray(pt, dtype=float)
        return np.floor((pt - self.origin) / self.resolution).astype(int)

    def int_to_float(self, cell) -> np.ndarray:
        """Cell address(es) to the world coordinates of the cell centre."""
        cell = np.asarray(cell, dtype=float)
        return (cell + 0.5) * self.resolution + self.origin

    # ------------------------------------------------------------------
    # Queries (out of bounds is never free)
    # ------------------------------------------------------------------

    def is_outside(self, cell) -> bool:
        cell = np.asarray(cell)
        return bool(np.any(cell < 0) or np.any(cell >= self.dim))

    def is_free(self, cell) -> bool:
        if self.is_outside(cell):
            return False
        return self.data[tuple(int(c) for c in cell)] == VAL_FREE

    def is_occupied(self, cell) -> bool:
        if self.is_outside(cell):
            return True
        return self.data[tuple(int(c) for c in cell)] == VAL_OCC

    def is_unknown(self, cell) -> bool:
        if self.is_outside(cell):
            return False
        return self.data[tuple(int(c) for c in cell)] == VAL_UNKNOWN

    def is_free_point(self, pt) -> bool:
        return self.is_free(self.float_to_int(pt))

    def cells_free(self, cells: np.ndarray) -> np.ndarray:
        """
        Vectorised free test.

        Parameters
        ----------
        cells : np.ndarray
            Integer cell addresses, shape (N, dim).

        Returns
        -------
        np.ndarray
            Boolean mask of shape (N,), False outside the map.
        """
        cells = np.atleast_2d(np.asarray(cells, dtype=int))
        inside = np.all((cells >= 0) & (cells < self.dim), axis=1)
        free = np.zeros(cells.shape[0], dtype=bool)
        if np.any(inside):
            idx = tuple(cells[inside].T)
            free[inside] = self.data[idx] == VAL_FREE
        return free

    def points_free(self, pts: np.ndarray) -> np.ndarray:
        return self.cells_free(self.float_to_int(pts))

    def contains(self, pt) -> bool:
        """True when the world point lies inside the map extent."""
        pt = np.asarray(pt, dtype=float)
        return bool(np.all(pt >= self.origin) and np.all(pt < self.upper))

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def occupied_cells(self) -> np.ndarray:
        """Addresses of all occupied cells, shape (N, dim)."""
        return np.argwhere(self.data == VAL_OCC)

    def free_cells(self) -> np.ndarray:
        return np.argwhere(self.data == VAL_FREE)

    def count(self, value: int) -> int:
        return int(np.sum(self.data == value))

    def __repr__(self):
        return (f"OccupancyField(origin={self.origin.tolist()}, dim={self.dim.tolist()}, "
                f"resolution={self.resolution}, occupied={self.count(VAL_OCC)})")

    # ------------------------------------------------------------------
    # Derived fields
    # ------------------------------------------------------------------

    def with_cells(self, cells: Iterable, value: int = VAL_OCC) -> "OccupancyField":
        """Copy of this field with the given in-bounds cells set to value."""
        grid = self.data.copy()
        cells = np.atleast_2d(np.asarray(list(cells), dtype=int))
        if cells.size:
            inside = np.all((cells >= 0) & (cells < self.dim), axis=1)
            grid[tuple(cells[inside].T)] = value
        return OccupancyField(self.origin, self.dim, self.resolution, grid)

    def _inflation_kernel(self, cells: int) -> np.ndarray:
        size = 2 * cells + 1
        offsets = np.indices((size,) * self.ndim) - cells
        distance = np.sqrt(np.sum(offsets ** 2, axis=0)) * self.resolution
        return distance <= cells * self.resolution

    def dilate(self, radius: float) -> "OccupancyField":
        """
        Inflate occupied cells by a robot radius.

        Unknown cells stay unknown unless the inflation reaches them.
        """
        cells = int(np.ceil(radius / self.resolution))
        if cells <= 0:
            return self

        occupied = self.data == VAL_OCC
        inflated = binary_dilation(occupied, structure=self._inflation_kernel(cells))

        grid = self.data.copy()
        grid[inflated] = VAL_OCC
        logger.debug(f"Inflated {int(occupied.sum())} -> {int(inflated.sum())} occupied cells "
                     f"(radius {radius}m)")
        return OccupancyField(self.origin, self.dim, self.resolution, grid)
