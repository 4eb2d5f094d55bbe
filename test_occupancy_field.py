# test_occupancy_field.py
"""
Occupancy field: coordinate conversion, queries at the map edges,
read-only buffer and obstacle inflation.
"""

import numpy as np
import pytest

from config import VAL_FREE, VAL_OCC, VAL_UNKNOWN
from occupancy_field import OccupancyField


def make_field():
    field = OccupancyField.empty([0.0, -5.0], [160, 40], 0.25)
    return field.with_cells([[10, 6], [11, 6]], VAL_OCC).with_cells([[20, 20]], VAL_UNKNOWN)


def test_conversion_round_trip():
    field = make_field()
    cell = field.float_to_int([2.5, -3.5])
    np.testing.assert_array_equal(cell, [10, 6])
    np.testing.assert_allclose(field.int_to_float(cell), [2.625, -3.375])

    # vectorised over points
    cells = field.float_to_int(np.array([[0.0, -5.0], [39.99, 4.99]]))
    np.testing.assert_array_equal(cells, [[0, 0], [159, 39]])


def test_queries():
    field = make_field()
    assert field.is_occupied([10, 6])
    assert not field.is_free([10, 6])
    assert field.is_free([12, 6])
    assert field.is_unknown([20, 20])
    assert not field.is_free([20, 20])
    assert not field.is_occupied([20, 20])
    assert field.is_free_point([3.2, -3.4])

    # out of bounds is never free
    for cell in ([-1, 0], [0, -1], [160, 0], [0, 40]):
        assert field.is_outside(cell)
        assert not field.is_free(cell)
        assert field.is_occupied(cell)
        assert not field.is_unknown(cell)


def test_cells_free_mask():
    field = make_field()
    mask = field.cells_free(np.array([[10, 6], [12, 6], [20, 20], [-1, 3], [159, 39]]))
    np.testing.assert_array_equal(mask, [False, True, False, False, True])

    pts = np.array([[2.6, -3.4], [100.0, 0.0]])
    np.testing.assert_array_equal(field.points_free(pts), [False, False])


def test_counts_and_extent():
    field = make_field()
    assert field.count(VAL_OCC) == 2
    assert field.count(VAL_UNKNOWN) == 1
    assert field.count(VAL_FREE) == 160 * 40 - 3
    assert len(field.occupied_cells()) == 2
    np.testing.assert_allclose(field.upper, [40.0, 5.0])
    assert field.contains([39.9, 4.9])
    assert not field.contains([40.0, 0.0])


def test_buffer_is_read_only():
    field = make_field()
    with pytest.raises(ValueError):
        field.data[0, 0] = VAL_OCC
    # derived fields leave the original untouched
    other = field.with_cells([[0, 0]], VAL_OCC)
    assert other.is_occupied([0, 0])
    assert field.is_free([0, 0])


def test_flat_data_is_x_fastest():
    data = np.zeros(4 * 3, dtype=int)
    data[1] = VAL_OCC       # x = 1, y = 0
    data[4] = VAL_OCC       # x = 0, y = 1
    field = OccupancyField([0.0, 0.0], [4, 3], 1.0, data)
    assert field.is_occupied([1, 0])
    assert field.is_occupied([0, 1])
    assert field.count(VAL_OCC) == 2


def test_invalid_geometry():
    with pytest.raises(ValueError):
        OccupancyField([0.0, 0.0], [4, 3, 2], 1.0)
    with pytest.raises(ValueError):
        OccupancyField([0.0], [4], 1.0)
    with pytest.raises(ValueError):
        OccupancyField([0.0, 0.0], [4, 3], 0.0)
    with pytest.raises(ValueError):
        OccupancyField([0.0, 0.0], [4, 3], 1.0, np.zeros(5))


def test_dilate():
    field = OccupancyField.empty([0.0, 0.0], [11, 11], 0.5).with_cells([[5, 5]], VAL_OCC)
    assert field.dilate(0.0) is field

    inflated = field.dilate(0.5)
    # one cell in each axis direction, diagonals are farther than the radius
    assert inflated.count(VAL_OCC) == 5
    assert inflated.is_occupied([4, 5]) and inflated.is_occupied([5, 6])
    assert inflated.is_free([4, 4])

    inflated = field.dilate(1.0)
    assert inflated.is_occupied([4, 4])
    assert inflated.is_occupied([3, 5])
    assert inflated.is_free([3, 3])


def test_three_dimensional_field():
    field = OccupancyField.empty([0.0, 0.0, 0.0], [4, 4, 2], 0.5)
    assert field.ndim == 3
    field = field.with_cells([[1, 1, 1]], VAL_OCC)
    assert field.is_occupied([1, 1, 1])
    assert not field.is_free_point([0.75, 0.6, 0.9])
    assert field.is_free_point([0.75, 0.6, 0.1])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
