"""
Unit tests for jax_fsi/base/grids.py

Covers uniform and stretched construction, staggered unknown counts, cell
search (including out-of-domain and NaN coordinates) and the per-backend
array cache.
"""

import dataclasses

import numpy as np
import pytest

from jax_fsi import backends
from jax_fsi.base import grids


class TestConstruction:
    def test_uniform_from_domain(self, grid4):
        np.testing.assert_array_equal(grid4.x, np.linspace(-2.0, 2.0, 5))
        np.testing.assert_array_equal(grid4.y, np.linspace(-2.0, 2.0, 5))
        np.testing.assert_allclose(grid4.dx, 1.0)
        assert grid4.shape == (4, 4)
        assert grid4.domain == ((-2.0, 2.0), (-2.0, 2.0))
        assert grid4.is_uniform

    def test_uniform_from_step(self):
        grid = grids.Grid((3, 2), step=0.5)
        assert grid.domain == ((0.0, 1.5), (0.0, 1.0))
        np.testing.assert_allclose(grid.dy, 0.5)

    def test_scalar_domain(self):
        grid = grids.Grid((2, 2), domain=3.0)
        assert grid.domain == ((0.0, 3.0), (0.0, 3.0))

    def test_explicit_nodes(self, stretched_grid):
        assert stretched_grid.shape == (12, 10)
        assert not stretched_grid.is_uniform
        assert stretched_grid.dx.shape == (12,)
        assert stretched_grid.dy.shape == (10,)

    def test_non_increasing_nodes_rejected(self):
        with pytest.raises(ValueError, match="strictly increasing"):
            grids.Grid(nodes=([0.0, 1.0, 1.0], [0.0, 1.0]))

    def test_conflicting_arguments_rejected(self):
        with pytest.raises(TypeError):
            grids.Grid((4, 4), step=1.0, domain=((0, 1), (0, 1)))
        with pytest.raises(TypeError):
            grids.Grid((4, 4), nodes=([0.0, 1.0], [0.0, 1.0]))
        with pytest.raises(TypeError):
            grids.Grid()

    def test_only_2d(self):
        with pytest.raises(ValueError, match="2D"):
            grids.Grid((4, 4, 4), step=1.0)

    def test_immutable(self, grid4):
        with pytest.raises(dataclasses.FrozenInstanceError):
            grid4.shape = (8, 8)
        with pytest.raises(ValueError):
            grid4.x[0] = 10.0


class TestUnknownCounts:
    def test_counts(self):
        grid = grids.Grid((5, 3), step=1.0)
        assert grid.num_u == 4 * 3
        assert grid.num_v == 5 * 2
        assert grid.num_uv == 22
        assert grid.num_p == 15

    def test_cell_centers(self, grid4):
        np.testing.assert_allclose(grid4.cell_centers(0), [-1.5, -0.5, 0.5, 1.5])


class TestFindCells:
    def test_uniform(self, grid4):
        coords = np.array([-2.0, -1.5, 0.0, 0.999, 1.99])
        indices, outside = grid4.find_cells(coords, axis=0)
        np.testing.assert_array_equal(indices, [0, 0, 2, 2, 3])
        assert not outside.any()

    def test_outside_and_nan(self, grid4):
        coords = np.array([2.0, -2.5, np.nan, 0.0])
        _, outside = grid4.find_cells(coords, axis=1)
        np.testing.assert_array_equal(outside, [True, True, True, False])

    def test_stretched_matches_brute_force(self, stretched_grid):
        rng = np.random.default_rng(0)
        for axis, nodes in ((0, stretched_grid.x), (1, stretched_grid.y)):
            coords = rng.uniform(nodes[0], nodes[-1], size=200)
            indices, outside = stretched_grid.find_cells(coords, axis=axis)
            assert not outside.any()
            assert np.all(nodes[indices] <= coords)
            assert np.all(coords < nodes[indices + 1])

    def test_node_belongs_to_cell_on_its_right(self, stretched_grid):
        nodes = stretched_grid.x[:-1]
        indices, _ = stretched_grid.find_cells(nodes, axis=0)
        np.testing.assert_array_equal(indices, np.arange(stretched_grid.nx))


class TestArrays:
    def test_numpy_without_backend(self, grid4):
        arrays = grid4.arrays()
        assert arrays.x is grid4.x
        np.testing.assert_array_equal(arrays.dx, grid4.dx)

    def test_cached_per_backend(self, grid4, sequential_backend):
        first = grid4.arrays(sequential_backend)
        assert grid4.arrays(sequential_backend) is first

    def test_parallel_arrays_are_float64(self, grid4, parallel_backend):
        arrays = grid4.arrays(parallel_backend)
        assert arrays.x.dtype == np.float64
        np.testing.assert_array_equal(np.asarray(arrays.dy), grid4.dy)

    def test_cached_per_precision(self, grid4):
        single = backends.create_backend("parallel", precision="float32")
        double = backends.create_backend("parallel", precision="float64")
        assert grid4.arrays(single).x.dtype == np.float32
        assert grid4.arrays(double).x.dtype == np.float64
        assert grid4.arrays(single).x.dtype == np.float32

    def test_sequential_cached_per_precision(self, grid4):
        double = backends.create_backend("sequential", precision="float64")
        single = backends.create_backend("sequential", precision="float32")
        assert grid4.arrays(double).dy.dtype == np.float64
        assert grid4.arrays(single).dy.dtype == np.float32
