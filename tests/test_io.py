"""Tests for the grid output sinks."""
from __future__ import annotations

import numpy as np
import numpy.testing as npt
import pytest

from stl2poro import Grid, plan_grid
from stl2poro.io import save_npz, write_csv, write_vti


def _grid() -> Grid:
    spec = plan_grid((0, 3, 0, 2, 0, 1), [1.0] * 6, 3, 0)   # 3 x 2 x 1
    grid = Grid(spec)
    grid.add_field("signedDistance", np.linspace(-1.0, 1.0, spec.n_nodes))
    grid.add_field("binary", (np.arange(spec.n_nodes) % 2).astype(float))
    return grid


class TestWriteCsv:
    def test_layout(self, tmp_path):
        path = write_csv(_grid(), tmp_path / "out.csv", field="binary")
        lines = path.read_text().splitlines()
        assert lines[0] == "3,2,1"
        assert lines[1:] == [
            "0,0,0,0", "1,0,0,1", "2,0,0,0",
            "0,1,0,1", "1,1,0,0", "2,1,0,1",
        ]

    def test_defaults_to_first_field(self, tmp_path):
        path = write_csv(_grid(), tmp_path / "out.csv")
        values = [float(line.split(",")[3]) for line in path.read_text().splitlines()[1:]]
        npt.assert_array_equal(values, np.linspace(-1.0, 1.0, 6))

    def test_creates_nested_dirs(self, tmp_path):
        path = write_csv(_grid(), tmp_path / "a" / "b" / "out.csv")
        assert path.is_file()

    def test_unknown_field(self, tmp_path):
        with pytest.raises(KeyError):
            write_csv(_grid(), tmp_path / "out.csv", field="porosity")

    def test_empty_grid(self, tmp_path):
        grid = Grid(plan_grid((0, 1, 0, 1, 0, 1), [1.0] * 6, 2, 0))
        with pytest.raises(ValueError):
            write_csv(grid, tmp_path / "out.csv")


class TestSaveNpz:
    def test_round_trip(self, tmp_path):
        grid = _grid()
        path = save_npz(grid, tmp_path / "out.npz")
        with np.load(path) as data:
            npt.assert_array_equal(data["dimensions"], (3, 2, 1))
            npt.assert_allclose(data["origin"], grid.spec.origin)
            npt.assert_allclose(data["spacing"], grid.spec.spacing)
            assert data["binary"].shape == (1, 2, 3)
            npt.assert_array_equal(data["binary"].reshape(-1), grid["binary"])


class TestWriteVti:
    def test_round_trip(self, tmp_path):
        pv = pytest.importorskip("pyvista")
        grid = _grid()
        path = write_vti(grid, tmp_path / "out.vti", active="binary")
        image = pv.read(str(path))
        assert tuple(image.dimensions) == (3, 2, 1)
        npt.assert_allclose(image.origin, grid.spec.origin)
        npt.assert_allclose(image.spacing, grid.spec.spacing)
        npt.assert_allclose(image.point_data["signedDistance"], grid["signedDistance"])
        npt.assert_allclose(image.point_data["binary"], grid["binary"])
        npt.assert_allclose(image.points[4], (1.5, 1.5, 0.5))
