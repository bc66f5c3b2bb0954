"""End-to-end tests for stl2poro.pipeline and the CLI."""
from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import numpy.testing as npt
import pytest

from stl2poro import ExecutionStrategy, PipelineError, TriangleMesh
from stl2poro.cli import main
from stl2poro.config import load_config, parse_config
from stl2poro.logging_config import setup_logging
from stl2poro.pipeline import build_grid, run

from conftest import make_box_triangles


def _write_config(tmp_path, box_stl, **extra) -> Path:
    lines = {
        "stlFilePath": box_stl.name,
        "boundsFactor": "1.5 1.5 1.5 1.5 1.5 1.5",
        "grid": "6",
        "axis": "0",
        "thickness": "2.0",
        "outputCsvFileName": "out/porosity.csv",
        "outputNpzFilePath": "out/fields.npz",
    }
    lines.update(extra)
    path = tmp_path / "config.txt"
    path.write_text("\n".join(f"{k}={v}" for k, v in lines.items()) + "\n")
    return path


class TestBuildGrid:
    def setup_method(self):
        self.mesh = TriangleMesh(make_box_triangles())

    def _config(self, box_stl, **extra):
        text = "\n".join([
            f"stlFilePath={box_stl}",
            "boundsFactor=1.5 1.5 1.5 1.5 1.5 1.5",
            "grid=6",
            "axis=0",
            "thickness=2.0",
            "outputCsvFileName=out.csv",
        ] + [f"{k}={v}" for k, v in extra.items()])
        return parse_config(text)

    def test_all_fields_in_order(self, box_stl):
        grid = build_grid(self.mesh, self._config(box_stl))
        assert grid.field_names == ("signedDistance", "porosity", "multigrayscale", "binary")
        assert grid.spec.dimensions == (6, 6, 6)
        for field in grid:
            assert len(field) == 216

    def test_field_selection(self, box_stl):
        grid = build_grid(self.mesh, self._config(box_stl, fields="binary porosity", csvField="binary"))
        assert grid.field_names == ("binary", "porosity")

    def test_thickness_in_cells(self, box_stl):
        grid = build_grid(self.mesh, self._config(box_stl))
        d = grid["signedDistance"]
        npt.assert_allclose(grid["porosity"], 0.5 * np.tanh(d / (2.0 * 0.25)) + 0.5)

    def test_thickness_absolute(self, box_stl):
        grid = build_grid(self.mesh, self._config(box_stl, thicknessInCells="false"))
        d = grid["signedDistance"]
        npt.assert_allclose(grid["porosity"], 0.5 * np.tanh(d / 2.0) + 0.5)

    def test_binary_matches_sign(self, box_stl):
        grid = build_grid(self.mesh, self._config(box_stl))
        npt.assert_array_equal(grid["binary"], (grid["signedDistance"] > 0).astype(float))

    def test_threads_do_not_change_output(self, box_stl):
        cfg = self._config(box_stl, chunkSize="16")
        seq = build_grid(self.mesh, cfg, ExecutionStrategy(workers=1, chunk_size=16))
        par = build_grid(self.mesh, cfg, ExecutionStrategy(workers=4, chunk_size=16))
        for name in seq.field_names:
            npt.assert_array_equal(seq[name], par[name])

    def test_plan_failure_names_stage(self, box_stl):
        cfg = self._config(box_stl).with_overrides(bounds_factor=(1, -1, 1, 1, 1, 1))
        with pytest.raises(PipelineError) as info:
            build_grid(self.mesh, cfg)
        assert info.value.stage == "plan"
        assert "plan" in str(info.value)

    def test_logs_grid_details(self, box_stl, caplog):
        with caplog.at_level(logging.INFO, logger="stl2poro"):
            build_grid(self.mesh, self._config(box_stl))
        assert "Expanded bounds: -0.75 0.75" in caplog.text
        assert "Cell dimensions: 6 6 6" in caplog.text
        assert "Extent: 0 5 0 5 0 5" in caplog.text


class TestRun:
    def test_writes_outputs(self, tmp_path, box_stl):
        cfg_path = _write_config(tmp_path, box_stl)
        grid = run(load_config(cfg_path))
        csv = (tmp_path / "out" / "porosity.csv").read_text().splitlines()
        assert csv[0] == "6,6,6"
        assert len(csv) == 1 + 216
        first = [float(x) for x in csv[1].split(",")]
        assert first[:3] == [0, 0, 0]
        assert first[3] == pytest.approx(grid["porosity"][0])
        with np.load(tmp_path / "out" / "fields.npz") as data:
            npt.assert_array_equal(data["binary"].reshape(-1), grid["binary"])

    def test_failure_writes_nothing(self, tmp_path, box_stl):
        cfg_path = _write_config(tmp_path, box_stl, boundsFactor="1 -1 1 1 1 1")
        with pytest.raises(PipelineError):
            run(load_config(cfg_path))
        assert not (tmp_path / "out").exists()


class TestExampleConfig:
    def test_example_runs(self, tmp_path):
        example = Path(__file__).resolve().parents[1] / "examples" / "config.txt"
        cfg = load_config(example).with_overrides(
            grid=8,
            output_vtk=False,
            csv_path=tmp_path / "porosity.csv",
            npz_path=tmp_path / "fields.npz",
        )
        assert cfg.stl_path.name == "box.stl"
        grid = run(cfg)
        assert grid.spec.dimensions == (8, 8, 8)
        assert grid["binary"].min() == 0.0 and grid["binary"].max() == 1.0
        assert (tmp_path / "porosity.csv").is_file()


class TestCli:
    def test_success(self, tmp_path, box_stl):
        cfg_path = _write_config(tmp_path, box_stl)
        assert main([str(cfg_path), "--threads", "2"]) == 0
        assert (tmp_path / "out" / "porosity.csv").is_file()

    def test_bad_config(self, tmp_path, box_stl):
        cfg_path = _write_config(tmp_path, box_stl, grid="0")
        assert main([str(cfg_path)]) == 1
        assert not (tmp_path / "out").exists()

    def test_missing_config(self, tmp_path):
        assert main([str(tmp_path / "nope.txt")]) == 1

    def test_log_file_directory_created(self, tmp_path, box_stl):
        cfg_path = _write_config(tmp_path, box_stl, logFile="logs/run.log")
        try:
            assert main([str(cfg_path)]) == 0
        finally:
            setup_logging()
        assert "Completed" in (tmp_path / "logs" / "run.log").read_text()

    def test_unopenable_log_file(self, tmp_path, box_stl):
        (tmp_path / "logs").mkdir()
        cfg_path = _write_config(tmp_path, box_stl, logFile="logs")
        try:
            assert main([str(cfg_path)]) == 1
        finally:
            setup_logging()
        assert not (tmp_path / "out").exists()
