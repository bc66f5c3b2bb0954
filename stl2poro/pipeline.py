"""End-to-end conversion: mesh → grid → distance → derived fields → files.

:func:`build_grid` is the pure computation; :func:`run` adds mesh loading
and output.  Nothing is written until every requested field exists, so a
failure in any stage leaves no partial artefact behind.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from . import io, transforms
from .config import PipelineConfig
from .distance import evaluate_distance_field
from .errors import PipelineError, Stl2PoroError
from .grid import Grid, GridSpec, plan_grid
from .mesh import load_mesh
from .parallel import ExecutionStrategy

logger = logging.getLogger(__name__)


@contextmanager
def _stage(name: str) -> Iterator[None]:
    """Time a stage and tag any library error with the stage name."""
    start = time.perf_counter()
    try:
        yield
    except PipelineError:
        raise
    except (Stl2PoroError, OSError, ValueError, KeyError, ImportError) as exc:
        raise PipelineError(name, f"{type(exc).__name__}: {exc}") from exc
    logger.info("%s stage took %.3f s", name, time.perf_counter() - start)


def _fmt(values) -> str:
    return " ".join(f"{v:g}" for v in values)


def log_input_details(mesh, spec: GridSpec) -> None:
    logger.info("Input data information:")
    logger.info("  STL number of vertices: %s", getattr(mesh, "n_vertices", "n/a"))
    logger.info("  STL number of faces: %s", getattr(mesh, "n_faces", "n/a"))
    logger.info("  Original bounds: %s", _fmt(mesh.bounds))
    logger.info("  Expanded bounds: %s", _fmt(spec.expanded_bounds))
    logger.info("  Mesh pitch: %s", _fmt((spec.pitch,) * 3))


def log_output_details(spec: GridSpec) -> None:
    logger.info("Output data details:")
    logger.info("  Cell dimensions: %s", " ".join(str(n) for n in spec.dimensions))
    logger.info("  Extent: %s", " ".join(str(e) for e in spec.extent))
    logger.info("  Origin: %s", _fmt(spec.origin))
    logger.info("  Spacing: %s", _fmt(spec.spacing))


def strategy_for(config: PipelineConfig) -> ExecutionStrategy:
    return ExecutionStrategy(workers=config.num_threads, chunk_size=config.chunk_size)


def build_grid(
    mesh,
    config: PipelineConfig,
    strategy: Optional[ExecutionStrategy] = None,
) -> Grid:
    """Plan the grid for *mesh* and attach the fields listed in ``config.fields``.

    The interface thickness handed to :func:`transforms.porosity` is
    ``config.thickness * spacing[0]`` when ``config.thickness_in_cells`` is
    set, ``config.thickness`` otherwise.
    """
    strategy = strategy or strategy_for(config)

    with _stage("plan"):
        spec = plan_grid(mesh, config.bounds_factor, config.grid, config.axis)
    log_input_details(mesh, spec)
    logger.info("Grid: %d x %d x %d = %d nodes; %r",
                *spec.dimensions, spec.n_nodes, strategy)

    with _stage("distance"):
        sdf = evaluate_distance_field(mesh, spec, strategy)

    thickness = config.thickness * spec.spacing[0] if config.thickness_in_cells else config.thickness
    derived = {
        "signedDistance": lambda: sdf,
        "porosity": lambda: transforms.porosity(sdf, thickness, strategy=strategy, n_nodes=spec.n_nodes),
        "multigrayscale": lambda: transforms.multigrayscale(sdf, config.delta, strategy=strategy,
                                                            n_nodes=spec.n_nodes),
        "binary": lambda: transforms.binary(sdf, strategy=strategy, n_nodes=spec.n_nodes),
    }

    grid = Grid(spec)
    with _stage("transform"):
        for name in config.fields:
            grid.add_field(derived[name]())
    log_output_details(spec)
    return grid


def write_outputs(grid: Grid, config: PipelineConfig) -> None:
    """Write every output enabled in *config*."""
    with _stage("output"):
        if config.csv_path is not None:
            io.write_csv(grid, config.csv_path, field=config.csv_field)
        if config.writes_vtk:
            active = config.csv_field if config.csv_field in grid else None
            io.write_vti(grid, config.vtk_path, active=active)
        if config.npz_path is not None:
            io.save_npz(grid, config.npz_path)


def run(config: PipelineConfig, strategy: Optional[ExecutionStrategy] = None) -> Grid:
    """Load the mesh, build the grid and write the outputs."""
    with _stage("load"):
        mesh = load_mesh(config.stl_path, backend=config.mesh_backend)
    grid = build_grid(mesh, config, strategy)
    write_outputs(grid, config)
    return grid
