"""Output sinks for a finished :class:`~stl2poro.grid.Grid`.

* :func:`write_csv`: ``nx,ny,nz`` header, then ``ix,iy,iz,value`` per node.
* :func:`write_vti`: VTK XML image data via pyvista (``vtk`` extra).
* :func:`save_npz`: numpy archive with the grid geometry and every field
  reshaped to ``(nz, ny, nx)``.

All writers create missing parent directories.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Union

import numpy as np

from .grid import Grid

logger = logging.getLogger(__name__)

_PathLike = Union[str, Path]


def _ensure_parent(path: _PathLike) -> Path:
    path = Path(path)
    out_dir = os.path.dirname(path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    return path


def _pick_field(grid: Grid, field: Optional[str]) -> str:
    if not len(grid):
        raise ValueError("grid has no fields to write")
    if field is None:
        return grid.field_names[0]
    if field not in grid:
        raise KeyError(f"grid has no field {field!r}; available: {grid.field_names}")
    return field


def write_csv(grid: Grid, path: _PathLike, field: Optional[str] = None) -> Path:
    """Write one field as ``ix,iy,iz,value`` rows in node order.

    *field* defaults to the first field attached to the grid.
    """
    name = _pick_field(grid, field)
    path = _ensure_parent(path)
    ijk = grid.spec.node_indices()
    values = grid[name]
    nx, ny, nz = grid.spec.dimensions
    logger.info("Writing %s (%s) ...", path, name)
    with open(path, "w", encoding="utf-8", newline="") as fh:
        fh.write(f"{nx},{ny},{nz}\n")
        for (i, j, k), v in zip(ijk.tolist(), values.tolist()):
            fh.write(f"{i},{j},{k},{v:.17g}\n")
    return path


def to_pyvista(grid: Grid, active: Optional[str] = None):
    """Return a ``pyvista.ImageData`` carrying every field as point data."""
    import pyvista as pv  # local import keeps the module importable without VTK

    spec = grid.spec
    image = pv.ImageData(dimensions=spec.dimensions, spacing=spec.spacing, origin=spec.origin)
    for field in grid:
        # pyvista point order is x fastest, same as ours
        image.point_data[field.name] = np.array(field.values)
    if active is not None:
        image.set_active_scalars(_pick_field(grid, active))
    return image


def write_vti(grid: Grid, path: _PathLike, active: Optional[str] = None) -> Path:
    """Write the grid and all its fields to a ``.vti`` file."""
    path = _ensure_parent(path)
    logger.info("Writing %s ...", path)
    to_pyvista(grid, active=active).save(str(path))
    return path


def save_npz(grid: Grid, path: _PathLike) -> Path:
    """Save geometry plus every field (as ``(nz, ny, nx)``) to *path*."""
    path = _ensure_parent(path)
    spec = grid.spec
    arrays = {
        "origin": np.asarray(spec.origin),
        "spacing": np.asarray(spec.spacing),
        "dimensions": np.asarray(spec.dimensions),
    }
    for field in grid:
        arrays[field.name] = grid.reshaped(field.name)
    logger.info("Writing %s ...", path)
    np.savez(path, **arrays)
    return path
