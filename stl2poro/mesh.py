"""Mesh sources with a closest-signed-distance query.

Anything passed to the grid planner or the distance evaluator only needs

* ``bounds``: ``(xmin, xmax, ymin, ymax, zmin, zmax)``
* ``closest_signed_distance(point) -> float``: negative inside, positive
  outside, magnitude the Euclidean distance to the surface.

Two optional capabilities are honoured when present:

* ``signed_distance(points)``: batched query over an ``(N, 3)`` array.
* ``reentrant``: ``True`` if the query may run on several threads at once.
  Meshes without the flag are treated as not reentrant.

Backends
--------
:class:`TriangleMesh`
    Pure numpy.  Reentrant: its tables are read-only after construction.
:class:`VtkMesh`
    ``vtkImplicitPolyDataDistance`` over a pyvista-loaded surface.  Requires
    the ``vtk`` extra.  Not reentrant.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, Sequence, Tuple, Union, runtime_checkable

import numpy as np
import numpy.typing as npt

from ._math import _block_size, _build_tables, _read_stl, _signed_distance_block
from .errors import MeshQueryFailure

logger = logging.getLogger(__name__)

_Array = npt.NDArray[np.floating]
Bounds = Tuple[float, float, float, float, float, float]

BACKENDS = ("numpy", "vtk")


@runtime_checkable
class Mesh(Protocol):
    """Read-only surface the pipeline borrows."""

    @property
    def bounds(self) -> Bounds: ...

    def closest_signed_distance(self, point: Sequence[float]) -> float: ...


# ===========================================================================
# numpy backend
# ===========================================================================

class TriangleMesh:
    """Immutable triangle soup with a vectorised signed-distance query.

    Parameters
    ----------
    triangles:
        ``(F, 3, 3)`` array; ``triangles[f, v]`` is vertex *v* of face *f*.

    The sign comes from ray parity, so it is only reliable for watertight
    meshes.
    """

    reentrant = True

    def __init__(self, triangles: _Array) -> None:
        tris = np.array(triangles, dtype=np.float64)
        if tris.ndim != 3 or tris.shape[1:] != (3, 3):
            raise ValueError(f"triangles must have shape (F, 3, 3), got {tris.shape}")
        if len(tris) == 0:
            raise MeshQueryFailure("mesh has no triangles")
        if not np.isfinite(tris).all():
            raise MeshQueryFailure("mesh has non-finite vertex coordinates")
        tris.setflags(write=False)
        self.triangles = tris
        self._tables = _build_tables(tris)

    @classmethod
    def from_stl(cls, path: Union[str, Path]) -> "TriangleMesh":
        """Load a binary or ASCII STL file."""
        return cls(_read_stl(path))

    @property
    def n_faces(self) -> int:
        return len(self.triangles)

    @property
    def n_vertices(self) -> int:
        """Number of distinct vertex positions."""
        return len(np.unique(self.triangles.reshape(-1, 3), axis=0))

    @property
    def bounds(self) -> Bounds:
        verts = self.triangles.reshape(-1, 3)
        lo, hi = verts.min(axis=0), verts.max(axis=0)
        return (float(lo[0]), float(hi[0]), float(lo[1]), float(hi[1]),
                float(lo[2]), float(hi[2]))

    def signed_distance(self, points: _Array) -> _Array:
        """Signed distance for each row of an ``(N, 3)`` array."""
        P = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        out = np.empty(len(P))
        step = _block_size(self.n_faces)
        for start in range(0, len(P), step):
            out[start:start + step] = _signed_distance_block(P[start:start + step], self._tables)
        bad = ~np.isfinite(out)
        if bad.any():
            raise MeshQueryFailure(
                f"no finite distance at point {P[np.argmax(bad)].tolist()}"
            )
        return out

    def closest_signed_distance(self, point: Sequence[float]) -> float:
        return float(self.signed_distance(np.asarray(point, dtype=np.float64)[None, :])[0])


# ===========================================================================
# VTK backend
# ===========================================================================

class VtkMesh:
    """Surface read through pyvista and queried with ``vtkImplicitPolyDataDistance``.

    ``EvaluateFunction`` keeps per-call scratch state inside the locator, so
    the query must be serialised.
    """

    reentrant = False

    def __init__(self, polydata) -> None:
        from vtkmodules.vtkFiltersCore import vtkImplicitPolyDataDistance

        if polydata.GetNumberOfCells() == 0:
            raise MeshQueryFailure("mesh has no faces")
        self.polydata = polydata
        self._implicit = vtkImplicitPolyDataDistance()
        self._implicit.SetInput(polydata)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "VtkMesh":
        import pyvista as pv  # local import keeps the module importable without VTK

        return cls(pv.read(str(path)).triangulate())

    @property
    def n_faces(self) -> int:
        return int(self.polydata.GetNumberOfCells())

    @property
    def n_vertices(self) -> int:
        return int(self.polydata.GetNumberOfPoints())

    @property
    def bounds(self) -> Bounds:
        return tuple(float(b) for b in self.polydata.GetBounds())  # type: ignore[return-value]

    def closest_signed_distance(self, point: Sequence[float]) -> float:
        value = self._implicit.EvaluateFunction([float(c) for c in point])
        if not np.isfinite(value):
            raise MeshQueryFailure(f"no finite distance at point {list(point)}")
        return float(value)


# ===========================================================================
# Loader
# ===========================================================================

def load_mesh(path: Union[str, Path], backend: str = "numpy"):
    """Load *path* with the requested backend (``"numpy"`` or ``"vtk"``)."""
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"mesh file not found: {path}")
    if backend == "numpy":
        mesh = TriangleMesh.from_stl(path)
    elif backend == "vtk":
        mesh = VtkMesh.from_file(path)
    else:
        raise ValueError(f"unknown mesh backend {backend!r}; expected one of {BACKENDS}")
    logger.debug("Loaded %s with %s backend (%d faces)", path, backend, mesh.n_faces)
    return mesh
