"""stl2poro: STL surface to porosity fields on a voxel grid.

Samples the signed distance to a triangulated surface on a regular grid
derived from the mesh bounding box, then maps it to smoothed porosity,
three-band grayscale and binary occupancy fields.

Quick start
-----------
>>> from stl2poro import (TriangleMesh, ExecutionStrategy, plan_grid,
...                       evaluate_distance_field, porosity)
>>> mesh = TriangleMesh.from_stl("part.stl")
>>> spec = plan_grid(mesh, bounds_factor=[1.2] * 6, target_cell_count=64, pitch_axis=0)
>>> sdf = evaluate_distance_field(mesh, spec, ExecutionStrategy(workers=4))
>>> phi = porosity(sdf, thickness=2 * spec.spacing[0])

Or drive a whole run from a ``key=value`` file::

    python -m stl2poro config.txt

Grid layout
-----------
Nodes are stored x fastest, z slowest; ``values.reshape(spec.shape)`` gives
a ``(nz, ny, nx)`` array.  The first node sits half a pitch inside the
expanded lower bound.

Watertight requirement
----------------------
The numpy backend signs distances by ray parity, which is only correct for
closed, 2-manifold meshes.
"""

from .distance import evaluate_distance_field
from .errors import (
    ConfigError,
    DimensionMismatch,
    InvalidGridParameters,
    InvalidParameter,
    MeshQueryFailure,
    PipelineError,
    Stl2PoroError,
)
from .grid import Grid, GridSpec, ScalarField, plan_grid
from .mesh import Mesh, TriangleMesh, VtkMesh, load_mesh
from .parallel import ExecutionStrategy
from .transforms import binary, multigrayscale, porosity

__version__ = "0.1.0"

__all__ = [
    # Mesh sources
    "Mesh",
    "TriangleMesh",
    "VtkMesh",
    "load_mesh",

    # Grid
    "GridSpec",
    "Grid",
    "ScalarField",
    "plan_grid",

    # Fields
    "evaluate_distance_field",
    "porosity",
    "multigrayscale",
    "binary",

    # Execution
    "ExecutionStrategy",

    # Errors
    "Stl2PoroError",
    "InvalidGridParameters",
    "InvalidParameter",
    "DimensionMismatch",
    "MeshQueryFailure",
    "ConfigError",
    "PipelineError",
]
