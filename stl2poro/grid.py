"""Voxel grid geometry and the field container attached to it.

:func:`plan_grid` derives the sampling grid from a mesh bounding box:

1. every bounding-box face is *multiplied* by its bounds factor (not padded),
2. the span of the pitch axis divided by ``target_cell_count`` gives an
   isotropic pitch,
3. the first node sits half a pitch inside the lower bound,
4. node counts are the rounded cell counts, and
5. spacing is recomputed per axis from the *unrounded* cell count.

Because of step 5 the spacing carries the pitch rather than
``span / node_count``: on an axis whose span is not a whole number of
pitches, the last node stops short of (or runs past) the expanded upper
bound instead of the spacing stretching to fit.  Floating-point rounding in
step 5 can also leave the per-axis spacings a few ulps apart.

Nodes are linearised with x fastest and z slowest, so a flat field reshapes
to ``(nz, ny, nx)``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt

from .errors import DimensionMismatch, InvalidGridParameters

_Array = npt.NDArray[np.floating]
_Vec3 = Tuple[float, float, float]
_Dims3 = Tuple[int, int, int]


def _round_half_away(x: float) -> int:
    """Round to nearest, ties away from zero."""
    return int(math.copysign(math.floor(abs(x) + 0.5), x))


# ===========================================================================
# GridSpec
# ===========================================================================

@dataclass(frozen=True)
class GridSpec:
    """Immutable description of a regular 3-D node lattice."""

    origin: _Vec3
    spacing: _Vec3
    dimensions: _Dims3
    pitch: float
    expanded_bounds: Tuple[float, ...]

    @property
    def extent(self) -> Tuple[int, int, int, int, int, int]:
        nx, ny, nz = self.dimensions
        return (0, nx - 1, 0, ny - 1, 0, nz - 1)

    @property
    def n_nodes(self) -> int:
        nx, ny, nz = self.dimensions
        return nx * ny * nz

    @property
    def shape(self) -> _Dims3:
        """Array shape of a reshaped field, z-first."""
        nx, ny, nz = self.dimensions
        return (nz, ny, nx)

    def node_indices(self, start: int = 0, stop: Optional[int] = None) -> np.ndarray:
        """``(N, 3)`` integer ``(i, j, k)`` for linear nodes ``[start, stop)``."""
        nx, ny, _ = self.dimensions
        n = np.arange(start, self.n_nodes if stop is None else stop)
        return np.stack([n % nx, (n // nx) % ny, n // (nx * ny)], axis=-1)

    def node_points(self, start: int = 0, stop: Optional[int] = None) -> _Array:
        """``(N, 3)`` physical coordinates ``origin + (i*dx, j*dy, k*dz)``."""
        ijk = self.node_indices(start, stop)
        return np.asarray(self.origin) + ijk * np.asarray(self.spacing)


def _six_floats(values, what: str) -> Tuple[float, ...]:
    try:
        result = tuple(float(v) for v in values)
    except (TypeError, ValueError) as exc:
        raise InvalidGridParameters(f"cannot read {what}: {exc}") from exc
    if len(result) != 6:
        raise InvalidGridParameters(f"{what} needs 6 values, got {len(result)}")
    return result


def plan_grid(
    mesh,
    bounds_factor: Sequence[float],
    target_cell_count: int,
    pitch_axis: int,
) -> GridSpec:
    """Derive the sampling grid for *mesh*.

    Parameters
    ----------
    mesh:
        Anything with a 6-element ``bounds`` attribute, or the 6 bounds
        themselves ``(xmin, xmax, ymin, ymax, zmin, zmax)``.
    bounds_factor:
        One multiplier per bounding-box face.  No sign correction is applied,
        so a factor > 1 on a negative lower bound grows the box and on a
        positive one shrinks it.
    target_cell_count:
        Number of cells along *pitch_axis*.
    pitch_axis:
        0, 1 or 2.

    Raises
    ------
    InvalidGridParameters
        Non-positive cell count, bad axis, malformed factors or an expanded
        span that is not strictly positive.
    """
    bounds = _six_floats(getattr(mesh, "bounds", mesh), "bounding box")
    factors = _six_floats(bounds_factor, "bounds factor")
    if not all(math.isfinite(f) for f in factors):
        raise InvalidGridParameters(f"bounds factors must be finite, got {factors}")
    if isinstance(target_cell_count, bool) or not isinstance(target_cell_count, (int, np.integer)):
        raise InvalidGridParameters(f"target cell count must be an integer, got {target_cell_count!r}")
    if target_cell_count <= 0:
        raise InvalidGridParameters(f"target cell count must be positive, got {target_cell_count}")
    if pitch_axis not in (0, 1, 2):
        raise InvalidGridParameters(f"pitch axis must be 0, 1 or 2, got {pitch_axis!r}")

    expanded = tuple(b * f for b, f in zip(bounds, factors))
    spans = [expanded[2 * a + 1] - expanded[2 * a] for a in range(3)]
    for axis, span in enumerate(spans):
        if not span > 0.0:
            raise InvalidGridParameters(
                f"expanded span along axis {axis} is {span}; bounds {expanded}"
            )

    pitch = spans[pitch_axis] / target_cell_count
    mesh_pitch = (pitch, pitch, pitch)
    origin = tuple(expanded[2 * a] + pitch / 2 for a in range(3))
    cell_dims = [spans[a] / mesh_pitch[a] for a in range(3)]
    dims = tuple(max(1, _round_half_away(c - 1) + 1) for c in cell_dims)
    spacing = tuple(spans[a] / cell_dims[a] for a in range(3))

    return GridSpec(
        origin=origin,  # type: ignore[arg-type]
        spacing=spacing,  # type: ignore[arg-type]
        dimensions=dims,  # type: ignore[arg-type]
        pitch=pitch,
        expanded_bounds=expanded,
    )


# ===========================================================================
# Fields
# ===========================================================================

class ScalarField:
    """A named, read-only, flat float64 array with one value per node."""

    __slots__ = ("name", "values")

    def __init__(self, name: str, values: _Array) -> None:
        arr = np.array(values, dtype=np.float64).reshape(-1)
        arr.setflags(write=False)
        self.name = name
        self.values = arr

    def __len__(self) -> int:
        return len(self.values)

    def __repr__(self) -> str:
        return f"ScalarField({self.name!r}, n={len(self)})"


def check_length(values: _Array, n_nodes: Optional[int], what: str = "field") -> None:
    """Raise :class:`DimensionMismatch` unless *values* has *n_nodes* entries."""
    if n_nodes is not None and np.size(values) != n_nodes:
        raise DimensionMismatch(
            f"{what} has {np.size(values)} values but the grid has {n_nodes} nodes"
        )


class Grid:
    """A :class:`GridSpec` plus an insertion-ordered set of uniquely named fields."""

    def __init__(self, spec: GridSpec) -> None:
        self.spec = spec
        self._fields: Dict[str, ScalarField] = {}

    def add_field(self, field: Union[ScalarField, str], values: Optional[_Array] = None) -> ScalarField:
        """Attach a field; accepts a :class:`ScalarField` or ``(name, values)``."""
        if not isinstance(field, ScalarField):
            field = ScalarField(field, values)
        if field.name in self._fields:
            raise ValueError(f"grid already has a field named {field.name!r}")
        check_length(field.values, self.spec.n_nodes, what=f"field {field.name!r}")
        self._fields[field.name] = field
        return field

    def __getitem__(self, name: str) -> _Array:
        return self._fields[name].values

    def __contains__(self, name: str) -> bool:
        return name in self._fields

    def __iter__(self) -> Iterator[ScalarField]:
        return iter(self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(self._fields)

    def reshaped(self, name: str) -> _Array:
        """Field *name* as a ``(nz, ny, nx)`` array."""
        return self._fields[name].values.reshape(self.spec.shape)
