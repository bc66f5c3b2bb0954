"""Scalar fields derived from a signed distance field.

Each transform is a pure per-node mapping, so it runs through the same
:class:`~stl2poro.parallel.ExecutionStrategy` as the distance evaluation and
gives identical output for any worker count.

* :func:`porosity`: ``0.5 * tanh(d / thickness) + 0.5``
* :func:`multigrayscale`: 0 inside, ``0.5 * (1 + d / 2)`` in the band
  ``|d| <= delta``, 1 outside
* :func:`binary`: ``round(0.49 + 0.5 * d / (|d| + eps))``

Every function accepts either a :class:`~stl2poro.grid.ScalarField` or a
plain array, and an optional ``n_nodes`` that the input length must match.
Without ``n_nodes`` an input of any length is transformed as-is; the check
against the grid then happens in :meth:`~stl2poro.grid.Grid.add_field`, which
rejects a field whose length differs from the node count.
"""

from __future__ import annotations

import math
from typing import Callable, Optional, Union

import numpy as np
import numpy.typing as npt

from .errors import InvalidParameter
from .grid import ScalarField, check_length
from .parallel import SEQUENTIAL, ExecutionStrategy

_Array = npt.NDArray[np.floating]
_FieldLike = Union[ScalarField, _Array]

# Only keeps d / (|d| + eps) defined at d == 0.
_BINARY_EPS = 1e-30


def _values(sdf: _FieldLike, n_nodes: Optional[int]) -> _Array:
    values = sdf.values if isinstance(sdf, ScalarField) else np.asarray(sdf, dtype=np.float64)
    values = values.reshape(-1)
    check_length(values, n_nodes, what="distance field")
    return values


def _apply(
    name: str,
    kernel: Callable[[_Array], _Array],
    values: _Array,
    strategy: Optional[ExecutionStrategy],
) -> ScalarField:
    strategy = strategy or SEQUENTIAL
    out = strategy.map_ranges(lambda start, stop: kernel(values[start:stop]), len(values))
    return ScalarField(name, out)


# ---------------------------------------------------------------------------
# Kernels (vectorised, no parameter checks)
# ---------------------------------------------------------------------------

def _porosity_kernel(d: _Array, thickness: float) -> _Array:
    return 0.5 * np.tanh(d / thickness) + 0.5


def _multigrayscale_kernel(d: _Array, delta: float) -> _Array:
    band = 0.5 * (1.0 + d / 2.0)
    return np.where(d < -delta, 0.0, np.where(d > delta, 1.0, band))


def _binary_kernel(d: _Array) -> _Array:
    x = 0.49 + 0.5 * d / (np.abs(d) + _BINARY_EPS)
    # Half away from zero; x never drops below -0.01 so floor(x + 0.5) is
    # exact and also clears the -0.0 that np.round would give.
    return np.floor(x + 0.5)


# ---------------------------------------------------------------------------
# Public transforms
# ---------------------------------------------------------------------------

def porosity(
    sdf: _FieldLike,
    thickness: float,
    *,
    strategy: Optional[ExecutionStrategy] = None,
    n_nodes: Optional[int] = None,
    name: str = "porosity",
) -> ScalarField:
    """Smooth occupancy across the interface.

    ``d = 0`` maps to exactly 0.5.  Negative *thickness* flips the
    orientation of the transition.

    Raises
    ------
    InvalidParameter
        *thickness* is zero or not finite.
    DimensionMismatch
        *n_nodes* given and the input length differs.
    """
    if not math.isfinite(thickness) or thickness == 0:
        raise InvalidParameter(f"thickness must be finite and non-zero, got {thickness}")
    values = _values(sdf, n_nodes)
    return _apply(name, lambda d: _porosity_kernel(d, thickness), values, strategy)


def multigrayscale(
    sdf: _FieldLike,
    delta: float,
    *,
    strategy: Optional[ExecutionStrategy] = None,
    n_nodes: Optional[int] = None,
    name: str = "multigrayscale",
) -> ScalarField:
    """Three-band quantisation: interior, linear band ``|d| <= delta``, exterior.

    Raises
    ------
    InvalidParameter
        *delta* outside ``(0, 1]``.
    DimensionMismatch
        *n_nodes* given and the input length differs.
    """
    if not (0.0 < delta <= 1.0):
        raise InvalidParameter(f"delta must lie in (0, 1], got {delta}")
    values = _values(sdf, n_nodes)
    return _apply(name, lambda d: _multigrayscale_kernel(d, delta), values, strategy)


def binary(
    sdf: _FieldLike,
    *,
    strategy: Optional[ExecutionStrategy] = None,
    n_nodes: Optional[int] = None,
    name: str = "binary",
) -> ScalarField:
    """Hard occupancy: 1 outside (``d > 0``), 0 inside and on the surface.

    Raises
    ------
    DimensionMismatch
        *n_nodes* given and the input length differs.
    """
    values = _values(sdf, n_nodes)
    return _apply(name, _binary_kernel, values, strategy)
