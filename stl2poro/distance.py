"""Signed distance sampled at every node of a grid."""

from __future__ import annotations

import logging
import threading
from typing import Optional

import numpy as np
import numpy.typing as npt

from .errors import MeshQueryFailure
from .grid import GridSpec, ScalarField
from .parallel import SEQUENTIAL, ExecutionStrategy

logger = logging.getLogger(__name__)

_Array = npt.NDArray[np.floating]

FIELD_NAME = "signedDistance"


def _batched_query(mesh):
    """Return ``query(points) -> distances`` for *mesh*."""
    batched = getattr(mesh, "signed_distance", None)
    if batched is not None:
        return batched

    def _pointwise(points: _Array) -> _Array:
        return np.fromiter(
            (mesh.closest_signed_distance(p) for p in points),
            dtype=np.float64,
            count=len(points),
        )

    return _pointwise


def evaluate_distance_field(
    mesh,
    spec: GridSpec,
    strategy: Optional[ExecutionStrategy] = None,
) -> ScalarField:
    """Evaluate ``mesh.closest_signed_distance`` at every node of *spec*.

    Nodes are visited k-outer, i-inner; the output is in that order whatever
    *strategy* is used.  A mesh that does not declare ``reentrant = True`` is
    queried under a lock, so only one thread is inside the query at a time.

    Raises
    ------
    MeshQueryFailure
        The query raised, or returned a non-finite value.
    """
    strategy = strategy or SEQUENTIAL
    query = _batched_query(mesh)
    lock = None
    if strategy.parallel and not getattr(mesh, "reentrant", False):
        logger.info("Mesh query is not reentrant; serialising distance queries")
        lock = threading.Lock()

    def _chunk(start: int, stop: int) -> _Array:
        points = spec.node_points(start, stop)
        try:
            if lock is None:
                values = query(points)
            else:
                with lock:
                    values = query(points)
        except MeshQueryFailure:
            raise
        except Exception as exc:
            raise MeshQueryFailure(f"distance query failed for nodes [{start}, {stop}): {exc}") from exc
        values = np.asarray(values, dtype=np.float64)
        if not np.isfinite(values).all():
            bad = int(np.argmax(~np.isfinite(values)))
            raise MeshQueryFailure(f"non-finite distance at point {points[bad].tolist()}")
        return values

    values = strategy.map_ranges(_chunk, spec.n_nodes)
    return ScalarField(FIELD_NAME, values)
