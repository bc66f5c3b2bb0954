"""Internal geometry kernels for triangulated meshes.

All symbols here are private (underscore-prefixed).  Users should go through
:class:`stl2poro.mesh.TriangleMesh`.

Algorithms
----------
Unsigned distance: Ericson's Voronoi-region closest point
    (Real-Time Collision Detection §5.1.5), evaluated for a block of points
    against every triangle at once.  Each region is reduced to barycentric
    weights ``(s, t)`` so that the closest point is always
    ``A + s*AB + t*AC``; ``np.select`` picks the weights per region.

Sign: Möller–Trumbore ray parity.
    A ray from each query point in a fixed irrational direction counts
    triangle crossings.  Odd count → inside (negative).  Only meaningful for
    watertight meshes.

Work arrays are ``(N, F)`` or ``(N, F, 3)``; callers bound ``N`` with
:func:`_block_size` so memory stays flat for large meshes.
"""

from __future__ import annotations

import struct
from math import sqrt
from pathlib import Path
from typing import NamedTuple, Union

import numpy as np
import numpy.typing as npt

_Array = npt.NDArray[np.floating]

# Irrational components avoid axis-aligned degeneracies.
_RAY_DIR: np.ndarray = np.array(
    [sqrt(2) - 1.0, sqrt(3) - 1.0, 1.0 / sqrt(3)], dtype=np.float64
)
_RAY_DIR = _RAY_DIR / np.linalg.norm(_RAY_DIR)

_DET_EPS = 1e-12
_HIT_EPS = 1e-10

# Upper bound on N*F per block.
_BLOCK_ELEMENTS = 1 << 20


# ---------------------------------------------------------------------------
# STL parsing
# ---------------------------------------------------------------------------

def _read_stl(path: Union[str, Path]) -> np.ndarray:
    """Read binary or ASCII STL into a ``(F, 3, 3)`` float64 array.

    Binary files are recognised by the size invariant
    ``len == 84 + 50 * count``; a leading ``solid`` keyword is not trusted
    because several CAD exporters write it into binary headers too.
    """
    raw = Path(path).read_bytes()
    if len(raw) >= 84:
        (count,) = struct.unpack_from("<I", raw, 80)
        if len(raw) == 84 + 50 * count:
            record = np.dtype([("normal", "<f4", (3,)),
                               ("vertices", "<f4", (3, 3)),
                               ("attr", "<u2")])
            faces = np.frombuffer(raw, dtype=record, count=count, offset=84)
            return faces["vertices"].astype(np.float64)

    coords = [
        line.split()[1:4]
        for line in raw.decode("ascii", errors="replace").splitlines()
        if line.lstrip().startswith("vertex")
    ]
    if len(coords) % 3:
        raise ValueError(f"{path}: vertex count {len(coords)} is not a multiple of 3")
    return np.asarray(coords, dtype=np.float64).reshape(-1, 3, 3)


# ---------------------------------------------------------------------------
# Per-triangle tables
# ---------------------------------------------------------------------------

class _Tables(NamedTuple):
    a: np.ndarray        # (F, 3) first vertex
    ab: np.ndarray       # (F, 3) B - A
    ac: np.ndarray       # (F, 3) C - A
    h: np.ndarray        # (F, 3) ray_dir x AC
    inv_det: np.ndarray  # (F,)   0 where the ray is parallel to the face


def _build_tables(triangles: np.ndarray) -> _Tables:
    a = triangles[:, 0]
    ab = triangles[:, 1] - a
    ac = triangles[:, 2] - a
    h = np.cross(_RAY_DIR, ac)
    det = np.einsum("fk,fk->f", ab, h)
    parallel = np.abs(det) < _DET_EPS
    inv_det = np.where(parallel, 0.0, 1.0 / np.where(parallel, 1.0, det))
    return _Tables(a, ab, ac, h, inv_det)


def _block_size(n_faces: int) -> int:
    return max(1, _BLOCK_ELEMENTS // max(n_faces, 1))


# ---------------------------------------------------------------------------
# Kernels
# ---------------------------------------------------------------------------

def _min_sq_dist(ap: np.ndarray, tab: _Tables) -> np.ndarray:
    """Squared distance to the nearest triangle; ``ap`` is ``(N, F, 3)``."""
    ab, ac = tab.ab, tab.ac
    d1 = np.einsum("nfk,fk->nf", ap, ab)
    d2 = np.einsum("nfk,fk->nf", ap, ac)
    ab2 = np.einsum("fk,fk->f", ab, ab)
    ac2 = np.einsum("fk,fk->f", ac, ac)
    abac = np.einsum("fk,fk->f", ab, ac)
    # Dot products against P - B and P - C follow from the ones against P - A.
    d3 = d1 - ab2
    d4 = d2 - abac
    d5 = d1 - abac
    d6 = d2 - ac2

    vc = d1 * d4 - d3 * d2
    vb = d5 * d2 - d1 * d6
    va = d3 * d6 - d5 * d4

    in_a = (d1 <= 0.0) & (d2 <= 0.0)
    in_b = (d3 >= 0.0) & (d4 <= d3)
    in_ab = (vc <= 0.0) & (d1 >= 0.0) & (d3 <= 0.0)
    in_c = (d6 >= 0.0) & (d5 <= d6)
    in_ac = (vb <= 0.0) & (d2 >= 0.0) & (d6 <= 0.0)
    in_bc = (va <= 0.0) & (d4 - d3 >= 0.0) & (d5 - d6 >= 0.0)
    regions = [in_a, in_b, in_ab, in_c, in_ac, in_bc]

    with np.errstate(divide="ignore", invalid="ignore"):
        t_ab = d1 / (d1 - d3)
        t_ac = d2 / (d2 - d6)
        t_bc = (d4 - d3) / ((d4 - d3) + (d5 - d6))
        denom = va + vb + vc
        s_in = vb / denom
        t_in = vc / denom

    zero = np.zeros_like(d1)
    one = np.ones_like(d1)
    s = np.select(regions, [zero, one, t_ab, zero, zero, 1.0 - t_bc], default=s_in)
    t = np.select(regions, [zero, zero, zero, one, t_ac, t_bc], default=t_in)

    diff = ap - s[..., None] * ab - t[..., None] * ac
    sq = np.einsum("nfk,nfk->nf", diff, diff)
    # Zero-area faces yield NaN weights; their edges are covered by neighbours.
    sq = np.where(np.isfinite(sq), sq, np.inf)
    return sq.min(axis=1)


def _ray_crossings(ap: np.ndarray, tab: _Tables) -> np.ndarray:
    """Number of faces crossed by the ray from each point; ``ap`` is ``(N, F, 3)``."""
    u = np.einsum("nfk,fk->nf", ap, tab.h) * tab.inv_det
    q = np.cross(ap, tab.ab)
    v = np.einsum("nfk,k->nf", q, _RAY_DIR) * tab.inv_det
    t = np.einsum("nfk,fk->nf", q, tab.ac) * tab.inv_det
    hit = (tab.inv_det != 0.0) & (u >= 0.0) & (v >= 0.0) & (u + v <= 1.0) & (t > _HIT_EPS)
    return hit.sum(axis=1)


def _signed_distance_block(points: np.ndarray, tab: _Tables) -> np.ndarray:
    """Signed distance for one block of ``(N, 3)`` points."""
    ap = points[:, None, :] - tab.a[None, :, :]
    unsigned = np.sqrt(_min_sq_dist(ap, tab))
    inside = _ray_crossings(ap, tab) % 2 == 1
    return np.where(inside, -unsigned, unsigned)
