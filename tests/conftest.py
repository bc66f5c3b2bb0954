"""Shared mesh builders for the test suite."""
from __future__ import annotations

import struct

import numpy as np
import pytest


def make_box_triangles(hx: float = 0.5, hy: float = 0.5, hz: float = 0.5) -> np.ndarray:
    """12-triangle watertight box [-hx,hx]×[-hy,hy]×[-hz,hz]."""
    verts = np.array([
        [-hx, -hy, -hz], [ hx, -hy, -hz], [ hx,  hy, -hz], [-hx,  hy, -hz],
        [-hx, -hy,  hz], [ hx, -hy,  hz], [ hx,  hy,  hz], [-hx,  hy,  hz],
    ], dtype=np.float64)
    face_indices = [
        (0, 2, 1), (0, 3, 2),   # -Z
        (4, 5, 6), (4, 6, 7),   # +Z
        (0, 4, 7), (0, 7, 3),   # -X
        (1, 2, 6), (1, 6, 5),   # +X
        (0, 1, 5), (0, 5, 4),   # -Y
        (3, 7, 6), (3, 6, 2),   # +Y
    ]
    return np.array([[verts[i], verts[j], verts[k]] for i, j, k in face_indices],
                    dtype=np.float64)


def binary_stl_bytes(triangles: np.ndarray) -> bytes:
    header  = b"\x00" * 80
    count   = struct.pack("<I", len(triangles))
    records = bytearray()
    for tri in triangles:
        records += struct.pack("<fff", 0.0, 0.0, 0.0)
        for v in tri:
            records += struct.pack("<fff", float(v[0]), float(v[1]), float(v[2]))
        records += struct.pack("<H", 0)
    return header + count + bytes(records)


def ascii_stl_text(triangles: np.ndarray) -> str:
    lines = ["solid test"]
    for tri in triangles:
        lines.append("  facet normal 0 0 0")
        lines.append("    outer loop")
        for v in tri:
            lines.append(f"      vertex {v[0]:.6g} {v[1]:.6g} {v[2]:.6g}")
        lines.append("    endloop")
        lines.append("  endfacet")
    lines.append("endsolid test")
    return "\n".join(lines)


class SphereMesh:
    """Analytic sphere exposing only the minimal mesh interface."""

    def __init__(self, radius: float = 0.5) -> None:
        self.radius = radius

    @property
    def bounds(self):
        r = self.radius
        return (-r, r, -r, r, -r, r)

    def closest_signed_distance(self, point) -> float:
        return float(np.linalg.norm(point)) - self.radius


@pytest.fixture
def box_triangles() -> np.ndarray:
    return make_box_triangles()


@pytest.fixture
def box_stl(tmp_path):
    path = tmp_path / "box.stl"
    path.write_bytes(binary_stl_bytes(make_box_triangles()))
    return path
