"""
Plane-line, triangle-line and mesh-line intersections.

The plane and triangle tests report numerical trouble through an error flag
instead of raising: callers decide whether a parallel or coplanar configuration is fatal.
"""
from __future__ import annotations

from typing import Optional, Tuple
import warnings
import numpy as np

from ..errors import GeometryWarning, InputShapeError
from ..io import _to_trimesh
from ..models import Mesh3D

_EPS = np.finfo(np.float64).eps


def _vec3(v, name: str) -> np.ndarray:
    a = np.asarray(v, dtype=np.float64).reshape(-1)
    if a.size != 3:
        raise InputShapeError(f"{name} must have three components, got {a.size}.")
    return a


def plane_line(
    plane_point: np.ndarray,
    plane_normal: np.ndarray,
    line_point: np.ndarray,
    line_dir: np.ndarray,
    tol: float = 1e-8,
) -> Tuple[Optional[np.ndarray], bool, Optional[float]]:
    """
    Intersect the plane (pp, pv) with the line lp + t*lv.

    Returns (ip, ierr, t). When the line is parallel to the plane ip and t are
    None and ierr is True. ierr is also set (point still returned) when the
    recomputed point is more than ``tol`` off the plane.
    """
    pp = _vec3(plane_point, "plane_point")
    pv = _vec3(plane_normal, "plane_normal")
    lp = _vec3(line_point, "line_point")
    lv = _vec3(line_dir, "line_dir")

    d = float(pv @ lv)
    if abs(d) <= 10.0 * _EPS:
        warnings.warn("Line is parallel to the plane (divide by small number).", GeometryWarning, stacklevel=2)
        return None, True, None

    t = -float(pv @ (lp - pp)) / d
    ip = lp + t * lv

    ierr = False
    zo = float(pv @ (ip - pp))
    if abs(zo) > tol:
        ierr = True
        warnings.warn(f"Intersection not in plane (residual {zo:.3e}).", GeometryWarning, stacklevel=2)
    return ip, ierr, t


def triangle_line(
    v1: np.ndarray,
    v2: np.ndarray,
    v3: np.ndarray,
    line_point: np.ndarray,
    line_dir: np.ndarray,
    tol: float = 1e-8,
) -> Tuple[Optional[np.ndarray], bool, bool]:
    """
    Möller–Trumbore intersection of triangle (v1,v2,v3) with an infinite line.

    Returns (ip, hit, ierr). ierr is True when the line lies in (or within
    ``tol`` of) the plane of the triangle; hit is False when the barycentric
    coordinates fall outside the triangle.
    """
    v1 = _vec3(v1, "v1")
    v2 = _vec3(v2, "v2")
    v3 = _vec3(v3, "v3")
    lp = _vec3(line_point, "line_point")
    lv = _vec3(line_dir, "line_dir")

    e1 = v2 - v1
    e2 = v3 - v1
    p = np.cross(lv, e2)
    d = float(p @ e1)
    if abs(d) < tol:
        return None, False, True

    tv = lp - v1
    u = float(p @ tv) / d
    if u < 0.0 or u > 1.0:
        return None, False, False

    q = np.cross(tv, e1)
    v = float(q @ lv) / d
    if v < 0.0 or u + v > 1.0:
        return None, False, False

    ip = (1.0 - u - v) * v1 + u * v2 + v * v3
    return ip, True, False


def mesh_line(
    vertices: np.ndarray,
    faces: np.ndarray,
    line_point: np.ndarray,
    line_dir: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    All crossings of the infinite line lp + t*lv with a triangle mesh.

    Two rays are cast from ``line_point`` (along +lv and -lv) through trimesh's
    ray interface and their hits merged. Returns (points (k,3), face_ids (k,))
    ordered by the signed line parameter t.
    """
    V = np.asarray(vertices, dtype=np.float64)
    F = np.asarray(faces, dtype=np.int64)
    if F.ndim != 2 or F.shape[1] != 3:
        raise InputShapeError("Triangle connectivity must have three columns.")
    lp = _vec3(line_point, "line_point")
    lv = _vec3(line_dir, "line_dir")
    nn = float(lv @ lv)
    if nn == 0.0:
        raise InputShapeError("line_dir must be non-zero.")

    tm = _to_trimesh(Mesh3D(vertices=V, faces=F))
    O = np.vstack([lp, lp])
    D = np.vstack([lv, -lv])
    loc, _, tri = tm.ray.intersects_location(O, D, multiple_hits=True)
    loc = np.asarray(loc, dtype=np.float64).reshape(-1, 3)
    tri = np.asarray(tri, dtype=np.int64).reshape(-1)
    if tri.size == 0:
        return np.zeros((0, 3)), np.zeros(0, dtype=np.int64)

    # a face touching line_point is reported by both rays
    tri, first = np.unique(tri, return_index=True)
    loc = loc[first]
    t = (loc - lp[None, :]) @ lv / nn
    order = np.argsort(t, kind="stable")
    return loc[order], tri[order]
