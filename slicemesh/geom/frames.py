"""
Rotations used by the anatomical coordinate frame.

Convention: points are row vectors and a rotation ``Q`` with the new axes as
columns maps them by ``local = (x - origin) @ Q``. ``minimal_rotation`` returns
the column-vector form ``R @ source = target``; its transpose is the matching
row-vector map.
"""
from __future__ import annotations

import numpy as np
from scipy.spatial.transform import Rotation

from ..errors import GeometryDegenerateError, InputShapeError


def _unit(v: np.ndarray, name: str, eps: float = 1e-12) -> np.ndarray:
    a = np.asarray(v, dtype=np.float64).reshape(-1)
    if a.size != 3:
        raise InputShapeError(f"{name} must have three components, got {a.size}.")
    n = float(np.linalg.norm(a))
    if n < eps:
        raise GeometryDegenerateError(f"{name} has zero length.")
    return a / n


def minimal_rotation(source: np.ndarray, target: np.ndarray, tol: float = 1e-12) -> np.ndarray:
    """
    Smallest rotation taking ``source`` onto ``target`` (both normalised).

    Aligned vectors give the identity; anti-parallel ones a half turn about an
    axis perpendicular to ``source``.
    """
    a = _unit(source, "source")
    b = _unit(target, "target")
    c = float(np.clip(a @ b, -1.0, 1.0))
    axis = np.cross(a, b)
    s = float(np.linalg.norm(axis))

    if s <= tol and c > 0.0:
        return np.eye(3)
    if s <= tol:
        k = int(np.argmin(np.abs(a)))
        e = np.zeros(3)
        e[k] = 1.0
        perp = np.cross(a, e)
        perp /= np.linalg.norm(perp)
        return Rotation.from_rotvec(np.pi * perp).as_matrix()

    angle = float(np.arctan2(s, c))
    return Rotation.from_rotvec(angle * axis / s).as_matrix()


def ridge_frame(direction: np.ndarray, reference: np.ndarray = (1.0, 0.0, 0.0)) -> np.ndarray:
    """
    Right-handed frame whose third axis follows the ridge line.

    The direction is sign-normalised so its third component is non-negative.
    Columns are (x, y, z):
        y = direction x reference, z = reference x y, x = y x z
    so z lies in the plane of the reference and the ridge direction.
    """
    d = _unit(direction, "direction")
    if d[2] < 0.0:
        d = -d
    x = _unit(reference, "reference")

    y = np.cross(d, x)
    ny = float(np.linalg.norm(y))
    if ny < 1e-12:
        raise GeometryDegenerateError("Ridge direction is parallel to the reference axis.")
    y /= ny
    z = np.cross(x, y)
    z /= np.linalg.norm(z)
    x = np.cross(y, z)
    x /= np.linalg.norm(x)
    return np.column_stack([x, y, z])


def transform_points(points: np.ndarray, origin: np.ndarray, rotation: np.ndarray) -> np.ndarray:
    P = np.asarray(points, dtype=np.float64)
    o = np.asarray(origin, dtype=np.float64).reshape(1, 3)
    Q = np.asarray(rotation, dtype=np.float64).reshape(3, 3)
    return (P - o) @ Q
