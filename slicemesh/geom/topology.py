"""
Adjacency queries and per-face geometry on (m,3) triangle connectivity.

Normals follow the right-hand rule on the stored vertex order, so they point
outward only once the winding has been made consistent.
"""
from __future__ import annotations

from typing import Tuple
import numpy as np

from ..errors import InputError, InputShapeError


def _as_faces(faces: np.ndarray) -> np.ndarray:
    F = np.asarray(faces)
    if F.ndim != 2 or F.shape[1] != 3:
        raise InputShapeError(f"Triangle connectivity must be an (m,3) array, got shape {F.shape}.")
    return F.astype(np.int64, copy=False)


def nodes_to_triangles(nodes: np.ndarray, faces: np.ndarray, ncn: int = 0) -> np.ndarray:
    """
    Indices of the triangles that contain more than ``ncn`` of ``nodes``.

    ncn = 0: any listed node; 1: an edge's worth; 2: all three corners.
    """
    if int(ncn) not in (0, 1, 2):
        raise InputError(f"ncn must be 0, 1 or 2, got {ncn}.")
    F = _as_faces(faces)
    ids = np.unique(np.asarray(nodes, dtype=np.int64).reshape(-1))
    if F.shape[0] == 0 or ids.size == 0:
        return np.zeros((0,), dtype=np.int64)
    hits = np.isin(F, ids).sum(axis=1)
    return np.nonzero(hits > int(ncn))[0]


def triangle_normals(vertices: np.ndarray, faces: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Per-face unit normals (right-hand rule on the vertex order), areas and centers.
    Zero-area faces get a zero normal.
    """
    V = np.asarray(vertices, dtype=np.float64)
    F = _as_faces(faces)
    if V.ndim != 2 or V.shape[1] != 3:
        raise InputShapeError(f"Vertices must be an (n,3) array, got shape {V.shape}.")
    if F.size and (F.min() < 0 or F.max() >= V.shape[0]):
        raise InputShapeError("Triangle connectivity references a vertex that does not exist.")

    A, B, C = V[F[:, 0]], V[F[:, 1]], V[F[:, 2]]
    cr = np.cross(B - A, C - A)
    norm = np.linalg.norm(cr, axis=1)
    nrm = np.zeros_like(cr)
    ok = norm > 0.0
    nrm[ok] = cr[ok] / norm[ok, None]
    return nrm, 0.5 * norm, (A + B + C) / 3.0
