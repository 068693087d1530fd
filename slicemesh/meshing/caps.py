"""
End caps for the first and last slice of a closed tubular stack.

Two styles:
  - fan: an apex at the slice mean joined to every boundary edge
  - delaunay: the slice itself is triangulated in its own plane; the
    triangulation covers the convex hull, so triangles outside a non-convex
    boundary are discarded with a side test against the boundary edges
"""
from __future__ import annotations

from typing import Optional
import numpy as np
from scipy.spatial import Delaunay, QhullError

from ..errors import GeometryDegenerateError, InputShapeError
from ..geom.fitting import plane_fit
from ..geom.topology import nodes_to_triangles
from .orient import orient_batch


def fan_cap(ring_ids: np.ndarray, apex_id: int, vertices: np.ndarray, outward: np.ndarray) -> np.ndarray:
    """Triangles (apex, ring[i], ring[i+1]) around the closed ring, oriented along ``outward``."""
    ring = np.asarray(ring_ids, dtype=np.int64).reshape(-1)
    if ring.size < 3:
        raise InputShapeError("A cap ring needs at least three vertices.")
    nxt = np.roll(ring, -1)
    faces = np.column_stack([np.full(ring.size, int(apex_id), dtype=np.int64), ring, nxt])
    faces, _ = orient_batch(vertices, faces, direction=outward)
    return faces


def _side(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> np.ndarray:
    # z component of (b - a) x (c - a) in the slice plane
    return np.sign((b[..., 0] - a[..., 0]) * (c[..., 1] - a[..., 1]) - (b[..., 1] - a[..., 1]) * (c[..., 0] - a[..., 0]))


def delaunay_cap(points: np.ndarray, ids: np.ndarray, outward: np.ndarray) -> np.ndarray:
    """
    In-plane Delaunay cap of one closed slice.

    ``points`` are the slice's 3-D points in boundary order and ``ids`` their
    global vertex ids. Returns global faces oriented along ``outward``.
    """
    P = np.asarray(points, dtype=np.float64)
    gid = np.asarray(ids, dtype=np.int64).reshape(-1)
    n = P.shape[0]
    if gid.size != n:
        raise InputShapeError("Cap ids must match the number of slice points.")

    pf = plane_fit(P)
    xy = ((P - pf.centroid) @ pf.rotation)[:, :2]
    try:
        tri = Delaunay(xy).simplices.astype(np.int64)
    except QhullError as exc:
        raise GeometryDegenerateError(f"Cannot triangulate end cap: {exc}") from exc
    centers = xy[tri].mean(axis=1)

    # Boundary edges (l, l+1) including the closing edge (n-1, 0)
    t = np.zeros(tri.shape[0])
    for l in range(n):
        a, b = l, (l + 1) % n
        it = nodes_to_triangles([a, b], tri, ncn=1)
        if it.size == 0:
            continue
        t[it] = _side(xy[a], xy[b], centers[it])

    # Triangles touching the boundary only at vertices: use the corner pair
    # closest along the ring as the edge to test against
    for it in np.nonzero(t == 0)[0]:
        corners = tri[it]
        pairs = [(corners[0], corners[1]), (corners[1], corners[2]), (corners[2], corners[0])]
        gaps = [min(abs(int(p) - int(q)), n - abs(int(p) - int(q))) for p, q in pairs]
        p, q = sorted(pairs[int(np.argmin(gaps))])
        if q - p > n // 2:
            p, q = q, p
        t[it] = _side(xy[p], xy[q], centers[it])

    keep = t > 0 if t.sum() > 0 else t < 0
    local, _ = orient_batch(P, tri[keep], direction=outward)
    return gid[local]


def strip_cap(faces: np.ndarray, apex_id: Optional[int] = None, ring_ids: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Remove an end cap: triangles touching the apex, and triangles whose three
    corners all lie on the cap ring.
    """
    F = np.asarray(faces, dtype=np.int64)
    drop = np.zeros(F.shape[0], dtype=bool)
    if apex_id is not None:
        drop[nodes_to_triangles([int(apex_id)], F, ncn=0)] = True
    if ring_ids is not None:
        drop[nodes_to_triangles(ring_ids, F, ncn=2)] = True
    return F[~drop]
