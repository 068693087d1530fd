"""
Mass properties of a closed triangulated surface (uniform unit density).

Divergence theorem over each triangle (Eberly, "Polyhedral Mass Properties").
For a triangle (p0,p1,p2) with d = (p1-p0) x (p2-p0) we accumulate
    1, x, y, z, x^2, y^2, z^2, xy, yz, zx
integrals from the subexpressions
    f1 = w0 + w1 + w2
    f2 = w0^2 + w0 w1 + w1^2 + w2 f1
    f3 = w0^3 + w0^2 w1 + w0 w1^2 + w1^3 + w2 f2
    g_i = f2 + w_i (f1 + w_i)
and scale them by 1/6, 1/24, 1/60 and 1/120.

The result is only meaningful for an outward-oriented closed surface; an
inward surface gives a negative volume, which is returned as is.
"""
from __future__ import annotations

import numpy as np

from ..errors import InputShapeError
from ..models import MassProperties

_RC = np.array([1 / 6, 1 / 24, 1 / 24, 1 / 24, 1 / 60, 1 / 60, 1 / 60, 1 / 120, 1 / 120, 1 / 120])


def _subexpressions(w0: np.ndarray, w1: np.ndarray, w2: np.ndarray):
    t0 = w0 + w1
    t1 = w0 * w0
    t2 = t1 + w1 * t0
    f1 = t0 + w2
    f2 = t2 + w2 * f1
    f3 = w0 * t1 + w1 * t2 + w2 * f2
    g0 = f2 + w0 * (f1 + w0)
    g1 = f2 + w1 * (f1 + w1)
    g2 = f2 + w2 * (f1 + w2)
    return f1, f2, f3, g0, g1, g2


def mass_properties(vertices: np.ndarray, faces: np.ndarray) -> MassProperties:
    V = np.asarray(vertices, dtype=np.float64)
    F = np.asarray(faces)
    if V.ndim != 2 or V.shape[1] != 3:
        raise InputShapeError(f"Vertices must be an (n,3) array, got shape {V.shape}.")
    if F.ndim != 2 or F.shape[1] != 3:
        raise InputShapeError(f"Triangle connectivity must be an (m,3) array, got shape {F.shape}.")
    F = F.astype(np.int64, copy=False)

    p0, p1, p2 = V[F[:, 0]], V[F[:, 1]], V[F[:, 2]]
    d = np.cross(p1 - p0, p2 - p0)

    fx = _subexpressions(p0[:, 0], p1[:, 0], p2[:, 0])
    fy = _subexpressions(p0[:, 1], p1[:, 1], p2[:, 1])
    fz = _subexpressions(p0[:, 2], p1[:, 2], p2[:, 2])
    f1x, f2x, f3x, g0x, g1x, g2x = fx
    _, f2y, f3y, g0y, g1y, g2y = fy
    _, f2z, f3z, g0z, g1z, g2z = fz

    integ = np.array([
        np.sum(d[:, 0] * f1x),
        np.sum(d[:, 0] * f2x),
        np.sum(d[:, 1] * f2y),
        np.sum(d[:, 2] * f2z),
        np.sum(d[:, 0] * f3x),
        np.sum(d[:, 1] * f3y),
        np.sum(d[:, 2] * f3z),
        np.sum(d[:, 0] * (p0[:, 1] * g0x + p1[:, 1] * g1x + p2[:, 1] * g2x)),
        np.sum(d[:, 1] * (p0[:, 2] * g0y + p1[:, 2] * g1y + p2[:, 2] * g2y)),
        np.sum(d[:, 2] * (p0[:, 0] * g0z + p1[:, 0] * g1z + p2[:, 0] * g2z)),
    ]) * _RC

    vol = float(integ[0])
    if vol != 0.0:
        cg = integ[1:4] / vol
    else:
        cg = np.zeros(3)

    xx, yy, zz = integ[4], integ[5], integ[6]
    xy, yz, zx = integ[7], integ[8], integ[9]
    inertia = np.array([
        [yy + zz, -xy, -zx],
        [-xy, xx + zz, -yz],
        [-zx, -yz, xx + yy],
    ])
    # parallel-axis shift to the centroid
    inertia_cg = inertia - vol * (float(cg @ cg) * np.eye(3) - np.outer(cg, cg))

    return MassProperties(volume=vol, centroid=cg, inertia=inertia, inertia_cg=inertia_cg)
