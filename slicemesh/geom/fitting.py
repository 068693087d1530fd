"""
Orthogonal-regression (total least squares) fits by PCA.

Points are centred on their mean and decomposed with the SVD
    X - mean(X) = U S V^T
The first right singular vector is the best-fit line direction, the last one
is the best-fit plane normal. Both fits minimise perpendicular distances, so
they are invariant under rigid motions of the input.
"""
from __future__ import annotations

from dataclasses import dataclass
import numpy as np

from ..errors import InputShapeError, InsufficientDataError


@dataclass
class PlaneFit:
    centroid: np.ndarray      # (3,)
    normal: np.ndarray        # (3,) unit
    rotation: np.ndarray      # (3,3) columns = in-plane axes, normal last; det = +1
    residuals: np.ndarray     # (n,) signed distances to the plane
    sse: float


@dataclass
class LineFit:
    point: np.ndarray         # (3,) centroid, a point on the line
    direction: np.ndarray     # (3,) unit line vector
    rotation: np.ndarray      # (3,3) principal directions as columns
    scores: np.ndarray        # (n,3) PCA scores
    pexp: np.ndarray          # (3,) percent of variance explained per axis
    residuals: np.ndarray     # (n,3) data minus projection onto the line
    sse: float


def _as_points(points: np.ndarray) -> np.ndarray:
    P = np.asarray(points, dtype=np.float64)
    if P.ndim != 2 or P.shape[1] != 3:
        raise InputShapeError(f"Points must be an (n,3) array, got shape {P.shape}.")
    if P.shape[0] < 3:
        raise InsufficientDataError(f"At least three points are required for a fit, got {P.shape[0]}.")
    return P


def _principal_directions(X: np.ndarray):
    # n >= 3 rows, so the thin SVD always returns three directions
    U, S, Vt = np.linalg.svd(X, full_matrices=False)
    return U, S, Vt.T


def plane_fit(points: np.ndarray) -> PlaneFit:
    """
    Best-fit plane through (n,3) points.

    ``points @ rotation`` (after centring) expresses the points in the plane's
    frame: columns 0 and 1 are in-plane, column 2 is the normal offset.
    """
    P = _as_points(points)
    c = P.mean(axis=0)
    X = P - c
    _, _, V = _principal_directions(X)
    R = V.copy()
    if np.linalg.det(R) < 0.0:
        R[:, 2] = -R[:, 2]
    n = R[:, 2] / (np.linalg.norm(R[:, 2]) + 1e-300)
    d = X @ n
    return PlaneFit(centroid=c, normal=n, rotation=R, residuals=d, sse=float(d @ d))


def line_fit(points: np.ndarray) -> LineFit:
    """
    Best-fit line through (n,3) points by orthogonal regression.

    Raises InsufficientDataError for fewer than three points.
    """
    P = _as_points(points)
    c = P.mean(axis=0)
    X = P - c
    U, S, V = _principal_directions(X)
    direction = V[:, 0] / (np.linalg.norm(V[:, 0]) + 1e-300)

    scores = X @ V
    var = S ** 2
    total = float(var.sum())
    if total > 0.0:
        pexp = 100.0 * var / total
    else:
        pexp = np.zeros_like(var)

    res = X - np.outer(scores[:, 0], direction)
    sse = float(np.sum(res * res))
    return LineFit(point=c, direction=direction, rotation=V, scores=scores, pexp=pexp, residuals=res, sse=sse)
