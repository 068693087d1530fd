"""
One-dimensional parameterization of slice boundaries.

Angular:   polar angle about a common center in the slice plane, unwrapped
           continuously along the traversal and referenced to a chosen angle.
Arclength: cumulative chord length from the slice's first point, after making
           adjacent slices run in the same direction.

Points are never reordered; every ParameterizedSlice carries an ``order`` into
its points instead.
"""
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple
import warnings
import numpy as np

from ..errors import GeometryDegenerateError, InputShapeError, OrderingAmbiguity
from ..models import ParameterizedSlice, SliceStack

TWO_PI = 2.0 * np.pi


def polar_angles(xy: np.ndarray, cut: float = np.pi / 2.0) -> np.ndarray:
    """Polar angles of (n,2) points; angles above ``cut`` are shifted down by 2*pi."""
    P = np.asarray(xy, dtype=np.float64)
    if P.ndim != 2 or P.shape[1] < 2:
        raise InputShapeError(f"Expected (n,2) in-plane coordinates, got shape {P.shape}.")
    th = np.arctan2(P[:, 1], P[:, 0])
    th[th > cut] -= TWO_PI
    return th


def traversal_direction(angles: np.ndarray) -> int:
    """
    +1 for counterclockwise, -1 for clockwise traversal.
    Steps of magnitude >= pi are branch-cut jumps and are ignored.
    """
    d = np.diff(np.asarray(angles, dtype=np.float64))
    net = float(d[np.abs(d) < np.pi].sum())
    return -1 if net < 0.0 else 1


def _wrap(a: np.ndarray) -> np.ndarray:
    return (a + np.pi) % TWO_PI - np.pi


def parameterize_angular(
    local_xy: np.ndarray,
    ref_angle: Optional[float] = None,
    closed: bool = True,
    direction: Optional[int] = None,
    points: Optional[np.ndarray] = None,
    index: int = 0,
    cut: float = np.pi / 2.0,
) -> ParameterizedSlice:
    """
    Angular parameter of a slice already centred and flattened into its plane.

    With ``ref_angle`` None the traversal starts at the first point and the
    parameter starts at zero. Otherwise it starts at the point angularly
    closest to ``ref_angle`` and the parameter is measured from it. A
    ``direction`` that differs from the slice's own sense walks the points
    backwards so both slices of a pair sweep the same way.
    """
    xy = np.asarray(local_xy, dtype=np.float64)
    n = xy.shape[0]
    if n < 3:
        raise InputShapeError(f"Slice {index} needs at least three points, got {n}.")
    th = polar_angles(xy, cut=cut)
    own = traversal_direction(th)
    dirn = own if direction is None else (1 if direction >= 0 else -1)

    if ref_angle is None:
        ref = float(th[0])
        start = 0
    else:
        ref = float(ref_angle)
        start = int(np.argmin(np.abs(_wrap(th - ref))))

    steps = np.arange(n, dtype=np.int64)
    if dirn == own:
        order = (start + steps) % n
    else:
        order = (start - steps) % n

    rel = th[order] - ref
    param = np.unwrap(rel)
    param += _wrap(param[:1])[0] - param[0]
    if closed:
        param = np.r_[param, param[0] + dirn * TWO_PI]

    # Monotone sequence for the parameter-space triangulation
    param = np.sort(param) if dirn > 0 else np.sort(param)[::-1]

    return ParameterizedSlice(
        points=xy if points is None else np.asarray(points, dtype=np.float64),
        param=param,
        direction=dirn,
        closed=bool(closed),
        order=order,
        index=index,
    )


def chord_arclength(points: np.ndarray, order: Optional[np.ndarray] = None, closed: bool = True) -> np.ndarray:
    """Cumulative chord length along ``order``; closed slices get the closing chord appended."""
    P = np.asarray(points, dtype=np.float64)
    if order is not None:
        P = P[np.asarray(order, dtype=np.int64)]
    if closed:
        P = np.vstack([P, P[:1]])
    dl = np.linalg.norm(np.diff(P, axis=0), axis=1)
    return np.r_[0.0, np.cumsum(dl)]


def _end_to_end(P: np.ndarray, k: int) -> np.ndarray:
    v = P[-1] - P[0]
    n = float(np.linalg.norm(v))
    if n < 1e-12:
        raise GeometryDegenerateError(f"Slice {k} has coincident first and last points.")
    return v / n


def check_directions(slices: Sequence[np.ndarray], tol: float = 0.1) -> Tuple[List[np.ndarray], np.ndarray]:
    """
    Make adjacent slices traverse in the same direction.

    The end-to-end chord of each slice is compared with the previous slice's
    (after any reversal of that one). Below ``tol`` the slice order is
    reversed, unless reversing lowers the dot product further, in which case
    an OrderingAmbiguity warning is issued and the order is kept.

    Returns (orders, reversed_flags).
    """
    orders: List[np.ndarray] = []
    rev = np.zeros(len(slices), dtype=bool)
    prev = None
    for k, s in enumerate(slices):
        P = np.asarray(s, dtype=np.float64)
        order = np.arange(P.shape[0], dtype=np.int64)
        vec = _end_to_end(P, k)
        if prev is not None:
            dotp = float(prev @ vec)
            if dotp < tol:
                rvec = -vec
                if float(prev @ rvec) < dotp:
                    warnings.warn(
                        f"Point ordering of slices {k - 1} and {k} may not run in the same direction.",
                        OrderingAmbiguity,
                        stacklevel=2,
                    )
                else:
                    rev[k] = True
                    order = order[::-1].copy()
                    vec = rvec
        orders.append(order)
        prev = vec
    return orders, rev


def parameterize_arclength(
    stack: SliceStack | Sequence[np.ndarray],
    tol: float = 0.1,
    closed: bool = True,
) -> List[ParameterizedSlice]:
    """Arclength parameterization of every slice of a stack with consistent directions."""
    slices = stack.as_list() if isinstance(stack, SliceStack) else [np.asarray(s, dtype=np.float64) for s in stack]
    orders, rev = check_directions(slices, tol=tol)
    out: List[ParameterizedSlice] = []
    for k, (P, order) in enumerate(zip(slices, orders)):
        out.append(
            ParameterizedSlice(
                points=P,
                param=chord_arclength(P, order, closed=closed),
                direction=-1 if rev[k] else 1,
                closed=bool(closed),
                order=order,
                index=k,
            )
        )
    return out
