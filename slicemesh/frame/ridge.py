"""
Ridge line of the secondary (axial) digitization.

Per slice a fixed number of extremal points along the first frame axis are
taken as ridge candidates. A line is fitted through all candidates by
orthogonal regression; slices whose candidates sit, on average, more than
sqrt(threshold) from the line are dropped and the line is refitted until no
slice exceeds the threshold. Each pass removes at least one slice, so the
loop ends after at most as many passes as there are slices.
"""
from __future__ import annotations

from dataclasses import replace
from typing import List, Sequence, Tuple
import numpy as np

from ..errors import ConvergenceFailure, InsufficientDataError
from ..geom.fitting import LineFit, line_fit
from ..models import RidgePointSet, SliceStack


def extract_ridge_points(
    slices: SliceStack | Sequence[np.ndarray],
    right: bool = True,
    npts: int = 3,
) -> RidgePointSet:
    """
    The ``npts`` points of each slice with the largest (right) or smallest
    (left) first coordinate. Slices with ``npts`` points or fewer are skipped.
    """
    data = slices.as_list() if isinstance(slices, SliceStack) else list(slices)
    npts = int(npts)
    groups: List[np.ndarray] = []
    ids: List[int] = []
    for k, s in enumerate(data):
        P = np.asarray(s, dtype=np.float64)
        if P.shape[0] <= npts:
            continue
        x = -P[:, 0] if right else P[:, 0]
        idx = np.argsort(x, kind="stable")[:npts]
        groups.append(P[idx])
        ids.append(k)
    if not groups:
        raise InsufficientDataError(f"No slice has more than {npts} points; no ridge candidates.")
    return RidgePointSet(points=np.vstack(groups), slice_ids=np.asarray(ids, dtype=np.int64), group_size=npts)


def _slice_residuals(fit: LineFit, ridge: RidgePointSet) -> np.ndarray:
    d2 = np.sum(fit.residuals * fit.residuals, axis=1)
    return d2.reshape(ridge.n_groups, ridge.group_size).mean(axis=1)


def fit_ridge(ridge: RidgePointSet, threshold: float = 25.0) -> Tuple[LineFit, RidgePointSet, np.ndarray]:
    """
    Robust line fit with slice-wise outlier rejection.

    Returns (fit, kept ridge points with mean squared residuals, removed slice ids).
    Raises ConvergenceFailure when a pass would reject every remaining slice.
    """
    removed: List[int] = []
    current = ridge
    for _ in range(ridge.n_groups + 1):
        fit = line_fit(current.points)
        msr = _slice_residuals(fit, current)
        bad = msr > float(threshold)
        if not bad.any():
            return fit, replace(current, mean_sq_residual=msr), np.asarray(removed, dtype=np.int64)
        if bad.all():
            raise ConvergenceFailure(
                f"Ridge fit would reject all {current.n_groups} remaining slices (threshold {threshold})."
            )
        removed.extend(int(k) for k in current.slice_ids[bad])
        print(f"[ridge] rejected slices {current.slice_ids[bad].tolist()} (max msr {msr.max():.2f})")
        current = current.without(bad)
    raise ConvergenceFailure("Ridge fit did not settle.")
