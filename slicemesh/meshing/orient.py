from __future__ import annotations

from typing import Optional, Tuple
import numpy as np

from ..errors import InputError
from ..geom.topology import triangle_normals


def orient_batch(
    vertices: np.ndarray,
    faces: np.ndarray,
    center: Optional[np.ndarray] = None,
    direction: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, bool]:
    """
    Majority-vote winding correction for one batch of triangles.

    Each triangle votes with the sign of (centroid - center)·normal, or of
    direction·normal when an outward ``direction`` is given instead. When more
    than half of the batch votes negative, the whole batch is flipped by
    swapping its last two columns; single triangles are never flipped alone.

    Returns (faces, flipped). ``faces`` is a new array.
    """
    if (center is None) == (direction is None):
        raise InputError("Give exactly one of center or direction.")
    F = np.asarray(faces, dtype=np.int64).copy()
    if F.shape[0] == 0:
        return F, False

    nrm, _, ctr = triangle_normals(vertices, F)
    if direction is not None:
        ref = np.asarray(direction, dtype=np.float64).reshape(1, 3)
        s = nrm @ ref.reshape(3)
    else:
        ref = np.asarray(center, dtype=np.float64).reshape(1, 3)
        s = np.einsum("ij,ij->i", ctr - ref, nrm)

    flipped = int(np.count_nonzero(s < 0.0)) > F.shape[0] / 2.0
    if flipped:
        F = F[:, [0, 2, 1]]
    return F, flipped
