"""
Slice-pair stitching into a closed triangle surface.

Each adjacent pair of slices is laid out in a 2-D parameter space
    (separation along the slice normal, boundary parameter)
where the first slice sits on the line x = 0 and the second on x = sep.
A Delaunay triangulation of that point set connects the two boundaries with
a band of triangles; the triangle indices are then mapped back onto global
vertex ids through the stack's offset table. Closed slices carry one extra
parameter entry that maps back onto the slice's first vertex.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import warnings
import numpy as np
from scipy.spatial import Delaunay, QhullError

from ..errors import GeometryDegenerateError, InputError, InsufficientDataError, MeshRepairFailure
from ..geom.fitting import plane_fit
from ..geom.intersect import plane_line
from ..io import repair_mesh
from ..models import Mesh3D, MeshParams, ParameterizedSlice, SliceStack, StitchResult
from .caps import delaunay_cap, fan_cap, strip_cap
from .orient import orient_batch
from .parameterize import parameterize_angular, parameterize_arclength, polar_angles

Sink = Callable[[str, Dict[str, Any]], None]


@dataclass
class PairFrame:
    """Shared in-plane frame of two adjacent slices for angular stitching."""
    center: np.ndarray        # (3,) common center in source coordinates
    origins: np.ndarray       # (2,3) common center projected into each slice plane
    normal: np.ndarray        # (3,) normal of the first slice
    rotation: np.ndarray      # (3,3) plane frame of the first slice
    local1: np.ndarray        # (n1,2) in-plane coordinates about the common center
    local2: np.ndarray        # (n2,2)
    separation: float


@dataclass
class PairStitch:
    faces: np.ndarray         # (m,3) global vertex ids
    separation: float
    center: np.ndarray        # (3,) orientation reference of the band
    xt: np.ndarray            # parameter-space coordinates (for plotting)
    yt: np.ndarray
    simplices: np.ndarray     # (m,3) parameter-space triangles


class TriangleArena:
    """
    Preallocated (capacity, 3) face buffer with an explicit length counter.
    Grows by doubling when an estimate turns out too small.
    """

    def __init__(self, capacity: int):
        self._buf = np.empty((max(int(capacity), 1), 3), dtype=np.int64)
        self._n = 0

    def __len__(self) -> int:
        return self._n

    @property
    def capacity(self) -> int:
        return int(self._buf.shape[0])

    def append(self, faces: np.ndarray) -> None:
        F = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
        need = self._n + F.shape[0]
        if need > self.capacity:
            cap = self.capacity
            while cap < need:
                cap *= 2
            buf = np.empty((cap, 3), dtype=np.int64)
            buf[:self._n] = self._buf[:self._n]
            self._buf = buf
        self._buf[self._n:need] = F
        self._n = need

    def trim(self) -> np.ndarray:
        return self._buf[:self._n].copy()


# ---------- Pair geometry ----------

def _triangulation(xy: np.ndarray, what: str) -> Delaunay:
    try:
        return Delaunay(xy)
    except QhullError as exc:
        raise GeometryDegenerateError(f"Cannot triangulate {what}: {exc}") from exc


def _contains(tri: Delaunay, point: np.ndarray) -> bool:
    return bool(tri.find_simplex(np.asarray(point, dtype=np.float64).reshape(1, 2))[0] >= 0)


def common_center(xyz1: np.ndarray, xyz2: np.ndarray, index: int = 0) -> PairFrame:
    """
    Common reference point of two adjacent slices.

    The midpoint of the slice centers is projected along the first slice's
    normal into both planes. If it falls outside either slice it is moved to
    that slice's in-plane mean; if it is still outside either slice the pair
    cannot be stitched angularly.
    """
    P1 = np.asarray(xyz1, dtype=np.float64)
    P2 = np.asarray(xyz2, dtype=np.float64)
    pf = plane_fit(P1)
    nv = pf.normal
    R = pf.rotation
    c1 = pf.centroid
    c2 = P2.mean(axis=0)
    ctr = 0.5 * (c1 + c2)

    o1, _, _ = plane_line(c1, nv, ctr, nv)
    o2, _, _ = plane_line(c2, nv, ctr, nv)

    xy1 = ((P1 - o1) @ R)[:, :2]
    xy2 = ((P2 - o2) @ R)[:, :2]
    tri1 = _triangulation(xy1, f"slice {index}")
    tri2 = _triangulation(xy2, f"slice {index + 1}")

    shift = np.zeros(2)
    if not _contains(tri1, shift):
        shift = xy1.mean(axis=0)
    if not _contains(tri2, shift):
        shift = xy2.mean(axis=0)
    if not (_contains(tri1, shift) and _contains(tri2, shift)):
        raise GeometryDegenerateError(
            f"Not able to find a common point inside slices {index} and {index + 1}."
        )

    center = 0.5 * (o1 + o2) + np.r_[shift, 0.0] @ R.T
    return PairFrame(
        center=center,
        origins=np.vstack([o1, o2]),
        normal=nv,
        rotation=R,
        local1=xy1 - shift,
        local2=xy2 - shift,
        separation=float((o2 - o1) @ nv),
    )


def _stitch_band(
    ps1: ParameterizedSlice,
    ps2: ParameterizedSlice,
    separation: float,
    ids1: np.ndarray,
    ids2: np.ndarray,
    center: np.ndarray,
) -> PairStitch:
    if abs(separation) < 1e-9:
        raise GeometryDegenerateError(f"Slices {ps1.index} and {ps2.index} are coplanar.")
    l1 = ps1.local_ids()
    l2 = ps2.local_ids()
    xt = np.r_[np.zeros(l1.size), np.full(l2.size, float(separation))]
    yt = np.r_[ps1.param, ps2.param]
    simplices = _triangulation(np.column_stack([xt, yt]), f"slices {ps1.index} and {ps2.index}").simplices

    pts = np.vstack([ps1.points[l1], ps2.points[l2]])
    tri, _ = orient_batch(pts, simplices, center=center)
    nid = np.r_[np.asarray(ids1, dtype=np.int64)[l1], np.asarray(ids2, dtype=np.int64)[l2]]
    return PairStitch(faces=nid[tri], separation=float(separation), center=center, xt=xt, yt=yt, simplices=tri)


def stitch_pair_angular(
    xyz1: np.ndarray,
    xyz2: np.ndarray,
    ids1: np.ndarray,
    ids2: np.ndarray,
    closed: bool = True,
    index: int = 0,
) -> PairStitch:
    """Stitch two slices using polar angle about their common center."""
    P1 = np.asarray(xyz1, dtype=np.float64)
    P2 = np.asarray(xyz2, dtype=np.float64)
    pair = common_center(P1, P2, index=index)
    ps1 = parameterize_angular(pair.local1, None, closed=closed, points=P1, index=index)
    ref = float(polar_angles(pair.local1[:1])[0])
    ps2 = parameterize_angular(
        pair.local2, ref, closed=closed, direction=ps1.direction, points=P2, index=index + 1
    )
    return _stitch_band(ps1, ps2, pair.separation, ids1, ids2, pair.center)


def stitch_pair_arclength(
    ps1: ParameterizedSlice,
    ps2: ParameterizedSlice,
    ids1: np.ndarray,
    ids2: np.ndarray,
) -> PairStitch:
    """
    Stitch two slices using cumulative chord length.

    The first slice's parameter is shifted by the projection of the offset
    between the two starting points onto the first slice's leading direction,
    so that starting points that do not line up still pair sensibly.
    """
    pf1 = plane_fit(ps1.points)
    pf2 = plane_fit(ps2.points)
    Q1 = ps1.points[ps1.order]
    Q2 = ps2.points[ps2.order]
    ds = Q2[0] - Q1[0]
    if ps1.closed:
        lead = Q1[1] - Q1[0]
    else:
        lead = Q1[-1] - Q1[0]
    n = float(np.linalg.norm(lead))
    if n < 1e-12:
        raise GeometryDegenerateError(f"Slice {ps1.index} has coincident leading points.")
    offset = float(ds @ (lead / n))

    sep = float((pf2.centroid - pf1.centroid) @ pf1.normal)
    center = 0.5 * (pf1.centroid + pf2.centroid)
    shifted = replace(ps1, param=ps1.param - offset)
    return _stitch_band(shifted, ps2, sep, ids1, ids2, center)


# ---------- Whole stack ----------

def _repair(vertices: np.ndarray, faces: np.ndarray, what: str) -> Tuple[np.ndarray, bool]:
    try:
        repaired = repair_mesh(Mesh3D(vertices=vertices, faces=faces))
    except Exception as exc:
        warnings.warn(f"Unable to improve {what}: {exc}", MeshRepairFailure, stacklevel=3)
        return faces, False
    return np.asarray(repaired.faces, dtype=np.int64), True


def _finish(vertices: np.ndarray, faces: np.ndarray, improve: bool) -> Tuple[np.ndarray, bool]:
    repair_failed = False
    if improve:
        faces, ok = _repair(vertices, faces, "mesh")
        repair_failed = not ok
    faces, flipped = orient_batch(vertices, faces, center=vertices.mean(axis=0))
    if flipped:
        print("[mesh] final orientation pass flipped the winding")
    return faces, repair_failed


def _as_stack(slices: SliceStack | Sequence[np.ndarray]) -> SliceStack:
    stack = slices if isinstance(slices, SliceStack) else SliceStack.from_slices(slices)
    if len(stack) < 2:
        raise InsufficientDataError("At least two slices are needed to build a mesh.")
    return stack


def _collect(caught: List[warnings.WarningMessage], result: StitchResult) -> StitchResult:
    for w in caught:
        result.warnings.append(str(w.message))
        warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)
    return result


def _build(stack: SliceStack, params: MeshParams, sink: Optional[Sink]) -> StitchResult:
    n_slices = len(stack)
    counts = stack.counts
    means = np.array([stack[k].mean(axis=0) for k in range(n_slices)])

    apex_ids: Dict[str, int] = {}
    extra = []
    if params.cap_style == "fan":
        if params.cap_top:
            apex_ids["top"] = stack.vertices.shape[0] + len(extra)
            extra.append(means[0])
        if params.cap_bottom:
            apex_ids["bottom"] = stack.vertices.shape[0] + len(extra)
            extra.append(means[-1])
    vertices = np.vstack([stack.vertices] + [e[None, :] for e in extra])

    capacity = int(np.sum(counts[:-1] + counts[1:] + 2) + 2 * counts.max())
    arena = TriangleArena(capacity)
    separations = np.zeros(n_slices - 1)
    repair_failed = False

    if params.method == "arclength":
        pslices = parameterize_arclength(stack, tol=params.tol, closed=params.closed)

    for k in range(1, n_slices):
        ids1, ids2 = stack.ids(k - 1), stack.ids(k)
        if params.method == "angular":
            band = stitch_pair_angular(stack[k - 1], stack[k], ids1, ids2, closed=params.closed, index=k - 1)
        else:
            band = stitch_pair_arclength(pslices[k - 1], pslices[k], ids1, ids2)

        faces = band.faces
        if params.improve:
            faces, ok = _repair(vertices, faces, f"band {k - 1}-{k}")
            repair_failed = repair_failed or not ok
            faces, _ = orient_batch(vertices, faces, center=band.center)
        arena.append(faces)
        separations[k - 1] = band.separation

        if params.plot and sink is not None:
            sink("stitch_pair", {
                "index": k - 1,
                "xt": band.xt,
                "yt": band.yt,
                "simplices": band.simplices,
                "separation": band.separation,
                "method": params.method,
            })

    if params.cap_top:
        outward = means[0] - means[1]
        if params.cap_style == "fan":
            arena.append(fan_cap(stack.ids(0), apex_ids["top"], vertices, outward))
        else:
            arena.append(delaunay_cap(stack[0], stack.ids(0), outward))
    if params.cap_bottom:
        outward = means[-1] - means[-2]
        if params.cap_style == "fan":
            arena.append(fan_cap(stack.ids(n_slices - 1), apex_ids["bottom"], vertices, outward))
        else:
            arena.append(delaunay_cap(stack[-1], stack.ids(n_slices - 1), outward))

    faces, failed = _finish(vertices, arena.trim(), params.improve)
    print(f"[mesh] {n_slices} slices, {vertices.shape[0]} vertices, {faces.shape[0]} triangles ({params.method})")
    return StitchResult(
        mesh=Mesh3D(vertices=vertices, faces=faces),
        separations=separations,
        apex_ids=apex_ids,
        repair_failed=repair_failed or failed,
    )


def build_mesh(
    slices: SliceStack | Sequence[np.ndarray],
    params: MeshParams | Dict[str, Any] | None = None,
    sink: Optional[Sink] = None,
) -> StitchResult:
    """
    Stitch a stack of slices into one triangle surface.

    Params (MeshParams or dict):
      method    : "angular" | "arclength" (default "angular")
      tol       : direction-check tolerance for arclength (default 0.1)
      improve   : run the repair step per band and on the result (default True)
      closed    : slices are closed loops (default True)
      ends      : "none" | "top" | "bottom" | "both" (default "both", closed only)
      cap_style : "fan" | "delaunay" (default "fan")
      plot      : send parameter-space triangulations to ``sink``

    Recoverable problems are issued as warnings, recorded on the result and
    re-issued to the caller.
    """
    if not isinstance(params, MeshParams):
        params = MeshParams.from_dict(params)
    stack = _as_stack(slices)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        result = _build(stack, params, sink)
    return _collect(caught, result)


def build_two_part_mesh(
    slices: SliceStack | Sequence[np.ndarray],
    split: int,
    params: MeshParams | Dict[str, Any] | None = None,
    sink: Optional[Sink] = None,
) -> StitchResult:
    """
    Mesh a stack in two parts that share slice ``split``.

    Slices [0, split] are stitched angularly with fan caps and the cap on the
    split slice is stripped again. Slices [split, end] are stitched by
    arclength with an in-plane Delaunay cap on the last slice. Both parts are
    joined on the shared slice and repaired as one mesh.
    """
    if not isinstance(params, MeshParams):
        params = MeshParams.from_dict(params)
    stack = _as_stack(slices)
    n_slices = len(stack)
    split = int(split)
    if not 0 < split < n_slices - 1:
        raise InputError(f"split must lie strictly inside the stack (1..{n_slices - 2}), got {split}.")

    upper_params = replace(params, method="angular", cap_style="fan", ends="both", closed=True)
    lower_params = replace(params, method="arclength", cap_style="delaunay", ends="bottom", closed=True)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        upper = build_mesh(stack.subset(0, split + 1), upper_params, sink)
        lower = build_mesh(stack.subset(split, n_slices), lower_params, sink)

        n_total = stack.vertices.shape[0]
        top, bottom = upper.apex_ids["top"], upper.apex_ids["bottom"]
        faces_u = strip_cap(upper.mesh.faces, apex_id=bottom, ring_ids=stack.ids(split))
        faces_u = np.where(faces_u == top, n_total, faces_u)
        faces_l = np.asarray(lower.mesh.faces, dtype=np.int64) + int(stack.offsets[split])

        vertices = np.vstack([stack.vertices, upper.mesh.vertices[top][None, :]])
        faces, failed = _finish(vertices, np.vstack([faces_u, faces_l]), params.improve)
        print(f"[mesh] two-part mesh joined on slice {split}: {faces.shape[0]} triangles")
        result = StitchResult(
            mesh=Mesh3D(vertices=vertices, faces=faces),
            separations=np.r_[upper.separations, lower.separations],
            apex_ids={"top": n_total},
            repair_failed=upper.repair_failed or lower.repair_failed or failed,
        )
    return _collect(caught, result)


__all__ = [
    "PairFrame",
    "PairStitch",
    "TriangleArena",
    "common_center",
    "stitch_pair_angular",
    "stitch_pair_arclength",
    "build_mesh",
    "build_two_part_mesh",
]
