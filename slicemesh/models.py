from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
import numpy as np

from .errors import InputError, InputShapeError


@dataclass
class Mesh3D:
    """
    Triangle mesh in millimeters.
    - vertices: (N,3) float64 array
    - faces:    (M,3) int array indexing into vertices
    """
    vertices: np.ndarray
    faces: np.ndarray
    units: str = "mm"

    @property
    def n_faces(self) -> int:
        return int(np.asarray(self.faces).shape[0])


@dataclass
class SliceStack:
    """
    Ordered stack of digitized contour slices stored as one flat vertex buffer.

    - vertices: (N,3) float64 array, slices concatenated in stack order
    - offsets:  (S+1,) int64 prefix sum of point counts; slice k owns
                vertices[offsets[k]:offsets[k+1]]
    """
    vertices: np.ndarray
    offsets: np.ndarray

    @staticmethod
    def from_slices(slices: Sequence[np.ndarray]) -> "SliceStack":
        if len(slices) == 0:
            raise InputError("No slice data.")
        arrays = []
        for k, s in enumerate(slices):
            P = np.asarray(s, dtype=np.float64)
            if P.ndim != 2 or P.shape[1] != 3:
                raise InputShapeError(f"Slice {k} must be an (n,3) array, got shape {P.shape}.")
            if P.shape[0] == 0:
                raise InputError(f"Slice {k} has no points.")
            arrays.append(P)
        counts = np.array([a.shape[0] for a in arrays], dtype=np.int64)
        offsets = np.r_[0, np.cumsum(counts)].astype(np.int64)
        return SliceStack(vertices=np.vstack(arrays), offsets=offsets)

    def __len__(self) -> int:
        return int(self.offsets.size - 1)

    def __getitem__(self, k: int) -> np.ndarray:
        k = int(k)
        if k < 0:
            k += len(self)
        return self.vertices[self.offsets[k]:self.offsets[k + 1]]

    @property
    def counts(self) -> np.ndarray:
        return np.diff(self.offsets)

    def ids(self, k: int) -> np.ndarray:
        """Global vertex ids of slice k."""
        return np.arange(self.offsets[k], self.offsets[k + 1], dtype=np.int64)

    def as_list(self) -> List[np.ndarray]:
        return [self[k] for k in range(len(self))]

    def subset(self, start: int, stop: int) -> "SliceStack":
        return SliceStack.from_slices(self.as_list()[start:stop])


@dataclass
class ParameterizedSlice:
    """
    A slice with a 1-D coordinate per traversal position.

    order:     indices into the slice points giving the traversal order
               (the mesh vertex ids themselves are never reordered)
    param:     angle (radians) or arclength (mm) per traversal position; when
               ``closed`` an extra trailing entry closes the loop on order[0]
    direction: +1 / -1 traversal sign (angular: sense of rotation,
               arclength: -1 when the digitization was reversed)
    """
    points: np.ndarray
    param: np.ndarray
    direction: int
    closed: bool
    order: np.ndarray
    index: int = 0

    @property
    def n_points(self) -> int:
        return int(self.points.shape[0])

    def local_ids(self) -> np.ndarray:
        """Slice-local vertex index for every entry of ``param``."""
        if self.closed:
            return np.r_[self.order, self.order[:1]].astype(np.int64)
        return np.asarray(self.order, dtype=np.int64)


@dataclass
class MassProperties:
    """
    Uniform-density rigid body properties of a closed triangulated surface.
    Inertia tensors are per unit density.
    """
    volume: float
    centroid: np.ndarray        # (3,)
    inertia: np.ndarray         # (3,3) about the coordinate origin
    inertia_cg: np.ndarray      # (3,3) about the centroid


@dataclass
class CoordinateFrame:
    """
    Origin plus rotation, row-vector convention:
        local = (x - origin) @ rotation
    The columns of ``rotation`` are the frame axes in source coordinates.
    """
    origin: np.ndarray
    rotation: np.ndarray

    def __post_init__(self) -> None:
        self.origin = np.asarray(self.origin, dtype=np.float64).reshape(3)
        self.rotation = np.asarray(self.rotation, dtype=np.float64).reshape(3, 3)
        if not np.allclose(self.rotation.T @ self.rotation, np.eye(3), atol=1e-8):
            raise InputError("CoordinateFrame rotation must have orthonormal columns.")
        if np.linalg.det(self.rotation) < 0.0:
            raise InputError("CoordinateFrame rotation must be right-handed (det = +1).")

    def transform(self, points: np.ndarray) -> np.ndarray:
        P = np.asarray(points, dtype=np.float64)
        return (P - self.origin) @ self.rotation

    def inverse_transform(self, local: np.ndarray) -> np.ndarray:
        L = np.asarray(local, dtype=np.float64)
        return L @ self.rotation.T + self.origin


@dataclass
class RidgePointSet:
    """
    Ridge point candidates grouped by slice (``group_size`` consecutive rows per slice).
    """
    points: np.ndarray          # (G*group_size, 3)
    slice_ids: np.ndarray       # (G,) stack index of each group
    group_size: int = 3
    mean_sq_residual: Optional[np.ndarray] = None   # (G,) after a line fit

    @property
    def n_groups(self) -> int:
        return int(self.slice_ids.size)

    def groups(self) -> np.ndarray:
        return self.points.reshape(self.n_groups, self.group_size, 3)

    def without(self, group_mask: np.ndarray) -> "RidgePointSet":
        """Drop the groups where ``group_mask`` is True."""
        keep = ~np.asarray(group_mask, dtype=bool)
        pts = self.groups()[keep].reshape(-1, 3)
        return RidgePointSet(points=pts, slice_ids=self.slice_ids[keep], group_size=self.group_size)


_END_CHOICES = {"none": 0, "top": 1, "bottom": 2, "both": 3}


@dataclass
class MeshParams:
    """
    Options for stitching a slice stack into a surface mesh.

    method:    "angular" (polar angle about a common center) or "arclength"
    tol:       dot-product tolerance for the slice direction check
    improve:   run the mesh repair collaborator on each band and on the result
    closed:    slices are closed loops (first and last points connected)
    ends:      end caps to add when closed: "none", "top", "bottom" or "both"
    cap_style: "fan" (centroid apex) or "delaunay" (in-plane triangulation)
    plot:      forward intermediate data to the debug sink
    """
    method: str = "angular"
    tol: float = 0.1
    improve: bool = True
    closed: bool = True
    ends: str = "both"
    cap_style: str = "fan"
    plot: bool = False

    def __post_init__(self) -> None:
        self.method = str(self.method).strip().lower()
        if self.method not in {"angular", "arclength"}:
            raise InputError(f"Unknown meshing method '{self.method}'.")
        self.cap_style = str(self.cap_style).strip().lower()
        if self.cap_style not in {"fan", "delaunay"}:
            raise InputError(f"Unknown end cap style '{self.cap_style}'.")
        if isinstance(self.ends, (int, np.integer)):
            lookup = {v: k for k, v in _END_CHOICES.items()}
            if int(self.ends) not in lookup:
                raise InputError(f"End cap selection must be 0..3, got {self.ends}.")
            self.ends = lookup[int(self.ends)]
        self.ends = str(self.ends).strip().lower()
        if self.ends not in _END_CHOICES:
            raise InputError(f"Unknown end cap selection '{self.ends}'.")

    @property
    def cap_top(self) -> bool:
        return self.closed and self.ends in {"top", "both"}

    @property
    def cap_bottom(self) -> bool:
        return self.closed and self.ends in {"bottom", "both"}

    @staticmethod
    def from_dict(params: Optional[Dict[str, Any]] = None) -> "MeshParams":
        if params is None:
            params = {}
        return MeshParams(
            method=params.get("method", "angular"),
            tol=float(params.get("tol", 0.1)),
            improve=bool(params.get("improve", True)),
            closed=bool(params.get("closed", True)),
            ends=params.get("ends", "both"),
            cap_style=params.get("cap_style", "fan"),
            plot=bool(params.get("plot", False)),
        )


@dataclass
class StitchResult:
    mesh: Mesh3D
    separations: np.ndarray                 # (S-1,) signed slice spacing
    apex_ids: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    repair_failed: bool = False


@dataclass
class FrameParams:
    """
    Options for the anatomical coordinate frame.

    right:          side convention (True = right, False = left)
    ridge_points:   extremal points taken per axial slice
    threshold:      rejection threshold on the mean squared residual (mm^2)
    reference_axis: source axis used to pick the principal inertia axis (1 = Y)
    """
    right: bool = True
    ridge_points: int = 3
    threshold: float = 25.0
    reference_axis: int = 1
    mesh: MeshParams = field(default_factory=MeshParams)
    plot: bool = False

    def __post_init__(self) -> None:
        if int(self.ridge_points) < 1:
            raise InputError("ridge_points must be at least 1.")
        if int(self.reference_axis) not in (0, 1, 2):
            raise InputError("reference_axis must be 0, 1 or 2.")
        if float(self.threshold) <= 0.0:
            raise InputError("threshold must be positive.")

    @staticmethod
    def from_dict(params: Optional[Dict[str, Any]] = None) -> "FrameParams":
        if params is None:
            params = {}
        mesh = params.get("mesh")
        if not isinstance(mesh, MeshParams):
            mesh = MeshParams.from_dict(mesh)
        return FrameParams(
            right=bool(params.get("right", True)),
            ridge_points=int(params.get("ridge_points", 3)),
            threshold=float(params.get("threshold", 25.0)),
            reference_axis=int(params.get("reference_axis", 1)),
            mesh=mesh,
            plot=bool(params.get("plot", False)),
        )


@dataclass
class FrameResult:
    """
    Everything produced by the coordinate frame pipeline for one specimen.

    rotation1 maps the source frame to the intermediate frame (principal axis
    aligned), rotation2 maps the intermediate frame to the final frame, and
    frame.rotation = rotation1 @ rotation2.
    """
    stitch: StitchResult
    mass: MassProperties
    principal_axis: np.ndarray
    rotation1: np.ndarray
    rotation2: np.ndarray
    frame: CoordinateFrame
    mesh_final: Mesh3D
    ridge: RidgePointSet
    ridge_point: np.ndarray             # fitted line point, intermediate frame
    ridge_direction: np.ndarray         # fitted line direction, intermediate frame
    ridge_point_final: np.ndarray       # same line expressed in the final frame
    ridge_direction_final: np.ndarray
    removed_slices: np.ndarray
    stage: str = "terminal"
    warnings: List[str] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)
