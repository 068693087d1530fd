"""
Anatomical coordinate frame from two digitizations of the same body.

Stages:
  1) mesh the primary (sagittal) slices and integrate mass properties
  2) principal inertia axis closest to the reference axis, signed so that its
     reference component is not positive
  3) first rotation: that axis onto -X (right) or +X (left)
  4) secondary (axial) slices into the intermediate frame; per-slice ridge
     candidates; robust ridge line fit
  5) second rotation from the ridge direction (Gram-Schmidt with X)
  6) final frame: origin = centroid, rotation = rotation1 @ rotation2

Row-vector convention throughout: local = (x - origin) @ rotation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple
import warnings
import numpy as np

from ..errors import SliceMeshError
from ..geom.frames import minimal_rotation, ridge_frame, transform_points
from ..geom.inertia import mass_properties
from ..geom.intersect import mesh_line
from ..meshing.stitch import build_mesh
from ..models import (
    CoordinateFrame,
    FrameParams,
    FrameResult,
    Mesh3D,
    SliceStack,
)
from .ridge import extract_ridge_points, fit_ridge

Sink = Callable[[str, Dict[str, Any]], None]


class FrameStage(str, Enum):
    START = "start"
    MESH_BUILT = "mesh_built"
    INERTIA_COMPUTED = "inertia_computed"
    FIRST_ROTATION_APPLIED = "first_rotation_applied"
    RIDGE_EXTRACTED = "ridge_extracted"
    RIDGE_FIT_CONVERGED = "ridge_fit_converged"
    SECOND_ROTATION_COMPOSED = "second_rotation_composed"
    TERMINAL = "terminal"


_ORDER = list(FrameStage)


def anatomical_axis(inertia_cg: np.ndarray, reference_axis: int = 1) -> np.ndarray:
    """
    Eigenvector of the centroidal inertia tensor with the largest component
    along ``reference_axis``, signed so that component is <= 0.
    """
    _, evecs = np.linalg.eigh(np.asarray(inertia_cg, dtype=np.float64))
    j = int(np.argmax(np.abs(evecs[reference_axis, :])))
    v = evecs[:, j].copy()
    if v[reference_axis] > 0.0:
        v = -v
    return v


class CoordinateFramePipeline:
    """One specimen; one method per stage transition, ``run()`` for all of them."""

    def __init__(
        self,
        sagittal: SliceStack | Sequence[np.ndarray],
        axial: SliceStack | Sequence[np.ndarray],
        params: FrameParams | Dict[str, Any] | None = None,
        sink: Optional[Sink] = None,
    ):
        self.params = params if isinstance(params, FrameParams) else FrameParams.from_dict(params)
        self.sagittal = sagittal if isinstance(sagittal, SliceStack) else SliceStack.from_slices(sagittal)
        self.axial = axial if isinstance(axial, SliceStack) else SliceStack.from_slices(axial)
        self.sink = sink
        self.stage = FrameStage.START

        self.stitch = None
        self.mass = None
        self.principal_axis = None
        self.rotation1 = None
        self.axial_t1 = None
        self.candidates = None
        self.fit = None
        self.ridge = None
        self.removed = None
        self.rotation2 = None
        self.result: Optional[FrameResult] = None

    def _require(self, expected: FrameStage) -> None:
        if self.stage != expected:
            raise RuntimeError(f"Pipeline is at '{self.stage.value}', this step needs '{expected.value}'.")

    def _emit(self, stage: str, payload: Dict[str, Any]) -> None:
        if self.params.plot and self.sink is not None:
            self.sink(stage, payload)

    def build_mesh(self) -> None:
        self._require(FrameStage.START)
        self.stitch = build_mesh(self.sagittal, self.params.mesh, sink=self.sink)
        self.stage = FrameStage.MESH_BUILT

    def compute_inertia(self) -> None:
        self._require(FrameStage.MESH_BUILT)
        m = self.stitch.mesh
        self.mass = mass_properties(m.vertices, m.faces)
        print(f"[frame] volume={self.mass.volume:.3f}  centroid={np.round(self.mass.centroid, 3).tolist()}")
        self.stage = FrameStage.INERTIA_COMPUTED

    def apply_first_rotation(self) -> None:
        self._require(FrameStage.INERTIA_COMPUTED)
        self.principal_axis = anatomical_axis(self.mass.inertia_cg, self.params.reference_axis)
        target = np.array([-1.0, 0.0, 0.0]) if self.params.right else np.array([1.0, 0.0, 0.0])
        self.rotation1 = minimal_rotation(self.principal_axis, target).T
        self.axial_t1 = SliceStack(
            vertices=transform_points(self.axial.vertices, self.mass.centroid, self.rotation1),
            offsets=self.axial.offsets.copy(),
        )
        self.stage = FrameStage.FIRST_ROTATION_APPLIED

    def extract_ridge(self) -> None:
        self._require(FrameStage.FIRST_ROTATION_APPLIED)
        self.candidates = extract_ridge_points(self.axial_t1, right=self.params.right, npts=self.params.ridge_points)
        self.stage = FrameStage.RIDGE_EXTRACTED

    def fit_ridge(self) -> None:
        self._require(FrameStage.RIDGE_EXTRACTED)
        self.fit, self.ridge, self.removed = fit_ridge(self.candidates, threshold=self.params.threshold)
        print(
            f"[ridge] {self.ridge.n_groups} slices kept, {self.removed.size} removed, "
            f"direction={np.round(self.fit.direction, 4).tolist()}"
        )
        self._emit("ridge_fit", {
            "candidates": self.candidates.points,
            "points": self.ridge.points,
            "removed": self.removed,
            "line_point": self.fit.point,
            "line_direction": self.fit.direction,
        })
        self.stage = FrameStage.RIDGE_FIT_CONVERGED

    def compose_second_rotation(self) -> None:
        self._require(FrameStage.RIDGE_FIT_CONVERGED)
        self.rotation2 = ridge_frame(self.fit.direction)
        self.stage = FrameStage.SECOND_ROTATION_COMPOSED

    def finalize(self) -> FrameResult:
        self._require(FrameStage.SECOND_ROTATION_COMPOSED)
        rotation = self.rotation1 @ self.rotation2
        frame = CoordinateFrame(origin=self.mass.centroid, rotation=rotation)
        mesh = self.stitch.mesh
        mesh_final = Mesh3D(vertices=frame.transform(mesh.vertices), faces=mesh.faces, units=mesh.units)

        direction = self.fit.direction.copy()
        if direction[2] < 0.0:
            direction = -direction
        point_final = self.fit.point @ self.rotation2
        direction_final = direction @ self.rotation2
        hits, _ = mesh_line(mesh_final.vertices, mesh_final.faces, point_final, direction_final)

        self.stage = FrameStage.TERMINAL
        self.result = FrameResult(
            stitch=self.stitch,
            mass=self.mass,
            principal_axis=self.principal_axis,
            rotation1=self.rotation1,
            rotation2=self.rotation2,
            frame=frame,
            mesh_final=mesh_final,
            ridge=self.ridge,
            ridge_point=self.fit.point,
            ridge_direction=direction,
            ridge_point_final=point_final,
            ridge_direction_final=direction_final,
            removed_slices=self.removed,
            stage=self.stage.value,
            meta={
                "right": bool(self.params.right),
                "threshold": float(self.params.threshold),
                "ridge_points": int(self.params.ridge_points),
                "ridge_pexp": self.fit.pexp.tolist(),
                "ridge_mesh_hits": hits.tolist(),
            },
        )
        return self.result

    def run(self) -> FrameResult:
        steps = [
            self.build_mesh,
            self.compute_inertia,
            self.apply_first_rotation,
            self.extract_ridge,
            self.fit_ridge,
            self.compose_second_rotation,
        ]
        start = _ORDER.index(self.stage)
        for step in steps[start:]:
            step()
        return self.finalize()


def compute_frame(
    sagittal: SliceStack | Sequence[np.ndarray],
    axial: SliceStack | Sequence[np.ndarray],
    params: FrameParams | Dict[str, Any] | None = None,
    sink: Optional[Sink] = None,
) -> FrameResult:
    """
    Run the whole frame pipeline for one specimen.

    Warnings raised along the way (ordering ambiguities, repair failures,
    intersection residuals) are recorded on the result and re-issued.
    """
    pipeline = CoordinateFramePipeline(sagittal, axial, params=params, sink=sink)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        result = pipeline.run()
    for w in caught:
        result.warnings.append(str(w.message))
        warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)
    return result


@dataclass
class BatchReport:
    results: Dict[str, FrameResult] = field(default_factory=dict)
    errors: Dict[str, SliceMeshError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def run_batch(
    specimens: Mapping[str, Tuple[SliceStack | Sequence[np.ndarray], SliceStack | Sequence[np.ndarray]]],
    params: FrameParams | Dict[str, Any] | None = None,
) -> BatchReport:
    """
    Frame computation for several specimens. A fatal error aborts only its
    own specimen and is kept in ``report.errors``.
    """
    report = BatchReport()
    for name, (sagittal, axial) in specimens.items():
        try:
            report.results[name] = compute_frame(sagittal, axial, params=params)
        except SliceMeshError as exc:
            print(f"[batch] {name}: {type(exc).__name__}: {exc}")
            report.errors[name] = exc
    print(f"[batch] {len(report.results)} done, {len(report.errors)} failed")
    return report
