from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import numpy as np
import trimesh
from trimesh import Trimesh

from ..errors import InputError
from ..models import (
    CoordinateFrame,
    FrameResult,
    MassProperties,
    Mesh3D,
    RidgePointSet,
    SliceStack,
    StitchResult,
)


# ---------- Internal utilities ----------

def _to_trimesh(mesh: Mesh3D) -> Trimesh:
    """Convert Mesh3D -> trimesh.Trimesh without additional processing."""
    v = np.asarray(mesh.vertices, dtype=np.float64)
    f = np.asarray(mesh.faces, dtype=np.int64)
    return trimesh.Trimesh(vertices=v, faces=f, process=False, validate=False)


def _to_serializable(obj: Any) -> Any:
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, Mapping):
        return {str(k): _to_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_serializable(v) for v in obj]
    return obj


def _ensure_parent(path: Path) -> None:
    if path.parent and path.parent != Path("."):
        path.parent.mkdir(parents=True, exist_ok=True)


# ---------- Meshes ----------

def save_stl(mesh: Mesh3D, path: str | Path) -> None:
    """
    Save Mesh3D as STL (binary).
    """
    path = Path(path)
    _ensure_parent(path)
    _to_trimesh(mesh).export(str(path))


def repair_mesh(mesh: Mesh3D) -> Mesh3D:
    """
    Connectivity repair with trimesh:
      - drop duplicate faces
      - drop zero-area faces
      - make the winding consistent across shared edges
    Vertices are kept as they are so vertex ids stay valid. Any trimesh
    failure propagates to the caller.
    """
    tm = _to_trimesh(mesh)
    tm.update_faces(tm.unique_faces())
    tm.update_faces(tm.nondegenerate_faces())
    trimesh.repair.fix_winding(tm)
    return Mesh3D(vertices=np.asarray(mesh.vertices, dtype=np.float64), faces=np.asarray(tm.faces, dtype=np.int64), units=mesh.units)


# ---------- Slice data ----------

def group_slices(records: Iterable[Tuple[str, np.ndarray]]) -> Dict[str, List[np.ndarray]]:
    """
    Group (roi_name, slice_points) records by ROI, keeping slice order.
    """
    rois: Dict[str, List[np.ndarray]] = {}
    for name, pts in records:
        P = np.asarray(pts, dtype=np.float64)
        if P.ndim != 2 or P.shape[1] != 3:
            raise InputError(f"Slice of ROI '{name}' must be an (n,3) array, got shape {P.shape}.")
        rois.setdefault(str(name), []).append(P)
    return rois


def save_rois(rois: Mapping[str, Sequence[np.ndarray]], path: str | Path) -> None:
    """Persist ROI slice data (name -> list of (n,3) slices) to NPZ."""
    path = Path(path)
    _ensure_parent(path)
    names = list(rois.keys())
    payload: Dict[str, Any] = {}
    for i, name in enumerate(names):
        stack = SliceStack.from_slices(list(rois[name]))
        payload[f"roi{i}_vertices"] = stack.vertices
        payload[f"roi{i}_offsets"] = stack.offsets
    payload["meta_json"] = np.asarray(json.dumps({"rois": names}))
    np.savez(path, **payload)


def load_rois(path: str | Path) -> Dict[str, SliceStack]:
    path = Path(path)
    with np.load(path, allow_pickle=False) as data:
        if "meta_json" not in data.files:
            raise InputError(f"{path} is not a slice data file (no meta_json entry).")
        meta = json.loads(str(np.asarray(data["meta_json"]).item()))
        out: Dict[str, SliceStack] = {}
        for i, name in enumerate(meta.get("rois", [])):
            out[name] = SliceStack(
                vertices=np.asarray(data[f"roi{i}_vertices"], dtype=np.float64),
                offsets=np.asarray(data[f"roi{i}_offsets"], dtype=np.int64),
            )
    return out


def load_slices(path: str | Path, roi: Optional[str] = None) -> SliceStack:
    """
    Load one ROI from a slice data file. Without ``roi`` the file must hold
    exactly one ROI.
    """
    rois = load_rois(path)
    if roi is None:
        if len(rois) != 1:
            raise InputError(f"{path} holds {len(rois)} ROIs {sorted(rois)}; pick one.")
        return next(iter(rois.values()))
    if roi not in rois:
        raise InputError(f"ROI '{roi}' not found in {path}; available: {sorted(rois)}.")
    return rois[roi]


# ---------- Frame results ----------

def save_frame_npz(result: FrameResult, path: str | Path) -> None:
    """Persist a FrameResult to an NPZ file."""
    path = Path(path)
    _ensure_parent(path)

    meta = {
        "stage": result.stage,
        "warnings": list(result.warnings),
        "stitch_warnings": list(result.stitch.warnings),
        "apex_ids": dict(result.stitch.apex_ids),
        "repair_failed": bool(result.stitch.repair_failed),
        "units": result.stitch.mesh.units,
        "group_size": int(result.ridge.group_size),
        "meta": _to_serializable(dict(result.meta)),
    }
    msr = result.ridge.mean_sq_residual
    payload: Dict[str, Any] = {
        "vertices": np.asarray(result.stitch.mesh.vertices, dtype=np.float64),
        "faces": np.asarray(result.stitch.mesh.faces, dtype=np.int64),
        "vertices_final": np.asarray(result.mesh_final.vertices, dtype=np.float64),
        "separations": np.asarray(result.stitch.separations, dtype=np.float64),
        "volume": np.asarray(result.mass.volume, dtype=np.float64),
        "centroid": np.asarray(result.mass.centroid, dtype=np.float64),
        "inertia": np.asarray(result.mass.inertia, dtype=np.float64),
        "inertia_cg": np.asarray(result.mass.inertia_cg, dtype=np.float64),
        "principal_axis": np.asarray(result.principal_axis, dtype=np.float64),
        "rotation1": np.asarray(result.rotation1, dtype=np.float64),
        "rotation2": np.asarray(result.rotation2, dtype=np.float64),
        "origin": np.asarray(result.frame.origin, dtype=np.float64),
        "rotation": np.asarray(result.frame.rotation, dtype=np.float64),
        "ridge_points": np.asarray(result.ridge.points, dtype=np.float64),
        "ridge_slice_ids": np.asarray(result.ridge.slice_ids, dtype=np.int64),
        "ridge_msr": np.asarray(msr if msr is not None else [], dtype=np.float64),
        "ridge_point": np.asarray(result.ridge_point, dtype=np.float64),
        "ridge_direction": np.asarray(result.ridge_direction, dtype=np.float64),
        "ridge_point_final": np.asarray(result.ridge_point_final, dtype=np.float64),
        "ridge_direction_final": np.asarray(result.ridge_direction_final, dtype=np.float64),
        "removed_slices": np.asarray(result.removed_slices, dtype=np.int64),
        "meta_json": np.asarray(json.dumps(_to_serializable(meta), sort_keys=True)),
    }
    np.savez(path, **payload)


def load_frame_npz(resource: str | Path) -> FrameResult:
    """Load a FrameResult from an NPZ file produced by :func:`save_frame_npz`."""
    path = Path(resource)
    with np.load(path, allow_pickle=False) as data:
        arr = {k: np.asarray(data[k]) for k in data.files if k != "meta_json"}
        meta = json.loads(str(np.asarray(data["meta_json"]).item()))

    units = meta.get("units", "mm")
    mesh = Mesh3D(vertices=arr["vertices"], faces=arr["faces"], units=units)
    stitch = StitchResult(
        mesh=mesh,
        separations=arr["separations"],
        apex_ids={k: int(v) for k, v in meta.get("apex_ids", {}).items()},
        warnings=list(meta.get("stitch_warnings", [])),
        repair_failed=bool(meta.get("repair_failed", False)),
    )
    mass = MassProperties(
        volume=float(arr["volume"]),
        centroid=arr["centroid"],
        inertia=arr["inertia"],
        inertia_cg=arr["inertia_cg"],
    )
    msr = arr["ridge_msr"]
    ridge = RidgePointSet(
        points=arr["ridge_points"],
        slice_ids=arr["ridge_slice_ids"],
        group_size=int(meta.get("group_size", 3)),
        mean_sq_residual=msr if msr.size else None,
    )
    return FrameResult(
        stitch=stitch,
        mass=mass,
        principal_axis=arr["principal_axis"],
        rotation1=arr["rotation1"],
        rotation2=arr["rotation2"],
        frame=CoordinateFrame(origin=arr["origin"], rotation=arr["rotation"]),
        mesh_final=Mesh3D(vertices=arr["vertices_final"], faces=arr["faces"], units=units),
        ridge=ridge,
        ridge_point=arr["ridge_point"],
        ridge_direction=arr["ridge_direction"],
        ridge_point_final=arr["ridge_point_final"],
        ridge_direction_final=arr["ridge_direction_final"],
        removed_slices=arr["removed_slices"],
        stage=str(meta.get("stage", "terminal")),
        warnings=list(meta.get("warnings", [])),
        meta=dict(meta.get("meta", {})),
    )


__all__ = [
    "save_stl",
    "repair_mesh",
    "group_slices",
    "save_rois",
    "load_rois",
    "load_slices",
    "save_frame_npz",
    "load_frame_npz",
]
