import json
import numpy as np
import pytest
import trimesh

from slicemesh.errors import InputError
from slicemesh.frame.pipeline import compute_frame
from slicemesh.io import (
    group_slices,
    load_frame_npz,
    load_rois,
    load_slices,
    repair_mesh,
    save_frame_npz,
    save_rois,
    save_stl,
)
from slicemesh.models import Mesh3D


def _ring(n, z, rx=10.0, ry=6.0):
    t = 2.0 * np.pi * np.arange(n) / n
    return np.column_stack([rx * np.cos(t), ry * np.sin(t), np.full(n, z)])


def _specimen():
    t = 2.0 * np.pi * np.arange(16) / 16
    sagittal = []
    for x in np.linspace(-8.0, 8.0, 5):
        s = np.sqrt(1.0 - (x / 10.0) ** 2)
        sagittal.append(np.column_stack([np.full(16, x), 5.0 * s * np.cos(t), 15.0 * s * np.sin(t)]))
    axial = [_ring(16, z, rx=8.0, ry=4.0) for z in np.linspace(-9.0, 9.0, 6)]
    return sagittal, axial


def test_group_slices_keeps_order():
    records = [("skull", _ring(5, 0.0)), ("jaw", _ring(6, 0.0)), ("skull", _ring(7, 1.0))]
    rois = group_slices(records)
    assert list(rois) == ["skull", "jaw"]
    assert [s.shape[0] for s in rois["skull"]] == [5, 7]
    with pytest.raises(InputError):
        group_slices([("bad", np.zeros((4, 2)))])


def test_roi_round_trip(tmp_path):
    rois = {"upper": [_ring(8, 0.0), _ring(9, 2.0)], "lower": [_ring(5, 4.0)]}
    target = tmp_path / "nested" / "slices.npz"
    save_rois(rois, target)

    loaded = load_rois(target)
    assert list(loaded) == ["upper", "lower"]
    assert len(loaded["upper"]) == 2
    np.testing.assert_allclose(loaded["upper"][1], rois["upper"][1])
    assert loaded["upper"].counts.tolist() == [8, 9]

    assert len(load_slices(target, roi="lower")) == 1
    with pytest.raises(InputError):
        load_slices(target)
    with pytest.raises(InputError):
        load_slices(target, roi="missing")


def test_load_rejects_foreign_npz(tmp_path):
    target = tmp_path / "other.npz"
    np.savez(target, a=np.zeros(3))
    with pytest.raises(InputError):
        load_rois(target)


def test_repair_mesh_drops_duplicates_and_fixes_winding():
    tm = trimesh.creation.box(extents=(1.0, 1.0, 1.0))
    faces = np.asarray(tm.faces).copy()
    faces[3] = faces[3, [0, 2, 1]]
    faces = np.vstack([faces, faces[:1], [[0, 0, 1]]])
    fixed = repair_mesh(Mesh3D(vertices=np.asarray(tm.vertices), faces=faces))
    assert fixed.faces.shape == (12, 3)
    assert fixed.vertices.shape == tm.vertices.shape
    check = trimesh.Trimesh(vertices=fixed.vertices, faces=fixed.faces, process=False)
    assert check.is_winding_consistent


def test_save_stl(tmp_path):
    tm = trimesh.creation.box(extents=(2.0, 3.0, 4.0))
    target = tmp_path / "out" / "box.stl"
    save_stl(Mesh3D(vertices=np.asarray(tm.vertices), faces=np.asarray(tm.faces)), target)
    loaded = trimesh.load(str(target), force="mesh")
    assert loaded.faces.shape == (12, 3)
    assert loaded.volume == pytest.approx(24.0)


def test_frame_round_trip(tmp_path):
    sagittal, axial = _specimen()
    res = compute_frame(sagittal, axial)
    target = tmp_path / "frame.npz"
    save_frame_npz(res, target)

    loaded = load_frame_npz(target)
    np.testing.assert_allclose(loaded.stitch.mesh.vertices, res.stitch.mesh.vertices)
    np.testing.assert_array_equal(loaded.stitch.mesh.faces, res.stitch.mesh.faces)
    np.testing.assert_allclose(loaded.mesh_final.vertices, res.mesh_final.vertices)
    np.testing.assert_allclose(loaded.frame.rotation, res.frame.rotation)
    np.testing.assert_allclose(loaded.frame.origin, res.frame.origin)
    np.testing.assert_allclose(loaded.mass.inertia_cg, res.mass.inertia_cg)
    assert loaded.mass.volume == pytest.approx(res.mass.volume)
    np.testing.assert_allclose(loaded.ridge.points, res.ridge.points)
    np.testing.assert_allclose(loaded.ridge.mean_sq_residual, res.ridge.mean_sq_residual)
    np.testing.assert_allclose(loaded.ridge_point_final, res.ridge_point_final)
    np.testing.assert_array_equal(loaded.removed_slices, res.removed_slices)
    assert loaded.stitch.apex_ids == res.stitch.apex_ids
    assert loaded.stage == "terminal"
    assert loaded.meta["right"] is True
    assert loaded.meta["threshold"] == pytest.approx(25.0)

    with np.load(target) as data:
        meta = json.loads(str(data["meta_json"]))
    assert meta["units"] == "mm"
    assert meta["group_size"] == 3
