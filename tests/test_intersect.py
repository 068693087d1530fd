import numpy as np
import pytest
import trimesh

from slicemesh.errors import GeometryWarning
from slicemesh.geom.intersect import mesh_line, plane_line, triangle_line

TRI = (np.array([0.0, 0.0, 0.0]), np.array([1.0, 0.0, 0.0]), np.array([0.0, 1.0, 0.0]))


def test_plane_line_hit():
    ip, ierr, t = plane_line([0, 0, 1], [0, 0, 1], [0, 0, 0], [1, 0, 1])
    assert not ierr
    assert np.allclose(ip, [1.0, 0.0, 1.0])
    assert t == pytest.approx(1.0)


def test_plane_line_off_plane_residual_flags_error():
    # far from the origin the recomputed point drifts off the plane by more than tol
    with pytest.warns(GeometryWarning, match="not in plane"):
        ip, ierr, t = plane_line([1e9, 3e8, 7e8], [0.3, 0.5, 0.81], [0, 0, 0], [1, 1e-3, 0])
    assert ierr
    assert ip is not None and t is not None
    assert ip.shape == (3,)


def test_plane_line_parallel():
    with pytest.warns(GeometryWarning):
        ip, ierr, t = plane_line([0, 0, 1], [0, 0, 1], [0, 0, 0], [1, 0, 0])
    assert ip is None and t is None
    assert ierr


def test_triangle_line_hit_and_miss():
    ip, hit, ierr = triangle_line(*TRI, [0.2, 0.2, 5.0], [0.0, 0.0, -1.0])
    assert hit and not ierr
    assert np.allclose(ip, [0.2, 0.2, 0.0])

    ip, hit, ierr = triangle_line(*TRI, [1.0, 1.0, 5.0], [0.0, 0.0, -1.0])
    assert ip is None and not hit and not ierr


def test_triangle_line_coplanar_flags_error():
    ip, hit, ierr = triangle_line(*TRI, [0.0, 0.0, 0.0], [1.0, 0.0, 0.0])
    assert ip is None and not hit
    assert ierr


def test_mesh_line_pierces_box_twice():
    tm = trimesh.creation.box(extents=(1.0, 1.0, 1.0))
    pts, ids = mesh_line(tm.vertices, tm.faces, [0.1, 0.2, 0.0], [0.0, 0.0, 1.0])
    assert pts.shape == (2, 3)
    assert ids.shape == (2,)
    assert np.allclose(pts[:, 2], [-0.5, 0.5])
    assert np.allclose(pts[:, :2], [[0.1, 0.2], [0.1, 0.2]])


def test_mesh_line_orders_hits_behind_the_line_point():
    tm = trimesh.creation.box(extents=(1.0, 1.0, 1.0))
    pts, ids = mesh_line(tm.vertices, tm.faces, [0.1, 0.2, 3.0], [0.0, 0.0, 2.0])
    assert pts.shape == (2, 3)
    np.testing.assert_allclose(pts[:, 2], [-0.5, 0.5], atol=1e-9)
    np.testing.assert_allclose(tm.face_normals[ids][:, 2], [-1.0, 1.0], atol=1e-9)


def test_mesh_line_miss_is_empty():
    tm = trimesh.creation.box(extents=(1.0, 1.0, 1.0))
    pts, ids = mesh_line(tm.vertices, tm.faces, [3.0, 0.0, 0.0], [0.0, 0.0, 1.0])
    assert pts.shape == (0, 3)
    assert ids.shape == (0,)
