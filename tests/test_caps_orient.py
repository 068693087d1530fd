import numpy as np
import pytest

from slicemesh.errors import InputError
from slicemesh.geom.topology import triangle_normals
from slicemesh.meshing.caps import delaunay_cap, fan_cap, strip_cap
from slicemesh.meshing.orient import orient_batch

L_SHAPE = np.array([
    [0.0, 0.0, 0.0],
    [2.0, 0.0, 0.0],
    [2.0, 1.0, 0.0],
    [1.0, 1.0, 0.0],
    [1.0, 2.0, 0.0],
    [0.0, 2.0, 0.0],
])


def _ring(n=10, z=0.0):
    t = 2.0 * np.pi * np.arange(n) / n
    return np.column_stack([np.cos(t), np.sin(t), np.full(n, z)])


def test_orient_batch_needs_exactly_one_reference():
    F = np.array([[0, 1, 2]])
    with pytest.raises(InputError):
        orient_batch(L_SHAPE, F)
    with pytest.raises(InputError):
        orient_batch(L_SHAPE, F, center=np.zeros(3), direction=np.ones(3))


def test_orient_batch_with_direction():
    F = np.array([[0, 1, 2], [0, 2, 5]])
    up, flipped = orient_batch(L_SHAPE, F, direction=[0.0, 0.0, 1.0])
    assert not flipped
    np.testing.assert_array_equal(up, F)

    down, flipped = orient_batch(L_SHAPE, F, direction=[0.0, 0.0, -1.0])
    assert flipped
    np.testing.assert_array_equal(down, F[:, [0, 2, 1]])


def test_fan_cap_points_outward():
    ring = _ring(10)
    V = np.vstack([ring, ring.mean(axis=0)])
    faces = fan_cap(np.arange(10), 10, V, outward=[0.0, 0.0, -1.0])
    assert faces.shape == (10, 3)
    assert np.all(faces[:, 0] == 10)
    nrm, area, _ = triangle_normals(V, faces)
    assert np.all(nrm[:, 2] < 0.0)
    assert area.sum() == pytest.approx(5.0 * np.sin(2.0 * np.pi / 10.0))


def test_delaunay_cap_removes_triangles_outside_concave_boundary():
    ids = np.arange(100, 106)
    faces = delaunay_cap(L_SHAPE, ids, outward=[0.0, 0.0, 1.0])
    assert faces.min() >= 100 and faces.max() <= 105

    local = faces - 100
    nrm, area, _ = triangle_normals(L_SHAPE, local)
    assert area.sum() == pytest.approx(3.0)
    assert np.all(nrm[:, 2] > 0.0)
    # the notch triangle (2, 3, 4) is gone
    assert not any(set(f) == {2, 3, 4} for f in local.tolist())


def test_delaunay_cap_on_convex_ring():
    ring = _ring(12, z=5.0)
    # break cocircularity so the triangulation is unique
    t = 2.0 * np.pi * np.arange(12) / 12
    ring[:, :2] *= (1.0 + 0.05 * np.sin(3.0 * t))[:, None]
    faces = delaunay_cap(ring, np.arange(12), outward=[0.0, 0.0, -1.0])
    assert faces.shape == (10, 3)
    nrm, _, _ = triangle_normals(ring, faces)
    assert np.all(nrm[:, 2] < 0.0)


def test_strip_cap_drops_apex_and_ring_triangles():
    F = np.array([
        [9, 0, 1],      # touches the apex
        [0, 1, 2],      # all on the ring
        [0, 1, 5],      # band triangle
        [1, 5, 6],
    ])
    out = strip_cap(F, apex_id=9, ring_ids=[0, 1, 2, 3])
    np.testing.assert_array_equal(out, F[2:])
