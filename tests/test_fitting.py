import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from slicemesh.errors import InputShapeError, InsufficientDataError
from slicemesh.geom.fitting import line_fit, plane_fit


def _noisy_planar_points(n=60, seed=0):
    rng = np.random.default_rng(seed)
    return np.column_stack([
        rng.uniform(-8.0, 8.0, n),
        rng.uniform(-3.0, 3.0, n),
        0.05 * rng.standard_normal(n),
    ])


def _rigid(P, seed=1):
    R = Rotation.from_euler("xyz", [0.4, -1.1, 2.3]).as_matrix()
    t = np.array([12.0, -4.0, 30.0])
    return P @ R.T + t, R


def test_plane_fit_frame_is_right_handed():
    fit = plane_fit(_noisy_planar_points())
    assert np.allclose(fit.rotation.T @ fit.rotation, np.eye(3), atol=1e-10)
    assert np.linalg.det(fit.rotation) == pytest.approx(1.0)
    assert np.allclose(fit.normal, fit.rotation[:, 2])
    assert abs(fit.normal[2]) > 0.99


def test_plane_fit_rigid_invariance():
    P = _noisy_planar_points()
    Q, R = _rigid(P)
    a = plane_fit(P)
    b = plane_fit(Q)
    assert abs(b.normal @ (R @ a.normal)) == pytest.approx(1.0, abs=1e-9)
    assert b.sse == pytest.approx(a.sse, rel=1e-9)
    assert np.allclose(np.abs(b.residuals), np.abs(a.residuals), atol=1e-9)
    assert np.allclose(b.centroid, R @ a.centroid + np.array([12.0, -4.0, 30.0]))


def test_line_fit_rigid_invariance():
    P = _noisy_planar_points(seed=3)
    Q, R = _rigid(P)
    a = line_fit(P)
    b = line_fit(Q)
    assert abs(b.direction @ (R @ a.direction)) == pytest.approx(1.0, abs=1e-9)
    assert b.sse == pytest.approx(a.sse, rel=1e-9)
    assert np.allclose(b.pexp, a.pexp)


def test_line_fit_collinear_points():
    t = np.linspace(-5.0, 5.0, 11)
    P = np.column_stack([t, t, np.full_like(t, 2.0)])
    fit = line_fit(P)
    assert abs(fit.direction @ np.array([1.0, 1.0, 0.0]) / np.sqrt(2.0)) == pytest.approx(1.0)
    assert fit.sse == pytest.approx(0.0, abs=1e-12)
    assert fit.pexp[0] == pytest.approx(100.0)
    assert np.allclose(fit.point, [0.0, 0.0, 2.0])


def test_fits_reject_bad_input():
    with pytest.raises(InsufficientDataError):
        plane_fit(np.zeros((2, 3)))
    with pytest.raises(InsufficientDataError):
        line_fit(np.ones((1, 3)))
    with pytest.raises(InputShapeError):
        line_fit(np.zeros((5, 2)))
