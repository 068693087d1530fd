import numpy as np
import pytest

from slicemesh.errors import InputShapeError, OrderingAmbiguity
from slicemesh.meshing.parameterize import (
    TWO_PI,
    check_directions,
    chord_arclength,
    parameterize_angular,
    parameterize_arclength,
    polar_angles,
    traversal_direction,
)


def _circle_xy(n=8, phase=0.0, radius=3.0, ccw=True):
    t = phase + TWO_PI * np.arange(n) / n
    if not ccw:
        t = -t
    return np.column_stack([radius * np.cos(t), radius * np.sin(t)])


def test_polar_angles_branch_cut():
    th = polar_angles(np.array([[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]]))
    # pi/2 is kept, pi is moved below the cut
    np.testing.assert_allclose(th, [0.0, np.pi / 2.0, -np.pi])


def test_traversal_direction():
    assert traversal_direction(polar_angles(_circle_xy(ccw=True))) == 1
    assert traversal_direction(polar_angles(_circle_xy(ccw=False))) == -1


def test_angular_parameter_closes_loop():
    ps = parameterize_angular(_circle_xy(8, phase=0.3))
    assert ps.direction == 1
    assert ps.param.size == 9
    assert ps.param[0] == pytest.approx(0.0)
    assert ps.param[-1] == pytest.approx(TWO_PI)
    assert np.all(np.diff(ps.param) > 0.0)
    assert ps.order.tolist() == list(range(8))
    np.testing.assert_array_equal(ps.local_ids(), np.r_[np.arange(8), 0])


def test_angular_parameter_forced_direction_walks_backwards():
    ps = parameterize_angular(_circle_xy(8), direction=-1)
    assert ps.direction == -1
    assert ps.order.tolist() == [0, 7, 6, 5, 4, 3, 2, 1]
    assert ps.param[0] == pytest.approx(0.0)
    assert ps.param[-1] == pytest.approx(-TWO_PI)
    assert np.all(np.diff(ps.param) < 0.0)


def test_angular_parameter_reference_angle_picks_nearest_start():
    xy = _circle_xy(8)
    ps = parameterize_angular(xy, ref_angle=np.pi / 4.0 + 0.1)
    assert ps.order[0] == 1
    assert ps.param[0] == pytest.approx(-0.1)


def test_angular_parameter_needs_three_points():
    with pytest.raises(InputShapeError):
        parameterize_angular(np.array([[1.0, 0.0], [0.0, 1.0]]))


def test_chord_arclength_square():
    sq = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 1.0, 0.0], [0.0, 1.0, 0.0]])
    np.testing.assert_allclose(chord_arclength(sq), [0.0, 1.0, 2.0, 3.0, 4.0])
    np.testing.assert_allclose(chord_arclength(sq, closed=False), [0.0, 1.0, 2.0, 3.0])
    np.testing.assert_allclose(chord_arclength(sq, order=[0, 3, 2, 1], closed=False), [0.0, 1.0, 2.0, 3.0])


def test_check_directions_reverses_opposite_slice():
    a = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [2.0, 0.0, 0.0]])
    b = a[::-1] + np.array([0.0, 0.0, 1.0])
    orders, rev = check_directions([a, b])
    assert rev.tolist() == [False, True]
    assert orders[1].tolist() == [2, 1, 0]

    pslices = parameterize_arclength([a, b], closed=False)
    assert [p.direction for p in pslices] == [1, -1]
    np.testing.assert_allclose(pslices[1].param, [0.0, 1.0, 2.0])
    np.testing.assert_allclose(b[pslices[1].order][0], [0.0, 0.0, 1.0])


def test_check_directions_ambiguous_ordering_warns():
    a = np.array([[0.0, 0.0, 0.0], [0.5, 0.0, 0.0], [1.0, 0.0, 0.0]])
    b = np.array([[0.0, 0.0, 1.0], [0.02, 0.5, 1.0], [0.05, 1.0, 1.0]])
    with pytest.warns(OrderingAmbiguity):
        orders, rev = check_directions([a, b])
    assert not rev.any()
    assert orders[1].tolist() == [0, 1, 2]
