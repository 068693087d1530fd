import numpy as np
import pytest
import trimesh

from slicemesh.errors import InputShapeError
from slicemesh.geom.inertia import mass_properties
from slicemesh.meshing.orient import orient_batch


def _unit_cube():
    tm = trimesh.creation.box(extents=(1.0, 1.0, 1.0))
    tm.apply_translation([0.5, 0.5, 0.5])
    return np.asarray(tm.vertices), np.asarray(tm.faces)


def test_unit_cube_mass_properties():
    V, F = _unit_cube()
    mp = mass_properties(V, F)
    assert mp.volume == pytest.approx(1.0)
    assert np.allclose(mp.centroid, [0.5, 0.5, 0.5])
    # about the origin
    assert mp.inertia[0, 0] == pytest.approx(2.0 / 3.0)
    assert mp.inertia[1, 1] == pytest.approx(2.0 / 3.0)
    assert mp.inertia[0, 1] == pytest.approx(-0.25)
    assert mp.inertia[1, 2] == pytest.approx(-0.25)
    # about the centroid
    assert np.allclose(mp.inertia_cg, np.eye(3) / 6.0)


def test_inertia_about_centroid_is_translation_invariant():
    V, F = _unit_cube()
    a = mass_properties(V, F)
    b = mass_properties(V + np.array([10.0, -3.0, 7.0]), F)
    assert b.volume == pytest.approx(a.volume)
    assert np.allclose(b.inertia_cg, a.inertia_cg)


def test_inward_cube_is_flipped_by_orientation_vote():
    V, F = _unit_cube()
    inward = F[:, ::-1]
    assert mass_properties(V, inward).volume == pytest.approx(-1.0)

    fixed, flipped = orient_batch(V, inward, center=V.mean(axis=0))
    assert flipped
    assert mass_properties(V, fixed).volume == pytest.approx(1.0)


def test_mass_properties_shape_checks():
    V, F = _unit_cube()
    with pytest.raises(InputShapeError):
        mass_properties(V[:, :2], F)
    with pytest.raises(InputShapeError):
        mass_properties(V, np.hstack([F, F[:, :1]]))
