import numpy as np
import pytest
import trimesh

from slicemesh.cli.main import build_parser, main
from slicemesh.io import load_frame_npz, save_rois


def _ellipse(n, rx, ry, z):
    t = 2.0 * np.pi * np.arange(n) / n
    return np.column_stack([rx * np.cos(t), ry * np.sin(t), np.full(n, z)])


def _write_specimen(tmp_path):
    t = 2.0 * np.pi * np.arange(16) / 16
    sagittal = []
    for x in np.linspace(-8.0, 8.0, 5):
        s = np.sqrt(1.0 - (x / 10.0) ** 2)
        sagittal.append(np.column_stack([np.full(16, x), 5.0 * s * np.cos(t), 15.0 * s * np.sin(t)]))
    axial = [_ellipse(16, 8.0, 4.0, z) for z in np.linspace(-9.0, 9.0, 6)]
    sag_path = tmp_path / "sagittal.npz"
    ax_path = tmp_path / "axial.npz"
    save_rois({"sagittal": sagittal}, sag_path)
    save_rois({"axial": axial, "other": axial[:2]}, ax_path)
    return sag_path, ax_path


def test_parser_defaults():
    args = build_parser().parse_args(["mesh", "--slices", "a.npz", "--stl", "b.stl"])
    assert args.method == "angular"
    assert args.improve and args.closed
    assert args.ends == "both" and args.cap_style == "fan"
    with pytest.raises(SystemExit):
        build_parser().parse_args(["mesh", "--slices", "a.npz", "--stl", "b.stl", "--method", "spline"])


def test_mesh_command(tmp_path, capsys):
    slices = tmp_path / "slices.npz"
    save_rois({"tube": [_ellipse(12, 5.0, 3.0, 4.0 * k) for k in range(4)]}, slices)
    stl = tmp_path / "out" / "tube.stl"
    main(["mesh", "--slices", str(slices), "--stl", str(stl), "--method", "arclength", "--cap-style", "delaunay"])

    out = capsys.readouterr().out
    assert "[mesh] volume=" in out
    loaded = trimesh.load(str(stl), force="mesh")
    assert loaded.is_watertight
    assert loaded.volume > 0.0


def test_frame_command(tmp_path):
    sag_path, ax_path = _write_specimen(tmp_path)
    out = tmp_path / "result" / "frame.npz"
    stl = tmp_path / "result" / "final.stl"
    figs = tmp_path / "figs"
    main([
        "frame",
        "--sagittal", str(sag_path),
        "--axial", str(ax_path),
        "--axial-roi", "axial",
        "--out", str(out),
        "--stl", str(stl),
        "--figures", str(figs),
    ])
    res = load_frame_npz(out)
    assert res.stage == "terminal"
    np.testing.assert_allclose(res.frame.rotation @ res.frame.rotation.T, np.eye(3), atol=1e-9)
    assert stl.exists()
    assert (figs / "ridge_fit.png").exists()
    assert (figs / "stitch_000.png").exists()


def test_frame_command_needs_roi_for_multi_roi_file(tmp_path):
    from slicemesh.errors import InputError

    sag_path, ax_path = _write_specimen(tmp_path)
    with pytest.raises(InputError):
        main(["frame", "--sagittal", str(sag_path), "--axial", str(ax_path), "--out", str(tmp_path / "f.npz")])
