import numpy as np

from slicemesh.frame.pipeline import compute_frame
from slicemesh.meshing.stitch import build_mesh
from slicemesh.models import FrameParams, MeshParams
from slicemesh.visualize.figures import FigureSink


def _stack(n_slices=3, n_pts=10):
    t = 2.0 * np.pi * np.arange(n_pts) / n_pts
    return [np.column_stack([4.0 * np.cos(t), 2.0 * np.sin(t), np.full(n_pts, 3.0 * k)]) for k in range(n_slices)]


def test_sink_writes_one_figure_per_pair(tmp_path):
    sink = FigureSink(tmp_path / "figs", dpi=60)
    build_mesh(_stack(), MeshParams(plot=True), sink=sink)
    names = sorted(p.name for p in sink.written)
    assert names == ["stitch_000.png", "stitch_001.png"]
    for p in sink.written:
        assert p.exists() and p.stat().st_size > 0


def test_sink_ignores_unknown_stages(tmp_path):
    sink = FigureSink(tmp_path, dpi=60)
    sink("something_else", {})
    assert sink.written == []


def test_frame_figures(tmp_path):
    t = 2.0 * np.pi * np.arange(12) / 12
    sagittal = [
        np.column_stack([np.full(12, x), 4.0 * np.cos(t), 9.0 * np.sin(t)])
        for x in (-4.0, -2.0, 0.0, 2.0, 4.0)
    ]
    axial = [np.column_stack([6.0 * np.cos(t), 3.0 * np.sin(t), np.full(12, z)]) for z in (-6.0, -2.0, 2.0, 6.0)]
    sink = FigureSink(tmp_path, dpi=60)
    params = FrameParams(plot=True, mesh=MeshParams(plot=True))
    compute_frame(sagittal, axial, params=params, sink=sink)
    names = [p.name for p in sink.written]
    assert names[-1] == "ridge_fit.png"
    assert len(names) == 5
    assert (tmp_path / "ridge_fit.png").exists()
