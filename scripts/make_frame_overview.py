#!/usr/bin/env python3
"""Render a synthetic specimen in its source frame and in the computed anatomical frame."""

from __future__ import annotations

from pathlib import Path

import numpy as np

import matplotlib

matplotlib.use("Agg", force=True)
import matplotlib.pyplot as plt
from matplotlib import colors
from mpl_toolkits.mplot3d.art3d import Poly3DCollection
from scipy.spatial.transform import Rotation

from slicemesh.frame.pipeline import compute_frame
from slicemesh.io import save_frame_npz
from slicemesh.models import FrameParams, MeshParams
from slicemesh.visualize.figures import FigureSink

REPO_ROOT = Path(__file__).resolve().parent.parent
OUTPUT_DIR = REPO_ROOT / "figures"
OUTPUT_OVERVIEW_PATH = OUTPUT_DIR / "figure_frame_overview.png"
OUTPUT_RESULT_PATH = OUTPUT_DIR / "frame_result.npz"

SPECIMEN_PARAMS = dict(
    semi_axes=(22.0, 11.0, 32.0),
    sagittal_slices=11,
    axial_slices=10,
    points_per_slice=36,
    # tilt of the specimen in the scanner frame (degrees, xyz Euler)
    tilt=(8.0, -5.0, 12.0),
    offset=(40.0, -15.0, 120.0),
    noise=0.15,
    seed=3,
)

FIGURE_PARAMS = dict(
    dpi=300,
    figsize=(13.0, 6.5),
    view=(22.0, -60.0),
)


def _specimen(params: dict) -> tuple[list[np.ndarray], list[np.ndarray]]:
    a, b, c = params["semi_axes"]
    n = int(params["points_per_slice"])
    t = 2.0 * np.pi * np.arange(n) / n
    rng = np.random.default_rng(params["seed"])
    R = Rotation.from_euler("xyz", params["tilt"], degrees=True).as_matrix()
    off = np.asarray(params["offset"], dtype=float)

    def place(P: np.ndarray) -> np.ndarray:
        P = P + params["noise"] * rng.standard_normal(P.shape)
        return P @ R.T + off

    sagittal = []
    for x in np.linspace(-0.8 * a, 0.8 * a, int(params["sagittal_slices"])):
        s = np.sqrt(1.0 - (x / a) ** 2)
        sagittal.append(place(np.column_stack([np.full(n, x), b * s * np.cos(t), c * s * np.sin(t)])))

    axial = []
    for z in np.linspace(-0.6 * c, 0.6 * c, int(params["axial_slices"])):
        s = np.sqrt(1.0 - (z / c) ** 2)
        axial.append(place(np.column_stack([0.8 * a * s * np.cos(t), 0.8 * b * s * np.sin(t), np.full(n, z)])))
    return sagittal, axial


def _plot_mesh(ax, vertices: np.ndarray, faces: np.ndarray, *, facecolor: str, alpha: float, edgecolor: str) -> None:
    verts = np.asarray(vertices, dtype=float)
    tris = np.asarray(faces, dtype=np.int32)
    if verts.size == 0 or tris.size == 0:
        return
    collection = Poly3DCollection(verts[tris])
    collection.set_facecolor(colors.to_rgba(facecolor, alpha=alpha))
    collection.set_edgecolor(colors.to_rgba(edgecolor, alpha=min(1.0, 2.0 * alpha)))
    collection.set_linewidth(0.15)
    ax.add_collection3d(collection)


def _apply_bounds(ax, points: np.ndarray, pad_fraction: float = 0.12) -> None:
    lo, hi = points.min(axis=0), points.max(axis=0)
    center = 0.5 * (lo + hi)
    radius = 0.5 * float(np.max(hi - lo)) * (1.0 + pad_fraction)
    for idx, axis in enumerate("xyz"):
        getattr(ax, f"set_{axis}lim")(center[idx] - radius, center[idx] + radius)
    ax.set_box_aspect((1.0, 1.0, 1.0))


def _draw_axes(ax, origin: np.ndarray, rotation: np.ndarray, length: float) -> None:
    for k, color in enumerate(("tab:red", "tab:green", "tab:blue")):
        tip = origin + length * rotation[:, k]
        ax.plot3D([origin[0], tip[0]], [origin[1], tip[1]], [origin[2], tip[2]], color=color, linewidth=2.2)


def main() -> None:
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    sagittal, axial = _specimen(SPECIMEN_PARAMS)

    sink = FigureSink(OUTPUT_DIR / "debug", dpi=120)
    params = FrameParams(right=True, mesh=MeshParams(plot=False), plot=True)
    result = compute_frame(sagittal, axial, params=params, sink=sink)
    save_frame_npz(result, OUTPUT_RESULT_PATH)

    tilt_true = Rotation.from_euler("xyz", SPECIMEN_PARAMS["tilt"], degrees=True).as_matrix()
    print(f"volume = {result.mass.volume:.1f} mm^3")
    print(f"origin = {np.round(result.frame.origin, 3).tolist()} (true {list(SPECIMEN_PARAMS['offset'])})")
    print(f"principal axis = {np.round(result.principal_axis, 4).tolist()}")
    print(f"|principal axis . true y| = {abs(result.principal_axis @ tilt_true[:, 1]):.5f}")
    print(f"removed ridge slices = {result.removed_slices.tolist()}")

    mesh = result.stitch.mesh
    length = 0.5 * float(SPECIMEN_PARAMS["semi_axes"][0])

    fig = plt.figure(figsize=FIGURE_PARAMS["figsize"], dpi=FIGURE_PARAMS["dpi"])
    ax_src = fig.add_subplot(1, 2, 1, projection="3d")
    ax_fin = fig.add_subplot(1, 2, 2, projection="3d")

    _plot_mesh(ax_src, mesh.vertices, mesh.faces, facecolor="#6baed6", alpha=0.18, edgecolor="#4682b4")
    ridge_src = result.frame.inverse_transform(result.ridge.points @ result.rotation2)
    ax_src.scatter(ridge_src[:, 0], ridge_src[:, 1], ridge_src[:, 2], color="#ff8c00", s=10)
    _draw_axes(ax_src, result.frame.origin, result.frame.rotation, length)
    _apply_bounds(ax_src, mesh.vertices)
    ax_src.view_init(*FIGURE_PARAMS["view"])
    ax_src.set_title("Source frame", pad=12.0)

    final = result.mesh_final
    _plot_mesh(ax_fin, final.vertices, final.faces, facecolor="#ffb347", alpha=0.25, edgecolor="#d17d00")
    ridge_fin = result.ridge.points @ result.rotation2
    ax_fin.scatter(ridge_fin[:, 0], ridge_fin[:, 1], ridge_fin[:, 2], color="#2ca02c", s=10)
    p0, v = result.ridge_point_final, result.ridge_direction_final
    s = (ridge_fin - p0) @ v
    line = p0[None, :] + np.array([s.min(), s.max()])[:, None] * v[None, :]
    ax_fin.plot3D(line[:, 0], line[:, 1], line[:, 2], color="#2ca02c", linewidth=2.0)
    _draw_axes(ax_fin, np.zeros(3), np.eye(3), length)
    _apply_bounds(ax_fin, final.vertices)
    ax_fin.view_init(*FIGURE_PARAMS["view"])
    ax_fin.set_title("Anatomical frame", pad=12.0)

    fig.savefig(OUTPUT_OVERVIEW_PATH, dpi=FIGURE_PARAMS["dpi"], facecolor="white", bbox_inches="tight")
    plt.close(fig)

    print(f"Wrote {OUTPUT_OVERVIEW_PATH.resolve()}")
    print(f"Wrote {OUTPUT_RESULT_PATH.resolve()}")


if __name__ == "__main__":
    main()
