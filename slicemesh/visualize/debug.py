from __future__ import annotations
import numpy as np
import pyvista as pv

from ..models import Mesh3D


def _mesh3d_to_pv(mesh: Mesh3D) -> pv.PolyData:
    V = np.asarray(mesh.vertices, dtype=float)
    F = np.asarray(mesh.faces, dtype=np.int64)
    # PyVista expects a flattened faces array with a leading count per face
    faces = np.hstack([np.full((F.shape[0], 1), 3, dtype=np.int64), F]).ravel()
    return pv.PolyData(V, faces)


def _segment(p0: np.ndarray, p1: np.ndarray) -> pv.PolyData:
    P = np.vstack([p0, p1]).astype(float)
    return pv.PolyData(P, lines=np.array([2, 0, 1]))


def show_frame_overlay(
    mesh: Mesh3D,
    ridge_points: np.ndarray | None = None,
    line: tuple[np.ndarray, np.ndarray] | None = None,
    screenshot: str | None = "frame_debug.png",
    axis_length: float = 20.0,
    window_size: tuple[int, int] = (1200, 900),
    theme: str = "document",
) -> pv.Plotter:
    """
    Render a mesh expressed in its anatomical frame together with the frame
    axes, the kept ridge points and the fitted ridge line (point, direction).
    If `screenshot` is provided the render is off-screen and saved there.
    """
    pv.set_plot_theme(theme)
    pl = pv.Plotter(off_screen=screenshot is not None, window_size=window_size)

    surf = _mesh3d_to_pv(mesh)
    pl.add_mesh(surf, color="#d9d9d9", smooth_shading=True, opacity=0.6, ambient=0.25, specular=0.2)

    origin = np.zeros(3)
    for axis, color in zip(np.eye(3), ("#e41a1c", "#4daf4a", "#377eb8")):
        pl.add_mesh(_segment(origin, axis_length * axis), color=color, line_width=5)

    if ridge_points is not None and len(ridge_points):
        pl.add_mesh(pv.PolyData(np.asarray(ridge_points, dtype=float)), color="#ff8c00",
                    point_size=10, render_points_as_spheres=True, name="ridge_points")

    if line is not None:
        p0, v = (np.asarray(a, dtype=float).reshape(3) for a in line)
        diag = float(np.linalg.norm(np.ptp(np.asarray(mesh.vertices, dtype=float), axis=0)))
        half = 0.6 * diag
        pl.add_mesh(_segment(p0 - half * v, p0 + half * v), color="#00a3ff", line_width=4, name="ridge_line")

    pl.add_axes(line_width=2)
    pl.camera.zoom(1.2)

    if screenshot:
        pl.show(screenshot=screenshot, auto_close=True)
    else:
        pl.show()

    return pl
