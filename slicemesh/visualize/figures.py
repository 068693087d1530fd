"""
Debug figures written to disk from the pipeline's sink callbacks.

The sink only looks at the data it is given; nothing it does feeds back into
the computation.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import matplotlib

matplotlib.use("Agg", force=True)
matplotlib.rcParams["figure.facecolor"] = "white"
matplotlib.rcParams["savefig.facecolor"] = "white"

import matplotlib.pyplot as plt
import numpy as np


def plot_stitch_pair(payload: Dict[str, Any], path: str | Path, dpi: int = 150) -> None:
    """Parameter-space triangulation of one slice pair with point and triangle numbers."""
    xt = np.asarray(payload["xt"], dtype=float)
    yt = np.asarray(payload["yt"], dtype=float)
    tri = np.asarray(payload["simplices"], dtype=int)

    fig, ax = plt.subplots(figsize=(4.5, 7.0))
    ax.triplot(xt, yt, tri, color="#4d4d4d", lw=0.8)
    ax.plot(xt, yt, "k.", ms=4)
    if xt.size <= 80:
        for i, (x, y) in enumerate(zip(xt, yt)):
            ax.text(x, y, str(i), color="tab:blue", fontsize=7)
        cx = xt[tri].mean(axis=1)
        cy = yt[tri].mean(axis=1)
        for i, (x, y) in enumerate(zip(cx, cy)):
            ax.text(x, y, str(i), color="tab:red", fontsize=6, ha="center", va="center")
    k = int(payload.get("index", 0))
    label = "angle (rad)" if payload.get("method", "angular") == "angular" else "arclength (mm)"
    ax.set_xlabel("slice separation (mm)")
    ax.set_ylabel(label)
    ax.set_title(f"Slices {k} and {k + 1}")
    fig.tight_layout()
    fig.savefig(path, dpi=dpi)
    plt.close(fig)


def plot_ridge_fit(payload: Dict[str, Any], path: str | Path, dpi: int = 150) -> None:
    """Ridge candidates, kept points and the fitted line in two orthogonal views."""
    cand = np.asarray(payload["candidates"], dtype=float)
    kept = np.asarray(payload["points"], dtype=float)
    p0 = np.asarray(payload["line_point"], dtype=float)
    v = np.asarray(payload["line_direction"], dtype=float)

    s = (kept - p0) @ v
    half = 0.6 * (s.max() - s.min()) if s.size else 1.0
    line = p0[None, :] + np.linspace(-half, half, 2)[:, None] * v[None, :]

    fig, axes = plt.subplots(1, 2, figsize=(9.0, 5.0))
    for ax, (i, j) in zip(axes, [(0, 2), (1, 2)]):
        ax.plot(cand[:, i], cand[:, j], "s", mfc="none", mec="tab:red", ms=6, label="candidates")
        ax.plot(kept[:, i], kept[:, j], "o", mfc="none", mec="tab:green", ms=6, label="kept")
        ax.plot(line[:, i], line[:, j], "-", color="tab:blue", lw=2, label="fit")
        ax.set_xlabel("XYZ"[i] + " (mm)")
        ax.set_ylabel("XYZ"[j] + " (mm)")
        ax.set_aspect("equal", adjustable="datalim")
    axes[0].legend(loc="best", fontsize=8)
    fig.suptitle("Ridge points")
    fig.tight_layout()
    fig.savefig(path, dpi=dpi)
    plt.close(fig)


class FigureSink:
    """Callable ``sink(stage, payload)`` that writes one PNG per callback into ``out_dir``."""

    def __init__(self, out_dir: str | Path, dpi: int = 150):
        self.out_dir = Path(out_dir)
        self.out_dir.mkdir(parents=True, exist_ok=True)
        self.dpi = int(dpi)
        self.written: List[Path] = []
        self._pairs = 0

    def __call__(self, stage: str, payload: Dict[str, Any]) -> None:
        if stage == "stitch_pair":
            # index restarts for every stack meshed through the same sink
            path = self.out_dir / f"stitch_{self._pairs:03d}.png"
            self._pairs += 1
            plot_stitch_pair(payload, path, dpi=self.dpi)
        elif stage == "ridge_fit":
            path = self.out_dir / "ridge_fit.png"
            plot_ridge_fit(payload, path, dpi=self.dpi)
        else:
            return
        self.written.append(path)
