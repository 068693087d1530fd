#!/usr/bin/env python
from __future__ import annotations

import argparse
import os
from pathlib import Path

import numpy as np

from slicemesh.frame.pipeline import compute_frame
from slicemesh.geom.inertia import mass_properties
from slicemesh.io import load_slices, save_frame_npz, save_stl
from slicemesh.meshing.stitch import build_mesh
from slicemesh.models import FrameParams, MeshParams


def _ensure_parent(path: str | os.PathLike[str]) -> None:
    parent = Path(path).expanduser().parent
    if parent != Path('.'):
        parent.mkdir(parents=True, exist_ok=True)


def _figure_sink(out_dir: str | None):
    if not out_dir:
        return None
    from slicemesh.visualize.figures import FigureSink
    return FigureSink(out_dir)


def _add_mesh_options(sub: argparse.ArgumentParser) -> None:
    sub.add_argument("--method", choices=["angular", "arclength"], default="angular", help="Slice parameterization used for stitching.")
    sub.add_argument("--tol", type=float, default=0.1, help="Dot-product tolerance for the arclength direction check.")
    sub.add_argument("--no-improve", dest="improve", action="store_false", help="Skip the mesh repair step.")
    sub.set_defaults(improve=True)
    sub.add_argument("--open", dest="closed", action="store_false", help="Slices are open polylines (no closing edge, no caps).")
    sub.set_defaults(closed=True)
    sub.add_argument("--ends", choices=["none", "top", "bottom", "both"], default="both", help="End caps for closed slices.")
    sub.add_argument("--cap-style", choices=["fan", "delaunay"], default="fan", help="End cap triangulation.")


def _add_mesh_arguments(sub: argparse.ArgumentParser) -> None:
    sub.add_argument("--slices", required=True, help="Input slice data NPZ.")
    sub.add_argument("--roi", default=None, help="ROI name inside the slice file (needed when it holds several).")
    sub.add_argument("--stl", required=True, help="Output STL path.")
    _add_mesh_options(sub)
    sub.add_argument("--figures", default=None, help="Directory for parameter-space debug figures.")


def _add_frame_arguments(sub: argparse.ArgumentParser) -> None:
    sub.add_argument("--sagittal", required=True, help="Sagittal slice data NPZ (meshed for inertia).")
    sub.add_argument("--sagittal-roi", default=None, help="ROI name inside the sagittal file.")
    sub.add_argument("--axial", required=True, help="Axial slice data NPZ (ridge points).")
    sub.add_argument("--axial-roi", default=None, help="ROI name inside the axial file.")
    sub.add_argument("--left", action="store_true", help="Left side convention (default: right).")
    sub.add_argument("--threshold", type=float, default=25.0, help="Ridge rejection threshold on mean squared residual (mm^2).")
    sub.add_argument("--ridge-points", type=int, default=3, help="Ridge candidates per axial slice.")
    sub.add_argument("--out", required=True, help="Output NPZ with the frame result.")
    sub.add_argument("--stl", default=None, help="Optional STL of the mesh in the final frame.")
    _add_mesh_options(sub)
    sub.add_argument("--figures", default=None, help="Directory for debug figures.")
    sub.add_argument("--screenshot", default=None, help="Optional PNG of the mesh, ridge and axes (pyvista, off-screen).")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="slicemesh", description="Slice stack meshing and anatomical frame CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    mesh_parser = subparsers.add_parser("mesh", help="Stitch a slice stack into an STL mesh.")
    _add_mesh_arguments(mesh_parser)

    frame_parser = subparsers.add_parser("frame", help="Compute the anatomical coordinate frame of a specimen.")
    _add_frame_arguments(frame_parser)

    return parser


def _mesh_params(args: argparse.Namespace, plot: bool) -> MeshParams:
    params = {
        "method": args.method,
        "tol": float(args.tol),
        "improve": bool(args.improve),
        "closed": bool(args.closed),
        "ends": args.ends,
        "cap_style": args.cap_style,
        "plot": plot,
    }
    return MeshParams.from_dict(params)


def _run_mesh(args: argparse.Namespace) -> None:
    stack = load_slices(args.slices, roi=args.roi)
    sink = _figure_sink(args.figures)
    result = build_mesh(stack, _mesh_params(args, plot=sink is not None), sink=sink)
    mass = mass_properties(result.mesh.vertices, result.mesh.faces)
    print(f"[mesh] volume={mass.volume:.3f} mm^3")
    print(f"[mesh] centroid={np.round(mass.centroid, 3).tolist()}")
    print(f"[mesh] inertia about centroid:\n{np.array2string(mass.inertia_cg, precision=3)}")

    _ensure_parent(args.stl)
    save_stl(result.mesh, args.stl)
    print(f"[mesh] wrote {args.stl}")


def _run_frame(args: argparse.Namespace) -> None:
    sagittal = load_slices(args.sagittal, roi=args.sagittal_roi)
    axial = load_slices(args.axial, roi=args.axial_roi)
    sink = _figure_sink(args.figures)
    params = FrameParams(
        right=not args.left,
        ridge_points=int(args.ridge_points),
        threshold=float(args.threshold),
        mesh=_mesh_params(args, plot=sink is not None),
        plot=sink is not None,
    )
    result = compute_frame(sagittal, axial, params=params, sink=sink)
    print(f"[frame] origin={np.round(result.frame.origin, 3).tolist()}")
    print(f"[frame] rotation:\n{np.array2string(result.frame.rotation, precision=4)}")
    print(f"[frame] removed ridge slices: {result.removed_slices.tolist()}")

    _ensure_parent(args.out)
    save_frame_npz(result, args.out)
    print(f"[frame] wrote {args.out}")

    if args.stl:
        _ensure_parent(args.stl)
        save_stl(result.mesh_final, args.stl)
        print(f"[frame] wrote {args.stl}")

    if args.screenshot:
        from slicemesh.visualize.debug import show_frame_overlay
        _ensure_parent(args.screenshot)
        ridge_final = result.ridge.points @ result.rotation2
        show_frame_overlay(
            result.mesh_final,
            ridge_points=ridge_final,
            line=(result.ridge_point_final, result.ridge_direction_final),
            screenshot=args.screenshot,
        )
        print(f"[frame] wrote {args.screenshot}")


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "mesh":
        _run_mesh(args)
    elif args.command == "frame":
        _run_frame(args)
    else:
        parser.error(f"Unknown command: {args.command}")


if __name__ == "__main__":
    main()
