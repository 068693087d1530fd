"""
slicemesh: surface meshes, mass properties and anatomical frames from stacks of digitized contour slices.

This package exposes:
- Core dataclasses (Mesh3D, SliceStack, ParameterizedSlice, MassProperties, CoordinateFrame, RidgePointSet)
- Parameter and result types (MeshParams, StitchResult, FrameParams, FrameResult)
- The exception hierarchy rooted at SliceMeshError
"""

from .errors import (
    SliceMeshError,
    InputError,
    InsufficientDataError,
    InputShapeError,
    GeometryDegenerateError,
    ConvergenceFailure,
    OrderingAmbiguity,
    MeshRepairFailure,
    GeometryWarning,
)
from .models import (
    Mesh3D,
    SliceStack,
    ParameterizedSlice,
    MassProperties,
    CoordinateFrame,
    RidgePointSet,
    MeshParams,
    StitchResult,
    FrameParams,
    FrameResult,
)

__all__ = [
    "SliceMeshError",
    "InputError",
    "InsufficientDataError",
    "InputShapeError",
    "GeometryDegenerateError",
    "ConvergenceFailure",
    "OrderingAmbiguity",
    "MeshRepairFailure",
    "GeometryWarning",
    "Mesh3D",
    "SliceStack",
    "ParameterizedSlice",
    "MassProperties",
    "CoordinateFrame",
    "RidgePointSet",
    "MeshParams",
    "StitchResult",
    "FrameParams",
    "FrameResult",
]

__version__ = "0.1.0"
