"""
Exception and warning types.

Fatal conditions raise a ``SliceMeshError`` subclass and abort the current
specimen. Recoverable conditions are ``UserWarning`` subclasses emitted with
``warnings.warn`` and collected on the result objects.
"""
from __future__ import annotations


class SliceMeshError(Exception):
    """Base class for fatal slicemesh errors."""


class InputError(SliceMeshError, ValueError):
    """Malformed or missing input data."""


class InsufficientDataError(InputError):
    """Too few points for a line or plane fit."""


class InputShapeError(InputError):
    """Coordinate or connectivity arrays with the wrong shape or index range."""


class GeometryDegenerateError(SliceMeshError, RuntimeError):
    """Near-zero determinants, zero-length vectors or unlocatable reference points."""


class ConvergenceFailure(SliceMeshError, RuntimeError):
    """The robust ridge fit would reject every remaining slice."""


class OrderingAmbiguity(UserWarning):
    """Point ordering of adjacent slices could not be reconciled."""


class MeshRepairFailure(UserWarning):
    """The mesh repair step failed; the unrepaired mesh is kept."""


class GeometryWarning(UserWarning):
    """Numerically questionable intersection results."""
