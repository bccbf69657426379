"""
Error taxonomy for icp_core.

Every contract violation is raised synchronously and is deterministic, so
there is nothing to retry. Each class also derives from the builtin exception
a caller would naturally catch for that kind of failure (``KeyError`` for a
missing key, ``TypeError`` for a dtype problem, ...).
"""

from __future__ import annotations


class ICPCoreError(Exception):
    """Base class for all icp_core errors."""


class DeviceMismatchError(ICPCoreError, ValueError):
    """Two tensors taking part in one operation live on different devices."""


class DtypeMismatchError(ICPCoreError, TypeError):
    """Dtype disagreement where strict equality (or a dtype kind) is required."""


class ShapeMismatchError(ICPCoreError, ValueError):
    """Tensor shape is incompatible with the operation."""


class MissingAttributeError(ICPCoreError, LookupError):
    """A required per-point attribute is absent on the source or target."""

    def __init__(self, attribute: str, entity: str, operation: str = ""):
        self.attribute = attribute
        self.entity = entity
        prefix = f"{operation}: " if operation else ""
        super().__init__(f"{prefix}{entity} is missing the {attribute!r} attribute")


class EmptyCorrespondenceSetError(ICPCoreError, ValueError):
    """No valid correspondences remain after sentinel filtering."""


class InvalidCorrespondenceError(ICPCoreError, ValueError):
    """A correspondence points outside the target point range."""


class IllConditionedSystemError(ICPCoreError, ArithmeticError):
    """The linearized normal equations are singular or near singular."""

    def __init__(self, message: str, eig_min: float = float("nan"), eig_max: float = float("nan")):
        self.eig_min = eig_min
        self.eig_max = eig_max
        super().__init__(message)


class KeyNotFoundError(ICPCoreError, KeyError):
    """Reading an attribute that is not stored in the map."""

    def __str__(self) -> str:
        # KeyError.__str__ repr()s the message; keep it readable.
        return str(self.args[0]) if self.args else ""


class InvalidMutationError(ICPCoreError, ValueError):
    """Attribute-map misuse, e.g. erasing the primary key."""


class CapacityError(InvalidMutationError):
    """Growing an attribute whose storage was borrowed with fixed capacity."""


__all__ = [
    "ICPCoreError",
    "DeviceMismatchError",
    "DtypeMismatchError",
    "ShapeMismatchError",
    "MissingAttributeError",
    "EmptyCorrespondenceSetError",
    "InvalidCorrespondenceError",
    "IllConditionedSystemError",
    "KeyNotFoundError",
    "InvalidMutationError",
    "CapacityError",
]
