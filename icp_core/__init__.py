"""
icp_core: numerical core of rigid ICP registration.

Subpackages:
- common/: devices, errors, constants, parameter models, SE(3) conversions
- geometry/: AttributeMap, PointCloud, LineSet
- registration/: correspondence filtering, robust kernels, estimators

The outer ICP loop (nearest-neighbour search, convergence) is not part of
this package; callers drive the estimators with their own correspondences.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = [
    "AttributeMap",
    "PointCloud",
    "LineSet",
    "RobustKernel",
    "RobustKernelType",
    "TransformationEstimation",
    "TransformationEstimationType",
    "TransformationEstimationPointToPoint",
    "TransformationEstimationPointToPlane",
    "TransformationEstimationForColoredICP",
    "make_estimation",
    "load_params",
]

_LAZY_ATTRS: dict[str, tuple[str, str]] = {
    "AttributeMap": ("icp_core.geometry.attribute_map", "AttributeMap"),
    "PointCloud": ("icp_core.geometry.pointcloud", "PointCloud"),
    "LineSet": ("icp_core.geometry.lineset", "LineSet"),
    "RobustKernel": ("icp_core.registration.robust_kernel", "RobustKernel"),
    "RobustKernelType": ("icp_core.registration.robust_kernel", "RobustKernelType"),
    "TransformationEstimation": ("icp_core.registration.estimation", "TransformationEstimation"),
    "TransformationEstimationType": ("icp_core.registration.estimation", "TransformationEstimationType"),
    "TransformationEstimationPointToPoint": (
        "icp_core.registration.estimation",
        "TransformationEstimationPointToPoint",
    ),
    "TransformationEstimationPointToPlane": (
        "icp_core.registration.estimation",
        "TransformationEstimationPointToPlane",
    ),
    "TransformationEstimationForColoredICP": (
        "icp_core.registration.estimation",
        "TransformationEstimationForColoredICP",
    ),
    "make_estimation": ("icp_core.registration.estimation", "make_estimation"),
    "load_params": ("icp_core.common.param_models", "load_params"),
}


def __getattr__(name: str) -> Any:
    target = _LAZY_ATTRS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = target
    return getattr(import_module(module_name), attr_name)


def __dir__() -> list[str]:
    return sorted(set(globals().keys()) | set(_LAZY_ATTRS.keys()))
