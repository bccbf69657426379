"""
Rigid registration estimators.

Correspondences come from the caller's nearest-neighbour search; this package
filters them and turns matched pairs into an RMSE and a 4x4 transform.
"""

from icp_core.registration.correspondences import CorrespondenceIndices, select_valid_correspondences
from icp_core.registration.estimation import (
    TransformationEstimation,
    TransformationEstimationForColoredICP,
    TransformationEstimationPointToPlane,
    TransformationEstimationPointToPoint,
    TransformationEstimationType,
    make_estimation,
)
from icp_core.registration.robust_kernel import RobustKernel, RobustKernelType

__all__ = [
    "CorrespondenceIndices",
    "select_valid_correspondences",
    "TransformationEstimation",
    "TransformationEstimationForColoredICP",
    "TransformationEstimationPointToPlane",
    "TransformationEstimationPointToPoint",
    "TransformationEstimationType",
    "make_estimation",
    "RobustKernel",
    "RobustKernelType",
]
