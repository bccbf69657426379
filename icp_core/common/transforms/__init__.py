"""SE(3) conversions: 4x4 transformation, (R, t) and 6D pose."""

from icp_core.common.transforms.se3 import (
    pose_to_transformation,
    rt_to_transformation,
    skew,
    small_angle_rotation,
    so3_exp,
    so3_log,
    transformation_compose,
    transformation_inverse,
    transformation_to_pose,
    transformation_to_rt,
)

__all__ = [
    "pose_to_transformation",
    "rt_to_transformation",
    "skew",
    "small_angle_rotation",
    "so3_exp",
    "so3_log",
    "transformation_compose",
    "transformation_inverse",
    "transformation_to_pose",
    "transformation_to_rt",
]
