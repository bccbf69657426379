"""
icp_core constants only.

=============================================================================
CONVENTION QUICK REFERENCE
=============================================================================

ATTRIBUTE NAMES:
  Point attributes are keyed by "positions" (primary), "normals", "colors",
  "color_gradients", "labels".
  Line attributes are keyed by "indices" (primary), "colors", "labels".

CORRESPONDENCES:
  (N,) or (N, 1) int64, one entry per source point.
  Entry j in [0, M) matches target point j; -1 means "no match".

POSES:
  6D pose: [alpha, beta, gamma, tx, ty, tz] (rotation first, radians)
  Rotation: R = Rz(gamma) @ Ry(beta) @ Rx(alpha)
  Transform: p_target = R @ p_source + t

TRANSFORMS:
  (4, 4) float64, row-major, [[R, t], [0, 0, 0, 1]], host (CPU) device.
=============================================================================
"""

# =============================================================================
# ATTRIBUTE KEYS
# =============================================================================

POINT_PRIMARY_KEY = "positions"
LINE_PRIMARY_KEY = "indices"

ATTR_POSITIONS = "positions"
ATTR_NORMALS = "normals"
ATTR_COLORS = "colors"
ATTR_COLOR_GRADIENTS = "color_gradients"
ATTR_INDICES = "indices"

# =============================================================================
# CORRESPONDENCES
# =============================================================================

CORRESPONDENCE_SENTINEL = -1  # "no match found"
CORRESPONDENCE_DTYPE = "int64"

# =============================================================================
# DEVICES / DTYPES
# =============================================================================

DEFAULT_DEVICE = "CPU:0"
DEFAULT_FLOAT_DTYPE = "float32"
DEFAULT_INT_DTYPE = "int64"

# Platform aliases accepted in "PLATFORM:INDEX" device strings.
# JAX registers CUDA devices under the "gpu" platform name.
DEVICE_PLATFORM_ALIASES = {
    "cpu": "cpu",
    "cuda": "gpu",
    "gpu": "gpu",
    "tpu": "tpu",
}

# =============================================================================
# ESTIMATION
# =============================================================================

# Colored ICP geometric/photometric blend (Park et al. 2017 default)
LAMBDA_GEOMETRIC_DEFAULT = 0.968

# Normal equations are rejected when eig_min <= rcond * eig_max.
# 6x6 systems in float64: 1e-12 leaves ~4 significant digits in the solve.
ILL_CONDITIONED_RCOND_DEFAULT = 1e-12

# Robust kernel scale (residual units, meters for geometric terms)
ROBUST_KERNEL_SCALE_DEFAULT = 1.0

# L1 kernel weight guard: 1 / max(|r|, eps)
ROBUST_KERNEL_L1_EPS = 1e-12

# =============================================================================
# TRANSFORM CONVERSIONS
# =============================================================================

# Gimbal lock threshold for transformation_to_pose: sqrt(R00^2 + R10^2)
POSE_GIMBAL_EPSILON = 1e-6

# Small angle threshold for so3_exp / so3_log Taylor branches
SMALL_ANGLE_THRESHOLD = 1e-7

# so3_log reads the rotation axis from the symmetric part above this angle
# (pi / 2), where sin(theta) shrinks and the skew part loses precision
SO3_LOG_SYMMETRIC_AXIS_ANGLE = 1.5707963267948966
