"""
Rigid transform conversions: 4x4 matrix <-> (R, t) <-> 6D pose.

Representations:
- Transformation: (4, 4) float64 [[R, t], [0, 0, 0, 1]], R in SO(3)
- (R, t): (3, 3) rotation and (3,) translation
- Pose: (6,) [alpha, beta, gamma, tx, ty, tz] with
        R = Rz(gamma) @ Ry(beta) @ Rx(alpha)

The pose is the parameterization solved for by the linearized estimators.
To first order R(alpha, beta, gamma) = I + [(alpha, beta, gamma)]_x, which is
``small_angle_rotation``; ``pose_to_transformation`` returns the exact
rotation so the result stays orthonormal for any step size.

All outputs are float64 on the host device, whatever the input precision.
Scale is not modelled: inputs with scale != 1 or a non-zero bottom row are
assumed not to occur and are not validated.

Reference:
- Barfoot (2017): State Estimation for Robotics
- Low (2004): Linear Least-Squares Optimization for Point-to-Plane ICP
"""

from __future__ import annotations

from typing import Any, Tuple

from icp_core.common import constants
from icp_core.common.device import host_device
from icp_core.common.errors import ShapeMismatchError
from icp_core.common.jax_init import jax, jnp


def _as_f64(value: Any, shape: Tuple[int, ...], name: str) -> jnp.ndarray:
    array = jnp.asarray(value, dtype=jnp.float64)
    if array.size == 3 and shape == (3,):
        array = array.reshape(3)
    if tuple(array.shape) != shape:
        raise ShapeMismatchError(f"{name}: expected shape {shape}, got {tuple(array.shape)}")
    return array


def _to_host(array: jnp.ndarray) -> jnp.ndarray:
    return jax.device_put(array, host_device())


# =============================================================================
# SO(3)
# =============================================================================


def skew(v: Any) -> jnp.ndarray:
    """Skew-symmetric matrix from 3-vector: [v]x @ w = v x w."""
    v = _as_f64(v, (3,), "skew")
    return jnp.array([
        [0.0, -v[2], v[1]],
        [v[2], 0.0, -v[0]],
        [-v[1], v[0], 0.0],
    ])


def so3_exp(rotvec: Any) -> jnp.ndarray:
    """
    Rotation vector (axis-angle) to rotation matrix via Rodrigues' formula:
    R = I + sin(theta) K + (1 - cos(theta)) K^2
    """
    rotvec = _as_f64(rotvec, (3,), "so3_exp")
    theta = float(jnp.linalg.norm(rotvec))
    if theta < constants.SMALL_ANGLE_THRESHOLD:
        return _to_host(jnp.eye(3, dtype=jnp.float64) + skew(rotvec))
    K = skew(rotvec / theta)
    R = jnp.eye(3, dtype=jnp.float64) + jnp.sin(theta) * K + (1.0 - jnp.cos(theta)) * (K @ K)
    return _to_host(R)


def so3_log(R: Any) -> jnp.ndarray:
    """
    Rotation matrix to rotation vector.

    theta comes from atan2(|w| / 2, (tr(R) - 1) / 2), which stays accurate
    near 0 and pi where arccos does not. Past pi/2 the axis is read from the
    symmetric part (R + R^T) / 2 - cos(theta) I = (1 - cos(theta)) a a^T and
    its sign from the skew part w = 2 sin(theta) a.
    """
    R = _as_f64(R, (3, 3), "so3_log")
    w = jnp.array([R[2, 1] - R[1, 2], R[0, 2] - R[2, 0], R[1, 0] - R[0, 1]])
    cos_theta = jnp.clip((jnp.trace(R) - 1.0) / 2.0, -1.0, 1.0)
    sin_theta = jnp.linalg.norm(w) / 2.0
    theta = float(jnp.arctan2(sin_theta, cos_theta))

    if theta < constants.SMALL_ANGLE_THRESHOLD:
        return _to_host(w / 2.0)

    if theta <= constants.SO3_LOG_SYMMETRIC_AXIS_ANGLE:
        return _to_host(w / (2.0 * sin_theta) * theta)

    B = 0.5 * (R + R.T) - cos_theta * jnp.eye(3, dtype=jnp.float64)
    i = int(jnp.argmax(jnp.diag(B)))
    axis = B[:, i] / jnp.linalg.norm(B[:, i])
    if float(jnp.dot(axis, w)) < 0.0:
        axis = -axis
    return _to_host(axis * theta)


def small_angle_rotation(angles: Any) -> jnp.ndarray:
    """First-order rotation I + [angles]_x (not orthonormal for finite angles)."""
    angles = _as_f64(angles, (3,), "small_angle_rotation")
    return _to_host(jnp.eye(3, dtype=jnp.float64) + skew(angles))


# =============================================================================
# SE(3) matrix <-> (R, t)
# =============================================================================


def rt_to_transformation(R: Any, t: Any) -> jnp.ndarray:
    """Assemble a (4, 4) float64 transformation from rotation and translation."""
    R = _as_f64(R, (3, 3), "rt_to_transformation")
    t = _as_f64(t, (3,), "rt_to_transformation")
    T = jnp.eye(4, dtype=jnp.float64)
    T = T.at[:3, :3].set(R)
    T = T.at[:3, 3].set(t)
    return _to_host(T)


def transformation_to_rt(T: Any) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """Split a (4, 4) transformation into (R (3, 3), t (3,))."""
    T = _as_f64(T, (4, 4), "transformation_to_rt")
    return _to_host(T[:3, :3]), _to_host(T[:3, 3])


def transformation_inverse(T: Any) -> jnp.ndarray:
    """[[R, t], [0, 1]]^-1 = [[R^T, -R^T t], [0, 1]]."""
    R, t = transformation_to_rt(T)
    return rt_to_transformation(R.T, -R.T @ t)


def transformation_compose(a: Any, b: Any) -> jnp.ndarray:
    """T_a @ T_b (apply b first)."""
    a = _as_f64(a, (4, 4), "transformation_compose")
    b = _as_f64(b, (4, 4), "transformation_compose")
    return _to_host(a @ b)


# =============================================================================
# 6D pose <-> SE(3) matrix
# =============================================================================


def pose_to_transformation(pose: Any) -> jnp.ndarray:
    """
    Pose [alpha, beta, gamma, tx, ty, tz] to (4, 4) transformation.

    R = Rz(gamma) @ Ry(beta) @ Rx(alpha), t = (tx, ty, tz).
    """
    pose = _as_f64(pose, (6,), "pose_to_transformation")
    ca, cb, cg = jnp.cos(pose[0]), jnp.cos(pose[1]), jnp.cos(pose[2])
    sa, sb, sg = jnp.sin(pose[0]), jnp.sin(pose[1]), jnp.sin(pose[2])
    R = jnp.array([
        [cg * cb, -sg * ca + cg * sb * sa, sg * sa + cg * sb * ca],
        [sg * cb, cg * ca + sg * sb * sa, -cg * sa + sg * sb * ca],
        [-sb, cb * sa, cb * ca],
    ])
    return rt_to_transformation(R, pose[3:6])


def transformation_to_pose(T: Any) -> jnp.ndarray:
    """
    (4, 4) transformation to pose [alpha, beta, gamma, tx, ty, tz].

    Inverse of ``pose_to_transformation``. At gimbal lock (|beta| = pi/2)
    gamma is fixed to 0 and the remaining rotation goes into alpha.
    """
    T = _as_f64(T, (4, 4), "transformation_to_pose")
    sy = float(jnp.sqrt(T[0, 0] * T[0, 0] + T[1, 0] * T[1, 0]))
    if sy >= constants.POSE_GIMBAL_EPSILON:
        alpha = jnp.arctan2(T[2, 1], T[2, 2])
        beta = jnp.arctan2(-T[2, 0], sy)
        gamma = jnp.arctan2(T[1, 0], T[0, 0])
    else:
        alpha = jnp.arctan2(-T[1, 2], T[1, 1])
        beta = jnp.arctan2(-T[2, 0], sy)
        gamma = jnp.array(0.0, dtype=jnp.float64)
    pose = jnp.concatenate([jnp.stack([alpha, beta, gamma]), T[:3, 3]])
    return _to_host(pose)
