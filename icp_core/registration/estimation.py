"""
Transformation estimators for rigid ICP.

Given source and target point clouds and a correspondence array (one target
index per source point, -1 for "no match"), each estimator computes

- ``compute_rmse``: a scalar fit-quality metric, and
- ``compute_transformation``: the (4, 4) float64 rigid transform that best
  aligns the source onto the target under its error model.

Variants (closed set, tagged by ``TransformationEstimationType``):

- PointToPoint: closed form (Kabsch / Umeyama via SVD).
- PointToPlane: one Gauss-Newton step on the 6D pose, target normals required.
- ColoredICP: point-to-plane blended with a photometric term (Park et al. 2017),
  target normals, target color gradients and colors on both sides required.

Estimators are pure: inputs are never modified, results are float64 whatever
the input precision, and reductions accumulate in float64. The outer ICP loop
(nearest-neighbour search, convergence) lives with the caller.

Reference:
- Arun, Huang, Blostein (1987); Umeyama (1991)
- Low (2004): Linear Least-Squares Optimization for Point-to-Plane ICP
- Park, Zhou, Koltun (2017): Colored Point Cloud Registration Revisited
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple

from icp_core.common import constants
from icp_core.common.device import assert_device, device_to_string, is_tensor
from icp_core.common.errors import DeviceMismatchError, DtypeMismatchError, MissingAttributeError
from icp_core.common.jax_init import jax, jnp
from icp_core.common.param_models import EstimationParams
from icp_core.common.transforms.se3 import pose_to_transformation, rt_to_transformation
from icp_core.geometry.pointcloud import PointCloud
from icp_core.registration.correspondences import select_valid_correspondences
from icp_core.registration.linear_system import accumulate_normal_equations, solve_pose
from icp_core.registration.robust_kernel import RobustKernel, RobustKernelType

_logger = logging.getLogger(__name__)


class TransformationEstimationType(Enum):
    POINT_TO_POINT = "point_to_point"
    POINT_TO_PLANE = "point_to_plane"
    COLORED_ICP = "colored_icp"


# =============================================================================
# Input validation and gathering
# =============================================================================


@dataclass
class _MatchedPairs:
    """Float64 attribute rows of the K valid correspondences, keyed by side and name."""
    source: Dict[str, jax.Array]
    target: Dict[str, jax.Array]

    @property
    def count(self) -> int:
        return int(self.source[constants.ATTR_POSITIONS].shape[0])


def _gather_pairs(
    operation: str,
    source: PointCloud,
    target: PointCloud,
    correspondences: jax.Array,
    source_attrs: Sequence[str] = (),
    target_attrs: Sequence[str] = (),
) -> _MatchedPairs:
    """
    Check preconditions (attributes, devices, dtypes, correspondences, in that
    order) and gather the matched rows as float64.
    """
    source_keys = (constants.ATTR_POSITIONS,) + tuple(source_attrs)
    target_keys = (constants.ATTR_POSITIONS,) + tuple(target_attrs)

    for entity, cloud, keys in (("source", source, source_keys), ("target", target, target_keys)):
        for key in keys:
            if not cloud.has_point_attr(key):
                raise MissingAttributeError(key, entity, operation)

    if source.device != target.device:
        raise DeviceMismatchError(
            f"{operation}: source is on {device_to_string(source.device)}, "
            f"target is on {device_to_string(target.device)}"
        )
    if is_tensor(correspondences):
        assert_device(correspondences, source.device, f"{operation}: correspondences")

    dtype = source.get_point_positions().dtype
    for entity, cloud, keys in (("source", source, source_keys), ("target", target, target_keys)):
        for key in keys:
            actual = cloud.get_point_attr(key).dtype
            if actual != dtype:
                raise DtypeMismatchError(
                    f"{operation}: {entity} {key!r} has dtype {actual}, expected {dtype} "
                    f"(source positions)"
                )

    indices = select_valid_correspondences(
        correspondences,
        source_length=source.point.primary_length(),
        target_length=target.point.primary_length(),
        device=source.device,
        operation=operation,
    )
    return _MatchedPairs(
        source={key: source.get_point_attr(key)[indices.source].astype(jnp.float64) for key in source_keys},
        target={key: target.get_point_attr(key)[indices.target].astype(jnp.float64) for key in target_keys},
    )


# =============================================================================
# Residual rows
# =============================================================================


def _point_to_plane_rows(ps: jax.Array, pt: jax.Array, nt: jax.Array) -> Tuple[jax.Array, jax.Array]:
    """
    Rows J_i = [ps x nt, nt] (K, 6) and residuals d_i = (ps - pt) . nt (K,).
    """
    d = jnp.sum((ps - pt) * nt, axis=1)
    J = jnp.concatenate([jnp.cross(ps, nt), nt], axis=1)
    return J, d


def _intensity(colors: jax.Array) -> jax.Array:
    return jnp.mean(colors, axis=1)


def _photometric_rows(
    ps: jax.Array,
    pt: jax.Array,
    nt: jax.Array,
    cs: jax.Array,
    ct: jax.Array,
    dit: jax.Array,
    d: jax.Array,
) -> Tuple[jax.Array, jax.Array]:
    """
    Unscaled photometric rows and residuals.

    The source point is projected onto the target tangent plane and the
    target intensity is extrapolated there along the color gradient:

        ps_proj = ps - d nt,   is_proj = dit . (ps_proj - pt) + it
        r_I = is - is_proj,    J_I = [ps x ditM, ditM],  ditM = (dit . nt) nt - dit
    """
    ps_proj = ps - d[:, None] * nt
    is_proj = jnp.sum(dit * (ps_proj - pt), axis=1) + _intensity(ct)
    r = _intensity(cs) - is_proj
    ditM = jnp.sum(dit * nt, axis=1)[:, None] * nt - dit
    J = jnp.concatenate([jnp.cross(ps, ditM), ditM], axis=1)
    return J, r


# =============================================================================
# Estimators
# =============================================================================


class TransformationEstimation(ABC):
    """Base class of the rigid transformation estimators."""

    estimation_type: TransformationEstimationType

    def get_transformation_estimation_type(self) -> TransformationEstimationType:
        return self.estimation_type

    @abstractmethod
    def compute_rmse(self, source: PointCloud, target: PointCloud, correspondences: jax.Array) -> float:
        """Fit-quality metric over the valid correspondences."""

    @abstractmethod
    def compute_transformation(
        self,
        source: PointCloud,
        target: PointCloud,
        correspondences: jax.Array,
    ) -> jax.Array:
        """(4, 4) float64 transform moving ``source`` towards ``target``, on the host device."""


class TransformationEstimationPointToPoint(TransformationEstimation):
    """Point-to-point ICP: minimizes sum ||R ps + t - pt||^2 in closed form."""

    estimation_type = TransformationEstimationType.POINT_TO_POINT

    def compute_rmse(self, source: PointCloud, target: PointCloud, correspondences: jax.Array) -> float:
        pairs = _gather_pairs("PointToPoint.compute_rmse", source, target, correspondences)
        diff = pairs.source[constants.ATTR_POSITIONS] - pairs.target[constants.ATTR_POSITIONS]
        rmse = float(jnp.sqrt(jnp.sum(diff * diff) / pairs.count))
        _logger.debug("PointToPoint.compute_rmse: K=%d rmse=%.6e", pairs.count, rmse)
        return rmse

    def compute_transformation(
        self,
        source: PointCloud,
        target: PointCloud,
        correspondences: jax.Array,
    ) -> jax.Array:
        pairs = _gather_pairs("PointToPoint.compute_transformation", source, target, correspondences)
        ps = pairs.source[constants.ATTR_POSITIONS]
        pt = pairs.target[constants.ATTR_POSITIONS]

        cs = jnp.mean(ps, axis=0)
        ct = jnp.mean(pt, axis=0)
        H = (ps - cs).T @ (pt - ct)
        U, _, Vt = jnp.linalg.svd(H)
        V = Vt.T
        # Reflection guard: det(R) must be +1
        d = jnp.where(jnp.linalg.det(V @ U.T) < 0.0, -1.0, 1.0)
        D = jnp.diag(jnp.array([1.0, 1.0, 1.0])).at[2, 2].set(d)
        R = V @ D @ U.T
        t = ct - R @ cs

        _logger.debug("PointToPoint.compute_transformation: K=%d", pairs.count)
        return rt_to_transformation(R, t)

    def __repr__(self) -> str:
        return "TransformationEstimationPointToPoint()"


class TransformationEstimationPointToPlane(TransformationEstimation):
    """
    Point-to-plane ICP: minimizes sum w(d_i) d_i^2, d_i = (R ps + t - pt) . nt.

    Args:
        kernel: Robust kernel applied to d_i (default L2).
        ill_conditioned_rcond: Reject the step when eig_min <= rcond * eig_max.
    """

    estimation_type = TransformationEstimationType.POINT_TO_PLANE

    def __init__(
        self,
        kernel: Optional[RobustKernel] = None,
        ill_conditioned_rcond: float = constants.ILL_CONDITIONED_RCOND_DEFAULT,
    ):
        if not ill_conditioned_rcond > 0.0:
            raise ValueError(f"ill_conditioned_rcond must be > 0, got {ill_conditioned_rcond}")
        self.kernel = kernel if kernel is not None else RobustKernel()
        self.ill_conditioned_rcond = ill_conditioned_rcond

    def compute_rmse(self, source: PointCloud, target: PointCloud, correspondences: jax.Array) -> float:
        pairs = _gather_pairs(
            "PointToPlane.compute_rmse",
            source,
            target,
            correspondences,
            target_attrs=(constants.ATTR_NORMALS,),
        )
        _, d = _point_to_plane_rows(
            pairs.source[constants.ATTR_POSITIONS],
            pairs.target[constants.ATTR_POSITIONS],
            pairs.target[constants.ATTR_NORMALS],
        )
        rmse = float(jnp.sqrt(jnp.sum(d * d) / pairs.count))
        _logger.debug("PointToPlane.compute_rmse: K=%d rmse=%.6e", pairs.count, rmse)
        return rmse

    def compute_transformation(
        self,
        source: PointCloud,
        target: PointCloud,
        correspondences: jax.Array,
    ) -> jax.Array:
        pairs = _gather_pairs(
            "PointToPlane.compute_transformation",
            source,
            target,
            correspondences,
            target_attrs=(constants.ATTR_NORMALS,),
        )
        J, d = _point_to_plane_rows(
            pairs.source[constants.ATTR_POSITIONS],
            pairs.target[constants.ATTR_POSITIONS],
            pairs.target[constants.ATTR_NORMALS],
        )
        A, b = accumulate_normal_equations(J, d, self.kernel.weight(d))
        result = solve_pose(A, b, self.ill_conditioned_rcond)
        _logger.debug(
            "PointToPlane.compute_transformation: K=%d cond=%.3e",
            pairs.count,
            result.conditioning.cond,
        )
        return pose_to_transformation(result.pose)

    def __repr__(self) -> str:
        return (
            f"TransformationEstimationPointToPlane(kernel={self.kernel}, "
            f"ill_conditioned_rcond={self.ill_conditioned_rcond})"
        )


class TransformationEstimationForColoredICP(TransformationEstimation):
    """
    Colored ICP: geometric point-to-plane term blended with a photometric term.

        E = lambda * sum r_G^2 + (1 - lambda) * sum r_I^2

    Args:
        lambda_geometric: Blend weight in [0, 1]; 1 is pure point-to-plane.
        kernel: Robust kernel, applied separately to r_G and r_I (default L2).
        ill_conditioned_rcond: Reject the step when eig_min <= rcond * eig_max.

    ``compute_rmse`` returns sum(r_G^2 + r_I^2): not divided by K and not
    square-rooted, unlike the other variants.
    """

    estimation_type = TransformationEstimationType.COLORED_ICP

    def __init__(
        self,
        lambda_geometric: float = constants.LAMBDA_GEOMETRIC_DEFAULT,
        kernel: Optional[RobustKernel] = None,
        ill_conditioned_rcond: float = constants.ILL_CONDITIONED_RCOND_DEFAULT,
    ):
        if not 0.0 <= lambda_geometric <= 1.0:
            raise ValueError(f"lambda_geometric must be in [0, 1], got {lambda_geometric}")
        if not ill_conditioned_rcond > 0.0:
            raise ValueError(f"ill_conditioned_rcond must be > 0, got {ill_conditioned_rcond}")
        self.lambda_geometric = lambda_geometric
        self.kernel = kernel if kernel is not None else RobustKernel()
        self.ill_conditioned_rcond = ill_conditioned_rcond

    def _residuals(
        self,
        operation: str,
        source: PointCloud,
        target: PointCloud,
        correspondences: jax.Array,
    ) -> Tuple[int, jax.Array, jax.Array, jax.Array, jax.Array]:
        """Scaled (J_G, r_G, J_I, r_I) for the valid pairs, plus K."""
        pairs = _gather_pairs(
            operation,
            source,
            target,
            correspondences,
            source_attrs=(constants.ATTR_COLORS,),
            target_attrs=(constants.ATTR_NORMALS, constants.ATTR_COLORS, constants.ATTR_COLOR_GRADIENTS),
        )
        ps = pairs.source[constants.ATTR_POSITIONS]
        pt = pairs.target[constants.ATTR_POSITIONS]
        nt = pairs.target[constants.ATTR_NORMALS]
        J_G, d = _point_to_plane_rows(ps, pt, nt)
        J_I, r_I = _photometric_rows(
            ps,
            pt,
            nt,
            pairs.source[constants.ATTR_COLORS],
            pairs.target[constants.ATTR_COLORS],
            pairs.target[constants.ATTR_COLOR_GRADIENTS],
            d,
        )
        sqrt_lambda_geometric = jnp.sqrt(jnp.float64(self.lambda_geometric))
        sqrt_lambda_photometric = jnp.sqrt(jnp.float64(1.0 - self.lambda_geometric))
        return (
            pairs.count,
            sqrt_lambda_geometric * J_G,
            sqrt_lambda_geometric * d,
            sqrt_lambda_photometric * J_I,
            sqrt_lambda_photometric * r_I,
        )

    def compute_rmse(self, source: PointCloud, target: PointCloud, correspondences: jax.Array) -> float:
        K, _, r_G, _, r_I = self._residuals("ColoredICP.compute_rmse", source, target, correspondences)
        residual = float(jnp.sum(r_G * r_G + r_I * r_I))
        _logger.debug("ColoredICP.compute_rmse: K=%d sum_sq=%.6e", K, residual)
        return residual

    def compute_transformation(
        self,
        source: PointCloud,
        target: PointCloud,
        correspondences: jax.Array,
    ) -> jax.Array:
        K, J_G, r_G, J_I, r_I = self._residuals(
            "ColoredICP.compute_transformation", source, target, correspondences
        )
        A_G, b_G = accumulate_normal_equations(J_G, r_G, self.kernel.weight(r_G))
        A_I, b_I = accumulate_normal_equations(J_I, r_I, self.kernel.weight(r_I))
        result = solve_pose(A_G + A_I, b_G + b_I, self.ill_conditioned_rcond)
        _logger.debug(
            "ColoredICP.compute_transformation: K=%d lambda=%.3f cond=%.3e",
            K,
            self.lambda_geometric,
            result.conditioning.cond,
        )
        return pose_to_transformation(result.pose)

    def __repr__(self) -> str:
        return (
            f"TransformationEstimationForColoredICP(lambda_geometric={self.lambda_geometric}, "
            f"kernel={self.kernel}, ill_conditioned_rcond={self.ill_conditioned_rcond})"
        )


# =============================================================================
# Factory
# =============================================================================


def make_estimation(params: Optional[EstimationParams] = None) -> TransformationEstimation:
    """Build the estimator selected by ``params.method`` (defaults if None)."""
    params = params if params is not None else EstimationParams()
    method = TransformationEstimationType(params.method)
    if method is TransformationEstimationType.POINT_TO_POINT:
        return TransformationEstimationPointToPoint()
    kernel = RobustKernel(
        kernel_type=RobustKernelType(params.kernel.type),
        scaling_parameter=params.kernel.scaling_parameter,
    )
    if method is TransformationEstimationType.POINT_TO_PLANE:
        return TransformationEstimationPointToPlane(
            kernel=kernel,
            ill_conditioned_rcond=params.ill_conditioned_rcond,
        )
    return TransformationEstimationForColoredICP(
        lambda_geometric=params.lambda_geometric,
        kernel=kernel,
        ill_conditioned_rcond=params.ill_conditioned_rcond,
    )
