"""
Robust kernels for the linearized (Gauss-Newton) estimators.

Each kernel maps a residual r to an IRLS weight w(r) that scales the
residual's row in the normal equations:

    A = sum_i w(r_i) J_i^T J_i,    b = sum_i w(r_i) J_i^T r_i

L2 gives w = 1 everywhere, i.e. the plain least-squares step.

Reference: Zhang (1997), Parameter estimation techniques: a tutorial with
application to conic fitting; Babin et al. (2019) for ICP usage.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from icp_core.common import constants
from icp_core.common.jax_init import jnp


class RobustKernelType(Enum):
    L2 = "l2"
    L1 = "l1"
    HUBER = "huber"
    CAUCHY = "cauchy"
    GM = "gm"  # Geman-McClure
    TUKEY = "tukey"


@dataclass(frozen=True)
class RobustKernel:
    """
    Robust kernel with scale ``scaling_parameter`` (k).

    Weights:
        L2:     1
        L1:     1 / max(|r|, eps)
        HUBER:  k / max(|r|, k)
        CAUCHY: 1 / (1 + (r / k)^2)
        GM:     k / (k + r^2)^2
        TUKEY:  (1 - (r / k)^2)^2 if |r| <= k else 0
    """
    kernel_type: RobustKernelType = RobustKernelType.L2
    scaling_parameter: float = constants.ROBUST_KERNEL_SCALE_DEFAULT

    def __post_init__(self):
        if not self.scaling_parameter > 0.0:
            raise ValueError(f"RobustKernel: scaling_parameter must be > 0, got {self.scaling_parameter}")

    def weight(self, residual: jnp.ndarray) -> jnp.ndarray:
        """Per-residual weights, same shape as ``residual``, float64."""
        r = jnp.asarray(residual, dtype=jnp.float64)
        k = self.scaling_parameter
        abs_r = jnp.abs(r)
        kind = self.kernel_type
        if kind is RobustKernelType.L2:
            return jnp.ones_like(r)
        if kind is RobustKernelType.L1:
            return 1.0 / jnp.maximum(abs_r, constants.ROBUST_KERNEL_L1_EPS)
        if kind is RobustKernelType.HUBER:
            return k / jnp.maximum(abs_r, k)
        if kind is RobustKernelType.CAUCHY:
            return 1.0 / (1.0 + (r / k) ** 2)
        if kind is RobustKernelType.GM:
            return k / (k + r * r) ** 2
        if kind is RobustKernelType.TUKEY:
            return jnp.where(abs_r <= k, (1.0 - (r / k) ** 2) ** 2, 0.0)
        raise ValueError(f"RobustKernel: unsupported kernel type {kind!r}")
