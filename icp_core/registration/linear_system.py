"""
Normal equations for the 6-parameter pose.

The linearized estimators stack one Jacobian row J_i (6,) and residual r_i
per term and solve

    A xi = -b,   A = sum_i w_i J_i^T J_i,   b = sum_i w_i J_i^T r_i

A is symmetric positive semi-definite by construction. Rank deficiency
(fewer than six independent constraints) is rejected, never lifted: a
regularized step would hide a degenerate geometric configuration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

from jax.scipy.linalg import solve_triangular

from icp_core.common.errors import IllConditionedSystemError, ShapeMismatchError
from icp_core.common.jax_init import jnp

_logger = logging.getLogger(__name__)


@dataclass
class ConditioningInfo:
    """Eigenvalue conditioning of the (symmetrized) normal matrix."""
    eig_min: float
    eig_max: float
    cond: float


@dataclass
class PoseSolveResult:
    """Solution of the 6x6 normal equations."""
    pose: jnp.ndarray  # (6,) [alpha, beta, gamma, tx, ty, tz]
    conditioning: ConditioningInfo


def accumulate_normal_equations(
    J: jnp.ndarray,
    r: jnp.ndarray,
    w: jnp.ndarray,
) -> Tuple[jnp.ndarray, jnp.ndarray]:
    """
    Reduce stacked rows to (A (6, 6), b (6,)) in float64.

    Args:
        J: (K, 6) Jacobian rows
        r: (K,) residuals
        w: (K,) robust weights
    """
    J = jnp.asarray(J, dtype=jnp.float64)
    r = jnp.asarray(r, dtype=jnp.float64)
    w = jnp.asarray(w, dtype=jnp.float64)
    if J.ndim != 2 or J.shape[1] != 6:
        raise ShapeMismatchError(f"accumulate_normal_equations: expected J of shape (K, 6), got {tuple(J.shape)}")
    if r.shape != (J.shape[0],) or w.shape != (J.shape[0],):
        raise ShapeMismatchError(
            f"accumulate_normal_equations: r {tuple(r.shape)} and w {tuple(w.shape)} "
            f"must have shape ({J.shape[0]},)"
        )
    Jw = J * w[:, None]
    A = Jw.T @ J
    b = Jw.T @ r
    return A, b


def conditioning(A: jnp.ndarray) -> ConditioningInfo:
    eigvals = jnp.linalg.eigvalsh(A)
    eig_min = float(eigvals[0])
    eig_max = float(eigvals[-1])
    cond = eig_max / eig_min if eig_min > 0.0 else float("inf")
    return ConditioningInfo(eig_min=eig_min, eig_max=eig_max, cond=cond)


def solve_pose(A: jnp.ndarray, b: jnp.ndarray, rcond: float) -> PoseSolveResult:
    """
    Solve A xi = -b by Cholesky.

    Raises:
        IllConditionedSystemError: A has a non-finite entry, is zero, or has
            eig_min <= rcond * eig_max.
    """
    A = jnp.asarray(A, dtype=jnp.float64)
    b = jnp.asarray(b, dtype=jnp.float64)
    if A.shape != (6, 6) or b.shape != (6,):
        raise ShapeMismatchError(f"solve_pose: expected A (6, 6) and b (6,), got {tuple(A.shape)} and {tuple(b.shape)}")
    if not bool(jnp.all(jnp.isfinite(A))) or not bool(jnp.all(jnp.isfinite(b))):
        raise IllConditionedSystemError("solve_pose: normal equations contain non-finite values")

    A_sym = 0.5 * (A + A.T)
    info = conditioning(A_sym)
    if info.eig_max <= 0.0 or info.eig_min <= rcond * info.eig_max:
        raise IllConditionedSystemError(
            f"solve_pose: singular normal matrix (eig_min={info.eig_min:.3e}, "
            f"eig_max={info.eig_max:.3e}, rcond={rcond:.1e}); fewer than 6 independent constraints",
            eig_min=info.eig_min,
            eig_max=info.eig_max,
        )

    L_chol = jnp.linalg.cholesky(A_sym)
    y = solve_triangular(L_chol, -b, lower=True)
    pose = solve_triangular(L_chol.T, y, lower=False)
    _logger.debug("solve_pose: cond=%.3e |xi|=%.3e", info.cond, float(jnp.linalg.norm(pose)))
    return PoseSolveResult(pose=pose, conditioning=info)
