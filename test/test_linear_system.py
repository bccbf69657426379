"""
Tests for the 6x6 normal-equation accumulation and Cholesky solve.
"""

import numpy as np
import pytest

from icp_core.common.errors import IllConditionedSystemError, ShapeMismatchError
from icp_core.registration.linear_system import accumulate_normal_equations, conditioning, solve_pose


class TestAccumulate:

    def test_matches_dense_formula(self, rng):
        J = rng.standard_normal((50, 6))
        r = rng.standard_normal(50)
        w = rng.uniform(0.1, 1.0, 50)
        A, b = accumulate_normal_equations(J, r, w)
        W = np.diag(w)
        assert np.allclose(np.asarray(A), J.T @ W @ J)
        assert np.allclose(np.asarray(b), J.T @ W @ r)

    def test_shape_checked(self):
        with pytest.raises(ShapeMismatchError):
            accumulate_normal_equations(np.zeros((4, 5)), np.zeros(4), np.ones(4))
        with pytest.raises(ShapeMismatchError):
            accumulate_normal_equations(np.zeros((4, 6)), np.zeros(3), np.ones(4))


class TestSolvePose:

    def test_solves_negated_rhs(self, rng):
        M = rng.standard_normal((6, 6))
        A = M @ M.T + 6.0 * np.eye(6)
        xi_true = rng.standard_normal(6)
        b = -A @ xi_true
        result = solve_pose(A, b, rcond=1e-12)
        assert np.allclose(np.asarray(result.pose), xi_true, atol=1e-10)
        assert result.conditioning.eig_min > 0.0

    def test_rank_deficient_rejected(self):
        A = np.diag([1.0, 1.0, 1.0, 1.0, 1.0, 0.0])
        with pytest.raises(IllConditionedSystemError) as excinfo:
            solve_pose(A, np.zeros(6), rcond=1e-12)
        assert excinfo.value.eig_min == pytest.approx(0.0)
        assert excinfo.value.eig_max == pytest.approx(1.0)

    def test_near_singular_rejected_by_rcond(self):
        A = np.diag([1.0, 1.0, 1.0, 1.0, 1.0, 1e-8])
        with pytest.raises(IllConditionedSystemError):
            solve_pose(A, np.zeros(6), rcond=1e-6)
        # Same system passes a looser threshold
        solve_pose(A, np.zeros(6), rcond=1e-12)

    def test_zero_system_rejected(self):
        with pytest.raises(IllConditionedSystemError):
            solve_pose(np.zeros((6, 6)), np.zeros(6), rcond=1e-12)

    def test_non_finite_rejected(self):
        A = np.eye(6)
        A[0, 0] = np.nan
        with pytest.raises(IllConditionedSystemError, match="non-finite"):
            solve_pose(A, np.zeros(6), rcond=1e-12)

    def test_ill_conditioned_is_arithmetic_error(self):
        with pytest.raises(ArithmeticError):
            solve_pose(np.zeros((6, 6)), np.zeros(6), rcond=1e-12)

    def test_conditioning(self):
        info = conditioning(np.diag([1.0, 2.0, 3.0, 4.0, 5.0, 10.0]))
        assert info.eig_min == pytest.approx(1.0)
        assert info.eig_max == pytest.approx(10.0)
        assert info.cond == pytest.approx(10.0)
