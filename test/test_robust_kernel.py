"""
Tests for robust kernel weights.
"""

import numpy as np
import pytest

from icp_core.common.jax_init import jnp
from icp_core.registration.robust_kernel import RobustKernel, RobustKernelType

RESIDUALS = np.array([-3.0, -0.5, 0.0, 0.25, 2.0])


class TestWeights:
    """Closed-form IRLS weights per kernel type."""

    def test_l2_is_unweighted(self):
        w = np.asarray(RobustKernel().weight(RESIDUALS))
        assert np.array_equal(w, np.ones_like(RESIDUALS))

    def test_l1(self):
        w = np.asarray(RobustKernel(RobustKernelType.L1).weight(RESIDUALS))
        assert np.allclose(w[[0, 1, 3, 4]], 1.0 / np.abs(RESIDUALS[[0, 1, 3, 4]]))
        assert np.isfinite(w[2])

    def test_huber(self):
        w = np.asarray(RobustKernel(RobustKernelType.HUBER, 1.0).weight(RESIDUALS))
        assert np.allclose(w, [1.0 / 3.0, 1.0, 1.0, 1.0, 0.5])

    def test_cauchy(self):
        k = 0.5
        w = np.asarray(RobustKernel(RobustKernelType.CAUCHY, k).weight(RESIDUALS))
        assert np.allclose(w, 1.0 / (1.0 + (RESIDUALS / k) ** 2))

    def test_geman_mcclure(self):
        k = 2.0
        w = np.asarray(RobustKernel(RobustKernelType.GM, k).weight(RESIDUALS))
        assert np.allclose(w, k / (k + RESIDUALS ** 2) ** 2)

    def test_tukey_rejects_outliers(self):
        w = np.asarray(RobustKernel(RobustKernelType.TUKEY, 1.0).weight(RESIDUALS))
        assert w[0] == 0.0
        assert w[4] == 0.0
        assert w[2] == pytest.approx(1.0)
        assert w[1] == pytest.approx((1.0 - 0.25) ** 2)

    def test_weights_are_float64(self):
        w = RobustKernel(RobustKernelType.HUBER).weight(RESIDUALS.astype(np.float32))
        assert w.dtype == jnp.float64

    def test_scale_must_be_positive(self):
        with pytest.raises(ValueError, match="scaling_parameter"):
            RobustKernel(RobustKernelType.HUBER, 0.0)
