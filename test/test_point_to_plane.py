"""
Tests for the point-to-plane Gauss-Newton estimator.
"""

import numpy as np
import pytest

from icp_core.common.errors import IllConditionedSystemError, MissingAttributeError
from icp_core.common.transforms.se3 import pose_to_transformation
from icp_core.geometry.pointcloud import PointCloud
from icp_core.registration.estimation import (
    TransformationEstimationPointToPlane,
    TransformationEstimationType,
)
from icp_core.registration.robust_kernel import RobustKernel, RobustKernelType

from conftest import apply_pose, identity_correspondences, random_unit_vectors


def _pair(rng, pose, n=200):
    """Source cloud and a target moved by ``pose``, with random target normals."""
    ps = rng.standard_normal((n, 3))
    source = PointCloud(ps)
    target = PointCloud(apply_pose(ps, pose))
    target.set_point_normals(random_unit_vectors(rng, n))
    return source, target


class TestPointToPlane:

    def test_type_tag(self):
        assert (
            TransformationEstimationPointToPlane().get_transformation_estimation_type()
            is TransformationEstimationType.POINT_TO_PLANE
        )

    def test_identity_fit(self, rng):
        source, target = _pair(rng, np.zeros(6))
        corr = identity_correspondences(200)
        est = TransformationEstimationPointToPlane()
        assert est.compute_rmse(source, target, corr) == pytest.approx(0.0, abs=1e-15)
        T = np.asarray(est.compute_transformation(source, target, corr))
        assert np.allclose(T, np.eye(4), atol=1e-12)

    def test_rmse_formula(self, rng):
        source, target = _pair(rng, np.array([0.0, 0.0, 0.0, 0.1, 0.2, -0.3]))
        corr = identity_correspondences(200)
        ps = np.asarray(source.get_point_positions())
        pt = np.asarray(target.get_point_positions())
        nt = np.asarray(target.get_point_normals())
        d = np.sum((ps - pt) * nt, axis=1)
        rmse = TransformationEstimationPointToPlane().compute_rmse(source, target, corr)
        assert rmse == pytest.approx(np.sqrt(np.mean(d ** 2)), rel=1e-12)

    def test_pure_translation_recovered_exactly(self, rng):
        """Rotation-free motion is linear in the pose, so one step is exact."""
        pose = np.array([0.0, 0.0, 0.0, 0.1, 0.2, -0.3])
        source, target = _pair(rng, pose)
        T = np.asarray(
            TransformationEstimationPointToPlane().compute_transformation(source, target, identity_correspondences(200))
        )
        assert np.allclose(T[:3, 3], pose[3:], atol=1e-9)
        assert np.allclose(T[:3, :3], np.eye(3), atol=1e-9)

    def test_step_reduces_error(self, rng, random_pose):
        source, target = _pair(rng, random_pose)
        corr = identity_correspondences(200)
        est = TransformationEstimationPointToPlane()
        before = est.compute_rmse(source, target, corr)

        T = est.compute_transformation(source, target, corr)
        after = est.compute_rmse(source.clone().transform(T), target, corr)

        assert after < 0.2 * before

    def test_inputs_not_modified(self, rng, random_pose):
        source, target = _pair(rng, random_pose)
        before = np.asarray(source.get_point_positions()).copy()
        TransformationEstimationPointToPlane().compute_transformation(source, target, identity_correspondences(200))
        assert np.array_equal(np.asarray(source.get_point_positions()), before)

    def test_missing_target_normals(self, small_pointcloud):
        cloud = PointCloud(small_pointcloud)
        with pytest.raises(MissingAttributeError, match="target.*normals"):
            TransformationEstimationPointToPlane().compute_transformation(
                cloud, cloud, identity_correspondences(small_pointcloud.shape[0])
            )

    def test_planar_target_is_ill_conditioned(self, rng):
        """A single plane constrains only 3 of the 6 pose parameters."""
        ps = np.column_stack([rng.standard_normal((50, 2)), np.zeros(50)])
        source = PointCloud(ps + np.array([0.0, 0.0, 0.1]))
        target = PointCloud(ps)
        target.set_point_normals(np.tile([0.0, 0.0, 1.0], (50, 1)))
        with pytest.raises(IllConditionedSystemError):
            TransformationEstimationPointToPlane().compute_transformation(source, target, identity_correspondences(50))

    def test_robust_kernel_applied(self, rng):
        """Tukey with a scale below every residual zeroes every row."""
        source, target = _pair(rng, np.array([0.0, 0.0, 0.0, 1.0, 1.0, 1.0]))
        target.set_point_normals(np.tile(np.array([1.0, 1.0, 1.0]) / np.sqrt(3.0), (200, 1)))
        kernel = RobustKernel(RobustKernelType.TUKEY, 1e-3)
        with pytest.raises(IllConditionedSystemError):
            TransformationEstimationPointToPlane(kernel=kernel).compute_transformation(
                source, target, identity_correspondences(200)
            )

    def test_huber_matches_weighted_reference(self, rng):
        """Huber-weighted step equals a dense weighted Gauss-Newton solve."""
        source, target = _pair(rng, np.array([0.01, -0.02, 0.015, 0.03, -0.01, 0.02]))
        nt = np.asarray(target.get_point_normals())
        pt = np.asarray(target.get_point_positions()).copy()
        outliers = rng.choice(200, size=10, replace=False)
        pt[outliers] += 0.5 * nt[outliers]
        target.set_point_positions(pt)
        corr = identity_correspondences(200)

        k = 0.05
        ps = np.asarray(source.get_point_positions())
        d = np.sum((ps - pt) * nt, axis=1)
        J = np.hstack([np.cross(ps, nt), nt])
        w = k / np.maximum(np.abs(d), k)
        A = (J * w[:, None]).T @ J
        b = (J * w[:, None]).T @ d
        expected = np.asarray(pose_to_transformation(np.linalg.solve(A, -b)))

        robust = TransformationEstimationPointToPlane(kernel=RobustKernel(RobustKernelType.HUBER, k))
        T = np.asarray(robust.compute_transformation(source, target, corr))
        assert np.allclose(T, expected, rtol=0.0, atol=1e-10)

        plain = np.asarray(TransformationEstimationPointToPlane().compute_transformation(source, target, corr))
        assert not np.allclose(T, plain, atol=1e-6)

    def test_rcond_must_be_positive(self):
        with pytest.raises(ValueError):
            TransformationEstimationPointToPlane(ill_conditioned_rcond=0.0)
