import os
import sys

# JAX reads these when its backend starts; set them before anything imports jax.
# Two host devices let cross-device checks run without an accelerator.
os.environ.setdefault("JAX_PLATFORMS", "cpu")
if "xla_force_host_platform_device_count" not in os.environ.get("XLA_FLAGS", ""):
    os.environ["XLA_FLAGS"] = (
        os.environ.get("XLA_FLAGS", "") + " --xla_force_host_platform_device_count=2"
    ).strip()

import numpy as np
import pytest
from typing import Any, Dict

# Ensure local package import works for pytest collection.
_TEST_DIR = os.path.dirname(__file__)
_PKG_ROOT = os.path.abspath(os.path.join(_TEST_DIR, ".."))
if _PKG_ROOT not in sys.path:
    sys.path.insert(0, _PKG_ROOT)

from icp_core.common.jax_init import jax, jnp  # noqa: E402
from icp_core.common.transforms.se3 import pose_to_transformation  # noqa: E402
from icp_core.geometry.pointcloud import PointCloud  # noqa: E402


# =============================================================================
# Config Fixtures
# =============================================================================


def _load_yaml_file(path: str) -> Dict[str, Any]:
    """Load a YAML config file, handling the icp_core wrapper."""
    import yaml
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return data.get("icp_core", data)


@pytest.fixture
def default_config() -> Dict[str, Any]:
    """Raw contents of the shipped default config."""
    path = os.path.join(_PKG_ROOT, "icp_core", "config", "estimation.yaml")
    if not os.path.exists(path):
        pytest.skip("estimation.yaml not found")
    return _load_yaml_file(path)


# =============================================================================
# Device Fixtures
# =============================================================================


@pytest.fixture
def second_cpu():
    """A second host device, for cross-device checks."""
    devices = jax.devices("cpu")
    if len(devices) < 2:
        pytest.skip("needs two host devices (XLA_FLAGS=--xla_force_host_platform_device_count=2)")
    return devices[1]


# =============================================================================
# Point Cloud Fixtures
# =============================================================================


@pytest.fixture
def numpy_seed():
    """Set numpy random seed for reproducible tests."""
    np.random.seed(42)
    yield


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def small_pointcloud(rng):
    """A small (100, 3) float64 host point set."""
    return rng.standard_normal((100, 3))


@pytest.fixture
def random_pose():
    """Small pose [alpha, beta, gamma, tx, ty, tz]."""
    return np.array([0.05, -0.03, 0.08, 0.2, -0.1, 0.15])


def random_unit_vectors(rng, n: int) -> np.ndarray:
    v = rng.standard_normal((n, 3))
    return v / np.linalg.norm(v, axis=1, keepdims=True)


def make_colored_cloud(rng, n: int = 200, dtype=np.float64) -> PointCloud:
    """Cloud with positions, normals, colors and color gradients, all random."""
    cloud = PointCloud(rng.standard_normal((n, 3)).astype(dtype))
    cloud.set_point_normals(random_unit_vectors(rng, n).astype(dtype))
    cloud.set_point_colors(rng.uniform(0.0, 1.0, (n, 3)).astype(dtype))
    cloud.set_point_attr("color_gradients", rng.standard_normal((n, 3)).astype(dtype))
    return cloud


def identity_correspondences(n: int) -> jax.Array:
    return jnp.arange(n, dtype=jnp.int64)


def apply_pose(points: np.ndarray, pose: np.ndarray) -> np.ndarray:
    T = np.asarray(pose_to_transformation(pose))
    return points @ T[:3, :3].T + T[:3, 3]


@pytest.fixture
def colored_cloud(rng) -> PointCloud:
    return make_colored_cloud(rng)
