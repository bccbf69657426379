"""
Tensor geometry: attribute storage and the entities built on it.

- attribute_map: AttributeMap (primary-keyed named tensors, OWNED / FIXED storage)
- pointcloud: PointCloud
- lineset: LineSet
"""

from icp_core.geometry.attribute_map import AttributeMap, Storage
from icp_core.geometry.geometry import Geometry
from icp_core.geometry.lineset import LineSet
from icp_core.geometry.pointcloud import PointCloud

__all__ = [
    "AttributeMap",
    "Storage",
    "Geometry",
    "LineSet",
    "PointCloud",
]
