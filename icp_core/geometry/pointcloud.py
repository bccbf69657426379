"""
PointCloud: a set of points with per-point attributes.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from icp_core.common import constants
from icp_core.common.device import DeviceLike, device_to_string
from icp_core.common.errors import DeviceMismatchError
from icp_core.common.param_models import GeometryParams
from icp_core.geometry.attribute_map import AttributeMap
from icp_core.geometry.geometry import Geometry, cast_to_params, infer_device

_logger = logging.getLogger(__name__)


class PointCloud(Geometry):
    """
    Point cloud on a single device.

    Args:
        positions: Optional (N, 3) float positions. A JAX array fixes the
            cloud's device; host data is committed to ``device``.
        attributes: Optional initial point attributes by key (normals,
            colors, ...). JAX arrays are aliased, not copied. A "positions"
            entry is validated like ``positions``, which takes precedence.
        device: Device configuration value (default "CPU:0").
        fixed_capacity: Store the initial arrays as borrowed fixed-capacity storage.
    """

    def __init__(
        self,
        positions: Optional[Any] = None,
        attributes: Optional[Mapping[str, Any]] = None,
        device: DeviceLike = None,
        fixed_capacity: bool = False,
    ):
        attributes = dict(attributes or {})
        super().__init__(infer_device([positions, *attributes.values()], device, "PointCloud"))
        if attributes:
            self._point = AttributeMap(
                constants.POINT_PRIMARY_KEY, self._device, attributes=attributes, fixed_capacity=fixed_capacity
            )
        if positions is None and constants.ATTR_POSITIONS in self._point:
            positions = self._point.get(constants.ATTR_POSITIONS)
        if positions is not None:
            self.set_point_positions(positions, fixed_capacity=fixed_capacity)

    @classmethod
    def from_params(
        cls,
        params: GeometryParams,
        positions: Optional[Any] = None,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> "PointCloud":
        """
        Cloud on ``params.device`` with floating attributes cast to
        ``params.float_dtype`` and integer attributes to ``params.int_dtype``.
        """
        cast = {key: cast_to_params(value, params) for key, value in (attributes or {}).items()}
        return cls(cast_to_params(positions, params), attributes=cast, device=params.device)

    def clear(self) -> "PointCloud":
        self._point.clear()
        return self

    # ------------------------------------------------------------------
    # Device / copies
    # ------------------------------------------------------------------

    def to(self, device: DeviceLike, copy: bool = False) -> "PointCloud":
        """Cloud on ``device``; see ``AttributeMap.to`` for sharing rules."""
        out = PointCloud(device=self._device if device is None else device)
        out._point = self._point.to(out.device, copy=copy)
        return out

    def clone(self) -> "PointCloud":
        return self.to(self._device, copy=True)

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    def append(self, other: "PointCloud") -> "PointCloud":
        """
        Append ``other``'s points in place.

        Both clouds must carry the same attribute keys with matching dtypes.
        Appending to an empty cloud adopts ``other``'s attributes.
        """
        if other.device != self._device:
            raise DeviceMismatchError(
                f"PointCloud.append: other is on {device_to_string(other.device)}, "
                f"expected {device_to_string(self._device)}"
            )
        if len(self._point) == 0:
            for key, value in other.point.items():
                self._point.set(key, value)
            return self
        self._point.append(dict(other.point.items()))
        _logger.debug("PointCloud.append: now %d points", self._point.primary_length())
        return self

    def __add__(self, other: "PointCloud") -> "PointCloud":
        return self.clone().append(other)

    def __repr__(self) -> str:
        return f"PointCloud on {device_to_string(self._device)} {self._describe(self._point, 'points')}"
