"""
LineSet: points plus line segments indexing into them.

Two attribute maps share the set's device: ``point`` keyed by "positions"
((N, 3) float) and ``line`` keyed by "indices" ((M, 2) integer). Indices are
not range-checked against the point count; a dangling index is the caller's
responsibility, as with any other attribute.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from icp_core.common import constants
from icp_core.common.device import DeviceLike, device_to_string, is_integer
from icp_core.common.errors import DeviceMismatchError, DtypeMismatchError
from icp_core.common.jax_init import jax
from icp_core.common.param_models import GeometryParams
from icp_core.geometry.attribute_map import AttributeMap
from icp_core.geometry.geometry import Geometry, cast_to_params, check_rows, infer_device

_logger = logging.getLogger(__name__)


class LineSet(Geometry):
    """
    Line set on a single device.

    Args:
        positions: Optional (N, 3) float positions.
        indices: Optional (M, 2) integer line indices.
        device: Device configuration value, used when neither canonical array
            is already a JAX array.
        fixed_capacity: Store the canonical arrays as borrowed fixed-capacity storage.

    Raises:
        DeviceMismatchError: positions and indices are on different devices.
    """

    def __init__(
        self,
        positions: Optional[Any] = None,
        indices: Optional[Any] = None,
        device: DeviceLike = None,
        fixed_capacity: bool = False,
    ):
        super().__init__(infer_device([positions, indices], device, "LineSet"))
        self._line = AttributeMap(constants.LINE_PRIMARY_KEY, self._device)
        if positions is not None:
            self.set_point_positions(positions, fixed_capacity=fixed_capacity)
        if indices is not None:
            self.set_line_indices(indices, fixed_capacity=fixed_capacity)

    @classmethod
    def from_params(
        cls, params: GeometryParams, positions: Optional[Any] = None, indices: Optional[Any] = None
    ) -> "LineSet":
        """Line set on ``params.device`` with positions and indices in the configured dtypes."""
        return cls(cast_to_params(positions, params), cast_to_params(indices, params), device=params.device)

    @property
    def line(self) -> AttributeMap:
        return self._line

    # ------------------------------------------------------------------
    # Line attributes
    # ------------------------------------------------------------------

    def get_line_attr(self, key: str) -> jax.Array:
        return self._line.get(key)

    def set_line_attr(self, key: str, value: Any, fixed_capacity: bool = False) -> None:
        self._line.set(key, value, fixed_capacity=fixed_capacity)

    def remove_line_attr(self, key: str) -> None:
        self._line.erase(key)

    def has_line_attr(self, key: str) -> bool:
        return self._line.has(key)

    def get_line_indices(self) -> jax.Array:
        return self.get_line_attr(constants.ATTR_INDICES)

    def set_line_indices(self, value: Any, fixed_capacity: bool = False) -> None:
        tensor = self._tensor(value, "set_line_indices")
        check_rows(tensor, 2, "set_line_indices")
        if not is_integer(tensor):
            raise DtypeMismatchError(f"set_line_indices: expected an integer dtype, got {tensor.dtype}")
        self._line.set(constants.ATTR_INDICES, tensor, fixed_capacity=fixed_capacity)

    def has_line_indices(self) -> bool:
        return self.has_line_attr(constants.ATTR_INDICES)

    def get_line_colors(self) -> jax.Array:
        return self.get_line_attr(constants.ATTR_COLORS)

    def set_line_colors(self, value: Any, fixed_capacity: bool = False) -> None:
        tensor = self._tensor(value, "set_line_colors")
        check_rows(tensor, 3, "set_line_colors")
        self._line.set(constants.ATTR_COLORS, tensor, fixed_capacity=fixed_capacity)

    def has_line_colors(self) -> bool:
        return self.has_line_attr(constants.ATTR_COLORS)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def clear(self) -> "LineSet":
        self._point.clear()
        self._line.clear()
        return self

    def to(self, device: DeviceLike, copy: bool = False) -> "LineSet":
        out = LineSet(device=self._device if device is None else device)
        out._point = self._point.to(out.device, copy=copy)
        out._line = self._line.to(out.device, copy=copy)
        return out

    def clone(self) -> "LineSet":
        return self.to(self._device, copy=True)

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    def append(self, other: "LineSet") -> "LineSet":
        """
        Append ``other``'s points and lines in place.

        ``other``'s line indices are offset by this set's point count. Both
        maps are validated before either is modified, so a failure leaves the
        set unchanged.
        """
        if other.device != self._device:
            raise DeviceMismatchError(
                f"LineSet.append: other is on {device_to_string(other.device)}, "
                f"expected {device_to_string(self._device)}"
            )
        offset = self._point.primary_length()
        line_rows = dict(other.line.items())
        if constants.ATTR_INDICES in line_rows:
            indices = line_rows[constants.ATTR_INDICES]
            line_rows[constants.ATTR_INDICES] = indices + offset

        point_grown = _grow_or_adopt(self._point, dict(other.point.items()))
        line_grown = _grow_or_adopt(self._line, line_rows)
        self._point._commit(point_grown)
        self._line._commit(line_grown)
        _logger.debug(
            "LineSet.append: now %d points, %d lines",
            self._point.primary_length(),
            self._line.primary_length(),
        )
        return self

    def __add__(self, other: "LineSet") -> "LineSet":
        return self.clone().append(other)

    def __repr__(self) -> str:
        return (
            f"LineSet on {device_to_string(self._device)} "
            f"{self._describe(self._point, 'points')} {self._describe(self._line, 'lines')}"
        )


def _grow_or_adopt(attributes: AttributeMap, rows: dict) -> dict:
    """Grown tensors for ``attributes``; an empty map adopts ``rows`` as-is."""
    if len(attributes) == 0:
        return rows
    return attributes._grow(rows)
