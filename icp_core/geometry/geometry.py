"""
Base class for tensor geometries with per-point attributes.

A geometry owns a point AttributeMap keyed by "positions" ((N, 3) float) and
is fixed to one device at construction. Geometric operators (transform,
translate, scale, rotate) act on positions only: normals, colors and color
gradients are left as they are, so a caller that needs rotated normals must
rotate them itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable

import numpy as np

from icp_core.common import constants
from icp_core.common.device import (
    DeviceLike,
    array_device,
    as_tensor,
    assert_device,
    device_to_string,
    is_floating,
    is_tensor,
    resolve_device,
)
from icp_core.common.errors import DeviceMismatchError, DtypeMismatchError, ShapeMismatchError
from icp_core.common.jax_init import jax, jnp
from icp_core.common.param_models import GeometryParams
from icp_core.geometry.attribute_map import AttributeMap, Storage


def infer_device(arrays: Iterable[Any], device: DeviceLike, name: str) -> "jax.Device":
    """
    Device of a new geometry: the device shared by the given tensors, or the
    configured ``device`` when only host data (or nothing) is given.
    """
    configured = None if device is None else resolve_device(device)
    found = None
    for array in arrays:
        if array is None or not is_tensor(array):
            continue
        current = array_device(array)
        if found is None:
            found = current
        elif current != found:
            raise DeviceMismatchError(
                f"{name}: canonical tensors on different devices "
                f"({device_to_string(found)} vs {device_to_string(current)})"
            )
    if found is not None and configured is not None and found != configured:
        raise DeviceMismatchError(
            f"{name}: tensors are on {device_to_string(found)} but device={device_to_string(configured)} was requested"
        )
    if found is not None:
        return found
    return configured if configured is not None else resolve_device(None)


def check_rows(array: jax.Array, width: int, name: str) -> None:
    if array.ndim != 2 or array.shape[1] != width:
        raise ShapeMismatchError(f"{name}: expected shape (N, {width}), got {tuple(array.shape)}")


def cast_to_params(value: Any, params: GeometryParams) -> Any:
    """
    ``value`` converted to the configured precision: floating data to
    ``params.float_dtype``, integer data to ``params.int_dtype``.

    JAX arrays are converted on their own device (aliased when the dtype
    already matches); host data stays on the host.
    """
    if value is None:
        return None
    array = value if is_tensor(value) else np.asarray(value)
    if jnp.issubdtype(array.dtype, jnp.floating):
        dtype = jnp.dtype(params.float_dtype)
    elif jnp.issubdtype(array.dtype, jnp.integer):
        dtype = jnp.dtype(params.int_dtype)
    else:
        return value
    if array.dtype == dtype:
        return array
    return array.astype(dtype)


class Geometry(ABC):
    """Point-attributed tensor geometry on a single device."""

    def __init__(self, device: DeviceLike = None):
        self._device = resolve_device(device)
        self._point = AttributeMap(constants.POINT_PRIMARY_KEY, self._device)

    # ------------------------------------------------------------------
    # Device
    # ------------------------------------------------------------------

    @property
    def device(self) -> "jax.Device":
        return self._device

    @property
    def point(self) -> AttributeMap:
        return self._point

    def _tensor(self, value: Any, name: str) -> jax.Array:
        tensor = as_tensor(value, self._device)
        assert_device(tensor, self._device, name)
        return tensor

    # ------------------------------------------------------------------
    # Point attributes
    # ------------------------------------------------------------------

    def get_point_attr(self, key: str) -> jax.Array:
        return self._point.get(key)

    def set_point_attr(self, key: str, value: Any, fixed_capacity: bool = False) -> None:
        self._point.set(key, value, fixed_capacity=fixed_capacity)

    def remove_point_attr(self, key: str) -> None:
        self._point.erase(key)

    def has_point_attr(self, key: str) -> bool:
        return self._point.has(key)

    def get_point_positions(self) -> jax.Array:
        return self.get_point_attr(constants.ATTR_POSITIONS)

    def set_point_positions(self, value: Any, fixed_capacity: bool = False) -> None:
        tensor = self._tensor(value, "set_point_positions")
        check_rows(tensor, 3, "set_point_positions")
        if not is_floating(tensor):
            raise DtypeMismatchError(f"set_point_positions: expected a floating dtype, got {tensor.dtype}")
        self._point.set(constants.ATTR_POSITIONS, tensor, fixed_capacity=fixed_capacity)

    def has_point_positions(self) -> bool:
        return self.has_point_attr(constants.ATTR_POSITIONS)

    def get_point_colors(self) -> jax.Array:
        return self.get_point_attr(constants.ATTR_COLORS)

    def set_point_colors(self, value: Any, fixed_capacity: bool = False) -> None:
        tensor = self._tensor(value, "set_point_colors")
        check_rows(tensor, 3, "set_point_colors")
        self._point.set(constants.ATTR_COLORS, tensor, fixed_capacity=fixed_capacity)

    def has_point_colors(self) -> bool:
        return self.has_point_attr(constants.ATTR_COLORS)

    def get_point_normals(self) -> jax.Array:
        return self.get_point_attr(constants.ATTR_NORMALS)

    def set_point_normals(self, value: Any, fixed_capacity: bool = False) -> None:
        tensor = self._tensor(value, "set_point_normals")
        check_rows(tensor, 3, "set_point_normals")
        self._point.set(constants.ATTR_NORMALS, tensor, fixed_capacity=fixed_capacity)

    def has_point_normals(self) -> bool:
        return self.has_point_attr(constants.ATTR_NORMALS)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def is_empty(self) -> bool:
        """Empty means no usable positions; other attributes are ignored."""
        return not self.has_point_positions()

    @abstractmethod
    def clear(self) -> "Geometry":
        ...

    # ------------------------------------------------------------------
    # Bounds
    # ------------------------------------------------------------------

    def get_min_bound(self) -> jax.Array:
        return jnp.min(self.get_point_positions(), axis=0)

    def get_max_bound(self) -> jax.Array:
        return jnp.max(self.get_point_positions(), axis=0)

    def get_center(self) -> jax.Array:
        return jnp.mean(self.get_point_positions(), axis=0)

    # ------------------------------------------------------------------
    # Geometric operators (positions only)
    # ------------------------------------------------------------------

    def _replace_positions(self, positions: jax.Array) -> None:
        fixed = self._point.storage(constants.ATTR_POSITIONS) is Storage.FIXED
        self._point.set(constants.ATTR_POSITIONS, positions, fixed_capacity=fixed)

    def _operand(self, value: Any, shape: tuple, dtype, name: str) -> jax.Array:
        tensor = self._tensor(value, name)
        if tuple(tensor.shape) != shape:
            if tensor.size == shape[0] and len(shape) == 1:
                tensor = tensor.reshape(shape)
            else:
                raise ShapeMismatchError(f"{name}: expected shape {shape}, got {tuple(tensor.shape)}")
        return tensor.astype(dtype)

    def transform(self, transformation: Any) -> "Geometry":
        """Apply a (4, 4) rigid transformation to positions: p' = R p + t."""
        positions = self.get_point_positions()
        T = self._operand(transformation, (4, 4), positions.dtype, "transform")
        self._replace_positions(positions @ T[:3, :3].T + T[:3, 3])
        return self

    def translate(self, translation: Any, relative: bool = True) -> "Geometry":
        """
        Translate positions by ``translation``; with ``relative=False`` the
        center is moved to ``translation`` instead.
        """
        positions = self.get_point_positions()
        t = self._operand(translation, (3,), positions.dtype, "translate")
        if not relative:
            t = t - jnp.mean(positions, axis=0)
        self._replace_positions(positions + t)
        return self

    def scale(self, scale: float, center: Any) -> "Geometry":
        """Scale positions about ``center``: p' = (p - c) * s + c."""
        positions = self.get_point_positions()
        c = self._operand(center, (3,), positions.dtype, "scale")
        self._replace_positions((positions - c) * jnp.asarray(scale, dtype=positions.dtype) + c)
        return self

    def rotate(self, R: Any, center: Any) -> "Geometry":
        """Rotate positions about ``center``: p' = R (p - c) + c."""
        positions = self.get_point_positions()
        rot = self._operand(R, (3, 3), positions.dtype, "rotate")
        c = self._operand(center, (3,), positions.dtype, "rotate")
        self._replace_positions((positions - c) @ rot.T + c)
        return self

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    def _describe(self, attributes: AttributeMap, noun: str) -> str:
        primary = attributes.primary_key
        if primary in attributes:
            tensor = attributes[primary]
            head = f"[{tensor.shape[0]} {noun} ({tensor.dtype})]"
        else:
            head = f"[0 {noun}]"
        others = [
            f"{key} (dtype = {value.dtype}, shape = {tuple(value.shape)})"
            for key, value in attributes.items()
            if key != primary
        ]
        return f"{head}. Attributes: {', '.join(others) if others else 'None'}."
