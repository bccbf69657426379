"""
Device and dtype helpers.

Devices are an explicit configuration value threaded through entity
construction ("CPU:0", "CUDA:1", or a ``jax.Device``). Nothing here moves a
tensor that already lives on a device: cross-device use is an error, not an
implicit transfer. Host (NumPy / Python) data has no device yet and is
committed to the requested one.
"""

from __future__ import annotations

from typing import Any, Optional, Union

import numpy as np

from icp_core.common import constants
from icp_core.common.errors import DeviceMismatchError, DtypeMismatchError
from icp_core.common.jax_init import jax, jnp

DeviceLike = Union[str, "jax.Device", None]


def resolve_device(device: DeviceLike = None) -> "jax.Device":
    """
    Resolve a device specification to a ``jax.Device``.

    Args:
        device: ``jax.Device``, "PLATFORM:INDEX" string (case-insensitive,
            "CUDA" is an alias for JAX's "gpu" platform) or None for
            ``constants.DEFAULT_DEVICE``.
    """
    if isinstance(device, jax.Device):
        return device
    text = constants.DEFAULT_DEVICE if device is None else str(device)
    platform_name, _, index_str = text.partition(":")
    platform = constants.DEVICE_PLATFORM_ALIASES.get(platform_name.strip().lower())
    if platform is None:
        raise ValueError(f"resolve_device: unknown platform in {text!r}")
    try:
        index = int(index_str) if index_str else 0
    except ValueError as exc:
        raise ValueError(f"resolve_device: bad device index in {text!r}") from exc
    try:
        devices = jax.devices(platform)
    except RuntimeError as exc:
        raise ValueError(f"resolve_device: platform {platform!r} not available for {text!r}") from exc
    if not 0 <= index < len(devices):
        raise ValueError(f"resolve_device: {text!r} out of range ({len(devices)} {platform} device(s))")
    return devices[index]


def device_to_string(device: "jax.Device") -> str:
    """Format a device the way it is configured, e.g. "CPU:0"."""
    platform = "CUDA" if device.platform == "gpu" else device.platform.upper()
    index = jax.devices(device.platform).index(device)
    return f"{platform}:{index}"


def host_device() -> "jax.Device":
    """First CPU device; transforms are returned here."""
    return jax.devices("cpu")[0]


def is_tensor(value: Any) -> bool:
    return isinstance(value, jax.Array)


def array_device(array: "jax.Array") -> "jax.Device":
    """The single device a tensor is committed to."""
    devices = array.devices()
    if len(devices) != 1:
        raise DeviceMismatchError(
            f"array_device: expected a single-device array, got one spread over {len(devices)} devices"
        )
    return next(iter(devices))


def as_tensor(value: Any, device: "jax.Device", dtype: Optional[Any] = None) -> "jax.Array":
    """
    Return ``value`` as a tensor without copying device data.

    JAX arrays are returned as-is (aliased); the caller checks their device.
    Host data is committed to ``device``.
    """
    if is_tensor(value):
        if dtype is not None and value.dtype != jnp.dtype(dtype):
            raise DtypeMismatchError(f"as_tensor: expected dtype {jnp.dtype(dtype)}, got {value.dtype}")
        return value
    host = np.asarray(value, dtype=dtype)
    return jax.device_put(host, device)


def assert_device(array: "jax.Array", device: "jax.Device", name: str) -> None:
    actual = array_device(array)
    if actual != device:
        raise DeviceMismatchError(
            f"{name}: tensor is on {device_to_string(actual)}, expected {device_to_string(device)}"
        )


def assert_dtype(array: "jax.Array", dtype: Any, name: str) -> None:
    expected = jnp.dtype(dtype)
    if array.dtype != expected:
        raise DtypeMismatchError(f"{name}: expected dtype {expected}, got {array.dtype}")


def is_floating(array: "jax.Array") -> bool:
    return jnp.issubdtype(array.dtype, jnp.floating)


def is_integer(array: "jax.Array") -> bool:
    return jnp.issubdtype(array.dtype, jnp.integer)
