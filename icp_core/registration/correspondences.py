"""
Correspondence arrays and validity filtering.

A correspondence array has one int64 entry per source point: the index of the
matched target point, or -1 (``constants.CORRESPONDENCE_SENTINEL``) when the
nearest-neighbour search found no match. Estimators only ever see the
compacted valid pairs produced here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from icp_core.common import constants
from icp_core.common.device import assert_device, assert_dtype, is_tensor
from icp_core.common.errors import (
    DtypeMismatchError,
    EmptyCorrespondenceSetError,
    InvalidCorrespondenceError,
    ShapeMismatchError,
)
from icp_core.common.jax_init import jax, jnp

_logger = logging.getLogger(__name__)


@dataclass
class CorrespondenceIndices:
    """Index pairs of the valid correspondences, both (K,) int64."""
    source: jax.Array
    target: jax.Array

    @property
    def count(self) -> int:
        return int(self.source.shape[0])


def select_valid_correspondences(
    correspondences: jax.Array,
    source_length: int,
    target_length: int,
    device: "jax.Device",
    operation: str = "select_valid_correspondences",
) -> CorrespondenceIndices:
    """
    Validate a correspondence array and compact it to its valid pairs.

    Args:
        correspondences: (N,) or (N, 1) int64 tensor, N = source_length.
        source_length: Number of source points.
        target_length: Number of target points.
        device: Device the source positions live on.
        operation: Prefix for error messages.

    Raises:
        DtypeMismatchError: not an int64 tensor.
        DeviceMismatchError: not on ``device``.
        ShapeMismatchError: length differs from ``source_length``.
        InvalidCorrespondenceError: a non-sentinel entry is outside [0, target_length).
        EmptyCorrespondenceSetError: every entry is the sentinel.
    """
    if not is_tensor(correspondences):
        raise DtypeMismatchError(
            f"{operation}: correspondences must be an int64 tensor, got {type(correspondences).__name__}"
        )
    assert_dtype(correspondences, constants.CORRESPONDENCE_DTYPE, f"{operation}: correspondences")
    assert_device(correspondences, device, f"{operation}: correspondences")

    shape = tuple(correspondences.shape)
    if shape not in ((source_length,), (source_length, 1)):
        raise ShapeMismatchError(
            f"{operation}: correspondences must have shape ({source_length},) or "
            f"({source_length}, 1), got {shape}"
        )
    flat = correspondences.reshape(-1)

    valid = flat != constants.CORRESPONDENCE_SENTINEL
    source_idx = jnp.nonzero(valid)[0].astype(jnp.int64)
    if source_idx.shape[0] == 0:
        raise EmptyCorrespondenceSetError(
            f"{operation}: no valid correspondences among {source_length} source points"
        )
    target_idx = flat[source_idx]

    # Gathers clamp out-of-range indices instead of failing.
    lo = int(jnp.min(target_idx))
    hi = int(jnp.max(target_idx))
    if lo < 0 or hi >= target_length:
        raise InvalidCorrespondenceError(
            f"{operation}: correspondence indices must be in [0, {target_length}) "
            f"or {constants.CORRESPONDENCE_SENTINEL}, got range [{lo}, {hi}]"
        )

    _logger.debug("%s: %d of %d correspondences valid", operation, int(source_idx.shape[0]), source_length)
    return CorrespondenceIndices(source=source_idx, target=target_idx)
