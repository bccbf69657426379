"""
AttributeMap: named-tensor dictionary with a primary key.

Every geometric entity stores its per-element data in one or more of these.

Invariants:
- Every stored tensor lives on the map's device (dtype may vary per key).
- The primary key's length is the map's canonical length.
- ``has(key)`` is true only when the key exists, its length equals the
  primary length and that length is nonzero. Mismatched arrays are treated
  as absent by queries and are never resized behind the caller's back.

Storage is aliased: a JAX array handed to ``set`` is stored as-is. Entries
set with ``fixed_capacity=True`` are borrowed storage; any operation that
would grow them (``append``) fails with ``CapacityError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from icp_core.common.device import (
    DeviceLike,
    array_device,
    as_tensor,
    assert_device,
    device_to_string,
    resolve_device,
)
from icp_core.common.errors import (
    CapacityError,
    DtypeMismatchError,
    InvalidMutationError,
    KeyNotFoundError,
    ShapeMismatchError,
)
from icp_core.common.jax_init import jax, jnp

_logger = logging.getLogger(__name__)


class Storage(Enum):
    """Ownership tag of a stored tensor."""
    OWNED = "owned"  # map may replace it with a grown copy
    FIXED = "fixed"  # borrowed from the caller, fixed capacity


@dataclass(frozen=True)
class _Entry:
    value: jax.Array
    storage: Storage


class AttributeMap:
    """
    Mapping from attribute name to tensor, anchored on a primary key.

    Args:
        primary_key: Key whose length defines the canonical length.
        device: Device every tensor must live on.
        attributes: Optional initial tensors (aliased, not copied).
        fixed_capacity: Tag the initial tensors as borrowed fixed-capacity storage.
    """

    def __init__(
        self,
        primary_key: str,
        device: DeviceLike = None,
        attributes: Optional[Mapping[str, Any]] = None,
        fixed_capacity: bool = False,
    ):
        self._primary_key = primary_key
        self._device = resolve_device(device)
        self._entries: Dict[str, _Entry] = {}
        for key, value in (attributes or {}).items():
            self.set(key, value, fixed_capacity=fixed_capacity)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def primary_key(self) -> str:
        return self._primary_key

    @property
    def device(self) -> "jax.Device":
        return self._device

    def keys(self):
        return self._entries.keys()

    def items(self) -> Iterator[Tuple[str, jax.Array]]:
        for key, entry in self._entries.items():
            yield key, entry.value

    def storage(self, key: str) -> Storage:
        return self._entry(key).storage

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        fields = ", ".join(
            f"{key}: {tuple(entry.value.shape)} {entry.value.dtype}"
            for key, entry in self._entries.items()
        )
        return (
            f"AttributeMap(primary_key={self._primary_key!r}, "
            f"device={device_to_string(self._device)}, {{{fields}}})"
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def _entry(self, key: str) -> _Entry:
        try:
            return self._entries[key]
        except KeyError:
            raise KeyNotFoundError(
                f"AttributeMap: key {key!r} not found (primary {self._primary_key!r}, "
                f"keys={sorted(self._entries)})"
            ) from None

    def get(self, key: str) -> jax.Array:
        return self._entry(key).value

    def __getitem__(self, key: str) -> jax.Array:
        return self.get(key)

    def contains(self, key: str) -> bool:
        return key in self._entries

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def primary_length(self) -> int:
        """Length of the primary tensor, 0 if it is not stored."""
        entry = self._entries.get(self._primary_key)
        return 0 if entry is None else _length(entry.value)

    def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        length = _length(entry.value)
        return length > 0 and length == self.primary_length()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set(self, key: str, value: Any, fixed_capacity: bool = False) -> None:
        """
        Store ``value`` under ``key``.

        Only the device is checked here; dtype consistency between attributes
        is the consumer's responsibility.
        """
        tensor = as_tensor(value, self._device)
        assert_device(tensor, self._device, f"AttributeMap.set({key!r})")
        storage = Storage.FIXED if fixed_capacity else Storage.OWNED
        self._entries[key] = _Entry(tensor, storage)

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def erase(self, key: str) -> None:
        if key == self._primary_key:
            raise InvalidMutationError(f"AttributeMap.erase: cannot erase primary key {key!r}")
        if key not in self._entries:
            _logger.warning("AttributeMap.erase: key %r not present, nothing erased", key)
            return
        del self._entries[key]

    def __delitem__(self, key: str) -> None:
        self.erase(key)

    def clear(self) -> None:
        """Remove every entry, the primary included."""
        self._entries.clear()

    # ------------------------------------------------------------------
    # Size synchronization
    # ------------------------------------------------------------------

    def is_size_synchronized(self) -> bool:
        """True when every stored tensor has the primary length."""
        length = self.primary_length()
        return all(_length(entry.value) == length for entry in self._entries.values())

    def assert_size_synchronized(self) -> None:
        length = self.primary_length()
        for key, entry in self._entries.items():
            if _length(entry.value) != length:
                raise ShapeMismatchError(
                    f"AttributeMap: {key!r} has length {_length(entry.value)}, "
                    f"primary {self._primary_key!r} has length {length}"
                )

    # ------------------------------------------------------------------
    # Capacity-growing operations
    # ------------------------------------------------------------------

    def fixed_keys(self) -> list:
        return sorted(key for key, entry in self._entries.items() if entry.storage is Storage.FIXED)

    def append(self, rows: Mapping[str, Any]) -> None:
        """
        Grow every stored tensor by the matching rows of ``rows``.

        ``rows`` must provide every stored key with the same trailing shape
        and dtype. Fails before modifying anything if an entry is borrowed
        fixed-capacity storage.
        """
        self._commit(self._grow(rows))

    def _grow(self, rows: Mapping[str, Any]) -> Dict[str, jax.Array]:
        """Validated grown tensors for ``append``; the map is not modified."""
        fixed = self.fixed_keys()
        if fixed:
            raise CapacityError(f"AttributeMap.append: fixed-capacity storage for {fixed}")
        self.assert_size_synchronized()

        grown: Dict[str, jax.Array] = {}
        for key, entry in self._entries.items():
            if key not in rows:
                raise KeyNotFoundError(f"AttributeMap.append: rows missing key {key!r}")
            extra = as_tensor(rows[key], self._device)
            assert_device(extra, self._device, f"AttributeMap.append({key!r})")
            if extra.dtype != entry.value.dtype:
                raise DtypeMismatchError(
                    f"AttributeMap.append({key!r}): expected dtype {entry.value.dtype}, got {extra.dtype}"
                )
            if extra.shape[1:] != entry.value.shape[1:]:
                raise ShapeMismatchError(
                    f"AttributeMap.append({key!r}): expected trailing shape "
                    f"{tuple(entry.value.shape[1:])}, got {tuple(extra.shape[1:])}"
                )
            grown[key] = jnp.concatenate([entry.value, extra], axis=0)

        lengths = {_length(value) for value in grown.values()}
        if len(lengths) > 1:
            raise ShapeMismatchError(f"AttributeMap.append: appended rows have unequal lengths {sorted(lengths)}")
        return grown

    def _commit(self, grown: Mapping[str, jax.Array]) -> None:
        for key, value in grown.items():
            self._entries[key] = _Entry(value, Storage.OWNED)

    # ------------------------------------------------------------------
    # Device transfer
    # ------------------------------------------------------------------

    def to(self, device: DeviceLike, copy: bool = False) -> "AttributeMap":
        """
        Map on ``device``. Tensors already there are shared unless ``copy``;
        transferred or copied tensors are owned by the new map.
        """
        target = resolve_device(device)
        out = AttributeMap(self._primary_key, target)
        for key, entry in self._entries.items():
            if array_device(entry.value) != target:
                out._entries[key] = _Entry(jax.device_put(entry.value, target), Storage.OWNED)
            elif copy:
                out._entries[key] = _Entry(jax.device_put(jnp.copy(entry.value), target), Storage.OWNED)
            else:
                out._entries[key] = entry
        return out


def _length(value: jax.Array) -> int:
    return int(value.shape[0]) if value.ndim > 0 else 0
