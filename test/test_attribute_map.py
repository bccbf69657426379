"""
Tests for AttributeMap: primary-key invariants, has() gating, ownership tags.
"""

import logging

import numpy as np
import pytest

from icp_core.common.device import array_device, resolve_device
from icp_core.common.errors import (
    CapacityError,
    DeviceMismatchError,
    DtypeMismatchError,
    InvalidMutationError,
    KeyNotFoundError,
    ShapeMismatchError,
)
from icp_core.common.jax_init import jax, jnp
from icp_core.geometry.attribute_map import AttributeMap, Storage


def _map(n: int = 5) -> AttributeMap:
    m = AttributeMap("positions")
    m.set("positions", np.zeros((n, 3)))
    return m


class TestLookup:
    """get / contains / has semantics."""

    def test_get_missing_key_raises(self):
        m = _map()
        with pytest.raises(KeyNotFoundError, match="normals"):
            m.get("normals")

    def test_missing_key_is_a_key_error(self):
        m = _map()
        with pytest.raises(KeyError):
            m["normals"]

    def test_set_aliases_device_arrays(self):
        """A JAX array on the map's device is stored as-is, not copied."""
        m = AttributeMap("positions")
        arr = jnp.ones((4, 3))
        m["positions"] = arr
        assert m["positions"] is arr

    def test_host_data_committed_to_map_device(self):
        m = _map()
        assert array_device(m["positions"]) == resolve_device("CPU:0")

    def test_contains_is_pure_lookup(self):
        m = _map(5)
        m.set("normals", np.zeros((4, 3)))
        assert m.contains("normals")
        assert "normals" in m
        assert not m.contains("colors")


class TestHasGating:
    """has(key) requires existence, the primary length and a nonzero length."""

    def test_has_matching_length(self):
        m = _map(5)
        m.set("normals", np.zeros((5, 3)))
        assert m.has("normals")

    def test_length_mismatch_treated_as_absent(self):
        m = _map(5)
        m.set("normals", np.zeros((4, 3)))
        assert not m.has("normals")
        # Never resized behind the caller's back
        assert m["normals"].shape == (4, 3)

    def test_empty_primary_has_nothing(self):
        m = AttributeMap("positions")
        m.set("positions", np.zeros((0, 3)))
        m.set("normals", np.zeros((0, 3)))
        assert not m.has("positions")
        assert not m.has("normals")

    def test_missing_primary_has_nothing(self):
        m = AttributeMap("positions")
        m.set("normals", np.zeros((3, 3)))
        assert not m.has("normals")
        assert m.primary_length() == 0

    def test_size_synchronization(self):
        m = _map(5)
        m.set("normals", np.zeros((5, 3)))
        assert m.is_size_synchronized()
        m.set("colors", np.zeros((2, 3)))
        assert not m.is_size_synchronized()
        with pytest.raises(ShapeMismatchError, match="colors"):
            m.assert_size_synchronized()


class TestMutation:
    """set / erase / clear."""

    def test_set_does_not_check_dtype(self):
        m = _map(5)
        m.set("labels", np.zeros((5,), dtype=np.int32))
        assert m["labels"].dtype == jnp.int32
        assert m.has("labels")

    def test_set_on_other_device_raises(self, second_cpu):
        m = _map()
        other = jax.device_put(jnp.zeros((5, 3)), second_cpu)
        with pytest.raises(DeviceMismatchError, match="normals"):
            m.set("normals", other)
        assert "normals" not in m

    def test_erase_removes_key(self):
        m = _map()
        m.set("normals", np.zeros((5, 3)))
        del m["normals"]
        assert "normals" not in m

    def test_erase_absent_key_warns(self, caplog):
        m = _map()
        with caplog.at_level(logging.WARNING, logger="icp_core.geometry.attribute_map"):
            m.erase("normals")
        assert "normals" in caplog.text
        assert list(m.keys()) == ["positions"]

    def test_erase_primary_raises(self):
        m = _map()
        with pytest.raises(InvalidMutationError, match="primary"):
            m.erase("positions")
        assert "positions" in m

    def test_clear_removes_primary(self):
        m = _map()
        m.set("normals", np.zeros((5, 3)))
        m.clear()
        assert len(m) == 0
        assert m.primary_length() == 0


class TestAppend:
    """Capacity-growing append and the OWNED / FIXED tags."""

    def test_append_grows_every_key(self):
        m = _map(2)
        m.set("normals", np.ones((2, 3)))
        m.append({"positions": np.ones((3, 3)), "normals": np.zeros((3, 3))})
        assert m["positions"].shape == (5, 3)
        assert m["normals"].shape == (5, 3)
        assert np.allclose(np.asarray(m["positions"][2:]), 1.0)

    def test_append_makes_entries_owned(self):
        m = AttributeMap("positions")
        m.set("positions", np.zeros((2, 3)))
        m.append({"positions": np.zeros((1, 3))})
        assert m.storage("positions") is Storage.OWNED

    def test_append_to_fixed_storage_raises_before_change(self):
        m = AttributeMap("positions", attributes={"positions": np.zeros((2, 3))}, fixed_capacity=True)
        m.set("normals", np.zeros((2, 3)))
        assert m.storage("positions") is Storage.FIXED
        assert m.storage("normals") is Storage.OWNED
        with pytest.raises(CapacityError, match="positions"):
            m.append({"positions": np.zeros((1, 3)), "normals": np.zeros((1, 3))})
        assert m["positions"].shape == (2, 3)
        assert m["normals"].shape == (2, 3)

    def test_capacity_error_is_invalid_mutation(self):
        assert issubclass(CapacityError, InvalidMutationError)

    def test_append_missing_key_raises(self):
        m = _map(2)
        m.set("normals", np.zeros((2, 3)))
        with pytest.raises(KeyNotFoundError, match="normals"):
            m.append({"positions": np.zeros((1, 3))})
        assert m["positions"].shape == (2, 3)

    def test_append_dtype_mismatch_raises(self):
        m = _map(2)
        with pytest.raises(DtypeMismatchError):
            m.append({"positions": np.zeros((1, 3), dtype=np.float32)})

    def test_append_unequal_rows_raises(self):
        m = _map(2)
        m.set("normals", np.zeros((2, 3)))
        with pytest.raises(ShapeMismatchError):
            m.append({"positions": np.zeros((1, 3)), "normals": np.zeros((2, 3))})
        assert m.is_size_synchronized()


class TestDeviceTransfer:
    """to(device, copy)."""

    def test_same_device_shares_tensors(self):
        m = _map()
        out = m.to("CPU:0")
        assert out["positions"] is m["positions"]

    def test_same_device_copy_is_owned(self):
        m = AttributeMap("positions", attributes={"positions": np.ones((2, 3))}, fixed_capacity=True)
        out = m.to("CPU:0", copy=True)
        assert out["positions"] is not m["positions"]
        assert out.storage("positions") is Storage.OWNED
        assert np.array_equal(np.asarray(out["positions"]), np.asarray(m["positions"]))

    def test_transfer_to_other_device(self, second_cpu):
        m = _map()
        out = m.to(second_cpu)
        assert out.device == second_cpu
        assert array_device(out["positions"]) == second_cpu
        # Source map unchanged
        assert array_device(m["positions"]) == resolve_device("CPU:0")
