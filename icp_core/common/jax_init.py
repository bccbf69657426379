"""
Common JAX Initialization Module.

This module initializes JAX once at import time.
All other modules should import JAX from here instead of importing jax directly
so that x64 precision is enabled before the first array is created.

Usage:
    from icp_core.common.jax_init import jax, jnp

    # JAX is already configured for x64 precision
    devices = jax.devices()
"""

from __future__ import annotations

import os

# Configure JAX environment variables BEFORE importing JAX.
# Platform selection is left to the caller (JAX_PLATFORMS); we only avoid
# grabbing most of the accelerator memory up front.
os.environ.setdefault("XLA_PYTHON_CLIENT_PREALLOCATE", "false")

import jax
import jax.numpy as jnp

# Configure JAX for x64 precision (float64 results and int64 correspondences)
jax.config.update("jax_enable_x64", True)

__all__ = ["jax", "jnp"]
