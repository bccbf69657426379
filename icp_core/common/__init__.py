"""
Common package for icp_core.

Shared configuration, device handling and errors used by geometry and
registration.

Subpackages:
- transforms/: SE(3) conversions
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "constants",
    "errors",
    "resolve_device",
    "device_to_string",
]

_LAZY_ATTRS: dict[str, tuple[str, str | None]] = {
    # Expose these as submodules, but do not eagerly import them at package import time.
    "constants": ("icp_core.common.constants", None),
    "errors": ("icp_core.common.errors", None),
    "resolve_device": ("icp_core.common.device", "resolve_device"),
    "device_to_string": ("icp_core.common.device", "device_to_string"),
}


def __getattr__(name: str) -> Any:
    target = _LAZY_ATTRS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = target
    module = import_module(module_name)
    return module if attr_name is None else getattr(module, attr_name)


def __dir__() -> list[str]:
    return sorted(set(globals().keys()) | set(_LAZY_ATTRS.keys()))
