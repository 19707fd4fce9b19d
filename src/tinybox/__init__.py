"""Minimal dependency injection container.

This package provides a small dependency injection container for Python,
mapping string keys to providers or singleton values, with aliases and
automatic constructor injection for classes.

Exports:
- `Container`: Binding registry (`bind`, `singleton`, `alias`, `get`, `has`, `remove`)
  and object builder (`make`). Also usable as a mapping: ``c["id"] = value``.
- `BindingKind`: Enum telling normal bindings (re-invoked on every lookup) from singletons.
- `ContainerError`: Raised when `make` cannot build an object.
- `NotFoundError`: Raised when a key has no binding.
- `get_instance`, `set_instance`, `reset_instance`: control the process-wide container.
"""

from ._container import (
    BindingKind,
    Container,
    ContainerError,
    NotFoundError,
    get_instance,
    reset_instance,
    set_instance,
)


__all__ = [
    "BindingKind",
    "Container",
    "ContainerError",
    "NotFoundError",
    "get_instance",
    "reset_instance",
    "set_instance",
]
