from __future__ import annotations

import inspect
import logging
import pkgutil
import threading
import types
import typing
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar, cast, get_type_hints, overload


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    T = TypeVar("T")

    Provider = Callable[..., Any]

_MISSING = object()


class BindingKind(Enum):
    NORMAL = "normal"
    SINGLETON = "singleton"


@dataclass(frozen=True)
class Binding:
    provider: Provider | None
    kind: BindingKind
    takes_container: bool = False
    value: object | None = None  # cached singleton


class ContainerError(RuntimeError):
    pass


class NotFoundError(ContainerError, LookupError):
    def __init__(self, key: str) -> None:
        super().__init__(f"{key!r} not found in container")
        self.key = key


class Container:
    """Minimal DI container.

    - bind providers (re-invoked on every lookup) or singletons (invoked once, eagerly)
    - alias keys to other keys
    - build classes with constructor injection via `make`
    - mapping-style access: ``c["id"] = value``, ``c["id"]``, ``del c["id"]``, ``"id" in c``.
    """

    def __init__(self) -> None:
        self._bindings: dict[str, Binding] = {}
        self._aliases: dict[str, str] = {}
        self._lock = threading.RLock()

    @classmethod
    def get_instance(cls) -> Container:
        """Return the process-wide container (see `tinybox.get_instance`)."""
        return get_instance()

    def bind(self, key: str, provider: Provider) -> None:
        """Bind a provider, invoked on every `get`.

        Example:
          container.bind("db", lambda c: Database(c.get("dsn")))
          container.bind("dsn", lambda: "sqlite://")
          container.bind("engine", Engine)  # classes are called with no arguments

        """
        takes_container = _accepts_container(provider)
        with self._lock:
            self._aliases.pop(key, None)
            self._bindings[key] = Binding(provider=provider, kind=BindingKind.NORMAL, takes_container=takes_container)

    def singleton(self, key: str, provider: Provider) -> None:
        """Bind a singleton. The provider is invoked right away and its result cached."""
        takes_container = _accepts_container(provider)
        value = provider(self) if takes_container else provider()

        with self._lock:
            self._aliases.pop(key, None)
            self._bindings[key] = Binding(
                provider=None,
                kind=BindingKind.SINGLETON,
                value=value,
            )

    def alias(self, binding_key: str, alias_key: str) -> None:
        with self._lock:
            self._aliases[alias_key] = binding_key

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._bindings or key in self._aliases

    def is_singleton(self, key: str) -> bool:
        binding = self._find_binding(key)
        if binding is None:
            raise NotFoundError(key)
        return binding.kind is BindingKind.SINGLETON

    def get(self, key: str) -> Any:
        value = self._lookup(key)
        if value is _MISSING:
            raise NotFoundError(key)
        return value

    def remove(self, key: str) -> None:
        """Remove a binding. Aliases pointing at `key` are left in place."""
        with self._lock:
            self._bindings.pop(key, None)

    @overload
    def make(self, type_name: type[T], arguments: Mapping[str, Any] | None = ...) -> T: ...

    @overload
    def make(self, type_name: str, arguments: Mapping[str, Any] | None = ...) -> object: ...

    def make(self, type_name: type[T] | str, arguments: Mapping[str, Any] | None = None) -> object:
        """Construct a new instance of `type_name`, resolving its constructor parameters.

        `type_name` is a class or a dotted name (``"pkg.module.Class"`` or ``"pkg.module:Class"``).
        `arguments` lets you explicitly supply constructor args by parameter name.
        """
        cls = _load_class(type_name)
        if not _is_instantiable(cls):
            msg = f"{cls.__qualname__!r} is not instantiable."
            raise ContainerError(msg)

        logger.debug("Making %s.%s", cls.__module__, cls.__qualname__)
        try:
            return Constructor(self).construct(cls, dict(arguments or {}))
        except ContainerError:
            raise
        except Exception as e:
            msg = f"Failed to make {cls.__qualname__!r}: {e}"
            raise ContainerError(msg) from e

    def resolve_param(
        self,
        cls: type,
        p: inspect.Parameter,
        hints: dict[str, Any],
        arguments: dict[str, Any],
    ) -> Any:
        """Pick the value passed to constructor parameter `p` of `cls`.

        Resolution precedence:
        1. explicit argument
        2. union annotation: error
        3. class annotation: recursive `make`
        4. name-based lookup
        5. default, then None.
        """
        name = p.name

        # 1) explicit
        if name in arguments:
            return arguments[name]

        ann = hints.get(name, p.annotation)

        # 2) union
        if _is_union(ann):
            members = [arg for arg in typing.get_args(ann) if arg is not type(None)]
            if len(members) != 1:
                msg = f"Could not resolve argument {name!r} on {cls.__qualname__!r} as it is a union type."
                raise ContainerError(msg)
            ann = members[0]  # Optional[X] is a nullable X

        # 3) type-based
        if _is_buildable(ann):
            return self.make(ann)

        # 4) name-based
        value = self._lookup(name)
        if value is not _MISSING:
            return value

        # 5) default
        if p.default is not inspect.Parameter.empty:
            logger.debug("'%s' not bound, using default for %s", name, cls.__qualname__)
            return p.default
        return None

    def _find_binding(self, key: str) -> Binding | None:
        with self._lock:
            return self._bindings.get(self._aliases.get(key, key))

    def _lookup(self, key: str) -> Any:
        binding = self._find_binding(key)
        if binding is None:
            return _MISSING

        if binding.kind is BindingKind.SINGLETON:
            return binding.value

        provider = cast("Provider", binding.provider)
        return provider(self) if binding.takes_container else provider()

    def __getitem__(self, key: str) -> Any:
        return self.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        if callable(value) and not inspect.isclass(value):
            self.bind(key, value)
        else:
            self.bind(key, lambda: value)

    def __delitem__(self, key: str) -> None:
        self.remove(key)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)


class Constructor:
    def __init__(self, resolver: Container) -> None:
        self._resolver = resolver

    def construct(self, cls: type[T], arguments: dict[str, Any]) -> T:
        if cls.__init__ is object.__init__ and cls.__new__ is object.__new__:
            return cls()

        try:
            sig = inspect.signature(cls)
        except (TypeError, ValueError):
            # builtins and C extensions without introspectable signatures
            return cls()

        if not sig.parameters:
            return cls()

        hints = _get_init_type_hints(cls)
        args, kwargs = self._materialize_call(cls, sig, hints, arguments)
        return cls(*args, **kwargs)

    def _materialize_call(
        self,
        cls: type,
        sig: inspect.Signature,
        hints: dict[str, Any],
        arguments: dict[str, Any],
    ) -> tuple[list[Any], dict[str, Any]]:
        params = sig.parameters
        args: list[Any] = []
        kwargs: dict[str, Any] = {}

        for name, p in params.items():
            # *args is never filled
            if p.kind is p.VAR_POSITIONAL:
                continue

            # **kwargs receives explicit arguments that match no named parameter
            if p.kind is p.VAR_KEYWORD:
                kwargs.update({k: v for k, v in arguments.items() if k not in params})
                continue

            value = self._resolver.resolve_param(cls, p, hints, arguments)
            if p.kind is p.POSITIONAL_ONLY:
                args.append(value)
            else:
                kwargs[name] = value

        return args, kwargs


_instance: Container | None = None
_instance_lock = threading.Lock()


def get_instance() -> Container:
    """Return the process-wide container, creating it on first use."""
    global _instance  # noqa: PLW0603
    instance = _instance
    if instance is None:
        with _instance_lock:
            if _instance is None:
                _instance = Container()
            instance = _instance
    return instance


def set_instance(container: Container) -> None:
    """Install `container` as the process-wide container."""
    global _instance  # noqa: PLW0603
    with _instance_lock:
        _instance = container


def reset_instance() -> None:
    """Forget the process-wide container; the next `get_instance()` creates a new one."""
    global _instance  # noqa: PLW0603
    with _instance_lock:
        _instance = None


def _accepts_container(provider: Provider) -> bool:
    if not callable(provider):
        msg = f"Provider must be callable, got {type(provider).__name__}"
        raise TypeError(msg)

    # classes are zero-argument providers: `bind("engine", Engine)` calls `Engine()`
    if inspect.isclass(provider):
        return False

    try:
        params = inspect.signature(provider).parameters.values()
    except (TypeError, ValueError):
        return False

    return any(p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD, p.VAR_POSITIONAL) for p in params)


def _load_class(type_name: type | str) -> type:
    if not isinstance(type_name, str):
        if not inspect.isclass(type_name):
            msg = f"{type_name!r} is not instantiable."
            raise ContainerError(msg)
        return type_name

    try:
        obj = pkgutil.resolve_name(type_name)
    except (ImportError, AttributeError, ValueError) as e:
        msg = f"Could not find class {type_name!r}: {e}"
        raise ContainerError(msg) from e

    if not inspect.isclass(obj):
        msg = f"{type_name!r} is not instantiable."
        raise ContainerError(msg)
    return obj


def _is_instantiable(cls: type) -> bool:
    return not inspect.isabstract(cls) and not _is_protocol(cls)


def _is_buildable(ann: object) -> bool:
    """Classes outside builtins are built with `make`; anything else is a scalar."""
    # a missing annotation is inspect.Parameter.empty, itself a class
    return (
        ann is not inspect.Parameter.empty
        and isinstance(ann, type)
        and typing.get_origin(ann) is None
        and getattr(ann, "__module__", "") != "builtins"
    )


def _is_union(ann: object) -> bool:
    origin = typing.get_origin(ann)
    return origin is typing.Union or origin is types.UnionType


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def _is_protocol(tp: type) -> bool:
        return typing.is_protocol(tp)

else:

    def _is_protocol(tp: type) -> bool:
        # concrete subclasses of a Protocol have _is_protocol set to False
        return bool(getattr(tp, "_is_protocol", False))


def _get_init_type_hints(cls: type) -> dict[str, Any]:
    try:
        init = inspect.getattr_static(cls, "__init__")
        hints = get_type_hints(init)
    except TypeError:
        hints = {}
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s (%s) type hints", exc.name, cls.__name__, cls.__qualname__)
        hints = {}

    return hints
