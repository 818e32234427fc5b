"""
Instance facades.

``use_module(descriptor, context)`` returns a thin handle whose attributes
read and write the live store:

- state field -> current value in the state tree
- getter      -> current getter value
- mutator     -> read: committer function; assign: immediate commit
- action      -> dispatcher returning an awaitable

Every access goes back to the store; facades hold no state of their own and
can be recreated at any time.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, List, Sequence, Tuple

from .errors import ModuleNotWiredError, ReadOnlyStateError
from .namespace import Namespace, join_key
from .protocols import UNSET, StoreLike
from .store import _MISSING, _walk

if TYPE_CHECKING:  # pragma: no cover - only for typing
    from .descriptor import ModuleDescriptor

logger = logging.getLogger(__name__)


def resolve_store(context: Any) -> Any:
    """
    Find the backing store behind ``context``.

    Accepts a store, anything exposing ``__store__`` or ``store`` (execution
    contexts, helper receivers, application objects), or a bare receiver
    carrying ``state`` / ``getters``.
    """
    if context is None:
        raise TypeError("use_module() needs a store or an object exposing one")

    store = getattr(context, "__store__", None)
    if store is not None:
        return store
    if isinstance(context, StoreLike):
        return context
    store = getattr(context, "store", None)
    if store is not None and store is not context:
        return resolve_store(store)
    if hasattr(context, "state") and hasattr(context, "getters"):
        return context
    raise TypeError(f"cannot find a store behind {type(context).__name__}")


def module_path(store: Any, descriptor: "ModuleDescriptor", base: Sequence[str] = ()) -> Namespace:
    """Path of ``descriptor`` inside ``store``; raises ModuleNotWiredError if absent."""
    resolver = getattr(store, "module_path", None)
    if callable(resolver):
        return tuple(resolver(descriptor, base=base))

    path = tuple(descriptor.namespace)
    if _walk(store.state, path) is _MISSING:
        raise ModuleNotWiredError(path, "no state at this path")
    return path


class ModuleFacade:
    """Live read/write/call adapter over one mounted module."""

    __slots__ = ("_descriptor", "_store", "_path")

    def __init__(self, descriptor: "ModuleDescriptor", store: Any, path: Namespace):
        object.__setattr__(self, "_descriptor", descriptor)
        object.__setattr__(self, "_store", store)
        object.__setattr__(self, "_path", tuple(path))

    @property
    def __store__(self) -> Any:
        return self._store

    @property
    def __module_path__(self) -> Namespace:
        return self._path

    def _key(self, name: str) -> str:
        return join_key(self._path, name)

    def _state(self):
        node = _walk(self._store.state, self._path)
        if node is _MISSING:
            raise ModuleNotWiredError(self._path, "module state disappeared from the store")
        return node

    def _getter(self, name: str) -> Any:
        getters = getattr(self._store, "root_getters", None)
        if getters is None:
            getters = self._store.getters
        return getters[self._key(name)]

    def _commit(self, name: str, value: Any = UNSET) -> Any:
        return self._store.commit(self._key(name), value, root=True)

    def __getattr__(self, name: str) -> Any:
        if name in ModuleFacade.__slots__:
            raise AttributeError(name)
        descriptor = self._descriptor

        if name in descriptor.actions:
            key = self._key(name)
            store = self._store

            def dispatch(payload=UNSET):
                return store.dispatch(key, payload, root=True)

            dispatch.__name__ = name
            return dispatch

        if name in descriptor.mutators:

            def commit(value=UNSET):
                return self._commit(name, value)

            commit.__name__ = name
            return commit

        if name in descriptor.getters:
            return self._getter(name)

        state = self._state()
        if name in state:
            return state[name]
        raise AttributeError(f"module '{join_key(self._path) or '<root>'}' has no member '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        descriptor = self._descriptor
        if name in descriptor.mutators:
            self._commit(name, value)
            return
        if name in descriptor.getters or name in descriptor.state_fields or name in self._state():
            raise ReadOnlyStateError(name)
        raise AttributeError(f"module '{join_key(self._path) or '<root>'}' has no mutator '{name}'")

    def __delattr__(self, name: str) -> None:
        raise ReadOnlyStateError(name)

    def __dir__(self) -> List[str]:
        descriptor = self._descriptor
        names = set(descriptor.getters) | set(descriptor.mutators) | set(descriptor.actions)
        try:
            names |= set(self._state())
        except ModuleNotWiredError:
            pass
        return sorted(names)

    def __repr__(self) -> str:
        return f"<ModuleFacade {join_key(self._path) or '<root>'}>"


def use_module(descriptor: "ModuleDescriptor", context: Any) -> ModuleFacade:
    """
    Facade over ``descriptor`` as mounted in the store reachable from ``context``.

    When ``context`` belongs to a module (an execution context or helper
    receiver), a mount of ``descriptor`` directly below that module is
    preferred. Raises :class:`ModuleNotWiredError` if the module is not
    mounted.
    """
    store = resolve_store(context)
    base: Tuple[str, ...] = tuple(getattr(context, "__module_path__", ()) or ())
    path = module_path(store, descriptor, base)
    logger.debug("use_module %s -> %s", descriptor.raw_namespace or "<root>", join_key(path) or "<root>")
    return ModuleFacade(descriptor, store, path)


use_store = use_module


__all__ = ["ModuleFacade", "use_module", "use_store", "resolve_store", "module_path"]
