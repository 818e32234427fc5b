"""
In-process backing store.

A small state container that accepts module descriptors wholesale (children
included) and implements the routing contract the engine relies on:

- ``state``: the state tree, nested by namespace segment
- ``getters`` / ``root_getters``: flat mapping keyed by fully qualified name
- ``commit(key, payload, root=True)``: apply a mutator synchronously
- ``dispatch(key, payload, root=True)``: start an action, awaitable
- ``module_path(descriptor)``: where a descriptor is mounted

The store is the only owner of live state. Mutators are the only path that
changes it; each commit runs to completion before the next one starts, which
makes a mutator the atomicity boundary of the system.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from .config import get_config
from .errors import (
    GetterPurityError,
    ModuleNotWiredError,
    NamespaceCollisionError,
    UnknownActionError,
    UnknownMutationError,
)
from .namespace import Namespace, join_key, normalize_namespace
from .protocols import UNSET, ActionRecord, MutationRecord

if TYPE_CHECKING:  # pragma: no cover - only for typing
    from .descriptor import ModuleDescriptor

logger = logging.getLogger(__name__)

_MISSING = object()

Subscriber = Callable[[MutationRecord, Dict[str, Any]], Any]
ActionSubscriber = Callable[[ActionRecord, Dict[str, Any]], Any]
Plugin = Callable[["Store"], Any]


class _ModuleRecord:
    __slots__ = ("descriptor", "path")

    def __init__(self, descriptor: "ModuleDescriptor", path: Namespace):
        self.descriptor = descriptor
        self.path = path

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"<ModuleRecord {'/'.join(self.path) or '<root>'}>"


def _walk(tree: Any, path: Sequence[str]) -> Any:
    node = tree
    for segment in path:
        if not isinstance(node, Mapping) or segment not in node:
            return _MISSING
        node = node[segment]
    return node


async def _resolved(value: Any) -> Any:
    return value


class GettersView(Mapping):
    """Flat, live view of every getter in the store, keyed by qualified name."""

    def __init__(self, store: "Store"):
        self._store = store

    @property
    def __store__(self) -> "Store":
        return self._store

    @property
    def __module_path__(self) -> Namespace:
        return ()

    def __getitem__(self, key: str) -> Any:
        return self._store._evaluate_getter(key)

    def __contains__(self, key: object) -> bool:
        return key in self._store._getters

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._store._getters))

    def __len__(self) -> int:
        return len(self._store._getters)

    def __repr__(self) -> str:
        return f"<GettersView {list(self)!r}>"


class LocalGettersView(Mapping):
    """Getters of one module keyed by local name."""

    def __init__(self, store: "Store", path: Namespace):
        self._store = store
        self._path = path

    @property
    def __store__(self) -> "Store":
        return self._store

    @property
    def __module_path__(self) -> Namespace:
        return self._path

    def _names(self) -> List[str]:
        record = self._store._modules.get(self._path)
        return list(record.descriptor.getters) if record else []

    def __getitem__(self, name: str) -> Any:
        return self._store._evaluate_getter(join_key(self._path, name))

    def __contains__(self, name: object) -> bool:
        return name in self._names()

    def __iter__(self) -> Iterator[str]:
        return iter(self._names())

    def __len__(self) -> int:
        return len(self._names())


class ScopedStore:
    """
    The store as seen from one module's action.

    Attribute access goes to the store, so injected services stay reachable;
    ``__module_path__`` names the module the action belongs to.
    """

    __slots__ = ("_store", "_path")

    def __init__(self, store: "Store", path: Namespace):
        object.__setattr__(self, "_store", store)
        object.__setattr__(self, "_path", path)

    @property
    def __store__(self) -> "Store":
        return self._store

    @property
    def __module_path__(self) -> Namespace:
        return self._path

    def __getattr__(self, name: str) -> Any:
        if name in ScopedStore.__slots__:
            raise AttributeError(name)
        return getattr(self._store, name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._store, name, value)

    def __repr__(self) -> str:
        return f"<ScopedStore path={join_key(self._path) or '<root>'}>"


class LocalContext:
    """
    Store primitives handed to an action handler.

    ``commit`` / ``dispatch`` are scoped to the module unless ``root=True``
    is passed, in which case the key is used as a fully qualified name.
    """

    __slots__ = ("_store", "path")

    def __init__(self, store: "Store", path: Namespace):
        self._store = store
        self.path = path

    @property
    def state(self) -> Dict[str, Any]:
        return self._store._local_state(self.path)

    @property
    def getters(self) -> LocalGettersView:
        return LocalGettersView(self._store, self.path)

    @property
    def root_state(self) -> Dict[str, Any]:
        return self._store.state

    @property
    def root_getters(self) -> GettersView:
        return self._store.getters

    @property
    def receiver(self) -> ScopedStore:
        return ScopedStore(self._store, self.path)

    @property
    def __store__(self) -> "Store":
        return self._store

    @property
    def __module_path__(self) -> Namespace:
        return self.path

    def _qualify(self, key: str, root: bool) -> str:
        return key if root else join_key(self.path, key)

    def commit(self, key: str, payload: Any = UNSET, *, root: bool = False) -> Any:
        return self._store.commit(self._qualify(key, root), payload, root=True)

    def dispatch(self, key: str, payload: Any = UNSET, *, root: bool = False):
        return self._store.dispatch(self._qualify(key, root), payload, root=True)


class ReadOnlyStore:
    """Store handle given to getters: reads pass through, writes raise."""

    def __init__(self, store: Any):
        self._store = store

    @property
    def state(self):
        return self._store.state

    @property
    def getters(self):
        return self._store.getters

    @property
    def root_getters(self):
        getters = getattr(self._store, "root_getters", None)
        return self._store.getters if getters is None else getters

    def module_path(self, descriptor: "ModuleDescriptor", base: Sequence[str] = ()) -> Namespace:
        resolver = getattr(self._store, "module_path", None)
        if resolver is None:
            raise ModuleNotWiredError(descriptor.namespace, "store cannot resolve module paths")
        return resolver(descriptor, base=base)

    def commit(self, key: str, payload: Any = UNSET, *, root: bool = True) -> Any:
        raise GetterPurityError(f"getters must not commit '{key}'")

    def dispatch(self, key: str, payload: Any = UNSET, *, root: bool = True) -> Any:
        raise GetterPurityError(f"getters must not dispatch '{key}'")

    def __repr__(self) -> str:
        return f"<ReadOnlyStore {self._store!r}>"


class Store:
    """
    Backing store for modules built by :func:`storeclass.create_module`.

    Args:
        root: Module mounted at the root of the state tree (optional).
        plugins: Callables invoked once with the store after the root module
            is installed.
        atomic_commits: Back up the module's own fields before each commit
            and restore them if the mutator raises. Mutators work on the live
            values, so references handed out earlier stay valid after a
            successful commit; after a failed one they point at discarded
            objects. Defaults to the ``STORECLASS_ATOMIC_COMMITS`` setting.
    """

    def __init__(
        self,
        root: Optional["ModuleDescriptor"] = None,
        *,
        plugins: Iterable[Plugin] = (),
        atomic_commits: Optional[bool] = None,
    ):
        self._state: Dict[str, Any] = {}
        self._modules: Dict[Namespace, _ModuleRecord] = {}
        self._paths: Dict["ModuleDescriptor", List[Namespace]] = {}
        self._mutations: Dict[str, Tuple[_ModuleRecord, str]] = {}
        self._actions: Dict[str, Tuple[_ModuleRecord, str]] = {}
        self._getters: Dict[str, Tuple[_ModuleRecord, str]] = {}
        self._subscribers: List[Subscriber] = []
        self._action_subscribers: List[ActionSubscriber] = []
        self._atomic = get_config().atomic_commits if atomic_commits is None else bool(atomic_commits)
        self._getters_view = GettersView(self)

        if root is not None:
            self._install(root, ())
        for plugin in plugins:
            plugin(self)

    # ------------------------------------------------------------------
    # Contract surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> Dict[str, Any]:
        return self._state

    @property
    def getters(self) -> GettersView:
        return self._getters_view

    @property
    def root_getters(self) -> GettersView:
        return self._getters_view

    def commit(self, key: str, payload: Any = UNSET, *, root: bool = True) -> None:
        """Apply the mutator registered under the fully qualified ``key``.

        Keys are always global at the store level; ``root`` is accepted for
        contract compatibility with scoped contexts.
        """
        entry = self._mutations.get(key)
        if entry is None:
            raise UnknownMutationError(key)
        record, name = entry
        handler = record.descriptor.mutators[name]
        local = self._local_state(record.path)
        logger.debug("commit %s", key)

        if self._atomic:
            children = self._child_keys(record.path)
            backup = {k: copy.deepcopy(v) for k, v in local.items() if k not in children}
            try:
                handler(local, payload)
            except Exception:
                for stale in [k for k in local if k not in children]:
                    del local[stale]
                local.update(backup)
                raise
        else:
            handler(local, payload)

        self._notify(self._subscribers, MutationRecord(key, payload))

    def dispatch(self, key: str, payload: Any = UNSET, *, root: bool = True) -> Awaitable[Any]:
        """Start the action registered under the fully qualified ``key``.

        Inside a running event loop the action is scheduled as a task right
        away, so it runs even if the caller never awaits the result. Outside
        a loop the returned coroutine is handed to ``asyncio.run`` or similar.
        """
        entry = self._actions.get(key)
        if entry is None:
            raise UnknownActionError(key)
        record, name = entry
        handler = record.descriptor.actions[name]
        logger.debug("dispatch %s", key)
        self._notify(self._action_subscribers, ActionRecord(key, payload))

        result = handler(LocalContext(self, record.path), payload)
        if not inspect.isawaitable(result):
            result = _resolved(result)
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return result
        return asyncio.ensure_future(result)

    # ------------------------------------------------------------------
    # Module registration
    # ------------------------------------------------------------------

    def register_module(
        self,
        descriptor: "ModuleDescriptor",
        path: Union[str, Sequence[str], None] = None,
    ) -> Namespace:
        """Mount ``descriptor`` (and its children) at ``path``.

        ``path`` defaults to the descriptor's own namespace. Returns the
        path the module was mounted at.
        """
        target = self._coerce_path(descriptor.namespace if path is None else path)
        self._install(descriptor, target)
        logger.info("Registered module '%s'", "/".join(target) or "<root>")
        return target

    def unregister_module(self, path: Union[str, Sequence[str]]) -> None:
        """Remove the module at ``path`` together with everything below it."""
        target = self._coerce_path(path)
        if not target:
            raise ValueError("the root module cannot be unregistered")
        if target not in self._modules:
            raise ModuleNotWiredError(target)

        doomed = [p for p in self._modules if p[: len(target)] == target]
        for p in doomed:
            record = self._modules.pop(p)
            paths = self._paths.get(record.descriptor, [])
            if p in paths:
                paths.remove(p)
            if not paths:
                self._paths.pop(record.descriptor, None)
        for table in (self._mutations, self._actions, self._getters):
            for key in [k for k, (rec, _) in table.items() if rec.path in doomed]:
                del table[key]

        parent = _walk(self._state, target[:-1])
        if isinstance(parent, dict):
            parent.pop(target[-1], None)
        logger.info("Unregistered module '%s'", "/".join(target))

    def has_module(self, path: Union[str, Sequence[str]]) -> bool:
        return self._coerce_path(path) in self._modules

    def module_path(self, descriptor: "ModuleDescriptor", base: Sequence[str] = ()) -> Namespace:
        """Path ``descriptor`` is mounted at.

        When a module is mounted more than once, the mount below ``base``
        wins, then the mount at its own namespace, then the first mount.
        """
        paths = self._paths.get(descriptor)
        if not paths:
            raise ModuleNotWiredError(descriptor.namespace)
        relative = tuple(base) + tuple(descriptor.namespace)
        if relative in paths:
            return relative
        if descriptor.namespace in paths:
            return descriptor.namespace
        return paths[0]

    # ------------------------------------------------------------------
    # Observers, plugins, services
    # ------------------------------------------------------------------

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        """Call ``fn(mutation, state)`` after every commit. Returns an unsubscribe callable."""
        self._subscribers.append(fn)
        return lambda: self._subscribers.remove(fn) if fn in self._subscribers else None

    def subscribe_action(self, fn: ActionSubscriber) -> Callable[[], None]:
        """Call ``fn(action, state)`` before every dispatch. Returns an unsubscribe callable."""
        self._action_subscribers.append(fn)
        return lambda: self._action_subscribers.remove(fn) if fn in self._action_subscribers else None

    def inject(self, name: str, service: Any) -> "Store":
        """Attach an ambient service reachable from action contexts as ``self.<name>``."""
        if hasattr(type(self), name) or name in vars(self):
            raise ValueError(f"'{name}' would shadow a store attribute")
        setattr(self, name, service)
        return self

    def replace_state(self, state: Dict[str, Any]) -> None:
        self._state = state

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the current state tree."""
        return copy.deepcopy(self._state)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _coerce_path(self, path: Union[str, Sequence[str]]) -> Namespace:
        if isinstance(path, str):
            return normalize_namespace(path)
        return tuple(path)

    def _install(self, descriptor: "ModuleDescriptor", path: Namespace) -> None:
        if path in self._modules:
            raise NamespaceCollisionError(path)

        record = _ModuleRecord(descriptor, path)
        initial = descriptor.state_factory()
        if path:
            parent = self._ensure_branch(path[:-1])
            parent[path[-1]] = initial
        else:
            self._state.update(initial)

        for table, names in (
            (self._mutations, descriptor.mutators),
            (self._actions, descriptor.actions),
            (self._getters, descriptor.getters),
        ):
            for name in names:
                key = join_key(path, name)
                if key in table:
                    raise NamespaceCollisionError(path, f"duplicate key '{key}'")
                table[key] = (record, name)

        self._modules[path] = record
        self._paths.setdefault(descriptor, []).append(path)
        logger.debug("Installed module '%s' (%d children)", "/".join(path) or "<root>", len(descriptor.children))

        for child in descriptor.children.values():
            self._install(child, path + tuple(child.namespace))

    def _ensure_branch(self, path: Namespace) -> Dict[str, Any]:
        node = self._state
        for segment in path:
            node = node.setdefault(segment, {})
        return node

    def _local_state(self, path: Namespace) -> Dict[str, Any]:
        node = _walk(self._state, path)
        if node is _MISSING:
            raise ModuleNotWiredError(path, "no state at this path")
        return node

    def _child_keys(self, path: Namespace) -> set:
        depth = len(path)
        return {p[depth] for p in self._modules if len(p) > depth and p[:depth] == path}

    def _evaluate_getter(self, key: str) -> Any:
        entry = self._getters.get(key)
        if entry is None:
            raise KeyError(key)
        record, name = entry
        fn = record.descriptor.getters[name]
        return fn(
            self._local_state(record.path),
            LocalGettersView(self, record.path),
            self._state,
            self._getters_view,
        )

    def _notify(self, subscribers: List[Callable[..., Any]], event: Any) -> None:
        for fn in list(subscribers):
            try:
                fn(event, self._state)
            except Exception:
                logger.exception("Subscriber %r failed for %s", fn, event.type)

    def __repr__(self) -> str:
        return f"<Store modules={['/'.join(p) or '<root>' for p in self._modules]}>"


__all__ = [
    "Store",
    "GettersView",
    "LocalGettersView",
    "LocalContext",
    "ScopedStore",
    "ReadOnlyStore",
]
