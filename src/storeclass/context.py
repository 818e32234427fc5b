"""
Execution contexts.

A getter or action body never sees the template instance its class was built
from. Each invocation gets a freshly synthesized context whose attributes
read the live store:

``GetterContext``
    local state and getters (read-only), helpers; mutators and actions are
    unreachable and every write raises :class:`GetterPurityError`.

``ActionContext``
    local state and getters (read-only), mutator slots (read -> committer,
    assign -> commit), action invokers, helpers, and attribute fallback to
    the store so injected services are reachable.

Helpers come in two flavours. Plain synchronous methods are bound to the
context itself. Members carrying the reserved prefix are bound to the ambient
receiver instead: a :class:`HelperReceiver` (``state``, ``getters``,
``root_state``, ``root_getters``) inside getters and a :class:`~storeclass.store.ScopedStore`
in actions, which forwards to the store and carries the module path.

Context classes are synthesized once per module and subclass the author's
class, so ``super()`` inside a getter or action body keeps working. Every
member name is shadowed by a routing slot on the synthesized class.
"""

from __future__ import annotations

import types
import logging
from typing import Dict, Iterable, Mapping, NamedTuple, Sequence, Tuple

from .errors import GetterPurityError, ReadOnlyStateError
from .members import MemberDescriptor, MemberKind, Role
from .namespace import join_key
from .protocols import UNSET
from .store import ReadOnlyStore

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Receivers
# ------------------------------------------------------------------

class HelperReceiver:
    """Minimal receiver handed to reserved helpers evaluated inside a getter."""

    __slots__ = ("state", "getters", "root_state", "root_getters", "_store", "_path")

    def __init__(self, state, getters, root_state, root_getters):
        self.state = state
        self.getters = getters
        self.root_state = root_state
        self.root_getters = root_getters
        store = getattr(root_getters, "__store__", None)
        if store is not None and not isinstance(store, ReadOnlyStore):
            store = ReadOnlyStore(store)
        self._store = store
        self._path = tuple(getattr(getters, "__module_path__", ()) or ())

    @property
    def __store__(self):
        return self._store

    @property
    def __module_path__(self) -> Tuple[str, ...]:
        return self._path

    def __repr__(self) -> str:
        return f"<HelperReceiver path={'/'.join(self._path) or '<root>'}>"


class StateProxy:
    """Attribute view over a module's state mapping; the ``self`` of a mutator."""

    __slots__ = ("_sc_state",)

    def __init__(self, state):
        object.__setattr__(self, "_sc_state", state)

    def __getattr__(self, name):
        if name == "_sc_state":
            raise AttributeError(name)
        try:
            return self._sc_state[name]
        except KeyError:
            raise AttributeError(f"state has no field '{name}'") from None

    def __setattr__(self, name, value):
        self._sc_state[name] = value

    def __delattr__(self, name):
        try:
            del self._sc_state[name]
        except KeyError:
            raise AttributeError(name) from None

    def __repr__(self) -> str:
        return f"<StateProxy {dict(self._sc_state)!r}>"


# ------------------------------------------------------------------
# Routing slots
# ------------------------------------------------------------------

class _Slot:
    """Class-level data descriptor routing one member name to the store."""

    role = "member"

    def __init__(self, name: str):
        self.name = name

    def __get__(self, ctx, owner=None):
        if ctx is None:
            return self
        return self.read(ctx)

    def __set__(self, ctx, value):
        self.write(ctx, value)

    def read(self, ctx):
        raise NotImplementedError

    def write(self, ctx, value):
        raise ctx._sc_readonly(self.name)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class _StateSlot(_Slot):
    role = "state"

    def read(self, ctx):
        try:
            return ctx._sc_state()[self.name]
        except KeyError:
            raise AttributeError(f"state field '{self.name}' is not present in the store") from None


class _GetterSlot(_Slot):
    role = "getter"

    def read(self, ctx):
        return ctx._sc_getters()[self.name]


class _MutatorSlot(_Slot):
    role = "mutator"

    def read(self, ctx):
        def commit(value=UNSET):
            return ctx._sc_commit(self.name, value)

        commit.__name__ = self.name
        return commit

    def write(self, ctx, value):
        ctx._sc_commit(self.name, value)


class _ActionSlot(_Slot):
    role = "action"

    def read(self, ctx):
        def dispatch(payload=UNSET):
            return ctx._sc_dispatch(self.name, payload)

        dispatch.__name__ = self.name
        return dispatch


class _HelperSlot(_Slot):
    role = "helper"

    def __init__(self, member: MemberDescriptor):
        super().__init__(member.name)
        self.member = member

    def read(self, ctx):
        target = ctx._sc_ambient() if self.member.reserved else ctx
        fn = self.member.read_fn
        if self.member.kind in (MemberKind.PROPERTY, MemberKind.ACCESSOR):
            return fn(target)
        return types.MethodType(fn, target)


class _BlockedSlot(_Slot):
    """Mutators and actions are unreachable from a getter."""

    def __init__(self, name: str, role: str):
        super().__init__(name)
        self.role = role

    def read(self, ctx):
        raise AttributeError(f"{self.role} '{self.name}' is not reachable from a getter")


# ------------------------------------------------------------------
# Context bases
# ------------------------------------------------------------------

class _ContextBase:
    _sc_slots: Dict[str, _Slot] = {}
    _sc_kind = "context"

    def __setattr__(self, name, value):
        slot = self._sc_slots.get(name)
        if slot is None:
            raise self._sc_unknown_write(name)
        slot.__set__(self, value)

    def __delattr__(self, name):
        raise self._sc_readonly(name)

    def __getattr__(self, name):
        if name.startswith("_sc_"):
            raise AttributeError(name)
        state = self._sc_state()
        if name in state:
            return state[name]
        return self._sc_fallback(name)

    def __dir__(self):
        return sorted(set(self._sc_slots) | set(self._sc_state()))

    def _sc_fallback(self, name):
        raise AttributeError(f"{self._sc_kind} has no attribute '{name}'")

    def _sc_unknown_write(self, name) -> Exception:
        return AttributeError(f"cannot set '{name}' on {self._sc_kind}")

    def _sc_readonly(self, name) -> Exception:
        return ReadOnlyStateError(name)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} path={'/'.join(self.__module_path__) or '<root>'}>"


class GetterContext(_ContextBase):
    """Execution context of a getter body."""

    _sc_kind = "getter context"

    @property
    def __store__(self):
        return self._sc_receiver.__store__

    @property
    def __module_path__(self) -> Tuple[str, ...]:
        return self._sc_receiver.__module_path__

    def _sc_state(self):
        return self._sc_receiver.state

    def _sc_getters(self):
        return self._sc_receiver.getters

    def _sc_ambient(self):
        return self._sc_receiver

    def _sc_commit(self, name, value):
        raise GetterPurityError(f"getters must not commit '{name}'")

    def _sc_dispatch(self, name, payload):
        raise GetterPurityError(f"getters must not dispatch '{name}'")

    def _sc_unknown_write(self, name) -> Exception:
        return GetterPurityError(f"getters must not write '{name}'")

    def _sc_readonly(self, name) -> Exception:
        return GetterPurityError(f"getters must not write '{name}'")


class ActionContext(_ContextBase):
    """Execution context of an action body."""

    _sc_kind = "action context"

    @property
    def __store__(self):
        primitives = self._sc_primitives
        return getattr(primitives, "__store__", None) or getattr(primitives, "receiver", None)

    @property
    def __module_path__(self) -> Tuple[str, ...]:
        return tuple(getattr(self._sc_primitives, "path", ()) or ())

    def _sc_state(self):
        return self._sc_primitives.state

    def _sc_getters(self):
        return self._sc_primitives.getters

    def _sc_ambient(self):
        return getattr(self._sc_primitives, "receiver", self._sc_primitives)

    def _sc_key(self, name) -> str:
        return join_key(self.__module_path__, name)

    def _sc_commit(self, name, value):
        return self._sc_primitives.commit(self._sc_key(name), value, root=True)

    def _sc_dispatch(self, name, payload):
        return self._sc_primitives.dispatch(self._sc_key(name), payload, root=True)

    def _sc_fallback(self, name):
        return getattr(self._sc_ambient(), name)


# ------------------------------------------------------------------
# Synthesis
# ------------------------------------------------------------------

class ContextClasses(NamedTuple):
    getter: type
    action: type


def _slots_for(members: Iterable[MemberDescriptor], *, for_getter: bool) -> Dict[str, _Slot]:
    slots: Dict[str, _Slot] = {}
    for member in members:
        if member.role is Role.STATE:
            slots[member.name] = _StateSlot(member.name)
        elif member.role is Role.GETTER:
            slots[member.name] = _GetterSlot(member.name)
        elif member.role is Role.MUTATOR:
            slots[member.name] = _BlockedSlot(member.name, "mutator") if for_getter else _MutatorSlot(member.name)
        elif member.role is Role.ACTION:
            slots[member.name] = _BlockedSlot(member.name, "action") if for_getter else _ActionSlot(member.name)
        elif member.is_helper:
            slots[member.name] = _HelperSlot(member)
    return slots


def _new_class(name: str, bases: Tuple[type, ...], slots: Dict[str, _Slot]) -> type:
    def body(ns):
        ns.update(slots)
        ns["_sc_slots"] = dict(slots)
        ns["__module__"] = __name__

    return types.new_class(name, bases, exec_body=body)


def build_context_classes(
    sources: Sequence[type],
    members: Mapping[str, MemberDescriptor],
    label: str = "Module",
) -> ContextClasses:
    """
    Synthesize the getter and action context classes for one module.

    ``sources`` are the author's classes (the module class first, then the
    classes of merged base modules); they are mixed in behind the context
    base so ``super()`` resolves. If the combined MRO is inconsistent the
    merged bases are dropped and only the module class is kept.
    """
    unique: list = []
    for source in sources:
        if source is not None and not any(issubclass(s, source) for s in unique):
            unique.append(source)

    classes = []
    for base, suffix, for_getter in ((GetterContext, "GetterContext", True), (ActionContext, "ActionContext", False)):
        slots = _slots_for(members.values(), for_getter=for_getter)
        try:
            cls = _new_class(f"{label}{suffix}", (base, *unique), slots)
        except TypeError:
            logger.debug("Inconsistent MRO for %s context; keeping %s only", label, unique[:1])
            cls = _new_class(f"{label}{suffix}", (base, *unique[:1]), slots)
        classes.append(cls)
    return ContextClasses(*classes)


def new_getter_context(cls: type, state, getters, root_state, root_getters) -> GetterContext:
    ctx = object.__new__(cls)
    object.__setattr__(ctx, "_sc_receiver", HelperReceiver(state, getters, root_state, root_getters))
    return ctx


def new_action_context(cls: type, primitives) -> ActionContext:
    ctx = object.__new__(cls)
    object.__setattr__(ctx, "_sc_primitives", primitives)
    return ctx


__all__ = [
    "HelperReceiver",
    "StateProxy",
    "GetterContext",
    "ActionContext",
    "ContextClasses",
    "build_context_classes",
    "new_getter_context",
    "new_action_context",
]
