"""
Module descriptors.

A :class:`ModuleDescriptor` is the portable, immutable artifact the engine
produces for one store module: a state factory plus getter, mutator and
action tables and the child modules mounted below it. Descriptors never hold
live state; a :class:`~storeclass.store.Store` owns that.

Descriptors are assembled by :class:`ModuleBuilder`, the explicit
registration surface. :func:`create_module` feeds it the classified members
of a plain class, so both routes produce the same representation::

    class Counter:
        count = 0

        @property
        def double(self):
            return self.count * 2

        @mutation
        def set_count(self, value):
            self.count = value

        async def reset(self):
            self.set_count = 0

    counter = create_module(Counter, "counter")
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import get_config
from .context import ContextClasses, StateProxy, build_context_classes, new_action_context, new_getter_context
from .errors import NamespaceCollisionError
from .members import MemberDescriptor, MemberKind, Role, classify_members, helpers_of, members_by_role
from .namespace import Namespace, join_key, normalize_namespace
from .protocols import UNSET, ActionFn, GetterFn, MutatorFn

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class ModuleDescriptor:
    """Immutable definition of one namespaced store module."""

    namespace: Namespace
    raw_namespace: str
    state_factory: Callable[[], Dict[str, Any]]
    state_fields: Tuple[str, ...]
    getters: Mapping[str, GetterFn]
    mutators: Mapping[str, MutatorFn]
    actions: Mapping[str, ActionFn]
    helpers: Mapping[str, MemberDescriptor]
    children: Mapping[str, "ModuleDescriptor"]
    members: Mapping[str, MemberDescriptor]
    source: Optional[type] = None
    contexts: Optional[ContextClasses] = field(default=None, repr=False)

    @property
    def namespaced(self) -> bool:
        return True

    @property
    def path(self) -> str:
        return join_key(self.namespace)

    def state(self) -> Dict[str, Any]:
        """Fresh initial state (alias of ``state_factory()``)."""
        return self.state_factory()

    def get_instance(self, context: Any):
        """Facade over this module in the store reachable from ``context``."""
        from .facade import use_module

        return use_module(self, context)

    def __repr__(self) -> str:
        name = self.source.__name__ if self.source is not None else "builder"
        return (
            f"<ModuleDescriptor {self.path or '<root>'} ({name}) "
            f"state={list(self.state_fields)} getters={list(self.getters)} "
            f"mutators={list(self.mutators)} actions={list(self.actions)} "
            f"children={list(self.children)}>"
        )


class ModuleOptions(BaseModel):
    """Options accepted by :func:`create_module`."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    # ModuleDescriptor instances; checked by identity-preserving validators
    modules: List[Any] = Field(default_factory=list)
    bases: List[Any] = Field(default_factory=list)

    @field_validator("modules", "bases", mode="before")
    @classmethod
    def _as_descriptor_list(cls, value: Any) -> List[Any]:
        if value is None:
            return []
        if isinstance(value, ModuleDescriptor):
            return [value]
        items = list(value)
        for item in items:
            if not isinstance(item, ModuleDescriptor):
                raise ValueError(f"expected a ModuleDescriptor, got {type(item).__name__}")
        return items

    @classmethod
    def coerce(cls, options: Any = None, **overrides: Any) -> "ModuleOptions":
        if isinstance(options, ModuleOptions):
            data: Dict[str, Any] = {"modules": options.modules, "bases": options.bases}
        else:
            data = dict(options or {})
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(data)


# ------------------------------------------------------------------
# Table entries
# ------------------------------------------------------------------

def _run_to_completion(gen_fn: Callable[..., Any]) -> Callable[..., None]:
    def run(state, *args):
        for _ in gen_fn(state, *args):
            pass

    return run


def _mutator_entry(member: MemberDescriptor) -> MutatorFn:
    if member.kind is MemberKind.SETTER:
        setter = member.write_fn

        def mutate(state, payload=UNSET):
            setter(StateProxy(state), None if payload is UNSET else payload)

    else:
        body = _run_to_completion(member.read_fn) if member.kind is MemberKind.GENERATOR else member.write_fn

        def mutate(state, payload=UNSET):
            if payload is UNSET:
                body(StateProxy(state))
            else:
                body(StateProxy(state), payload)

    mutate.__name__ = member.name
    return mutate


def _getter_entry(member: MemberDescriptor, context_cls: type) -> GetterFn:
    fget = member.read_fn

    def getter(state, getters, root_state, root_getters):
        return fget(new_getter_context(context_cls, state, getters, root_state, root_getters))

    getter.__name__ = member.name
    return getter


def _action_entry(member: MemberDescriptor, context_cls: type) -> ActionFn:
    body = member.read_fn

    def action(primitives, payload=UNSET):
        ctx = new_action_context(context_cls, primitives)
        if payload is UNSET:
            return body(ctx)
        return body(ctx, payload)

    action.__name__ = member.name
    return action


# ------------------------------------------------------------------
# Builder
# ------------------------------------------------------------------

class ModuleBuilder:
    """
    Declarative registration surface for module descriptors.

    Later declarations win over earlier ones with the same name, which is
    how merged bases get overridden::

        counter = (
            ModuleBuilder("counter")
            .state(count=0)
            .getter("double", lambda ctx: ctx.count * 2)
            .mutator("set_count", lambda state, value: setattr(state, "count", value))
            .build()
        )
    """

    def __init__(self, namespace: Any = "", *, source: Optional[type] = None, label: Optional[str] = None):
        self._raw_namespace = "" if namespace is None else str(namespace)
        self._members: Dict[str, MemberDescriptor] = {}
        self._children: List[ModuleDescriptor] = []
        self._sources: List[type] = [source] if source is not None else []
        self._source = source
        self._label = label or (source.__name__ if source is not None else "Module")

    # -- members -------------------------------------------------------

    def member(self, member: MemberDescriptor) -> "ModuleBuilder":
        self._members[member.name] = member
        return self

    def members(self, members: Iterable[MemberDescriptor]) -> "ModuleBuilder":
        for member in members:
            self.member(member)
        return self

    def state(self, fields: Optional[Mapping[str, Any]] = None, **more: Any) -> "ModuleBuilder":
        for name, value in {**dict(fields or {}), **more}.items():
            self.member(MemberDescriptor(name, Role.STATE, MemberKind.FIELD, default=value, owner=self._label))
        return self

    def getter(self, name: str, fn: Callable[[Any], Any]) -> "ModuleBuilder":
        _require_callable(name, fn)
        return self.member(MemberDescriptor(name, Role.GETTER, MemberKind.PROPERTY, read_fn=fn, owner=self._label))

    def mutator(self, name: str, fn: Callable[..., Any]) -> "ModuleBuilder":
        _require_callable(name, fn)
        return self.member(MemberDescriptor(name, Role.MUTATOR, MemberKind.FUNCTION, write_fn=fn, owner=self._label))

    def action(self, name: str, fn: Callable[..., Any]) -> "ModuleBuilder":
        _require_callable(name, fn)
        return self.member(
            MemberDescriptor(name, Role.ACTION, MemberKind.COROUTINE, read_fn=fn, is_async=True, owner=self._label)
        )

    def helper(self, name: str, fn: Any) -> "ModuleBuilder":
        """Register a helper: a function bound to the context, or a
        reserved-prefix property evaluated against the ambient receiver."""
        reserved = name.startswith(get_config().reserved_prefix)
        if isinstance(fn, property):
            if not reserved:
                raise ValueError(f"property helper '{name}' needs the reserved prefix")
            member = MemberDescriptor(name, None, MemberKind.PROPERTY, read_fn=fn.fget, reserved=True, owner=self._label)
        else:
            _require_callable(name, fn)
            member = MemberDescriptor(name, None, MemberKind.FUNCTION, read_fn=fn, reserved=reserved, owner=self._label)
        return self.member(member)

    # -- composition ---------------------------------------------------

    def base(self, descriptor: ModuleDescriptor) -> "ModuleBuilder":
        """Merge every member and child of ``descriptor`` into this module."""
        defaults = descriptor.state_factory()
        for member in descriptor.members.values():
            if member.role is Role.STATE and member.name in defaults:
                member = replace(member, default=defaults[member.name])
            self.member(member)
        if descriptor.source is not None and descriptor.source not in self._sources:
            self._sources.append(descriptor.source)
        for child in descriptor.children.values():
            self.child(child)
        return self

    def child(self, descriptor: ModuleDescriptor) -> "ModuleBuilder":
        if not descriptor.namespace:
            raise NamespaceCollisionError((), "child modules need a namespace of their own")
        self._children = [c for c in self._children if c is not descriptor]
        self._children.append(descriptor)
        return self

    # -- build ---------------------------------------------------------

    def build(self) -> ModuleDescriptor:
        members = dict(self._members)
        snapshot = copy.deepcopy(
            {m.name: m.default for m in members.values() if m.role is Role.STATE}
        )

        def state_factory() -> Dict[str, Any]:
            return copy.deepcopy(snapshot)

        contexts = build_context_classes(self._sources, members, self._label)

        grouped = members_by_role(members.values())
        getters: Dict[str, GetterFn] = {m.name: _getter_entry(m, contexts.getter) for m in grouped[Role.GETTER]}
        mutators: Dict[str, MutatorFn] = {m.name: _mutator_entry(m) for m in grouped[Role.MUTATOR]}
        actions: Dict[str, ActionFn] = {m.name: _action_entry(m, contexts.action) for m in grouped[Role.ACTION]}
        helpers = {m.name: m for m in helpers_of(members.values())}

        children: Dict[str, ModuleDescriptor] = {}
        for child in self._children:
            key = join_key(child.namespace)
            if key in children:
                raise NamespaceCollisionError(child.namespace, "sibling modules share a namespace")
            children[key] = child

        descriptor = ModuleDescriptor(
            namespace=normalize_namespace(self._raw_namespace),
            raw_namespace=self._raw_namespace,
            state_factory=state_factory,
            state_fields=tuple(snapshot),
            getters=MappingProxyType(getters),
            mutators=MappingProxyType(mutators),
            actions=MappingProxyType(actions),
            helpers=MappingProxyType(helpers),
            children=MappingProxyType(children),
            members=MappingProxyType(members),
            source=self._source,
            contexts=contexts,
        )
        logger.debug(
            "Built module '%s' from %s: %d state, %d getters, %d mutators, %d actions, %d children",
            descriptor.path or "<root>",
            self._label,
            len(snapshot),
            len(getters),
            len(mutators),
            len(actions),
            len(children),
        )
        return descriptor


def _require_callable(name: str, fn: Any) -> None:
    if not callable(fn):
        raise TypeError(f"'{name}' must be callable, got {type(fn).__name__}")


def create_module(
    cls: type,
    namespace: str = "",
    options: Any = None,
    *,
    modules: Optional[Iterable[ModuleDescriptor]] = None,
    bases: Optional[Iterable[ModuleDescriptor]] = None,
) -> ModuleDescriptor:
    """
    Derive a module descriptor from a plain class.

    Args:
        cls: Class describing the module; it must be constructible without
            arguments. The fresh instance provides the initial state.
        namespace: Raw namespace identifier, e.g. ``"cart"`` or a path like
            ``"./store/cart/index.py"``; empty for a root module.
        options: ``ModuleOptions`` or a mapping with ``modules`` / ``bases``.
        modules: Child modules mounted below this one.
        bases: Descriptors merged in before the class's own members.

    Returns:
        ModuleDescriptor: immutable module definition.
    """
    opts = ModuleOptions.coerce(options, modules=modules, bases=bases)
    instance = cls()
    builder = ModuleBuilder(namespace, source=cls)
    for base in opts.bases:
        builder.base(base)
    builder.members(classify_members(cls, instance).values())
    for child in opts.modules:
        builder.child(child)
    return builder.build()


__all__ = [
    "ModuleDescriptor",
    "ModuleOptions",
    "ModuleBuilder",
    "create_module",
]
