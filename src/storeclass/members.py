"""
Member classification.

Walks a class's MRO and tags every member with the capability role it plays
in a store module:

- ``property`` with only a getter         -> Role.GETTER
- ``property`` with only a setter         -> Role.MUTATOR (see :func:`mutation`)
- generator function                      -> Role.MUTATOR
- ``async def`` function                  -> Role.ACTION
- writable data field                     -> Role.STATE

Plain synchronous methods and every member whose name starts with the
reserved prefix get no role; callables and properties among them are kept as
helpers reachable from execution contexts. Classification never raises:
unrecognized shapes are simply excluded.
"""

from __future__ import annotations

import inspect
import logging
import re
import typing
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config import get_config

logger = logging.getLogger(__name__)

_CLASSVAR_TEXT = re.compile(r"^(typing\.)?(ClassVar|Final)\b")
_MISSING = object()


class Role(str, Enum):
    STATE = "state"
    GETTER = "getter"
    MUTATOR = "mutator"
    ACTION = "action"


class MemberKind(str, Enum):
    FIELD = "field"
    PROPERTY = "property"       # read accessor only
    SETTER = "setter"           # write accessor only
    ACCESSOR = "accessor"       # read + write accessor (unsupported as a role)
    GENERATOR = "generator"
    FUNCTION = "function"
    COROUTINE = "coroutine"
    OTHER = "other"


_HELPER_KINDS = frozenset(
    {MemberKind.PROPERTY, MemberKind.ACCESSOR, MemberKind.FUNCTION, MemberKind.GENERATOR, MemberKind.COROUTINE}
)


@dataclass(frozen=True)
class MemberDescriptor:
    name: str
    role: Optional[Role]
    kind: MemberKind
    read_fn: Optional[Callable[..., Any]] = None
    write_fn: Optional[Callable[..., Any]] = None
    is_async: bool = False
    reserved: bool = False
    owner: str = ""
    default: Any = None

    @property
    def is_helper(self) -> bool:
        """Role-less member that contexts still expose."""
        if self.role is not None:
            return False
        if self.kind is MemberKind.FUNCTION:
            return True
        return self.reserved and self.kind in _HELPER_KINDS


def mutation(fn: Callable[..., Any]) -> property:
    """
    Mark a plain method as a mutator.

    The method becomes a write-only property, which is the same shape the
    classifier recognizes for setter-style mutators::

        class Counter:
            count = 0

            @mutation
            def set_count(self, value):
                self.count = value
    """
    return property(fset=fn, doc=fn.__doc__)


def _is_constant_annotation(annotation: Any) -> bool:
    if annotation is _MISSING:
        return False
    if isinstance(annotation, str):
        return bool(_CLASSVAR_TEXT.match(annotation.strip()))
    if annotation is typing.ClassVar or annotation is typing.Final:
        return True
    return typing.get_origin(annotation) in (typing.ClassVar, typing.Final)


def classify_member(
    name: str,
    value: Any,
    *,
    owner: str = "",
    annotation: Any = _MISSING,
    reserved_prefix: Optional[str] = None,
) -> Optional[MemberDescriptor]:
    """
    Classify a single class member.

    Returns ``None`` for dunder names, which take no part in classification
    at all. Every other member gets a descriptor, possibly with ``role=None``.
    """
    if name.startswith("__") and name.endswith("__"):
        return None

    prefix = reserved_prefix or get_config().reserved_prefix
    reserved = name.startswith(prefix)
    role: Optional[Role] = None
    read_fn = write_fn = None
    default = None
    is_async = False

    if isinstance(value, property):
        read_fn, write_fn = value.fget, value.fset
        if read_fn and not write_fn:
            kind, role = MemberKind.PROPERTY, Role.GETTER
        elif write_fn and not read_fn:
            kind, role = MemberKind.SETTER, Role.MUTATOR
        elif read_fn and write_fn:
            kind = MemberKind.ACCESSOR
        else:
            kind = MemberKind.OTHER
    elif isinstance(value, (staticmethod, classmethod)):
        kind = MemberKind.OTHER
    elif inspect.isgeneratorfunction(value):
        kind, role, read_fn = MemberKind.GENERATOR, Role.MUTATOR, value
    elif inspect.iscoroutinefunction(value):
        kind, role, read_fn, is_async = MemberKind.COROUTINE, Role.ACTION, value, True
    elif inspect.isasyncgenfunction(value):
        kind = MemberKind.OTHER
    elif inspect.isfunction(value):
        kind, read_fn = MemberKind.FUNCTION, value
    elif isinstance(value, type) or callable(value) or hasattr(type(value), "__get__"):
        kind = MemberKind.OTHER
    elif _is_constant_annotation(annotation):
        kind = MemberKind.OTHER
    else:
        kind, role, default = MemberKind.FIELD, Role.STATE, value

    if reserved:
        role = None

    if role is None and not reserved and kind is not MemberKind.FUNCTION:
        logger.debug("Excluding member %s.%s (%s)", owner or "?", name, kind.value)

    return MemberDescriptor(
        name=name,
        role=role,
        kind=kind,
        read_fn=read_fn,
        write_fn=write_fn,
        is_async=is_async,
        reserved=reserved,
        owner=owner,
        default=default,
    )


def _safe_annotations(klass: type) -> Dict[str, Any]:
    try:
        return dict(inspect.get_annotations(klass))
    except Exception:  # broken forward references and the like
        return {}


def classify_members(
    cls: type,
    instance: Any = None,
    *,
    reserved_prefix: Optional[str] = None,
) -> Dict[str, MemberDescriptor]:
    """
    Classify every member found along ``cls.__mro__``.

    Members are merged ancestor-first; a derived member overrides an
    ancestor member of the same name but keeps the ancestor's position.
    When ``instance`` is given, attributes assigned on it (typically by
    ``__init__``) are classified as well and its values become the field
    defaults.
    """
    merged: Dict[str, MemberDescriptor] = {}
    annotations: Dict[str, Any] = {}

    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        annotations.update(_safe_annotations(klass))
        for name, value in vars(klass).items():
            member = classify_member(
                name,
                value,
                owner=klass.__name__,
                annotation=annotations.get(name, _MISSING),
                reserved_prefix=reserved_prefix,
            )
            if member is not None:
                merged[name] = member

    if instance is not None:
        for name, value in getattr(instance, "__dict__", {}).items():
            existing = merged.get(name)
            if existing is not None and existing.kind is not MemberKind.FIELD:
                continue
            member = classify_member(
                name,
                value,
                owner=cls.__name__,
                annotation=annotations.get(name, _MISSING),
                reserved_prefix=reserved_prefix,
            )
            if member is not None:
                merged[name] = member

    return merged


def members_by_role(members: Iterable[MemberDescriptor]) -> Dict[Role, List[MemberDescriptor]]:
    """Group members by role, preserving order; role-less members are dropped."""
    grouped: Dict[Role, List[MemberDescriptor]] = {role: [] for role in Role}
    for member in members:
        if member.role is not None:
            grouped[member.role].append(member)
    return grouped


def helpers_of(members: Iterable[MemberDescriptor]) -> List[MemberDescriptor]:
    return [m for m in members if m.is_helper]


__all__ = [
    "Role",
    "MemberKind",
    "MemberDescriptor",
    "mutation",
    "classify_member",
    "classify_members",
    "members_by_role",
    "helpers_of",
]
