"""Shared sentinels, records and call signatures."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Protocol, runtime_checkable


class _Unset:
    """Marker for 'no payload given' (distinct from an explicit ``None``)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"

    def __reduce__(self):
        return (_Unset, ())


UNSET: Any = _Unset()

# getters[name](state, getters, root_state, root_getters)
GetterFn = Callable[[Mapping[str, Any], Mapping[str, Any], Mapping[str, Any], Mapping[str, Any]], Any]
# mutators[name](state, payload=UNSET)
MutatorFn = Callable[..., None]
# actions[name](primitives, payload=UNSET)
ActionFn = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class MutationRecord:
    type: str
    payload: Any = UNSET


@dataclass(frozen=True)
class ActionRecord:
    type: str
    payload: Any = UNSET


@runtime_checkable
class StoreLike(Protocol):
    """The boundary contract every backing store fulfils."""

    @property
    def state(self) -> Mapping[str, Any]: ...

    @property
    def getters(self) -> Mapping[str, Any]: ...

    def commit(self, key: str, payload: Any = UNSET, *, root: bool = True) -> Any: ...

    def dispatch(self, key: str, payload: Any = UNSET, *, root: bool = True) -> Any: ...


__all__ = [
    "UNSET",
    "GetterFn",
    "MutatorFn",
    "ActionFn",
    "MutationRecord",
    "ActionRecord",
    "StoreLike",
]
