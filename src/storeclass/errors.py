# storeclass/errors.py
"""
Errors introduced by the module engine itself.

Errors raised inside user getter / mutator / action bodies are never caught
or rewritten; they reach the caller unchanged. The classes below cover the
only conditions the engine adds on its own: namespace resolution, wiring and
the read-only guarantees of facades and getter contexts.
"""

from __future__ import annotations

from typing import Optional, Sequence


class StoreClassError(Exception):
    """Base class for all engine errors."""


class ModuleNotWiredError(StoreClassError, LookupError):
    """A module was used before it was registered in the active store."""

    def __init__(self, namespace: Sequence[str], reason: Optional[str] = None):
        self.namespace = tuple(namespace)
        self.reason = reason
        path = "/".join(self.namespace) or "<root>"
        message = f"module '{path}' is not wired into this store"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class NamespaceCollisionError(StoreClassError, ValueError):
    """Two modules claim the same path within one store tree."""

    def __init__(self, namespace: Sequence[str], detail: str = ""):
        self.namespace = tuple(namespace)
        path = "/".join(self.namespace) or "<root>"
        super().__init__(f"namespace '{path}' is already taken{': ' + detail if detail else ''}")


class UnknownMutationError(StoreClassError, KeyError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"unknown mutation type: {self.key}"


class UnknownActionError(StoreClassError, KeyError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"unknown action type: {self.key}"


class GetterPurityError(StoreClassError, RuntimeError):
    """A getter tried to write state, commit or dispatch."""


class ReadOnlyStateError(StoreClassError, AttributeError):
    """State fields and getters are read-only outside of a mutator."""

    def __init__(self, name: str, hint: str = "commit a mutator instead"):
        self.name = name
        super().__init__(f"'{name}' is read-only; {hint}")


__all__ = [
    "StoreClassError",
    "ModuleNotWiredError",
    "NamespaceCollisionError",
    "UnknownMutationError",
    "UnknownActionError",
    "GetterPurityError",
    "ReadOnlyStateError",
]
