# src/storeclass/__init__.py
"""
storeclass
==========
Namespaced, composable store modules derived from plain Python classes.

Write a class, get a store module:

- data fields become state
- read-only properties become getters
- write-only properties, ``@mutation`` methods and generator methods become
  mutators
- ``async def`` methods become actions

Getter and action bodies run against execution contexts synthesized from the
live store on every call, so ``self.count`` always reads committed state and
``self.set_count = 3`` commits a mutation. Modules nest; a parent reaches a
child through ``use_module(child, self)``.

Import Guide:
-------------
Modules:
    from storeclass import create_module, mutation, ModuleBuilder

Store:
    from storeclass import Store

Facades:
    from storeclass import use_module
"""

from .config import StoreConfig, get_config, reload_config
from .context import ActionContext, GetterContext, HelperReceiver, StateProxy
from .descriptor import ModuleBuilder, ModuleDescriptor, ModuleOptions, create_module
from .errors import (
    GetterPurityError,
    ModuleNotWiredError,
    NamespaceCollisionError,
    ReadOnlyStateError,
    StoreClassError,
    UnknownActionError,
    UnknownMutationError,
)
from .facade import ModuleFacade, resolve_store, use_module, use_store
from .logging_setup import setup_logging
from .members import MemberDescriptor, MemberKind, Role, classify_members, mutation
from .namespace import get_namespace, get_namespace_path, join_key, namespace_path, normalize_namespace
from .protocols import UNSET, ActionRecord, MutationRecord, StoreLike
from .store import LocalContext, ReadOnlyStore, ScopedStore, Store

__version__ = "0.1.0"

__all__ = [
    # modules
    "create_module",
    "mutation",
    "ModuleBuilder",
    "ModuleDescriptor",
    "ModuleOptions",
    # classification
    "Role",
    "MemberKind",
    "MemberDescriptor",
    "classify_members",
    # namespaces
    "normalize_namespace",
    "namespace_path",
    "join_key",
    "get_namespace",
    "get_namespace_path",
    # contexts
    "GetterContext",
    "ActionContext",
    "HelperReceiver",
    "StateProxy",
    # facades
    "ModuleFacade",
    "use_module",
    "use_store",
    "resolve_store",
    # store
    "Store",
    "LocalContext",
    "ReadOnlyStore",
    "ScopedStore",
    "StoreLike",
    "MutationRecord",
    "ActionRecord",
    "UNSET",
    # errors
    "StoreClassError",
    "ModuleNotWiredError",
    "NamespaceCollisionError",
    "UnknownMutationError",
    "UnknownActionError",
    "GetterPurityError",
    "ReadOnlyStateError",
    # config & logging
    "StoreConfig",
    "get_config",
    "reload_config",
    "setup_logging",
]
