"""Namespace resolution: raw module identifiers to path segments."""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional, Tuple

from .config import get_config

Namespace = Tuple[str, ...]

_EXTENSION = re.compile(r"\.(py|ts|js)$")
_TRAILING_INDEX = re.compile(r"(^|/)(index|__init__)$")


def _raw_identifier(raw: Any) -> str:
    # Descriptors carry the identifier they were declared with
    if hasattr(raw, "raw_namespace"):
        raw = raw.raw_namespace
    return "" if raw is None else str(raw)


def normalize_namespace(
    raw: Any,
    *,
    separator: Optional[str] = None,
    store_marker: Optional[str] = None,
) -> Namespace:
    """
    Normalize a raw identifier into an ordered tuple of path segments.

    The identifier may look like a source path, e.g.
    ``"./store/elements/active/index.py"`` -> ``("elements", "active")``.
    Everything up to the conventional store marker, a trailing source
    extension and a trailing ``index`` / ``__init__`` segment are stripped;
    empty and ``.`` segments are dropped.

    Two identifiers normalizing to the same tuple name the same namespace;
    resolving such collisions is left to the store.
    """
    cfg = get_config()
    separator = separator or cfg.separator
    store_marker = cfg.store_marker if store_marker is None else store_marker

    text = _raw_identifier(raw).strip()
    if separator == "/":
        text = text.replace("\\", "/")
    if store_marker:
        marker = re.escape(separator + store_marker + separator)
        text = re.sub(rf"^(?:.*?{marker}|{re.escape(store_marker + separator)})", "", text, count=1)
    text = _EXTENSION.sub("", text)
    if separator == "/":
        text = _TRAILING_INDEX.sub("", text)
    else:
        for suffix in ("index", "__init__"):
            if text == suffix or text.endswith(separator + suffix):
                text = text[: -len(suffix)]
                break

    return tuple(seg for seg in text.split(separator) if seg and seg != ".")


def namespace_path(raw: Any, *, separator: Optional[str] = None) -> str:
    """Joined form of :func:`normalize_namespace` (``""`` for the root)."""
    separator = separator or get_config().separator
    return separator.join(normalize_namespace(raw, separator=separator))


def join_key(path: Iterable[str], name: Optional[str] = None, *, separator: Optional[str] = None) -> str:
    """Fully qualified key for ``name`` under ``path``."""
    separator = separator or get_config().separator
    parts = list(path)
    if name:
        parts.append(name)
    return separator.join(parts)


# Aliases
get_namespace = normalize_namespace
get_namespace_path = namespace_path


__all__ = [
    "Namespace",
    "normalize_namespace",
    "namespace_path",
    "join_key",
    "get_namespace",
    "get_namespace_path",
]
