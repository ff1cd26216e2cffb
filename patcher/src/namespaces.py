from __future__ import annotations

from collections.abc import Collection
from typing import Any

EXCLUDE_ANNOTATION = "k8s.titansoft.com/imagepullsecret-patcher-exclude"


def split_name_list(raw: str) -> tuple[str, ...]:
    """Split a comma-separated list of names without trimming entries.

    An empty string yields an empty tuple. Entries are kept verbatim, so
    ``"a, b"`` produces ``("a", " b")`` and the second entry never matches a
    real object name.
    """
    if not raw:
        return ()
    return tuple(raw.split(","))


def is_excluded(namespace: Any, excluded_namespaces: Collection[str]) -> bool:
    """Return True if *namespace* must not be reconciled.

    A namespace is excluded when it carries the exclusion annotation valued
    exactly ``"true"`` or when its name is literally in *excluded_namespaces*.
    """
    metadata = getattr(namespace, "metadata", None)
    annotations = getattr(metadata, "annotations", None) or {}
    if annotations.get(EXCLUDE_ANNOTATION) == "true":
        return True
    return getattr(metadata, "name", None) in excluded_namespaces
