"""
Deep merge of partial documents.

A diff is a partial document: nested mappings address sub-documents of the
base, every other value (scalars, lists, array-shaped mappings) replaces the
value at its path wholesale. Keys are never removed.

Every walk here uses an explicit stack instead of recursion.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, MutableMapping
from typing import Any, Dict, List, Sequence, Tuple, Union

from .errors import DocumentTooDeep

# MongoDB rejects records nested past 100 levels, and stored records wrap
# the document in one more level
DEFAULT_MAX_DEPTH = 64

FieldPath = Tuple[Any, ...]

_CONTAINERS = (Mapping, list, tuple)


def is_array_like(value: Any) -> bool:
    """
    Check whether a mapping is an array in disguise.

    BSON stores arrays as documents keyed "0", "1", ... so a mapping whose
    keys are exactly that sequence is treated as a list.
    """
    if not isinstance(value, Mapping) or not value:
        return False

    return all(key == str(index) for index, key in enumerate(value.keys()))


def is_subdocument(value: Any) -> bool:
    """Check whether a diff value should be merged rather than replaced."""
    return isinstance(value, Mapping) and not is_array_like(value)


def check_depth(value: Any, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
    """
    Reject values whose mappings, lists and tuples nest deeper than ``max_depth``.

    A flat mapping has depth 1.

    Raises:
        DocumentTooDeep: If the limit is exceeded
    """
    if not isinstance(value, _CONTAINERS):
        return

    pending: List[Tuple[Any, int]] = [(value, 1)]

    while pending:
        current, depth = pending.pop()
        if depth > max_depth:
            raise DocumentTooDeep(max_depth)

        children = current.values() if isinstance(current, Mapping) else current
        pending.extend((child, depth + 1) for child in children if isinstance(child, _CONTAINERS))


def copy_document(value: Any) -> Any:
    """
    Deep-copy nested mappings, lists and tuples.

    Mappings come back as plain dicts; any other value is copied with
    ``copy.deepcopy``.
    """
    if not isinstance(value, _CONTAINERS):
        return copy.deepcopy(value)

    root: Any = {} if isinstance(value, Mapping) else []
    tuples: List[Tuple[Any, Any, list]] = []
    pending: List[Tuple[Any, Any]] = [(value, root)]

    while pending:
        source, target = pending.pop()
        items = source.items() if isinstance(source, Mapping) else enumerate(source)
        for key, child in items:
            if isinstance(child, _CONTAINERS):
                clone: Any = {} if isinstance(child, Mapping) else []
                pending.append((child, clone))
                if isinstance(child, tuple):
                    tuples.append((target, key, clone))
            else:
                clone = copy.deepcopy(child)

            if isinstance(target, dict):
                target[key] = clone
            else:
                target.append(clone)

    # Tuples are found after their enclosing containers; freeze innermost first
    for parent, key, items in reversed(tuples):
        parent[key] = tuple(items)

    return tuple(root) if isinstance(value, tuple) else root


def merge_document(
    base: MutableMapping,
    diff: Mapping,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> MutableMapping:
    """
    Merge a partial document into ``base`` in place.

    Args:
        base: Document being updated
        diff: Partial document to apply
        max_depth: Maximum nesting of ``diff``, lists included

    Returns:
        The updated ``base``

    Raises:
        DocumentTooDeep: If ``diff`` nests deeper than ``max_depth``; ``base``
            is left untouched
    """
    check_depth(diff, max_depth)

    pending: List[Tuple[MutableMapping, Mapping]] = [(base, diff)]

    while pending:
        target, changes = pending.pop()

        for key, value in changes.items():
            if is_subdocument(value):
                child = target.get(key)
                if not isinstance(child, MutableMapping):
                    child = {}
                    target[key] = child
                pending.append((child, value))
            else:
                target[key] = copy_document(value)

    return base


def merged(base: Mapping, diff: Mapping, max_depth: int = DEFAULT_MAX_DEPTH) -> Dict[str, Any]:
    """Return a new document with ``diff`` merged onto a copy of ``base``."""
    return merge_document(copy_document(dict(base)), diff, max_depth)


def split_path(path: Union[str, Sequence[Any]]) -> FieldPath:
    """Turn a dotted path into key parts; sequences of keys pass through."""
    if isinstance(path, str):
        return tuple(path.split("."))
    return tuple(path)


def format_path(path: Sequence[Any]) -> str:
    """Dotted rendering of a key path, for display only."""
    return ".".join(str(part) for part in path)


def lookup_path(document: Mapping, path: Union[str, Sequence[Any]]) -> Tuple[bool, Any]:
    """
    Resolve a path such as ``"contact.email"`` or ``("contact", "email")``.

    Pass a tuple of keys to reach field names that contain dots.

    Returns:
        ``(found, value)``; ``value`` is ``None`` when nothing is at the path
    """
    current: Any = document
    for part in split_path(path):
        if not isinstance(current, Mapping) or part not in current:
            return False, None
        current = current[part]
    return True, current


def flatten_document(document: Mapping) -> Dict[FieldPath, Any]:
    """
    Flatten a document into ``{key_path: leaf_value}``.

    Paths are tuples of keys, so field names containing dots stay intact.
    Array-like mappings and empty sub-documents count as leaves.
    """
    flat: Dict[FieldPath, Any] = {}
    pending: List[Tuple[FieldPath, Mapping]] = [((), document)]

    while pending:
        prefix, current = pending.pop()
        for key, value in current.items():
            path = prefix + (key,)
            if is_subdocument(value) and value:
                pending.append((path, value))
            else:
                flat[path] = value

    return flat
