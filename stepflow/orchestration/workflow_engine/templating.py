"""
Placeholder substitution for step parameters.

Step parameters may reference the execution context with ``{{dotted.path}}``
placeholders. Resolution is purely textual: a placeholder is replaced by the
string form of the value found at that path, and a placeholder whose path
cannot be followed is left in place untouched.
"""

from __future__ import annotations

import json
import re
from typing import Any, List, Mapping, Sequence

PLACEHOLDER_PATTERN = re.compile(r"\{\{([^}]+)\}\}")


class _Missing:
    """Sentinel for a path segment that could not be followed."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


def lookup_path(context: Any, path: str) -> Any:
    """Follow a dotted path through nested mappings and sequences.

    Args:
        context: Root object, normally the execution context
        path: Dotted path such as ``input.user.name`` or ``items.0``

    Returns:
        The value at the path, or ``MISSING`` if any segment is absent
    """
    return lookup_segments(context, [segment.strip() for segment in path.strip().split(".")])


def lookup_segments(context: Any, segments: Sequence[Any]) -> Any:
    """Follow already-split path segments; see ``lookup_path``."""
    current = context
    for segment in segments:
        if isinstance(current, Mapping):
            if segment not in current:
                return MISSING
            current = current[segment]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            try:
                current = current[int(segment)]
            except (TypeError, ValueError, IndexError):
                return MISSING
        else:
            return MISSING
    return current


def to_template_string(value: Any) -> str:
    """Render a context value the way it appears inside a resolved string."""
    if isinstance(value, str):
        return value
    if value is None or isinstance(value, (bool, Mapping, list, tuple)):
        return json.dumps(value, default=str)
    return str(value)


def resolve_string(template: str, context: Mapping[str, Any]) -> str:
    """Substitute every resolvable placeholder in a single string."""

    def _replace(match: re.Match) -> str:
        value = lookup_path(context, match.group(1))
        if value is MISSING:
            return match.group(0)
        return to_template_string(value)

    return PLACEHOLDER_PATTERN.sub(_replace, template)


def resolve(value: Any, context: Mapping[str, Any]) -> Any:
    """Resolve placeholders in a parameter value.

    Strings are substituted, mappings/lists/tuples are walked recursively and
    anything else is returned unchanged. Never raises for unresolved paths.

    Args:
        value: Parameter value (string, number, nested structure...)
        context: Execution context to resolve against

    Returns:
        A new value with every string leaf resolved
    """
    if isinstance(value, str):
        return resolve_string(value, context)
    if isinstance(value, Mapping):
        return {key: resolve(item, context) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve(item, context) for item in value]
    if isinstance(value, tuple):
        return tuple(resolve(item, context) for item in value)
    return value


def find_placeholders(text: str) -> List[str]:
    """List the dotted paths referenced by a template string, in order."""
    return [match.strip() for match in PLACEHOLDER_PATTERN.findall(text)]
