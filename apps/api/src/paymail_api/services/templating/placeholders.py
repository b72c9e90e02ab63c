"""``{{ key }}`` / ``{{ key | default }}`` substitution over nested data."""

from __future__ import annotations

import re
from typing import Any, Mapping

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([\w.]+)\s*(?:\|([^}]*))?\}\}")

_MISSING = object()


def _lookup_path(data: Mapping[str, Any], path: str) -> Any:
    """Walk a dotted path through nested mappings, returning ``_MISSING`` on any gap."""

    current: Any = data
    for segment in path.split("."):
        if not isinstance(current, Mapping) or segment not in current:
            return _MISSING
        current = current[segment]
    return current


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def replace_placeholders(template: str, data: Mapping[str, Any]) -> str:
    """Substitute every marker in one pass.

    A resolved, non-null value renders as its string form. Otherwise the trimmed
    default after ``|`` is used, and without a default the marker is left as-is so
    broken templates stay visible in the output. Substituted values are not rescanned.
    """

    def _substitute(match: re.Match[str]) -> str:
        key, default = match.group(1), match.group(2)
        value = _lookup_path(data, key)
        if value is not _MISSING and value is not None:
            return _stringify(value)
        if default is not None:
            return default.strip()
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(_substitute, template)


__all__ = ["PLACEHOLDER_PATTERN", "replace_placeholders"]
