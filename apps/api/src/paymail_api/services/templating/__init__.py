"""Template text helpers."""

from .placeholders import replace_placeholders

__all__ = ["replace_placeholders"]
