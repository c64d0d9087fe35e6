"""Custom exceptions for core logic."""

from __future__ import annotations


class PatternError(Exception):
    """Raised when a user-supplied regex override cannot be compiled."""

    def __init__(self, message: str, *, pattern: str, field_id: str | None = None) -> None:
        super().__init__(message)
        self.pattern = pattern
        self.field_id = field_id


class TemplateSyntaxError(Exception):
    """Raised when directive markers are unbalanced or mismatched."""

    def __init__(self, message: str, *, key: str | None, offset: int) -> None:
        super().__init__(f"{message} (key={key!r}, offset={offset})")
        self.key = key
        self.offset = offset


class VariantSelectionError(Exception):
    """Raised when variant selection is attempted without any variants."""
