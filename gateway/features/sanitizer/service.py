"""
gateway/features/sanitizer/service.py

Free-text sanitizer for the message and username fields.

Handles:
- Trimming and per-field length limits
- Denylist removal of script/iframe/object/embed elements,
  javascript: schemes and on*= handler attributes inside tags

This is a best-effort denylist, not an HTML parser. Removal repeats until
nothing matches, so sanitizing already-sanitized text returns it unchanged.
"""

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple

from gateway.core.config import Settings, settings
from gateway.core.errors import EmptyInputError, InputTooLongError

MESSAGE = "message"
USERNAME = "username"
PLAN = "plan"

ANONYMOUS_USERNAME = "anonymous"

_BLOCK_ELEMENTS = ("script", "iframe", "object", "embed")

DENYLIST_PATTERNS: Tuple[Tuple[Pattern[str], str], ...] = tuple(
    [
        (
            re.compile(
                rf"<{tag}\b[^<]*(?:(?!</{tag}>)<[^<]*)*</{tag}\s*>",
                re.IGNORECASE | re.DOTALL,
            ),
            "",
        )
        for tag in _BLOCK_ELEMENTS
    ]
    + [
        # Leftover opening/closing tags of the same elements
        (re.compile(rf"</?\s*(?:{'|'.join(_BLOCK_ELEMENTS)})\b[^>]*>?", re.IGNORECASE), ""),
        (re.compile(r"javascript\s*:", re.IGNORECASE), ""),
        # on*= handlers only inside a tag; prose like "one = 1" is left alone
        (re.compile(r"(<[^<>]*?[\s/])on[a-z]+\s*=", re.IGNORECASE), r"\1"),
    ]
)


class SanitizedText(str):
    """Text that already passed the sanitizer for ``field``."""

    field: str

    def __new__(cls, value: str, field: str):
        obj = super().__new__(cls, value)
        obj.field = field
        return obj


@dataclass(frozen=True)
class FieldLimits:
    message: int = 2000
    username: int = 50
    plan: int = 50

    @classmethod
    def from_settings(cls, settings_obj: Optional[Settings] = None) -> "FieldLimits":
        cfg = settings_obj or settings
        return cls(
            message=cfg.MAX_MESSAGE_LENGTH,
            username=cfg.MAX_USERNAME_LENGTH,
            plan=cfg.MAX_PLAN_LENGTH,
        )

    def for_field(self, field: str) -> int:
        if field == USERNAME:
            return self.username
        if field == PLAN:
            return self.plan
        return self.message


def strip_denylisted(text: str) -> str:
    """Remove denylisted constructs until the text stops changing."""
    current = text
    while True:
        cleaned = current
        for pattern, replacement in DENYLIST_PATTERNS:
            cleaned = pattern.sub(replacement, cleaned)
        if cleaned == current:
            return cleaned
        current = cleaned


class Sanitizer:
    def __init__(self, limits: Optional[FieldLimits] = None):
        self.limits = limits or FieldLimits.from_settings()

    def sanitize(self, value: Optional[str], field: str = MESSAGE) -> SanitizedText:
        """
        Validate and clean one free-text field.

        Raises:
            EmptyInputError: nothing left after trimming (or after removal)
            InputTooLongError: trimmed input longer than the field maximum
        """
        if isinstance(value, SanitizedText) and value.field == field:
            return value
        if value is None or not isinstance(value, str):
            raise EmptyInputError(field)

        trimmed = value.strip()
        if not trimmed:
            raise EmptyInputError(field)

        max_length = self.limits.for_field(field)
        if len(trimmed) > max_length:
            raise InputTooLongError(field, max_length)

        cleaned = strip_denylisted(trimmed).strip()
        if not cleaned:
            raise EmptyInputError(field)
        return SanitizedText(cleaned, field)

    def sanitize_message(self, value: Optional[str]) -> SanitizedText:
        return self.sanitize(value, MESSAGE)

    def sanitize_username(self, value: Optional[str]) -> str:
        """Empty usernames fall back to 'anonymous'; oversize ones still fail."""
        try:
            return self.sanitize(value, USERNAME)
        except EmptyInputError:
            return ANONYMOUS_USERNAME
