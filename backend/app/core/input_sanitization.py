"""Free-text input sanitization for provider profile fields.

Security: Provider profiles are rendered on public pages, so markup-prone
characters are stripped from free text before it is stored. Templates must
still escape on output.
"""

import re
import unicodedata

_DEFAULT_MAX_LENGTH = 255

_MARKUP_CHARS_RE = re.compile(r"[<>\"'&]")
"""Characters removed from free text (HTML/attribute injection prone)."""

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
"""ASCII control characters except tab, newline and carriage return."""


def sanitize_text(value: str | None, max_length: int = _DEFAULT_MAX_LENGTH) -> str:
    """Sanitize a free-text field value.

    Applies NFKC normalization, removes control characters and markup-prone
    characters, trims surrounding whitespace and truncates.

    Args:
        value: Raw user input. None is treated as empty.
        max_length: Maximum length of the returned string.

    Returns:
        Sanitized string (possibly empty).
    """
    if not value:
        return ""
    cleaned = unicodedata.normalize("NFKC", value)
    cleaned = _CONTROL_CHARS_RE.sub("", cleaned)
    cleaned = _MARKUP_CHARS_RE.sub("", cleaned)
    return cleaned.strip()[:max_length]
