"""Markup stripping for user-supplied subjects and bodies."""
import re

_UNSAFE_BLOCK = re.compile(r"<(script|style|iframe|object)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")


def clean_text(value: str | None) -> str | None:
    """Drop script-like blocks entirely, then strip the remaining tags."""
    if value is None:
        return None
    value = _UNSAFE_BLOCK.sub("", value)
    return _TAG.sub("", value)
