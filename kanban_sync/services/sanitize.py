"""Shared input cleaning for the task and board stores."""

import bleach


def sanitize_text(text):
    """Strip all HTML tags from user input."""
    if text is None:
        return text
    return bleach.clean(str(text), tags=[], strip=True).strip()
