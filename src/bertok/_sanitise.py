"""
Utilities for rendering vocabulary tokens as displayable strings.
"""

import unicodedata


def _escape_ctrl_chars(s: str) -> str:
    """Replace all Unicode control characters with their escape sequences."""
    cleaned = []
    for c in s:
        # control category codes vary: Cc, Cf, Cn etc.
        # so check via first character
        if unicodedata.category(c)[0] != "C":
            cleaned.append(c)
        else:
            cleaned.append(f"\\u{ord(c):04x}")
    return "".join(cleaned)


def render_token(token: str) -> str:
    """
    Quote a token and escape control characters.

    Vocabulary files occasionally carry tabs, zero-width joiners or stray
    carriage returns inside tokens; rendering keeps log lines on one line.
    """
    return f"'{_escape_ctrl_chars(token)}'"
