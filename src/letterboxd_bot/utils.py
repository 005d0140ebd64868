"""Small helpers for command input: username validation and title normalization."""

import re
import unicodedata


class InvalidInput(ValueError):
    """User-supplied text that cannot be used in a request."""


_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{2,15}$")


def normalize_string(value: str | None) -> str:
    """Lowercase, strip accents and drop everything but letters and digits."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", value)
    ascii_only = decomposed.encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9]", "", ascii_only.lower())


def validate_username(username: str) -> str:
    """
    Validate a Letterboxd username before it is put into a URL.
    Raises InvalidInput on anything the site would not accept.
    """
    cleaned = username.strip().lstrip("@")
    if not _USERNAME_RE.match(cleaned):
        raise InvalidInput(f"Invalid Letterboxd username: {username!r}")
    return cleaned
