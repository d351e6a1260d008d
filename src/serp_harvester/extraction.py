"""Pure extraction and search URL utilities."""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlencode, urlparse

EMAIL_REGEX = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}", re.IGNORECASE)
DENYLIST_REGEX = re.compile(r"example\.com|example\.org|example\.net|noreply@|no-reply@")


def is_denylisted(email: str) -> bool:
    """Return True for placeholder domains and no-reply mailboxes."""
    return DENYLIST_REGEX.search(email) is not None


def extract_emails(text: str | None) -> set[str]:
    """Return normalized, non-placeholder emails discovered in plain text."""
    found = {match.group(0).lower() for match in EMAIL_REGEX.finditer(text or "")}
    return {email for email in found if not is_denylisted(email)}


def build_search_url(query: str, endpoint: str, num: int = 10, language: str = "en") -> str:
    """Build the results-page URL for a query."""
    return f"{endpoint}?{urlencode({'q': query, 'num': num, 'hl': language})}"


def query_from_url(url: str) -> str | None:
    """Recover the ``q`` parameter from a results-page URL."""
    values = parse_qs(urlparse(url).query).get("q")
    if values and values[0].strip():
        return values[0]
    return None
