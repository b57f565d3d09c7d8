"""
URL helpers - Validation and normalization of links found in emails

Job boards and mailers decorate the same destination with campaign
parameters, so links are compared by their normalized form.
"""

import re
from typing import Optional
from urllib.parse import unquote_plus, urlsplit, urlunsplit

# Exact query keys stripped during normalization (utm_* is matched by prefix)
TRACKING_PARAMS = {"fbclid", "gclid", "mc_cid", "mc_eid"}
TRACKING_PARAM_PREFIXES = ("utm_",)

# Schemes that are meaningless without a host
HOST_REQUIRED_SCHEMES = {"http", "https", "ftp", "ws", "wss"}

_SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*$")
_FALLBACK_STRIP = re.compile(r"[\s<>\"']")


def is_tracking_param(key: str) -> bool:
    key = key.lower()
    return key in TRACKING_PARAMS or key.startswith(TRACKING_PARAM_PREFIXES)


def strip_tracking_params(query: str) -> str:
    """
    Drop tracking keys from a raw query string.

    Remaining parameters keep their original order and encoding.
    """
    kept = []
    for segment in query.split("&"):
        if not segment:
            continue
        key = unquote_plus(segment.split("=", 1)[0])
        if not is_tracking_param(key):
            kept.append(segment)
    return "&".join(kept)


def has_tracking_params(url: str) -> bool:
    try:
        query = urlsplit(url).query
    except ValueError:
        return False
    return any(
        is_tracking_param(unquote_plus(segment.split("=", 1)[0]))
        for segment in query.split("&")
        if segment
    )


def is_valid_url(url: Optional[str]) -> bool:
    """
    Check that a string parses as an absolute URL.

    Any syntactically valid scheme is accepted (javascript:, mailto:, tel:),
    but http(s), ftp and websocket URLs must name a host.
    """
    if not url or not url.strip():
        return False
    try:
        parts = urlsplit(url.strip())
        # Raises ValueError on a non-numeric port
        parts.port
    except ValueError:
        return False

    if not parts.scheme or not _SCHEME_PATTERN.match(parts.scheme):
        return False
    if parts.scheme.lower() in HOST_REQUIRED_SCHEMES and not parts.hostname:
        return False
    return True


def normalize_url(url: str) -> str:
    """
    Canonical form of a URL used for deduplication.

    Lower-cases scheme and host, strips tracking parameters and the fragment,
    and drops an empty query. Applying it twice gives the same result.

    Args:
        url: Raw URL, possibly malformed

    Returns:
        Normalized URL. Never raises; malformed input falls back to a
        conservative character strip truncated at the first '?' or '#'.

    Example:
        >>> normalize_url("https://X.com/jobs?utm_source=email&id=1#top")
        'https://x.com/jobs?id=1'
    """
    if not url:
        return ""
    url = url.strip()

    if not is_valid_url(url):
        cleaned = _FALLBACK_STRIP.sub("", url)
        if not is_valid_url(cleaned):
            return re.split(r"[?#]", cleaned, maxsplit=1)[0]
        url = cleaned

    parts = urlsplit(url)

    scheme = parts.scheme.lower()
    netloc = parts.netloc
    if netloc:
        userinfo, at, hostport = netloc.rpartition("@")
        netloc = f"{userinfo}{at}{hostport.lower()}"

    path = parts.path
    if scheme in HOST_REQUIRED_SCHEMES and not path:
        path = "/"

    query = strip_tracking_params(parts.query)
    return urlunsplit((scheme, netloc, path, query, ""))


def get_domain(url: str) -> str:
    """Lower-cased host of a URL, or '' for hostless URLs."""
    try:
        return (urlsplit(url.strip()).hostname or "").lower()
    except ValueError:
        return ""
