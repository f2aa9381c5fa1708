"""URL validation for imported fields."""

from urllib.parse import urlparse, urlunparse

ALLOWED_SCHEMES = ("http", "https")


def parse_url(value: str) -> str:
    """Parse an absolute http(s) URL from a raw field.

    Lowercases scheme and host and drops surrounding whitespace; path,
    query and fragment are kept as written.

    Raises:
        ValueError: if the value is not an absolute http(s) URL.
    """
    candidate = (value or "").strip()
    if not candidate:
        raise ValueError("empty URL")

    p = urlparse(candidate)
    scheme = p.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise ValueError(f"unsupported scheme in {candidate!r}")
    if not p.netloc or not p.hostname:
        raise ValueError(f"missing host in {candidate!r}")
    if any(ch.isspace() for ch in candidate):
        raise ValueError(f"whitespace in {candidate!r}")

    netloc = p.netloc.lower()
    return urlunparse((scheme, netloc, p.path or "/", p.params, p.query, p.fragment))
