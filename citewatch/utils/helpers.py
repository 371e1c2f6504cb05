"""General-purpose helper utilities."""

from urllib.parse import urlparse


def normalize_domain(value: str) -> str:
    """Reduce a URL or bare host to a lowercase hostname without ``www.``.

    Examples:
        >>> normalize_domain("https://www.Example.com/blog")
        'example.com'
        >>> normalize_domain("docs.example.com")
        'docs.example.com'
    """
    value = (value or "").strip()
    if not value:
        return ""
    parsed = urlparse(value if "://" in value else f"https://{value}")
    host = (parsed.hostname or value).lower()
    return host.removeprefix("www.")


def pick(data: dict, *keys: str, default=None):
    """Return the first present, non-None value among ``keys``.

    Used to read responses that may use either camelCase or snake_case.

    Examples:
        >>> pick({"isCited": True}, "is_cited", "isCited")
        True
        >>> pick({}, "a", "b", default=0)
        0
    """
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default
