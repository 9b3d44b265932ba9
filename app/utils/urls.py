"""
URL helpers shared by the gallery API and the admin client.
"""


def normalize_url(url: str) -> str:
    """
    Normalize a provider URL for de-duplication.

    Drops the query string and surrounding whitespace, so two URLs that
    differ only in query parameters are treated as the same image.
    """
    return (url or "").split("?", 1)[0].strip()


def normalized_set(urls) -> set:
    """Normalized form of every non-empty URL in urls."""
    return {normalize_url(url) for url in urls if url}
