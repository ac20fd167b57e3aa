"""
URL Normalization Module
Turns article URLs into comparison keys so that trivially different links
to the same article (www. prefix, trailing slash, tracking query, fragment) match.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urlparse


def _strip_www(key: str) -> str:
    return key[4:] if key.startswith('www.') else key


def normalize_url(url: Optional[str]) -> str:
    """
    Canonicalize a URL to a comparison key.

    - Lowercase
    - Drop scheme, query string and fragment
    - Strip a leading 'www.' from the host
    - Strip trailing slashes from the path

    Malformed or scheme-less input falls back to the lowercased raw string
    without a leading 'www.' or trailing slashes instead of raising.

    Example:
        normalize_url("https://www.Example.com/a/?utm=x#top") -> "example.com/a"
    """
    if not url:
        return ""

    lowered = url.strip().lower()
    try:
        parsed = urlparse(lowered)
    except ValueError:
        return _strip_www(lowered.rstrip('/'))

    # Scheme-less links like "www.example.com/a" land here
    if not parsed.netloc:
        return _strip_www(lowered.rstrip('/'))

    return _strip_www(parsed.netloc) + parsed.path.rstrip('/')


def source_keys(sources: List[Dict[str, Any]]) -> set:
    """Get the set of normalized URL keys already present in a sources list."""
    return {normalize_url(s.get('url')) for s in sources if s.get('url')}


def dedupe_sources(sources: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Remove repeated entries from a sources list, keeping discovery order.

    An entry is dropped when its normalized URL was already seen or,
    secondarily, when its source name (case-insensitive) was already seen.
    """
    seen_urls = set()
    seen_names = set()
    unique = []

    for source in sources:
        url_key = normalize_url(source.get('url'))
        if url_key and url_key in seen_urls:
            continue

        name = (source.get('name') or '').strip().lower()
        if name and name in seen_names:
            continue

        if url_key:
            seen_urls.add(url_key)
        if name:
            seen_names.add(name)
        unique.append(source)

    return unique
