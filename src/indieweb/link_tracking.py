"""
Outbound link extraction for webmention sending.

Extracts the external links a post points at so each one can be notified,
and merges the links of the current and previous versions of a post:
- On publish: notify every current link
- On update: notify current links plus links that were removed, so the
  receivers recrawl the post and notice the link is gone

References:
    - W3C Webmention: https://www.w3.org/TR/webmention/ (Section 3.1: Sending)
"""

import logging
from html.parser import HTMLParser
from typing import Iterable, List, Optional
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)

# Maximum HTML size to parse for link extraction (5 MB).
# Ghost posts are typically much smaller, but this guards against
# pathological inputs without being too restrictive.
MAX_HTML_PARSE_BYTES = 5_242_880

ALLOWED_SCHEMES = ("http", "https")


class LinkExtractor(HTMLParser):
    """HTML parser that extracts href values from <a> tags in document order."""

    def __init__(self):
        super().__init__()
        self.links: list[str] = []

    def handle_starttag(self, tag: str, attrs: list) -> None:
        if tag == "a":
            attrs_dict = dict(attrs)
            href = attrs_dict.get("href")
            if href:
                self.links.append(href)


def url_host(url: str) -> Optional[str]:
    """Return the lowercased host[:port] of an absolute URL, or None.

    Credentials in the netloc are ignored.

    Example:
        >>> url_host("https://User@Example.COM:8443/path")
        'example.com:8443'
    """
    try:
        parsed = urlsplit(url)
        hostname = parsed.hostname
        port = parsed.port
    except (ValueError, AttributeError, TypeError):
        return None

    if not hostname:
        return None
    if ":" in hostname:
        hostname = f"[{hostname}]"
    return f"{hostname}:{port}" if port is not None else hostname


def normalize_url(href: str) -> Optional[str]:
    """Normalize an absolute http(s) URL, or return None if it is not one.

    Scheme and host are lowercased and an empty path becomes "/". Query and
    fragment are kept as written, so URLs differing only by fragment stay
    distinct.
    """
    if not isinstance(href, str):
        return None

    href = href.strip()
    if not href:
        return None

    try:
        parsed = urlsplit(href)
    except ValueError:
        return None

    scheme = parsed.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        return None

    host = url_host(href)
    if not host:
        return None

    netloc = host
    if "@" in parsed.netloc:
        netloc = f"{parsed.netloc.rsplit('@', 1)[0]}@{host}"

    path = parsed.path or "/"
    return urlunsplit((scheme, netloc, path, parsed.query, parsed.fragment))


def _unique(urls: Iterable[str]) -> List[str]:
    # dict preserves insertion order
    return list(dict.fromkeys(urls))


def extract_outbound_links(html_content: Optional[str], own_origin: Optional[str]) -> List[str]:
    """Extract unique external HTTP(S) links from HTML content.

    Filters out:
    - Links to the same host as own_origin (self-references)
    - Non-HTTP(S) links (mailto:, javascript:, ftp:, etc.)
    - Relative and fragment-only links
    - Empty and malformed hrefs

    Args:
        html_content: The rendered HTML of the post.
        own_origin: URL of the post itself. Links whose host matches its host
                    are dropped. If it has no parsable host, nothing is
                    filtered on host.

    Returns:
        Unique absolute external URLs in order of first occurrence.

    Example:
        >>> extract_outbound_links('<a href="https://example.com">x</a>', "https://blog.example.org/post/")
        ['https://example.com/']
    """
    if not html_content:
        return []

    # Guard against pathologically large HTML content
    if len(html_content) > MAX_HTML_PARSE_BYTES:
        logger.warning(
            f"HTML content too large for link extraction ({len(html_content)} bytes), "
            f"truncating to {MAX_HTML_PARSE_BYTES} bytes"
        )
        html_content = html_content[:MAX_HTML_PARSE_BYTES]

    parser = LinkExtractor()
    try:
        parser.feed(html_content)
        parser.close()
    except Exception as e:
        logger.warning(f"Failed to parse HTML for link extraction: {e}")
        return []

    own_host = url_host(own_origin) if own_origin else None

    links = []
    for href in parser.links:
        normalized = normalize_url(href)
        if normalized is None:
            logger.debug(f"Skipping non-absolute or unsupported link: {href!r}")
            continue

        if own_host and url_host(normalized) == own_host:
            continue

        links.append(normalized)

    return _unique(links)


def resolve_notify_links(
    html_content: Optional[str],
    previous_html: Optional[str],
    own_origin: Optional[str],
) -> List[str]:
    """Compute every URL that should receive a webmention for a content change.

    All current links are notified, and links only present in the previous
    version are notified too so their receivers can detect the removal.

    Args:
        html_content: Current HTML of the post.
        previous_html: HTML of the previously published version, or None.
        own_origin: URL of the post (used to drop self-links).

    Returns:
        Current links first, followed by removed links, without duplicates.
    """
    links = extract_outbound_links(html_content, own_origin)
    if previous_html is None:
        return links

    previous_links = extract_outbound_links(previous_html, own_origin)
    current = set(links)
    removed = [link for link in previous_links if link not in current]
    if removed:
        logger.debug(f"Links removed since previous version: {removed}")
    return _unique(links + removed)
