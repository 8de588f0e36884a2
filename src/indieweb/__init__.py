"""
IndieWeb Module for the webmention sender.

This module provides the Webmention protocol pieces: outbound link
extraction, W3C endpoint discovery and SSRF-hardened sending.

Features:
    - Unique external link extraction from post HTML
    - Current + removed link resolution for post updates
    - W3C Webmention endpoint discovery
    - Webmention sending with private-address blocking

Usage:
    >>> from indieweb import resolve_notify_links, WebmentionSender, OutboundNotification
    >>> links = resolve_notify_links(html, previous_html, post_url)
    >>> sender = WebmentionSender(timeout=10)
    >>> sender.send(OutboundNotification(source=post_url, target=links[0], endpoint=endpoint))
"""

from indieweb.errors import (
    WebmentionError,
    ValidationError,
    SecurityError,
    ProtocolError,
    NetworkError,
)
from indieweb.link_tracking import extract_outbound_links, resolve_notify_links
from indieweb.webmention import (
    HttpDiscoveryService,
    OutboundNotification,
    WebmentionResult,
    WebmentionSender,
    discover_webmention_endpoint,
)

__all__ = [
    "WebmentionError",
    "ValidationError",
    "SecurityError",
    "ProtocolError",
    "NetworkError",
    "extract_outbound_links",
    "resolve_notify_links",
    "HttpDiscoveryService",
    "OutboundNotification",
    "WebmentionResult",
    "WebmentionSender",
    "discover_webmention_endpoint",
]
