"""
Webmention protocol implementation: endpoint discovery and sending.

Webmention is a W3C standard for notifying a URL when you link to it.
The protocol is simple:

    POST {webmention-endpoint}
    Content-Type: application/x-www-form-urlencoded

    source={your-post-url}&target={linked-url}

Every outbound request is guarded against SSRF: the endpoint host is
resolved first and the request is refused if any resolved address is
private, loopback, link-local or otherwise not globally routable. The
request is then pinned to the validated address, so a second DNS answer
(DNS rebinding) cannot send it somewhere else.

Usage:
    >>> from indieweb.webmention import WebmentionSender, OutboundNotification
    >>> sender = WebmentionSender(timeout=10)
    >>> sender.send(OutboundNotification(
    ...     source="https://blog.example.com/my-post/",
    ...     target="https://example.org/article",
    ...     endpoint="https://example.org/webmention",
    ... ))

References:
    - W3C Webmention: https://www.w3.org/TR/webmention/
"""

import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

import mf2py
import requests
from requests.adapters import HTTPAdapter
from requests.utils import parse_header_links

from indieweb.errors import NetworkError, ProtocolError, SecurityError
from indieweb.link_tracking import url_host


logger = logging.getLogger(__name__)

# Protocol defaults
WEBMENTION_USER_AGENT = "Webmention (webmention-sender)"
MAX_DISCOVERY_RESPONSE_BYTES = 1_048_576  # 1 MB
MAX_REDIRECTS = 20  # redirect limit recommended by W3C Webmention
DEFAULT_TIMEOUT = 10.0

# Extra form field identifying the sending software, so receivers can
# allow-list or rate-limit by origin.
DEFAULT_IDENTITY_FIELD = ("source_is_ghost", "true")

Resolver = Callable[[str], List[str]]


@dataclass(frozen=True)
class OutboundNotification:
    """The three URLs needed for one webmention exchange."""
    source: str
    target: str
    endpoint: str


@dataclass
class WebmentionResult:
    """Result of an accepted webmention.

    Attributes:
        status_code: HTTP status code returned by the endpoint (2xx)
        endpoint: Webmention endpoint URL used for this send
        location: Optional status URL returned by some endpoints (201/202)
    """
    status_code: int
    endpoint: str
    location: Optional[str] = None


def resolve_host_addresses(hostname: str) -> List[str]:
    """Resolve a hostname to its IP addresses.

    Literal IPv4/IPv6 addresses are returned as-is without a DNS lookup.

    Raises:
        socket.gaierror: If the name cannot be resolved.
    """
    try:
        return [str(ipaddress.ip_address(hostname))]
    except ValueError:
        pass

    infos = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
    addresses = []
    for _, _, _, _, sockaddr in infos:
        # Drop IPv6 scope ids such as "fe80::1%eth0"
        ip_str = str(sockaddr[0]).split("%", 1)[0]
        if ip_str not in addresses:
            addresses.append(ip_str)
    return addresses


def is_permitted_address(ip_str: str) -> bool:
    """Check whether an IP address may be contacted.

    Rejects private, loopback, link-local, multicast, reserved, unspecified
    and any other non-global range, including IPv4-mapped IPv6 forms of them.
    """
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False

    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped

    if (
        addr.is_private
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_multicast
        or addr.is_reserved
        or addr.is_unspecified
    ):
        return False
    return addr.is_global


def _validated_address(url: str, resolver: Optional[Resolver] = None) -> str:
    """Resolve the host of url once and return the address to connect to.

    The returned address is the one the request must be pinned to; the name
    is never looked up again for that request.

    Raises:
        SecurityError: Non-http(s) scheme, no host, or any resolved address
            is not permitted.
        NetworkError: The host cannot be resolved.
    """
    resolver = resolver or resolve_host_addresses
    try:
        parsed = urlsplit(url)
        hostname, _port = parsed.hostname, parsed.port
    except ValueError as e:
        raise SecurityError(f"Malformed URL: {url}") from e

    if parsed.scheme.lower() not in ("http", "https"):
        raise SecurityError(f"Unsupported URL scheme: {url}")
    if not hostname:
        raise SecurityError(f"URL has no host: {url}")

    try:
        addresses = resolver(hostname)
    except (socket.gaierror, OSError) as e:
        raise NetworkError(f"DNS resolution failed for {hostname}: {e}", cause=str(e)) from e

    if not addresses:
        raise NetworkError(f"DNS resolution returned no addresses for {hostname}")

    for ip_str in addresses:
        if not is_permitted_address(ip_str):
            logger.warning(f"Blocked request to non-permitted address: url={url}, resolved={ip_str}")
            raise SecurityError(
                f"{url} resolves to non-permitted private IP {ip_str}",
                address=ip_str,
            )
    return addresses[0]


class PinnedHostAdapter(HTTPAdapter):
    """HTTPS adapter for requests sent to a pre-validated IP address.

    The URL carries the IP, while TLS SNI and certificate verification
    use the original hostname.
    """

    def __init__(self, hostname: str, **kwargs):
        # init_poolmanager runs inside HTTPAdapter.__init__
        self.hostname = hostname
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        pool_kwargs["server_hostname"] = self.hostname
        pool_kwargs["assert_hostname"] = self.hostname
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)


def _build_session(pinned_hostname: Optional[str] = None) -> requests.Session:
    """Build a requests Session with webmention-appropriate settings.

    Sets the webmention User-Agent.
    With pinned_hostname, HTTPS connections verify TLS against that name.
    """
    session = requests.Session()
    session.headers["User-Agent"] = WEBMENTION_USER_AGENT
    if pinned_hostname:
        session.mount("https://", PinnedHostAdapter(pinned_hostname))
    return session


def _pin_url(endpoint: str, ip_str: str) -> Tuple[str, str]:
    """Rewrite an endpoint URL to connect to ip_str.

    Returns:
        Tuple of (url with the IP as host, original Host header value).
    """
    parsed = urlsplit(endpoint)
    host = ip_str
    if ":" in host:
        host = f"[{host}]"
    if parsed.port is not None:
        host = f"{host}:{parsed.port}"
    pinned = urlunsplit((parsed.scheme, host, parsed.path or "/", parsed.query, ""))
    return pinned, url_host(endpoint)


def _pinned_request(url: str, resolver: Optional[Resolver]) -> Tuple[requests.Session, str, str]:
    """Validate url and prepare a session connecting to the validated address.

    Returns:
        Tuple of (session, url with the IP as host, Host header value).
        The caller closes the session.
    """
    ip_str = _validated_address(url, resolver)
    pinned_url, host_header = _pin_url(url, ip_str)
    parsed = urlsplit(url)
    session = _build_session(parsed.hostname if parsed.scheme.lower() == "https" else None)
    return session, pinned_url, host_header


class WebmentionSender:
    """Sends webmentions with SSRF protection.

    Each send resolves the endpoint, refuses non-permitted addresses,
    then POSTs source, target and the identity field. Redirects are not
    followed: a 3xx answer fails like any other non-2xx status.

    Example:
        >>> sender = WebmentionSender.from_config(config)
        >>> result = sender.send(notification)
        >>> result.status_code
        202
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        identity_field: Tuple[str, str] = DEFAULT_IDENTITY_FIELD,
        resolver: Optional[Resolver] = None,
    ):
        """Initialize the sender.

        Args:
            timeout: Request timeout in seconds.
            identity_field: (name, value) form field naming the sending software.
            resolver: Callable mapping a hostname to IP strings. Defaults to
                      resolve_host_addresses.
        """
        self.timeout = timeout
        self.identity_field = identity_field
        self.resolver = resolver or resolve_host_addresses

    @classmethod
    def from_config(cls, config: Dict) -> "WebmentionSender":
        """Create a sender from the webmention section of config.yml."""
        from config import get_webmention_config

        wm_config = get_webmention_config(config)
        return cls(
            timeout=wm_config["timeout"],
            identity_field=(wm_config["identity_field"], wm_config["identity_value"]),
        )

    def send(self, notification: OutboundNotification) -> WebmentionResult:
        """Send one webmention.

        Args:
            notification: Source, target and discovered endpoint.

        Returns:
            WebmentionResult for a 2xx answer.

        Raises:
            SecurityError: Endpoint resolves to a non-permitted address.
                No request is made.
            ProtocolError: Endpoint answered with a non-2xx status.
            NetworkError: DNS, connection or timeout failure.
        """
        endpoint = notification.endpoint
        session, url, host_header = _pinned_request(endpoint, self.resolver)

        payload = {
            "source": notification.source,
            "target": notification.target,
        }
        name, value = self.identity_field
        payload[name] = value

        logger.info(
            f"Sending webmention: source={notification.source}, "
            f"target={notification.target}, endpoint={endpoint}"
        )

        try:
            response = session.post(
                url,
                data=payload,
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Host": host_header,
                },
                timeout=self.timeout,
                allow_redirects=False,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Webmention request timed out: endpoint={endpoint}")
            raise NetworkError(f"Webmention request to {endpoint} timed out: {e}", cause=str(e)) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Webmention request failed: endpoint={endpoint}, error={e}")
            raise NetworkError(f"Webmention request to {endpoint} failed: {e}", cause=str(e)) from e
        finally:
            session.close()

        if 200 <= response.status_code < 300:
            location = response.headers.get("Location")
            logger.info(
                f"Webmention accepted: source={notification.source}, target={notification.target}, "
                f"status_code={response.status_code}, location={location}"
            )
            return WebmentionResult(status_code=response.status_code, endpoint=endpoint, location=location)

        error_msg = _parse_error_response(response)
        logger.warning(
            f"Webmention rejected: source={notification.source}, target={notification.target}, "
            f"status_code={response.status_code}, error={error_msg}"
        )
        raise ProtocolError(
            f"Webmention sending failed with status {response.status_code}: {error_msg}",
            status_code=response.status_code,
        )


# =========================================================================
# W3C Webmention endpoint discovery
# =========================================================================

def _read_bounded_response(response: requests.Response, url: str) -> str:
    """Read a streamed response body up to MAX_DISCOVERY_RESPONSE_BYTES and decode it."""
    chunks = []
    bytes_read = 0
    try:
        for chunk in response.iter_content(chunk_size=8192, decode_unicode=False):
            chunks.append(chunk)
            bytes_read += len(chunk)
            if bytes_read > MAX_DISCOVERY_RESPONSE_BYTES:
                logger.warning(
                    f"Response too large during webmention discovery ({bytes_read}+ bytes): {url}"
                )
                break
    finally:
        response.close()

    encoding = response.encoding or "utf-8"
    try:
        return b"".join(chunks).decode(encoding, errors="replace")
    except LookupError:
        return b"".join(chunks).decode("utf-8", errors="replace")


def _endpoint_from_link_header(link_header: str, base_url: str) -> Optional[str]:
    """Return the first rel="webmention" URL of an HTTP Link header, resolved against base_url."""
    for link in parse_header_links(link_header):
        rels = link.get("rel", "").lower().split()
        if "webmention" in rels:
            return urljoin(base_url, link.get("url", ""))
    return None


def discover_webmention_endpoint(
    target_url: str,
    timeout: float = DEFAULT_TIMEOUT,
    resolver: Optional[Resolver] = None,
) -> Optional[str]:
    """Discover the webmention endpoint for a target URL.

    Follows the W3C Webmention discovery algorithm:
    1. Check HTTP Link header for rel="webmention"
    2. Parse HTML for the first <link> or <a> with rel="webmention"

    Private/loopback targets are never fetched. Redirects are followed by
    hand and every hop is resolved once, checked, and pinned to the checked
    address, exactly like a send.

    Args:
        target_url: The URL to discover the webmention endpoint for.
        timeout: Request timeout in seconds.
        resolver: Optional hostname resolver (see WebmentionSender).

    Returns:
        The absolute webmention endpoint URL, or None if not found.
    """
    url = target_url
    for _ in range(MAX_REDIRECTS + 1):
        try:
            session, pinned_url, host_header = _pinned_request(url, resolver)
        except (SecurityError, NetworkError) as e:
            logger.warning(f"Blocked webmention discovery for {url}: {e}")
            return None

        try:
            response = session.get(
                pinned_url,
                headers={"Accept": "text/html", "Host": host_header},
                timeout=timeout,
                allow_redirects=False,
                stream=True,
            )
        except requests.exceptions.RequestException as e:
            session.close()
            logger.error(f"Failed to fetch target for webmention discovery: {url}, error={e}")
            return None

        if not response.is_redirect:
            break
        location = urljoin(url, response.headers.get("Location", ""))
        response.close()
        session.close()
        url = location
    else:
        logger.error(f"Too many redirects during webmention discovery: {target_url}")
        return None

    try:
        # Relative endpoints resolve against the final URL after redirects
        return _endpoint_from_response(response, url, target_url)
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to fetch target for webmention discovery: {target_url}, error={e}")
        return None
    finally:
        response.close()
        session.close()


def _endpoint_from_response(response: requests.Response, base_url: str, target_url: str) -> Optional[str]:
    response.raise_for_status()

    link_header = response.headers.get("Link", "")
    if link_header:
        endpoint = _endpoint_from_link_header(link_header, base_url)
        if endpoint:
            return endpoint

    content_type = response.headers.get("Content-Type", "text/html")
    if "html" not in content_type.lower():
        logger.info(f"No webmention endpoint found for non-HTML target: {target_url}")
        return None

    html_body = _read_bounded_response(response, target_url)
    try:
        parsed = mf2py.parse(doc=html_body, url=base_url)
    except Exception as e:
        logger.warning(f"Failed to parse target HTML for webmention discovery: {target_url}, error={e}")
        return None

    endpoints = parsed.get("rels", {}).get("webmention", [])
    if endpoints:
        return endpoints[0]

    logger.info(f"No webmention endpoint found for: {target_url}")
    return None


class HttpDiscoveryService:
    """Discovery service performing W3C endpoint discovery over HTTP."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, resolver: Optional[Resolver] = None):
        self.timeout = timeout
        self.resolver = resolver

    @classmethod
    def from_config(cls, config: Dict) -> "HttpDiscoveryService":
        from config import get_webmention_config

        return cls(timeout=get_webmention_config(config)["discovery_timeout"])

    def get_endpoint(self, target: str) -> Optional[str]:
        return discover_webmention_endpoint(target, timeout=self.timeout, resolver=self.resolver)


def _parse_error_response(response: requests.Response) -> str:
    """Parse error message from an HTTP response."""
    try:
        data = response.json()
        if isinstance(data, dict) and "error" in data:
            return str(data.get("error_description", data["error"]))
    except ValueError:
        pass
    text = (response.text or "").strip()
    if text and len(text) < 200:
        return f"HTTP {response.status_code}: {text}"
    return f"HTTP {response.status_code}: {response.reason}"
