"""Open Graph metadata fetching for bookmarked pages."""

import asyncio
import ipaddress
import socket
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

USER_AGENT = "Mozilla/5.0 (compatible; Bookmarker/1.0)"
DEFAULT_TIMEOUT = 10.0


class MetadataFetchError(Exception):
    """Raised when page metadata cannot be fetched or parsed."""


class SSRFBlockedError(MetadataFetchError):
    """Raised when a URL targets a private/internal network address."""


@dataclass(frozen=True)
class PageMetadata:
    """Open Graph fields of a page; any of them may be missing."""

    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    type: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.title or self.description or self.image_url or self.type)


def is_private_ip(ip_str: str) -> bool:
    """Check if an IP address is private, loopback, or otherwise internal.

    Unparseable addresses count as private.
    """
    try:
        ip = ipaddress.ip_address(ip_str)
    except ValueError:
        return True
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


async def validate_url_not_private(url: str) -> None:
    """Validate that a URL does not target a private/internal network.

    Resolves the hostname so that a public name pointing at an internal
    address is refused as well.

    Raises:
        SSRFBlockedError: If the URL targets a private network.
        MetadataFetchError: If the URL has no hostname or it does not resolve.
    """
    hostname = urlparse(url).hostname
    if not hostname:
        raise MetadataFetchError(f"Invalid URL (no hostname): {url}")

    if hostname.lower() in ("localhost", "localhost.localdomain"):
        raise SSRFBlockedError(f"Blocked request to localhost: {url}")

    loop = asyncio.get_running_loop()
    try:
        addrinfo = await loop.getaddrinfo(hostname, None, family=socket.AF_UNSPEC, type=socket.SOCK_STREAM)
    except socket.gaierror as e:
        raise MetadataFetchError(f"Could not resolve hostname: {hostname}") from e

    for _, _, _, _, sockaddr in addrinfo:
        ip_str = sockaddr[0]
        if is_private_ip(ip_str):
            raise SSRFBlockedError(
                f"Blocked request to private/internal address: {url} resolves to {ip_str}",
            )


def _meta_content(soup: BeautifulSoup, **attrs: str) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if tag and tag.get("content"):
        return tag["content"].strip() or None
    return None


def parse_open_graph(html: str, base_url: str) -> PageMetadata:
    """Extract Open Graph metadata from HTML.

    Title: og:title, then <title>.
    Description: og:description, then <meta name="description">.
    Image: og:image, resolved against ``base_url``.
    Type: og:type.
    """
    soup = BeautifulSoup(html, "lxml")

    title = _meta_content(soup, property="og:title")
    if not title:
        title_tag = soup.find("title")
        if title_tag and title_tag.string:
            title = title_tag.string.strip() or None

    description = _meta_content(soup, property="og:description") or _meta_content(soup, name="description")

    image_url = _meta_content(soup, property="og:image")
    if image_url:
        image_url = urljoin(base_url, image_url)

    return PageMetadata(
        title=title,
        description=description,
        image_url=image_url,
        type=_meta_content(soup, property="og:type"),
    )


async def fetch_page_metadata(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    user_agent: str = USER_AGENT,
    block_private_hosts: bool = True,
) -> PageMetadata:
    """Fetch ``url`` and return its Open Graph metadata.

    Follows redirects. Relative og:image values are resolved against the
    final URL.

    Raises:
        MetadataFetchError: On SSRF refusal, timeout, transport error,
            non-2xx status, non-HTML content or a page without metadata.
    """
    if block_private_hosts:
        await validate_url_not_private(url)

    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
            headers={"User-Agent": user_agent},
        ) as client:
            response = await client.get(url)
    except httpx.TimeoutException as e:
        raise MetadataFetchError(f"Request timed out: {url}") from e
    except httpx.RequestError as e:
        raise MetadataFetchError(f"Request failed: {e}") from e

    final_url = str(response.url)
    if block_private_hosts and final_url != url:
        await validate_url_not_private(final_url)

    if not response.is_success:
        raise MetadataFetchError(f"HTTP {response.status_code} for {final_url}")

    content_type = response.headers.get("content-type", "")
    if "text/html" not in content_type.lower():
        raise MetadataFetchError(f"Unsupported content type: {content_type}")

    metadata = parse_open_graph(response.text, final_url)
    if metadata.is_empty:
        raise MetadataFetchError(f"No metadata found at {final_url}")
    return metadata
