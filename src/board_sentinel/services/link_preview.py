"""SSRF-safe link preview fetching.

Every hop is resolved and validated before a request is issued: the hostname
must resolve, must not be a cloud metadata or skip-listed host, and none of
its addresses may fall in a private, loopback, link-local, multicast or
reserved range. Redirects are never followed by the HTTP client; each
``Location`` is resolved against the current URL and validated from scratch.

All failures degrade to ``None``; callers never see an exception.
"""

from __future__ import annotations

import asyncio
import html
import ipaddress
import logging
import re
import socket
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import asdict, dataclass
from typing import Any
from urllib.parse import urljoin, urlsplit

import httpx

from board_sentinel.core.settings import settings

logger = logging.getLogger(__name__)

BLOCKED_METADATA_HOSTS = frozenset(
    {
        "169.254.169.254",
        "metadata.google.internal",
        "metadata.goog",
    }
)

BLOCKED_IPV4_NETWORKS = tuple(
    ipaddress.IPv4Network(cidr)
    for cidr in (
        "0.0.0.0/8",
        "10.0.0.0/8",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "224.0.0.0/4",  # multicast
        "240.0.0.0/4",  # reserved
    )
)

BLOCKED_IPV6_NETWORKS = tuple(
    ipaddress.IPv6Network(cidr)
    for cidr in (
        "::1/128",
        "::/128",
        "fc00::/7",
        "fe80::/10",
    )
)

URL_PATTERN = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)
ALLOWED_SCHEMES = ("http", "https")
ALLOWED_CONTENT_TYPES = ("text/html", "application/xhtml")

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 500
SITE_NAME_MAX_LENGTH = 100

REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (compatible; BoardSentinelPreview/1.0; +https://example.invalid/bot)"
    ),
    "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.1",
    "Accept-Language": "zh-TW,zh;q=0.9,en;q=0.8",
}

_META_TAG_PATTERN = re.compile(r"<meta\b[^>]*>", re.IGNORECASE)
_ATTRIBUTE_PATTERN = re.compile(
    r"([a-zA-Z_:][-a-zA-Z0-9_:.]*)\s*=\s*(?:\"([^\"]*)\"|'([^']*)'|([^\s\"'>]+))"
)
_TITLE_PATTERN = re.compile(r"<title[^>]*>(.*?)</title\s*>", re.IGNORECASE | re.DOTALL)

Resolver = Callable[[str], Awaitable[list[str]]]


@dataclass
class LinkPreview:
    """Metadata shown beside a post's first link."""

    url: str
    title: str
    description: str | None = None
    image: str | None = None
    site_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class PreviewUnavailable(Exception):
    """Internal signal that a preview cannot be produced."""


def extract_first_url(text: str) -> str | None:
    """Return the first ``http(s)://`` token in ``text``."""
    match = URL_PATTERN.search(text)
    return match.group(0) if match else None


def is_blocked_address(address: str) -> bool:
    """Return True if ``address`` is not a public unicast address."""
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return True
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    if isinstance(ip, ipaddress.IPv4Address):
        return any(ip in network for network in BLOCKED_IPV4_NETWORKS)
    return any(ip in network for network in BLOCKED_IPV6_NETWORKS)


def is_denied_by_name(hostname: str, skip_domains: Iterable[str] = ()) -> bool:
    """Return True for metadata hosts and skip-listed domains (and subdomains)."""
    host = hostname.lower().rstrip(".")
    if not host or host in BLOCKED_METADATA_HOSTS:
        return True
    return any(host == domain or host.endswith("." + domain) for domain in skip_domains)


def is_host_allowed(
    hostname: str,
    addresses: Iterable[str],
    skip_domains: Iterable[str] = (),
) -> bool:
    """Decide whether a host with the given resolved addresses may be fetched.

    Pure and total: the same predicate guards the initial request, every
    redirect hop and the preview image.
    """
    if is_denied_by_name(hostname, skip_domains):
        return False
    resolved = list(addresses)
    if not resolved:
        return False
    return not any(is_blocked_address(address) for address in resolved)


async def resolve_host(hostname: str) -> list[str]:
    """Resolve ``hostname`` to every address the system resolver returns."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    return list(dict.fromkeys(str(info[4][0]) for info in infos))


def _meta_tags(document: str) -> list[dict[str, str]]:
    tags: list[dict[str, str]] = []
    for tag in _META_TAG_PATTERN.findall(document):
        attributes: dict[str, str] = {}
        for name, double, single, bare in _ATTRIBUTE_PATTERN.findall(tag):
            attributes[name.lower()] = double or single or bare
        tags.append(attributes)
    return tags


def extract_meta(tags: list[dict[str, str]], key: str) -> str | None:
    """Return the decoded ``content`` of the first meta tag named ``key``."""
    for attributes in tags:
        name = attributes.get("property") or attributes.get("name")
        if name and name.lower() == key:
            content = html.unescape(attributes.get("content", "")).strip()
            if content:
                return content
    return None


def extract_title(document: str, tags: list[dict[str, str]]) -> str | None:
    title = extract_meta(tags, "og:title")
    if title:
        return title
    match = _TITLE_PATTERN.search(document)
    if match:
        text = html.unescape(match.group(1)).strip()
        return text or None
    return None


def parse_preview(document: str) -> dict[str, str | None]:
    """Scan ``document`` for the Open Graph fields used in previews."""
    tags = _meta_tags(document)
    return {
        "title": extract_title(document, tags),
        "description": extract_meta(tags, "og:description") or extract_meta(tags, "description"),
        "image": extract_meta(tags, "og:image"),
        "site_name": extract_meta(tags, "og:site_name"),
    }


class LinkPreviewFetcher:
    """Fetches Open Graph previews without exposing internal networks."""

    def __init__(
        self,
        *,
        resolver: Resolver = resolve_host,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout_seconds: float = 5.0,
        max_bytes: int = 512 * 1024,
        max_redirects: int = 5,
        skip_domains: Iterable[str] = (),
    ) -> None:
        self._resolver = resolver
        self._transport = transport
        self.timeout_seconds = timeout_seconds
        self.max_bytes = max_bytes
        self.max_redirects = max_redirects
        self.skip_domains = tuple(domain.lower() for domain in skip_domains)

    async def fetch_preview(self, raw_text: str) -> LinkPreview | None:
        """Return a preview for the first URL in ``raw_text`` or ``None``."""
        url = extract_first_url(raw_text or "")
        if url is None:
            return None
        try:
            return await asyncio.wait_for(self._fetch(url), timeout=self.timeout_seconds)
        except PreviewUnavailable as exc:
            logger.debug("No preview for %s: %s", url, exc)
        except asyncio.TimeoutError:
            logger.info("Link preview timed out for %s", url)
        except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError, OSError, ValueError) as exc:
            logger.info("Link preview failed for %s: %s", url, exc)
        except Exception:
            logger.warning("Unexpected link preview error for %s", url, exc_info=True)
        return None

    async def validate_url(self, url: str) -> bool:
        """Resolve and validate the host of ``url``."""
        parts = urlsplit(url)
        if parts.scheme.lower() not in ALLOWED_SCHEMES or not parts.hostname:
            return False
        hostname = parts.hostname
        if is_denied_by_name(hostname, self.skip_domains):
            logger.info("Blocked preview host by name: %s", hostname)
            return False
        try:
            addresses = await self._resolver(hostname)
        except (OSError, UnicodeError) as exc:
            logger.debug("DNS resolution failed for %s: %s", hostname, exc)
            return False
        allowed = is_host_allowed(hostname, addresses, self.skip_domains)
        if not allowed:
            logger.info("Blocked preview host %s (%s)", hostname, ", ".join(addresses))
        return allowed

    async def _fetch(self, url: str) -> LinkPreview:
        async with httpx.AsyncClient(
            transport=self._transport,
            follow_redirects=False,
            timeout=httpx.Timeout(self.timeout_seconds),
            headers=REQUEST_HEADERS,
        ) as client:
            response, final_url = await self._safe_get(client, url)
            try:
                document = await self._read_document(response)
            finally:
                await response.aclose()

        fields = parse_preview(document)
        title = fields["title"]
        if not title:
            raise PreviewUnavailable("page has no title")

        description = fields["description"]
        site_name = fields["site_name"]
        return LinkPreview(
            url=url,
            title=title[:TITLE_MAX_LENGTH],
            description=description[:DESCRIPTION_MAX_LENGTH] if description else None,
            image=await self._safe_image_url(fields["image"], final_url),
            site_name=site_name[:SITE_NAME_MAX_LENGTH] if site_name else None,
        )

    async def _safe_get(self, client: httpx.AsyncClient, url: str) -> tuple[httpx.Response, str]:
        """Issue GET requests, following at most ``max_redirects`` validated hops."""
        current = url
        for _hop in range(self.max_redirects + 1):
            if not await self.validate_url(current):
                raise PreviewUnavailable(f"host not allowed: {current}")
            request = client.build_request("GET", current)
            response = await client.send(request, stream=True)
            if not 300 <= response.status_code < 400:
                return response, current

            location = response.headers.get("location")
            await response.aclose()
            if not location:
                raise PreviewUnavailable("redirect without location")
            current = urljoin(current, location)
            logger.debug("Following redirect to %s", current)
        raise PreviewUnavailable("too many redirects")

    async def _read_document(self, response: httpx.Response) -> str:
        if not response.is_success:
            raise PreviewUnavailable(f"status {response.status_code}")

        content_type = response.headers.get("content-type", "").lower()
        if not any(kind in content_type for kind in ALLOWED_CONTENT_TYPES):
            raise PreviewUnavailable(f"unsupported content type {content_type!r}")

        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self.max_bytes:
            raise PreviewUnavailable("declared body too large")

        body = bytearray()
        async for chunk in response.aiter_bytes():
            body.extend(chunk)
            if len(body) > self.max_bytes:
                raise PreviewUnavailable("body too large")

        encoding = response.charset_encoding or "utf-8"
        try:
            return bytes(body).decode(encoding, errors="replace")
        except LookupError:
            return bytes(body).decode("utf-8", errors="replace")

    async def _safe_image_url(self, image: str | None, page_url: str) -> str | None:
        """Resolve a relative image and drop it if its host is not allowed."""
        if not image:
            return None
        resolved = urljoin(page_url, image)
        if urlsplit(resolved).scheme.lower() not in ALLOWED_SCHEMES:
            return None
        if not await self.validate_url(resolved):
            logger.info("Dropped preview image on blocked host: %s", resolved)
            return None
        return resolved


_fetcher: LinkPreviewFetcher | None = None


def get_link_preview_fetcher() -> LinkPreviewFetcher:
    """Return the process-wide preview fetcher."""
    global _fetcher
    if _fetcher is None:
        _fetcher = LinkPreviewFetcher(
            timeout_seconds=settings.link_preview_timeout_seconds,
            max_bytes=settings.link_preview_max_bytes,
            max_redirects=settings.link_preview_max_redirects,
            skip_domains=settings.link_preview_skip_domains,
        )
    return _fetcher
