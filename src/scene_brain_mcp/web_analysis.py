"""Website analysis for brand-matching context.

``WebAnalyzer`` is the collaborator the context builder calls when a prompt
references a website. ``HttpWebAnalyzer`` is the default: it fetches the
page over HTTPS with SSRF protection and extracts title, description and
headings. It does not render screenshots; the page's ``og:image`` (when
present) stands in for the desktop preview.

SSRF rules: HTTPS only, no embedded credentials, resolved and connected IPs
must not be private, loopback, link-local, multicast or reserved, and every
redirect hop is re-validated.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from datetime import datetime, timezone
from ipaddress import ip_address
from typing import Protocol
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from .models.context import PageMetadata, Screenshots, WebContext

logger = logging.getLogger(__name__)

_BLOCKED_RANGES_MSG = (
    "private, loopback, link-local, multicast, and reserved addresses are not allowed"
)
_MAX_REDIRECTS = 5
_MAX_PAGE_BYTES = 2 * 1024 * 1024
_MAX_HEADINGS = 10


class UrlPolicyError(Exception):
    """Raised when a URL violates the fetch policy."""


class WebAnalyzer(Protocol):
    async def analyze(self, url: str) -> WebContext | None: ...


def _is_blocked_ip(ip_str: str) -> bool:
    ip = ip_address(ip_str)
    return (
        ip.is_loopback or ip.is_private or ip.is_link_local
        or ip.is_multicast or ip.is_reserved
    )


async def _resolve_dns(hostname: str) -> list:
    loop = asyncio.get_running_loop()
    return await loop.getaddrinfo(
        hostname, None, family=socket.AF_UNSPEC, type=socket.SOCK_STREAM,
    )


async def validate_url(url: str) -> None:
    """Check *url* against the fetch policy.

    Raises:
        UrlPolicyError: If any check fails.
    """
    parsed = urlparse(url)

    if parsed.scheme != "https":
        raise UrlPolicyError(f"Only HTTPS URLs are allowed, got '{parsed.scheme}://'")

    if parsed.username or parsed.password:
        raise UrlPolicyError("URLs with embedded credentials are not allowed")

    hostname = parsed.hostname
    if not hostname:
        raise UrlPolicyError("URL has no hostname")

    try:
        addr_infos = await _resolve_dns(hostname)
    except socket.gaierror as exc:
        raise UrlPolicyError(f"DNS resolution failed for '{hostname}': {exc}") from exc

    for _family, _type, _proto, _canonname, sockaddr in addr_infos:
        if _is_blocked_ip(sockaddr[0]):
            raise UrlPolicyError(
                f"URL resolves to blocked IP range ({sockaddr[0]}): {_BLOCKED_RANGES_MSG}"
            )


def _verify_peer_ip(response: httpx.Response) -> None:
    """Reject the response if the connected peer is in a blocked range (DNS rebinding)."""
    stream = response.extensions.get("network_stream")
    if stream is None:
        return
    peername = stream.get_extra_info("peername")
    if peername is None:
        return
    if _is_blocked_ip(peername[0]):
        raise UrlPolicyError(
            f"DNS rebinding detected: peer IP {peername[0]} is in a blocked range"
        )


def _upgrade_scheme(url: str) -> str:
    if url.lower().startswith("http://"):
        return "https://" + url[len("http://"):]
    return url


def extract_page_metadata(html: str) -> tuple[PageMetadata, str]:
    """Pull title, description, headings and the ``og:image`` URL out of *html*."""
    soup = BeautifulSoup(html, "html.parser")

    title = soup.title.get_text(strip=True) if soup.title else ""
    if not title:
        og_title = soup.find("meta", attrs={"property": "og:title"})
        title = (og_title.get("content") or "").strip() if og_title else ""

    description = ""
    for attrs in ({"name": "description"}, {"property": "og:description"}):
        tag = soup.find("meta", attrs=attrs)
        if tag and tag.get("content"):
            description = tag["content"].strip()
            break

    headings: list[str] = []
    for tag in soup.find_all(["h1", "h2", "h3"]):
        text = tag.get_text(" ", strip=True)
        if text and text not in headings:
            headings.append(text)
        if len(headings) >= _MAX_HEADINGS:
            break

    og_image = soup.find("meta", attrs={"property": "og:image"})
    preview = (og_image.get("content") or "").strip() if og_image else ""

    return PageMetadata(title=title, description=description, headings=headings), preview


class HttpWebAnalyzer:
    """Fetch a page with httpx and turn its metadata into a ``WebContext``."""

    def __init__(self, timeout: float = 15.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._timeout = timeout
        self._transport = transport

    async def _fetch(self, url: str) -> tuple[str, str]:
        current_url = url
        redirects_followed = 0
        async with httpx.AsyncClient(
            follow_redirects=False, timeout=self._timeout, transport=self._transport,
        ) as client:
            while True:
                await validate_url(current_url)
                async with client.stream("GET", current_url) as resp:
                    _verify_peer_ip(resp)

                    if resp.status_code in {301, 302, 303, 307, 308}:
                        location = resp.headers.get("location")
                        if not location:
                            raise UrlPolicyError(
                                f"Redirect response missing Location header (status {resp.status_code})"
                            )
                        if redirects_followed >= _MAX_REDIRECTS:
                            raise UrlPolicyError(f"Too many redirects (>{_MAX_REDIRECTS})")
                        current_url = str(resp.url.join(location))
                        redirects_followed += 1
                        continue

                    resp.raise_for_status()
                    body = bytearray()
                    async for chunk in resp.aiter_bytes():
                        body.extend(chunk)
                        if len(body) > _MAX_PAGE_BYTES:
                            raise UrlPolicyError(
                                f"Page exceeds size limit ({_MAX_PAGE_BYTES} bytes)"
                            )
                    encoding = resp.encoding or "utf-8"
                    return current_url, bytes(body).decode(encoding, errors="replace")

    async def analyze(self, url: str) -> WebContext | None:
        """Analyse *url*; returns ``None`` when it is blocked or unreachable."""
        target = _upgrade_scheme(url)
        try:
            final_url, html = await self._fetch(target)
        except (UrlPolicyError, httpx.HTTPError) as exc:
            logger.warning("Web analysis skipped for %s: %s", target, exc)
            return None

        metadata, preview = extract_page_metadata(html)
        logger.info("Analysed %s (title=%r, %d headings)", final_url, metadata.title, len(metadata.headings))
        return WebContext(
            original_url=url,
            screenshots=Screenshots(desktop=preview),
            page_metadata=metadata,
            analyzed_at=datetime.now(timezone.utc),
        )
