import ipaddress
import socket
from typing import Dict, NamedTuple, Optional
from urllib.parse import urljoin, urlparse

import httpx

MAX_CONTENT_SIZE = 10 * 1024 * 1024  # 10 MB
DEFAULT_TIMEOUT_MS = 10_000
MAX_REDIRECTS = 10
ALLOWED_SCHEMES = {"http", "https"}


class FetchedPage(NamedTuple):
    url: str
    final_url: str
    status: int
    headers: Dict[str, str]
    content_type: str
    html: str


def _is_private_address(hostname: str) -> bool:
    """Return True if *hostname* resolves to a private, loopback, or link-local address."""
    try:
        infos = socket.getaddrinfo(hostname, None)
    except socket.gaierror:
        return False

    for info in infos:
        raw_ip = info[4][0]
        # Strip IPv6 zone IDs (e.g. "::1%eth0" → "::1")
        raw_ip = raw_ip.split("%")[0]
        try:
            addr = ipaddress.ip_address(raw_ip)
        except ValueError:
            continue
        if addr.is_private or addr.is_loopback or addr.is_link_local or addr.is_reserved:
            return True
    return False


def validate_url(url: str, *, block_private: bool = True) -> None:
    """Raise ValueError if *url* fails scheme or SSRF validation."""
    parsed = urlparse(url)

    if parsed.scheme not in ALLOWED_SCHEMES:
        raise ValueError(f"Scheme '{parsed.scheme}' is not allowed. Use http or https.")

    hostname = parsed.hostname
    if not hostname:
        raise ValueError("URL must have a valid hostname.")

    if block_private and _is_private_address(hostname):
        raise ValueError("Requests to private/internal addresses are not allowed.")


def build_client(
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    user_agent: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create the shared client for one audit run."""
    headers = {"accept": "text/html,application/xhtml+xml"}
    if user_agent:
        headers["user-agent"] = user_agent
    return httpx.AsyncClient(
        follow_redirects=False,
        timeout=timeout_ms / 1000,
        headers=headers,
        transport=transport,
    )


async def fetch_page(
    url: str,
    client: httpx.AsyncClient,
    *,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    block_private: bool = True,
) -> FetchedPage:
    """Fetch *url* and return the final response, whatever its status.

    Redirects are followed manually so that every redirect destination is
    validated against the SSRF rules before the next request is made.
    Non-2xx responses are returned, not raised.

    Raises:
        ValueError: if the URL fails SSRF / scheme validation.
        httpx.HTTPError: on network errors.
        RuntimeError: on redirect loops or if the body exceeds MAX_CONTENT_SIZE.
    """
    validate_url(url, block_private=block_private)

    current_url = url
    timeout = timeout_ms / 1000
    for _ in range(MAX_REDIRECTS + 1):
        async with client.stream("GET", current_url, timeout=timeout, follow_redirects=False) as response:
            if response.is_redirect:
                location = response.headers.get("location", "")
                next_url = urljoin(current_url, location)
                validate_url(next_url, block_private=block_private)
                current_url = next_url
                continue

            content_length = response.headers.get("content-length")
            if content_length and content_length.isdigit() and int(content_length) > MAX_CONTENT_SIZE:
                raise RuntimeError("Response body exceeds the maximum allowed size.")

            chunks = []
            total = 0
            async for chunk in response.aiter_bytes():
                total += len(chunk)
                if total > MAX_CONTENT_SIZE:
                    raise RuntimeError("Response body exceeds the maximum allowed size.")
                chunks.append(chunk)

            headers = {key.lower(): value for key, value in response.headers.items()}
            return FetchedPage(
                url=url,
                final_url=str(response.url),
                status=response.status_code,
                headers=headers,
                content_type=headers.get("content-type", ""),
                html=b"".join(chunks).decode(errors="replace"),
            )

    raise RuntimeError("Too many redirects.")


async def fetch_text(
    url: str,
    client: httpx.AsyncClient,
    *,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    block_private: bool = True,
) -> Optional[str]:
    """Return the body of a 2xx response for *url*, or *None* on any failure."""
    try:
        page = await fetch_page(url, client, timeout_ms=timeout_ms, block_private=block_private)
    except (ValueError, httpx.HTTPError, RuntimeError):
        return None
    if not 200 <= page.status < 300:
        return None
    return page.html
