"""
Fetch raw bytes and JSON documents for layer sources.

Remote sources are fetched with aiohttp; anything without an http(s) scheme is
read from the local filesystem so catalog entries can point at bundled data.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional
from urllib.parse import unquote, urlparse

import aiohttp

from .config_manager import get_config_manager
from .exceptions import DecodeError, FetchError
from .validation import validate_not_empty

logger = logging.getLogger(__name__)


def is_remote_url(url: str) -> bool:
    """True for http(s) URLs."""
    return urlparse(url).scheme.lower() in ("http", "https")


def local_path(url: str) -> Path:
    """Map a file:// URL or plain path to a filesystem path."""
    parsed = urlparse(url)
    if parsed.scheme.lower() == "file":
        return Path(unquote(parsed.path))
    return Path(url)


class HttpFetcher:
    """Fetch layer sources over HTTP or from disk."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_size_mb: Optional[float] = None,
    ):
        config = get_config_manager()
        if timeout is None:
            timeout = config.get_float("fetch/timeout_seconds", 30.0)
        if max_size_mb is None:
            max_size_mb = config.get_float("fetch/max_size_mb", 200.0)
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    @validate_not_empty("url")
    async def fetch_bytes(self, url: str) -> bytes:
        """Fetch a resource as bytes.

        Raises:
            FetchError: On network errors, timeouts, non-200 responses,
                oversize payloads or missing local files
        """
        if not is_remote_url(url):
            return await self._read_local(url)

        logger.debug(f"Fetching {url}")
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        raise FetchError(
                            f"Failed to fetch {url}: HTTP {response.status}",
                            url=url,
                            status=response.status,
                        )

                    # Check content length
                    content_length = response.headers.get('Content-Length')
                    if content_length and int(content_length) > self.max_size_bytes:
                        raise FetchError(
                            f"{url} exceeds max size ({content_length} bytes)", url=url
                        )

                    content = await response.read()
        except asyncio.TimeoutError as e:
            raise FetchError(f"Timeout fetching {url}", url=url) from e
        except aiohttp.ClientError as e:
            raise FetchError(f"Error fetching {url}: {e}", url=url) from e

        if len(content) > self.max_size_bytes:
            raise FetchError(f"{url} exceeds max size ({len(content)} bytes)", url=url)
        return content

    async def fetch_json(self, url: str) -> Any:
        """Fetch and parse a JSON document.

        Raises:
            FetchError: If the resource cannot be retrieved
            DecodeError: If the payload is not valid JSON
        """
        content = await self.fetch_bytes(url)
        try:
            return json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Invalid JSON from {url}: {e}") from e

    async def check_url(self, url: str) -> bool:
        """Check that a URL is reachable without downloading it."""
        if not url:
            return False
        if not is_remote_url(url):
            return local_path(url).is_file()
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.head(url, allow_redirects=True) as response:
                    return 200 <= response.status < 300
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            logger.warning(f"URL validation failed for {url}: {e}")
            return False

    async def _read_local(self, url: str) -> bytes:
        path = local_path(url)
        if not path.is_file():
            raise FetchError(f"File not found: {path}", url=url)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise FetchError(f"Cannot read {path}: {e}", url=url) from e


_default_fetcher: Optional[HttpFetcher] = None


def get_default_fetcher() -> HttpFetcher:
    """Shared fetcher built from the current configuration."""
    global _default_fetcher
    if _default_fetcher is None:
        _default_fetcher = HttpFetcher()
    return _default_fetcher
