"""
Media HTTP Client

Async httpx client used to fetch customer photos, catalog images and
training documents. Timeouts and connection limits are configured once here;
failures surface as MediaDownloadFailed.
"""
import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, urlparse

import httpx

from blindbot.core.config import Settings, get_settings
from blindbot.core.errors import MediaDownloadFailed

logger = logging.getLogger(__name__)


@dataclass
class DownloadedMedia:
    """Raw bytes of a fetched media file"""
    url: str
    content: bytes
    mime_type: str

    @property
    def filename(self) -> str:
        path = urlparse(self.url).path
        name = path.rsplit("/", 1)[-1] or "upload"
        if "." not in name:
            name += mimetypes.guess_extension(self.mime_type) or ".jpg"
        return name


class HTTPClientConfig:
    """Configuration for the media HTTP client."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.timeout = settings.media_download_timeout
        self.max_retries = settings.media_download_retries
        self.max_bytes = settings.media_max_bytes
        self.max_connections = 50
        self.max_keepalive_connections = 10
        self.user_agent = "BlindBot-SalesAgent/1.0"

        self.retry_on_status = [408, 429, 500, 502, 503, 504]
        self.retry_backoff_factor = 0.3

    def to_limits(self):
        """Convert to httpx.Limits object."""
        return httpx.Limits(
            max_connections=self.max_connections,
            max_keepalive_connections=self.max_keepalive_connections
        )

    def to_timeout(self):
        """Convert to httpx.Timeout object."""
        return httpx.Timeout(self.timeout)


def guess_mime_type(url: str, header_value: Optional[str] = None) -> str:
    """Best-effort MIME type from the response header or the URL extension."""
    if header_value:
        mime = header_value.split(";")[0].strip().lower()
        if mime and mime != "application/octet-stream":
            return mime
    lower_path = urlparse(url).path.lower()
    if lower_path.endswith(".png"):
        return "image/png"
    if lower_path.endswith(".webp"):
        return "image/webp"
    if lower_path.endswith(".pdf"):
        return "application/pdf"
    return "image/jpeg"


class MediaHTTPClient:
    """Async HTTP client with standard configuration for media downloads."""

    def __init__(self, config: Optional[HTTPClientConfig] = None):
        self.config = config or HTTPClientConfig()
        self._client: Optional[httpx.AsyncClient] = None

    async def _ensure_client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(
                limits=self.config.to_limits(),
                timeout=self.config.to_timeout(),
                headers={'User-Agent': self.config.user_agent},
                follow_redirects=True
            )

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def download(self, url: str) -> DownloadedMedia:
        """
        Fetch a media file.

        Args:
            url: Public URL of the file (spaces in file names are escaped)

        Returns:
            DownloadedMedia with content and MIME type

        Raises:
            MediaDownloadFailed: on transport errors, non-2xx status or oversized files
        """
        await self._ensure_client()
        safe_url = quote(url, safe=":/?&=%#@+,;~")

        retry_count = 0
        while True:
            try:
                response = await self._client.get(safe_url)
            except httpx.HTTPError as e:
                if retry_count < self.config.max_retries:
                    retry_count += 1
                    await asyncio.sleep(self.config.retry_backoff_factor * (2 ** (retry_count - 1)))
                    continue
                logger.warning(f"Media download failed for {url}: {e}")
                raise MediaDownloadFailed(url, str(e)) from e

            if response.status_code in self.config.retry_on_status and retry_count < self.config.max_retries:
                retry_count += 1
                backoff_time = self.config.retry_backoff_factor * (2 ** (retry_count - 1))
                logger.warning(
                    f"GET {url} returned {response.status_code}. Retrying in {backoff_time:.1f}s "
                    f"(attempt {retry_count}/{self.config.max_retries})"
                )
                await asyncio.sleep(backoff_time)
                continue
            break

        if response.status_code >= 400:
            logger.warning(f"Media download for {url} returned HTTP {response.status_code}")
            raise MediaDownloadFailed(url, f"HTTP {response.status_code}")

        content = response.content
        if len(content) > self.config.max_bytes:
            raise MediaDownloadFailed(url, f"file too large ({len(content)} bytes)")

        return DownloadedMedia(
            url=url,
            content=content,
            mime_type=guess_mime_type(url, response.headers.get("content-type"))
        )
