"""
HTTP asset fetcher.

Downloads bundle media over HTTP(S) with httpx.

Limits:
    - Timeout enforcement: abort downloads that take too long
    - Response size limits: stop reading once the body exceeds the limit
    - Redirects are followed (storage buckets commonly redirect to a CDN)

Expected failures (bad status, timeout, oversize, connection errors) are
returned as FetchResult.fail; the virtualizer maps such URLs to themselves.
"""

from urllib.parse import urlparse

import httpx

from stagereplay.schema import FetchConfig
from stagereplay.sources.base import FetchResult, ResourceFetcher

CHUNK_SIZE = 8192


def is_remote_url(url: str) -> bool:
    """Whether a reference points at an http(s) resource."""
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class HttpResourceFetcher(ResourceFetcher):
    """
    Fetch assets with a shared httpx.Client.

    httpx.Client is safe to share between the virtualizer's worker threads.

    Example:
        with HttpResourceFetcher(FetchConfig(timeout_seconds=10)) as fetcher:
            result = fetcher.fetch("https://cdn.example/bg.png")
            if result.success:
                data = result.data
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Args:
            config: Download limits
            transport: Optional transport (tests use httpx.MockTransport)
        """
        self.config = config or FetchConfig()
        self._client = httpx.Client(
            timeout=self.config.timeout_seconds,
            follow_redirects=True,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def fetch(self, url: str) -> FetchResult:
        if not is_remote_url(url):
            return FetchResult.fail(f"Not an http(s) URL: {url}", url=url)

        max_bytes = self.config.max_response_bytes
        try:
            with self._client.stream("GET", url) as response:
                if response.status_code >= 400:
                    return FetchResult.fail(
                        f"HTTP {response.status_code}",
                        url=url,
                        status_code=response.status_code,
                    )

                content_length = response.headers.get("content-length")
                if content_length and content_length.isdigit() and int(content_length) > max_bytes:
                    return FetchResult.fail(
                        f"Response too large: {content_length} bytes (max: {max_bytes})",
                        url=url,
                        content_length=int(content_length),
                        max_bytes=max_bytes,
                    )

                body_chunks = []
                total_size = 0
                for chunk in response.iter_bytes(chunk_size=CHUNK_SIZE):
                    total_size += len(chunk)
                    if total_size > max_bytes:
                        return FetchResult.fail(
                            f"Response exceeded size limit: {total_size} bytes (max: {max_bytes})",
                            url=url,
                            bytes_read=total_size,
                            max_bytes=max_bytes,
                        )
                    body_chunks.append(chunk)

                content_type = response.headers.get("content-type")
                return FetchResult.ok(
                    b"".join(body_chunks),
                    content_type=content_type.split(";")[0].strip() if content_type else None,
                    url=url,
                    final_url=str(response.url),
                    status_code=response.status_code,
                    body_size=total_size,
                )

        except httpx.TimeoutException:
            return FetchResult.fail(
                f"Request timed out after {self.config.timeout_seconds} seconds",
                url=url,
                timeout=self.config.timeout_seconds,
            )
        except httpx.TooManyRedirects:
            return FetchResult.fail("Too many redirects", url=url)
        except httpx.RequestError as e:
            return FetchResult.fail(
                f"Request failed: {e}",
                url=url,
                error_type=type(e).__name__,
            )
