"""
Asset virtualization.

Makes a bundle network-independent: every remote media reference in the
draft data file is downloaded once and rewritten to a path inside the bundle.

Pipeline:
    1. Discovery: walk the data file and collect distinct http(s) URLs in
       order of first appearance
    2. Fetch: download every URL concurrently on a thread pool, then wait for
       all of them (completion barrier)
    3. Table: a single writer assigns ``assets/image_<n>.<ext>`` (from 0) to the
       successes in discovery order; failures map to themselves
    4. Rewrite: apply the table to structural URL fields and to ``[bg:]``,
       ``[bgm:]`` and ``[se:]`` tokens in message text

A failed fetch is logged and never aborts the export.
"""

import logging
import mimetypes
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import urlparse

from stagereplay.commands import asset_urls_in_text, rewrite_command_urls
from stagereplay.errors import AssetFetchError
from stagereplay.schema import (
    BundleData,
    EventType,
    MergedEvent,
    PortraitPlacement,
    TitleScreenDescriptor,
)
from stagereplay.sources.base import FetchResult, ResourceFetcher
from stagereplay.sources.http import is_remote_url

logger = logging.getLogger(__name__)

ASSET_DIR = "assets"
DEFAULT_EXTENSION = "bin"
KNOWN_EXTENSIONS = frozenset({
    "png", "jpg", "jpeg", "gif", "webp", "avif", "svg", "bmp",
    "mp3", "ogg", "wav", "m4a", "aac", "flac", "opus", "webm",
})


@dataclass
class RewriteTable:
    """
    URL -> bundle path mapping built after every fetch completed.

    Attributes:
        mapping: Fetched URL -> local path
        failed: URLs whose fetch failed (they map to themselves)
        files: Local path -> downloaded bytes
    """

    mapping: dict[str, str] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    files: dict[str, bytes] = field(default_factory=dict)

    def resolve(self, url: str) -> str:
        return self.mapping.get(url, url)

    @property
    def fetched_count(self) -> int:
        return len(self.mapping)

    @property
    def failed_count(self) -> int:
        return len(self.failed)


# =============================================================================
# Discovery
# =============================================================================


def _portrait_urls(portraits: Iterable[PortraitPlacement | dict[str, Any]]) -> Iterator[str]:
    for portrait in portraits:
        url = portrait.url if isinstance(portrait, PortraitPlacement) else portrait.get("url")
        if isinstance(url, str) and url:
            yield url


def _event_urls(event: MergedEvent) -> Iterator[str]:
    data = event.data or {}
    if event.type == EventType.BACKGROUND:
        url = data.get("url")
        if isinstance(url, str) and url:
            yield url
    elif event.type == EventType.PORTRAITS:
        portraits = data.get("portraits")
        yield from _portrait_urls(p for p in portraits or [] if isinstance(p, dict))
    elif event.type == EventType.MESSAGE:
        portrait_url = data.get("portraitUrl")
        if isinstance(portrait_url, str) and portrait_url:
            yield portrait_url
        text = data.get("text")
        if isinstance(text, str):
            yield from asset_urls_in_text(text)


def iter_references(data: BundleData) -> Iterator[str]:
    """Every media reference of a data file, in document order, duplicates included."""
    if data.initial_background:
        yield data.initial_background
    yield from _portrait_urls(data.initial_portraits)
    for event in data.events:
        yield from _event_urls(event)
    if data.title_screen is not None:
        for image in data.title_screen.images:
            yield image.url
        if data.title_screen.bgm_url:
            yield data.title_screen.bgm_url


def collect_urls(data: BundleData) -> list[str]:
    """Distinct remote URLs of a data file, in order of first appearance."""
    seen: dict[str, None] = {}
    for url in iter_references(data):
        if is_remote_url(url):
            seen.setdefault(url, None)
    return list(seen)


# =============================================================================
# Fetch
# =============================================================================


def guess_extension(url: str, content_type: str | None) -> str:
    """File extension for a downloaded asset: URL suffix, then media type."""
    suffix = PurePosixPath(urlparse(url).path).suffix.lower().lstrip(".")
    if suffix in KNOWN_EXTENSIONS:
        return suffix
    if content_type:
        guessed = mimetypes.guess_extension(content_type)
        if guessed:
            return guessed.lstrip(".")
    return DEFAULT_EXTENSION


class AssetVirtualizer:
    """
    Download assets and build the rewrite table.

    Example:
        virtualizer = AssetVirtualizer(fetcher, max_concurrent=4)
        data, table = virtualizer.virtualize(draft)
    """

    def __init__(self, fetcher: ResourceFetcher, max_concurrent: int = 4) -> None:
        self.fetcher = fetcher
        self.max_concurrent = max_concurrent

    def _fetch_one(self, url: str) -> FetchResult:
        try:
            return self.fetcher.fetch(url)
        except AssetFetchError as e:
            return FetchResult.fail(e.message, url=url)
        except Exception as e:
            return FetchResult.fail(f"Unexpected error: {e}", url=url, error_type=type(e).__name__)

    def fetch_all(self, urls: list[str]) -> dict[str, FetchResult]:
        """Fetch every URL concurrently and wait for all of them."""
        if not urls:
            return {}
        with ThreadPoolExecutor(max_workers=self.max_concurrent) as pool:
            futures = {url: pool.submit(self._fetch_one, url) for url in urls}
            wait(futures.values())
        return {url: future.result() for url, future in futures.items()}

    def build_table(self, urls: list[str]) -> RewriteTable:
        """
        Fetch ``urls`` and number the successes in discovery order.

        Args:
            urls: Distinct URLs in discovery order

        Returns:
            The completed RewriteTable
        """
        results = self.fetch_all(urls)
        table = RewriteTable()
        for url in urls:
            result = results[url]
            if not result.success:
                table.failed[url] = result.error or "unknown error"
                logger.warning("Asset fetch failed, keeping remote URL %s: %s", url, result.error)
                continue
            n = len(table.mapping)
            local_path = f"{ASSET_DIR}/image_{n}.{guess_extension(url, result.content_type)}"
            table.mapping[url] = local_path
            table.files[local_path] = result.data
        logger.info("Fetched %d of %d assets", table.fetched_count, len(urls))
        return table

    def virtualize(self, data: BundleData) -> tuple[BundleData, RewriteTable]:
        """Fetch the data file's assets and return the rewritten data with the table."""
        table = self.build_table(collect_urls(data))
        return apply_rewrite(data, table.resolve), table


# =============================================================================
# Rewrite
# =============================================================================


def _rewrite_portrait(portrait: dict[str, Any], rewrite: Callable[[str], str]) -> dict[str, Any]:
    url = portrait.get("url")
    if isinstance(url, str) and url:
        return {**portrait, "url": rewrite(url)}
    return portrait


def rewrite_event(event: MergedEvent, rewrite: Callable[[str], str]) -> MergedEvent:
    """Apply a URL rewrite to one merged event."""
    data = dict(event.data or {})
    if event.type == EventType.BACKGROUND:
        url = data.get("url")
        if isinstance(url, str) and url:
            data["url"] = rewrite(url)
    elif event.type == EventType.PORTRAITS:
        portraits = data.get("portraits")
        if isinstance(portraits, list):
            data["portraits"] = [
                _rewrite_portrait(p, rewrite) if isinstance(p, dict) else p for p in portraits
            ]
    elif event.type == EventType.MESSAGE:
        portrait_url = data.get("portraitUrl")
        if isinstance(portrait_url, str) and portrait_url:
            data["portraitUrl"] = rewrite(portrait_url)
        if isinstance(data.get("text"), str):
            data["text"] = rewrite_command_urls(data["text"], rewrite)
    else:
        return event
    return event.model_copy(update={"data": data})


def _rewrite_title(
    title: TitleScreenDescriptor | None,
    rewrite: Callable[[str], str],
) -> TitleScreenDescriptor | None:
    if title is None:
        return None
    return title.model_copy(
        update={
            "images": [i.model_copy(update={"url": rewrite(i.url)}) for i in title.images],
            "bgm_url": rewrite(title.bgm_url) if title.bgm_url else title.bgm_url,
        }
    )


def apply_rewrite(data: BundleData, rewrite: Callable[[str], str]) -> BundleData:
    """Apply a URL rewrite to every structural field and bracket token of a data file."""
    return data.model_copy(
        update={
            "events": [rewrite_event(e, rewrite) for e in data.events],
            "initial_background": (
                rewrite(data.initial_background) if data.initial_background else None
            ),
            "initial_portraits": [
                p.model_copy(update={"url": rewrite(p.url)}) if p.url else p
                for p in data.initial_portraits
            ],
            "title_screen": _rewrite_title(data.title_screen, rewrite),
        }
    )
