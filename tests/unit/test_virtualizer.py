"""
Unit tests for asset virtualization.

Tests cover:
- URL discovery order and deduplication
- Local path numbering and extensions
- Failed downloads mapping to themselves
- Rewriting structural fields and bracket commands
"""

from datetime import UTC, datetime

from stagereplay.assets import AssetVirtualizer, apply_rewrite, collect_urls, guess_extension
from stagereplay.schema import (
    BundleData,
    EventType,
    MergedEvent,
    PortraitPlacement,
    TitleScreenDescriptor,
    TitleScreenImage,
)
from stagereplay.sources import FetchResult, ResourceFetcher


CDN = "https://cdn.example"
T0 = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)


# =============================================================================
# Fixtures
# =============================================================================


def message(text: str, portrait_url: str | None = None) -> MergedEvent:
    return MergedEvent(
        timestamp=T0,
        type=EventType.MESSAGE,
        data={"id": "m", "speaker": "GM", "text": text, "portraitUrl": portrait_url},
    )


def draft() -> BundleData:
    return BundleData(
        room_name="Room",
        initial_background=f"{CDN}/hall.png",
        initial_portraits=[PortraitPlacement(character_id="c1", url=f"{CDN}/alice.png")],
        events=[
            MergedEvent(timestamp=T0, type=EventType.BACKGROUND, data={"url": f"{CDN}/hall.png"}),
            MergedEvent(
                timestamp=T0,
                type=EventType.PORTRAITS,
                data={"portraits": [{"characterId": "c2", "url": f"{CDN}/bob.png"}]},
            ),
            message(f"[bgm:{CDN}/theme.mp3][portrait:{CDN}/x.png]Hi[bgm:STOP]", f"{CDN}/face.webp"),
            message(f"[se:{CDN}/door.wav][bg:clear]"),
        ],
        title_screen=TitleScreenDescriptor(
            images=[TitleScreenImage(id="logo", url=f"{CDN}/logo.png")],
            bgm_url=f"{CDN}/title.mp3",
        ),
    )


class RaisingFetcher(ResourceFetcher):
    def fetch(self, url: str) -> FetchResult:
        raise RuntimeError("socket closed")


class TestDiscovery:
    """Tests for collect_urls."""

    def test_document_order_without_duplicates(self) -> None:
        """URLs are listed once, in order of first appearance."""
        assert collect_urls(draft()) == [
            f"{CDN}/hall.png",
            f"{CDN}/alice.png",
            f"{CDN}/bob.png",
            f"{CDN}/face.webp",
            f"{CDN}/theme.mp3",
            f"{CDN}/door.wav",
            f"{CDN}/logo.png",
            f"{CDN}/title.mp3",
        ]

    def test_local_references_ignored(self) -> None:
        """Non-http references are not collected."""
        data = BundleData(room_name="Room", initial_background="assets/image_1.png")
        assert collect_urls(data) == []


class TestGuessExtension:
    """Tests for guess_extension."""

    def test_url_suffix(self) -> None:
        assert guess_extension("https://cdn.example/a/B.PNG?x=1", None) == "png"

    def test_content_type(self) -> None:
        """Unknown suffixes fall back to the media type."""
        assert guess_extension("https://cdn.example/asset?id=3", "image/png") == "png"

    def test_default(self) -> None:
        assert guess_extension("https://cdn.example/asset", None) == "bin"


class TestVirtualize:
    """Tests for AssetVirtualizer.virtualize."""

    def test_numbering_in_discovery_order(self, make_fetcher) -> None:
        """Successes are numbered from 0 in discovery order."""
        fetcher = make_fetcher()
        _, table = AssetVirtualizer(fetcher, max_concurrent=3).virtualize(draft())

        assert table.mapping[f"{CDN}/hall.png"] == "assets/image_0.png"
        assert table.mapping[f"{CDN}/face.webp"] == "assets/image_3.webp"
        assert table.mapping[f"{CDN}/title.mp3"] == "assets/image_7.mp3"
        assert table.files["assets/image_0.png"] == f"asset:{CDN}/hall.png".encode()
        assert sorted(fetcher.calls) == sorted(collect_urls(draft()))

    def test_mapping_is_injective(self, make_fetcher) -> None:
        """Distinct URLs get distinct paths."""
        _, table = AssetVirtualizer(make_fetcher()).virtualize(draft())
        assert len(set(table.mapping.values())) == len(table.mapping) == 8

    def test_failures_keep_remote_url(self, make_fetcher) -> None:
        """A failed download maps to itself and does not consume a number."""
        fetcher = make_fetcher(failing={f"{CDN}/alice.png"})
        data, table = AssetVirtualizer(fetcher).virtualize(draft())

        assert table.failed == {f"{CDN}/alice.png": "HTTP 404"}
        assert table.resolve(f"{CDN}/alice.png") == f"{CDN}/alice.png"
        assert table.mapping[f"{CDN}/bob.png"] == "assets/image_1.png"
        assert data.initial_portraits[0].url == f"{CDN}/alice.png"

    def test_raising_fetcher(self) -> None:
        """A fetcher that raises fails the download instead of the export."""
        data, table = AssetVirtualizer(RaisingFetcher()).virtualize(draft())
        assert table.fetched_count == 0
        assert table.failed_count == 8
        assert "socket closed" in table.failed[f"{CDN}/hall.png"]
        assert data.initial_background == f"{CDN}/hall.png"

    def test_rewritten_data(self, make_fetcher) -> None:
        """Every structural field and URL command points into the bundle."""
        data, _ = AssetVirtualizer(make_fetcher()).virtualize(draft())

        assert data.initial_background == "assets/image_0.png"
        assert data.initial_portraits[0].url == "assets/image_1.png"
        assert data.events[0].data["url"] == "assets/image_0.png"
        assert data.events[1].data["portraits"][0]["url"] == "assets/image_2.png"
        assert data.events[2].data["portraitUrl"] == "assets/image_3.webp"
        assert data.events[2].data["text"] == (
            f"[bgm:assets/image_4.mp3][portrait:{CDN}/x.png]Hi[bgm:stop]"
        )
        assert data.events[3].data["text"] == "[se:assets/image_5.wav][bg:clear]"
        assert data.title_screen.images[0].url == "assets/image_6.png"
        assert data.title_screen.bgm_url == "assets/image_7.mp3"

    def test_empty_data(self, make_fetcher) -> None:
        """A data file without media fetches nothing."""
        fetcher = make_fetcher()
        data, table = AssetVirtualizer(fetcher).virtualize(BundleData(room_name="Room"))
        assert fetcher.calls == []
        assert table.mapping == {}
        assert data.room_name == "Room"


class TestApplyRewrite:
    """Tests for apply_rewrite."""

    def test_leaves_original_untouched(self) -> None:
        """Rewriting returns a copy."""
        original = draft()
        apply_rewrite(original, lambda url: "local")
        assert original.initial_background == f"{CDN}/hall.png"
        assert original.events[0].data["url"] == f"{CDN}/hall.png"
