"""Asset discovery, download and URL rewriting."""

from stagereplay.assets.virtualizer import (
    AssetVirtualizer,
    RewriteTable,
    apply_rewrite,
    collect_urls,
    guess_extension,
    iter_references,
)

__all__ = [
    "AssetVirtualizer",
    "RewriteTable",
    "apply_rewrite",
    "collect_urls",
    "guess_extension",
    "iter_references",
]
