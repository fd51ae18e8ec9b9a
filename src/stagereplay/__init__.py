"""
Stagereplay - Offline replay bundles for tabletop session logs.

Stagereplay reconciles a session's message log with its stage transition log
and packages the result as a self-contained replay bundle.
It provides:
- Timestamp merge with per-viewer confidentiality filtering
- Asset virtualization (every remote URL fetched once and rewritten)
- A portable HTML/JS bundle with the timeline as JSON
- A resumable player state machine with secret branching and save slots

Example usage:
    $ stagereplay export ./session --out replay.zip
    $ stagereplay inspect replay.zip
    $ stagereplay play replay.zip
"""

__version__ = "0.1.0"
__author__ = "Stagereplay Contributors"

__all__ = [
    "__version__",
    "__author__",
]
