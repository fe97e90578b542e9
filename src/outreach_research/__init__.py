"""outreach-research: YouTube industry research for cold outreach."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("outreach-research")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = ["__version__"]
