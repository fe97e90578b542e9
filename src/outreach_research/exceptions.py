"""Centralized exception hierarchy for the outreach-research package.

All domain-specific exceptions inherit from ``OutreachResearchError`` so
callers can catch the entire family with a single ``except`` clause.
"""

from __future__ import annotations


class OutreachResearchError(Exception):
    """Base exception for all outreach-research errors."""


# ---------------------------------------------------------------------------
# Setup errors
# ---------------------------------------------------------------------------


class ConfigurationError(OutreachResearchError):
    """Raised when a required credential or setting is missing or invalid.

    Fatal to a research run; surfaced before any work begins.
    """


# ---------------------------------------------------------------------------
# External service errors
# ---------------------------------------------------------------------------


class TransientExternalError(OutreachResearchError):
    """Raised on network, quota, or timeout failures of an external call."""


class QuotaExceededError(TransientExternalError):
    """Raised when the YouTube Data API daily quota is exhausted."""


class MalformedResponseError(OutreachResearchError):
    """Raised when language-model output cannot be decoded into the schema."""


# ---------------------------------------------------------------------------
# Storage errors
# ---------------------------------------------------------------------------


class StoreError(OutreachResearchError):
    """Raised when the document store cannot be read or written."""
