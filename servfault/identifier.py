"""Correlation ids linking a rendered error page to its log record."""

import hashlib
import logging
from enum import StrEnum

from servfault.occurrence import ErrorOccurrence

logger = logging.getLogger(__name__)

PLACEHOLDER_ID = "unidentified"
ID_LENGTH = 16


class CorrelationMode(StrEnum):
    UNIQUE = "unique"
    STABLE = "stable"


class ErrorIdentifier:
    """Derives a short correlation id from an occurrence.

    The id is a one-way fingerprint of the error kind, its message and the
    frame it was raised from. In ``UNIQUE`` mode the occurrence timestamp is
    mixed in so every occurrence gets its own id, which is what support
    needs to find the log line for a user's report. ``STABLE`` mode drops
    the timestamp so repeated identical failures share one id.

    The same occurrence always produces the same id in either mode.
    """

    def __init__(self, mode: CorrelationMode = CorrelationMode.UNIQUE):
        self.mode = CorrelationMode(mode)

    def identify(self, occurrence: ErrorOccurrence) -> str:
        try:
            parts = [occurrence.kind, occurrence.message, occurrence.top_frame or ""]
            if self.mode is CorrelationMode.UNIQUE:
                parts.append(occurrence.timestamp.isoformat())

            fingerprint = "\x1f".join(parts).encode("utf-8", errors="surrogatepass")
        except Exception:
            logger.warning(
                "Could not fingerprint %s occurrence, using placeholder id",
                getattr(occurrence, "kind", "unknown"),
                exc_info=True,
            )
            return PLACEHOLDER_ID

        return hashlib.sha256(fingerprint).hexdigest()[:ID_LENGTH]
