"""
Detection sessions and canonicalization.

A DetectionSession scopes one detection lifecycle to one page address.
It caches the extraction for that address only; when the page navigates
the caller gets a new session back from refresh() instead of clearing
the old one in place.

Contents:
    - DetectionSession: Per-URL extraction cache
    - refresh(): Keep or replace a session for the current page
    - normalize_extraction(): ExtractionResult -> canonical turns
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from .models import ExtractionResult, Segment
from .page import PageState
from .parsing import parse_conversation
from .platforms import detect_platform, get_extractor
from .roles import resolve_roles

logger = logging.getLogger(__name__)


class DetectionSession:
    """Extraction state for a single page address."""

    def __init__(self, url: str, logger: Optional[logging.Logger] = None):
        self.url = url
        self.platform = detect_platform(url)
        self.logger = logger or logging.getLogger(__name__)
        self._result: Optional[ExtractionResult] = None
        self._detected = False

    @property
    def supported(self) -> bool:
        return self.platform is not None

    def matches(self, page: PageState) -> bool:
        return page.url == self.url

    def detect(self, page: PageState, now: Optional[datetime] = None) -> Optional[ExtractionResult]:
        """
        Extract the conversation on the page, once per session.

        Returns:
            The cached ExtractionResult, or None for unsupported pages and
            pages without a conversation

        Raises:
            ValueError: If the page belongs to a different address
        """
        if not self.matches(page):
            raise ValueError(
                f"Page {page.url!r} does not belong to session for {self.url!r}; use refresh()"
            )
        if self._detected:
            return self._result
        if not self.supported:
            self.logger.info(f"No extractor for {self.url}")
            self._detected = True
            return None

        extractor = get_extractor(self.platform, logger=self.logger)
        self._result = extractor.extract(page, now=now)
        self._detected = True
        return self._result


def refresh(
    session: Optional[DetectionSession],
    page: PageState,
    logger: Optional[logging.Logger] = None
) -> DetectionSession:
    """Return session if it still matches the page, else a fresh one."""
    if session is not None and session.matches(page):
        return session
    if session is not None:
        (logger or session.logger).debug(f"Page changed: {session.url} -> {page.url}")
    return DetectionSession(page.url, logger=logger or (session.logger if session else None))


def normalize_extraction(
    result: ExtractionResult,
    first_speaker: Optional[str] = None,
    logger: Optional[logging.Logger] = None
) -> ExtractionResult:
    """
    Produce the canonical turn sequence for an extraction.

    Structured extractions keep their per-turn roles as explicit labels
    and go straight to the role resolver. Unstructured ones (roles only
    guessed from position) are flattened back to text and parsed.

    Returns:
        A new ExtractionResult with canonical turns
    """
    log = logger or logging.getLogger(__name__)

    if result.structured:
        segments = [
            Segment(content=t.content, role=t.role, source_index=t.source_index)
            for t in result.turns
        ]
        turns, _ = resolve_roles(segments, first_speaker=first_speaker, logger=log)
    else:
        text = '\n\n'.join(t.content for t in result.turns)
        turns = parse_conversation(
            text, platform_hint=result.platform, first_speaker=first_speaker, logger=log
        ).turns

    log.debug(f"Canonical form: {len(result.turns)} -> {len(turns)} turn(s)")
    return replace(result, turns=turns, structured=True)
