"""
Archive decision flow.

Routes a captured conversation from "user clicked archive" to an
archived record, running the PII scan and redaction according to the
user's settings.

States:
    not_scanned       -> nothing has happened yet (or the user deferred)
    clean_scanned     -> scan skipped, failed open, or found nothing
    findings_pending  -> findings are waiting on a user decision
    redacted          -> findings were replaced with placeholders
    archived          -> payload built and handed to the sink

Transitions:
    request_archive():  not_scanned -> clean_scanned -> archived
                        not_scanned -> redacted -> archived    (always_redact)
                        not_scanned -> findings_pending
    decide():           findings_pending -> redacted -> archived
                        findings_pending -> archived
                        findings_pending -> not_scanned         (defer)

A scanner that raises is treated as finding nothing. The scan is a
best-effort review, not a gate on archiving the user's own content.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from .config import ArchiveSettings
from .models import ExtractionResult, StoredRecord, TriageSummary, Turn
from .pii import scan_conversation
from .redactor import redact_turns

logger = logging.getLogger(__name__)

NOT_SCANNED = "not_scanned"
CLEAN_SCANNED = "clean_scanned"
FINDINGS_PENDING = "findings_pending"
REDACTED = "redacted"
ARCHIVED = "archived"

# User decisions while findings are pending
REDACT_THEN_ARCHIVE = "redact_then_archive"
ARCHIVE_AS_IS = "archive_as_is"
DEFER = "defer"
DECISIONS = (REDACT_THEN_ARCHIVE, ARCHIVE_AS_IS, DEFER)

PAYLOAD_SOURCE = "extension"

Scanner = Callable[[List[Turn]], TriageSummary]
Sink = Callable[[Dict[str, Any]], StoredRecord]


class InvalidTransitionError(Exception):
    """Raised when an action is not allowed in the current state."""


def build_archive_payload(
    extraction: ExtractionResult,
    settings: ArchiveSettings,
    pii_scanned: bool,
    pii_redacted: bool,
    turns: Optional[List[Turn]] = None,
    source: str = PAYLOAD_SOURCE
) -> Dict[str, Any]:
    """
    Build the record handed to the persistence collaborator.

    Args:
        extraction: The captured conversation
        settings: Supplies visibility and author display defaults
        pii_scanned: Whether a scan actually ran
        pii_redacted: Whether findings were redacted
        turns: Turns to send (defaults to extraction.turns)
        source: Client identifier

    Returns:
        JSON-serializable payload dict
    """
    turns = extraction.turns if turns is None else turns
    attribution = extraction.attribution
    return {
        'conversation': {
            'title': extraction.title,
            'platform': extraction.platform,
            'timestamp': extraction.timestamp,
            'messages': [{'role': t.role, 'content': t.content} for t in turns],
            'is_public': settings.is_public,
            'show_author': settings.default_show_author,
            'model_id': attribution.model_id,
            'model_display_name': attribution.model_display_name,
            'platform_conversation_id': extraction.external_conversation_id,
            'attribution_confidence': attribution.confidence,
            'attribution_source': attribution.source,
            'pii_redacted': pii_redacted,
            'pii_scanned': pii_scanned,
        },
        'source': source,
    }


class ArchiveController:
    """State machine for one archive attempt."""

    def __init__(
        self,
        settings: Optional[ArchiveSettings] = None,
        scanner: Optional[Scanner] = None,
        sink: Optional[Sink] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.settings = settings or ArchiveSettings()
        self.policy = self.settings.policy
        self.scanner = scanner or scan_conversation
        self.sink = sink
        self.logger = logger or logging.getLogger(__name__)

        self.state = NOT_SCANNED
        self.history: List[str] = [NOT_SCANNED]
        self.extraction: Optional[ExtractionResult] = None
        self.turns: List[Turn] = []
        self.summary: Optional[TriageSummary] = None
        self.pii_scanned = False
        self.pii_redacted = False
        self.payload: Optional[Dict[str, Any]] = None
        self.record: Optional[StoredRecord] = None

    def _transition(self, state: str):
        self.logger.debug(f"Archive state: {self.state} -> {state}")
        self.state = state
        self.history.append(state)

    def _require(self, *states: str):
        if self.state not in states:
            raise InvalidTransitionError(
                f"Not allowed in state {self.state!r} (expected one of {states})"
            )

    def _scan(self, turns: List[Turn]) -> TriageSummary:
        """Run the scanner, failing open on any error."""
        try:
            summary = self.scanner(turns)
        except Exception as e:
            self.logger.warning(f"PII scan unavailable, archiving without review: {e}")
            self.pii_scanned = False
            return TriageSummary()
        self.pii_scanned = True
        return summary

    def request_archive(self, extraction: ExtractionResult) -> str:
        """
        Start an archive attempt.

        Returns:
            The resulting state: archived or findings_pending
        """
        self._require(NOT_SCANNED)
        self.extraction = extraction
        self.turns = list(extraction.turns)
        self.pii_redacted = False

        if not self.policy.run_scan:
            self.logger.info("PII scan disabled, archiving directly")
            self.pii_scanned = False
            self.summary = None
            self._transition(CLEAN_SCANNED)
            return self._archive()

        self.summary = self._scan(self.turns)
        if not self.summary.has_findings:
            self._transition(CLEAN_SCANNED)
            return self._archive()

        if self.policy.always_redact:
            self._redact()
            return self._archive()

        self._transition(FINDINGS_PENDING)
        self.logger.info(
            f"{self.summary.total_findings} finding(s) awaiting review "
            f"({self.summary.critical_count} critical)"
        )
        return self.state

    def decide(self, decision: str) -> str:
        """
        Resolve pending findings with a user decision.

        Raises:
            ValueError: If the decision is not one of DECISIONS
            InvalidTransitionError: If no findings are pending
        """
        if decision not in DECISIONS:
            raise ValueError(f"Unknown decision {decision!r}, expected one of {DECISIONS}")
        self._require(FINDINGS_PENDING)

        if decision == REDACT_THEN_ARCHIVE:
            self._redact()
            return self._archive()
        if decision == ARCHIVE_AS_IS:
            return self._archive()

        self.logger.info("Archive deferred for manual review")
        self.summary = None
        self.turns = list(self.extraction.turns)
        self._transition(NOT_SCANNED)
        return self.state

    def _redact(self):
        self.turns = redact_turns(self.turns, self.summary, logger=self.logger)
        self.pii_redacted = True
        self._transition(REDACTED)

    def _archive(self) -> str:
        self.payload = build_archive_payload(
            self.extraction,
            self.settings,
            pii_scanned=self.pii_scanned,
            pii_redacted=self.pii_redacted,
            turns=self.turns,
        )
        if self.sink is not None:
            self.record = self.sink(self.payload)
            self.logger.info(f"Archived as {self.record.id}: {self.record.url}")
        self._transition(ARCHIVED)
        return self.state
