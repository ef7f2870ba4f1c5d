"""
Data classes for conversation capture and privacy triage.

This module defines the structured data types passed between the
capture stages (extraction, parsing, role resolution) and the triage
stages (scanning, redaction, archive decision).

Capture Types:
    - Segment: A chunk of parsed text, optionally labeled with a role
    - Turn: A single speaker-attributed conversation turn
    - AttributionInfo: Which model produced the conversation, and how we know
    - ExtractionResult: Output of a platform extractor
    - ParseMetadata / ParseResult: Output of the generic text parser

Triage Types:
    - PIIFinding: One sensitive-data match inside one turn
    - TurnFindings: All findings for one turn
    - TriageSummary: Findings for a whole conversation, with tier counts
    - RedactionPolicy: Read-only scan/redact settings
    - StoredRecord: What the persistence collaborator hands back

Everything here is treated as immutable once built; stages return new
objects instead of editing the ones they were given.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any


# Speaker roles
HUMAN = "human"
ASSISTANT = "assistant"
ROLES = (HUMAN, ASSISTANT)

# Attribution confidence, strongest first
VERIFIED = "verified"
INFERRED = "inferred"
CLAIMED = "claimed"
CONFIDENCE_ORDER = (VERIFIED, INFERRED, CLAIMED)

# Attribution sources
NETWORK_INTERCEPT = "network_intercept"
PAGE_STATE = "page_state"
DOM_SCRAPE = "dom_scrape"
USER_REPORTED = "user_reported"
ATTRIBUTION_SOURCES = (NETWORK_INTERCEPT, PAGE_STATE, DOM_SCRAPE, USER_REPORTED)

# Severity tiers, most severe first
CRITICAL = "critical"
HIGH = "high"
MEDIUM = "medium"
LOW = "low"
SEVERITY_ORDER = (CRITICAL, HIGH, MEDIUM, LOW)

# Platform tags
CHATGPT = "chatgpt"
CLAUDE = "claude"
GEMINI = "gemini"
GROK = "grok"
OTHER = "other"
PLATFORMS = (CHATGPT, CLAUDE, GEMINI, GROK)


def severity_rank(severity: str) -> int:
    """Sort key for severities: 0 for critical through 3 for low."""
    try:
        return SEVERITY_ORDER.index(severity)
    except ValueError:
        return len(SEVERITY_ORDER)


def confidence_rank(confidence: str) -> int:
    """Sort key for confidences: 0 for verified through 2 for claimed."""
    try:
        return CONFIDENCE_ORDER.index(confidence)
    except ValueError:
        return len(CONFIDENCE_ORDER)


@dataclass(frozen=True)
class Segment:
    """A chunk of text produced by the generic parser.

    role is None when no speaker label introduced the segment.
    """
    content: str
    role: Optional[str] = None
    source_index: int = 0

    @property
    def labeled(self) -> bool:
        return self.role is not None


@dataclass(frozen=True)
class Turn:
    """A single speaker-attributed turn."""
    role: str  # HUMAN, ASSISTANT
    content: str
    source_index: int = 0  # Ordering only, never emitted downstream


@dataclass(frozen=True)
class AttributionInfo:
    """Model attribution for a captured conversation."""
    model_id: Optional[str]
    model_display_name: Optional[str]
    confidence: str = CLAIMED
    source: str = DOM_SCRAPE


@dataclass(frozen=True)
class ExtractionResult:
    """Normalized output of a platform extractor.

    structured is True when per-turn roles came from the page itself;
    when False the turns are raw text and still need the generic parser.
    """
    platform: str
    title: str
    turns: List[Turn]
    attribution: AttributionInfo
    timestamp: str  # ISO-8601
    external_conversation_id: Optional[str] = None
    structured: bool = True


@dataclass
class ParseMetadata:
    """What the generic parser figured out along the way."""
    detected_provider: str = OTHER
    detected_first_speaker: str = HUMAN
    user_overrode_first_speaker: bool = False
    has_explicit_labels: bool = False
    raw_character_count: int = 0
    turn_count: int = 0


@dataclass
class ParseResult:
    """Output of parse_conversation()."""
    turns: List[Turn] = field(default_factory=list)
    metadata: ParseMetadata = field(default_factory=ParseMetadata)


@dataclass(frozen=True)
class PIIFinding:
    """A single sensitive-data match.

    char_offset/length index into the turn content that was scanned.
    raw_value is kept for redaction only and must never be logged.
    """
    category: str
    label: str
    severity: str
    masked_value: str
    raw_value: str
    char_offset: int
    length: int

    @property
    def end(self) -> int:
        return self.char_offset + self.length


@dataclass(frozen=True)
class TurnFindings:
    """Findings for one turn of a conversation."""
    turn_index: int
    role: str
    findings: List[PIIFinding]


@dataclass(frozen=True)
class TriageSummary:
    """Conversation-wide scan result."""
    by_turn: List[TurnFindings] = field(default_factory=list)

    @property
    def total_findings(self) -> int:
        return sum(len(t.findings) for t in self.by_turn)

    def count(self, severity: str) -> int:
        return sum(
            1 for t in self.by_turn for f in t.findings if f.severity == severity
        )

    @property
    def critical_count(self) -> int:
        return self.count(CRITICAL)

    @property
    def high_count(self) -> int:
        return self.count(HIGH)

    @property
    def medium_count(self) -> int:
        return self.count(MEDIUM)

    @property
    def low_count(self) -> int:
        return self.count(LOW)

    @property
    def has_findings(self) -> bool:
        return self.total_findings > 0

    def findings_for(self, turn_index: int) -> List[PIIFinding]:
        for entry in self.by_turn:
            if entry.turn_index == turn_index:
                return entry.findings
        return []

    def to_dict(self) -> Dict[str, Any]:
        """Summary without raw values, safe to print or serialize."""
        return {
            'total_findings': self.total_findings,
            'critical_count': self.critical_count,
            'high_count': self.high_count,
            'medium_count': self.medium_count,
            'low_count': self.low_count,
            'by_turn': [
                {
                    'turn_index': t.turn_index,
                    'role': t.role,
                    'findings': [
                        {
                            'category': f.category,
                            'label': f.label,
                            'severity': f.severity,
                            'masked_value': f.masked_value,
                            'char_offset': f.char_offset,
                            'length': f.length,
                        }
                        for f in t.findings
                    ],
                }
                for t in self.by_turn
            ],
        }


@dataclass(frozen=True)
class RedactionPolicy:
    """Read-only scan/redact policy taken from settings."""
    run_scan: bool = True
    always_redact: bool = False


@dataclass(frozen=True)
class StoredRecord:
    """Identifier and address returned by the persistence collaborator."""
    id: str
    url: str
