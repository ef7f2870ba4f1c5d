"""
Archive - Conversation capture and privacy triage.

This component turns a human-AI conversation, captured from a chat page
or pasted as text, into a canonical list of speaker-attributed turns,
then scans it for personal data before it is archived.

Pipeline:
1. extract: page snapshot -> ExtractionResult (per-platform extractors)
   or parse: pasted text -> turns (math preserver + generic parser)
2. resolve: segments -> turns (labels, alternation, continuation merge)
3. scan: turns -> TriageSummary (PII pattern table)
4. archive: settings + summary -> archive / review / redact-then-archive

Core modules:
- models: Data classes for all types
- mathblocks: Rejoin formulas split across lines
- parsing: Generic text parser
- roles: Speaker role resolution
- page: Page snapshot collaborator
- platforms: ChatGPT / Claude / Gemini / Grok extractors
- session: Per-page detection sessions and canonicalization
- pii: PII pattern table and scanner
- redactor: Placeholder redaction
- archive: Archive decision state machine
- config: Settings loading
- output: Delimited markdown and JSON formatting
"""

__version__ = "1.0.0"

from .models import (
    Segment,
    Turn,
    AttributionInfo,
    ExtractionResult,
    ParseMetadata,
    ParseResult,
    PIIFinding,
    TurnFindings,
    TriageSummary,
    RedactionPolicy,
    StoredRecord,
)
from .mathblocks import rejoin_math_blocks
from .parsing import parse_conversation, strip_cruft
from .roles import resolve_roles, detect_first_speaker, force_alternation
from .page import PageState, PageNode, load_page_state
from .platforms import (
    ChatGPTExtractor,
    ClaudeExtractor,
    GeminiExtractor,
    GrokExtractor,
    detect_platform,
    get_extractor,
)
from .session import DetectionSession, refresh, normalize_extraction
from .pii import PII_PATTERNS, PIIPattern, scan, scan_conversation, mask_value
from .redactor import redact, redact_turns
from .archive import ArchiveController, InvalidTransitionError, build_archive_payload
from .config import ArchiveSettings, load_settings
from .output import format_delimited, parse_delimited

__all__ = [
    # Data structures
    "Segment",
    "Turn",
    "AttributionInfo",
    "ExtractionResult",
    "ParseMetadata",
    "ParseResult",
    "PIIFinding",
    "TurnFindings",
    "TriageSummary",
    "RedactionPolicy",
    "StoredRecord",
    # Capture
    "rejoin_math_blocks",
    "parse_conversation",
    "strip_cruft",
    "resolve_roles",
    "detect_first_speaker",
    "force_alternation",
    "PageState",
    "PageNode",
    "load_page_state",
    "ChatGPTExtractor",
    "ClaudeExtractor",
    "GeminiExtractor",
    "GrokExtractor",
    "detect_platform",
    "get_extractor",
    "DetectionSession",
    "refresh",
    "normalize_extraction",
    # Triage
    "PII_PATTERNS",
    "PIIPattern",
    "scan",
    "scan_conversation",
    "mask_value",
    "redact",
    "redact_turns",
    "ArchiveController",
    "InvalidTransitionError",
    "build_archive_payload",
    # Settings / output
    "ArchiveSettings",
    "load_settings",
    "format_delimited",
    "parse_delimited",
]
