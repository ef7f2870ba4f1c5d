"""
PII triage for canonical conversation turns.

Sensitive data is found with an ordered table of typed patterns. Each
pattern carries a human-readable label, a severity tier and, for
low-specificity shapes (bare numbers), a list of keywords one of which
must appear near the match before it counts.

Scan pipeline for one piece of text:
1. Every pattern collects its non-overlapping matches
2. Context-gated patterns drop matches with no keyword nearby
3. Category-specific false positives are dropped
4. Overlaps are resolved leftmost-first, most severe first on ties

Raw matched values are carried on findings for redaction only; anything
shown to a person or written to a log uses masked_value.

Contents:
    - PIIPattern / PII_PATTERNS: The pattern table
    - mask_value(): Reviewer-safe rendering of a match
    - is_false_positive(): Category-specific rejection rules
    - deduplicate_findings(): Overlap resolution
    - scan(): Text -> findings
    - scan_conversation(): Turns -> TriageSummary
"""

import re
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .models import (
    PIIFinding, Turn, TurnFindings, TriageSummary,
    CRITICAL, HIGH, MEDIUM, LOW, severity_rank,
)

logger = logging.getLogger(__name__)

# Characters either side of a match searched for context keywords
CONTEXT_RADIUS = 50

# Characters either side of an IP-shaped match searched for version words
VERSION_RADIUS = 20
VERSION_WORDS = ('version', 'v.')

# 5-digit numbers in this range are years, not postal codes
YEAR_RANGE = (1900, 2100)

MIN_PHONE_DIGITS = 10


@dataclass(frozen=True)
class PIIPattern:
    """One row of the pattern table."""
    category: str
    regex: re.Pattern
    label: str
    severity: str
    context_keywords: List[str] = field(default_factory=list)


PII_PATTERNS = [
    # Contact
    PIIPattern(
        'email',
        re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}'),
        'Email address', HIGH,
    ),
    PIIPattern(
        'phone',
        re.compile(r'(\+?1[-.\s]?)?(\(?\d{3}\)?[-.\s]?)?\d{3}[-.\s]?\d{4}'),
        'Phone number', HIGH,
    ),
    # Financial
    PIIPattern(
        'credit_card',
        re.compile(r'\b(?:\d{4}[-\s]?){3}\d{4}\b'),
        'Credit card number', CRITICAL,
    ),
    PIIPattern(
        'ssn',
        re.compile(r'\b\d{3}[-\s]?\d{2}[-\s]?\d{4}\b'),
        'Social Security Number', CRITICAL,
    ),
    PIIPattern(
        'bank_account',
        re.compile(r'\b\d{8,17}\b'),
        'Possible bank account', MEDIUM,
        ['account', 'routing', 'bank', 'iban'],
    ),
    # Location
    PIIPattern(
        'address',
        re.compile(
            r'\b\d{1,5}\s+[\w\s]{1,30}\b(?:street|st|avenue|ave|road|rd|boulevard|blvd|'
            r'lane|ln|drive|dr|court|ct|way|place|pl)\b\.?'
            r'(?:\s+(?:apt|apartment|unit|suite|ste)\.?\s*#?\s*\w+)?',
            re.IGNORECASE
        ),
        'Street address', HIGH,
    ),
    PIIPattern(
        'zip_code',
        re.compile(r'\b\d{5}(?:-\d{4})?\b'),
        'ZIP code', LOW,
        ['address', 'zip', 'postal', 'mail'],
    ),
    # Identity
    PIIPattern(
        'passport',
        re.compile(r'\b[A-Z]{1,2}\d{6,9}\b'),
        'Possible passport number', HIGH,
        ['passport'],
    ),
    PIIPattern(
        'drivers_license',
        re.compile(r'\b[A-Z]\d{7,8}\b'),
        "Possible driver's license", HIGH,
        ['license', 'driver', 'dmv', 'dl'],
    ),
    # Credentials
    PIIPattern(
        'api_key',
        re.compile(r'\b(?:sk|pk|api|key|token|secret|auth)[-_]?[a-zA-Z0-9]{20,}\b', re.IGNORECASE),
        'API key or token', CRITICAL,
    ),
    PIIPattern(
        'aws_key',
        re.compile(r'\b(?:AKIA|ABIA|ACCA|ASIA)[A-Z0-9]{16}\b'),
        'AWS access key', CRITICAL,
    ),
    PIIPattern(
        'private_key',
        re.compile(r'-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----'),
        'Private key', CRITICAL,
    ),
    # Network / personal
    PIIPattern(
        'ip_address',
        re.compile(r'\b(?:\d{1,3}\.){3}\d{1,3}\b'),
        'IP address', MEDIUM,
    ),
    PIIPattern(
        'date_of_birth',
        re.compile(r'\b(?:0?[1-9]|1[0-2])[-/](?:0?[1-9]|[12]\d|3[01])[-/](?:19|20)\d{2}\b'),
        'Date of birth', MEDIUM,
        ['birth', 'born', 'dob', 'birthday'],
    ),
]


def mask_value(value: str) -> str:
    """
    Render a match without exposing it.

    >8 chars: first 4 ... last 4; 5-8 chars: first 2 *** last 2;
    4 or fewer: a fixed mask.
    """
    if len(value) <= 4:
        return '****'
    if len(value) <= 8:
        return f"{value[:2]}***{value[-2:]}"
    return f"{value[:4]}...{value[-4:]}"


def _window(text: str, start: int, end: int, radius: int) -> str:
    return text[max(0, start - radius):min(len(text), end + radius)].lower()


def has_context(pattern: PIIPattern, text: str, start: int, end: int) -> bool:
    """True if the pattern needs no context or a keyword is nearby."""
    if not pattern.context_keywords:
        return True
    window = _window(text, start, end, CONTEXT_RADIUS)
    return any(keyword in window for keyword in pattern.context_keywords)


def is_false_positive(category: str, value: str, text: str, start: int, end: int) -> bool:
    """Category-specific rejection of plausible-looking non-PII."""
    if category == 'zip_code':
        number = int(value[:5])
        return YEAR_RANGE[0] <= number <= YEAR_RANGE[1]

    if category == 'ip_address':
        window = _window(text, start, end, VERSION_RADIUS)
        return any(word in window for word in VERSION_WORDS)

    if category in ('phone', 'bank_account'):
        digits = re.sub(r'\D', '', value)
        return len(digits) < MIN_PHONE_DIGITS

    return False


def deduplicate_findings(findings: List[PIIFinding]) -> List[PIIFinding]:
    """
    Resolve overlapping findings.

    Sort by start offset, then most severe first, and keep a finding
    only if it starts at or after the end of the last kept one.
    """
    ordered = sorted(findings, key=lambda f: (f.char_offset, severity_rank(f.severity)))
    kept: List[PIIFinding] = []
    last_end = 0
    for finding in ordered:
        if finding.char_offset >= last_end:
            kept.append(finding)
            last_end = finding.end
    return kept


def _matches(text: str, pattern: PIIPattern, pos: int = 0):
    """Yield findings for one pattern, searching from pos."""
    for match in pattern.regex.finditer(text, pos):
        value = match.group(0)
        start, end = match.start(), match.end()
        if not value:
            continue
        if not has_context(pattern, text, start, end):
            continue
        if is_false_positive(pattern.category, value, text, start, end):
            continue
        yield PIIFinding(
            category=pattern.category,
            label=pattern.label,
            severity=pattern.severity,
            masked_value=mask_value(value),
            raw_value=value,
            char_offset=start,
            length=end - start,
        )


def _overlaps(finding: PIIFinding, kept: List[PIIFinding]) -> bool:
    return any(finding.char_offset < k.end and k.char_offset < finding.end for k in kept)


def scan(text: str, patterns: Optional[List[PIIPattern]] = None) -> List[PIIFinding]:
    """
    Scan text for sensitive data.

    A match that straddles a kept finding is dropped by the overlap
    sweep, and it may have consumed a real match behind it. Each pattern
    is searched again from the end of every kept finding until nothing
    new turns up, so redacting the result leaves nothing to find.

    Args:
        text: Text to scan
        patterns: Pattern table override (defaults to PII_PATTERNS)

    Returns:
        Non-overlapping findings ordered by offset
    """
    if not text:
        return []

    table = PII_PATTERNS if patterns is None else patterns
    findings = [f for pattern in table for f in _matches(text, pattern)]
    kept = deduplicate_findings(findings)
    if len(kept) != len(findings):
        logger.debug(f"Dropped {len(findings) - len(kept)} overlapping finding(s)")

    while True:
        extra = [
            f
            for k in kept
            for pattern in table
            for f in _matches(text, pattern, k.end)
            if not _overlaps(f, kept)
        ]
        if not extra:
            break
        before = len(kept)
        kept = deduplicate_findings(kept + extra)
        logger.debug(f"Recovered {len(kept) - before} finding(s) after overlapping matches")
    return kept


def scan_conversation(turns: List[Turn], logger: Optional[logging.Logger] = None) -> TriageSummary:
    """
    Scan every turn of a conversation.

    Returns:
        TriageSummary with one entry per turn, in turn order
    """
    log = logger or logging.getLogger(__name__)
    by_turn = [
        TurnFindings(turn_index=i, role=turn.role, findings=scan(turn.content or ''))
        for i, turn in enumerate(turns)
    ]
    summary = TriageSummary(by_turn=by_turn)
    log.info(
        f"PII scan: {summary.total_findings} finding(s) in {len(turns)} turn(s) "
        f"(critical={summary.critical_count}, high={summary.high_count}, "
        f"medium={summary.medium_count}, low={summary.low_count})"
    )
    return summary
