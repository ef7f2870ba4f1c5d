"""
Redaction of PII findings.

Replaces each finding's span with a typed placeholder such as
"[EMAIL ADDRESS REDACTED]". Findings are applied from the end of the
text backwards so earlier offsets stay valid while later spans change
length. Findings that do not fit the text are skipped; redaction never
raises on bad input.
"""

import logging
from typing import List, Optional

from .models import PIIFinding, Turn, TriageSummary

logger = logging.getLogger(__name__)


def placeholder(finding: PIIFinding) -> str:
    """Placeholder text for a finding: its label upper-cased."""
    return f"[{finding.label.upper()} REDACTED]"


def _is_applicable(finding: PIIFinding, text: str, upper_bound: int) -> bool:
    if not isinstance(finding.char_offset, int) or not isinstance(finding.length, int):
        return False
    if finding.char_offset < 0 or finding.length <= 0:
        return False
    if finding.end > min(len(text), upper_bound):
        return False
    # The span must still hold what was scanned
    if finding.raw_value and text[finding.char_offset:finding.end] != finding.raw_value:
        return False
    return True


def redact(text: str, findings: List[PIIFinding]) -> str:
    """
    Apply findings to text.

    Args:
        text: The exact text the findings were scanned from
        findings: Findings for that text

    Returns:
        Text with every applicable span replaced by its placeholder.
        Findings that overlap an already-applied span, fall outside the
        text, or no longer match their raw value are skipped.
    """
    if not text or not findings:
        return text

    result = text
    upper_bound = len(text)
    skipped = 0
    for finding in sorted(findings, key=lambda f: f.char_offset, reverse=True):
        if not _is_applicable(finding, text, upper_bound):
            skipped += 1
            continue
        result = result[:finding.char_offset] + placeholder(finding) + result[finding.end:]
        upper_bound = finding.char_offset

    if skipped:
        logger.debug(f"Skipped {skipped} finding(s) that did not fit the text")
    return result


def redact_turns(
    turns: List[Turn],
    summary: TriageSummary,
    logger: Optional[logging.Logger] = None
) -> List[Turn]:
    """
    Redact a conversation using its triage summary.

    Returns:
        New turns; turns without findings are passed through unchanged
    """
    log = logger or logging.getLogger(__name__)
    redacted = []
    applied = 0
    for i, turn in enumerate(turns):
        findings = summary.findings_for(i)
        if not findings:
            redacted.append(turn)
            continue
        content = redact(turn.content, findings)
        applied += len(findings)
        redacted.append(Turn(role=turn.role, content=content, source_index=turn.source_index))

    log.info(f"Redacted {applied} finding(s) across {len(turns)} turn(s)")
    return redacted
