"""
Output formatting for captured conversations.

Canonical turns are written as delimited markdown, the same shape the
helper scripts read back:

    ---
    title: Planning the trip
    platform: claude
    ---

    === MESSAGE 1 | USER ===
    message content

    === MESSAGE 2 | ASSISTANT ===
    response content

Contents:
    - generate_frontmatter(): YAML frontmatter for a captured conversation
    - format_delimited(): Turns -> delimited markdown
    - parse_delimited(): Delimited markdown -> turns
    - format_findings_report(): Human-readable triage report (masked values only)
    - to_json(): Stable JSON rendering for payloads and summaries
    - write_output(): Write a file (or report what would be written)
"""

import re
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .models import Turn, TriageSummary, ExtractionResult, HUMAN, ASSISTANT

MESSAGE_DELIMITER_PATTERN = re.compile(
    r'^=== MESSAGE (\d+) \| (USER|ASSISTANT) ===$',
    re.MULTILINE
)

ROLE_TO_DELIMITER = {HUMAN: 'USER', ASSISTANT: 'ASSISTANT'}
DELIMITER_TO_ROLE = {v: k for k, v in ROLE_TO_DELIMITER.items()}

FRONTMATTER_PATTERN = re.compile(r'\A---\n(.*?)\n---\n', re.DOTALL)


def generate_frontmatter(extraction: ExtractionResult) -> str:
    """
    YAML frontmatter describing a captured conversation.

    Returns:
        Frontmatter string including trailing blank line
    """
    attribution = extraction.attribution
    meta: Dict[str, Any] = {
        'title': extraction.title,
        'platform': extraction.platform,
        'timestamp': extraction.timestamp,
        'model_id': attribution.model_id,
        'model_display_name': attribution.model_display_name,
        'attribution_confidence': attribution.confidence,
        'attribution_source': attribution.source,
    }
    if extraction.external_conversation_id:
        meta['platform_conversation_id'] = extraction.external_conversation_id

    body = yaml.safe_dump(meta, sort_keys=False, allow_unicode=True).rstrip('\n')
    return f"---\n{body}\n---\n\n"


def format_delimited(turns: List[Turn], extraction: Optional[ExtractionResult] = None) -> str:
    """Render turns as delimited markdown, with frontmatter if extraction is given."""
    lines = []
    for i, turn in enumerate(turns, 1):
        lines.append(f"=== MESSAGE {i} | {ROLE_TO_DELIMITER[turn.role]} ===")
        lines.append(turn.content)
        lines.append("")

    content = "\n".join(lines)
    if extraction is not None:
        return generate_frontmatter(extraction) + content
    return content


def parse_delimited(text: str) -> List[Turn]:
    """
    Read turns back from delimited markdown.

    Frontmatter is skipped. Messages with empty content are dropped.
    """
    text = text.replace('\r\n', '\n')
    text = FRONTMATTER_PATTERN.sub('', text, count=1)

    matches = list(MESSAGE_DELIMITER_PATTERN.finditer(text))
    turns = []
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        content = text[match.end():end].strip()
        if content:
            turns.append(Turn(
                role=DELIMITER_TO_ROLE[match.group(2)],
                content=content,
                source_index=int(match.group(1)),
            ))
    return turns


def is_delimited(text: str) -> bool:
    """True if text holds at least one message delimiter."""
    return MESSAGE_DELIMITER_PATTERN.search(text) is not None


def format_findings_report(summary: TriageSummary, turns: List[Turn]) -> str:
    """
    Human-readable triage report.

    Only masked values are shown.
    """
    lines = [
        f"Findings: {summary.total_findings} "
        f"(critical {summary.critical_count}, high {summary.high_count}, "
        f"medium {summary.medium_count}, low {summary.low_count})"
    ]
    for entry in summary.by_turn:
        if not entry.findings:
            continue
        lines.append("")
        lines.append(f"Message {entry.turn_index + 1} ({ROLE_TO_DELIMITER[turns[entry.turn_index].role]}):")
        for finding in entry.findings:
            lines.append(
                f"  [{finding.severity}] {finding.label}: {finding.masked_value} "
                f"@ {finding.char_offset}"
            )
    return "\n".join(lines)


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def write_output(
    content: str,
    output_path: Path,
    dry_run: bool = False,
    logger: Optional[logging.Logger] = None
) -> Optional[Path]:
    """
    Write content to an output file.

    Args:
        content: Content to write
        output_path: Path to write to
        dry_run: If True, don't actually write
        logger: Optional logger for reporting

    Returns:
        Path to written file, or None if dry_run
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    if dry_run:
        logger.info(f"  WOULD WRITE: {output_path} ({len(content)} bytes)")
        return None

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(content, encoding='utf-8')
    logger.info(f"  -> {output_path}")
    return output_path
