"""
Generic text parser for pasted conversations.

Handles conversations that arrive as plain text, with or without speaker
labels. Labels are recognized at the start of a line ("User: ...",
"**Assistant:** ...", a bare "Claude" line, "ChatGPT said:"); when none
are present the text falls back to paragraph splitting and the role
resolver assigns speakers by alternation.

Contents:
    - strip_cruft(): Remove UI chrome lines, leaving code fences intact
    - build_label_pattern(): Label regex for a platform hint
    - find_label(): Match a speaker label at the start of a line
    - split_segments(): Cut text into labeled/unlabeled segments
    - parse_conversation(): Full text -> ParseResult pipeline
"""

import re
import logging
from typing import Dict, List, Optional, Tuple

from .mathblocks import rejoin_math_blocks
from .models import (
    Segment, ParseMetadata, ParseResult,
    HUMAN, ASSISTANT, ROLES, OTHER, CHATGPT, CLAUDE, GEMINI, GROK
)
from .roles import resolve_roles

logger = logging.getLogger(__name__)

# UI chrome removed from pasted text (whole lines only)
CRUFT_PATTERNS = [
    re.compile(r'^Skip to content', re.IGNORECASE),
    re.compile(r'^Chat history', re.IGNORECASE),
    re.compile(r'^ChatGPT\s*$', re.IGNORECASE),
    re.compile(r'^Thought for \d+s?', re.IGNORECASE),
    re.compile(r'^Thought process\s*$', re.IGNORECASE),
    re.compile(r'^Searched for ', re.IGNORECASE),
    re.compile(r'^Image of\b', re.IGNORECASE),
    re.compile(r'^No file chosen', re.IGNORECASE),
    re.compile(r'^Upgrade to ', re.IGNORECASE),
    re.compile(r'^Copy\s*$', re.IGNORECASE),
    re.compile(r'^Retry\s*$', re.IGNORECASE),
    re.compile(r'^Edit\s*$', re.IGNORECASE),
    re.compile(r'^Show more\s*$', re.IGNORECASE),
    re.compile(r'^Show less\s*$', re.IGNORECASE),
    re.compile(r'^Failed to view\s*$', re.IGNORECASE),
    re.compile(r'^\d+(?:\.\d+)?s\s*$'),  # "14s" thinking time
    re.compile(r'^\d+\s*/\s*\d+\s*$'),  # "2 / 2" regeneration indicator
    re.compile(r'^ChatGPT can make mistakes\. Check important info\.', re.IGNORECASE),
]

# Extra chrome per platform hint
PLATFORM_CRUFT = {
    CLAUDE: [
        re.compile(r'^Claude can make mistakes\.', re.IGNORECASE),
        re.compile(r'^Claude is AI and can make mistakes\.', re.IGNORECASE),
    ],
    GEMINI: [
        re.compile(r'^Show drafts\s*$', re.IGNORECASE),
        re.compile(r'^Gemini (?:may display|can make mistakes)', re.IGNORECASE),
    ],
    GROK: [
        re.compile(r'^Thinking\s*$', re.IGNORECASE),
    ],
}

# Labels every platform understands
GENERIC_LABELS = {
    HUMAN: ['human', 'user', 'you', 'me', 'h'],
    ASSISTANT: ['assistant', 'ai', 'claude', 'chatgpt', 'gpt', 'model', 'bot', 'a', 'system'],
}

# Labels only consulted when the platform hint matches
PLATFORM_LABELS = {
    CHATGPT: {
        HUMAN: ['you said'],
        ASSISTANT: ['chatgpt said'],
    },
    GEMINI: {
        HUMAN: [],
        ASSISTANT: ['gemini'],
    },
    GROK: {
        HUMAN: [],
        ASSISTANT: ['grok'],
    },
}

BOLD = r'(?:\*\*|__)?'

BLANK_LINES = re.compile(r'\n\s*\n')


def strip_cruft(text: str, platform_hint: str = OTHER) -> str:
    """
    Remove UI chrome lines from pasted text.

    Lines inside ``` fences are always kept.
    """
    patterns = CRUFT_PATTERNS + PLATFORM_CRUFT.get(platform_hint, [])
    kept = []
    in_fence = False
    removed = 0

    for line in text.split('\n'):
        if line.strip().startswith('```'):
            in_fence = not in_fence
            kept.append(line)
            continue
        if not in_fence and any(p.match(line.strip()) for p in patterns):
            removed += 1
            continue
        kept.append(line)

    if removed:
        logger.debug(f"Stripped {removed} UI line(s)")
    return '\n'.join(kept).strip()


def label_dictionary(platform_hint: str = OTHER) -> Dict[str, str]:
    """Map of lowercase label -> role for a platform hint."""
    labels = {}
    for role in ROLES:
        for label in GENERIC_LABELS[role]:
            labels[label] = role
        for label in PLATFORM_LABELS.get(platform_hint, {}).get(role, []):
            labels[label] = role
    return labels


def build_label_pattern(platform_hint: str = OTHER) -> Tuple[re.Pattern, re.Pattern]:
    """
    Build the inline and bare label patterns for a platform hint.

    Returns:
        Tuple of (inline_pattern, bare_pattern). inline matches
        "Label: content" / "Label - content"; bare matches a line that
        holds nothing but a label.
    """
    labels = sorted(label_dictionary(platform_hint), key=len, reverse=True)
    alternation = '|'.join(re.escape(label).replace(r'\ ', r'\s+') for label in labels)

    inline = re.compile(
        rf'^[-*•]?\s*{BOLD}(?P<label>{alternation}){BOLD}\s*'
        rf'(?::|[-–—](?=\s)){BOLD}\s*',
        re.IGNORECASE
    )
    bare = re.compile(
        rf'^\s*{BOLD}(?P<label>{alternation}){BOLD}\s*:?\s*{BOLD}\s*$',
        re.IGNORECASE
    )
    return inline, bare


def find_label(
    line: str,
    patterns: Tuple[re.Pattern, re.Pattern],
    labels: Dict[str, str]
) -> Optional[Tuple[str, str]]:
    """
    Match a speaker label at the start of a line.

    Returns:
        (role, remaining_content) or None if the line carries no label
    """
    inline, bare = patterns
    match = bare.match(line)
    if match:
        return labels[_normalize_label(match.group('label'))], ''
    match = inline.match(line)
    if match:
        return labels[_normalize_label(match.group('label'))], line[match.end():].strip()
    return None


def _normalize_label(label: str) -> str:
    return re.sub(r'\s+', ' ', label.lower())


def split_segments(text: str, platform_hint: str = OTHER) -> Tuple[List[Segment], bool]:
    """
    Cut text into segments at speaker labels.

    Returns:
        Tuple of (segments, has_explicit_labels)
    """
    labels = label_dictionary(platform_hint)
    patterns = build_label_pattern(platform_hint)

    segments: List[Segment] = []
    current_role: Optional[str] = None
    current_lines: Optional[List[str]] = None
    saw_label = False
    in_fence = False

    def close():
        if current_lines is None:
            return
        content = '\n'.join(current_lines).strip()
        if content:
            segments.append(Segment(content=content, role=current_role,
                                    source_index=len(segments)))

    for line in text.split('\n'):
        if line.strip().startswith('```'):
            in_fence = not in_fence
        elif not in_fence:
            found = find_label(line, patterns, labels)
            if found:
                close()
                saw_label = True
                current_role, rest = found
                current_lines = [rest] if rest else []
                continue

        if current_lines is None:
            if not line.strip():
                continue
            current_role = None
            current_lines = []
        current_lines.append(line)

    close()

    if not saw_label and len(segments) == 1:
        segments = [
            Segment(content=chunk.strip(), role=None, source_index=i)
            for i, chunk in enumerate(
                c for c in _split_paragraphs(segments[0].content) if c.strip()
            )
        ]

    return segments, saw_label


def _split_paragraphs(text: str) -> List[str]:
    """Split on blank lines, never inside a code fence."""
    chunks = []
    current: List[str] = []
    in_fence = False
    for line in text.split('\n'):
        if line.strip().startswith('```'):
            in_fence = not in_fence
        if not in_fence and not line.strip():
            if current:
                chunks.append('\n'.join(current))
                current = []
            continue
        current.append(line)
    if current:
        chunks.append('\n'.join(current))
    return chunks


def parse_conversation(
    text: str,
    platform_hint: str = OTHER,
    first_speaker: Optional[str] = None,
    logger: Optional[logging.Logger] = None
) -> ParseResult:
    """
    Parse pasted conversation text into speaker-attributed turns.

    Args:
        text: Raw pasted text
        platform_hint: chatgpt, claude, gemini, grok or other
        first_speaker: Optional override for who spoke first
        logger: Optional logger for debug output

    Returns:
        ParseResult with turns and diagnostic metadata
    """
    log = logger or logging.getLogger(__name__)
    hint = (platform_hint or OTHER).lower()
    if first_speaker is not None and first_speaker not in ROLES:
        raise ValueError(f"first_speaker must be one of {ROLES}, got {first_speaker!r}")

    normalized = text.replace('\r\n', '\n').replace('\r', '\n')
    cleaned = strip_cruft(normalized, hint)

    labels = label_dictionary(hint)
    patterns = build_label_pattern(hint)
    cleaned = rejoin_math_blocks(
        cleaned, protect=lambda line: find_label(line, patterns, labels) is not None
    )

    segments, has_labels = split_segments(cleaned, hint)
    log.debug(f"Split into {len(segments)} segment(s), labels={'yes' if has_labels else 'no'}")

    turns, detected = resolve_roles(segments, first_speaker=first_speaker, logger=log)

    metadata = ParseMetadata(
        detected_provider=hint,
        detected_first_speaker=detected,
        user_overrode_first_speaker=first_speaker is not None,
        has_explicit_labels=has_labels,
        raw_character_count=len(text),
        turn_count=len(turns),
    )
    log.info(f"Parsed {len(turns)} turn(s) from {len(text)} chars ({hint})")
    return ParseResult(turns=turns, metadata=metadata)
