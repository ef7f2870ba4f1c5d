"""
Speaker role resolution.

Turns parsed segments into speaker-attributed turns. Explicit labels
win; everything else alternates from the last resolved role. Segments
that read like the continuation of the previous turn (list items,
lowercase starts, "and ..."/"however ...") are folded back into it.

Contents:
    - detect_first_speaker(): Guess who opened the conversation
    - is_continuation(): Does a segment continue the previous turn?
    - force_alternation(): Re-role turns when role detection failed entirely
    - resolve_roles(): Segments -> turns
"""

import re
import logging
from typing import List, Optional, Tuple

from .models import Segment, Turn, HUMAN, ASSISTANT

logger = logging.getLogger(__name__)

# Under this many characters, a trailing "?" means the human is asking
SHORT_QUESTION = 220

# Status lines only an assistant UI produces
ASSISTANT_STATUS_PATTERNS = [
    re.compile(r'Searched for ', re.IGNORECASE),
    re.compile(r'Thought for \d+s', re.IGNORECASE),
    re.compile(r'Image of\b', re.IGNORECASE),
]

# Greeting / self-introduction openers
ASSISTANT_OPENER_PATTERNS = [
    re.compile(r"^(?:hi|hello|hey)[,!]?\s+i'?m\s+(?:an?\s+)?(?:ai|assistant|claude|chatgpt|gpt)", re.IGNORECASE),
    re.compile(r"^i'?m\s+(?:an?\s+)?(?:ai|assistant|claude)", re.IGNORECASE),
    re.compile(r'how can i (?:help|assist) you', re.IGNORECASE),
    re.compile(r'^(?:welcome|greetings)[!,.]?\s', re.IGNORECASE),
    re.compile(r'created by (?:anthropic|openai)', re.IGNORECASE),
    re.compile(r'^as an ai', re.IGNORECASE),
    re.compile(r"i'?m here to help", re.IGNORECASE),
]

# Continuation markers
BULLET = re.compile(r'^[-*•]\s')
NUMBERED = re.compile(r'^(?:\d+|[ivxlcdm]+|[IVXLCDM]+)[.)]\s')
LOWERCASE_START = re.compile(r'^[a-z]')
CONNECTIVE = re.compile(
    r'^(?:and|but|or|so|then|also|yet|however|meanwhile|plus|moreover|'
    r'furthermore|additionally|still)\b',
    re.IGNORECASE
)


def other_role(role: str) -> str:
    return ASSISTANT if role == HUMAN else HUMAN


def detect_first_speaker(text: str) -> str:
    """
    Guess the first speaker from the first segment's content.

    Short text ending in a question mark is a human asking; thinking or
    search status lines and greeting/self-introduction patterns are an
    assistant. Everything else defaults to human.
    """
    trimmed = (text or '').strip()
    if not trimmed:
        return HUMAN
    if len(trimmed) < SHORT_QUESTION and trimmed.endswith('?'):
        return HUMAN
    if any(p.search(trimmed) for p in ASSISTANT_STATUS_PATTERNS):
        return ASSISTANT
    if any(p.search(trimmed) for p in ASSISTANT_OPENER_PATTERNS):
        return ASSISTANT
    return HUMAN


def is_continuation(text: str) -> bool:
    """True if a segment reads like the rest of the previous turn."""
    trimmed = text.strip()
    return bool(
        BULLET.match(trimmed)
        or NUMBERED.match(trimmed)
        or LOWERCASE_START.match(trimmed)
        or CONNECTIVE.match(trimmed)
    )


def force_alternation(turns: List[Turn]) -> List[Turn]:
    """
    Re-role turns in strict alternation when they all share one role.

    A single shared role across two or more turns means the role signal
    failed, so roles alternate starting from the first turn's role.
    Otherwise the turns are returned unchanged.
    """
    if len(turns) < 2 or len({t.role for t in turns}) > 1:
        return turns

    role = turns[0].role
    result = []
    for turn in turns:
        result.append(Turn(role=role, content=turn.content, source_index=turn.source_index))
        role = other_role(role)
    return result


def resolve_roles(
    segments: List[Segment],
    first_speaker: Optional[str] = None,
    logger: Optional[logging.Logger] = None
) -> Tuple[List[Turn], str]:
    """
    Assign roles to segments and merge continuations.

    Args:
        segments: Parsed segments in document order
        first_speaker: Optional override for who spoke first
        logger: Optional logger for debug output

    Returns:
        Tuple of (turns, detected_first_speaker). The detected value
        ignores the override so callers can report both.
    """
    log = logger or logging.getLogger(__name__)
    segments = [s for s in segments if s.content.strip()]
    if not segments:
        return [], first_speaker or HUMAN

    first = segments[0]
    detected = first.role or detect_first_speaker(first.content)
    if first.role:
        log.debug(f"First speaker from label: {detected}")
    else:
        log.debug(f"First speaker from heuristic: {detected}")

    turns: List[Turn] = []
    previous: Optional[str] = None
    merged = 0

    for segment in segments:
        if previous is None:
            role = first_speaker or detected
        elif segment.role:
            role = segment.role
        else:
            role = other_role(previous)

        content = segment.content.strip()
        if turns and turns[-1].role == role and is_continuation(content):
            last = turns[-1]
            turns[-1] = Turn(
                role=role,
                content=f"{last.content}\n\n{content}",
                source_index=last.source_index,
            )
            merged += 1
        else:
            turns.append(Turn(role=role, content=content, source_index=segment.source_index))
        previous = role

    if merged:
        log.debug(f"Merged {merged} continuation segment(s)")

    alternated = force_alternation(turns)
    if alternated is not turns:
        log.debug(f"All {len(turns)} turns shared one role; forced alternation")
    return alternated, detected
