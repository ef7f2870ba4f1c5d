"""
Math-block preservation for pasted conversations.

Chat exports often break a single formula across many lines, one
operand or operator per line. The line-based parser downstream treats
line breaks as possible turn boundaries, so those runs are rejoined
into a single line before any segmentation happens.

Contents:
    - is_math_line(): Line with high operator density or an expr = expr shape
    - is_operand_line(): Short token that only counts inside a math run
    - rejoin_math_blocks(): Join runs of adjacent math lines with single spaces
"""

import re
import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

MAX_MATH_LINE = 120

# Zero-width characters copied out of rendered math
ZERO_WIDTH = re.compile(r"[\u200b-\u200f\ufeff]")

# Always-math characters
MATH_SYMBOLS = re.compile(
    r'[+=^∑Σ∞πℵ√±×÷·∏∫∂µ∀∃→←⇒⇔≤≥≠≈≡⊂⊃⊆⊇∈∉∪∩⊕⊗∇]'
)

# '-', '/' and '*' only count when not glued to a word ("state-of-the-art",
# "and/or", "**bold**")
AMBIGUOUS_OPERATORS = re.compile(r'(?<![A-Za-z*_])[-/*](?![A-Za-z*_])')

# A line that is nothing but one operator
LONE_OPERATOR = re.compile(r'^[-+*/=^√π∑∞∫∂∀∃≤≥≠≈≡⊂⊃∈∉∪∩⊕⊗∇×÷±]$')

# expr = expr with operands that contain no bare spaces ("f(x) = x^2 + 1")
_OPERAND = r'[\w().^√π]+(?:\s*[-+*/^×÷]\s*[\w().^√π]+)*'
EQUATION_SHAPE = re.compile(rf'^{_OPERAND}\s*=\s*{_OPERAND}$')

# Tokens like "x", "2", "3.14", "x^2", "n2"
OPERAND_TOKEN = re.compile(r'^(?:[A-Za-z]|\d+(?:\.\d+)?|[A-Za-z]+\^?\d+)$')

# Leading list markers are not operators
LIST_MARKER = re.compile(r'^(?:[-*•]\s+|\d+[.)]\s+)')

# Rules, setext underlines, message delimiters
RULE_LINE = re.compile(r'^(?:[=\-*_~#]{3,}.*|.*[=\-*_~#]{3,})$')

FENCE = '```'


def _clean(line: str) -> str:
    return ZERO_WIDTH.sub('', line).strip()


def is_math_line(line: str) -> bool:
    """True if a line looks like a piece of a formula."""
    text = _clean(line)
    if not text or len(text) > MAX_MATH_LINE:
        return False
    if text.startswith(FENCE) or '://' in text or RULE_LINE.match(text):
        return False
    if LONE_OPERATOR.match(text):
        return True
    body = LIST_MARKER.sub('', text)
    if EQUATION_SHAPE.match(body):
        return True
    count = len(MATH_SYMBOLS.findall(body)) + len(AMBIGUOUS_OPERATORS.findall(body))
    return count >= 2


def is_operand_line(line: str) -> bool:
    """True for short operand tokens that belong to a neighbouring formula."""
    return bool(OPERAND_TOKEN.match(_clean(line)))


def rejoin_math_blocks(
    text: str,
    protect: Optional[Callable[[str], bool]] = None
) -> str:
    """
    Join runs of adjacent math lines into single lines.

    A run is a maximal sequence of math lines and operand lines that
    contains at least one real math line and spans two or more lines.
    Blank lines, code fences (and everything inside them) and lines for
    which protect(line) is true end a run. Single-line runs are left
    untouched, so running this twice gives the same result.

    Args:
        text: Raw conversation text
        protect: Optional predicate for lines that must never be joined
            (speaker labels, for example)

    Returns:
        Text with math runs collapsed to one line each
    """
    lines = text.split('\n')
    result: List[str] = []
    run: List[str] = []
    run_has_math = False
    in_fence = False
    joined = 0

    def flush():
        nonlocal run, run_has_math, joined
        if len(run) >= 2 and run_has_math:
            result.append(' '.join(_clean(line) for line in run))
            joined += 1
        else:
            result.extend(run)
        run = []
        run_has_math = False

    for line in lines:
        stripped = line.strip()
        if stripped.startswith(FENCE):
            flush()
            in_fence = not in_fence
            result.append(line)
            continue
        if in_fence or not stripped or (protect and protect(line)):
            flush()
            result.append(line)
            continue

        if is_math_line(line):
            run.append(line)
            run_has_math = True
        elif is_operand_line(line):
            run.append(line)
        else:
            flush()
            result.append(line)

    flush()

    if joined:
        logger.debug(f"Rejoined {joined} math block(s)")
    return '\n'.join(result)
