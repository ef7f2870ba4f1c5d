"""
Platform extractors for captured chat pages.

One extractor per supported product. Each reads a PageState snapshot and
returns an ExtractionResult (or None when no conversation is on the
page). The extractors share one shape:

    extract()                 -> ExtractionResult | None
    extract_title()           -> first usable title candidate
    extract_model()           -> AttributionInfo from the first signal that fires
    extract_messages()        -> (turns, structured)
    extract_timestamp()       -> ISO-8601 string
    extract_conversation_id() -> id from the page address, or None

Dispatch is by platform tag (detect_platform() on the page URL), never
by inspecting what a page happens to contain.

Contents:
    - PlatformExtractor: Shared behaviour
    - ChatGPTExtractor, ClaudeExtractor, GeminiExtractor, GrokExtractor
    - dedupe_turns(): Drop echoed/duplicated blocks
    - parse_relative_time(): "3 days ago" -> datetime
    - detect_platform(), get_extractor()
"""

import re
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from .models import (
    Turn, AttributionInfo, ExtractionResult,
    HUMAN, ASSISTANT, CHATGPT, CLAUDE, GEMINI, GROK,
    VERIFIED, INFERRED, CLAIMED,
    NETWORK_INTERCEPT, PAGE_STATE, DOM_SCRAPE,
)
from .page import PageNode, PageState
from .roles import force_alternation

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Conversation"
MAX_TITLE = 200
TITLE_FROM_MESSAGE = 100

# A block contained in the previous one and at least this share of its
# length is an echo; a block containing the previous one must be longer
# than len(previous) / ECHO_RATIO to replace it.
ECHO_RATIO = 0.8

RELATIVE_TIME = re.compile(r'(\d+)\s*(minute|hour|day|week|month)s?\s*ago', re.IGNORECASE)
RELATIVE_UNITS = {
    'minute': timedelta(minutes=1),
    'hour': timedelta(hours=1),
    'day': timedelta(days=1),
    'week': timedelta(weeks=1),
    'month': timedelta(days=30),
}


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_relative_time(text: str, now: datetime) -> Optional[datetime]:
    """
    Resolve "today", "yesterday" and "N units ago" against now.

    Returns:
        The resolved datetime, or None if text is not a relative time
    """
    if re.search(r'\btoday\b', text, re.IGNORECASE):
        return now
    if re.search(r'\byesterday\b', text, re.IGNORECASE):
        return now - timedelta(days=1)
    match = RELATIVE_TIME.search(text)
    if match:
        return now - RELATIVE_UNITS[match.group(2).lower()] * int(match.group(1))
    return None


def collect_paragraphs(nodes: List[PageNode]) -> Optional[str]:
    """Join non-empty paragraph texts with blank lines, or None."""
    parts = [n.text.strip() for n in nodes if n.text and n.text.strip()]
    return '\n\n'.join(parts) if parts else None


def dedupe_turns(turns: List[Turn]) -> List[Turn]:
    """
    Drop duplicated and echoed blocks.

    Only a turn with the same role as the previous kept turn can be an
    echo of it.

    - An exact repeat of the previous kept turn is dropped.
    - A turn contained in the previous kept turn is dropped when it is
      at least ECHO_RATIO of that turn's length.
    - A turn containing the previous kept turn replaces it when it is
      meaningfully longer; otherwise it is treated as an echo and dropped.
    """
    kept: List[Turn] = []
    for turn in turns:
        if not kept:
            kept.append(turn)
            continue
        previous = kept[-1]
        if turn.role != previous.role:
            kept.append(turn)
            continue
        current, last = turn.content, previous.content

        if current == last:
            continue
        if current in last:
            if len(current) >= len(last) * ECHO_RATIO:
                continue
        elif last in current:
            if len(last) <= len(current) * ECHO_RATIO:
                kept[-1] = turn
            continue
        kept.append(turn)
    return kept


class PlatformExtractor:
    """Shared extraction flow. Subclasses fill in the selector tables."""

    platform = ""
    product_name: Optional[str] = None  # Titles containing this are page chrome
    title_selectors: List[str] = []
    first_message_selector: Optional[str] = None
    model_selectors: List[str] = []
    model_name_patterns: List[re.Pattern] = []
    conversation_id_patterns: List[re.Pattern] = []
    match_full_url = False
    ui_confidence = INFERRED  # Confidence for a model name read off the UI

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    # --- Entry point ---

    def extract(self, page: PageState, now: Optional[datetime] = None) -> Optional[ExtractionResult]:
        """
        Extract a conversation from a page snapshot.

        Returns:
            ExtractionResult, or None when the page holds no messages
        """
        now = now or _parse_iso(page.captured_at) or datetime.now(timezone.utc)

        turns, structured = self.extract_messages(page)
        if not turns:
            self.logger.info(f"No conversation detected on {self.platform} page")
            return None

        attribution = self.extract_model(page, now)
        result = ExtractionResult(
            platform=self.platform,
            title=self.extract_title(page),
            turns=turns,
            attribution=attribution,
            timestamp=self.extract_timestamp(page, now),
            external_conversation_id=self.extract_conversation_id(page),
            structured=structured,
        )
        self.logger.info(
            f"Extracted {len(turns)} turn(s) from {self.platform} "
            f"(model={attribution.model_id}, {attribution.confidence}/{attribution.source})"
        )
        return result

    # --- Title ---

    def extract_title(self, page: PageState) -> str:
        for selector in self.title_selectors:
            node = page.query(selector)
            text = node.text.strip() if node else ''
            if 0 < len(text) < MAX_TITLE and not self._is_product_name(text):
                return text

        if self.first_message_selector:
            node = page.query(self.first_message_selector)
            text = node.text.strip()[:TITLE_FROM_MESSAGE] if node else ''
            if text:
                return text + ('...' if len(text) >= TITLE_FROM_MESSAGE else '')

        return DEFAULT_TITLE

    def _is_product_name(self, text: str) -> bool:
        return bool(self.product_name) and self.product_name in text

    # --- Model attribution ---

    def attribution_signals(self) -> List[Callable[[PageState, datetime], Optional[AttributionInfo]]]:
        """Ordered signals, strongest first. The first non-None wins."""
        return [
            self.model_from_network,
            self.model_from_page_state,
            self.model_from_ui,
            self.model_from_storage,
            self.model_from_inference,
        ]

    def extract_model(self, page: PageState, now: Optional[datetime] = None) -> AttributionInfo:
        now = now or datetime.now(timezone.utc)
        for signal in self.attribution_signals():
            found = signal(page, now)
            if found:
                self.logger.debug(f"Model signal {signal.__name__}: {found.model_id}")
                return found
        return self.default_model()

    def model_from_network(self, page: PageState, now: datetime) -> Optional[AttributionInfo]:
        return None

    def model_from_page_state(self, page: PageState, now: datetime) -> Optional[AttributionInfo]:
        return None

    def model_from_ui(self, page: PageState, now: datetime) -> Optional[AttributionInfo]:
        """First model selector whose text looks like a model name."""
        for selector in self.model_selectors:
            for node in page.query_all(selector):
                text = node.text.strip()
                if self.is_model_name(text):
                    return AttributionInfo(
                        model_id=self.model_display_to_id(text),
                        model_display_name=text,
                        confidence=self.ui_confidence,
                        source=DOM_SCRAPE,
                    )
        return None

    def model_from_storage(self, page: PageState, now: datetime) -> Optional[AttributionInfo]:
        return None

    def model_from_inference(self, page: PageState, now: datetime) -> Optional[AttributionInfo]:
        return None

    def default_model(self) -> AttributionInfo:
        raise NotImplementedError

    def is_model_name(self, text: str) -> bool:
        return bool(text) and any(p.search(text) for p in self.model_name_patterns)

    def model_display_to_id(self, display_name: str) -> Optional[str]:
        raise NotImplementedError

    @staticmethod
    def _lookup_contained(display_name: str, mappings: Dict[str, str]) -> Optional[str]:
        """Id for the longest mapping key contained in display_name."""
        normalized = display_name.lower().strip()
        for key in sorted(mappings, key=len, reverse=True):
            if key in normalized:
                return mappings[key]
        return None

    # --- Messages ---

    def extract_messages(self, page: PageState) -> Tuple[List[Turn], bool]:
        """
        Collect turns from the page.

        Returns:
            Tuple of (turns, structured). structured is False when roles
            were only guessed from position.
        """
        turns, structured = self.collect_messages(page)
        turns = [t for t in turns if t.content.strip()]
        before = len(turns)
        turns = dedupe_turns(turns)
        if len(turns) != before:
            self.logger.debug(f"Dropped {before - len(turns)} echoed block(s)")
        turns = force_alternation(turns)
        return [
            Turn(role=t.role, content=t.content.strip(), source_index=i)
            for i, t in enumerate(turns)
        ], structured

    def collect_messages(self, page: PageState) -> Tuple[List[Turn], bool]:
        raise NotImplementedError

    @staticmethod
    def _alternating(texts: List[str]) -> List[Turn]:
        return [
            Turn(role=HUMAN if i % 2 == 0 else ASSISTANT, content=text, source_index=i)
            for i, text in enumerate(texts)
        ]

    # --- Timestamp ---

    def extract_timestamp(self, page: PageState, now: datetime) -> str:
        """Capture time; platforms that show timestamps override this."""
        return now.isoformat()

    # --- Conversation id ---

    def extract_conversation_id(self, page: PageState) -> Optional[str]:
        target = page.url if self.match_full_url else urlparse(page.url).path
        for pattern in self.conversation_id_patterns:
            match = pattern.search(target)
            if match:
                return match.group(1)
        return None


class ChatGPTExtractor(PlatformExtractor):
    platform = CHATGPT
    title_selectors = [
        '[data-testid="conversation-title"]',
        'h1',
        '.conversation-title',
        'nav a.active',
    ]
    model_selectors = [
        '[data-testid="model-switcher"]',
        'button[class*="model"]',
        '[class*="ModelSelector"]',
    ]
    model_name_patterns = [re.compile(r'gpt|o1|4o|turbo', re.IGNORECASE)]
    conversation_id_patterns = [
        re.compile(r'/c/([a-f0-9-]+)', re.IGNORECASE),
        re.compile(r'/chat/([a-f0-9-]+)', re.IGNORECASE),
    ]

    MODEL_IDS = {
        'gpt-4o': 'gpt-4o',
        'gpt-4': 'gpt-4',
        'gpt-4 turbo': 'gpt-4-turbo',
        'o1': 'o1-preview',
        'o1-mini': 'o1-mini',
    }
    STORAGE_KEY = 'oai/selectedModel'

    def model_display_to_id(self, display_name: str) -> Optional[str]:
        normalized = display_name.lower().strip()
        return self.MODEL_IDS.get(normalized, normalized)

    def model_from_storage(self, page: PageState, now: datetime) -> Optional[AttributionInfo]:
        stored = page.local_storage.get(self.STORAGE_KEY)
        if not stored:
            return None
        try:
            parsed = json.loads(stored)
        except ValueError:
            self.logger.debug(f"Unreadable {self.STORAGE_KEY} value, skipping")
            return None
        if not isinstance(parsed, dict) or not parsed.get('slug'):
            return None
        return AttributionInfo(
            model_id=parsed['slug'],
            model_display_name=parsed.get('title') or parsed['slug'],
            confidence=INFERRED,
            source=PAGE_STATE,
        )

    def default_model(self) -> AttributionInfo:
        return AttributionInfo('gpt-4', 'GPT-4', CLAIMED, DOM_SCRAPE)

    def collect_messages(self, page: PageState) -> Tuple[List[Turn], bool]:
        turns = []
        for i, node in enumerate(page.query_all('[data-message-author-role]')):
            role = HUMAN if node.get('data-message-author-role') == 'user' else ASSISTANT
            content = collect_paragraphs(
                node.query_all('[class*="markdown"] p, [class*="prose"] p')
            ) or node.text.strip()
            turns.append(Turn(role=role, content=content, source_index=i))
        if turns:
            return turns, True

        # Older UI
        for i, node in enumerate(page.query_all('[class*="ConversationItem"]')):
            role = HUMAN if node.query('[class*="user"]') is not None else ASSISTANT
            content = collect_paragraphs(node.query_all('[class*="prose"] p')) or node.text.strip()
            turns.append(Turn(role=role, content=content, source_index=i))
        return turns, True


class ClaudeExtractor(PlatformExtractor):
    platform = CLAUDE
    product_name = 'Claude'
    title_selectors = [
        'h1',
        '[data-testid="conversation-title"]',
        '.conversation-title',
        'title',
    ]
    first_message_selector = '[data-is-human="true"]'
    model_selectors = [
        '.whitespace-nowrap.select-none',
        '[data-testid="model-selector"]',
        '[class*="model"]',
    ]
    model_name_patterns = [
        re.compile(r'opus', re.IGNORECASE),
        re.compile(r'sonnet', re.IGNORECASE),
        re.compile(r'haiku', re.IGNORECASE),
        re.compile(r'claude', re.IGNORECASE),
        re.compile(r'\d+\.\d+'),
    ]
    conversation_id_patterns = [
        re.compile(r'/chat/([a-f0-9-]+)', re.IGNORECASE),
    ]
    ui_confidence = VERIFIED

    MODEL_IDS = {
        'opus 4.5': 'claude-opus-4-5-20251101',
        'sonnet 4.5': 'claude-sonnet-4-5-20250929',
        'haiku 4.5': 'claude-haiku-4-5-20251001',
        'sonnet 3.5': 'claude-3-5-sonnet-20241022',
        'haiku 3.5': 'claude-3-5-haiku-20241022',
        'opus 3': 'claude-3-opus-20240229',
    }

    def model_display_to_id(self, display_name: str) -> Optional[str]:
        return self._lookup_contained(display_name, self.MODEL_IDS)

    def model_from_network(self, page: PageState, now: datetime) -> Optional[AttributionInfo]:
        model = page.network.get('model')
        if not model:
            return None
        model_id, display = self._model_fields(model)
        return AttributionInfo(model_id, display, VERIFIED, NETWORK_INTERCEPT)

    def model_from_page_state(self, page: PageState, now: datetime) -> Optional[AttributionInfo]:
        next_data = page.page_data.get('__NEXT_DATA__')
        if isinstance(next_data, str):
            try:
                next_data = json.loads(next_data)
            except ValueError:
                self.logger.debug("Unreadable __NEXT_DATA__, skipping")
                return None
        if not isinstance(next_data, dict):
            return None
        model = ((next_data.get('props') or {}).get('pageProps') or {}).get('model')
        if not model:
            return None
        model_id, display = self._model_fields(model)
        return AttributionInfo(model_id, display, VERIFIED, PAGE_STATE)

    def _model_fields(self, model) -> Tuple[Optional[str], Optional[str]]:
        """(id, display name) from a model string or {id, displayName} mapping."""
        if isinstance(model, dict):
            model_id = model.get('id')
            display = model.get('displayName') or model.get('display_name') or model_id
            if not model_id and display:
                model_id = self.model_display_to_id(display)
            return model_id, display
        return str(model), str(model)

    def default_model(self) -> AttributionInfo:
        return AttributionInfo(None, 'Unknown', CLAIMED, DOM_SCRAPE)

    def collect_messages(self, page: PageState) -> Tuple[List[Turn], bool]:
        turns = []
        blocks = [(n, HUMAN) for n in page.query_all('[data-testid="user-message"]')]
        blocks += [(n, ASSISTANT) for n in page.query_all('div.font-claude-response')]
        blocks.sort(key=lambda pair: pair[0].position)

        for i, (node, role) in enumerate(blocks):
            if role == HUMAN:
                content = collect_paragraphs(node.query_all('p'))
            else:
                content = collect_paragraphs(node.query_all('.font-claude-response-body'))
            content = content or node.text.strip()
            if content:
                turns.append(Turn(role=role, content=content, source_index=i))
        if turns:
            return turns, True

        # Older UI: prose blocks in conversation order, roles unknown
        container = page.query('[class*="conversation"], main')
        if container is None:
            return [], False
        texts = [
            n.text.strip()
            for n in container.query_all('[class*="prose"], [class*="markdown"]')
            if n.text.strip()
        ]
        return self._alternating(texts), False

    def extract_timestamp(self, page: PageState, now: datetime) -> str:
        for node in page.query_all('time, [datetime], [class*="time"], [class*="date"]'):
            datetime_attr = node.get('datetime')
            if datetime_attr:
                return datetime_attr
            text = node.text.strip()
            if text:
                parsed = parse_relative_time(text, now)
                if parsed:
                    return parsed.isoformat()
        return now.isoformat()

    def extract_conversation_id(self, page: PageState) -> Optional[str]:
        found = super().extract_conversation_id(page)
        if found:
            return found
        node = page.query('[data-conversation-id], [data-chat-id]')
        if node is None:
            return None
        return node.get('data-conversation-id') or node.get('data-chat-id')


class GeminiExtractor(PlatformExtractor):
    platform = GEMINI
    product_name = 'Gemini'
    title_selectors = [
        '[data-conversation-title]',
        'h1',
        '[class*="title"]',
    ]
    model_selectors = [
        '[data-model-id]',
        '[class*="model-selector"]',
        'button[aria-label*="model"]',
    ]
    model_name_patterns = [re.compile(r'gemini|ultra|pro|flash|advanced', re.IGNORECASE)]
    conversation_id_patterns = [
        re.compile(r'/c/([a-zA-Z0-9_-]+)'),
        re.compile(r'/app/([a-zA-Z0-9_-]+)'),
    ]
    match_full_url = True

    MODEL_IDS = {
        'gemini advanced': 'gemini-1.5-pro',
        'gemini ultra': 'gemini-ultra',
        'gemini pro': 'gemini-1.5-pro',
        'gemini flash': 'gemini-1.5-flash',
        'gemini 2.0': 'gemini-2.0-flash',
    }
    FALLBACK_MODEL_ID = 'gemini-1.5-flash'

    def model_display_to_id(self, display_name: str) -> Optional[str]:
        return self._lookup_contained(display_name, self.MODEL_IDS) or self.FALLBACK_MODEL_ID

    def model_from_ui(self, page: PageState, now: datetime) -> Optional[AttributionInfo]:
        for selector in self.model_selectors:
            node = page.query(selector)
            if node is None:
                continue
            text = node.text.strip()
            model_id = node.get('data-model-id')
            if model_id:
                return AttributionInfo(model_id, text or model_id, INFERRED, DOM_SCRAPE)
            if self.is_model_name(text):
                return AttributionInfo(self.model_display_to_id(text), text, INFERRED, DOM_SCRAPE)
        return None

    def model_from_inference(self, page: PageState, now: datetime) -> Optional[AttributionInfo]:
        if 'advanced' in page.url:
            return AttributionInfo('gemini-1.5-pro', 'Gemini Advanced', INFERRED, DOM_SCRAPE)
        return None

    def default_model(self) -> AttributionInfo:
        return AttributionInfo(self.FALLBACK_MODEL_ID, 'Gemini', CLAIMED, DOM_SCRAPE)

    def collect_messages(self, page: PageState) -> Tuple[List[Turn], bool]:
        blocks = []
        for node in page.query_all('message-content.model-response-text, message-content .markdown'):
            blocks.append((node.position, ASSISTANT, node.text.strip()))
        for node in page.query_all('[data-test-id="prompt-text"], [data-test-id="chip-text"]'):
            blocks.append((node.position, HUMAN, node.text.strip()))
        for node in page.query_all('textarea[aria-label]'):
            blocks.append((node.position, HUMAN, node.text.strip() or (node.get('value') or '').strip()))

        blocks.sort(key=lambda block: block[0])
        turns = [
            Turn(role=role, content=content, source_index=i)
            for i, (_, role, content) in enumerate(blocks)
            if content
        ]
        return turns, True


class GrokExtractor(PlatformExtractor):
    platform = GROK
    product_name = 'Grok'
    title_selectors = [
        '[data-testid="conversation-title"]',
        'h1',
        '[class*="title"]',
    ]
    first_message_selector = '[class*="user-message"], [data-testid="user-message"]'
    model_selectors = [
        '[data-testid="model-selector"]',
        '[class*="model"]',
        'button[aria-label*="model"]',
    ]
    model_name_patterns = [re.compile(r'grok|fun|accurate', re.IGNORECASE)]
    conversation_id_patterns = [
        re.compile(r'/share/([a-zA-Z0-9]+)'),
        re.compile(r'/grok/([a-zA-Z0-9-]+)'),
        re.compile(r'/chat/([a-zA-Z0-9-]+)'),
    ]

    MODEL_IDS = {
        'grok 4': 'grok-4',
        'grok 4 heavy': 'grok-4-heavy',
        'grok 3': 'grok-3',
        'grok 3 mini': 'grok-3-mini',
        'grok 2': 'grok-2',
        'fun mode': 'grok-fun',
        'accurate mode': 'grok-accurate',
    }
    # Premium+ accounts default to Grok 4 from this date
    GROK_4_DEFAULT_FROM = datetime(2025, 7, 9, tzinfo=timezone.utc)
    USER_CLASS = re.compile(r'user|self|author', re.IGNORECASE)

    def model_display_to_id(self, display_name: str) -> Optional[str]:
        return self._lookup_contained(display_name, self.MODEL_IDS) or 'grok-4'

    def model_from_inference(self, page: PageState, now: datetime) -> Optional[AttributionInfo]:
        if now >= self.GROK_4_DEFAULT_FROM:
            return AttributionInfo('grok-4', 'Grok 4', INFERRED, DOM_SCRAPE)
        return None

    def default_model(self) -> AttributionInfo:
        return AttributionInfo('grok-3', 'Grok', CLAIMED, DOM_SCRAPE)

    def is_user_node(self, node: PageNode) -> bool:
        return (
            node.get('data-message-author-role') == 'user'
            or bool(self.USER_CLASS.search(' '.join(node.classes)))
        )

    def collect_messages(self, page: PageState) -> Tuple[List[Turn], bool]:
        nodes = page.query_all(
            '[data-testid="message"], [data-testid*="chat-message"], '
            '[class*="message"], [class*="Message"]'
        )
        turns = [
            Turn(role=HUMAN if self.is_user_node(n) else ASSISTANT,
                 content=n.text.strip(), source_index=i)
            for i, n in enumerate(nodes)
            if n.text.strip()
        ]
        if turns:
            return turns, True

        # Fallback: children of the conversation container, roles unknown
        container = page.query('[class*="conversation"], [class*="chat"]')
        if container is None:
            return [], False
        texts = [n.text.strip() for n in container.query_all('*') if n.text.strip()]
        return self._alternating(texts), False

    def extract_timestamp(self, page: PageState, now: datetime) -> str:
        for node in page.query_all('time[datetime]'):
            datetime_attr = node.get('datetime')
            if datetime_attr:
                return datetime_attr
        return now.isoformat()


EXTRACTORS = {
    CHATGPT: ChatGPTExtractor,
    CLAUDE: ClaudeExtractor,
    GEMINI: GeminiExtractor,
    GROK: GrokExtractor,
}


def detect_platform(url: str) -> Optional[str]:
    """Platform tag for a page URL, or None for unsupported pages."""
    url = url or ''
    if 'claude.ai' in url:
        return CLAUDE
    if 'chat.openai.com' in url or 'chatgpt.com' in url:
        return CHATGPT
    if 'gemini.google.com' in url:
        return GEMINI
    if 'x.com/i/grok' in url or 'grok.x.ai' in url or 'grok.com' in url:
        return GROK
    return None


def get_extractor(platform: str, logger: Optional[logging.Logger] = None) -> PlatformExtractor:
    """
    Extractor instance for a platform tag.

    Raises:
        ValueError: If the platform is not supported
    """
    try:
        extractor_class = EXTRACTORS[platform]
    except KeyError:
        raise ValueError(
            f"Unsupported platform: {platform!r}. Expected one of {sorted(EXTRACTORS)}"
        ) from None
    return extractor_class(logger=logger)
