"""
Page snapshots consumed by the platform extractors.

The extractors never see a browser document. They ask a PageState for
"everything matching this selector" and get back PageNode records with
text, attributes and nested results, captured ahead of time by whatever
hosts the page (a browser extension, a test fixture, a saved snapshot).

Snapshot file format (YAML or JSON):

    url: https://claude.ai/chat/0d3f...
    captured_at: 2026-01-28T10:00:00Z
    local_storage:
      oai/selectedModel: '{"slug": "gpt-4o", "title": "GPT-4o"}'
    page_data:
      __NEXT_DATA__: {props: {pageProps: {model: claude-sonnet-4-5}}}
    network:
      model: claude-opus-4-5-20251101
    nodes:
      '[data-testid="user-message"]':
        - text: Hello there
          attrs: {data-testid: user-message}
          children:
            p: [{text: Hello there}]

Nodes listed under a selector are in document order. Where a comma
selector spans several keys, results are merged by position, which
defaults to the order nodes appear in the snapshot.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)


@dataclass
class PageNode:
    """One element matched by a selector."""
    text: str = ""
    attrs: Dict[str, str] = field(default_factory=dict)
    classes: List[str] = field(default_factory=list)
    children: Dict[str, List['PageNode']] = field(default_factory=dict)
    position: int = 0

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Attribute value, or default."""
        value = self.attrs.get(name)
        return default if value is None else str(value)

    def query_all(self, selector: str) -> List['PageNode']:
        return _select(self.children, selector)

    def query(self, selector: str) -> Optional['PageNode']:
        found = self.query_all(selector)
        return found[0] if found else None


@dataclass
class PageState:
    """A captured page: address, matched nodes and stored state."""
    url: str = ""
    nodes: Dict[str, List[PageNode]] = field(default_factory=dict)
    local_storage: Dict[str, str] = field(default_factory=dict)
    page_data: Dict[str, Any] = field(default_factory=dict)
    network: Dict[str, Any] = field(default_factory=dict)
    captured_at: Optional[str] = None

    def query_all(self, selector: str) -> List[PageNode]:
        """All nodes for a selector; comma selectors merge in document order."""
        return _select(self.nodes, selector)

    def query(self, selector: str) -> Optional[PageNode]:
        found = self.query_all(selector)
        return found[0] if found else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PageState':
        """Build a PageState from a parsed snapshot mapping."""
        if not isinstance(data, dict):
            raise ValueError("Page snapshot must be a mapping")

        counter = [0]
        nodes = {
            selector: [_node_from_dict(n, counter) for n in (items or [])]
            for selector, items in (data.get('nodes') or {}).items()
        }
        captured_at = data.get('captured_at')
        return cls(
            url=str(data.get('url') or ''),
            nodes=nodes,
            local_storage={str(k): str(v) for k, v in (data.get('local_storage') or {}).items()},
            page_data=data.get('page_data') or {},
            network=data.get('network') or {},
            captured_at=str(captured_at) if captured_at is not None else None,
        )


def _node_from_dict(data: Union[Dict[str, Any], str], counter: List[int]) -> PageNode:
    if isinstance(data, str):
        data = {'text': data}
    counter[0] += 1
    position = data.get('position', counter[0])
    classes = data.get('classes') or []
    if isinstance(classes, str):
        classes = classes.split()
    children = {
        selector: [_node_from_dict(n, counter) for n in (items or [])]
        for selector, items in (data.get('children') or {}).items()
    }
    return PageNode(
        text=str(data.get('text') or ''),
        attrs={str(k): str(v) for k, v in (data.get('attrs') or {}).items()},
        classes=[str(c) for c in classes],
        children=children,
        position=int(position),
    )


def _select(index: Dict[str, List[PageNode]], selector: str) -> List[PageNode]:
    if selector in index:
        return list(index[selector])
    parts = [p.strip() for p in selector.split(',') if p.strip()]
    if len(parts) < 2:
        return []
    found = []
    seen = set()
    for part in parts:
        for node in index.get(part, []):
            if id(node) not in seen:
                seen.add(id(node))
                found.append(node)
    return sorted(found, key=lambda n: n.position)


def load_page_state(path: Path) -> PageState:
    """
    Load a page snapshot from a YAML or JSON file.

    Raises:
        ValueError: If the file does not hold a snapshot mapping
    """
    path = Path(path)
    raw = path.read_text(encoding='utf-8')
    if path.suffix == '.json':
        data = json.loads(raw)
    else:
        data = yaml.safe_load(raw)
    logger.debug(f"Loaded page snapshot: {path}")
    return PageState.from_dict(data or {})
