"""
Trigger Matcher - selects trigger nodes for an inbound event and resolves edges
"""
import re
import logging
from typing import Optional, List, Sequence

from ..models.flow import Flow, FlowNode, NodeType, TriggerType, KEYWORD_TRIGGER_TYPES, BranchHandle

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def extract_keywords(text: Optional[str]) -> List[str]:
    """Split comment or message text into candidate keywords"""
    if not text:
        return []
    return [token for token in _WHITESPACE.split(text) if token]


def keywords_match(event_keywords: Sequence[str], trigger_keywords: Sequence[str]) -> bool:
    """
    True when any event keyword contains, or is contained in, any trigger keyword.

    Comparison is case-insensitive. Blank strings never match.
    """
    for raw_event in event_keywords:
        event = (raw_event or "").strip().lower()
        if not event:
            continue
        for raw_trigger in trigger_keywords:
            trigger = (raw_trigger or "").strip().lower()
            if not trigger:
                continue
            if trigger in event or event in trigger:
                return True
    return False


def find_matching_triggers(
    flow: Flow,
    trigger_type: str,
    keywords: Optional[Sequence[str]] = None,
    post_id: Optional[str] = None
) -> List[FlowNode]:
    """
    Find the trigger node(s) that match an event.

    Args:
        flow: Flow to search
        trigger_type: Event type (comment, keyword, story_reply, ...)
        keywords: Tokens from the inbound comment or message
        post_id: Post the comment was left on

    Returns:
        Matching trigger nodes in node order. Callers use the first one.
    """
    trigger_type = getattr(trigger_type, "value", trigger_type)
    matches: List[FlowNode] = []

    for node in flow.nodes:
        if node.type != NodeType.TRIGGER.value:
            continue

        data = node.data
        if data.trigger_type != trigger_type:
            continue

        # Post allow-list for comment triggers
        if trigger_type == TriggerType.COMMENT.value and data.post_ids:
            if not post_id or post_id not in data.post_ids:
                continue

        if trigger_type in KEYWORD_TRIGGER_TYPES and data.keywords:
            if not keywords or not keywords_match(keywords, data.keywords):
                continue

        matches.append(node)

    return matches


def get_next_nodes(
    flow: Flow,
    node_id: str,
    condition_result: Optional[bool] = None
) -> List[FlowNode]:
    """
    Resolve the nodes reachable through the outgoing edges of node_id.

    Nodes are returned in edge order. When condition_result is given, edges
    carrying a branch handle are only followed if the handle matches;
    edges without a handle are always followed.
    """
    wanted_handle = None
    if condition_result is not None:
        wanted_handle = BranchHandle.TRUE.value if condition_result else BranchHandle.FALSE.value

    next_nodes: List[FlowNode] = []
    seen = set()
    for edge in flow.edges:
        if edge.source != node_id:
            continue
        if wanted_handle is not None and edge.source_handle and edge.source_handle != wanted_handle:
            continue
        if edge.target in seen:
            continue

        target = flow.get_node(edge.target)
        if target is None:
            logger.warning(f"Edge {edge.id} points to missing node {edge.target}")
            continue

        seen.add(edge.target)
        next_nodes.append(target)

    return next_nodes
