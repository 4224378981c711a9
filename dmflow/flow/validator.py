"""
Flow Validator - Structural validation of flow definitions
"""
import logging
from dataclasses import dataclass, field
from typing import List, Any, Dict, Union

from ..models.flow import Flow, FlowInput, NodeType, KEYWORD_TRIGGER_TYPES

logger = logging.getLogger(__name__)


@dataclass
class FlowValidationResult:
    """Outcome of validating a flow. All problems are reported at once."""
    valid: bool
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors)}


def _is_positive_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return value > 0


def validate_flow(flow: Union[Flow, FlowInput, Dict[str, Any]]) -> FlowValidationResult:
    """
    Validate a flow structure.

    Checks, in order:
    - at least one trigger node
    - at least one message or action node
    - every edge endpoint references an existing node
    - trigger nodes declare a trigger type (and keywords for comment/keyword)
    - message nodes have text or AI generation enabled
    - delay nodes have a positive numeric value

    Violations are accumulated rather than short-circuited.
    """
    if isinstance(flow, dict):
        flow = FlowInput(**flow)

    errors: List[str] = []

    trigger_nodes = [n for n in flow.nodes if n.type == NodeType.TRIGGER.value]
    if not trigger_nodes:
        errors.append("Flow must have at least one trigger node")

    acting_nodes = [
        n for n in flow.nodes
        if n.type in (NodeType.MESSAGE.value, NodeType.ACTION.value)
    ]
    if not acting_nodes:
        errors.append("Flow must have at least one message or action node")

    node_ids = {n.id for n in flow.nodes}
    for edge in flow.edges:
        if edge.source not in node_ids:
            errors.append(f"Edge references non-existent source node: {edge.source}")
        if edge.target not in node_ids:
            errors.append(f"Edge references non-existent target node: {edge.target}")

    for node in trigger_nodes:
        data = node.data
        if not data.trigger_type:
            errors.append(f"Trigger node {node.id} missing triggerType")
        if data.trigger_type in KEYWORD_TRIGGER_TYPES and not data.keywords:
            errors.append(f"Trigger node {node.id} requires at least one keyword")

    for node in flow.nodes:
        if node.type == NodeType.MESSAGE.value:
            if not node.data.text and not node.data.use_ai:
                errors.append(f"Message node {node.id} requires text content or AI enabled")

        elif node.type == NodeType.DELAY.value:
            if not _is_positive_number(node.data.value):
                errors.append(f"Delay node {node.id} requires a positive delay value")

    if errors:
        logger.debug(f"Flow validation found {len(errors)} error(s)")

    return FlowValidationResult(valid=not errors, errors=errors)
