"""
Flow Module - resumable flow interpreter

- Structural validation of flow graphs
- Trigger matching and edge resolution
- Execution context helpers and condition evaluation
- Node execution and traversal (FlowExecutor)
- Delay ticket sweep (ScheduledExecutionProcessor)
- Reply routing into open executions (InboundMessageRouter)
"""

from .validator import FlowValidationResult, validate_flow
from .matcher import find_matching_triggers, get_next_nodes, extract_keywords, keywords_match
from .context import (
    create_initial_context,
    context_has_email,
    context_has_phone,
    context_matches_keyword,
    calculate_delay_ms,
    replace_variables,
)
from .extractor import extract_email, extract_phone
from .evaluator import ConditionEvaluator
from .result import NodeResult, NodeOutcome
from .executor import FlowExecutor, create_flow_executor, FLOW_DELETED_REASON
from .inbound import InboundMessageRouter, DispatchResult
from .scheduler import ScheduledExecutionProcessor

__all__ = [
    "FlowValidationResult", "validate_flow",
    "find_matching_triggers", "get_next_nodes", "extract_keywords", "keywords_match",
    "create_initial_context", "context_has_email", "context_has_phone",
    "context_matches_keyword", "calculate_delay_ms", "replace_variables",
    "extract_email", "extract_phone",
    "ConditionEvaluator",
    "NodeResult", "NodeOutcome",
    "FlowExecutor", "create_flow_executor", "FLOW_DELETED_REASON",
    "InboundMessageRouter", "DispatchResult",
    "ScheduledExecutionProcessor",
]
