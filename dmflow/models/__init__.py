from .flow import (
    # Enums
    NodeType,
    TriggerType,
    MessageType,
    ConditionType,
    DelayUnit,
    ActionType,
    BranchHandle,
    KEYWORD_TRIGGER_TYPES,

    # Graph models
    QuickReplyButton,
    NodeData,
    FlowNode,
    FlowEdge,
    Flow,
    FlowInput,
)
from .execution import (
    ExecutionStatus,
    ScheduledStatus,
    TERMINAL_STATUSES,
    OPEN_STATUSES,
    ExecutionContext,
    FlowExecution,
    ScheduledExecution,
)
from .account import InstagramAccount, AIPersonality, AccountSettings, ExampleConversation
from .lead import Lead, LeadCreate

__all__ = [
    "NodeType", "TriggerType", "MessageType", "ConditionType", "DelayUnit",
    "ActionType", "BranchHandle", "KEYWORD_TRIGGER_TYPES",
    "QuickReplyButton", "NodeData", "FlowNode", "FlowEdge", "Flow", "FlowInput",
    "ExecutionStatus", "ScheduledStatus", "TERMINAL_STATUSES", "OPEN_STATUSES",
    "ExecutionContext", "FlowExecution", "ScheduledExecution",
    "InstagramAccount", "AIPersonality", "AccountSettings", "ExampleConversation",
    "Lead", "LeadCreate",
]
