"""
Flow graph models - nodes, edges and the flow document
"""
from enum import Enum
from typing import Optional, Any, List, Dict
from datetime import datetime
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

# Documents authored by the dashboard use camelCase keys, Supabase rows use
# snake_case. Both are accepted on input.
CAMEL_CONFIG = {
    "extra": "allow",
    "alias_generator": to_camel,
    "populate_by_name": True,
}


class NodeType(str, Enum):
    """Flow node types"""
    TRIGGER = "trigger"
    MESSAGE = "message"
    CONDITION = "condition"
    DELAY = "delay"
    ACTION = "action"


class TriggerType(str, Enum):
    """Inbound events that can start a flow"""
    COMMENT = "comment"
    KEYWORD = "keyword"
    STORY_REPLY = "story_reply"
    STORY_MENTION = "story_mention"
    NEW_FOLLOWER = "new_follower"


# Trigger types that must declare keywords
KEYWORD_TRIGGER_TYPES = {TriggerType.COMMENT.value, TriggerType.KEYWORD.value}


class MessageType(str, Enum):
    """How a message node is delivered"""
    TEXT = "text"
    QUICK_REPLIES = "quick_replies"
    BUTTONS = "buttons"
    IMAGE = "image"


class ConditionType(str, Enum):
    """Predicates available to CONDITION nodes"""
    KEYWORD_MATCH = "keyword_match"
    HAS_EMAIL = "has_email"
    HAS_PHONE = "has_phone"
    CUSTOM_FIELD = "custom_field"
    USER_REPLIED = "user_replied"


class DelayUnit(str, Enum):
    """Units for DELAY nodes"""
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"


class ActionType(str, Enum):
    """Side effects available to ACTION nodes"""
    COLLECT_EMAIL = "collect_email"
    COLLECT_PHONE = "collect_phone"
    ADD_TAG = "add_tag"
    REMOVE_TAG = "remove_tag"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    CREATE_LEAD = "create_lead"
    NOTIFY = "notify"


class BranchHandle(str, Enum):
    """Edge handles leaving a CONDITION node"""
    TRUE = "true"
    FALSE = "false"


class QuickReplyButton(BaseModel):
    """Button shown under a message"""

    model_config = CAMEL_CONFIG

    label: str
    payload: Optional[str] = None


class NodeData(BaseModel):
    """Type specific node payload - FLEXIBLE to accept dashboard data"""

    model_config = CAMEL_CONFIG

    # ---- TRIGGER ----
    trigger_type: Optional[str] = None
    keywords: Optional[List[str]] = None  # also used by keyword_match conditions
    post_ids: Optional[List[str]] = None
    reply_to_story: Optional[bool] = None

    # ---- MESSAGE ----
    message_type: Optional[str] = MessageType.TEXT.value
    text: Optional[str] = None
    quick_replies: Optional[List[str]] = None
    buttons: Optional[List[QuickReplyButton]] = None
    image_url: Optional[str] = None
    use_ai: Optional[bool] = Field(default=False, alias="useAI")
    ai_prompt: Optional[str] = None

    # ---- CONDITION ----
    condition_type: Optional[str] = None

    # ---- DELAY ----
    delay_type: Optional[str] = DelayUnit.MINUTES.value

    # ---- CONDITION (field name) / DELAY (amount) ----
    value: Optional[Any] = None

    # ---- ACTION ----
    action_type: Optional[str] = None
    tag: Optional[str] = None
    custom_message: Optional[str] = None
    notify_email: Optional[str] = None
    wait_for_reply: Optional[bool] = False  # collect_email / collect_phone only


class FlowNode(BaseModel):
    """Flow node definition"""

    model_config = CAMEL_CONFIG

    id: str
    type: str  # trigger, message, condition, delay, action
    data: NodeData = Field(default_factory=NodeData)
    position: Optional[Dict[str, Any]] = None  # {x, y} for the visual builder only


class FlowEdge(BaseModel):
    """Flow edge definition"""

    model_config = CAMEL_CONFIG

    id: Optional[str] = None
    source: str
    target: str
    source_handle: Optional[str] = None  # "true" / "false" for condition branches


class Flow(BaseModel):
    """Flow document"""

    model_config = CAMEL_CONFIG

    id: str
    user_id: Optional[str] = None
    account_id: str
    name: str = ""
    description: Optional[str] = None
    nodes: List[FlowNode] = []
    edges: List[FlowEdge] = []
    is_active: bool = True
    trigger_count: int = 0
    last_triggered_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def get_node(self, node_id: Optional[str]) -> Optional[FlowNode]:
        """Find a node by ID"""
        if node_id is None:
            return None
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


class FlowInput(BaseModel):
    """Flow definition submitted for validation or save"""

    model_config = CAMEL_CONFIG

    id: Optional[str] = None
    account_id: Optional[str] = None
    name: str = ""
    description: Optional[str] = None
    nodes: List[FlowNode] = []
    edges: List[FlowEdge] = []
    is_active: Optional[bool] = None
