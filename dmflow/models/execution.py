"""
Execution models - per-sender progress through a flow and delay tickets
"""
from enum import Enum
from typing import Optional, List, Dict, Union
from datetime import datetime
from pydantic import BaseModel, Field

from .flow import CAMEL_CONFIG


class ExecutionStatus(str, Enum):
    """Status of a flow execution"""
    ACTIVE = "active"
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"


# Executions in these states are never mutated again (except forced failure
# when the owning flow is deleted, which only applies to OPEN_STATUSES).
TERMINAL_STATUSES = {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED}
OPEN_STATUSES = {ExecutionStatus.ACTIVE, ExecutionStatus.WAITING}


class ScheduledStatus(str, Enum):
    """Status of a delay ticket"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


CustomFieldValue = Union[bool, int, float, str]


class ExecutionContext(BaseModel):
    """Mutable working memory of one traversal"""

    model_config = CAMEL_CONFIG

    # Collected user data
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None

    tags: List[str] = []
    custom_fields: Dict[str, CustomFieldValue] = {}

    # Last inbound text, used by keyword_match / user_replied
    last_user_message: Optional[str] = None

    # Trigger correlation
    trigger_type: Optional[str] = None
    trigger_post_id: Optional[str] = None
    trigger_comment_text: Optional[str] = None
    trigger_story_id: Optional[str] = None

    # Quick reply / button selections
    selected_options: List[str] = []


class FlowExecution(BaseModel):
    """One sender's run through one flow"""

    model_config = CAMEL_CONFIG

    id: str
    flow_id: str
    user_id: Optional[str] = None
    account_id: str
    sender_id: str
    sender_username: Optional[str] = None

    # Position in the graph
    current_node_id: str
    previous_node_ids: List[str] = []

    status: ExecutionStatus = ExecutionStatus.ACTIVE
    context: ExecutionContext = Field(default_factory=ExecutionContext)

    # Set while parked on a delay ticket
    scheduled_at: Optional[datetime] = None
    scheduled_node_id: Optional[str] = None

    last_error: Optional[str] = None

    # Optimistic concurrency token, bumped on every write
    revision: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_waiting_on_delay(self) -> bool:
        """Parked on a delay ticket (only the sweep may resume it)"""
        return self.status == ExecutionStatus.WAITING and self.scheduled_node_id is not None

    @property
    def is_waiting_on_input(self) -> bool:
        """Parked until the sender replies"""
        return self.status == ExecutionStatus.WAITING and self.scheduled_node_id is None


class ScheduledExecution(BaseModel):
    """Durable wake-up ticket created by a delay node"""

    model_config = CAMEL_CONFIG

    id: str
    execution_id: str
    flow_id: str
    node_id: str
    account_id: str
    sender_id: str
    execute_at: datetime
    status: ScheduledStatus = ScheduledStatus.PENDING
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    error: Optional[str] = None
