"""
Pytest configuration and shared fixtures for dmflow tests.
"""
import pytest
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List, Optional
from itertools import count

from dmflow.flow.executor import FlowExecutor
from dmflow.flow.inbound import InboundMessageRouter
from dmflow.flow.scheduler import ScheduledExecutionProcessor
from dmflow.models import (
    Flow, FlowExecution, ScheduledExecution, ScheduledStatus,
    InstagramAccount, Lead, LeadCreate, OPEN_STATUSES
)
from dmflow.services.accounts import build_system_prompt, build_example_turns
from dmflow.services.database import ConcurrentModificationError


# ==================== Fakes ====================

class MutableClock:
    """Clock whose time only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class InMemoryFlowDatabase:
    """FlowDatabase stand-in with the same revision checks."""

    def __init__(self):
        self.flows: Dict[str, Flow] = {}
        self.executions: Dict[str, FlowExecution] = {}
        self.tickets: Dict[str, ScheduledExecution] = {}
        self.deleted_flow_ids: List[str] = []

    # ---- flows ----

    def add_flow(self, flow: Flow) -> Flow:
        self.flows[flow.id] = flow
        return flow

    async def get_flow(self, flow_id: str) -> Optional[Flow]:
        flow = self.flows.get(flow_id)
        return flow.model_copy(deep=True) if flow else None

    async def list_active_flows(self, account_id: str) -> List[Flow]:
        return [
            f.model_copy(deep=True) for f in self.flows.values()
            if f.account_id == account_id and f.is_active
        ]

    async def record_flow_trigger(self, flow: Flow, triggered_at: datetime) -> None:
        stored = self.flows.get(flow.id)
        if stored:
            stored.trigger_count += 1
            stored.last_triggered_at = triggered_at

    async def delete_flow(self, flow_id: str) -> bool:
        self.deleted_flow_ids.append(flow_id)
        return self.flows.pop(flow_id, None) is not None

    # ---- executions ----

    async def create_execution(self, execution: FlowExecution) -> FlowExecution:
        self.executions[execution.id] = execution.model_copy(deep=True)
        return execution

    async def get_execution(self, execution_id: str) -> Optional[FlowExecution]:
        stored = self.executions.get(execution_id)
        return stored.model_copy(deep=True) if stored else None

    async def save_execution(self, execution: FlowExecution) -> FlowExecution:
        stored = self.executions.get(execution.id)
        if stored is None or stored.revision != execution.revision:
            raise ConcurrentModificationError(execution.id, execution.revision)
        execution.revision += 1
        self.executions[execution.id] = execution.model_copy(deep=True)
        return execution

    async def list_open_executions(
        self,
        flow_id: Optional[str] = None,
        account_id: Optional[str] = None,
        sender_id: Optional[str] = None
    ) -> List[FlowExecution]:
        results = []
        for execution in self.executions.values():
            if execution.status not in OPEN_STATUSES:
                continue
            if flow_id and execution.flow_id != flow_id:
                continue
            if account_id and execution.account_id != account_id:
                continue
            if sender_id and execution.sender_id != sender_id:
                continue
            results.append(execution.model_copy(deep=True))
        return results

    # ---- scheduled executions ----

    async def create_scheduled_execution(self, ticket: ScheduledExecution) -> ScheduledExecution:
        self.tickets[ticket.id] = ticket.model_copy(deep=True)
        return ticket

    async def get_due_scheduled_executions(self, now: datetime, limit: int = 50) -> List[ScheduledExecution]:
        due = [
            t.model_copy(deep=True) for t in self.tickets.values()
            if t.status == ScheduledStatus.PENDING and t.execute_at <= now
        ]
        return due[:limit]

    async def claim_scheduled_execution(self, ticket_id: str) -> bool:
        ticket = self.tickets.get(ticket_id)
        if ticket is None or ticket.status != ScheduledStatus.PENDING:
            return False
        ticket.status = ScheduledStatus.PROCESSING
        return True

    async def finish_scheduled_execution(
        self,
        ticket_id: str,
        status: ScheduledStatus,
        processed_at: datetime,
        error: Optional[str] = None
    ) -> None:
        ticket = self.tickets[ticket_id]
        ticket.status = status
        ticket.processed_at = processed_at
        if error:
            ticket.error = error

    async def fail_pending_tickets_for_flow(self, flow_id: str, processed_at: datetime, error: str) -> int:
        failed = 0
        for ticket in self.tickets.values():
            if ticket.flow_id == flow_id and ticket.status == ScheduledStatus.PENDING:
                ticket.status = ScheduledStatus.FAILED
                ticket.processed_at = processed_at
                ticket.error = error
                failed += 1
        return failed


class FakeMessenger:
    """Records outgoing DMs instead of calling the Graph API."""

    def __init__(self, delivered: bool = True):
        self.delivered = delivered
        self.sent: List[Dict[str, Any]] = []

    async def send_direct_message(self, account, recipient_id, text):
        self.sent.append({"kind": "text", "recipient_id": recipient_id, "text": text})
        return self.delivered

    async def send_quick_reply_message(self, account, recipient_id, text, options):
        self.sent.append({
            "kind": "quick_reply",
            "recipient_id": recipient_id,
            "text": text,
            "options": options,
        })
        return self.delivered

    async def send_image_message(self, account, recipient_id, image_url):
        self.sent.append({"kind": "image", "recipient_id": recipient_id, "image_url": image_url})
        return self.delivered

    @property
    def texts(self) -> List[str]:
        return [m["text"] for m in self.sent if "text" in m]


class FakeAI:
    """Returns a canned reply and records prompts."""

    def __init__(self, reply: str = "Hi from the assistant"):
        self.reply = reply
        self.calls: List[Dict[str, Any]] = []

    async def generate_reply(self, system_prompt, turns, max_tokens=300):
        self.calls.append({"system_prompt": system_prompt, "turns": turns, "max_tokens": max_tokens})
        return self.reply


class FakeLeads:
    def __init__(self):
        self.records: List[LeadCreate] = []

    async def create_or_update_lead(self, record: LeadCreate) -> Lead:
        self.records.append(record)
        return Lead(id=f"lead-{len(self.records)}", **record.model_dump(exclude_none=True))


class FakeNotifier:
    def __init__(self):
        self.notifications: List[Dict[str, Any]] = []

    async def notify_flow_event(self, execution, notify_email=None):
        self.notifications.append({"execution_id": execution.id, "notify_email": notify_email})


class FakeAccounts:
    """Account lookups backed by a dict, prompts built for real."""

    def __init__(self, accounts: Optional[List[InstagramAccount]] = None):
        self.accounts = {a.id: a for a in (accounts or [])}

    async def get_account(self, account_id: str) -> Optional[InstagramAccount]:
        return self.accounts.get(account_id)

    def build_system_prompt(self, account):
        return build_system_prompt(account)

    def build_example_turns(self, account):
        return build_example_turns(account)


# ==================== Fixtures ====================

@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def database() -> InMemoryFlowDatabase:
    return InMemoryFlowDatabase()


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def ai() -> FakeAI:
    return FakeAI()


@pytest.fixture
def leads() -> FakeLeads:
    return FakeLeads()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def account() -> InstagramAccount:
    """Connected account with a small persona."""
    return InstagramAccount(**{
        "id": "acc-1",
        "userId": "owner-1",
        "username": "coffeeshop",
        "instagramAccountId": "ig-1",
        "accessToken": "IGAA-test-token",
        "aiPersonality": {
            "name": "Bean",
            "description": "The coffee shop assistant.",
            "systemPrompt": "Answer questions about our coffee.",
            "tone": "friendly",
            "goals": ["Share the menu", "Collect emails"],
            "exampleConversations": [
                {"userMessage": "Do you have oat milk?", "assistantResponse": "We do!"}
            ],
        },
        "settings": {"maxResponseLength": 200},
    })


@pytest.fixture
def accounts(account) -> FakeAccounts:
    return FakeAccounts([account])


@pytest.fixture
def executor(database, messenger, ai, leads, notifier, accounts, clock) -> FlowExecutor:
    ids = count(1)
    return FlowExecutor(
        database=database,
        messenger=messenger,
        ai=ai,
        leads=leads,
        notifier=notifier,
        accounts=accounts,
        clock=clock,
        id_factory=lambda: f"id-{next(ids)}"
    )


@pytest.fixture
def message_router(database, executor) -> InboundMessageRouter:
    return InboundMessageRouter(database, executor)


@pytest.fixture
def processor(database, executor, accounts) -> ScheduledExecutionProcessor:
    return ScheduledExecutionProcessor(database, executor, accounts, batch_size=50)


@pytest.fixture
def add_flow(database):
    """Store a flow given as a dashboard-style dict and return the model."""
    def _add(data: Dict[str, Any]) -> Flow:
        payload = {"accountId": "acc-1", "userId": "owner-1", "isActive": True}
        payload.update(data)
        return database.add_flow(Flow(**payload))
    return _add


# ==================== Sample flows ====================

@pytest.fixture
def welcome_flow_dict() -> Dict[str, Any]:
    """trigger(keyword: price) -> message"""
    return {
        "id": "flow-welcome",
        "name": "Price reply",
        "nodes": [
            {
                "id": "trigger",
                "type": "trigger",
                "data": {"triggerType": "keyword", "keywords": ["price"]},
                "position": {"x": 0, "y": 0},
            },
            {
                "id": "welcome",
                "type": "message",
                "data": {"messageType": "text", "text": "Hey {username}! Prices are on our menu."},
                "position": {"x": 0, "y": 100},
            },
        ],
        "edges": [{"id": "e1", "source": "trigger", "target": "welcome"}],
    }


@pytest.fixture
def delay_flow_dict() -> Dict[str, Any]:
    """trigger(comment: free) -> delay(5 minutes) -> message"""
    return {
        "id": "flow-delay",
        "name": "Delayed follow up",
        "nodes": [
            {"id": "trigger", "type": "trigger", "data": {"triggerType": "comment", "keywords": ["free"]}},
            {"id": "wait", "type": "delay", "data": {"delayType": "minutes", "value": 5}},
            {"id": "followup", "type": "message", "data": {"messageType": "text", "text": "Still interested, {name}?"}},
        ],
        "edges": [
            {"id": "e1", "source": "trigger", "target": "wait"},
            {"id": "e2", "source": "wait", "target": "followup"},
        ],
    }


@pytest.fixture
def email_branch_flow_dict() -> Dict[str, Any]:
    """trigger -> collect_email(wait) -> has_email ? thanks -> lead : retry"""
    return {
        "id": "flow-email",
        "name": "Email capture",
        "nodes": [
            {"id": "trigger", "type": "trigger", "data": {"triggerType": "keyword", "keywords": ["guide"]}},
            {
                "id": "ask",
                "type": "action",
                "data": {"actionType": "collect_email", "waitForReply": True},
            },
            {"id": "check", "type": "condition", "data": {"conditionType": "has_email"}},
            {"id": "thanks", "type": "message", "data": {"text": "Sent to {email}!"}},
            {"id": "lead", "type": "action", "data": {"actionType": "create_lead"}},
            {"id": "retry", "type": "message", "data": {"text": "No email found."}},
        ],
        "edges": [
            {"id": "e1", "source": "trigger", "target": "ask"},
            {"id": "e2", "source": "ask", "target": "check"},
            {"id": "e3", "source": "check", "target": "thanks", "sourceHandle": "true"},
            {"id": "e4", "source": "check", "target": "retry", "sourceHandle": "false"},
            {"id": "e5", "source": "thanks", "target": "lead"},
        ],
    }
