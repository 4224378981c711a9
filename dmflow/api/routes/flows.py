"""
Flow API routes - validation, event ingestion and sweep trigger
"""
import logging
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ...models import FlowInput, TriggerType, InstagramAccount
from ...flow.executor import FlowExecutor
from ...flow.inbound import InboundMessageRouter
from ...flow.scheduler import ScheduledExecutionProcessor
from ...flow.validator import validate_flow
from ...services.accounts import AccountService
from ..deps import get_executor, get_message_router, get_processor, get_account_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/flows", tags=["flows"])


class TriggerEventRequest(BaseModel):
    """Normalized social event that may start flows"""
    account_id: str
    trigger_type: TriggerType
    sender_id: str
    sender_username: Optional[str] = None
    post_id: Optional[str] = None
    comment_text: Optional[str] = None
    story_id: Optional[str] = None
    message_text: Optional[str] = None


class InboundMessageRequest(BaseModel):
    """Direct message from a sender"""
    account_id: str
    sender_id: str
    text: str
    sender_username: Optional[str] = None
    quick_reply_payload: Optional[str] = None


async def _load_account(accounts: AccountService, account_id: str) -> InstagramAccount:
    account = await accounts.get_account(account_id)
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


@router.post("/validate")
async def validate(flow: FlowInput):
    """Validate a flow definition, reporting every problem at once"""
    result = validate_flow(flow)
    if not result.valid:
        return JSONResponse(status_code=422, content=result.to_dict())
    return result.to_dict()


@router.post("/trigger")
async def trigger(
    event: TriggerEventRequest,
    executor: FlowExecutor = Depends(get_executor),
    accounts: AccountService = Depends(get_account_service)
):
    """Start matching flows for an inbound event"""
    account = await _load_account(accounts, event.account_id)
    executions = await executor.trigger_flows(
        account,
        event.trigger_type.value,
        event.sender_id,
        event.sender_username,
        post_id=event.post_id,
        comment_text=event.comment_text,
        story_id=event.story_id,
        message_text=event.message_text
    )
    return {"started": [e.model_dump(mode="json") for e in executions]}


@router.post("/messages")
async def inbound_message(
    message: InboundMessageRequest,
    message_router: InboundMessageRouter = Depends(get_message_router),
    accounts: AccountService = Depends(get_account_service)
):
    """Feed a DM into the sender's open executions (or keyword triggers)"""
    account = await _load_account(accounts, message.account_id)
    result = await message_router.dispatch_message(
        account,
        message.sender_id,
        message.text,
        sender_username=message.sender_username,
        quick_reply_payload=message.quick_reply_payload
    )
    return {
        "handled": [e.model_dump(mode="json") for e in result.handled],
        "started": [e.model_dump(mode="json") for e in result.started],
    }


@router.delete("/{flow_id}")
async def delete_flow(flow_id: str, executor: FlowExecutor = Depends(get_executor)):
    """Delete a flow, failing its open executions"""
    failed = await executor.delete_flow(flow_id)
    return {"deleted": True, "failed_executions": failed}


@router.post("/scheduled/process")
async def process_scheduled(processor: ScheduledExecutionProcessor = Depends(get_processor)):
    """Run one sweep over due delay tickets (called by an external cron)"""
    processed = await processor.process_scheduled_executions()
    return {"processed": processed}
