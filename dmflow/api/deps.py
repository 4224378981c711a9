"""
Shared dependencies for API routes
"""
from functools import lru_cache

from ..core.config import settings
from ..flow.executor import FlowExecutor, create_flow_executor
from ..flow.inbound import InboundMessageRouter
from ..flow.scheduler import ScheduledExecutionProcessor
from ..services.accounts import account_service, AccountService
from ..services.database import db


@lru_cache()
def get_executor() -> FlowExecutor:
    return create_flow_executor()


@lru_cache()
def get_message_router() -> InboundMessageRouter:
    return InboundMessageRouter(db, get_executor())


@lru_cache()
def get_processor() -> ScheduledExecutionProcessor:
    return ScheduledExecutionProcessor(
        db,
        get_executor(),
        account_service,
        batch_size=settings.SWEEP_BATCH_SIZE,
        check_interval=settings.SWEEP_INTERVAL_SECONDS
    )


def get_account_service() -> AccountService:
    return account_service
