"""
Inbound Message Router - feeds sender replies into open executions
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, List

from ..models import FlowExecution, ExecutionStatus, InstagramAccount, TriggerType
from ..services.database import ConcurrentModificationError
from .context import AWAITING_EMAIL, AWAITING_PHONE
from .executor import FlowExecutor
from .extractor import extract_email, extract_phone

logger = logging.getLogger(__name__)

# Attempts to apply one message when the execution is written concurrently
MAX_MESSAGE_ATTEMPTS = 3


@dataclass
class DispatchResult:
    """What happened to one inbound message"""
    handled: List[FlowExecution] = field(default_factory=list)
    started: List[FlowExecution] = field(default_factory=list)


class InboundMessageRouter:
    """
    Applies a sender's reply to their executions.

    The reply always updates the context (last message, awaited email or
    phone, quick reply selections). The execution is only resumed when it
    is waiting on input; executions parked on a delay ticket are left for
    the sweep.
    """

    def __init__(self, database, executor: FlowExecutor, max_attempts: int = MAX_MESSAGE_ATTEMPTS):
        self.db = database
        self.executor = executor
        self.max_attempts = max_attempts

    def _apply_message(
        self,
        execution: FlowExecution,
        message_text: str,
        quick_reply_payload: Optional[str] = None
    ) -> None:
        context = execution.context
        context.last_user_message = message_text

        if context.custom_fields.get(AWAITING_EMAIL):
            email = extract_email(message_text)
            if email:
                context.email = email
                context.custom_fields[AWAITING_EMAIL] = False
                logger.info(f"Collected email for execution {execution.id}")

        if context.custom_fields.get(AWAITING_PHONE):
            phone = extract_phone(message_text)
            if phone:
                context.phone = phone
                context.custom_fields[AWAITING_PHONE] = False
                logger.info(f"Collected phone for execution {execution.id}")

        if quick_reply_payload:
            context.selected_options.append(message_text)

    async def handle_user_message(
        self,
        account: InstagramAccount,
        execution: FlowExecution,
        message_text: str,
        quick_reply_payload: Optional[str] = None
    ) -> FlowExecution:
        """
        Handle an incoming user message during a flow.

        Args:
            account: Account the message was sent to
            execution: The sender's execution
            message_text: Message text
            quick_reply_payload: Payload when the message is a quick reply tap

        Returns:
            The execution as last written
        """
        logger.info(f"User message during execution {execution.id}: {message_text[:50]}")

        for attempt in range(1, self.max_attempts + 1):
            if execution.is_terminal:
                logger.debug(f"Execution {execution.id} is {execution.status.value}, message ignored")
                return execution

            self._apply_message(execution, message_text, quick_reply_payload)

            resume = execution.is_waiting_on_input
            if resume:
                # Claimed in the same write as the context update
                execution.status = ExecutionStatus.ACTIVE

            execution.updated_at = self.executor.clock()
            try:
                await self.db.save_execution(execution)
            except ConcurrentModificationError:
                logger.info(
                    f"Execution {execution.id} changed while applying a message "
                    f"(attempt {attempt}/{self.max_attempts}), reloading"
                )
                reloaded = await self.db.get_execution(execution.id)
                if reloaded is None:
                    logger.warning(f"Execution {execution.id} disappeared")
                    return execution
                execution = reloaded
                continue

            if resume:
                await self.executor.continue_execution(account, execution)
            return execution

        logger.error(f"Gave up applying message to execution {execution.id} after {self.max_attempts} attempts")
        return execution

    async def route_message(
        self,
        account: InstagramAccount,
        sender_id: str,
        message_text: str,
        quick_reply_payload: Optional[str] = None
    ) -> List[FlowExecution]:
        """Feed a message into every open execution of the sender on this account"""
        executions = await self.db.list_open_executions(account_id=account.id, sender_id=sender_id)

        handled: List[FlowExecution] = []
        for execution in executions:
            handled.append(
                await self.handle_user_message(account, execution, message_text, quick_reply_payload)
            )
        return handled

    async def dispatch_message(
        self,
        account: InstagramAccount,
        sender_id: str,
        message_text: str,
        sender_username: Optional[str] = None,
        quick_reply_payload: Optional[str] = None
    ) -> DispatchResult:
        """
        Entry point for an inbound DM.

        Open executions of the sender receive the message. When there are
        none, the message is matched against keyword triggers instead.
        """
        result = DispatchResult()
        result.handled = await self.route_message(account, sender_id, message_text, quick_reply_payload)

        if not result.handled:
            result.started = await self.executor.trigger_flows(
                account,
                TriggerType.KEYWORD.value,
                sender_id,
                sender_username,
                message_text=message_text
            )

        return result
