"""
Flow Executor - walks a flow graph for one sender at a time

The executor holds no per-account state: the account is passed to every
call, and all collaborators (persistence, messaging, AI, leads,
notifications) are injected so the interpreter can run against fakes.
"""
import logging
import uuid
from datetime import timedelta
from typing import Optional, Dict, List, Callable, Awaitable

from ..core.clock import Clock, utc_now
from ..models import (
    Flow, FlowNode, NodeType, MessageType, ActionType,
    FlowExecution, ExecutionStatus, ScheduledExecution, ScheduledStatus,
    InstagramAccount, LeadCreate
)
from ..services.database import ConcurrentModificationError
from .context import (
    create_initial_context, calculate_delay_ms, replace_variables,
    AWAITING_EMAIL, AWAITING_PHONE, SUBSCRIBED
)
from .evaluator import ConditionEvaluator
from .matcher import find_matching_triggers, get_next_nodes, extract_keywords
from .result import (
    NodeResult, NodeOutcome,
    continue_result, branch_result, suspend_result, failed_result
)

logger = logging.getLogger(__name__)

FLOW_DELETED_REASON = "Flow deleted"
FLOW_NOT_FOUND_REASON = "Flow not found"

DEFAULT_EMAIL_REQUEST = "I'd love to send you more info! What's your email address?"
DEFAULT_PHONE_REQUEST = "What's the best number to reach you at?"

AI_MESSAGE_MAX_TOKENS = 200

# Guards against graphs whose edges form a cycle with no delay in it
MAX_STEPS_PER_RUN = 100

# Attempts when force-failing executions that are being written concurrently
FORCE_FAIL_ATTEMPTS = 3

NodeHandler = Callable[[InstagramAccount, FlowNode, FlowExecution, Flow], Awaitable[NodeResult]]


def _new_id() -> str:
    return uuid.uuid4().hex


class FlowExecutor:
    """
    Resumable flow interpreter.

    Traversal:
    - start at the matched trigger node
    - resolve outgoing edges of the current node (by branch handle after a
      condition) and execute the targets in edge order
    - persist the execution after every node
    - stop when a node suspends (delay ticket, waiting on a reply), fails,
      or no edges remain (completed)
    """

    def __init__(
        self,
        database,
        messenger,
        ai,
        leads,
        notifier,
        accounts,
        clock: Optional[Clock] = None,
        id_factory: Optional[Callable[[], str]] = None
    ):
        """
        Args:
            database: FlowDatabase compatible persistence
            messenger: InstagramService compatible gateway
            ai: AIService compatible reply generator
            leads: LeadService compatible lead store
            notifier: NotificationService compatible notifier
            accounts: provides build_system_prompt / build_example_turns
            clock: returns the current aware UTC datetime
            id_factory: returns new document IDs
        """
        self.db = database
        self.messenger = messenger
        self.ai = ai
        self.leads = leads
        self.notifier = notifier
        self.accounts = accounts
        self.clock = clock or utc_now
        self.new_id = id_factory or _new_id
        self.evaluator = ConditionEvaluator()

        self._handlers: Dict[str, NodeHandler] = {
            NodeType.TRIGGER.value: self._handle_trigger,
            NodeType.MESSAGE.value: self._handle_message,
            NodeType.CONDITION.value: self._handle_condition,
            NodeType.DELAY.value: self._handle_delay,
            NodeType.ACTION.value: self._handle_action,
        }

    # ==================== ENTRY POINTS ====================

    async def trigger_flows(
        self,
        account: InstagramAccount,
        trigger_type: str,
        sender_id: str,
        sender_username: Optional[str] = None,
        post_id: Optional[str] = None,
        comment_text: Optional[str] = None,
        story_id: Optional[str] = None,
        message_text: Optional[str] = None
    ) -> List[FlowExecution]:
        """
        Start every active flow of the account that has a matching trigger.

        Keywords are the whitespace separated tokens of the comment text,
        or of the message text when there is no comment.

        Returns:
            Executions started (one per matching flow at most)
        """
        keywords = extract_keywords(comment_text) or extract_keywords(message_text)
        flows = await self.db.list_active_flows(account.id)

        executions: List[FlowExecution] = []
        for flow in flows:
            if not find_matching_triggers(flow, trigger_type, keywords, post_id):
                continue

            try:
                execution = await self.start_flow(
                    account,
                    flow,
                    sender_id,
                    sender_username,
                    trigger_type,
                    post_id=post_id,
                    comment_text=comment_text,
                    story_id=story_id,
                    keywords=keywords
                )
            except Exception as e:
                logger.exception(f"Error starting flow {flow.id} for sender {sender_id}: {e}")
                continue

            if execution:
                executions.append(execution)

        logger.info(
            f"Trigger {getattr(trigger_type, 'value', trigger_type)} from {sender_id} "
            f"started {len(executions)} execution(s) on account {account.id}"
        )
        return executions

    async def start_flow(
        self,
        account: InstagramAccount,
        flow: Flow,
        sender_id: str,
        sender_username: Optional[str],
        trigger_type: str,
        post_id: Optional[str] = None,
        comment_text: Optional[str] = None,
        story_id: Optional[str] = None,
        keywords: Optional[List[str]] = None
    ) -> Optional[FlowExecution]:
        """
        Start a flow execution for a sender.

        Only the first matching trigger node starts an execution.

        Returns:
            The execution, or None when no trigger node matches
        """
        triggers = find_matching_triggers(flow, trigger_type, keywords, post_id)
        if not triggers:
            logger.debug(f"No matching trigger nodes in flow {flow.id}")
            return None

        trigger_node = triggers[0]
        now = self.clock()

        execution = FlowExecution(
            id=self.new_id(),
            flow_id=flow.id,
            user_id=flow.user_id,
            account_id=flow.account_id,
            sender_id=sender_id,
            sender_username=sender_username,
            current_node_id=trigger_node.id,
            previous_node_ids=[],
            status=ExecutionStatus.ACTIVE,
            context=create_initial_context(
                trigger_type,
                post_id=post_id,
                comment_text=comment_text,
                story_id=story_id
            ),
            created_at=now,
            updated_at=now,
        )
        execution = await self.db.create_execution(execution)
        logger.info(f"Starting flow {flow.id} for sender {sender_id} (execution {execution.id})")

        try:
            await self.db.record_flow_trigger(flow, now)
        except Exception as e:
            logger.error(f"Failed to update trigger count of flow {flow.id}: {e}")

        await self.continue_execution(account, execution, flow)
        return execution

    async def continue_execution(
        self,
        account: InstagramAccount,
        execution: FlowExecution,
        flow: Optional[Flow] = None
    ) -> None:
        """
        Continue executing a flow from the execution's current node.

        A concurrent write to the execution aborts this run; whoever wrote
        it owns the execution from here.
        """
        try:
            await self._traverse(account, execution, flow)
        except ConcurrentModificationError as e:
            logger.warning(f"Traversal of execution {execution.id} aborted: {e}")

    async def delete_flow(self, flow_id: str) -> int:
        """
        Delete a flow and force-fail its open executions.

        Pending delay tickets of the flow are failed as well, so the sweep
        never resumes them. Completed/failed executions are left untouched.

        Returns:
            Number of executions force-failed
        """
        now = self.clock()
        failed = 0

        for execution in await self.db.list_open_executions(flow_id=flow_id):
            if await self._force_fail(execution, FLOW_DELETED_REASON):
                failed += 1

        tickets = await self.db.fail_pending_tickets_for_flow(flow_id, now, FLOW_DELETED_REASON)
        await self.db.delete_flow(flow_id)

        logger.info(f"Flow {flow_id} deleted: {failed} execution(s) and {tickets} ticket(s) failed")
        return failed

    # ==================== TRAVERSAL ====================

    async def _traverse(
        self,
        account: InstagramAccount,
        execution: FlowExecution,
        flow: Optional[Flow] = None
    ) -> None:
        if flow is None:
            flow = await self.db.get_flow(execution.flow_id)
            if flow is None:
                logger.error(f"Flow {execution.flow_id} not found")
                await self.fail_execution(execution, FLOW_NOT_FOUND_REASON)
                return

        condition_result: Optional[bool] = None
        steps = 0

        while True:
            if execution.is_terminal:
                return

            next_nodes = get_next_nodes(flow, execution.current_node_id, condition_result)
            if not next_nodes:
                await self.complete_execution(execution)
                return

            for node in next_nodes:
                steps += 1
                if steps > MAX_STEPS_PER_RUN:
                    await self.fail_execution(
                        execution, f"Exceeded {MAX_STEPS_PER_RUN} steps in one run"
                    )
                    return

                execution.previous_node_ids.append(execution.current_node_id)
                execution.current_node_id = node.id

                result = await self.execute_node(account, node, execution, flow)
                if result.outcome == NodeOutcome.FAILED:
                    return

                await self._save(execution)

                if not result.should_continue:
                    return

                # Edges of the last executed node decide the next hop
                condition_result = result.condition_result

    async def execute_node(
        self,
        account: InstagramAccount,
        node: FlowNode,
        execution: FlowExecution,
        flow: Flow
    ) -> NodeResult:
        """
        Execute a single node.

        Any error marks the execution failed and stops the traversal.
        """
        logger.info(f"Executing node {node.id} (type: {node.type}) for execution {execution.id}")

        handler = self._handlers.get(node.type)
        if handler is None:
            logger.warning(f"Unknown node type: {node.type}")
            return continue_result()

        try:
            return await handler(account, node, execution, flow)
        except ConcurrentModificationError:
            raise
        except Exception as e:
            logger.exception(f"Error executing node {node.id}: {e}")
            error = str(e) or type(e).__name__
            await self.fail_execution(execution, error)
            return failed_result(error)

    # ==================== NODE HANDLERS ====================

    async def _handle_trigger(self, account, node, execution, flow) -> NodeResult:
        return continue_result()

    async def _handle_message(self, account, node, execution, flow) -> NodeResult:
        data = node.data

        if data.use_ai:
            text = await self._generate_ai_message(account, node, execution)
        else:
            text = replace_variables(data.text or "", execution)

        message_type = data.message_type or MessageType.TEXT.value

        if message_type == MessageType.IMAGE.value and data.image_url:
            delivered = await self.messenger.send_image_message(account, execution.sender_id, data.image_url)
            if text:
                delivered = await self.messenger.send_direct_message(account, execution.sender_id, text) and delivered
        elif not text:
            logger.warning(f"Message node {node.id} resolved to empty text, nothing sent")
            return continue_result()
        else:
            options = self._reply_options(node)
            if options:
                delivered = await self.messenger.send_quick_reply_message(
                    account, execution.sender_id, text, options
                )
            else:
                delivered = await self.messenger.send_direct_message(account, execution.sender_id, text)

        if not delivered:
            logger.warning(f"Message from node {node.id} was not delivered to {execution.sender_id}")

        return continue_result()

    async def _generate_ai_message(self, account, node, execution) -> str:
        persona_prompt = self.accounts.build_system_prompt(account)
        if node.data.ai_prompt:
            system_prompt = f"{node.data.ai_prompt}\n\n{persona_prompt}"
        else:
            system_prompt = persona_prompt

        username = execution.sender_username or "there"
        if execution.context.trigger_comment_text:
            summary = f'User @{username} said: "{execution.context.trigger_comment_text}"'
        else:
            summary = f"User @{username} triggered this flow."

        turns = list(self.accounts.build_example_turns(account))
        turns.append({"role": "user", "content": summary})

        return await self.ai.generate_reply(system_prompt, turns, max_tokens=AI_MESSAGE_MAX_TOKENS)

    def _reply_options(self, node: FlowNode) -> List[Dict[str, str]]:
        """Quick reply options for quick_replies / buttons messages"""
        data = node.data
        if data.message_type == MessageType.QUICK_REPLIES.value and data.quick_replies:
            return [
                {"title": title, "payload": f"qr_{node.id}_{i}"}
                for i, title in enumerate(data.quick_replies)
            ]
        if data.message_type == MessageType.BUTTONS.value and data.buttons:
            return [
                {"title": button.label, "payload": button.payload or f"btn_{node.id}_{i}"}
                for i, button in enumerate(data.buttons)
            ]
        return []

    async def _handle_condition(self, account, node, execution, flow) -> NodeResult:
        result = self.evaluator.evaluate(node.data, execution.context)
        logger.info(f"Condition {node.data.condition_type} on node {node.id} evaluated to: {result}")
        return branch_result(result)

    async def _handle_delay(self, account, node, execution, flow) -> NodeResult:
        data = node.data
        delay_ms = calculate_delay_ms(data.value, data.delay_type)
        now = self.clock()
        execute_at = now + timedelta(milliseconds=delay_ms)

        ticket = ScheduledExecution(
            id=self.new_id(),
            execution_id=execution.id,
            flow_id=flow.id,
            node_id=node.id,
            account_id=account.id,
            sender_id=execution.sender_id,
            execute_at=execute_at,
            status=ScheduledStatus.PENDING,
            created_at=now,
        )
        await self.db.create_scheduled_execution(ticket)

        execution.status = ExecutionStatus.WAITING
        execution.scheduled_at = execute_at
        execution.scheduled_node_id = node.id

        logger.info(
            f"Execution {execution.id} delayed {data.value} {data.delay_type} "
            f"until {execute_at.isoformat()}"
        )
        return suspend_result()

    async def _handle_action(self, account, node, execution, flow) -> NodeResult:
        data = node.data
        context = execution.context
        action = data.action_type

        if action == ActionType.COLLECT_EMAIL.value:
            await self._send_prompt(account, execution, data.custom_message or DEFAULT_EMAIL_REQUEST)
            context.custom_fields[AWAITING_EMAIL] = True

        elif action == ActionType.COLLECT_PHONE.value:
            await self._send_prompt(account, execution, data.custom_message or DEFAULT_PHONE_REQUEST)
            context.custom_fields[AWAITING_PHONE] = True

        elif action == ActionType.ADD_TAG.value:
            if data.tag and data.tag not in context.tags:
                context.tags.append(data.tag)

        elif action == ActionType.REMOVE_TAG.value:
            if data.tag in context.tags:
                context.tags = [t for t in context.tags if t != data.tag]

        elif action == ActionType.SUBSCRIBE.value:
            context.custom_fields[SUBSCRIBED] = True

        elif action == ActionType.UNSUBSCRIBE.value:
            context.custom_fields[SUBSCRIBED] = False

        elif action == ActionType.CREATE_LEAD.value:
            lead = await self.leads.create_or_update_lead(LeadCreate(
                user_id=execution.user_id,
                account_id=execution.account_id,
                instagram_user_id=execution.sender_id,
                username=execution.sender_username,
                email=context.email,
                phone=context.phone,
                name=context.name,
                source="flow",
                flow_id=execution.flow_id,
                tags=list(context.tags),
            ))
            logger.info(f"Lead {lead.id} captured by execution {execution.id}")

        elif action == ActionType.NOTIFY.value:
            await self.notifier.notify_flow_event(execution, data.notify_email)

        else:
            logger.warning(f"Unknown action type on node {node.id}: {action}")

        if data.wait_for_reply and action in (ActionType.COLLECT_EMAIL.value, ActionType.COLLECT_PHONE.value):
            execution.status = ExecutionStatus.WAITING
            execution.scheduled_at = None
            execution.scheduled_node_id = None
            logger.info(f"Execution {execution.id} waiting for a reply at node {node.id}")
            return suspend_result()

        return continue_result()

    async def _send_prompt(self, account, execution, text: str) -> None:
        delivered = await self.messenger.send_direct_message(
            account, execution.sender_id, replace_variables(text, execution)
        )
        if not delivered:
            logger.warning(f"Prompt for execution {execution.id} was not delivered")

    # ==================== STATE TRANSITIONS ====================

    async def _save(self, execution: FlowExecution) -> FlowExecution:
        execution.updated_at = self.clock()
        return await self.db.save_execution(execution)

    async def complete_execution(self, execution: FlowExecution) -> None:
        now = self.clock()
        execution.status = ExecutionStatus.COMPLETED
        execution.completed_at = now
        execution.scheduled_at = None
        execution.scheduled_node_id = None
        await self._save(execution)
        logger.info(f"Flow execution {execution.id} completed")

    async def fail_execution(self, execution: FlowExecution, error: str) -> None:
        execution.status = ExecutionStatus.FAILED
        execution.last_error = error
        await self._save(execution)
        logger.error(f"Flow execution {execution.id} failed: {error}")

    async def _force_fail(self, execution: FlowExecution, reason: str) -> bool:
        """Fail an open execution, reloading on concurrent writes"""
        for _ in range(FORCE_FAIL_ATTEMPTS):
            if execution.is_terminal:
                return False
            try:
                await self.fail_execution(execution, reason)
                return True
            except ConcurrentModificationError:
                reloaded = await self.db.get_execution(execution.id)
                if reloaded is None:
                    return False
                execution = reloaded

        logger.error(f"Could not fail execution {execution.id}: kept changing")
        return False


def create_flow_executor(clock: Optional[Clock] = None) -> FlowExecutor:
    """Executor wired to the default service singletons"""
    from ..services.accounts import account_service
    from ..services.ai import ai_service
    from ..services.database import db
    from ..services.instagram import instagram
    from ..services.leads import lead_service
    from ..services.notification import notification_service

    return FlowExecutor(
        database=db,
        messenger=instagram,
        ai=ai_service,
        leads=lead_service,
        notifier=notification_service,
        accounts=account_service,
        clock=clock
    )
