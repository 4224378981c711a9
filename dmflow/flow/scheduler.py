"""
Scheduled Execution Processor
Resumes executions parked on delay nodes once their ticket is due
"""
import logging
import asyncio
from datetime import datetime
from typing import Optional

from ..models import ExecutionStatus, FlowExecution, ScheduledExecution, ScheduledStatus
from ..services.database import ConcurrentModificationError
from .executor import FlowExecutor, FLOW_NOT_FOUND_REASON

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50

# Attempts to resume one ticket when the execution is written concurrently
MAX_RESUME_ATTEMPTS = 3


class ScheduledExecutionProcessor:
    """
    Sweep over due delay tickets.

    Each ticket is claimed (pending -> processing) before anything else
    happens, so concurrent sweeps never resume the same ticket twice.
    A failing ticket is marked failed and never blocks the rest of the batch.
    A reply written to the execution while it is being resumed makes the
    sweep reload it and try again.

    Normally invoked once per minute by an external scheduler; the
    start_scheduler loop covers deployments without one.
    """

    def __init__(
        self,
        database,
        executor: FlowExecutor,
        accounts,
        batch_size: int = DEFAULT_BATCH_SIZE,
        check_interval: int = 60,
        max_attempts: int = MAX_RESUME_ATTEMPTS
    ):
        """
        Args:
            database: FlowDatabase compatible persistence
            executor: Interpreter used to resume traversal
            accounts: provides get_account(account_id)
            batch_size: Max tickets handled per sweep
            check_interval: Seconds between sweeps of the background loop
            max_attempts: Resume attempts per ticket under concurrent writes
        """
        self.db = database
        self.executor = executor
        self.accounts = accounts
        self.batch_size = batch_size
        self.check_interval = check_interval
        self.max_attempts = max_attempts
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def process_scheduled_executions(self, now: Optional[datetime] = None) -> int:
        """
        Resume due executions.

        Returns:
            Number of tickets completed
        """
        now = now or self.executor.clock()
        tickets = await self.db.get_due_scheduled_executions(now, self.batch_size)
        if tickets:
            logger.info(f"Processing {len(tickets)} scheduled execution(s)")

        processed = 0
        for ticket in tickets:
            try:
                if not await self.db.claim_scheduled_execution(ticket.id):
                    logger.debug(f"Scheduled execution {ticket.id} already claimed")
                    continue

                if await self._resume(ticket):
                    processed += 1

            except Exception as e:
                logger.exception(f"Error processing scheduled execution {ticket.id}: {e}")
                await self._finish(ticket, ScheduledStatus.FAILED, str(e) or type(e).__name__)

        return processed

    def _is_parked_on(self, execution: FlowExecution, ticket: ScheduledExecution) -> bool:
        return execution.status == ExecutionStatus.WAITING and execution.scheduled_node_id == ticket.node_id

    async def _resume(self, ticket: ScheduledExecution) -> bool:
        execution = await self.db.get_execution(ticket.execution_id)
        if execution is None:
            logger.warning(f"Execution {ticket.execution_id} not found")
            await self._finish(ticket, ScheduledStatus.FAILED, "Execution not found")
            return False

        account = await self.accounts.get_account(ticket.account_id)
        if account is None:
            logger.warning(f"Account {ticket.account_id} not found")
            await self._finish(ticket, ScheduledStatus.FAILED, "Account not found")
            return False

        flow = None
        for attempt in range(1, self.max_attempts + 1):
            if not self._is_parked_on(execution, ticket):
                logger.warning(
                    f"Execution {execution.id} is {execution.status.value}, "
                    f"not waiting on delay node {ticket.node_id}"
                )
                await self._finish(ticket, ScheduledStatus.FAILED, "Execution is not waiting on this delay")
                return False

            if flow is None:
                flow = await self.db.get_flow(execution.flow_id)
                if flow is None:
                    logger.warning(f"Flow {execution.flow_id} not found")
                    await self.executor.fail_execution(execution, FLOW_NOT_FOUND_REASON)
                    await self._finish(ticket, ScheduledStatus.FAILED, FLOW_NOT_FOUND_REASON)
                    return False

            execution.status = ExecutionStatus.ACTIVE
            execution.scheduled_at = None
            execution.scheduled_node_id = None
            execution.current_node_id = ticket.node_id
            execution.updated_at = self.executor.clock()
            try:
                await self.db.save_execution(execution)
            except ConcurrentModificationError:
                logger.info(
                    f"Execution {execution.id} changed while resuming ticket {ticket.id} "
                    f"(attempt {attempt}/{self.max_attempts}), reloading"
                )
                execution = await self.db.get_execution(ticket.execution_id)
                if execution is None:
                    logger.warning(f"Execution {ticket.execution_id} disappeared")
                    await self._finish(ticket, ScheduledStatus.FAILED, "Execution not found")
                    return False
                continue

            await self.executor.continue_execution(account, execution, flow)

            await self._finish(ticket, ScheduledStatus.COMPLETED)
            return True

        logger.error(f"Gave up resuming execution {execution.id} after {self.max_attempts} attempts")
        await self._finish(ticket, ScheduledStatus.FAILED, "Execution kept changing")
        return False

    async def _finish(
        self,
        ticket: ScheduledExecution,
        status: ScheduledStatus,
        error: Optional[str] = None
    ) -> None:
        try:
            await self.db.finish_scheduled_execution(ticket.id, status, self.executor.clock(), error)
        except Exception as e:
            logger.error(f"Failed to mark scheduled execution {ticket.id} as {status.value}: {e}")

    # ==================== Background loop ====================

    async def start_scheduler(self):
        """Start the background sweep"""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._scheduler_loop())
        logger.info("Scheduled execution sweep started")

    async def stop_scheduler(self):
        """Stop the background sweep"""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Scheduled execution sweep stopped")

    async def _scheduler_loop(self):
        """Background loop that processes due tickets"""
        while self._running:
            try:
                processed = await self.process_scheduled_executions()
                if processed > 0:
                    logger.debug(f"Resumed {processed} execution(s)")
            except Exception as e:
                logger.exception(f"Error in sweep loop: {e}")

            await asyncio.sleep(self.check_interval)
