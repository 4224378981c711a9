"""
Database service - flows, executions and scheduled executions
Tables are prefixed with dmflow_
"""
import logging
from datetime import datetime
from typing import Optional, List, Any, Dict

from ..core.supabase_client import supabase
from ..models import (
    Flow, FlowExecution, ScheduledExecution,
    ScheduledStatus, OPEN_STATUSES
)

logger = logging.getLogger(__name__)

# Table name prefix
TABLE_PREFIX = "dmflow_"

FLOWS_TABLE = f"{TABLE_PREFIX}flows"
EXECUTIONS_TABLE = f"{TABLE_PREFIX}flow_executions"
SCHEDULED_TABLE = f"{TABLE_PREFIX}scheduled_executions"


class ConcurrentModificationError(Exception):
    """Raised when an execution was written by someone else since it was read"""

    def __init__(self, execution_id: str, expected_revision: int):
        self.execution_id = execution_id
        self.expected_revision = expected_revision
        super().__init__(
            f"Execution {execution_id} changed since revision {expected_revision}"
        )


def _row(model) -> Dict[str, Any]:
    """Serialize a model to a snake_case JSON row"""
    return model.model_dump(mode="json")


class FlowDatabase:
    """Persistence for the flow interpreter"""

    # ==================== FLOWS ====================

    async def get_flow(self, flow_id: str) -> Optional[Flow]:
        """Get flow by ID"""
        response = supabase.table(FLOWS_TABLE).select("*").eq("id", flow_id).limit(1).execute()
        if response.data and len(response.data) > 0:
            return Flow(**response.data[0])
        return None

    async def list_active_flows(self, account_id: str) -> List[Flow]:
        """List active flows for an account"""
        response = (
            supabase.table(FLOWS_TABLE)
            .select("*")
            .eq("account_id", account_id)
            .eq("is_active", True)
            .order("created_at")
            .execute()
        )
        return [Flow(**f) for f in response.data] if response.data else []

    async def record_flow_trigger(self, flow: Flow, triggered_at: datetime) -> None:
        """Bump the trigger counter (read-modify-write, last writer wins)"""
        current = await self.get_flow(flow.id)
        count = (current.trigger_count if current else flow.trigger_count) or 0
        supabase.table(FLOWS_TABLE).update({
            "trigger_count": count + 1,
            "last_triggered_at": triggered_at.isoformat(),
        }).eq("id", flow.id).execute()

    async def delete_flow(self, flow_id: str) -> bool:
        """Delete a flow document"""
        response = supabase.table(FLOWS_TABLE).delete().eq("id", flow_id).execute()
        return bool(response.data)

    # ==================== EXECUTIONS ====================

    async def create_execution(self, execution: FlowExecution) -> FlowExecution:
        """Insert a new execution"""
        response = supabase.table(EXECUTIONS_TABLE).insert(_row(execution)).execute()
        return FlowExecution(**response.data[0]) if response.data else execution

    async def get_execution(self, execution_id: str) -> Optional[FlowExecution]:
        """Get execution by ID"""
        response = supabase.table(EXECUTIONS_TABLE).select("*").eq("id", execution_id).limit(1).execute()
        if response.data and len(response.data) > 0:
            return FlowExecution(**response.data[0])
        return None

    async def save_execution(self, execution: FlowExecution) -> FlowExecution:
        """
        Write an execution guarded by its revision.

        The row is only updated if its stored revision still equals
        execution.revision. On success the revision is bumped in place.

        Raises:
            ConcurrentModificationError: the row changed since it was read
        """
        expected = execution.revision
        data = _row(execution)
        data["revision"] = expected + 1

        response = (
            supabase.table(EXECUTIONS_TABLE)
            .update(data)
            .eq("id", execution.id)
            .eq("revision", expected)
            .execute()
        )
        if not response.data:
            raise ConcurrentModificationError(execution.id, expected)

        execution.revision = expected + 1
        return execution

    async def list_open_executions(
        self,
        flow_id: Optional[str] = None,
        account_id: Optional[str] = None,
        sender_id: Optional[str] = None
    ) -> List[FlowExecution]:
        """List active/waiting executions, optionally filtered"""
        query = supabase.table(EXECUTIONS_TABLE).select("*").in_(
            "status", [s.value for s in OPEN_STATUSES]
        )
        if flow_id:
            query = query.eq("flow_id", flow_id)
        if account_id:
            query = query.eq("account_id", account_id)
        if sender_id:
            query = query.eq("sender_id", sender_id)

        response = query.order("created_at", desc=True).execute()
        return [FlowExecution(**e) for e in response.data] if response.data else []

    # ==================== SCHEDULED EXECUTIONS ====================

    async def create_scheduled_execution(self, ticket: ScheduledExecution) -> ScheduledExecution:
        response = supabase.table(SCHEDULED_TABLE).insert(_row(ticket)).execute()
        return ScheduledExecution(**response.data[0]) if response.data else ticket

    async def get_due_scheduled_executions(self, now: datetime, limit: int = 50) -> List[ScheduledExecution]:
        """Pending tickets whose execute_at has passed"""
        response = (
            supabase.table(SCHEDULED_TABLE)
            .select("*")
            .eq("status", ScheduledStatus.PENDING.value)
            .lte("execute_at", now.isoformat())
            .limit(limit)
            .execute()
        )
        return [ScheduledExecution(**t) for t in response.data] if response.data else []

    async def claim_scheduled_execution(self, ticket_id: str) -> bool:
        """
        Atomically move a ticket from pending to processing.

        Returns False when another sweep already claimed it.
        """
        response = (
            supabase.table(SCHEDULED_TABLE)
            .update({"status": ScheduledStatus.PROCESSING.value})
            .eq("id", ticket_id)
            .eq("status", ScheduledStatus.PENDING.value)
            .execute()
        )
        return bool(response.data)

    async def finish_scheduled_execution(
        self,
        ticket_id: str,
        status: ScheduledStatus,
        processed_at: datetime,
        error: Optional[str] = None
    ) -> None:
        data: Dict[str, Any] = {
            "status": status.value,
            "processed_at": processed_at.isoformat(),
        }
        if error:
            data["error"] = error
        supabase.table(SCHEDULED_TABLE).update(data).eq("id", ticket_id).execute()

    async def fail_pending_tickets_for_flow(self, flow_id: str, processed_at: datetime, error: str) -> int:
        """Mark every pending ticket of a flow as failed"""
        response = (
            supabase.table(SCHEDULED_TABLE)
            .update({
                "status": ScheduledStatus.FAILED.value,
                "processed_at": processed_at.isoformat(),
                "error": error,
            })
            .eq("flow_id", flow_id)
            .eq("status", ScheduledStatus.PENDING.value)
            .execute()
        )
        return len(response.data) if response.data else 0


# Singleton instance
db = FlowDatabase()
