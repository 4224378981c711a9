"""
Lead service - lead upserts keyed by (account, sender)
"""
import logging
from typing import Optional, Any, Dict

from ..core.clock import utc_now
from ..core.supabase_client import supabase
from ..models.lead import Lead, LeadCreate

logger = logging.getLogger(__name__)

LEADS_TABLE = "dmflow_leads"

# Fields that keep their stored value when the new record leaves them empty
MERGED_FIELDS = ("email", "phone", "name", "tags", "username")


class LeadService:
    """Create or update leads captured by flows"""

    async def get_lead(self, account_id: str, instagram_user_id: str) -> Optional[Lead]:
        response = (
            supabase.table(LEADS_TABLE)
            .select("*")
            .eq("account_id", account_id)
            .eq("instagram_user_id", instagram_user_id)
            .limit(1)
            .execute()
        )
        if response.data and len(response.data) > 0:
            return Lead(**response.data[0])
        return None

    async def create_or_update_lead(self, record: LeadCreate) -> Lead:
        """
        Upsert a lead.

        An existing lead for the same account and sender is updated; only
        fields with new values overwrite stored ones.
        """
        now = utc_now().isoformat()
        existing = await self.get_lead(record.account_id, record.instagram_user_id)

        if existing:
            update: Dict[str, Any] = {"updated_at": now}
            for name in MERGED_FIELDS:
                value = getattr(record, name)
                if value:
                    update[name] = value
            if record.flow_id:
                update["flow_id"] = record.flow_id

            response = supabase.table(LEADS_TABLE).update(update).eq("id", existing.id).execute()
            if response.data:
                lead = Lead(**response.data[0])
            else:
                lead = existing.model_copy(update=update)
            logger.info(f"Updated lead {lead.id} for sender {record.instagram_user_id}")
            return lead

        data = record.model_dump(exclude_none=True)
        data.setdefault("tags", [])
        data["created_at"] = now
        data["updated_at"] = now

        response = supabase.table(LEADS_TABLE).insert(data).execute()
        lead = Lead(**response.data[0]) if response.data else Lead(**data)
        logger.info(f"Created lead {lead.id} for sender {record.instagram_user_id}")
        return lead


# Singleton instance
lead_service = LeadService()
