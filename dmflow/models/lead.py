"""
Lead models
"""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel

from .flow import CAMEL_CONFIG


class Lead(BaseModel):
    """Lead model"""

    model_config = CAMEL_CONFIG

    id: Optional[str] = None
    user_id: Optional[str] = None
    account_id: str
    instagram_user_id: str
    username: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None
    source: str = "flow"
    flow_id: Optional[str] = None
    tags: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LeadCreate(BaseModel):
    """Lead upsert schema, keyed by (account_id, instagram_user_id)"""
    user_id: Optional[str] = None
    account_id: str
    instagram_user_id: str
    username: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None
    source: str = "flow"
    flow_id: Optional[str] = None
    tags: Optional[List[str]] = None
