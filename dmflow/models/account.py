"""
Instagram account (tenant) configuration models
"""
from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field

from .flow import CAMEL_CONFIG


class ExampleConversation(BaseModel):
    """Few-shot example for the AI persona"""

    model_config = CAMEL_CONFIG

    user_message: str
    assistant_response: str


class AIPersonality(BaseModel):
    """AI persona configured for an account"""

    model_config = CAMEL_CONFIG

    name: str = "Assistant"
    description: Optional[str] = None
    system_prompt: str = ""
    tone: str = "friendly"  # friendly, professional, casual, enthusiastic
    goals: List[str] = []
    custom_instructions: Optional[str] = None
    forbidden_topics: List[str] = []
    handoff_keywords: List[str] = []
    example_conversations: List[ExampleConversation] = []


class AccountSettings(BaseModel):
    """Per account behaviour settings"""

    model_config = CAMEL_CONFIG

    max_response_length: int = 200
    collect_email: bool = False
    collect_phone: bool = False
    email_prompt: Optional[str] = None
    phone_prompt: Optional[str] = None


class InstagramAccount(BaseModel):
    """Connected Instagram account"""

    model_config = CAMEL_CONFIG

    id: str
    user_id: Optional[str] = None
    username: str = ""
    instagram_account_id: Optional[str] = None
    page_id: Optional[str] = None
    access_token: Optional[str] = None
    ai_personality: AIPersonality = Field(default_factory=AIPersonality)
    settings: AccountSettings = Field(default_factory=AccountSettings)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
