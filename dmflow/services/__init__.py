"""
Services Module
Persistence and external integrations used by the flow interpreter
"""

# Database service
from .database import db, FlowDatabase, ConcurrentModificationError

# Tenant configuration
from .accounts import account_service, AccountService, build_system_prompt, build_example_turns

# Instagram messaging
from .instagram import instagram, InstagramService

# Reply generation (OpenAI)
from .ai import ai_service, AIService

# Leads
from .leads import lead_service, LeadService

# Notifications
from .notification import notification_service, NotificationService, FlowNotification, NotificationType

__all__ = [
    "db", "FlowDatabase", "ConcurrentModificationError",
    "account_service", "AccountService", "build_system_prompt", "build_example_turns",
    "instagram", "InstagramService",
    "ai_service", "AIService",
    "lead_service", "LeadService",
    "notification_service", "NotificationService", "FlowNotification", "NotificationType",
]
