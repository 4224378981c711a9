"""
Execution context helpers
"""
import logging
from typing import Optional, Sequence

from ..models.execution import ExecutionContext, FlowExecution
from ..models.flow import DelayUnit

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

_UNIT_MS = {
    DelayUnit.MINUTES.value: MINUTE_MS,
    DelayUnit.HOURS.value: HOUR_MS,
    DelayUnit.DAYS.value: DAY_MS,
}

# Context custom fields set by collect_email / collect_phone actions
AWAITING_EMAIL = "awaiting_email"
AWAITING_PHONE = "awaiting_phone"
SUBSCRIBED = "subscribed"

DEFAULT_DISPLAY_NAME = "there"
MIN_PHONE_LENGTH = 10


def create_initial_context(
    trigger_type: str,
    post_id: Optional[str] = None,
    comment_text: Optional[str] = None,
    story_id: Optional[str] = None
) -> ExecutionContext:
    """Create the context for a freshly triggered execution"""
    return ExecutionContext(
        tags=[],
        custom_fields={},
        selected_options=[],
        trigger_type=getattr(trigger_type, "value", trigger_type),
        trigger_post_id=post_id,
        trigger_comment_text=comment_text,
        trigger_story_id=story_id,
    )


def context_has_email(context: ExecutionContext) -> bool:
    return bool(context.email) and "@" in context.email


def context_has_phone(context: ExecutionContext) -> bool:
    return bool(context.phone) and len(context.phone) >= MIN_PHONE_LENGTH


def context_matches_keyword(context: ExecutionContext, keywords: Sequence[str]) -> bool:
    """True when the last user message contains any keyword (case-insensitive)"""
    last_message = (context.last_user_message or "").lower()
    return any(kw and kw.lower() in last_message for kw in keywords)


def calculate_delay_ms(value: float, unit: Optional[str]) -> int:
    """
    Convert a (value, unit) pair to milliseconds.

    Unknown or missing units are treated as minutes.
    """
    unit = getattr(unit, "value", unit)
    factor = _UNIT_MS.get(unit)
    if factor is None:
        logger.debug(f"Unknown delay unit {unit!r}, defaulting to minutes")
        factor = MINUTE_MS
    return int(value * factor)


def replace_variables(text: str, execution: FlowExecution) -> str:
    """
    Substitute template variables in a message.

    {username} -> sender username, or "there"
    {name}     -> collected name, else username, else "there"
    {email}    -> collected email, or empty
    {phone}    -> collected phone, or empty
    """
    context = execution.context
    username = execution.sender_username or DEFAULT_DISPLAY_NAME
    return (
        text
        .replace("{username}", username)
        .replace("{name}", context.name or execution.sender_username or DEFAULT_DISPLAY_NAME)
        .replace("{email}", context.email or "")
        .replace("{phone}", context.phone or "")
    )
