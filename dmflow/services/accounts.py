"""
Account service - tenant configuration lookups and AI persona prompts
"""
import logging
from typing import Optional, List, Dict, Any

from ..core.cache import TTLCache
from ..core.config import settings
from ..core.supabase_client import supabase
from ..models.account import InstagramAccount

logger = logging.getLogger(__name__)

ACCOUNTS_TABLE = "dmflow_accounts"

TONE_GUIDES: Dict[str, str] = {
    "friendly": "Be warm, approachable, and use casual language.",
    "professional": "Be polite, formal, and business-appropriate.",
    "casual": "Be relaxed, use slang when appropriate, like chatting with a friend.",
    "enthusiastic": "Be energetic, use exclamations, show excitement!",
}

DEFAULT_EMAIL_PROMPT = "When appropriate, ask for their email to send more information."
DEFAULT_PHONE_PROMPT = "For scheduling or urgent matters, ask for their phone number."


def build_system_prompt(account: InstagramAccount) -> str:
    """Build the persona system prompt for an account"""
    persona = account.ai_personality
    account_settings = account.settings

    prompt = f"You are {persona.name}."
    if persona.description:
        prompt += f" {persona.description}"

    prompt += f"\n\n{persona.system_prompt}"

    if persona.goals:
        goals = "\n".join(f"{i}. {goal}" for i, goal in enumerate(persona.goals, start=1))
        prompt += f"\n\nYour goals:\n{goals}"

    prompt += f"\n\nTone: {TONE_GUIDES.get(persona.tone, TONE_GUIDES['friendly'])}"

    if persona.custom_instructions:
        prompt += f"\n\nAdditional instructions:\n{persona.custom_instructions}"

    if persona.forbidden_topics:
        prompt += f"\n\nDo NOT discuss: {', '.join(persona.forbidden_topics)}"

    if persona.handoff_keywords:
        prompt += (
            "\n\nIf the user mentions any of these topics, inform them a human will follow up: "
            f"{', '.join(persona.handoff_keywords)}"
        )

    prompt += (
        f"\n\nIMPORTANT: Keep responses under {account_settings.max_response_length} characters. "
        "Do NOT use emojis in your responses."
    )

    if account_settings.collect_email:
        prompt += f"\n\n{account_settings.email_prompt or DEFAULT_EMAIL_PROMPT}"
    if account_settings.collect_phone:
        prompt += f"\n\n{account_settings.phone_prompt or DEFAULT_PHONE_PROMPT}"

    return prompt


def build_example_turns(account: InstagramAccount) -> List[Dict[str, str]]:
    """Few-shot turns from the persona's example conversations"""
    turns: List[Dict[str, str]] = []
    for example in account.ai_personality.example_conversations:
        turns.append({"role": "user", "content": example.user_message})
        turns.append({"role": "assistant", "content": example.assistant_response})
    return turns


class AccountService:
    """
    Reads Instagram accounts with a short-lived cache.

    Cached by document ID and by Instagram account ID. Writes through
    save_account invalidate both keys.
    """

    def __init__(self, cache: Optional[TTLCache] = None):
        self.cache: TTLCache[InstagramAccount] = (
            cache if cache is not None else TTLCache(settings.ACCOUNT_CACHE_TTL_SECONDS)
        )

    def build_system_prompt(self, account: InstagramAccount) -> str:
        return build_system_prompt(account)

    def build_example_turns(self, account: InstagramAccount) -> List[Dict[str, str]]:
        return build_example_turns(account)

    def _remember(self, account: InstagramAccount) -> None:
        self.cache.set(f"id:{account.id}", account)
        if account.instagram_account_id:
            self.cache.set(f"ig:{account.instagram_account_id}", account)

    def _forget(self, account: InstagramAccount) -> None:
        self.cache.invalidate(f"id:{account.id}")
        if account.instagram_account_id:
            self.cache.invalidate(f"ig:{account.instagram_account_id}")

    async def get_account(self, account_id: str) -> Optional[InstagramAccount]:
        """Get account by document ID"""
        cached = self.cache.get(f"id:{account_id}")
        if cached is not None:
            return cached

        response = supabase.table(ACCOUNTS_TABLE).select("*").eq("id", account_id).limit(1).execute()
        if not response.data:
            return None

        account = InstagramAccount(**response.data[0])
        self._remember(account)
        return account

    async def get_account_by_instagram_id(self, instagram_account_id: str) -> Optional[InstagramAccount]:
        """Get an active account by the Instagram ID seen in webhook events"""
        cached = self.cache.get(f"ig:{instagram_account_id}")
        if cached is not None:
            return cached

        response = (
            supabase.table(ACCOUNTS_TABLE)
            .select("*")
            .eq("instagram_account_id", instagram_account_id)
            .eq("is_active", True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None

        account = InstagramAccount(**response.data[0])
        self._remember(account)
        return account

    async def save_account(self, account_id: str, data: Dict[str, Any]) -> Optional[InstagramAccount]:
        """Update an account and drop it from the cache"""
        previous = self.cache.get(f"id:{account_id}")
        if previous is not None:
            self._forget(previous)

        response = supabase.table(ACCOUNTS_TABLE).update(data).eq("id", account_id).execute()
        if not response.data:
            return None

        account = InstagramAccount(**response.data[0])
        self._forget(account)
        logger.info(f"Account {account_id} updated, cache invalidated")
        return account


# Singleton instance
account_service = AccountService()
