"""
AI service - reply generation with OpenAI

Never raises for ordinary failures: a safe fallback text is returned
instead so message nodes can always send something.
"""
import logging
from typing import Optional, List, Dict
import openai
from openai import AsyncOpenAI

from ..core.config import settings

logger = logging.getLogger(__name__)

FALLBACK_NO_CLIENT = "Hey! Thanks for reaching out. I'll get back to you soon!"
FALLBACK_EMPTY = "Thanks for your message! I'll get back to you soon."
FALLBACK_ERROR = "Thanks for reaching out! I'll respond shortly."


class AIService:
    """Generates DM replies from a system prompt and conversation turns"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[AsyncOpenAI] = None
    ):
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_MODEL
        self.timeout = timeout or settings.OPENAI_TIMEOUT_SECONDS
        self._client = client

    @property
    def client(self) -> Optional[AsyncOpenAI]:
        """Lazily created client, None when no API key is configured"""
        if self._client is None and self.api_key:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def generate_reply(
        self,
        system_prompt: str,
        turns: List[Dict[str, str]],
        max_tokens: int = 300,
        temperature: float = 0.7
    ) -> str:
        """
        Generate a reply.

        Args:
            system_prompt: Persona / instruction prompt
            turns: [{"role": "user" | "assistant", "content": ...}]
            max_tokens: Completion token limit

        Returns:
            Generated text, or a fallback string on any failure
        """
        client = self.client
        if client is None:
            logger.info("OpenAI client not available, using fallback response")
            return FALLBACK_NO_CLIENT

        messages = [{"role": "system", "content": system_prompt}]
        for turn in turns:
            role = turn.get("role", "user")
            if role not in ("user", "assistant"):
                role = "user"
            messages.append({"role": role, "content": turn.get("content", "")})

        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self.timeout
            )
            text = response.choices[0].message.content if response.choices else None
            if not text:
                logger.error("Empty AI response")
                return FALLBACK_EMPTY
            return text.strip()

        except openai.RateLimitError as e:
            logger.warning(f"OpenAI rate limit hit: {e}")
        except openai.APIConnectionError as e:
            logger.warning(f"OpenAI connection error: {e}")
        except Exception as e:
            logger.error(f"Unexpected error generating AI reply: {e}")

        return FALLBACK_ERROR


# Singleton instance
ai_service = AIService()
