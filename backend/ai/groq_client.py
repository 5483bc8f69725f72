"""
Groq API Client - optional rephrasing of product Q&A replies.

================================================================================
THE LLM NEVER DRIVES THE CHECKOUT
================================================================================

The step machine decides every step, price and choice on its own. This
client is only asked to turn the canned product answer into warmer prose.

- Returns the completion text, or None on ANY error
- None means the caller keeps the canned copy
- A slow or missing Groq never blocks a transition

================================================================================
"""

import asyncio
import json
import logging
from typing import Optional

from groq import AsyncGroq, APIError, APITimeoutError, RateLimitError

from app.core.config import settings

# Configure logging (NEVER log API keys)
logger = logging.getLogger(__name__)


class GroqTextGenerator:
    """
    Minimal async wrapper for Groq chat completions.

    - Model: llama-3.3-70b-versatile
    - Max tokens: 300 (a chat bubble, not an essay)
    - Timeout: 4 seconds per attempt
    - Retries: 2 on timeouts and rate limits, none on other API errors
    """

    MODEL = "llama-3.3-70b-versatile"
    TEMPERATURE = 0.6
    MAX_TOKENS = 300
    TIMEOUT_SECONDS = 4

    def __init__(self, api_key: Optional[str] = None, client: Optional[AsyncGroq] = None):
        api_key = api_key if api_key is not None else settings.GROQ_API_KEY
        self.client = client

        if self.client is None and not api_key:
            logger.warning(
                "⚠️ GROQ_API_KEY not found in environment. "
                "Replies will use canned copy only."
            )
        elif self.client is None:
            try:
                self.client = AsyncGroq(api_key=api_key, timeout=self.TIMEOUT_SECONDS)
                logger.info("✅ Groq client initialized successfully")
            except Exception as e:
                logger.error(f"❌ Failed to initialize Groq client: {e}")
                self.client = None

    def is_available(self) -> bool:
        return self.client is not None

    async def complete(
        self,
        system_prompt: str,
        user_message: str,
        response_format: str = "text",
        max_retries: int = 2,
    ) -> Optional[str]:
        """
        One chat completion. `response_format="json"` turns on JSON mode and
        returns the content only if it parses.
        """
        if not self.is_available():
            return None

        kwargs = {}
        if response_format == "json":
            kwargs["response_format"] = {"type": "json_object"}

        for attempt in range(max_retries + 1):
            try:
                response = await self.client.chat.completions.create(
                    model=self.MODEL,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_message},
                    ],
                    temperature=self.TEMPERATURE,
                    max_tokens=self.MAX_TOKENS,
                    stream=False,
                    **kwargs,
                )
                if not response.choices:
                    logger.warning("LLM returned empty response")
                    return None
                content = (response.choices[0].message.content or "").strip()
                if not content:
                    return None
                if response_format == "json":
                    json.loads(content)
                logger.debug(f"LLM response received: {len(content)} chars (attempt {attempt+1})")
                return content

            except APITimeoutError:
                if attempt < max_retries:
                    wait_time = 0.5 * (2 ** attempt)  # 0.5s, 1s
                    logger.warning(f"⏱️ Groq timeout, retry {attempt+1}/{max_retries} after {wait_time}s")
                    await asyncio.sleep(wait_time)
                else:
                    logger.warning(f"⏱️ Groq API timeout after {max_retries} retries")
                    return None

            except RateLimitError:
                if attempt < max_retries:
                    wait_time = 1.0 * (2 ** attempt)  # 1s, 2s
                    logger.warning(f"⚠️ Groq rate limit, retry {attempt+1}/{max_retries} after {wait_time}s")
                    await asyncio.sleep(wait_time)
                else:
                    logger.warning("⚠️ Groq API rate limit exceeded after retries")
                    return None

            except APIError as e:
                logger.error(f"❌ Groq API error (permanent): {e}")
                return None

            except json.JSONDecodeError:
                logger.warning("LLM returned invalid JSON in JSON mode")
                return None

            except Exception as e:
                logger.error(f"❌ Unexpected error calling Groq: {e}")
                return None

        return None
