"""OpenAI-compatible text generator used by the breakdown flow."""

import logging
from typing import Optional

import httpx
from openai import OpenAI, OpenAIError

from config import Settings, get_settings
from errors import UpstreamError

logger = logging.getLogger(__name__)

TEMPERATURE = 0.7
MAX_TOKENS = 500


class OpenAIGenerator:
    """Text in, text out, over a chat-completions endpoint.

    The client is created on first use so no secret is needed at import time.
    Automatic retries are disabled: a failed call surfaces immediately.
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[OpenAI] = None) -> None:
        self._settings = settings or get_settings()
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is not None:
            return self._client

        api_key = self._settings.LLM_API_KEY
        if not api_key or not api_key.strip():
            raise UpstreamError("LLM API key is not configured. Set LLM_API_KEY in your .env.")

        timeout = float(self._settings.LLM_TIMEOUT_SECONDS)
        self._client = OpenAI(
            api_key=api_key,
            base_url=self._settings.LLM_BASE_URL,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            max_retries=0,
        )
        return self._client

    def generate(self, prompt: str) -> str:
        client = self._get_client()
        model = self._settings.LLM_MODEL

        logger.info("LLM: requesting completion model=%s", model)
        try:
            completion = client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                temperature=TEMPERATURE,
                max_tokens=MAX_TOKENS,
            )
        except OpenAIError as e:
            logger.error("LLM: call failed model=%s (%s): %s", model, e.__class__.__name__, e)
            raise UpstreamError(f"LLM call failed: {e}") from e

        content = None
        if completion.choices:
            content = completion.choices[0].message.content
        if not content or not content.strip():
            logger.error("LLM: empty reply model=%s", model)
            raise UpstreamError("LLM did not return any content")

        logger.debug("LLM: reply %r", content[:200])
        return content
