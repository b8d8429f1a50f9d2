"""Chat completion backends used for note and billing generation."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any

import aiohttp

from ..errors import ScribeError

logger = logging.getLogger(__name__)


class CompletionError(ScribeError):
    """The language model call failed or returned nothing usable."""


class CompletionBackend(ABC):
    """Stateless prompt-in, text-out completion call."""

    @abstractmethod
    async def complete(self, prompt: str, model_options: Optional[Dict[str, Any]] = None) -> str:
        pass


class OpenAICompletionBackend(CompletionBackend):
    """Sends prompts to the OpenAI chat completions API."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout: float = 60.0):
        """Initialize OpenAI completion backend.

        Args:
            api_key: OpenAI API key
            model: Default chat model
            timeout: Total request timeout in seconds
        """
        if not api_key:
            raise ValueError("OpenAI API key is required")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.base_url = "https://api.openai.com/v1/chat/completions"

        logger.info(f"OpenAICompletionBackend initialized with model: {model}")

    async def complete(self, prompt: str, model_options: Optional[Dict[str, Any]] = None) -> str:
        """Send a prompt and return the response text.

        Args:
            prompt: Prompt to send
            model_options: Optional overrides: model, temperature, max_tokens

        Returns:
            Response text with surrounding whitespace stripped

        Raises:
            CompletionError: If the API call fails
        """
        options = model_options or {}
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        data = {
            "model": options.get("model", self.model),
            "messages": [
                {
                    "role": "user",
                    "content": prompt
                }
            ],
            "temperature": options.get("temperature", 0.3),
            "max_tokens": options.get("max_tokens", 2000)
        }

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.base_url, headers=headers, json=data) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        raise CompletionError(f"OpenAI API error: {response.status} - {error_text}",
                                              context={"status": response.status})
                    result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CompletionError(f"OpenAI request failed: {e}", cause=e) from e

        try:
            return result["choices"][0]["message"]["content"].strip()
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise CompletionError(f"Unexpected OpenAI response shape: {e}", cause=e) from e
