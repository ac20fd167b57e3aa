"""
AI Content Generation Module
OpenAI-compatible chat client (DeepSeek by default) used for same-event checks
and combined summaries.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from openai import AsyncOpenAI

from .resilience import retry_with_backoff


# DeepSeek uses OpenAI-compatible API
DEEPSEEK_BASE_URL = "https://api.deepseek.com"
DEFAULT_MODEL = "deepseek-chat"

API_KEY_VARS = ('AI_API_KEY', 'DEEPSEEK_API_KEY', 'OPENAI_API_KEY')


@dataclass
class AIResponse:
    """Text returned by the model plus the provider's token usage, if any."""
    text: str
    usage: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return int(self.usage.get('total_tokens') or 0)


class AIContentGenerator:
    """Thin async wrapper over chat completions with retries and token accounting."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEEPSEEK_BASE_URL,
        model: str = DEFAULT_MODEL,
        client: Optional[AsyncOpenAI] = None
    ):
        self.model = model
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.total_tokens = 0

    @classmethod
    def from_env(cls) -> Optional["AIContentGenerator"]:
        """
        Build a generator from environment variables.

        Returns:
            Generator, or None when no API key is configured
        """
        api_key = next((os.environ[var] for var in API_KEY_VARS if os.environ.get(var)), None)
        if not api_key:
            return None

        return cls(
            api_key=api_key,
            base_url=os.environ.get('AI_BASE_URL') or DEEPSEEK_BASE_URL,
            model=os.environ.get('AI_MODEL') or DEFAULT_MODEL
        )

    async def generate(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        json_mode: bool = False
    ) -> AIResponse:
        """
        Generate content for a single-message prompt.

        Args:
            prompt: User prompt
            temperature: Sampling temperature
            max_tokens: Completion token limit
            json_mode: Ask the provider for a JSON object response

        Returns:
            AIResponse with the message text and usage
        """
        response = await self._complete(prompt, temperature, max_tokens, json_mode)

        usage = {}
        if getattr(response, 'usage', None) is not None:
            usage = {
                'prompt_tokens': response.usage.prompt_tokens,
                'completion_tokens': response.usage.completion_tokens,
                'total_tokens': response.usage.total_tokens,
            }

        result = AIResponse(text=response.choices[0].message.content or '', usage=usage)
        self.total_tokens += result.total_tokens
        return result

    @retry_with_backoff(max_retries=2, base_delay=1.0)
    async def _complete(self, prompt: str, temperature: float, max_tokens: int, json_mode: bool):
        request = {
            'model': self.model,
            'messages': [{"role": "user", "content": prompt}],
            'temperature': temperature,
            'max_tokens': max_tokens,
        }
        if json_mode:
            request['response_format'] = {'type': 'json_object'}

        return await self.client.chat.completions.create(**request)


def format_token_count(tokens: int) -> str:
    """Format a token count like '1.2K tokens'."""
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M tokens"
    if tokens >= 1000:
        return f"{tokens / 1000:.1f}K tokens"
    return f"{tokens} tokens"
