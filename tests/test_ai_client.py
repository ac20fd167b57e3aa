"""
Tests for the OpenAI-compatible content generator.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from newswatch.ai_client import DEEPSEEK_BASE_URL, AIContentGenerator, format_token_count


def completion(text, total_tokens=42):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = text
    response.usage.prompt_tokens = total_tokens - 2
    response.usage.completion_tokens = 2
    response.usage.total_tokens = total_tokens
    return response


@pytest.fixture
def client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=completion('{"is_duplicate": true}'))
    return client


class TestGenerate:

    @pytest.mark.asyncio
    async def test_returns_text_and_counts_tokens(self, client):
        generator = AIContentGenerator(api_key='k', client=client)

        response = await generator.generate("prompt", temperature=0.1, max_tokens=200)
        await generator.generate("prompt")

        assert response.text == '{"is_duplicate": true}'
        assert response.total_tokens == 42
        assert generator.total_tokens == 84

    @pytest.mark.asyncio
    async def test_json_mode_sets_response_format(self, client):
        generator = AIContentGenerator(api_key='k', model='gpt-4o-mini', client=client)

        await generator.generate("prompt", json_mode=True)

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs['model'] == 'gpt-4o-mini'
        assert kwargs['response_format'] == {'type': 'json_object'}
        assert kwargs['messages'] == [{"role": "user", "content": "prompt"}]

    @pytest.mark.asyncio
    async def test_plain_mode_has_no_response_format(self, client):
        await AIContentGenerator(api_key='k', client=client).generate("prompt")
        assert 'response_format' not in client.chat.completions.create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self, client, monkeypatch):
        monkeypatch.setattr(asyncio, 'sleep', AsyncMock())
        client.chat.completions.create.side_effect = [RuntimeError("502"), completion("ok")]

        response = await AIContentGenerator(api_key='k', client=client).generate("prompt")

        assert response.text == "ok"
        assert client.chat.completions.create.await_count == 2

    @pytest.mark.asyncio
    async def test_error_propagates_after_retries(self, client, monkeypatch):
        monkeypatch.setattr(asyncio, 'sleep', AsyncMock())
        client.chat.completions.create.side_effect = RuntimeError("503")

        with pytest.raises(RuntimeError):
            await AIContentGenerator(api_key='k', client=client).generate("prompt")
        assert client.chat.completions.create.await_count == 3


class TestFromEnv:

    def test_no_key_means_no_generator(self, monkeypatch):
        for var in ('AI_API_KEY', 'DEEPSEEK_API_KEY', 'OPENAI_API_KEY'):
            monkeypatch.delenv(var, raising=False)
        assert AIContentGenerator.from_env() is None

    def test_key_and_overrides(self, monkeypatch):
        monkeypatch.delenv('AI_API_KEY', raising=False)
        monkeypatch.setenv('DEEPSEEK_API_KEY', 'sk-test')
        monkeypatch.setenv('AI_MODEL', 'deepseek-reasoner')
        monkeypatch.delenv('AI_BASE_URL', raising=False)

        generator = AIContentGenerator.from_env()

        assert generator.model == 'deepseek-reasoner'
        assert str(generator.client.base_url).rstrip('/') == DEEPSEEK_BASE_URL


def test_format_token_count():
    assert format_token_count(950) == "950 tokens"
    assert format_token_count(1200) == "1.2K tokens"
    assert format_token_count(2_500_000) == "2.5M tokens"
