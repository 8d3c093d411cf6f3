from unittest.mock import MagicMock

import pytest

from anthropic_client import AnthropicProvider
from models import ModelConfig
from openai_client import OpenAIProvider

_OPENAI_CONFIG = ModelConfig(provider="openai", model="gpt-4o", max_output_tokens=500, temperature=0.3)
_CLAUDE_CONFIG = ModelConfig(
    provider="anthropic", model="claude-3-5-sonnet-latest", max_output_tokens=100, temperature=0.3
)


def test_openai_provider_maps_response_and_usage() -> None:
    mock_choice = MagicMock()
    mock_choice.message.content = '{"intent": "x"}'
    mock_response = MagicMock()
    mock_response.choices = [mock_choice]
    mock_response.usage.prompt_tokens = 120
    mock_response.usage.completion_tokens = 30
    mock_client = MagicMock()
    mock_client.chat.completions.create.return_value = mock_response

    completion = OpenAIProvider("sk-test", client=mock_client).complete("system", "user", _OPENAI_CONFIG)

    assert completion.text == '{"intent": "x"}'
    assert completion.usage.prompt_tokens == 120
    assert completion.usage.total_tokens == 150
    kwargs = mock_client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o"
    assert kwargs["max_completion_tokens"] == 500
    assert kwargs["temperature"] == 0.3
    assert kwargs["messages"] == [
        {"role": "system", "content": "system"},
        {"role": "user", "content": "user"},
    ]


def test_openai_provider_skips_empty_system_prompt_and_empty_content() -> None:
    mock_choice = MagicMock()
    mock_choice.message.content = None
    mock_response = MagicMock()
    mock_response.choices = [mock_choice]
    mock_response.usage = None
    mock_client = MagicMock()
    mock_client.chat.completions.create.return_value = mock_response

    completion = OpenAIProvider("sk-test", client=mock_client).complete("", "Hello", _OPENAI_CONFIG)

    assert completion.text == ""
    assert completion.usage.total_tokens == 0
    messages = mock_client.chat.completions.create.call_args.kwargs["messages"]
    assert messages == [{"role": "user", "content": "Hello"}]


def test_anthropic_provider_maps_first_text_block() -> None:
    tool_block = MagicMock(type="tool_use")
    text_block = MagicMock(type="text", text='{"category": "Inspo"}')
    mock_response = MagicMock()
    mock_response.content = [tool_block, text_block]
    mock_response.usage.input_tokens = 80
    mock_response.usage.output_tokens = 12
    mock_client = MagicMock()
    mock_client.messages.create.return_value = mock_response

    completion = AnthropicProvider("sk-ant", client=mock_client).complete("system", "user", _CLAUDE_CONFIG)

    assert completion.text == '{"category": "Inspo"}'
    assert completion.usage.prompt_tokens == 80
    assert completion.usage.completion_tokens == 12
    kwargs = mock_client.messages.create.call_args.kwargs
    assert kwargs["system"] == "system"
    assert kwargs["max_tokens"] == 100
    assert kwargs["messages"] == [{"role": "user", "content": "user"}]


def test_anthropic_provider_omits_empty_system_prompt() -> None:
    mock_response = MagicMock()
    mock_response.content = []
    mock_response.usage.input_tokens = 1
    mock_response.usage.output_tokens = 1
    mock_client = MagicMock()
    mock_client.messages.create.return_value = mock_response

    completion = AnthropicProvider("sk-ant", client=mock_client).complete("", "Hello", _CLAUDE_CONFIG)

    assert completion.text == ""
    assert "system" not in mock_client.messages.create.call_args.kwargs


@pytest.mark.parametrize("provider_cls, key_name", [
    (OpenAIProvider, "OPENAI_API_KEY"),
    (AnthropicProvider, "ANTHROPIC_API_KEY"),
])
def test_providers_require_api_key(provider_cls: type, key_name: str) -> None:
    with pytest.raises(RuntimeError, match=key_name):
        provider_cls("")
