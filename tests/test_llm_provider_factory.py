"""
Unit tests for the LLM provider factory and structured completions.

Note: SDK clients are mocked, no API calls are made.
"""

import sys
import os
import json
import pytest
from unittest.mock import MagicMock, patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.llm_models.evaluation_models import SemanticEvaluation
from services.llm_provider_factory import (
    LLMProviderFactory,
    MistralProvider,
    OpenAIProvider,
    get_llm_client,
)

EVALUATION_JSON = json.dumps({
    "is_correct": True,
    "score": 92,
    "has_correct_accents": True,
    "feedback": "Excellent!",
    "corrections": {"suggestions": []},
    "corrected_answer": None,
    "confidence_score": 95,
})

MESSAGES = [
    {"role": "system", "content": "You are a French teacher."},
    {"role": "user", "content": "Evaluate: je vais au marché"},
]


def make_response(content=None, parsed=None, model="gpt-4o-2024-08-06"):
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content, parsed=parsed))]
    response.model = model
    response.usage.prompt_tokens = 120
    response.usage.completion_tokens = 40
    response.usage.total_tokens = 160
    return response


# ============================================================================
# FACTORY
# ============================================================================

def test_unsupported_provider():
    with pytest.raises(ValueError, match="Unsupported LLM provider"):
        LLMProviderFactory.create_provider("claude")


def test_missing_openai_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        LLMProviderFactory.create_provider("openai")


def test_missing_mistral_key(monkeypatch):
    monkeypatch.delenv("MISTRAL_API_KEY", raising=False)
    with pytest.raises(ValueError, match="MISTRAL_API_KEY"):
        get_llm_client("mistral")


@patch("openai.OpenAI")
def test_provider_from_environment(mock_openai, monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", "OpenAI")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    provider = get_llm_client()

    assert isinstance(provider, OpenAIProvider)
    assert provider.get_provider_name() == "openai"
    mock_openai.assert_called_once_with(api_key="sk-test")


def test_default_models(monkeypatch):
    monkeypatch.delenv("LLM_PROVIDER", raising=False)
    assert LLMProviderFactory.get_default_model() == "gpt-4o"
    assert LLMProviderFactory.get_default_model("mistral") == "mistral-large-latest"
    assert LLMProviderFactory.get_default_model("unknown") == "gpt-4o"


# ============================================================================
# STRUCTURED COMPLETIONS
# ============================================================================

@patch("openai.OpenAI")
def test_openai_native_structured_output(mock_openai):
    evaluation = SemanticEvaluation.model_validate_json(EVALUATION_JSON)
    client = mock_openai.return_value
    client.beta.chat.completions.parse.return_value = make_response(content=EVALUATION_JSON, parsed=evaluation)

    provider = OpenAIProvider(api_key="sk-test")
    result = provider.create_structured_completion(
        messages=MESSAGES, response_model=SemanticEvaluation, model="gpt-4o", timeout=5
    )

    assert result["parsed_object"] is evaluation
    assert result["model"] == "gpt-4o-2024-08-06"
    assert result["usage"]["total_tokens"] == 160
    kwargs = client.beta.chat.completions.parse.call_args.kwargs
    assert kwargs["response_format"] is SemanticEvaluation
    assert kwargs["timeout"] == 5
    client.chat.completions.create.assert_not_called()


@patch("openai.OpenAI")
def test_openai_falls_back_to_json_mode(mock_openai):
    client = mock_openai.return_value
    client.beta.chat.completions.parse.side_effect = Exception("structured output unsupported")
    client.chat.completions.create.return_value = make_response(content=EVALUATION_JSON)

    provider = OpenAIProvider(api_key="sk-test")
    result = provider.create_structured_completion(
        messages=MESSAGES, response_model=SemanticEvaluation, model="gpt-4o"
    )

    assert isinstance(result["parsed_object"], SemanticEvaluation)
    assert result["parsed_object"].score == 92
    assert client.chat.completions.create.call_args.kwargs["response_format"] == {"type": "json_object"}


@patch("openai.OpenAI")
def test_openai_invalid_json_raises_runtime_error(mock_openai):
    client = mock_openai.return_value
    client.beta.chat.completions.parse.side_effect = Exception("structured output unsupported")
    client.chat.completions.create.return_value = make_response(content="not json at all")

    provider = OpenAIProvider(api_key="sk-test")
    with pytest.raises(RuntimeError, match="Failed to parse"):
        provider.create_structured_completion(
            messages=MESSAGES, response_model=SemanticEvaluation, model="gpt-4o"
        )


@patch("openai.OpenAI")
def test_empty_parsed_object_uses_fallback(mock_openai):
    client = mock_openai.return_value
    client.beta.chat.completions.parse.return_value = make_response(content=None, parsed=None)
    client.chat.completions.create.return_value = make_response(content=EVALUATION_JSON)

    provider = OpenAIProvider(api_key="sk-test")
    result = provider.create_structured_completion(
        messages=MESSAGES, response_model=SemanticEvaluation, model="gpt-4o"
    )

    assert result["parsed_object"].is_correct is True


@patch("mistralai.Mistral")
def test_mistral_fallback_uses_milliseconds_and_json_mode(mock_mistral):
    client = mock_mistral.return_value
    client.chat.parse.side_effect = Exception("parse failed")
    client.chat.complete.return_value = make_response(content=EVALUATION_JSON, model="mistral-large-latest")

    provider = MistralProvider(api_key="mistral-test")
    result = provider.create_structured_completion(
        messages=MESSAGES, response_model=SemanticEvaluation, model="mistral-large-latest", timeout=2.5
    )

    assert result["parsed_object"].confidence_score == 95
    kwargs = client.chat.complete.call_args.kwargs
    assert kwargs["timeout_ms"] == 2500
    assert kwargs["response_format"] == {"type": "json_object"}
    assert provider.get_provider_name() == "mistral"
