from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, Dict, List

import httpx
import pytest
from openai import APIConnectionError

from conftest import good_analysis
from ingredient_lens.analysis.model import (
    ModelCallError,
    OpenAIAnalyzer,
    analysis_schema,
    scavenge_json_block,
)


class FakeCompletions:
    def __init__(self, results: List[Any]) -> None:
        self.results = list(results)
        self.kwargs: List[Dict[str, Any]] = []

    def create(self, **kwargs: Any) -> Any:
        self.kwargs.append(kwargs)
        item = self.results.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _client(*results: Any) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(list(results))))


def _completion(content: Any) -> SimpleNamespace:
    message = SimpleNamespace(content=content)
    usage = SimpleNamespace(prompt_tokens=10, completion_tokens=20, total_tokens=30)
    return SimpleNamespace(id="cmpl-1", choices=[SimpleNamespace(message=message)], usage=usage)


def test_complete_sends_the_strict_schema_and_parses_json() -> None:
    client = _client(_completion(json.dumps(good_analysis())))
    analyzer = OpenAIAnalyzer(client, "gpt-4o-mini", timeout=42.0)
    assert analyzer.complete("Water, Sugar, Salt") == good_analysis()

    kwargs = client.chat.completions.kwargs[0]
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["timeout"] == 42.0
    assert kwargs["messages"][0]["role"] == "system"
    assert "Water, Sugar, Salt" in kwargs["messages"][1]["content"]
    fmt = kwargs["response_format"]
    assert fmt["type"] == "json_schema"
    assert fmt["json_schema"]["strict"] is True
    assert fmt["json_schema"]["schema"] == analysis_schema()


def test_fenced_output_is_recovered() -> None:
    content = "Here you go:\n```json\n" + json.dumps(good_analysis()) + "\n```"
    analyzer = OpenAIAnalyzer(_client(_completion(content)), "m")
    assert analyzer.complete("Water, Sugar, Salt")["confidence"] == "medium"


@pytest.mark.parametrize("content", [None, "", "no json here"])
def test_unusable_output_is_a_model_call_error(content: Any) -> None:
    analyzer = OpenAIAnalyzer(_client(_completion(content)), "m")
    with pytest.raises(ModelCallError):
        analyzer.complete("Water, Sugar, Salt")


def test_transport_errors_are_wrapped() -> None:
    error = APIConnectionError(request=httpx.Request("POST", "https://api.example.test/v1/chat/completions"))
    analyzer = OpenAIAnalyzer(_client(error), "m")
    with pytest.raises(ModelCallError):
        analyzer.complete("Water, Sugar, Salt")


def test_scavenge_json_block() -> None:
    assert scavenge_json_block('noise {"a": 1} trailing') == {"a": 1}
    assert scavenge_json_block("```\n{\"b\": 2}\n```") == {"b": 2}
    assert scavenge_json_block("nothing") is None
    assert scavenge_json_block("") is None


def test_schema_lists_every_field_as_required() -> None:
    schema = analysis_schema()
    assert schema["required"] == ["judgment", "key_factors", "tradeoffs", "uncertainty", "confidence"]
    assert schema["properties"]["confidence"]["enum"] == ["low", "medium", "high"]
