from __future__ import annotations

import asyncio
from types import SimpleNamespace

from llm.gemini_client import GeminiClient
from llm.openai_client import OpenAIClient

TURNS = [
    {"role": "system", "content": "be nice"},
    {"role": "user", "content": "my name is Ann"},
    {"role": "assistant", "content": "hello Ann"},
    {"role": "system", "content": "   "},
]


def test_openai_system_turns_become_instructions():
    instructions, request_input = OpenAIClient._split_instructions(TURNS)
    assert instructions == "be nice"
    assert request_input == [
        {"role": "user", "content": "my name is Ann"},
        {"role": "assistant", "content": "hello Ann"},
    ]


def test_openai_complete_omits_empty_instructions():
    calls = []

    class FakeResponses:
        async def create(self, **kwargs):
            calls.append(kwargs)
            return SimpleNamespace(output_text="hi")

    client = OpenAIClient(api_key="test", model="gpt-test")
    client.client = SimpleNamespace(responses=FakeResponses())

    assert asyncio.run(client.complete([{"role": "user", "content": "hey"}])) == "hi"
    assert "instructions" not in calls[0]
    assert calls[0]["model"] == "gpt-test"


def test_gemini_contents_use_model_role():
    contents, system_instruction = GeminiClient.to_gemini_contents(TURNS)
    assert system_instruction == "be nice"
    assert [c["role"] for c in contents] == ["user", "model"]
    assert contents[1]["parts"] == [{"text": "hello Ann"}]


def test_gemini_retryable_errors():
    assert GeminiClient.is_retryable(RuntimeError("429 RESOURCE_EXHAUSTED"))
    assert GeminiClient.is_retryable(TimeoutError("request timed out"))
    assert not GeminiClient.is_retryable(ValueError("invalid api key"))
