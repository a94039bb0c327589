from __future__ import annotations

import asyncio

import pytest

from llm.base import LLMClient
from llm.middleware import LLMMiddleware, MiddlewareConfig, parse_timezone_response


class EchoLLM(LLMClient):
    model = "echo"

    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.calls = []

    async def complete(self, turns) -> str:
        self.calls.append(turns)
        return self.reply


def test_location_to_timezone_prompts_and_parses():
    llm = EchoLLM("Asia/Tokyo|Tokyo is the capital of Japan")
    middleware = LLMMiddleware(llm)

    guess = asyncio.run(middleware.location_to_timezone("Tokyo"))

    assert guess.timezone == "Asia/Tokyo"
    assert guess.explanation == "Tokyo is the capital of Japan"
    system_turn, user_turn = llm.calls[0]
    assert system_turn["role"] == "system"
    assert '"Tokyo"' in user_turn["content"]


def test_parse_timezone_response_tolerates_missing_explanation():
    guess = parse_timezone_response("  `Europe/Paris`  ")
    assert guess.timezone == "Europe/Paris"
    assert guess.explanation == ""


def test_parse_timezone_response_rejects_empty():
    with pytest.raises(ValueError):
        parse_timezone_response("|just an explanation")


def test_unknown_operation_raises():
    middleware = LLMMiddleware(EchoLLM("x"))
    with pytest.raises(ValueError):
        asyncio.run(middleware.process_user_input("x", "summarize"))


def test_custom_operation_can_be_registered():
    middleware = LLMMiddleware(EchoLLM("  HELLO  "))
    middleware.add_middleware(
        "shout",
        MiddlewareConfig(
            system_prompt="Shout the input.",
            user_prompt_template=lambda text: text,
            parse_response=str.strip,
        ),
    )
    assert asyncio.run(middleware.process_user_input("hello", "shout")) == "HELLO"


@pytest.mark.parametrize(
    "timezone, valid",
    [("America/New_York", True), ("UTC", True), ("Mars/Olympus", False), ("", False)],
)
def test_validate_timezone(timezone, valid):
    assert LLMMiddleware.validate_timezone(timezone) is valid
