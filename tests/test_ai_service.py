# tests/test_ai_service.py

from __future__ import annotations

import pytest

from careerhub.services.ai_service import (
    CONTEXT_HEADER,
    MAX_TOKENS,
    SYSTEM_PROMPT,
    AIService,
    get_fallback_response,
)
from careerhub.utils import metrics

from .fakes import FakeOpenAIClient


async def collect(stream) -> list[str]:
    return [piece async for piece in stream]


@pytest.mark.parametrize(
    "message, opening",
    [
        ("Hello there", "Hello! I'm CareerHub AI"),
        ("Career advice please", "Career development is a lifelong journey"),
        ("Can you review my resume?", "A strong resume"),
        ("Tips for an interview", "Preparing for interviews"),
        ("Should I get a degree?", "Education is valuable"),
        ("What's the weather like?", "I'm here to help with career guidance"),
    ],
)
def test_fallback_response_keywords(message: str, opening: str) -> None:
    assert get_fallback_response(message).startswith(opening)


def test_build_messages_maps_history_and_appends_context() -> None:
    service = AIService(clients={})
    history = [{"content": "Hi", "isUser": True}, {"content": "Hello!", "isUser": False}]

    messages = service.build_messages("Any jobs?", history, "## USER INFORMATION ##")

    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[0]["content"].startswith(SYSTEM_PROMPT)
    assert CONTEXT_HEADER + "## USER INFORMATION ##" in messages[0]["content"]
    assert messages[-1] == {"role": "user", "content": "Any jobs?"}


def test_build_messages_without_context_uses_plain_prompt() -> None:
    messages = AIService(clients={}).build_messages("Hi")

    assert messages[0]["content"] == SYSTEM_PROMPT


def test_provider_resolution() -> None:
    only_deepseek = AIService(clients={"deepseek": FakeOpenAIClient()})
    both = AIService(clients={"sambanova": FakeOpenAIClient(), "deepseek": FakeOpenAIClient()})

    assert only_deepseek.provider == "deepseek"
    assert only_deepseek.resolve_provider("sambanova") == "deepseek"
    assert both.resolve_provider("deepseek") == "deepseek"
    assert both.resolve_provider("gpt") == "sambanova"

    both.set_provider("gpt")
    assert both.provider == "sambanova"
    both.set_provider("deepseek")
    assert both.provider == "deepseek"


@pytest.mark.asyncio
async def test_send_message_uses_the_requested_provider() -> None:
    samba = FakeOpenAIClient(reply="  from samba  ")
    deep = FakeOpenAIClient(reply="from deepseek")
    service = AIService(clients={"sambanova": samba, "deepseek": deep})

    reply = await service.send_message("Hi", provider="sambanova")

    assert reply == "from samba"
    assert deep.calls == []
    call = samba.calls[0]
    assert call["model"] == "DeepSeek-V3-0324"
    assert call["max_tokens"] == MAX_TOKENS
    assert metrics.get_counter("ai.sambanova.success") == 1


@pytest.mark.asyncio
async def test_send_message_falls_over_to_the_other_provider() -> None:
    samba = FakeOpenAIClient(error=TimeoutError("slow"))
    deep = FakeOpenAIClient(reply="from deepseek")
    service = AIService(clients={"sambanova": samba, "deepseek": deep})

    reply = await service.send_message("Hi")

    assert reply == "from deepseek"
    assert deep.calls[0]["model"] == "deepseek-chat"
    assert metrics.get_counter("ai.sambanova.error") == 1


@pytest.mark.asyncio
async def test_send_message_falls_back_to_keywords_when_everything_fails() -> None:
    broken = AIService(clients={"sambanova": FakeOpenAIClient(error=RuntimeError("down"))})
    keyless = AIService(clients={})

    assert (await broken.send_message("interview tips")).startswith("Preparing for interviews")
    assert not keyless.use_ai
    assert (await keyless.send_message("Hello")).startswith("Hello! I'm CareerHub AI")


@pytest.mark.asyncio
async def test_stream_yields_content_chunks() -> None:
    llm = FakeOpenAIClient(pieces=["Hel", "lo", ""])
    service = AIService(clients={"sambanova": llm})

    pieces = await collect(service.stream_message("Hi"))

    assert pieces == ["Hel", "lo"]
    assert llm.calls[0]["stream"] is True


@pytest.mark.asyncio
async def test_stream_falls_back_when_opening_fails() -> None:
    samba = FakeOpenAIClient(error=ConnectionError("refused"))
    deep = FakeOpenAIClient(pieces=["backup"])

    assert await collect(AIService(clients={"sambanova": samba, "deepseek": deep}).stream_message("Hi")) == ["backup"]

    alone = AIService(clients={"sambanova": samba})
    [fallback] = await collect(alone.stream_message("resume help"))
    assert fallback.startswith("A strong resume")


@pytest.mark.asyncio
async def test_stream_errors_after_the_first_chunk_propagate() -> None:
    llm = FakeOpenAIClient(pieces=["one", "two"], fail_after=1)
    service = AIService(clients={"sambanova": llm})
    received = []

    with pytest.raises(ConnectionError):
        async for piece in service.stream_message("Hi"):
            received.append(piece)

    assert received == ["one"]
