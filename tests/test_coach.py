import asyncio
import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from wellness_api.core.config import settings
from wellness_api.core.errors import UpstreamServiceError
from wellness_api.schemas.chat import ChatMessage, ConversationTurn, StructuredReport
from wellness_api.services import coach

REPORT = {
    "mood": 7, "stress_score": 5, "anxious_level": 4, "work_satisfaction": 8,
    "work_life_balance": 6, "energy_level": 7, "confident_level": 8, "sleep_quality": 6,
    "complete_report": "The user sounds balanced overall.",
    "key_insights": ["Enjoys the new project"],
    "recommendations": ["Protect evening downtime"],
}


def _messages(*texts):
    senders = ["user", "ai"]
    return [ChatMessage(sender=senders[i % 2], content=t) for i, t in enumerate(texts)]


def test_report_json_parses_into_structured_report():
    reply = coach.parse_model_output("  " + json.dumps(REPORT) + "\n")
    assert isinstance(reply, StructuredReport)
    assert reply.stress_score == 5
    assert reply.key_insights == ["Enjoys the new project"]


def test_plain_text_is_a_conversation_turn():
    reply = coach.parse_model_output("How have you been sleeping lately?")
    assert reply == ConversationTurn(content="How have you been sleeping lately?")


@pytest.mark.parametrize("text", [
    '{"mood": 7, "stress_score":',
    json.dumps({**REPORT, "mood": 11}),
    json.dumps({k: v for k, v in REPORT.items() if k != "sleep_quality"}),
    json.dumps({**REPORT, "complete_report": ""}),
])
def test_invalid_report_candidates_degrade_to_messages(text):
    reply = coach.parse_model_output(text)
    assert isinstance(reply, ConversationTurn)
    assert reply.content == text


def test_prompt_carries_history_and_report_instruction_only_when_ending():
    messages = _messages("I'm feeling okay", "Glad to hear it. What's on your mind?", "Work is busy")

    active = coach.build_prompt(messages, coach.SessionState.ACTIVE, "text", "Prior context")
    assert active[0]["role"] == "system" and "Prior context" in active[0]["content"]
    assert [m["role"] for m in active[1:]] == ["user", "assistant", "user"]
    assert coach.REPORT_INSTRUCTION not in [m["content"] for m in active]

    ending = coach.build_prompt(messages, coach.SessionState.ENDING)
    assert ending[-1] == {"role": "user", "content": coach.REPORT_INSTRUCTION}


def test_natural_close_detection():
    assert coach.detect_natural_close(_messages("Thanks, that's all for today"))
    assert coach.detect_natural_close(_messages("ok", "Anything else?", "No, goodbye!"))
    assert not coach.detect_natural_close(_messages("Work has been overwhelming"))
    assert not coach.detect_natural_close(_messages("I feel tired"))
    assert coach.resolve_state(_messages("I feel tired"), end_session=True) == coach.SessionState.ENDING


def test_session_turn_stays_active_on_plain_reply():
    completion = AsyncMock(return_value="What made the week feel heavy?")
    with patch("wellness_api.services.coach.request_completion", completion):
        turn = asyncio.run(coach.run_session_turn(_messages("Rough week"), session_type="voice"))

    assert turn.state == coach.SessionState.ACTIVE
    assert not turn.is_report
    assert completion.await_args.kwargs["max_tokens"] == 150


def test_session_turn_emits_report_when_ending():
    completion = AsyncMock(return_value=json.dumps(REPORT))
    with patch("wellness_api.services.coach.request_completion", completion):
        turn = asyncio.run(coach.run_session_turn(_messages("Rough week"), end_session=True))

    assert turn.state == coach.SessionState.REPORT_EMITTED
    assert turn.is_report
    sent_prompt = completion.await_args.args[0]
    assert sent_prompt[-1]["content"] == coach.REPORT_INSTRUCTION
    assert completion.await_args.kwargs["temperature"] == 0.3


def test_ending_session_with_unparseable_report_stays_ending():
    with patch("wellness_api.services.coach.request_completion", AsyncMock(return_value="{not json")):
        turn = asyncio.run(coach.run_session_turn(_messages("bye"), end_session=False))
    assert turn.state == coach.SessionState.ENDING
    assert isinstance(turn.reply, ConversationTurn)


def _run_completion(handler):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await coach.request_completion([{"role": "user", "content": "hi"}], client=client)
    return asyncio.run(go())


def test_request_completion_returns_reply_text(monkeypatch):
    monkeypatch.setattr(settings, "PERPLEXITY_AI_API_KEY", "key-123")
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "Hello there"}}]})

    assert _run_completion(handler) == "Hello there"
    assert seen["auth"] == "Bearer key-123"
    assert seen["body"]["model"] == settings.LLM_MODEL


@pytest.mark.parametrize("response", [
    httpx.Response(500, text="boom"),
    httpx.Response(200, json={"choices": []}),
    httpx.Response(200, json={"choices": [{"message": {"content": "   "}}]}),
])
def test_request_completion_failures_raise_upstream_error(monkeypatch, response):
    monkeypatch.setattr(settings, "PERPLEXITY_AI_API_KEY", "key-123")
    with pytest.raises(UpstreamServiceError):
        _run_completion(lambda request: response)


def test_request_completion_requires_api_key(monkeypatch):
    monkeypatch.setattr(settings, "PERPLEXITY_AI_API_KEY", "")
    with pytest.raises(UpstreamServiceError):
        asyncio.run(coach.request_completion([{"role": "user", "content": "hi"}]))
