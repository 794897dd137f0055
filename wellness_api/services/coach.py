# wellness_api/services/coach.py
# Multi-turn wellness coaching over a stateless chat-completions endpoint.
import enum
import json
import logging
import re
from typing import List, Optional

import httpx
from pydantic import BaseModel, ValidationError

from wellness_api.core.config import settings
from wellness_api.core.errors import UpstreamServiceError
from wellness_api.schemas.chat import ChatMessage, CoachReply, ConversationTurn, StructuredReport

logger = logging.getLogger(__name__)

TOPICS = [
    "mood", "stress", "anxiety", "work satisfaction",
    "work-life balance", "energy", "confidence", "sleep quality",
]

CLOSING_PATTERNS = [
    r"\bend (the |this |our )?(session|chat|conversation)\b",
    r"\bthat'?s all for (today|now)\b",
    r"\b(good)?bye\b",
    r"\bi'?m done( for (today|now))?\b",
]


class SessionState(str, enum.Enum):
    ACTIVE = "active"
    ENDING = "ending"
    REPORT_EMITTED = "report_emitted"


class CoachTurn(BaseModel):
    state: SessionState
    reply: CoachReply

    @property
    def is_report(self) -> bool:
        return isinstance(self.reply, StructuredReport)


def _system_prompt(session_type: str, context: Optional[str]) -> str:
    prompt = (
        f"You are a compassionate AI wellness coach conducting a {session_type} check-in with an employee. "
        "Create a safe, non-judgmental space and show empathy. "
        f"Over the conversation, gently cover these topics: {', '.join(TOPICS)}. "
        "Ask only one or two questions at a time and keep replies to 2-3 sentences. "
        "Do not give medical advice; focus on emotional support and active listening. "
        "Reply in plain conversational text unless explicitly asked for the final report."
    )
    if session_type == "voice":
        prompt += " Keep responses especially concise since this is a voice conversation."
    if context:
        prompt += "\n\nUse this background on the user for continuity, without quoting it back:\n" + context
    return prompt


REPORT_INSTRUCTION = (
    "The session is ending. Respond with ONLY a JSON object, no markdown and no other text, "
    "containing exactly these keys: "
    '"mood", "stress_score", "anxious_level", "work_satisfaction", "work_life_balance", '
    '"energy_level", "confident_level", "sleep_quality" (integers from 1 to 10, where 10 stress_score '
    'or anxious_level means the most stressed or anxious), "complete_report" (a 2-3 paragraph analysis of '
    'the user\'s wellbeing), "key_insights" (3-5 short strings) and "recommendations" (3-5 short, '
    "actionable strings). Base every score on what the user actually said."
)


def detect_natural_close(messages: List[ChatMessage]) -> bool:
    """True when the user's last message reads like a goodbye."""
    for message in reversed(messages):
        if message.sender == "user":
            text = message.content.lower()
            return any(re.search(pattern, text) for pattern in CLOSING_PATTERNS)
    return False


def resolve_state(messages: List[ChatMessage], end_session: bool) -> SessionState:
    if end_session or detect_natural_close(messages):
        return SessionState.ENDING
    return SessionState.ACTIVE


def build_prompt(messages: List[ChatMessage], state: SessionState, session_type: str = "text",
                 context: Optional[str] = None) -> List[dict]:
    """Rebuilds the whole conversation for the stateless model, plus the report instruction when ending."""
    prompt = [{"role": "system", "content": _system_prompt(session_type, context)}]
    for message in messages:
        prompt.append({
            "role": "user" if message.sender == "user" else "assistant",
            "content": message.content,
        })
    if state == SessionState.ENDING:
        prompt.append({"role": "user", "content": REPORT_INSTRUCTION})
    return prompt


def parse_model_output(text: str) -> CoachReply:
    """
    A reply is a report candidate iff it starts with '{' once trimmed. A
    candidate that fails to parse or validate degrades to a conversational turn.
    """
    stripped = text.strip()
    if not stripped.startswith("{"):
        return ConversationTurn(content=stripped)
    try:
        return StructuredReport.model_validate(json.loads(stripped))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning("Model reply looked like a report but did not validate (%s); treating as a message", e)
        return ConversationTurn(content=stripped)


async def request_completion(messages: List[dict], *, temperature: float = 0.7, max_tokens: int = 300,
                             client: Optional[httpx.AsyncClient] = None) -> str:
    """
    Calls the chat-completions API asynchronously and returns the reply text.
    """
    api_key = settings.PERPLEXITY_AI_API_KEY
    if not api_key:
        raise UpstreamServiceError("PERPLEXITY_AI_API_KEY not set")

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    payload = {
        "model": settings.LLM_MODEL,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }

    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=settings.LLM_TIMEOUT_SECONDS)
    try:
        response = await client.post(settings.LLM_API_URL, headers=headers, json=payload)
        response.raise_for_status()
        content = response.json()["choices"][0]["message"]["content"]
    except httpx.HTTPStatusError as http_err:
        raise UpstreamServiceError(
            "Completion API returned an error status",
            {"status": http_err.response.status_code, "body": http_err.response.text[:500]},
        ) from http_err
    except httpx.RequestError as e:
        raise UpstreamServiceError("Completion API request failed", {"error": repr(e)}) from e
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise UpstreamServiceError("Completion API returned an unexpected payload", {"error": repr(e)}) from e
    finally:
        if owns_client:
            await client.aclose()

    if not isinstance(content, str) or not content.strip():
        raise UpstreamServiceError("Completion API returned an empty reply")
    return content


async def run_session_turn(messages: List[ChatMessage], *, end_session: bool = False, session_type: str = "text",
                           context: Optional[str] = None) -> CoachTurn:
    """One request of the coaching dialogue. The conversation state comes entirely from messages."""
    state = resolve_state(messages, end_session)
    prompt = build_prompt(messages, state, session_type, context)
    if state == SessionState.ENDING:
        text = await request_completion(prompt, temperature=0.3, max_tokens=1500)
    else:
        text = await request_completion(prompt, max_tokens=150 if session_type == "voice" else 300)

    reply = parse_model_output(text)
    if isinstance(reply, StructuredReport):
        state = SessionState.REPORT_EMITTED
    return CoachTurn(state=state, reply=reply)
