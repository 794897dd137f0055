# wellness_api/api/v1/endpoints/chat.py
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from wellness_api.db import models, session
from wellness_api.core import security
from wellness_api.schemas.chat import ChatRequest, ChatResponse
from wellness_api.services import coach, reports

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    db: Session = Depends(session.get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    """
    One turn of the coaching session. Returns either the coach's next message
    or, once the session closes, the structured report, which is stored here.
    """
    history = reports.get_personal_history(db, current_user.id, current_user.company_id)
    context = reports.format_personal_history_for_ai(history)

    turn = await coach.run_session_turn(
        payload.messages,
        end_session=payload.endSession,
        session_type=payload.sessionType,
        context=context,
    )
    if not turn.is_report:
        return ChatResponse(type="message", data=turn.reply)

    stored = reports.save_structured_report(
        db, turn.reply, user=current_user,
        session_type=payload.sessionType, session_duration=payload.sessionDuration,
    )
    return ChatResponse(type="report", data=turn.reply, report_id=stored.id)
