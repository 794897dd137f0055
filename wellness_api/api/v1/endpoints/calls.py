# wellness_api/api/v1/endpoints/calls.py
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from wellness_api.db import models, session
from wellness_api.core import security
from wellness_api.schemas.call import CallRequest, CallResponse
from wellness_api.services import calls

router = APIRouter()

# Which callData field names the acting user for each action.
ACTOR_FIELDS = {"initiate": "callerId", "accept": "receiverId", "reject": "receiverId", "end": "userId"}


@router.post("", response_model=CallResponse)
def call_action(
    request: CallRequest,
    db: Session = Depends(session.get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    """ Call signaling surface: initiate, accept, reject, end or update a call. """
    data = request.callData
    acting_as = getattr(data, ACTOR_FIELDS[request.action]) if request.action in ACTOR_FIELDS else None
    if acting_as and acting_as != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only act on your own behalf")

    if request.action == "initiate":
        call = calls.initiate_call(db, data.callerId, data.receiverId, data.callType, data.metadata)
        return CallResponse(callId=call.id, message="Call initiated successfully")
    if request.action == "accept":
        call = calls.accept_call(db, data.callId, data.receiverId)
        return CallResponse(callId=call.id, message="Call accepted successfully")
    if request.action == "reject":
        call = calls.reject_call(db, data.callId, data.receiverId, data.reason)
        return CallResponse(callId=call.id, message="Call rejected successfully")
    if request.action == "end":
        call = calls.end_call(db, data.callId, data.userId, data.reason)
        return CallResponse(callId=call.id, message="Call ended successfully")

    call = calls.update_call_status(db, data.callId, data.status, current_user.id, data.metadata)
    return CallResponse(callId=call.id, message="Call status updated successfully")
