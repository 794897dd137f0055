# wellness_api/services/calls.py
"""
Call signaling ledger. Every transition writes the durable Call row and its
CallSession projection in the same unit of work, so a successful transition
always leaves both copies with the same status and timestamps.
"""
import enum
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wellness_api.core.errors import (
    AccessDeniedError, ConflictError, InvalidRequestError, NotFoundError, UpstreamServiceError
)
from wellness_api.db import models
from wellness_api.db.models import utcnow

logger = logging.getLogger(__name__)


class CallStatus(str, enum.Enum):
    INITIATING = "initiating"
    ACTIVE = "active"
    REJECTED = "rejected"
    ENDED = "ended"


TRANSITIONS = {
    CallStatus.INITIATING: {CallStatus.ACTIVE, CallStatus.REJECTED, CallStatus.ENDED},
    CallStatus.ACTIVE: {CallStatus.ENDED},
    CallStatus.REJECTED: set(),
    CallStatus.ENDED: set(),
}


def _require(fields: Dict[str, Any]) -> None:
    missing = {name: "field required" for name, value in fields.items() if not value}
    if missing:
        raise InvalidRequestError(f"{' and '.join(missing)} required", missing)


def _commit(db: Session, action: str, call_id: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Call %s: %s did not persist both records: %s", call_id, action, e)
        raise UpstreamServiceError(f"Failed to {action} call", {"call_id": call_id}) from e


def get_call(db: Session, call_id: str) -> models.Call:
    call = db.get(models.Call, call_id)
    if call is None or call.session is None:
        raise NotFoundError("Call not found", {"callId": call_id})
    return call


def _transition(db: Session, call: models.Call, target: CallStatus, **fields) -> None:
    current = CallStatus(call.status)
    if target not in TRANSITIONS[current]:
        raise ConflictError(
            f"Cannot move call from {current.value} to {target.value}",
            {"status": current.value, "requested": target.value},
        )
    now = utcnow()
    for record in (call, call.session):
        record.status = target.value
        record.updated_at = now
        for name, value in fields.items():
            setattr(record, name, now if value is utcnow else value)


def initiate_call(db: Session, caller_id: Optional[str], receiver_id: Optional[str], call_type: str = "voice",
                  metadata: Optional[dict] = None) -> models.Call:
    _require({"callerId": caller_id, "receiverId": receiver_id})
    if caller_id == receiver_id:
        raise InvalidRequestError("A user cannot call themselves", {"receiverId": "same as callerId"})
    caller = db.get(models.User, caller_id)
    receiver = db.get(models.User, receiver_id)
    if receiver is None or not receiver.is_active or caller is None or receiver.company_id != caller.company_id:
        raise NotFoundError("Receiver not found", {"receiverId": receiver_id})

    now = utcnow()
    call = models.Call(
        caller_id=caller_id, receiver_id=receiver_id, call_type=call_type,
        status=CallStatus.INITIATING.value, start_time=now, call_metadata=metadata or {},
        created_at=now, updated_at=now,
    )
    db.add(call)
    db.flush()
    db.add(models.CallSession(
        call_id=call.id, caller_id=caller_id, receiver_id=receiver_id,
        participants=[caller_id, receiver_id], status=CallStatus.INITIATING.value,
        start_time=now, session_metadata=metadata or {}, updated_at=now,
    ))
    _commit(db, "initiate", call.id)
    db.refresh(call)
    logger.info("Call %s initiated by %s to %s", call.id, caller_id, receiver_id)
    return call


def accept_call(db: Session, call_id: Optional[str], receiver_id: Optional[str]) -> models.Call:
    _require({"callId": call_id, "receiverId": receiver_id})
    call = get_call(db, call_id)
    if call.receiver_id != receiver_id:
        raise AccessDeniedError("Only the receiver can accept this call")
    _transition(db, call, CallStatus.ACTIVE, answered_at=utcnow)
    _commit(db, "accept", call_id)
    return call


def reject_call(db: Session, call_id: Optional[str], receiver_id: Optional[str],
                reason: Optional[str] = None) -> models.Call:
    _require({"callId": call_id, "receiverId": receiver_id})
    call = get_call(db, call_id)
    if call.receiver_id != receiver_id:
        raise AccessDeniedError("Only the receiver can reject this call")
    _transition(db, call, CallStatus.REJECTED, end_time=utcnow, end_reason=reason or "rejected")
    _commit(db, "reject", call_id)
    return call


def end_call(db: Session, call_id: Optional[str], user_id: Optional[str], reason: Optional[str] = None) -> models.Call:
    _require({"callId": call_id, "userId": user_id})
    call = get_call(db, call_id)
    if user_id not in (call.caller_id, call.receiver_id):
        raise AccessDeniedError("Only a participant can end this call")
    _transition(db, call, CallStatus.ENDED, end_time=utcnow, end_reason=reason or "ended", ended_by=user_id)
    _commit(db, "end", call_id)
    return call


def update_call_status(db: Session, call_id: Optional[str], status: Optional[str], user_id: str,
                       metadata: Optional[dict] = None) -> models.Call:
    """Generic transition; applies the same table and writes both records like the named actions."""
    _require({"callId": call_id, "status": status})
    try:
        target = CallStatus(status)
    except ValueError:
        raise InvalidRequestError("Unknown call status", {"status": status})
    call = get_call(db, call_id)
    if user_id not in (call.caller_id, call.receiver_id):
        raise AccessDeniedError("Only a participant can update this call")

    fields: Dict[str, Any] = {}
    if target == CallStatus.ACTIVE:
        fields["answered_at"] = utcnow
    elif target in (CallStatus.ENDED, CallStatus.REJECTED):
        fields.update(end_time=utcnow, end_reason=target.value)
        if target == CallStatus.ENDED:
            fields["ended_by"] = user_id
    _transition(db, call, target, **fields)
    if metadata:
        call.call_metadata = {**(call.call_metadata or {}), **metadata}
        call.session.session_metadata = {**(call.session.session_metadata or {}), **metadata}
    _commit(db, "update", call_id)
    return call
