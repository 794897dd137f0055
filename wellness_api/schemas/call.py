# wellness_api/schemas/call.py
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel


class CallData(BaseModel):
    callId: Optional[str] = None
    callerId: Optional[str] = None
    receiverId: Optional[str] = None
    userId: Optional[str] = None
    callType: Literal["voice", "video"] = "voice"
    status: Optional[str] = None
    reason: Optional[str] = None
    metadata: Dict[str, Any] = {}


class CallRequest(BaseModel):
    action: Literal["initiate", "accept", "reject", "end", "update_status"]
    callData: CallData = CallData()


class CallResponse(BaseModel):
    success: bool = True
    callId: Optional[str] = None
    message: str
