# wellness_api/api/v1/endpoints/transcribe.py
from fastapi import APIRouter, Depends, File, UploadFile

from wellness_api.db import models
from wellness_api.core import security
from wellness_api.services import transcription

router = APIRouter()


@router.post("")
async def transcribe(
    audio: UploadFile = File(...),
    current_user: models.User = Depends(security.get_current_user)
):
    """ Speech-to-text for voice coaching sessions. """
    data = await audio.read()
    text = await transcription.transcribe_audio(
        data,
        filename=audio.filename or "audio.webm",
        content_type=audio.content_type or "audio/webm",
    )
    return {"text": text, "success": True}
