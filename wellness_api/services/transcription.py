# wellness_api/services/transcription.py
import logging
from typing import Optional

import httpx

from wellness_api.core.config import settings
from wellness_api.core.errors import (
    InvalidAudioError, ServiceUnavailableError, TranscriptionUnauthorizedError
)

logger = logging.getLogger(__name__)


async def transcribe_audio(audio: bytes, *, filename: str = "audio.webm", content_type: str = "audio/webm",
                           client: Optional[httpx.AsyncClient] = None) -> str:
    """
    Sends one audio payload to the speech-to-text API in the configured
    language and returns the plain text. Never retries; callers decide.
    """
    if not audio:
        raise InvalidAudioError("No audio data provided", {"audio": "empty payload"})

    api_key = settings.OPENAI_API_KEY
    if not api_key:
        raise TranscriptionUnauthorizedError("OPENAI_API_KEY not set")

    data = {
        "model": settings.TRANSCRIPTION_MODEL,
        "language": settings.TRANSCRIPTION_LANGUAGE,
        "response_format": "json",
        "temperature": "0.2",
    }
    files = {"file": (filename, audio, content_type)}

    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=settings.TRANSCRIPTION_TIMEOUT_SECONDS)
    try:
        response = await client.post(
            settings.TRANSCRIPTION_API_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            data=data,
            files=files,
        )
    except httpx.RequestError as e:
        raise ServiceUnavailableError("Transcription request failed", {"error": repr(e)}) from e
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code in (401, 403):
        raise TranscriptionUnauthorizedError("Transcription API rejected the credentials", {"status": response.status_code})
    if response.status_code in (400, 413, 415, 422):
        raise InvalidAudioError("The audio could not be transcribed", {"audio": response.text[:500]})
    if response.status_code >= 400:
        raise ServiceUnavailableError(
            "Transcription API returned an error status", {"status": response.status_code, "body": response.text[:500]}
        )

    try:
        text = response.json()["text"]
    except (ValueError, KeyError, TypeError) as e:
        raise ServiceUnavailableError("Transcription API returned an unexpected payload", {"error": repr(e)}) from e
    return text.strip()
