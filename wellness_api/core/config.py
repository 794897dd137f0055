# wellness_api/core/config.py
from typing import List
from pydantic_settings import BaseSettings; from dotenv import load_dotenv
load_dotenv()
class Settings(BaseSettings):
    DATABASE_URL: str; JWT_SECRET_KEY: str; JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    PERPLEXITY_AI_API_KEY: str = ""
    LLM_API_URL: str = "https://api.perplexity.ai/chat/completions"
    LLM_MODEL: str = "sonar-pro"; LLM_TIMEOUT_SECONDS: float = 30
    OPENAI_API_KEY: str = ""
    TRANSCRIPTION_API_URL: str = "https://api.openai.com/v1/audio/transcriptions"
    TRANSCRIPTION_MODEL: str = "whisper-1"; TRANSCRIPTION_LANGUAGE: str = "en"
    TRANSCRIPTION_TIMEOUT_SECONDS: float = 60
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]
settings = Settings()
