import os
from functools import lru_cache
from typing import Optional
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

SERVERLESS_MARKERS = ("VERCEL_ENV", "AWS_LAMBDA_FUNCTION_NAME")


def _env_flag(name: str) -> bool:
    return (os.getenv(name) or "").strip().lower() in ("1", "true", "yes", "on")


def is_serverless() -> bool:
    """True when running in an ephemeral host with no durable local disk."""
    if _env_flag("SERVERLESS") or os.getenv("VERCEL") == "1":
        return True
    return any(os.getenv(marker) is not None for marker in SERVERLESS_MARKERS)


class Config:
    """Centralized configuration for the persona assistant."""

    def __init__(self):
        # Admin
        self.admin_password: str = os.getenv("ADMIN_PASSWORD", "admin123")

        # API Keys
        self.camb_api_key: Optional[str] = os.getenv("CAMB_AI_API_KEY")
        self.gemini_api_key: Optional[str] = os.getenv("GEMINI_API_KEY")

        # Remote TTS (Camb.AI)
        self.camb_base_url: str = os.getenv("CAMB_AI_BASE_URL", "https://client.camb.ai/apis")
        self.camb_voice_id: int = int(os.getenv("CAMB_AI_VOICE_ID", "20037"))
        self.tts_poll_interval: float = float(os.getenv("TTS_POLL_INTERVAL", "2.0"))
        self.tts_max_poll_attempts: int = int(os.getenv("TTS_MAX_POLL_ATTEMPTS", "30"))
        self.tts_http_timeout: float = float(os.getenv("TTS_HTTP_TIMEOUT", "30"))

        # Local speech + playback
        self.local_tts_engine: Optional[str] = os.getenv("LOCAL_TTS_ENGINE") or None
        self.local_tts_language: str = os.getenv("LOCAL_TTS_LANGUAGE", "en")
        self.audio_player: Optional[str] = os.getenv("AUDIO_PLAYER") or None

        # LLM Settings
        self.gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.knowledge_base: Optional[str] = os.getenv("KNOWLEDGE_BASE")

        # Settings persistence
        self.settings_file: str = os.getenv("SETTINGS_FILE", os.path.join("data", "settings.json"))
        self.serverless: bool = is_serverless()

        # Server Settings
        self.host: str = os.getenv("HOST", "0.0.0.0")
        self.port: int = int(os.getenv("PORT", "8000"))
        self.assistant_url: str = os.getenv("ASSISTANT_URL", "http://127.0.0.1:8000")
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

@lru_cache()
def cfg() -> Config:
    """Returns a cached instance of the configuration."""
    return Config()
