"""
Persona Voice Assistant Server
==============================
HTTP surface for the interview persona:

  POST /api/ask             chat with the persona (Gemini)
  POST /api/tts             synthesize a reply through Camb.AI
  POST /api/auth            admin login
  GET  /api/settings/get    settings for the admin panel (key masked)
  POST /api/settings/save   admin-only settings update

Speech and chat fail independently: a TTS error never blocks the text reply.
"""

import hmac
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from config import cfg
from core.errors import (
    AssistantError,
    AuthError,
    ConfigurationError,
    InputError,
    PersistenceWriteError,
    ProviderFailure,
)
from core.llm import BaseLLM, GeminiLLM
from core.settings_store import SettingsUpdate, UNCHANGED, get_store
from logger_config import get_logger, setup_logging
from speech.provider import CambTTSClient
from utils.network import get_local_ip

# Initialize Logging
setup_logging()
logger = get_logger(__name__)

# --- GLOBAL STATE (INITIALIZED AT RUNTIME) ---
tts_client: Optional[CambTTSClient] = None

TTS_ERROR_MESSAGES = {
    "create_error": "Failed to create TTS task",
    "terminal_failure": "TTS task failed",
    "timeout": "TTS task timed out",
    "fetch_error": "Failed to retrieve TTS result",
}
GENERIC_TTS_ERROR = "Failed to generate speech. Please try again."


def create_llm(api_key: str) -> BaseLLM:
    return GeminiLLM(api_key=api_key)


def get_tts_client() -> CambTTSClient:
    global tts_client
    if tts_client is None:
        tts_client = CambTTSClient()
    return tts_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = get_store()
    logger.info(f"--- PERSONA ASSISTANT ({store.mode.upper()} SETTINGS) ---")
    if store.mode == "local":
        logger.info(f"Settings file: {store.settings_file}")
    if not get_tts_client().configured:
        logger.warning("CAMB_AI_API_KEY is not set; /api/tts will fail and clients will use local speech.")
    logger.info("--- SYSTEMS READY ---")

    yield

    logger.info("Shutting down assistant...")

app = FastAPI(lifespan=lifespan)


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(content={"error": message}, status_code=status_code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation Error on {request.url.path}: {exc.errors()}")
    return error_response("Invalid request body", 400)


def require_admin(authorization: Optional[str]) -> None:
    expected = f"Bearer {cfg().admin_password}"
    if not authorization or not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise AuthError("Unauthorized")


@app.get("/")
@app.head("/")
async def heartbeat():
    return Response(content="Persona Voice Assistant", media_type="text/plain")


class AskQuery(BaseModel):
    message: Optional[str] = None


@app.post("/api/ask")
async def ask_endpoint(query: AskQuery):
    if not query.message or not query.message.strip():
        return error_response("Message is required", 400)

    settings = get_store().get()
    api_key = settings.gemini_api_key or cfg().gemini_api_key
    if not api_key:
        return error_response("Gemini API key is not configured. Please set it in the admin panel.", 500)

    try:
        llm = create_llm(api_key)
        reply = await llm.answer(query.message, settings.knowledge_base)
    except ConfigurationError as e:
        return error_response(str(e), 500)
    except Exception as e:
        logger.error(f"[ASK] Model call failed: {e}")
        return error_response("Failed to process your request. Please try again.", 500)

    return {"response": reply}


class TTSQuery(BaseModel):
    text: Optional[str] = None


@app.post("/api/tts")
async def tts_endpoint(query: TTSQuery):
    try:
        audio = await get_tts_client().synthesize(query.text)
    except InputError:
        return error_response("Text is required", 400)
    except ConfigurationError as e:
        logger.error(f"[TTS] {e}")
        return error_response("Camb.AI API key is not configured. Please set CAMB_AI_API_KEY in environment variables.", 500)
    except ProviderFailure as e:
        logger.error(f"[TTS] Synthesis failed ({e.kind}): {e}")
        return error_response(TTS_ERROR_MESSAGES.get(e.kind, GENERIC_TTS_ERROR), 500)
    except Exception as e:
        logger.error(f"[TTS] Unexpected error: {e}")
        return error_response(GENERIC_TTS_ERROR, 500)

    return audio.to_payload()


class AuthQuery(BaseModel):
    password: Optional[str] = None


@app.post("/api/auth")
async def auth_endpoint(query: AuthQuery):
    password = query.password or ""
    if hmac.compare_digest(password.encode(), cfg().admin_password.encode()):
        return {"success": True, "token": cfg().admin_password}
    logger.warning("[AUTH] Rejected admin login")
    return error_response("Invalid password", 401)


@app.get("/api/settings/get")
def settings_get_endpoint():
    try:
        return get_store().masked()
    except Exception as e:
        logger.error(f"[SETTINGS] Error getting settings: {e}")
        return error_response("Failed to get settings", 500)


class SettingsPayload(BaseModel):
    knowledgeBase: Optional[str] = None
    geminiApiKey: Optional[str] = None


@app.post("/api/settings/save")
def settings_save_endpoint(payload: SettingsPayload, authorization: Optional[str] = Header(default=None)):
    try:
        require_admin(authorization)
    except AuthError:
        logger.warning("[AUTH] Rejected settings write")
        return error_response("Unauthorized", 401)

    store = get_store()
    update = SettingsUpdate(
        knowledge_base=payload.knowledgeBase if payload.knowledgeBase is not None else UNCHANGED,
        # a masked key is matched against the stored one inside save()
        gemini_api_key=payload.geminiApiKey if payload.geminiApiKey is not None else UNCHANGED,
    )
    try:
        store.save(update)
    except PersistenceWriteError as e:
        logger.error(f"[SETTINGS] {e}")
        return error_response("Failed to save settings", 500)
    except AssistantError as e:
        logger.error(f"[SETTINGS] Save failed ({e.kind}): {e}")
        return error_response("Failed to save settings", 500)

    return {"success": True}


if __name__ == "__main__":
    local_ip = get_local_ip()
    port = cfg().port
    logger.info(f"🚀 Server starting on http://{local_ip}:{port}")
    uvicorn.run(app, host=cfg().host, port=port)
