"""
Synthesis Orchestrator
======================
Decides how a reply gets voiced. The remote provider is tried once; any
failure (or a missing credential) commits the reply to the local engine.
There is no second remote attempt for the same reply.

    remote ok                       -> Remote(audio)
    remote failed / not configured  -> Local(text)        if an engine exists
    otherwise                       -> Unavailable(reason)
"""

from typing import Optional

from core.errors import AssistantError
from logger_config import get_logger
from speech.local_engine import LocalSpeechEngine
from speech.types import (
    Local,
    Remote,
    RemoteSynthesizer,
    SynthesisOutcome,
    SynthesisRequest,
    Unavailable,
)

logger = get_logger(__name__)


class SynthesisOrchestrator:
    def __init__(self, remote: Optional[RemoteSynthesizer], local: Optional[LocalSpeechEngine]):
        self.remote = remote
        self.local = local

    async def render(self, text: str) -> SynthesisOutcome:
        """
        Resolves a reply to something playable. Only an empty ``text`` raises
        (InputError); every speech failure becomes a fallback or Unavailable.
        """
        request = SynthesisRequest.create(text)

        reason = "remote synthesis not configured"
        if self.remote is not None and self.remote.configured:
            try:
                audio = await self.remote.synthesize(request.text)
                return Remote(audio)
            except AssistantError as e:
                reason = f"remote {e.kind}"
                logger.warning(f"[TTS] {self.remote.name} failed ({e.kind}): {e}. Falling back to local speech.")
            except Exception as e:
                reason = "remote unexpected error"
                logger.error(f"[TTS] {self.remote.name} raised unexpectedly: {e}. Falling back to local speech.")
        else:
            logger.info("[TTS] No remote synthesizer configured; using local speech.")

        if self.local is not None and self.local.is_available():
            return Local(request.text, reason=reason)

        logger.error(f"[TTS] No speech available ({reason}; no local engine)")
        return Unavailable(reason)
