"""
Speech Pipeline
===============
reply text -> SynthesisOrchestrator -> PlaybackController

Replies may overlap: a newer ``speak()`` supersedes an older one. The older
call still finishes its network work, but its result is dropped instead of
played, so only the most recent reply is ever audible.
"""

from typing import Optional

from core.errors import InputError, PlaybackError, SpeechError
from logger_config import get_logger
from speech.local_engine import LocalSpeechEngine
from speech.orchestrator import SynthesisOrchestrator
from speech.playback import PlaybackController, PlaybackSession
from speech.provider import CambTTSClient
from speech.types import Local, Remote, RemoteSynthesizer

logger = get_logger(__name__)


class SpeechPipeline:
    def __init__(self, orchestrator: SynthesisOrchestrator, controller: PlaybackController):
        self.orchestrator = orchestrator
        self.controller = controller
        self._generation = 0

    @classmethod
    def create(cls, remote: Optional[RemoteSynthesizer] = None, local: Optional[LocalSpeechEngine] = None) -> "SpeechPipeline":
        """Wires the default stack: Camb.AI remote, host engine fallback."""
        local = local or LocalSpeechEngine()
        remote = remote if remote is not None else CambTTSClient()
        return cls(SynthesisOrchestrator(remote, local), PlaybackController(local_engine=local))

    async def speak(self, text: str) -> Optional[PlaybackSession]:
        """
        Voices one reply. Returns the playback session, or None when speech
        could not start (or the reply was superseded). Never raises for
        speech failures, so callers can treat voice as optional.
        """
        self._generation += 1
        generation = self._generation

        try:
            outcome = await self.orchestrator.render(text)
        except InputError:
            logger.warning("[SPEECH] Ignoring empty reply")
            return None

        if generation != self._generation:
            logger.info("[SPEECH] A newer reply was requested; discarding this rendition")
            return None

        try:
            if isinstance(outcome, Remote):
                try:
                    return await self.controller.play(outcome.audio)
                except PlaybackError as e:
                    if generation != self._generation:
                        return None
                    # no audible output came from the remote clip; the engine speaks instead
                    logger.warning(f"[SPEECH] Remote audio could not be played ({e}); using local speech")
                    return await self.controller.play_local(text.strip())
            if isinstance(outcome, Local):
                return await self.controller.play_local(outcome.text)
        except SpeechError as e:
            logger.error(f"[SPEECH] Could not produce speech ({e.kind}): {e}")
            return None

        logger.error(f"[SPEECH] Could not produce speech ({outcome.reason})")
        return None

    def cancel(self) -> None:
        """Silences the current reply at once. In-flight synthesis is left to finish."""
        self._generation += 1
        self.controller.cancel()
