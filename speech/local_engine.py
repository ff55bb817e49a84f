"""
Local Speech Engine
===================
On-device fallback used when the remote provider is missing or fails.

Engines, in discovery order:
  - say        (macOS, native voices)
  - espeak-ng  (Linux)
  - espeak     (older Linux installs)

A voice is picked by language prefix plus a name/gender hint; if nothing
matches, the engine's default voice is used. Every utterance reports
``start``, ``end`` or ``error`` so the playback controller can track it the
same way it tracks remote audio.
"""

import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

from config import cfg
from core.errors import LocalEngineUnavailable
from logger_config import get_logger
from utils import which_first

logger = get_logger(__name__)

ENGINES = ("say", "espeak-ng", "espeak")
VOICE_NAME_HINTS = ("male", "david", "james", "daniel", "alex", "fred")

# "Alex                en_US    # Most people recognize me by my voice."
SAY_VOICE_LINE = re.compile(r"^(?P<name>.+?)\s{2,}(?P<lang>[A-Za-z]{2,3}[_-][A-Za-z0-9]+)\s+#")


class UtteranceEvent(Enum):
    START = "start"
    END = "end"
    ERROR = "error"


EventCallback = Callable[[UtteranceEvent], None]


@dataclass(frozen=True)
class Voice:
    name: str
    language: str
    gender: Optional[str] = None
    identifier: Optional[str] = None

    @property
    def flag_value(self) -> str:
        return self.identifier or self.name


def parse_say_voices(output: str) -> List[Voice]:
    voices = []
    for line in output.splitlines():
        match = SAY_VOICE_LINE.match(line.strip())
        if match:
            name = match.group("name").strip()
            voices.append(Voice(name=name, language=match.group("lang").replace("_", "-")))
    return voices


def parse_espeak_voices(output: str) -> List[Voice]:
    """Parses the ``espeak --voices`` table (Pty Language Age/Gender VoiceName File ...)."""
    voices = []
    for line in output.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 4:
            continue
        gender_code = parts[2].split("/")[-1].upper()
        gender = {"M": "male", "F": "female"}.get(gender_code)
        voices.append(Voice(name=parts[3].replace("_", " "), language=parts[1], gender=gender, identifier=parts[1]))
    return voices


def select_voice(
    voices: Sequence[Voice],
    language_prefix: str = "en",
    hints: Sequence[str] = VOICE_NAME_HINTS,
) -> Optional[Voice]:
    """
    First voice in the requested language whose name (or declared gender)
    matches a hint. None means "use the engine default".
    """
    prefix = (language_prefix or "").lower()
    for voice in voices:
        if not voice.language.lower().startswith(prefix):
            continue
        name = voice.name.lower()
        if any(hint in name for hint in hints) or (voice.gender and voice.gender in hints):
            return voice
    return None


class LocalUtterance:
    """A running local-engine process speaking one reply."""

    def __init__(self, text: str, process: asyncio.subprocess.Process, on_event: Optional[EventCallback] = None):
        self.text = text
        self.process = process
        self.on_event = on_event
        self.cancelled = False
        self._finished = False

    @property
    def running(self) -> bool:
        return not self._finished and self.process.returncode is None

    def _emit(self, event: UtteranceEvent) -> None:
        if self.on_event is None:
            return
        try:
            self.on_event(event)
        except Exception as e:
            logger.error(f"[LOCAL TTS] Event callback failed on {event.value}: {e}")

    async def wait(self) -> int:
        returncode = await self.process.wait()
        if not self._finished:
            self._finished = True
            if self.cancelled or returncode == 0:
                self._emit(UtteranceEvent.END)
            else:
                logger.error(f"[LOCAL TTS] Engine exited with code {returncode}")
                self._emit(UtteranceEvent.ERROR)
        return returncode

    def stop(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self.process.returncode is None:
            try:
                self.process.terminate()
            except ProcessLookupError:
                pass


class LocalSpeechEngine:
    """Speaks text through the host's built-in speech engine."""

    def __init__(
        self,
        engine: Optional[str] = None,
        language: Optional[str] = None,
        hints: Sequence[str] = VOICE_NAME_HINTS,
    ):
        self.preferred_engine = engine if engine is not None else cfg().local_tts_engine
        self.language = language or cfg().local_tts_language
        self.hints = tuple(hints)
        self._voices: Optional[List[Voice]] = None
        self._current: Optional[LocalUtterance] = None

    @property
    def engine(self) -> Optional[str]:
        return which_first(ENGINES, preferred=self.preferred_engine)

    def is_available(self) -> bool:
        return self.engine is not None

    async def voices(self) -> List[Voice]:
        if self._voices is not None:
            return self._voices

        engine = self.engine
        if engine is None:
            return []

        args = [engine, "-v", "?"] if engine == "say" else [engine, "--voices"]
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await process.communicate()
        except OSError as e:
            logger.warning(f"[LOCAL TTS] Could not list {engine} voices: {e}")
            return []

        if process.returncode != 0:
            logger.warning(f"[LOCAL TTS] Listing {engine} voices failed: {stderr.decode(errors='replace')}")
            self._voices = []
            return self._voices

        output = stdout.decode(errors="replace")
        self._voices = parse_say_voices(output) if engine == "say" else parse_espeak_voices(output)
        return self._voices

    async def pick_voice(self) -> Optional[Voice]:
        voice = select_voice(await self.voices(), self.language, self.hints)
        if voice is None:
            logger.info(f"[LOCAL TTS] No '{self.language}' voice matches {self.hints}; using engine default")
        return voice

    def build_command(self, text: str, voice: Optional[Voice]) -> List[str]:
        engine = self.engine
        args = [engine]
        if voice is not None:
            args += ["-v", voice.flag_value]
        # replies may start with "-" (markdown bullets)
        args += ["--", text]
        return args

    async def speak(self, text: str, on_event: Optional[EventCallback] = None) -> LocalUtterance:
        """Starts speaking ``text`` and returns at once. Raises LocalEngineUnavailable."""
        engine = self.engine
        if engine is None:
            if on_event:
                on_event(UtteranceEvent.ERROR)
            raise LocalEngineUnavailable("No local speech engine is installed")

        voice = await self.pick_voice()
        try:
            process = await asyncio.create_subprocess_exec(
                *self.build_command(text, voice),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error(f"[LOCAL TTS] Failed to start {engine}: {e}")
            if on_event:
                on_event(UtteranceEvent.ERROR)
            raise LocalEngineUnavailable(f"Could not start {engine}", cause=e) from e

        utterance = LocalUtterance(text, process, on_event)
        self._current = utterance
        logger.info(f"[LOCAL TTS] Speaking with {engine} ({voice.name if voice else 'default voice'})")
        utterance._emit(UtteranceEvent.START)
        return utterance

    def cancel(self) -> None:
        """Stops whatever this engine is currently saying. Safe to call any time."""
        utterance, self._current = self._current, None
        if utterance is not None:
            utterance.stop()
