"""
Playback Controller
===================
Single-flight audio output: at most one session is audible at a time.

  - play(audio)        writes the clip to a temp file and starts a player
  - play_local(text)   hands the text to the local speech engine
  - cancel()           stops whatever is active, from either path

Starting a session cancels the previous one first. Temp files are removed
on every exit path (natural end, player error, cancel).
"""

import asyncio
import os
import tempfile
from typing import List, Optional, Set, Union

from config import cfg
from core.errors import PlaybackError
from logger_config import get_logger
from speech.local_engine import LocalSpeechEngine, LocalUtterance, UtteranceEvent
from speech.types import AudioResult
from utils import which_first

logger = get_logger(__name__)

PLAYERS = ("afplay", "paplay", "aplay", "ffplay")


def player_command(player: str, path: str) -> List[str]:
    if player == "ffplay":
        return [player, "-nodisp", "-autoexit", "-loglevel", "quiet", path]
    if player == "aplay":
        return [player, "-q", path]
    return [player, path]


class AudioClip:
    """A player process reading one temp file."""

    def __init__(self, process: asyncio.subprocess.Process, path: str):
        self.process = process
        self.path = path
        self.stopped = False

    async def wait(self) -> int:
        returncode = await self.process.wait()
        if returncode != 0 and not self.stopped:
            logger.error(f"[PLAYBACK] Player exited with code {returncode}")
        return returncode

    def stop(self) -> None:
        self.stopped = True
        if self.process.returncode is None:
            try:
                self.process.terminate()
            except ProcessLookupError:
                pass

    def release(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"[PLAYBACK] Could not remove {self.path}: {e}")


PlaybackHandle = Union[AudioClip, LocalUtterance]


class PlaybackSession:
    def __init__(self, source: str, handle: PlaybackHandle, events: Optional[List[UtteranceEvent]] = None):
        self.source = source
        self.handle = handle
        # lifecycle reported by the local engine (start, end, error)
        self.events = events if events is not None else []
        self.is_active = True
        self._done = asyncio.Event()

    @property
    def failed(self) -> bool:
        return UtteranceEvent.ERROR in self.events

    def _finish(self) -> None:
        if self._done.is_set():
            return
        self.is_active = False
        if isinstance(self.handle, AudioClip):
            self.handle.release()
        self._done.set()

    async def wait(self) -> None:
        """Returns once the session has ended for any reason."""
        await self._done.wait()

    def __repr__(self) -> str:
        return f"PlaybackSession(source={self.source!r}, is_active={self.is_active})"


class PlaybackController:
    """Owns the one audible session for this process."""

    def __init__(self, local_engine: Optional[LocalSpeechEngine] = None, player: Optional[str] = None):
        self.local_engine = local_engine
        self.preferred_player = player if player is not None else cfg().audio_player
        self._active: Optional[PlaybackSession] = None
        self._lock = asyncio.Lock()
        self._cancel_epoch = 0
        self._monitors: Set[asyncio.Task] = set()

    @property
    def active(self) -> Optional[PlaybackSession]:
        return self._active

    @property
    def player(self) -> Optional[str]:
        return which_first(PLAYERS, preferred=self.preferred_player)

    async def play(self, audio: AudioResult) -> PlaybackSession:
        """Plays remote audio. Raises PlaybackError if no player can start."""
        async with self._lock:
            self._stop_active()
            epoch = self._cancel_epoch

            player = self.player
            if player is None:
                raise PlaybackError("No audio player is installed")

            fd, path = tempfile.mkstemp(prefix="reply_", suffix=audio.suffix)
            with os.fdopen(fd, "wb") as f:
                f.write(audio.data)

            try:
                process = await asyncio.create_subprocess_exec(
                    *player_command(player, path),
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.DEVNULL,
                )
            except OSError as e:
                os.remove(path)
                logger.error(f"[PLAYBACK] Failed to start {player}: {e}")
                raise PlaybackError(f"Could not start {player}", cause=e) from e

            session = PlaybackSession("remote", AudioClip(process, path))
            self._start(session, epoch)
            logger.info(f"[PLAYBACK] Playing {len(audio.data)} bytes of {audio.mime_type} with {player}")
            return session

    async def play_local(self, text: str, engine: Optional[LocalSpeechEngine] = None) -> PlaybackSession:
        """Speaks through the local engine. Raises LocalEngineUnavailable."""
        engine = engine or self.local_engine
        if engine is None:
            engine = self.local_engine = LocalSpeechEngine()

        async with self._lock:
            self._stop_active()
            epoch = self._cancel_epoch
            events: List[UtteranceEvent] = []
            utterance = await engine.speak(text, on_event=events.append)
            session = PlaybackSession("local", utterance, events)
            self._start(session, epoch)
            return session

    def cancel(self, session: Optional[PlaybackSession] = None) -> None:
        """
        Stops playback. With no argument, stops whatever is active. Passing a
        session that already ended (or is no longer the active one) is a no-op.
        """
        if session is not None and session is not self._active:
            return
        self._cancel_epoch += 1
        self._stop_active()

    def _start(self, session: PlaybackSession, epoch: int) -> None:
        self._active = session
        task = asyncio.get_running_loop().create_task(self._monitor(session))
        self._monitors.add(task)
        task.add_done_callback(self._monitors.discard)
        if epoch != self._cancel_epoch:
            # cancel() arrived while the player was still being spawned
            self._stop_active()

    async def _monitor(self, session: PlaybackSession) -> None:
        try:
            await session.handle.wait()
        except Exception as e:
            logger.error(f"[PLAYBACK] Error while waiting on {session.source} playback: {e}")
        finally:
            if session.failed:
                logger.warning("[PLAYBACK] Local speech ended with an engine error")
            session._finish()
            if self._active is session:
                self._active = None

    def _stop_active(self) -> None:
        session, self._active = self._active, None
        if session is not None:
            session.handle.stop()
            session._finish()
            logger.info(f"[PLAYBACK] Cancelled {session.source} playback")
        # the caller can't always tell which path is speaking
        if self.local_engine is not None:
            self.local_engine.cancel()
