import asyncio
import os
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from core.errors import PlaybackError
from speech.local_engine import LocalUtterance, UtteranceEvent
from speech.playback import PlaybackController, player_command
from speech.types import AudioResult

AUDIO = AudioResult(data=b"RIFF-fake-wav", mime_type="audio/wav")


class FakeProcess:
    """Stands in for asyncio.subprocess.Process; exits when told to."""

    def __init__(self, exit_code=0):
        self.returncode = None
        self.exit_code = exit_code
        self.terminated = False
        self._exited = asyncio.Event()

    def finish(self, code=None):
        if self.returncode is None:
            self.returncode = self.exit_code if code is None else code
        self._exited.set()

    def terminate(self):
        self.terminated = True
        self.finish(-15)

    async def wait(self):
        await self._exited.wait()
        return self.returncode


@pytest.fixture
def spawned():
    """Patches process creation; yields the list of (args, FakeProcess)."""
    calls = []

    async def fake_exec(*args, **kwargs):
        proc = FakeProcess()
        calls.append((args, proc))
        return proc

    with patch("speech.playback.asyncio.create_subprocess_exec", new=AsyncMock(side_effect=fake_exec)), \
         patch("speech.playback.which_first", return_value="aplay"):
        yield calls


@pytest.mark.asyncio
async def test_play_writes_temp_file_and_cleans_up_on_natural_end(spawned):
    controller = PlaybackController(player="aplay")

    session = await controller.play(AUDIO)

    args, proc = spawned[0]
    path = args[-1]
    assert args[:2] == ("aplay", "-q")
    assert session.is_active
    assert controller.active is session
    with open(path, "rb") as f:
        assert f.read() == AUDIO.data

    proc.finish(0)
    await session.wait()

    assert not session.is_active
    assert controller.active is None
    assert not os.path.exists(path)


@pytest.mark.asyncio
async def test_new_playback_cancels_the_active_one(spawned):
    controller = PlaybackController(player="aplay")

    first = await controller.play(AUDIO)
    second = await controller.play(AudioResult(data=b"second"))

    (first_args, first_proc), (_, second_proc) = spawned
    assert first_proc.terminated
    assert not first.is_active
    assert not os.path.exists(first_args[-1])
    assert second.is_active
    assert controller.active is second
    assert not second_proc.terminated

    controller.cancel()


@pytest.mark.asyncio
async def test_cancel_is_idempotent(spawned):
    controller = PlaybackController(player="aplay")
    session = await controller.play(AUDIO)
    _, proc = spawned[0]

    controller.cancel(session)
    controller.cancel(session)
    controller.cancel()

    assert proc.terminated
    assert not session.is_active
    await asyncio.wait_for(session.wait(), timeout=1)


@pytest.mark.asyncio
async def test_cancel_after_natural_end_is_a_noop(spawned):
    controller = PlaybackController(player="aplay")
    session = await controller.play(AUDIO)
    _, proc = spawned[0]
    proc.finish(0)
    await session.wait()

    controller.cancel(session)

    assert not proc.terminated
    assert controller.active is None


@pytest.mark.asyncio
async def test_stale_session_cancel_does_not_touch_current(spawned):
    controller = PlaybackController(player="aplay")
    first = await controller.play(AUDIO)
    second = await controller.play(AUDIO)

    controller.cancel(first)

    assert second.is_active
    assert not spawned[1][1].terminated
    controller.cancel()


@pytest.mark.asyncio
async def test_player_error_exit_releases_resources(spawned):
    controller = PlaybackController(player="aplay")
    session = await controller.play(AUDIO)
    args, proc = spawned[0]

    proc.finish(1)
    await session.wait()

    assert not session.is_active
    assert not os.path.exists(args[-1])


@pytest.mark.asyncio
async def test_missing_player_raises_and_leaves_nothing_active():
    with patch("speech.playback.which_first", return_value=None):
        controller = PlaybackController()
        with pytest.raises(PlaybackError):
            await controller.play(AUDIO)
    assert controller.active is None


@pytest.mark.asyncio
async def test_cancel_always_silences_the_local_engine(spawned):
    engine = MagicMock()
    controller = PlaybackController(local_engine=engine, player="aplay")
    await controller.play(AUDIO)

    controller.cancel()

    engine.cancel.assert_called()


@pytest.mark.asyncio
async def test_local_session_is_tracked_and_replaced_by_remote(spawned):
    local_proc = FakeProcess()
    utterance = LocalUtterance("Hello", local_proc)
    engine = MagicMock()
    engine.speak = AsyncMock(return_value=utterance)
    engine.cancel = MagicMock()

    controller = PlaybackController(local_engine=engine, player="aplay")
    local_session = await controller.play_local("Hello")

    assert local_session.source == "local"
    assert controller.active is local_session

    remote_session = await controller.play(AUDIO)

    assert local_proc.terminated
    assert not local_session.is_active
    assert controller.active is remote_session
    controller.cancel()


@pytest.mark.asyncio
async def test_cancel_during_player_spawn_stops_the_new_session():
    controller = PlaybackController(player="aplay")
    procs = []

    async def slow_exec(*args, **kwargs):
        controller.cancel()
        proc = FakeProcess()
        procs.append(proc)
        return proc

    with patch("speech.playback.asyncio.create_subprocess_exec", new=AsyncMock(side_effect=slow_exec)), \
         patch("speech.playback.which_first", return_value="aplay"):
        session = await controller.play(AUDIO)

    assert not session.is_active
    assert procs[0].terminated
    assert controller.active is None


def test_player_commands():
    assert player_command("ffplay", "/tmp/a.wav") == ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet", "/tmp/a.wav"]
    assert player_command("afplay", "/tmp/a.wav") == ["afplay", "/tmp/a.wav"]


@pytest.mark.asyncio
async def test_controller_holds_monitor_task_until_session_ends(spawned):
    controller = PlaybackController(player="aplay")
    session = await controller.play(AUDIO)

    monitors = set(controller._monitors)
    assert len(monitors) == 1

    spawned[0][1].finish(0)
    await asyncio.gather(*monitors)

    assert not session.is_active
    assert controller._monitors == set()


def local_engine_for(process):
    """Engine double that behaves like LocalSpeechEngine.speak (start event, then a running utterance)."""
    engine = MagicMock()

    async def speak(text, on_event=None):
        utterance = LocalUtterance(text, process, on_event)
        utterance._emit(UtteranceEvent.START)
        return utterance

    engine.speak = AsyncMock(side_effect=speak)
    return engine


@pytest.mark.asyncio
async def test_local_session_records_engine_lifecycle():
    proc = FakeProcess()
    controller = PlaybackController(local_engine=local_engine_for(proc), player="aplay")

    session = await controller.play_local("Hello")
    assert session.events == [UtteranceEvent.START]

    proc.finish(0)
    await session.wait()

    assert session.events == [UtteranceEvent.START, UtteranceEvent.END]
    assert not session.failed


@pytest.mark.asyncio
async def test_local_engine_error_marks_session_failed():
    proc = FakeProcess(exit_code=1)
    controller = PlaybackController(local_engine=local_engine_for(proc), player="aplay")

    session = await controller.play_local("Hello")
    proc.finish()
    await session.wait()

    assert session.failed
    assert controller.active is None
