"""
Camb.AI Task Client
===================
The remote provider renders speech asynchronously:

  1. POST /tts                -> {"task_id": ...}
  2. GET  /tts/{task_id}      -> {"status": "...", "run_id": ...}   (polled)
  3. GET  /tts-result/{run_id} -> raw WAV bytes

Poll transport errors are retried inside the attempt budget. An explicit
FAILED/ERROR status stops polling at once (fast-fail); running out of
attempts is a timeout. The client never falls back on its own: every
failure is raised as a tagged ProviderFailure for the orchestrator.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from config import cfg
from core.errors import (
    ConfigurationError,
    FetchError,
    ProviderCreateError,
    ProviderTerminalFailure,
    ProviderTimeout,
    ProviderTransportError,
)
from logger_config import get_logger
from speech.types import AudioResult, SynthesisRequest

logger = get_logger(__name__)

LANGUAGE_ENGLISH = 1
GENDER_MALE = 1
RESULT_MIME_TYPE = "audio/wav"


class TaskStatus(Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    ERROR = "ERROR"

    @classmethod
    def parse(cls, raw: Any) -> "TaskStatus":
        """Unknown or missing wire values mean the task is still running."""
        value = str(raw or "").strip().upper()
        for status in (cls.SUCCESS, cls.FAILED, cls.ERROR):
            if value == status.value:
                return status
        return cls.PENDING

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.PENDING


class InvalidTransition(RuntimeError):
    pass


@dataclass
class ProviderTask:
    """One remote synthesis job. Status only ever moves PENDING -> terminal."""
    task_id: str
    created_at: float = field(default_factory=time.monotonic)
    status: TaskStatus = TaskStatus.PENDING
    run_id: Optional[str] = None
    polls: int = 0

    def advance(self, status: TaskStatus, run_id: Optional[str] = None) -> TaskStatus:
        if self.status.is_terminal and status is not self.status:
            raise InvalidTransition(f"Task {self.task_id} is already {self.status.value}; cannot move to {status.value}")
        if status is TaskStatus.SUCCESS and not run_id:
            # SUCCESS without a result id is not usable yet; keep polling
            return self.status
        self.status = status
        if run_id:
            self.run_id = run_id
        return self.status


class CambTTSClient:
    """Remote synthesizer backed by the Camb.AI task API."""

    name = "camb"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        voice_id: Optional[int] = None,
        language: int = LANGUAGE_ENGLISH,
        gender: int = GENDER_MALE,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else cfg().camb_api_key
        self.base_url = (base_url or cfg().camb_base_url).rstrip("/")
        self.voice_id = voice_id if voice_id is not None else cfg().camb_voice_id
        self.language = language
        self.gender = gender
        self.poll_interval = cfg().tts_poll_interval if poll_interval is None else poll_interval
        self.max_attempts = max_attempts or cfg().tts_max_poll_attempts
        self.timeout = timeout or cfg().tts_http_timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"x-api-key": self.api_key or ""},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def synthesize(self, text: str) -> AudioResult:
        request = SynthesisRequest.create(text)
        if not self.configured:
            raise ConfigurationError("Camb.AI API key is not configured. Please set CAMB_AI_API_KEY.")

        async with self._client() as client:
            task = await self.create_task(client, request)
            run_id = await self.wait_for_result(client, task)
            return await self.fetch_audio(client, run_id)

    async def create_task(self, client: httpx.AsyncClient, request: SynthesisRequest) -> ProviderTask:
        payload = {
            "text": request.text,
            "voice_id": self.voice_id,
            "language": self.language,
            "gender": self.gender,
        }
        try:
            response = await client.post("/tts", json=payload)
        except httpx.HTTPError as e:
            raise ProviderCreateError(f"Create request failed: {e}", cause=e) from e

        if response.is_error:
            logger.error(f"[TTS] Create error {response.status_code}: {response.text[:300]}")
            raise ProviderCreateError(f"Create request returned {response.status_code}")

        task_id = self._json(response).get("task_id")
        if not task_id:
            raise ProviderCreateError("Create response carried no task_id")

        logger.info(f"[TTS] Created task {task_id} ({len(request.text)} chars)")
        return ProviderTask(task_id=str(task_id))

    async def poll_once(self, client: httpx.AsyncClient, task: ProviderTask) -> TaskStatus:
        """One status check. Transport problems raise ProviderTransportError."""
        task.polls += 1
        try:
            response = await client.get(f"/tts/{task.task_id}")
        except httpx.HTTPError as e:
            raise ProviderTransportError(f"Status request failed: {e}", cause=e) from e
        if response.is_error:
            raise ProviderTransportError(f"Status request returned {response.status_code}")

        data = self._json(response)
        run_id = data.get("run_id")
        return task.advance(TaskStatus.parse(data.get("status")), str(run_id) if run_id else None)

    async def wait_for_result(self, client: httpx.AsyncClient, task: ProviderTask) -> str:
        for attempt in range(1, self.max_attempts + 1):
            try:
                status = await self.poll_once(client, task)
            except ProviderTransportError as e:
                logger.warning(f"[TTS] Poll {attempt}/{self.max_attempts} for {task.task_id} failed: {e}")
                status = TaskStatus.PENDING

            if status is TaskStatus.SUCCESS:
                logger.info(f"[TTS] Task {task.task_id} finished after {attempt} poll(s)")
                return task.run_id
            if status in (TaskStatus.FAILED, TaskStatus.ERROR):
                raise ProviderTerminalFailure(f"Task {task.task_id} reported {status.value}")

            if attempt < self.max_attempts:
                await asyncio.sleep(self.poll_interval)

        raise ProviderTimeout(f"Task {task.task_id} not ready after {self.max_attempts} polls")

    async def fetch_audio(self, client: httpx.AsyncClient, run_id: str) -> AudioResult:
        try:
            response = await client.get(f"/tts-result/{run_id}")
        except httpx.HTTPError as e:
            raise FetchError(f"Result request failed: {e}", cause=e) from e

        if response.is_error:
            logger.error(f"[TTS] Result error {response.status_code}: {response.text[:300]}")
            raise FetchError(f"Result request returned {response.status_code}")
        if not response.content:
            raise FetchError(f"Result {run_id} was empty")

        return AudioResult(data=response.content, mime_type=RESULT_MIME_TYPE)

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
