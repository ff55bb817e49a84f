"""
Remote synthesizer that goes through this service's own ``POST /api/tts``
rather than calling the provider directly. Clients that should not hold the
provider credential (the terminal harness) use this one.
"""

import asyncio
from typing import Optional

import requests

from config import cfg
from core.errors import FetchError, ProviderFailure
from logger_config import get_logger
from speech.types import AudioResult, SynthesisRequest

logger = get_logger(__name__)


class TTSEndpointClient:
    name = "tts-endpoint"

    def __init__(self, base_url: Optional[str] = None, timeout: float = 90):
        # the server may poll the provider for up to a minute before answering
        self.base_url = (base_url or cfg().assistant_url).rstrip("/")
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def _post(self, text: str) -> requests.Response:
        return requests.post(f"{self.base_url}/api/tts", json={"text": text}, timeout=self.timeout)

    async def synthesize(self, text: str) -> AudioResult:
        request = SynthesisRequest.create(text)
        try:
            response = await asyncio.to_thread(self._post, request.text)
        except requests.exceptions.RequestException as e:
            raise ProviderFailure(f"TTS endpoint unreachable: {e}", cause=e) from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code != 200 or data.get("error"):
            logger.warning(f"[TTS] Endpoint returned {response.status_code}: {data.get('error', response.text[:200])}")
            raise ProviderFailure(f"TTS endpoint returned {response.status_code}")

        try:
            return AudioResult.from_payload(data)
        except (KeyError, ValueError) as e:
            raise FetchError(f"TTS endpoint sent an unreadable payload: {e}", cause=e) from e
