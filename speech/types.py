import base64
from dataclasses import dataclass
from typing import Optional, Protocol, Union

from core.errors import InputError


@dataclass(frozen=True)
class SynthesisRequest:
    text: str

    @classmethod
    def create(cls, text: Optional[str]) -> "SynthesisRequest":
        if text is None or not str(text).strip():
            raise InputError("Text is required")
        return cls(text=str(text).strip())


@dataclass(frozen=True)
class AudioResult:
    data: bytes
    mime_type: str = "audio/wav"

    @property
    def suffix(self) -> str:
        subtype = self.mime_type.split("/")[-1].split(";")[0].strip().lower()
        return {"mpeg": ".mp3", "x-wav": ".wav", "wave": ".wav"}.get(subtype, f".{subtype or 'wav'}")

    def to_payload(self) -> dict:
        return {
            "audioContent": base64.b64encode(self.data).decode("ascii"),
            "contentType": self.mime_type,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "AudioResult":
        return cls(
            data=base64.b64decode(payload["audioContent"]),
            mime_type=payload.get("contentType") or "audio/wav",
        )


class RemoteSynthesizer(Protocol):
    """Anything that turns text into audio off-device."""

    name: str

    @property
    def configured(self) -> bool: ...

    async def synthesize(self, text: str) -> AudioResult: ...


# --- Orchestrator outcomes ---

@dataclass(frozen=True)
class Remote:
    audio: AudioResult


@dataclass(frozen=True)
class Local:
    text: str
    reason: str = ""


@dataclass(frozen=True)
class Unavailable:
    reason: str


SynthesisOutcome = Union[Remote, Local, Unavailable]
