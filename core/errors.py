"""
Error taxonomy shared by the speech pipeline, the settings store and the
HTTP layer. Every error carries a short ``kind`` tag that is safe to log.
"""

from typing import Optional


class AssistantError(Exception):
    """Base class for all errors raised by the assistant."""

    kind = "error"

    def __init__(self, message: str = "", cause: Optional[BaseException] = None):
        super().__init__(message or self.kind)
        self.cause = cause


class InputError(AssistantError):
    """Missing or empty input, rejected before any network call."""
    kind = "input"


class ConfigurationError(AssistantError):
    """A required credential or setting is missing."""
    kind = "configuration"


class AuthError(AssistantError):
    kind = "auth"


class PersistenceWriteError(AssistantError):
    kind = "persistence_write"


# --- Speech path ---

class SpeechError(AssistantError):
    """Anything that prevents a reply from being spoken."""
    kind = "speech"


class ProviderFailure(SpeechError):
    """A tagged failure reported by the remote TTS provider client."""
    kind = "provider"


class ProviderCreateError(ProviderFailure):
    kind = "create_error"


class ProviderTransportError(ProviderFailure):
    """A poll request failed at the transport level. Retried within budget."""
    kind = "transport_error"


class ProviderTerminalFailure(ProviderFailure):
    """The provider reported FAILED or ERROR for the task. Never retried."""
    kind = "terminal_failure"


class ProviderTimeout(ProviderFailure):
    kind = "timeout"


class FetchError(ProviderFailure):
    kind = "fetch_error"


class LocalEngineUnavailable(SpeechError):
    kind = "local_engine_unavailable"


class PlaybackError(SpeechError):
    kind = "playback_error"
