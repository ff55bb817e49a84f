"""
Runtime Settings Store
======================
Resolves the effective persona settings (knowledge base + Gemini key) and
persists admin updates.

Resolution order for ``get()``:
  1. In-memory cache written by the last ``save()`` in this process.
  2. Serverless host: environment variables, then built-in defaults.
     The filesystem is never touched.
  3. Local process: ``settings.json`` on disk.
  4. Environment variables.
  5. Built-in defaults.

On a serverless host the cache is the only durability guarantee: a cold
start drops anything saved through the admin API.
"""

import json
import os
import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Union

from config import cfg
from core.errors import PersistenceWriteError
from logger_config import get_logger
from persona import DEFAULT_KNOWLEDGE_BASE

logger = get_logger(__name__)

MASK_PREFIX = "••••••••"
MASK_VISIBLE_CHARS = 4


class _Unchanged:
    """Marker for a settings field the caller wants to leave as it is."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNCHANGED"

    def __bool__(self) -> bool:
        return False


UNCHANGED = _Unchanged()


@dataclass(frozen=True)
class Settings:
    knowledge_base: str
    gemini_api_key: str

    def to_dict(self) -> Dict[str, str]:
        return {"knowledgeBase": self.knowledge_base, "geminiApiKey": self.gemini_api_key}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        return cls(
            knowledge_base=str(data.get("knowledgeBase") or ""),
            gemini_api_key=str(data.get("geminiApiKey") or ""),
        )


@dataclass(frozen=True)
class SettingsUpdate:
    """A partial write. Fields left as UNCHANGED keep their current value."""
    knowledge_base: Union[str, _Unchanged] = UNCHANGED
    gemini_api_key: Union[str, _Unchanged] = UNCHANGED


def mask_secret(value: str) -> str:
    """Masks a credential for display, leaving only a short suffix visible."""
    if not value:
        return ""
    return MASK_PREFIX + value[-MASK_VISIBLE_CHARS:]


class SettingsStore:
    """Process-wide settings with an environment-appropriate backend."""

    def __init__(
        self,
        settings_file: Optional[str] = None,
        serverless: Optional[bool] = None,
        env_knowledge_base: Optional[str] = None,
        env_gemini_api_key: Optional[str] = None,
    ):
        self.settings_file = settings_file or cfg().settings_file
        self.serverless = cfg().serverless if serverless is None else serverless
        self.env_knowledge_base = env_knowledge_base if env_knowledge_base is not None else cfg().knowledge_base
        self.env_gemini_api_key = env_gemini_api_key if env_gemini_api_key is not None else cfg().gemini_api_key
        self._cache: Optional[Settings] = None
        self._lock = threading.RLock()

    @property
    def mode(self) -> str:
        return "serverless" if self.serverless else "local"

    def get(self) -> Settings:
        """Returns the effective settings. Never raises for missing sources."""
        with self._lock:
            if self._cache is not None:
                return self._cache

            if self.serverless:
                return self._from_environment()

            stored = self._read_file()
            if stored is not None:
                return stored

            return self._from_environment()

    def save(self, update: SettingsUpdate) -> Settings:
        """
        Merges ``update`` over the current settings and makes it effective.

        The whole read, merge and write runs under one lock, so concurrent
        saves from the server's worker threads apply one after the other.
        The in-memory cache is updated first so reads in this process are
        immediately consistent. In local mode the merged settings are then
        written to disk; a write failure raises PersistenceWriteError but the
        cache keeps the new value.

        A credential equal to the mask of the stored one leaves it unchanged.
        """
        with self._lock:
            current = self.get()

            merged = current
            if update.knowledge_base is not UNCHANGED:
                merged = replace(merged, knowledge_base=update.knowledge_base)
            gemini_api_key = self._resolve_secret(update.gemini_api_key, current.gemini_api_key)
            if gemini_api_key is not UNCHANGED:
                merged = replace(merged, gemini_api_key=gemini_api_key)

            self._cache = merged

            if self.serverless:
                logger.info("[SETTINGS] Serverless mode: settings cached in memory only. "
                            "Update environment variables on the host to persist them.")
                return merged

            try:
                self._write_file(merged)
            except OSError as e:
                logger.error(f"[SETTINGS] Error saving settings to {self.settings_file}: {e}")
                raise PersistenceWriteError(f"Could not write {self.settings_file}", cause=e) from e

        logger.info(f"[SETTINGS] Saved settings to {self.settings_file}")
        return merged

    def masked(self) -> Dict[str, Any]:
        """Settings as shown to admin readers, with the credential masked."""
        settings = self.get()
        return {
            "knowledgeBase": settings.knowledge_base or "",
            "hasApiKey": bool(settings.gemini_api_key),
            "geminiApiKey": mask_secret(settings.gemini_api_key),
        }

    def secret_field(self, incoming: Optional[str]) -> Union[str, _Unchanged]:
        """
        Maps a credential value received from an admin client to an update
        field. Absent values and the exact mask of the stored credential both
        mean UNCHANGED.
        """
        if incoming is None:
            return UNCHANGED
        return self._resolve_secret(incoming, self.get().gemini_api_key)

    @staticmethod
    def _resolve_secret(incoming: Union[str, _Unchanged], current: str) -> Union[str, _Unchanged]:
        if current and incoming == mask_secret(current):
            return UNCHANGED
        return incoming

    def clear_cache(self) -> None:
        """Drops the in-memory cache, as a fresh process would start."""
        with self._lock:
            self._cache = None

    def _from_environment(self) -> Settings:
        return Settings(
            knowledge_base=self.env_knowledge_base or DEFAULT_KNOWLEDGE_BASE,
            gemini_api_key=self.env_gemini_api_key or "",
        )

    def _read_file(self) -> Optional[Settings]:
        if not os.path.exists(self.settings_file):
            return None
        try:
            with open(self.settings_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"[SETTINGS] Error reading settings from {self.settings_file}: {e}")
            return None
        if not isinstance(data, dict):
            logger.error(f"[SETTINGS] Ignoring malformed settings file {self.settings_file}")
            return None
        return Settings.from_dict(data)

    def _write_file(self, settings: Settings) -> None:
        directory = os.path.dirname(self.settings_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.settings_file, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2, ensure_ascii=False)


_store: Optional[SettingsStore] = None
_store_lock = threading.Lock()


def get_store() -> SettingsStore:
    """Returns the process-wide store, created on first use."""
    global _store
    with _store_lock:
        if _store is None:
            _store = SettingsStore()
        return _store


def reset_store(store: Optional[SettingsStore] = None) -> None:
    """Replaces the process-wide store (tests, or a config reload)."""
    global _store
    with _store_lock:
        _store = store
