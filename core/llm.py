from abc import ABC, abstractmethod
from typing import List, Optional
from google import genai
from google.genai import types
from logger_config import get_logger
from config import cfg
from core.errors import ConfigurationError, InputError
from persona import PERSONA_ACK, build_system_prompt

logger = get_logger(__name__)

class BaseLLM(ABC):
    """Abstract base class for persona chat backends."""

    @abstractmethod
    async def answer(self, message: str, knowledge_base: str) -> str:
        """Single-shot reply to ``message`` in character, grounded in ``knowledge_base``."""
        pass

class GeminiLLM(BaseLLM):
    """Persona chat through the Gemini API (google-genai)."""

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_output_tokens: int = 500,
        client: Optional[genai.Client] = None,
    ):
        if not api_key and client is None:
            raise ConfigurationError("Gemini API key is not configured. Please set it in the admin panel.")
        self.model = model or cfg().gemini_model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.client = client or genai.Client(api_key=api_key)

    def build_contents(self, message: str, knowledge_base: str) -> List[types.Content]:
        # Persona rules go in as a primed user/model exchange ahead of the question
        return [
            types.Content(role="user", parts=[types.Part(text=build_system_prompt(knowledge_base))]),
            types.Content(role="model", parts=[types.Part(text=PERSONA_ACK)]),
            types.Content(role="user", parts=[types.Part(text=message)]),
        ]

    async def answer(self, message: str, knowledge_base: str) -> str:
        if not message or not message.strip():
            raise InputError("Message is required")

        logger.info(f"[LLM] Asking {self.model}: {message[:120]}")
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=self.build_contents(message, knowledge_base),
            config=types.GenerateContentConfig(
                temperature=self.temperature,
                max_output_tokens=self.max_output_tokens,
            ),
        )
        text = (response.text or "").strip()
        if not text:
            logger.warning("[LLM] Empty response from model")
        return text
