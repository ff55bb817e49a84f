import pytest
from unittest.mock import AsyncMock, MagicMock

from core.errors import ConfigurationError, InputError
from core.llm import GeminiLLM
from persona import PERSONA_ACK, build_system_prompt


def make_llm(reply="I led the migration to Kubernetes."):
    client = MagicMock()
    response = MagicMock()
    response.text = reply
    client.aio.models.generate_content = AsyncMock(return_value=response)
    return GeminiLLM(api_key="g-key", model="gemini-test", client=client), client


def test_missing_key_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        GeminiLLM(api_key="")


def test_contents_prime_the_persona_before_the_question():
    llm, _ = make_llm()
    contents = llm.build_contents("Tell me about yourself", "Ten years of backend work.")

    assert [c.role for c in contents] == ["user", "model", "user"]
    assert contents[0].parts[0].text == build_system_prompt("Ten years of backend work.")
    assert contents[1].parts[0].text == PERSONA_ACK
    assert contents[2].parts[0].text == "Tell me about yourself"


@pytest.mark.asyncio
async def test_answer_returns_stripped_model_text():
    llm, client = make_llm("  Happy to walk you through it.  \n")

    reply = await llm.answer("What was your last project?", "Knowledge")

    assert reply == "Happy to walk you through it."
    kwargs = client.aio.models.generate_content.await_args.kwargs
    assert kwargs["model"] == "gemini-test"
    assert kwargs["config"].temperature == 0.7
    assert kwargs["config"].max_output_tokens == 500


@pytest.mark.asyncio
async def test_empty_message_never_reaches_the_model():
    llm, client = make_llm()
    with pytest.raises(InputError):
        await llm.answer("   ", "Knowledge")
    client.aio.models.generate_content.assert_not_awaited()


@pytest.mark.asyncio
async def test_empty_model_text_becomes_empty_reply():
    llm, _ = make_llm(None)
    assert await llm.answer("Hi", "Knowledge") == ""


def test_system_prompt_embeds_knowledge_base():
    prompt = build_system_prompt("Built a voice assistant in Python.")
    assert "Built a voice assistant in Python." in prompt
