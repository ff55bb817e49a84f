import pytest
from unittest.mock import patch, MagicMock, AsyncMock
from harness_cli import run_harness
import requests

def make_pipeline():
    pipeline = MagicMock()
    pipeline.speak = AsyncMock(return_value=None)
    return pipeline

def ok_response(reply):
    mock_response = MagicMock()
    mock_response.status_code = 200
    mock_response.json.return_value = {"response": reply}
    return mock_response

@pytest.mark.asyncio
async def test_harness_successful_interaction(capsys):
    """A reply is printed and handed to the speech pipeline."""
    pipeline = make_pipeline()
    with patch("harness_cli.input", side_effect=["Hello", "exit"]):
        with patch("harness_cli.requests.post", return_value=ok_response("Hello! Ask me anything.")) as mock_post:
            await run_harness("http://assistant.test", pipeline=pipeline)

            captured = capsys.readouterr()
            assert "Assistant: Hello! Ask me anything." in captured.out
            assert mock_post.call_args.args[0] == "http://assistant.test/api/ask"
            assert mock_post.call_args.kwargs["json"] == {"message": "Hello"}

    pipeline.speak.assert_awaited_once_with("Hello! Ask me anything.")

@pytest.mark.asyncio
async def test_new_question_interrupts_previous_reply():
    """Every new line from the user cancels whatever is being spoken."""
    pipeline = make_pipeline()
    with patch("harness_cli.input", side_effect=["First", "Second", "exit"]):
        with patch("harness_cli.requests.post", return_value=ok_response("Sure.")):
            await run_harness("http://assistant.test", pipeline=pipeline)

    # One cancel per input line plus the final shutdown
    assert pipeline.cancel.call_count == 4
    assert pipeline.speak.await_count == 2

@pytest.mark.asyncio
async def test_stop_command_silences_without_asking(capsys):
    pipeline = make_pipeline()
    with patch("harness_cli.input", side_effect=["/stop", "exit"]):
        with patch("harness_cli.requests.post") as mock_post:
            await run_harness("http://assistant.test", pipeline=pipeline)
            assert not mock_post.called
    assert pipeline.cancel.called

@pytest.mark.asyncio
async def test_harness_server_error(capsys):
    """Test handling of server errors (e.g., 500)."""
    pipeline = make_pipeline()
    with patch("harness_cli.input", side_effect=["Hello", "exit"]):
        with patch("harness_cli.requests.post") as mock_post:
            mock_response = MagicMock()
            mock_response.status_code = 500
            mock_response.text = "Internal Server Error"
            mock_post.return_value = mock_response

            await run_harness("http://assistant.test", pipeline=pipeline)

            captured = capsys.readouterr()
            assert "[ERROR] Server returned 500: Internal Server Error" in captured.out
    pipeline.speak.assert_not_awaited()

@pytest.mark.asyncio
async def test_harness_connection_error(capsys):
    """Test handling of connection failures."""
    with patch("harness_cli.input", side_effect=["Hello"]):
        with patch("harness_cli.requests.post", side_effect=requests.exceptions.ConnectionError("Failed to connect")):
            await run_harness("http://assistant.test", pipeline=make_pipeline())

            captured = capsys.readouterr()
            assert "[ERROR] Failed to connect to assistant: Failed to connect" in captured.out

@pytest.mark.asyncio
async def test_harness_empty_input(capsys):
    """Test that empty input is skipped and doesn't call the server."""
    with patch("harness_cli.input", side_effect=["", "exit"]):
        with patch("harness_cli.requests.post") as mock_post:
            await run_harness("http://assistant.test", pipeline=make_pipeline())
            assert not mock_post.called

@pytest.mark.asyncio
async def test_harness_quit_command(capsys):
    """Test that 'quit' command terminates the harness."""
    with patch("harness_cli.input", side_effect=["quit"]):
        with patch("harness_cli.requests.post") as mock_post:
            await run_harness("http://assistant.test", pipeline=make_pipeline())
            assert not mock_post.called

@pytest.mark.asyncio
async def test_harness_keyboard_interrupt(capsys):
    """Test handling of KeyboardInterrupt (Ctrl+C)."""
    with patch("harness_cli.input", side_effect=KeyboardInterrupt):
        await run_harness("http://assistant.test", pipeline=make_pipeline())
        # Should exit gracefully without error message (it catches KeyboardInterrupt and breaks)
        captured = capsys.readouterr()
        assert "[ERROR]" not in captured.out
