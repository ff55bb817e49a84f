import asyncio
from typing import Optional

import requests

from config import cfg
from logger_config import setup_logging
from speech.endpoint_client import TTSEndpointClient
from speech.pipeline import SpeechPipeline

async def run_harness(server_url: Optional[str] = None, pipeline: Optional[SpeechPipeline] = None) -> None:
    base_url = (server_url or cfg().assistant_url).rstrip("/")
    if pipeline is None:
        pipeline = SpeechPipeline.create(remote=TTSEndpointClient(base_url))

    print("\n" + "="*50)
    print("🎙️ PERSONA INTERVIEW HARNESS (v1.0)")
    print("Type a question and press Enter. Replies are spoken aloud.")
    print("Typing again interrupts the reply. '/stop' silences it, 'exit' quits.")
    print("="*50 + "\n")

    speech_tasks = set()

    while True:
        try:
            user_input = (await asyncio.to_thread(input, "You: ")).strip()
        except (KeyboardInterrupt, EOFError):
            break

        # The user talking again silences the previous reply
        pipeline.cancel()

        if user_input.lower() in ["exit", "quit"]:
            break

        if not user_input or user_input == "/stop":
            continue

        try:
            response = await asyncio.to_thread(
                requests.post,
                f"{base_url}/api/ask",
                json={"message": user_input},
                timeout=60,
            )
        except requests.exceptions.RequestException as e:
            print(f"\n[ERROR] Failed to connect to assistant: {e}")
            break

        if response.status_code != 200:
            print(f"\n[ERROR] Server returned {response.status_code}: {response.text}")
            continue

        reply = response.json().get("response") or "No response."
        print(f"\nAssistant: {reply}\n")

        # Speak in the background so the next question can interrupt it
        task = asyncio.create_task(pipeline.speak(reply))
        speech_tasks.add(task)
        task.add_done_callback(speech_tasks.discard)

    pipeline.cancel()
    for task in list(speech_tasks):
        task.cancel()
    if speech_tasks:
        await asyncio.gather(*speech_tasks, return_exceptions=True)

def main() -> None:
    setup_logging()
    try:
        asyncio.run(run_harness())
    except KeyboardInterrupt:
        print("\nGoodbye!")

if __name__ == "__main__":
    main()
