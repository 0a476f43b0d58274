"""CLI entry point for the Concierge chat engine.

A terminal chat against the same orchestrator the API uses, handy for
trying out prompts and agent configs.  For production, use the FastAPI
server (concierge/server.py).

Usage:
    python -m concierge.main                    # global assistant
    python -m concierge.main --business ChIJ…   # a business assistant
    python -m concierge.main --debug            # show API calls
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from concierge.errors import ConciergeError
from concierge.models import MessageRole
from concierge.orchestrator import create_session_orchestrator

logger = logging.getLogger(__name__)

_LABELS = {
    MessageRole.USER: "You",
    MessageRole.ASSISTANT: "Assistant",
    MessageRole.HUMAN_OPERATOR: "Team",
}


def _configure_logging(debug: bool = False) -> None:
    """WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("concierge").setLevel(logging.DEBUG if debug else logging.INFO)


def _ask(prompt: str) -> str | None:
    try:
        return input(prompt).strip()
    except (KeyboardInterrupt, EOFError):
        return None


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="Concierge chat engine CLI")
    parser.add_argument("--business", metavar="ID", help="Chat with this business's assistant")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  Concierge - CLI Chat")
    print("=" * 60)
    print("  Type your message and press Enter. 'quit' to exit.")
    print("=" * 60 + "\n")

    name = _ask("Your name: ")
    phone = _ask("Your phone: ") if name is not None else None
    if name is None or phone is None:
        print("\nGoodbye!")
        return

    orchestrator = create_session_orchestrator()
    try:
        start = orchestrator.start_or_resume(name, phone, business_id=args.business)
    except ConciergeError as e:
        print(f"\nCould not start the chat: {e}")
        orchestrator.close()
        return

    session = start.session
    if start.is_resumed:
        print(f"\n>> Resuming session {session.id[:8]}...\n")
    for msg in start.history:
        print(f"{_LABELS[msg.role]}: {msg.text}")
    print()

    try:
        while True:
            user_input = _ask("You: ")
            if user_input is None:
                print("\n\nGoodbye!")
                break
            if not user_input:
                continue
            if user_input.lower() in ("exit", "quit", "q"):
                print("\nGoodbye! Have a great day!")
                break

            try:
                result = orchestrator.post_message(
                    session.id, user_input, business_id=args.business,
                )
            except ConciergeError as e:
                logger.exception("Error processing message")
                print(f"\nAssistant: I'm sorry, something went wrong: {e}\n")
                continue

            print(f"\nAssistant: {result.reply.text}\n")
            if result.usage is not None:
                logger.info(
                    "tokens in=%d out=%d cost=$%.6f",
                    result.usage.input_tokens, result.usage.output_tokens, result.cost,
                )
    finally:
        orchestrator.close()


if __name__ == "__main__":
    main()
