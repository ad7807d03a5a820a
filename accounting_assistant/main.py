"""Terminal chat against the accounting assistant, bypassing WhatsApp.

Usage:
    python -m accounting_assistant.main            # quiet
    python -m accounting_assistant.main --debug    # show API calls
"""

from __future__ import annotations

import argparse
import logging
import uuid

from accounting_assistant.agent import AccountingAgent

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("accounting_assistant").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    parser = argparse.ArgumentParser(description="WhatsApp Accounting Assistant CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    args = parser.parse_args()
    _configure_logging(debug=args.debug)

    print("\n" + "=" * 60)
    print("  Muhasebe Asistanı - CLI")
    print("=" * 60)
    print("  Sorunuzu yazıp Enter'a basın.")
    print("  Komutlar: 'quit' çıkış, 'new' yeni oturum.")
    print("=" * 60 + "\n")

    agent = AccountingAgent()
    sender = f"cli-{uuid.uuid4().hex[:8]}"
    logger.info("Started new session: %s", sender)

    while True:
        try:
            user_input = input("Siz: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGörüşmek üzere!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGörüşmek üzere!")
            break

        if user_input.lower() == "new":
            agent.clear_session(sender)
            print("\n>> Yeni oturum başlatıldı.\n")
            continue

        try:
            reply = agent.process_message(sender, user_input)
        except KeyboardInterrupt:
            print("\n\nGörüşmek üzere!")
            break
        print(f"\nAsistan: {reply}\n")


if __name__ == "__main__":
    main()
