"""Console chat widget for a Chatwoot API-channel inbox.

Registers (or reuses) a contact and conversation, prints the history,
then relays lines typed on stdin as messages and prints agent replies.

    pip install chatwoot-client

    python examples/widget_console.py --url https://app.chatwoot.com --inbox <INBOX_ID>

    # Identified user, nothing written to disk
    python examples/widget_console.py --url http://localhost:3000 --inbox <INBOX_ID> \
        --identifier user-42 --name Ada --no-persist
"""

import argparse
import asyncio
import signal
import sys

from chatwoot_client import (
    ChatwootActionType,
    ChatwootCallbacks,
    ChatwootClient,
    ChatwootUser,
)


def build_callbacks() -> ChatwootCallbacks:
    def show(messages):
        for message in messages:
            who = "you" if message.is_mine else "agent"
            print(f"  [{who}] {message.content}")

    return ChatwootCallbacks(
        on_error=lambda error: print(f"! {error.kind.value}: {error.cause} {error.data or ''}"),
        on_confirmed_subscription=lambda: print("* listening for replies"),
        on_persisted_messages_retrieved=show,
        on_messages_retrieved=show,
        on_message_received=lambda message: print(f"  [agent] {message.content}"),
        on_conversation_started_typing=lambda: print("* agent is typing..."),
        on_conversation_is_online=lambda: print("* agent online"),
        on_conversation_is_offline=lambda: print("* agent offline"),
    )


async def main(url: str, inbox: str, user: ChatwootUser | None, persist: bool):
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    async with await ChatwootClient.create(
        url, inbox, user=user, enable_persistence=persist, callbacks=build_callbacks()
    ) as client:
        print(f"Connected to {url} (inbox {inbox})")
        await client.load_messages()
        print("Type a message and press Enter (Ctrl+C to stop)\n")

        while not stop.is_set():
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                break
            text = line.strip()
            if not text:
                continue
            client.send_action(ChatwootActionType.TYPING_OFF)
            await client.send_message(text)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chatwoot console widget")
    parser.add_argument("--url", default="http://localhost:3000")
    parser.add_argument("--inbox", required=True, help="API-channel inbox identifier")
    parser.add_argument("--identifier", help="Stable user id from your application")
    parser.add_argument("--name")
    parser.add_argument("--email")
    parser.add_argument("--no-persist", action="store_true", help="Keep state in memory only")
    args = parser.parse_args()

    user = None
    if args.identifier or args.name or args.email:
        user = ChatwootUser(identifier=args.identifier, name=args.name, email=args.email)
    asyncio.run(main(args.url, args.inbox, user, not args.no_persist))
