import argparse
import json
import os
import sys
from pathlib import Path

from vaultproxy.client.chat import ChatSession
from vaultproxy.client.chat_client import ChatClient
from vaultproxy.logging_setup import configure_logging
from vaultproxy.schemas import ErrorEvent, TextEvent, ToolCallEvent, ToolResultEvent


class PrintingSession(ChatSession):
    """Echoes events to the terminal as they are replayed into the store."""

    def apply(self, event):
        super().apply(event)
        if isinstance(event, TextEvent):
            print(event.content, end="", flush=True)
        elif isinstance(event, ToolCallEvent):
            print(f"\n[tool] {event.name} {json.dumps(event.arguments)}", flush=True)
        elif isinstance(event, ToolResultEvent):
            status = "error" if event.is_error else "ok"
            print(f"[tool] {event.name} -> {status}", flush=True)
        elif isinstance(event, ErrorEvent):
            print(f"\n[error] {event.error}", file=sys.stderr, flush=True)


def main() -> int:
    ap = argparse.ArgumentParser(description="Chat with the Vault assistant through a running proxy.")
    ap.add_argument("--base-url", default="http://localhost:3001")
    ap.add_argument("--token", default=os.getenv("VAULT_TOKEN", ""))
    ap.add_argument("--message", "-m", action="append", help="send these messages and exit")
    ap.add_argument("--save", default="", help="write the conversation snapshot to this file")
    ap.add_argument("--load", default="", help="restore a conversation snapshot before sending")
    ap.add_argument("--log-format", default="console", choices=["console", "json"])

    args = ap.parse_args()
    configure_logging(args.log_format)

    if not args.token:
        print("A Vault token is required (--token or VAULT_TOKEN)", file=sys.stderr)
        return 2

    session = PrintingSession(ChatClient(args.base_url, args.token))

    if args.load:
        path = Path(args.load)
        if not path.exists():
            print(f"File not found: {path}", file=sys.stderr)
            return 2
        session.store.restore(path.read_text(encoding="utf-8"))

    def send(text: str) -> None:
        try:
            wrote = session.send_message(text)
        except KeyboardInterrupt:
            session.cancel()
            print("\n[cancelled]")
            return
        print()
        if wrote:
            print("[store changed]")

    if args.message:
        for text in args.message:
            send(text)
    else:
        while True:
            try:
                text = input("> ").strip()
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if text in ("/quit", "/exit"):
                break
            if text == "/clear":
                session.store.clear()
                continue
            if text:
                send(text)

    if args.save:
        out = Path(args.save)
        out.write_text(session.store.snapshot(), encoding="utf-8")
        print(f"Wrote conversation to: {out}")

    return 1 if session.store.error else 0


if __name__ == "__main__":
    raise SystemExit(main())
