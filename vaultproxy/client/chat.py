from __future__ import annotations

from typing import Iterable, Optional, Protocol

import structlog
from pydantic import BaseModel

from vaultproxy.schemas import DoneEvent, ErrorEvent, TextEvent, ToolCallEvent, ToolResultEvent
from vaultproxy.session.store import ConversationStore, ToolCall
from vaultproxy.tools.definitions import MUTATING_TOOLS


class EventSource(Protocol):
    def stream(self, message: str, history: list) -> Iterable[BaseModel]: ...

    def cancel(self) -> None: ...


class ChatSession:
    """
    Sends user messages and replays the resulting event stream into a
    ConversationStore. One request at a time per store.
    """

    def __init__(self, client: EventSource, store: Optional[ConversationStore] = None) -> None:
        self.client = client
        self.store = store or ConversationStore()
        self._log = structlog.get_logger()

    def send_message(self, content: str) -> bool:
        """
        Stream one exchange into the store.

        Returns True when a tool that changes the store ran, so callers can
        refresh any cached listings. Returns False without sending when a
        request is already streaming.
        """
        store = self.store
        if store.is_streaming:
            self._log.info("chat.send_ignored_while_streaming")
            return False

        history = store.history_for_request()
        store.add_user_message(content)
        store.add_assistant_message()
        store.set_streaming(True)
        store.set_error(None)

        wrote = False
        try:
            for event in self.client.stream(content, history):
                if isinstance(event, ToolCallEvent) and event.name in MUTATING_TOOLS:
                    wrote = True
                self.apply(event)
        finally:
            # Cancelled streams end without a done event
            store.set_streaming(False)
        return wrote

    def cancel(self) -> None:
        """Abort the in-flight request; send_message's thread releases the streaming flag."""
        self.client.cancel()

    def apply(self, event: BaseModel) -> None:
        store = self.store
        if isinstance(event, TextEvent):
            if event.content:
                store.append_to_last_message(event.content)
        elif isinstance(event, ToolCallEvent):
            store.add_tool_call_to_last_message(
                ToolCall(id=event.tool_call_id, name=event.name, arguments=dict(event.arguments))
            )
        elif isinstance(event, ToolResultEvent):
            store.update_tool_call_result(event.tool_call_id, event.result, is_error=event.is_error)
        elif isinstance(event, ErrorEvent):
            store.set_error(event.error or "Unknown error")
        elif isinstance(event, DoneEvent):
            store.set_streaming(False)
