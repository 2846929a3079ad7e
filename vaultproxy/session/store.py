"""
In-memory conversation log for one chat session.

Append-only and single-writer: text and tool calls always go to the latest
assistant turn; only tool results are routed by tool-call id.
"""
from __future__ import annotations

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

import structlog

ToolStatus = Literal["pending", "success", "error"]


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def utc_now_iso() -> str:
    return (
        datetime.now(timezone.utc)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z")
    )


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    status: ToolStatus = "pending"
    result: Any = None
    error: Optional[str] = None


@dataclass
class Turn:
    role: Literal["user", "assistant"]
    content: str = ""
    id: str = field(default_factory=_new_id)
    timestamp: str = field(default_factory=utc_now_iso)
    tool_calls: List[ToolCall] = field(default_factory=list)


class ConversationStore:
    def __init__(self) -> None:
        self.turns: List[Turn] = []
        self.is_streaming = False
        self.error: Optional[str] = None
        self.session_id = _new_id()
        self._log = structlog.get_logger()

    # ---------------------------------------------------------
    # Turns
    # ---------------------------------------------------------
    def add_user_message(self, content: str) -> str:
        turn = Turn(role="user", content=content)
        self.turns.append(turn)
        self.error = None
        return turn.id

    def add_assistant_message(self) -> str:
        turn = Turn(role="assistant")
        self.turns.append(turn)
        return turn.id

    def _open_assistant_turn(self) -> Optional[Turn]:
        if self.turns and self.turns[-1].role == "assistant":
            return self.turns[-1]
        return None

    def append_to_last_message(self, text: str) -> None:
        turn = self._open_assistant_turn()
        if turn is None:
            self._log.warning("store.append_without_assistant_turn", chars=len(text))
            return
        turn.content += text

    def add_tool_call_to_last_message(self, tool_call: ToolCall) -> None:
        turn = self._open_assistant_turn()
        if turn is None:
            self._log.warning("store.tool_call_without_assistant_turn", tool_call_id=tool_call.id)
            return
        turn.tool_calls.append(tool_call)

    def update_tool_call_result(self, tool_call_id: str, result: Any, is_error: bool = False) -> bool:
        """Resolve a pending tool call. Returns False if no pending call has that id."""
        turn = self._open_assistant_turn()
        if turn is None:
            return False

        for call in turn.tool_calls:
            if call.id != tool_call_id:
                continue
            if call.status != "pending":
                self._log.warning("store.tool_call_already_resolved", tool_call_id=tool_call_id)
                return False
            call.result = result
            if is_error:
                call.status = "error"
                call.error = str(result.get("error")) if isinstance(result, dict) else str(result)
            else:
                call.status = "success"
            return True
        return False

    # ---------------------------------------------------------
    # UI state
    # ---------------------------------------------------------
    def set_streaming(self, streaming: bool) -> None:
        self.is_streaming = streaming

    def set_error(self, error: Optional[str]) -> None:
        self.error = error

    def clear(self) -> None:
        self.turns = []
        self.error = None
        self.is_streaming = False
        self.session_id = _new_id()

    def history_for_request(self) -> List[Dict[str, str]]:
        return [{"role": t.role, "content": t.content} for t in self.turns]

    # ---------------------------------------------------------
    # Snapshot (current session only)
    # ---------------------------------------------------------
    def snapshot(self) -> str:
        return json.dumps({"session_id": self.session_id, "turns": [asdict(t) for t in self.turns]})

    def restore(self, raw: str) -> None:
        data = json.loads(raw)
        turns = []
        for t in data.get("turns") or []:
            calls = [ToolCall(**c) for c in t.get("tool_calls") or []]
            turns.append(
                Turn(
                    role=t["role"],
                    content=t.get("content", ""),
                    id=t.get("id") or _new_id(),
                    timestamp=t.get("timestamp") or utc_now_iso(),
                    tool_calls=calls,
                )
            )
        if turns:
            self.turns = turns
            self.session_id = data.get("session_id") or self.session_id
