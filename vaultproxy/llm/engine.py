"""
Multi-round tool-calling loop over a streaming language model.

Each round is decoded by collect_round(), a single state machine over the
model's block events. TurnEngine.run() repeats rounds, executing the
requested tools in order, until a round ends without tool calls.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Iterable, Iterator, List, Optional, Protocol, Sequence

import structlog
from pydantic import BaseModel

from vaultproxy.errors import MalformedToolArguments, ModelTransportError
from vaultproxy.llm.prompt import SYSTEM_PROMPT
from vaultproxy.schemas import (
    DoneEvent,
    ErrorEvent,
    HistoryMessage,
    TextEvent,
    ToolCallEvent,
    ToolResultEvent,
)
from vaultproxy.tools.executor import ToolExecutor, ToolResult
from vaultproxy.tools.registry import ToolRegistry


class ModelStream(Protocol):
    def stream(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        system: Optional[str] = None,
    ) -> Iterator[Dict[str, Any]]: ...


@dataclass(frozen=True)
class ToolUse:
    id: str
    name: str
    arguments: Dict[str, Any]

    def block(self) -> Dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.arguments}


@dataclass
class RoundResult:
    text: str = ""
    tool_calls: List[ToolUse] = field(default_factory=list)


@dataclass
class _PendingToolUse:
    id: str
    name: str
    fragments: List[str] = field(default_factory=list)


_log = structlog.get_logger()


def parse_tool_arguments(name: str, raw: str) -> Dict[str, Any]:
    """Parse a complete fragment buffer. Raises MalformedToolArguments."""
    if not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except ValueError as ex:
        raise MalformedToolArguments(name, raw) from ex
    if not isinstance(value, dict):
        raise MalformedToolArguments(name, raw)
    return value


def _close_tool_use(pending: _PendingToolUse) -> ToolUse:
    raw = "".join(pending.fragments)
    try:
        args = parse_tool_arguments(pending.name, raw)
    except MalformedToolArguments:
        # The model still gets a tool_result for this call
        _log.warning("engine.malformed_tool_arguments", tool=pending.name, tool_call_id=pending.id, size=len(raw))
        args = {}
    return ToolUse(id=pending.id, name=pending.name, arguments=args)


def collect_round(events: Iterable[Dict[str, Any]]) -> Generator[TextEvent, None, RoundResult]:
    """
    Decode one round of block events.

    Yields a TextEvent per text delta as it arrives and returns the round's
    full text plus its completed tool calls in the order they were opened.
    """
    text_parts: List[str] = []
    pending: Optional[_PendingToolUse] = None
    completed: List[ToolUse] = []

    for event in events:
        kind = event.get("type")

        if kind == "content_block_start":
            block = event.get("content_block") or {}
            if block.get("type") == "tool_use":
                if pending is not None:
                    completed.append(_close_tool_use(pending))
                pending = _PendingToolUse(id=str(block.get("id", "")), name=str(block.get("name", "")))

        elif kind == "content_block_delta":
            delta = event.get("delta") or {}
            dtype = delta.get("type")
            if dtype == "text_delta":
                text = delta.get("text") or ""
                if text:
                    text_parts.append(text)
                    yield TextEvent(content=text)
            elif dtype == "input_json_delta" and pending is not None:
                pending.fragments.append(delta.get("partial_json") or "")

        elif kind == "content_block_stop":
            if pending is not None:
                completed.append(_close_tool_use(pending))
                pending = None

    if pending is not None:
        completed.append(_close_tool_use(pending))

    return RoundResult(text="".join(text_parts), tool_calls=completed)


def build_messages(history: Sequence[HistoryMessage], message: str) -> List[Dict[str, Any]]:
    """History entries with blank content are dropped; the new message goes last."""
    messages: List[Dict[str, Any]] = [
        {"role": h.role, "content": h.content}
        for h in history
        if h.content and h.content.strip()
    ]
    messages.append({"role": "user", "content": message})
    return messages


def _assistant_turn(round_: RoundResult) -> Dict[str, Any]:
    content: List[Dict[str, Any]] = []
    if round_.text:
        content.append({"type": "text", "text": round_.text})
    content.extend(call.block() for call in round_.tool_calls)
    return {"role": "assistant", "content": content}


def _tool_result_block(call: ToolUse, result: ToolResult) -> Dict[str, Any]:
    return {
        "type": "tool_result",
        "tool_use_id": call.id,
        "content": json.dumps(result.payload(), default=str),
        "is_error": not result.success,
    }


class TurnEngine:
    def __init__(
        self,
        model: ModelStream,
        registry: ToolRegistry,
        system_prompt: str = SYSTEM_PROMPT,
        max_rounds: int = 0,
    ) -> None:
        self._model = model
        self._registry = registry
        self._system = system_prompt
        self._max_rounds = max_rounds
        self._log = structlog.get_logger()

    def chat(
        self,
        message: str,
        history: Sequence[HistoryMessage],
        executor: ToolExecutor,
    ) -> Generator[BaseModel, None, None]:
        """Entry point for one user message. Always ends with a single DoneEvent."""
        if not message or not message.strip():
            yield ErrorEvent(error="Message cannot be empty")
            yield DoneEvent()
            return
        yield from self.run(build_messages(history, message), executor)

    def run(self, messages: List[Dict[str, Any]], executor: ToolExecutor) -> Generator[BaseModel, None, None]:
        """
        Drive rounds until the model stops requesting tools.

        `messages` is extended in place, so the caller keeps every completed
        round even when the stream fails part-way.
        """
        tools = self._registry.anthropic_tools()
        rounds = 0

        try:
            while True:
                if self._max_rounds and rounds >= self._max_rounds:
                    self._log.warning("engine.max_rounds_reached", rounds=rounds)
                    yield ErrorEvent(error=f"Stopped after {rounds} tool rounds without a final answer")
                    break
                rounds += 1

                round_ = yield from collect_round(self._model.stream(messages, tools, self._system))
                self._log.info(
                    "engine.round_completed",
                    round=rounds,
                    text_chars=len(round_.text),
                    tool_calls=len(round_.tool_calls),
                )
                if not round_.tool_calls:
                    break

                results: List[Dict[str, Any]] = []
                for call in round_.tool_calls:
                    yield ToolCallEvent(tool_call_id=call.id, name=call.name, arguments=call.arguments)
                    result = self._registry.dispatch(call.name, call.arguments, executor)
                    yield ToolResultEvent(
                        tool_call_id=call.id,
                        name=call.name,
                        result=result.payload(),
                        is_error=not result.success,
                    )
                    results.append(_tool_result_block(call, result))

                messages.append(_assistant_turn(round_))
                messages.append({"role": "user", "content": results})

        except ModelTransportError as ex:
            self._log.error("engine.model_failed", round=rounds, reason=str(ex))
            yield ErrorEvent(error=str(ex))
        except Exception as ex:
            self._log.exception("engine.unexpected_error", round=rounds)
            yield ErrorEvent(error=str(ex) or "An error occurred")

        yield DoneEvent()
