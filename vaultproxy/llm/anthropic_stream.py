# For streaming model output (Messages API, server-sent events)
from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Iterator, List, Optional

import requests
import structlog

from vaultproxy.errors import ModelTransportError
from vaultproxy.settings import Settings

# Event types the engine cares about; everything else (ping, message_delta, ...) is skipped
BLOCK_EVENTS = {"content_block_start", "content_block_delta", "content_block_stop"}


def iter_sse_data(lines: Iterable[str]) -> Iterator[Dict[str, Any]]:
    """
    Decode server-sent event lines into JSON payloads.

    Only `data:` lines carry payloads; the event type is repeated inside the
    payload's "type" field, so `event:` lines are ignored.
    """
    for raw in lines:
        if not raw:
            continue
        if not raw.startswith("data:"):
            continue
        data = raw[len("data:"):].strip()
        if not data or data == "[DONE]":
            continue
        try:
            payload = json.loads(data)
        except ValueError as ex:
            raise ModelTransportError(f"undecodable stream payload: {data[:80]}") from ex
        if isinstance(payload, dict):
            yield payload


class AnthropicStreamClient:
    """Streams block events from the Messages API with stream=true."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None) -> None:
        self._settings = settings
        self._http = session or requests.Session()
        self._log = structlog.get_logger()

    def stream(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        system: Optional[str] = None,
    ) -> Iterator[Dict[str, Any]]:
        s = self._settings
        payload: Dict[str, Any] = {
            "model": s.model,
            "max_tokens": s.max_tokens,
            "messages": messages,
            "tools": tools,
            "stream": True,
        }
        if system:
            payload["system"] = system

        headers = {
            "x-api-key": s.anthropic_api_key,
            "anthropic-version": s.anthropic_version,
            "content-type": "application/json",
        }

        try:
            with self._http.post(
                f"{s.anthropic_base_url}/v1/messages",
                json=payload,
                headers=headers,
                stream=True,
                timeout=s.model_timeout_s,
            ) as r:
                if not r.ok:
                    raise ModelTransportError(
                        f"HTTP {r.status_code}: {_error_message(r)}",
                        retriable=r.status_code in (429, 500, 502, 503, 529),
                    )

                for event in iter_sse_data(r.iter_lines(decode_unicode=True)):
                    kind = event.get("type")
                    if kind == "error":
                        err = event.get("error") or {}
                        raise ModelTransportError(str(err.get("message") or err or "stream error"))
                    if kind == "message_stop":
                        return
                    if kind in BLOCK_EVENTS:
                        yield event
        except requests.RequestException as ex:
            self._log.warning("model.transport_failed", reason=str(ex))
            raise ModelTransportError(str(ex), retriable=True) from ex


def _error_message(r: requests.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        return (r.text or "").strip()[:200] or r.reason or "error"
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    return str(body)[:200]
