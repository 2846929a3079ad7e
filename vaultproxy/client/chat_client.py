from __future__ import annotations

import threading
from typing import Any, Dict, Iterator, List, Optional

import requests
import structlog
from pydantic import BaseModel

from vaultproxy.client.decoder import EventDecoder
from vaultproxy.schemas import DoneEvent, ErrorEvent


class ChatClient:
    """
    Streams chat events from the proxy's /chat endpoint.

    Every stream the caller sees ends with a DoneEvent, except a cancelled one,
    which simply stops. Cancellation is never reported as an error.
    """

    def __init__(
        self,
        base_url: str,
        vault_token: str,
        timeout_s: float = 300.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.vault_token = vault_token
        self._timeout_s = timeout_s
        self._http = session or requests.Session()
        self._cancelled = threading.Event()
        self._response: Optional[requests.Response] = None
        self._lock = threading.Lock()
        self._log = structlog.get_logger()

    def set_vault_token(self, token: str) -> None:
        self.vault_token = token

    @property
    def is_streaming(self) -> bool:
        return self._response is not None

    def cancel(self) -> None:
        self._cancelled.set()
        with self._lock:
            response = self._response
        if response is not None:
            response.close()

    def stream(self, message: str, history: List[Dict[str, Any]]) -> Iterator[BaseModel]:
        self._cancelled.clear()
        decoder = EventDecoder()

        try:
            r = self._http.post(
                f"{self.base_url}/chat",
                json={"message": message, "history": history},
                headers={"X-Vault-Token": self.vault_token},
                stream=True,
                timeout=self._timeout_s,
            )
        except requests.RequestException as ex:
            if self._cancelled.is_set():
                return
            yield ErrorEvent(error=str(ex))
            yield DoneEvent()
            return

        with self._lock:
            self._response = r
        try:
            if not r.ok:
                yield ErrorEvent(error=_error_message(r))
                yield DoneEvent()
                return

            saw_done = False
            for chunk in r.iter_content(chunk_size=None):
                if self._cancelled.is_set():
                    return
                for event in decoder.feed(chunk):
                    saw_done = saw_done or isinstance(event, DoneEvent)
                    yield event
            for event in decoder.flush():
                saw_done = saw_done or isinstance(event, DoneEvent)
                yield event

            if decoder.dropped:
                self._log.warning("client.envelopes_dropped", count=decoder.dropped)
            if not saw_done and not self._cancelled.is_set():
                yield ErrorEvent(error="Stream ended unexpectedly")
                yield DoneEvent()
        except requests.RequestException as ex:
            if self._cancelled.is_set():
                return
            yield ErrorEvent(error=str(ex))
            yield DoneEvent()
        except (AttributeError, ValueError):
            # urllib3 reading from a response that cancel() closed underneath it
            if self._cancelled.is_set():
                return
            raise
        finally:
            with self._lock:
                self._response = None
            r.close()


def _error_message(r: requests.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        body = {}
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP error: {r.status_code}"
