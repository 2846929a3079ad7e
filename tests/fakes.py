"""In-memory fakes for the model stream and the secret store's HTTP session."""

import copy
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import requests


# ---------------------------------------------------------
# Model stream
# ---------------------------------------------------------
def text_block(*chunks: str, index: int = 0) -> List[Dict[str, Any]]:
    events: List[Dict[str, Any]] = [
        {"type": "content_block_start", "index": index, "content_block": {"type": "text", "text": ""}}
    ]
    for chunk in chunks:
        events.append(
            {"type": "content_block_delta", "index": index, "delta": {"type": "text_delta", "text": chunk}}
        )
    events.append({"type": "content_block_stop", "index": index})
    return events


def tool_block(tool_id: str, name: str, *fragments: str, index: int = 1) -> List[Dict[str, Any]]:
    events: List[Dict[str, Any]] = [
        {
            "type": "content_block_start",
            "index": index,
            "content_block": {"type": "tool_use", "id": tool_id, "name": name, "input": {}},
        }
    ]
    for fragment in fragments:
        events.append(
            {
                "type": "content_block_delta",
                "index": index,
                "delta": {"type": "input_json_delta", "partial_json": fragment},
            }
        )
    events.append({"type": "content_block_stop", "index": index})
    return events


@dataclass
class Round:
    events: List[Dict[str, Any]]
    # Raised after the events above have been yielded
    fail_with: Optional[Exception] = None


class FakeModel:
    """Satisfies the ModelStream protocol. Plays one scripted Round per stream() call."""

    def __init__(self, rounds: List[Union[Round, List[Dict[str, Any]]]]) -> None:
        self._rounds = [r if isinstance(r, Round) else Round(events=r) for r in rounds]
        self.calls: List[List[Dict[str, Any]]] = []
        self.tools_seen: List[List[Dict[str, Any]]] = []

    def stream(self, messages, tools, system=None):
        self.calls.append(copy.deepcopy(messages))
        self.tools_seen.append(tools)
        if not self._rounds:
            raise AssertionError("FakeModel ran out of scripted rounds")
        current = self._rounds.pop(0)
        for event in current.events:
            yield event
        if current.fail_with is not None:
            raise current.fail_with


# ---------------------------------------------------------
# Secret store HTTP session
# ---------------------------------------------------------
class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        if text is not None:
            self.text = text
        elif body is None:
            self.text = ""
        else:
            self.text = json.dumps(body)

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        return json.loads(self.text)


@dataclass
class RecordedCall:
    method: str
    path: str
    body: Any
    token: Optional[str]


class FakeVaultSession:
    """
    Stands in for requests.Session. Routes are keyed by (METHOD, path-after-/v1/).
    A route value may be a FakeResponse, an exception to raise, or a list of
    either (consumed in order, last one repeats).
    """

    def __init__(self, routes: Optional[Dict[tuple, Any]] = None) -> None:
        self.routes: Dict[tuple, Any] = routes if routes is not None else {}
        self.calls: List[RecordedCall] = []
        self.closed = False

    def request(self, method, url, headers=None, json=None, timeout=None):
        path = url.split("/v1/", 1)[1]
        self.calls.append(
            RecordedCall(method=method, path=path, body=json, token=(headers or {}).get("X-Vault-Token"))
        )
        route = self.routes.get((method, path))
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if route is None:
            return FakeResponse(404, {"errors": []})
        if isinstance(route, Exception):
            raise route
        return route

    def close(self) -> None:
        self.closed = True

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [c.path for c in self.calls if method is None or c.method == method]


class SingleSessionFactory:
    """Pool factory handing out FakeVaultSessions and remembering each one."""

    def __init__(self, routes: Optional[Dict[tuple, Any]] = None) -> None:
        self.routes = routes if routes is not None else {}
        self.created: List[FakeVaultSession] = []

    def __call__(self) -> FakeVaultSession:
        session = FakeVaultSession(self.routes)
        self.created.append(session)
        return session


NETWORK_DOWN = requests.ConnectionError("connection refused")


class ExplodingVault:
    """VaultClient stand-in whose every request raises, for handler-failure paths."""

    def __init__(self, error: Exception) -> None:
        self.error = error

    def request(self, method, path, body=None):
        raise self.error


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
