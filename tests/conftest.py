"""Shared test fixtures for forward-nqe-sync."""

import json
import threading
from typing import Any, Dict, List, Optional, Tuple, Union

import pytest
import requests

from forward_nqe.executor import RequestExecutor
from forward_nqe.transport import ApiRequest

BASE_URL = "https://fwd.example.com"

Outcome = Union[Tuple[int, Any], Exception]


def make_response(status: int, payload: Any = None, raw: Optional[bytes] = None) -> requests.Response:
    """Build a real requests.Response without touching the network."""
    resp = requests.Response()
    resp.status_code = status
    if raw is not None:
        resp._content = raw
    elif payload is None:
        resp._content = b""
    else:
        resp._content = json.dumps(payload).encode("utf-8")
    resp.encoding = "utf-8"
    return resp


class FakeTransport:
    """Stands in for Transport: scripted outcomes per endpoint, every call recorded.

    Outcomes for an endpoint are consumed in order; the last one repeats.
    An outcome is either (status, payload) or an exception to raise.
    """

    def __init__(self) -> None:
        self.base_url = BASE_URL
        self.routes: Dict[str, List[Outcome]] = {}
        self.calls: List[ApiRequest] = []
        self.on_send = None

    def route(self, endpoint: str, *outcomes: Outcome) -> "FakeTransport":
        self.routes[endpoint] = list(outcomes)
        return self

    def url_for(self, request: ApiRequest) -> str:
        return f"{self.base_url}{request.endpoint}"

    def calls_to(self, endpoint: str) -> List[ApiRequest]:
        return [c for c in self.calls if c.endpoint == endpoint]

    def send(self, request: ApiRequest) -> requests.Response:
        self.calls.append(request)
        if self.on_send is not None:
            self.on_send(request)
        outcomes = self.routes.get(request.endpoint)
        if not outcomes:
            return make_response(404, raw=b"no such route")
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        status, payload = outcome
        if isinstance(payload, bytes):
            return make_response(status, raw=payload)
        return make_response(status, payload)


class RecordingSleep:
    """Replacement for interruptible_sleep that records delays instead of waiting."""

    def __init__(self, cancel_after: Optional[int] = None) -> None:
        self.delays: List[float] = []
        self.cancel_after = cancel_after

    def __call__(self, cancel: threading.Event, seconds: float) -> bool:
        self.delays.append(seconds)
        if self.cancel_after is not None and len(self.delays) >= self.cancel_after:
            cancel.set()
        return cancel.is_set()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def executor(transport: FakeTransport, sleeper: RecordingSleep) -> RequestExecutor:
    return RequestExecutor(transport, sleep=sleeper)  # type: ignore[arg-type]


def catalog_endpoint(repo: str) -> str:
    return f"/api/nqe/repos/{repo}/commits/head/queries"


def detail_endpoint(repo: str, commit_id: str) -> str:
    return f"/api/nqe/repos/{repo}/commits/{commit_id}/queries"


def summary(path: str, commit: str, query_id: Optional[str] = None) -> Dict[str, str]:
    return {
        "path": path,
        "lastCommitId": commit,
        "queryId": query_id or f"Q_{path.strip('/').replace('/', '_')}",
        "sourceCodeSha": f"sha-{commit}",
    }


def detail(query_id: str = "", path: str = "", commit: str = "", **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "queryId": query_id,
        "path": path,
        "sourceCode": "foreach d in network.devices select {name: d.name}",
        "intent": "List devices",
        "description": "",
        "sourceCodeSha": "abc",
        "commitCount": 3,
        "lastCommit": {"id": commit, "authorEmail": "a@example.com", "committedAt": 1700000000000, "title": "t"},
        "firstCommit": {"id": "c0", "authorEmail": "a@example.com", "committedAt": 1600000000000, "title": "init"},
    }
    body.update(extra)
    return body
