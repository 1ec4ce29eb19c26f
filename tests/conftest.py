"""Shared fixtures for chat-connector tests."""

import copy
import os
import json
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import pytest

DATA_DIR = Path(__file__).parent / "unit" / "data"


def read_test_response(name: str) -> str:
    return (DATA_DIR / name).read_text(encoding="utf-8")


def parse_sse_events(text: str) -> List[Dict[str, Any]]:
    """Decode the ``data:`` events of a recorded stream, stopping at [DONE]."""
    events = []
    for line in text.splitlines():
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            break
        events.append(json.loads(data))
    return events


class FakeChatTransport:
    """In-memory transport returning queued responses and recording every payload."""

    def __init__(
        self,
        responses: Optional[List[Dict[str, Any]]] = None,
        streams: Optional[List[List[Dict[str, Any]]]] = None
    ):
        self.responses = list(responses or [])
        self.streams = list(streams or [])
        self.requests: List[Dict[str, Any]] = []
        self.closed = False

    async def send(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.requests.append(copy.deepcopy(payload))
        if not self.responses:
            raise AssertionError("No more responses queued")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def stream(self, payload: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        self.requests.append(copy.deepcopy(payload))
        if not self.streams:
            raise AssertionError("No more streams queued")
        for event in self.streams.pop(0):
            yield event

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def load_text() -> Callable[[str], str]:
    """Raw contents of a file in tests/unit/data."""
    return read_test_response


@pytest.fixture
def load_json() -> Callable[[str], Dict[str, Any]]:
    """Decoded JSON response from tests/unit/data."""
    def loader(name: str) -> Dict[str, Any]:
        return json.loads(read_test_response(name))
    return loader


@pytest.fixture
def load_stream() -> Callable[[str], List[Dict[str, Any]]]:
    """Decoded events of a recorded stream from tests/unit/data."""
    def loader(name: str) -> List[Dict[str, Any]]:
        return parse_sse_events(read_test_response(name))
    return loader


@pytest.fixture
def make_transport() -> Callable[..., FakeChatTransport]:
    def factory(
        responses: Optional[List[Dict[str, Any]]] = None,
        streams: Optional[List[List[Dict[str, Any]]]] = None
    ) -> FakeChatTransport:
        return FakeChatTransport(responses=responses, streams=streams)
    return factory


@pytest.fixture(autouse=True)
def clean_connector_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep real CHAT_CONNECTOR_* variables and .env files out of tests."""
    for key in list(os.environ):
        if key.upper().startswith("CHAT_CONNECTOR_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
