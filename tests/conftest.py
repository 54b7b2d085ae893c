"""
Pytest configuration and fixtures for the Worst Generation client tests.

Provides generated identities, an in-memory relay channel and a recording
display so the handshake and chat session run without a network.
"""

import asyncio
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Iterable, List, Optional, Tuple

import pytest

from worstgen import crypto
from worstgen.channel import Channel
from worstgen.errors import ErrorCode, NetworkError
from worstgen.session import Display

Responder = Callable[[str, Dict[str, Any]], Iterable[Tuple[str, Any]]]


class FakeChannel(Channel):
    """
    In-memory relay.

    Every emitted event is recorded; an optional responder returns the
    events the relay answers with, which are dispatched immediately.
    """

    def __init__(
        self,
        responder: Optional[Responder] = None,
        fail_connect: bool = False,
        connect_delay: float = 0,
        connect_error: Optional[Exception] = None,
    ):
        super().__init__()
        self.responder = responder
        self.fail_connect = fail_connect
        self.connect_delay = connect_delay
        self.connect_error = connect_error
        self.emitted: List[Tuple[str, Dict[str, Any]]] = []
        self.url: Optional[str] = None
        self.disconnect_calls = 0
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self, url: str) -> None:
        self.url = url
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error
        if self.fail_connect:
            raise NetworkError(ErrorCode.E201_CONNECTION_FAILED, f"Failed to connect to {url}")
        self._connected = True

    async def emit(self, event: str, data: Dict[str, Any]) -> None:
        if not self._connected:
            raise NetworkError(ErrorCode.E204_SEND_FAILED, f"Cannot send {event}: not connected")
        self.emitted.append((event, data))
        if self.responder:
            for reply_event, payload in self.responder(event, data):
                await self.dispatch(reply_event, payload)

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        if self._connected:
            self._connected = False
            await self.dispatch("disconnect", None)

    def events(self, name: str) -> List[Dict[str, Any]]:
        return [data for event, data in self.emitted if event == name]


class RecordingDisplay(Display):
    """Display that keeps everything it is asked to render."""

    def __init__(self):
        self.messages: List[Tuple[str, int, str, bool]] = []
        self.notifications: List[Tuple[str, str]] = []
        self.input_closed = False

    def show_message(self, sender: str, timestamp: int, text: str, own: bool = False) -> None:
        self.messages.append((sender, timestamp, text, own))

    def notify(self, text: str, severity: str = "information") -> None:
        self.notifications.append((text, severity))

    def close_input(self) -> None:
        self.input_closed = True


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test data.

    Cleanup:
        Automatically removes directory after test
    """
    tmp = Path(tempfile.mkdtemp(prefix="worstgen_test_"))
    try:
        yield tmp
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(scope="session")
def alice() -> crypto.Identity:
    """RSA identity for alias 'alice' (generated once per test run)."""
    return crypto.generate_identity("alice")


@pytest.fixture(scope="session")
def bob() -> crypto.Identity:
    """RSA identity for alias 'bob'."""
    return crypto.generate_identity("bob")


@pytest.fixture(scope="session")
def mallory() -> crypto.Identity:
    """RSA identity for alias 'mallory'."""
    return crypto.generate_identity("mallory")


@pytest.fixture
def display() -> RecordingDisplay:
    return RecordingDisplay()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def make_channel() -> Callable[..., FakeChannel]:
    """Factory for FakeChannel with a responder or a failing connect."""
    return FakeChannel


@pytest.fixture
def clean_env(monkeypatch):
    """Remove WORSTGEN_* variables so config tests see only what they set."""
    for name in list(os.environ):
        if name.startswith("WORSTGEN_"):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch


def pytest_configure(config):
    """
    Configure pytest markers.
    """
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")


def pytest_collection_modifyitems(config, items):
    """
    Add markers based on test location.
    """
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
