"""
Worst Generation - Authenticated chat session.

Holds the state produced by a successful login or registration and routes
traffic between the relay channel and the display:
- outgoing lines are sealed per recipient and emitted as message events
- inbound envelopes are opened with the local private key
- presence and disconnect events become display notifications

The session never exits the process itself; it reports the exit code to
the on_terminate callback and leaves the decision to the driver.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from . import crypto
from .channel import Channel
from .constants import (
    DECRYPTION_PLACEHOLDER,
    EVENT_DISCONNECT,
    EVENT_MESSAGE,
    EVENT_USER_JOINED,
    EVENT_USER_LEFT,
    QUIT_SENTINEL,
)
from .directory import KeyDirectory
from .errors import CryptoError, DecryptionFailure, NetworkError
from .utils import now_ms

logger = logging.getLogger(__name__)

PRESENCE_JOINED = "joined"
PRESENCE_LEFT = "left"


@dataclass
class HistoryEntry:
    """One message in arrival order: sender, epoch-ms timestamp and content."""

    sender: str
    timestamp: int
    envelope: Optional[crypto.Envelope] = None
    text: Optional[str] = None


@dataclass
class Session:
    """State of an authenticated connection to the relay."""

    alias: str
    identity: crypto.Identity
    authenticated: bool = False
    history: List[HistoryEntry] = field(default_factory=list)
    directory: KeyDirectory = field(default_factory=KeyDirectory)


class Display(ABC):
    """Display collaborator: receives rendered lines and status strings."""

    @abstractmethod
    def show_message(self, sender: str, timestamp: int, text: str, own: bool = False) -> None:
        """Render one chat line."""

    @abstractmethod
    def notify(self, text: str, severity: str = "information") -> None:
        """Render a status line (information, warning or error)."""

    @abstractmethod
    def close_input(self) -> None:
        """Stop accepting user input."""


def history_entry_from_payload(item: Dict[str, Any]) -> HistoryEntry:
    """Convert one relay history/message payload into a HistoryEntry."""
    sender = str(item.get("sender", "unknown"))
    timestamp = item.get("timestamp") or now_ms()
    try:
        envelope = crypto.Envelope.from_dict(item)
    except DecryptionFailure:
        envelope = None
    text = None if envelope else item.get("encryptedContent")
    return HistoryEntry(sender=sender, timestamp=timestamp, envelope=envelope, text=text)


class ChatSession:
    """Routes chat traffic for an authenticated Session."""

    def __init__(
        self,
        session: Session,
        channel: Channel,
        display: Display,
        on_terminate: Optional[Callable[[int], None]] = None,
    ):
        self.session = session
        self.channel = channel
        self.display = display
        self.on_terminate = on_terminate
        self.closed = False
        self.exit_code: Optional[int] = None
        self._private_key_pem = session.identity.private_key_pem

    @property
    def alias(self) -> str:
        return self.session.alias

    def attach(self) -> None:
        """Subscribe to the chat events on the channel."""
        self.channel.on(EVENT_MESSAGE, self.on_message)
        self.channel.on(EVENT_USER_JOINED, lambda data: self.on_presence(PRESENCE_JOINED, data))
        self.channel.on(EVENT_USER_LEFT, lambda data: self.on_presence(PRESENCE_LEFT, data))
        self.channel.on(EVENT_DISCONNECT, self.on_disconnect)

    def replay_history(self) -> None:
        """Render the history received at login, oldest first."""
        for entry in self.session.history:
            if entry.envelope is not None:
                try:
                    text = crypto.open_envelope(entry.envelope, self._private_key_pem)
                except DecryptionFailure:
                    text = entry.envelope.encrypted_content
            else:
                text = entry.text or ""
            self.display.show_message(
                entry.sender, entry.timestamp, text, own=entry.sender == self.alias
            )

    def _seal_for_recipients(self, message: str) -> List[crypto.Envelope]:
        directory = self.session.directory
        recipients = directory.recipients(exclude=self.alias)
        if not recipients:
            # relay publishes no keys; seal to self like every other client does
            return [crypto.seal(message, self.session.identity.public_key_pem)]

        envelopes = []
        for recipient in recipients:
            try:
                envelopes.append(crypto.seal(message, directory.get(recipient), recipient=recipient))
            except CryptoError as e:
                logger.warning(f"Skipping {recipient}: {e}")
        return envelopes

    async def send(self, line: str) -> None:
        """Handle one line of user input."""
        if self.closed:
            return

        message = line.strip()

        if message == QUIT_SENTINEL:
            self.display.notify("Disconnecting from the Worst Generation network...", "warning")
            self.closed = True
            await self.channel.disconnect()
            self._finish(0)
            return

        if not message:
            return

        envelopes = self._seal_for_recipients(message)
        if not envelopes:
            self.display.notify("Failed to send message: no recipient key could be used", "error")
            return

        try:
            for envelope in envelopes:
                await self.channel.emit(EVENT_MESSAGE, envelope.to_dict())
        except NetworkError as e:
            logger.error(f"Send failed: {e}")
            self.display.notify(f"Failed to send message: {e.message}", "error")
            return

        timestamp = now_ms()
        self.session.history.append(HistoryEntry(self.alias, timestamp, text=message))
        self.display.show_message(self.alias, timestamp, message, own=True)

    def on_message(self, data: Any) -> None:
        """Handle an inbound message event."""
        if self.closed:
            return
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed message event: {type(data).__name__}")
            return

        sender = str(data.get("sender", "unknown"))
        if sender == self.alias:
            # already mirrored locally when sent
            return

        recipient = data.get("recipient")
        if recipient is not None and recipient != self.alias:
            return

        entry = history_entry_from_payload(data)
        if entry.envelope is not None:
            text = crypto.open_or_placeholder(entry.envelope, self._private_key_pem)
        else:
            text = DECRYPTION_PLACEHOLDER
        entry.text = text

        self.session.history.append(entry)
        self.display.show_message(sender, entry.timestamp, text, own=False)

    def on_presence(self, kind: str, data: Any) -> None:
        """Handle user-joined / user-left."""
        if self.closed or not isinstance(data, dict):
            return

        alias = str(data.get("alias", "unknown"))
        if kind == PRESENCE_JOINED:
            public_key = data.get("publicKey")
            if isinstance(public_key, str):
                self.session.directory.update(alias, public_key)
            self.display.notify(f">> {alias} joined the chat <<", "warning")
        else:
            self.session.directory.remove(alias)
            self.display.notify(f">> {alias} left the chat <<", "warning")

    def on_disconnect(self, data: Any = None) -> None:
        """Handle loss of the relay connection."""
        if self.closed:
            return
        self.closed = True
        self.display.notify("Disconnected from server.", "error")
        self._finish(0)

    def _finish(self, exit_code: int) -> None:
        self.session.authenticated = False
        self.exit_code = exit_code
        self.display.close_input()
        logger.info(f"Chat session ended for {self.alias} (exit code {exit_code})")
        if self.on_terminate:
            self.on_terminate(exit_code)
