"""
Worst Generation - Textual-based conversation view.

The app owns the event loop: it runs the handshake in a worker, then hands
the channel to a ChatSession and renders whatever the session reports.
"""

import logging
from typing import Dict, Optional

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import Footer, Header, Input, RichLog, Static

from .auth import AuthState, SessionAuthenticator, authenticate
from .channel import Channel
from .constants import APP_NAME, AUTH_TIMEOUT, QUIT_SENTINEL, UI_MAX_MESSAGE_HISTORY
from .crypto import Identity
from .errors import ErrorCode, FatalError
from .session import ChatSession, Display
from .utils import format_timestamp, truncate_string

logger = logging.getLogger(__name__)

BANNER = r"""
 _      __             __    _____                      __  _
| | /| / /__  _______ / /_  / ___/__ ___  ___ _______ _/ /_(_)__  ___
| |/ |/ / _ \/ __(_-</ __/ / (_ / -_) _ \/ -_) __/ _ `/ __/ / _ \/ _ \
|__/|__/\___/_/ /___/\__/  \___/\__/_//_/\__/_/  \_,_/\__/_/\___/_//_/
"""

SEVERITY_STYLES: Dict[str, str] = {
    "information": "cyan",
    "warning": "yellow",
    "error": "bold red",
}

AUTH_STATUS: Dict[AuthState, str] = {
    AuthState.AUTHENTICATING: "Authenticating...",
    AuthState.REGISTRATION_REQUIRED: "Alias unknown to server...",
    AuthState.REGISTERING: "Registering new alias...",
}

# Hex content from history can be very long
MAX_RENDERED_LENGTH = 2000


class ConversationDisplay(Display):
    """Display collaborator that writes into the app's chat log."""

    def __init__(self, app: "ChatApp"):
        self.app = app

    def show_message(self, sender: str, timestamp: int, text: str, own: bool = False) -> None:
        line = Text()
        line.append(f"{sender} [{format_timestamp(timestamp)}]", style="bold green" if own else "bold blue")
        line.append(f": {truncate_string(text, MAX_RENDERED_LENGTH)}")
        self.app.query_one("#chat-log", RichLog).write(line)

    def notify(self, text: str, severity: str = "information") -> None:
        style = SEVERITY_STYLES.get(severity, "white")
        self.app.query_one("#chat-log", RichLog).write(Text(text, style=style))

    def close_input(self) -> None:
        self.app.query_one("#message-input", Input).disabled = True


class ChatApp(App):
    """Main application with Textual UI."""

    TITLE = APP_NAME
    SUB_TITLE = "Terminal Hacking Collective"

    CSS = """
    Screen {
        background: #000000;
    }

    #banner {
        color: #00ff00;
        text-style: bold;
        height: auto;
    }

    #status {
        color: #cccccc;
        padding: 0 1;
    }

    #chat-log {
        border: round #00aa00;
        height: 1fr;
    }

    Input {
        background: #0a0a0a;
        border: solid #444444;
        color: #ffffff;
    }

    Input:focus {
        border: solid #00aa00;
    }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit_chat", "Quit", priority=True),
    ]

    def __init__(
        self,
        identity: Identity,
        channel: Channel,
        server_url: str,
        registration_key: Optional[str] = None,
        auth_timeout: float = AUTH_TIMEOUT,
        show_history: bool = True,
    ):
        super().__init__()
        self.identity = identity
        self.channel = channel
        self.server_url = server_url
        self.registration_key = registration_key
        self.auth_timeout = auth_timeout
        self.show_history = show_history

        self.display_adapter = ConversationDisplay(self)
        self.chat: Optional[ChatSession] = None
        self.failure: Optional[FatalError] = None
        # only a graceful quit or relay disconnect lowers this to 0
        self.exit_code = 1

    def compose(self) -> ComposeResult:
        """Compose the main application layout."""
        yield Header()
        with Vertical(id="main-container"):
            yield Static(BANNER, id="banner")
            yield Static(f"Connecting to {self.server_url}...", id="status")
            yield RichLog(id="chat-log", wrap=True, markup=False, max_lines=UI_MAX_MESSAGE_HISTORY)
            yield Input(
                placeholder=f"Type your message and press Enter to send ({QUIT_SENTINEL} to exit)",
                id="message-input",
                disabled=True,
            )
        yield Footer()

    def on_mount(self) -> None:
        """Start the handshake."""
        self.run_worker(self.connect_worker(), exclusive=True)

    def set_status(self, text: str) -> None:
        self.query_one("#status", Static).update(text)

    def _on_auth_state_change(self, old_state: AuthState, new_state: AuthState) -> None:
        status = AUTH_STATUS.get(new_state)
        if status:
            self.set_status(status)

    async def connect_worker(self) -> None:
        """Worker: authenticate, then start the chat session."""
        authenticator = SessionAuthenticator(self.identity, self.registration_key)
        authenticator.on_state_change = self._on_auth_state_change

        try:
            result = await authenticate(
                self.channel, authenticator, self.server_url, timeout=self.auth_timeout
            )
        except Exception as e:
            logger.error(f"Unexpected error during authentication: {e}", exc_info=True)
            self.failure = FatalError(ErrorCode.E001_UNKNOWN_ERROR, f"Unexpected error: {e}")
            self.exit_code = self.failure.exit_code
            if self.channel.connected:
                await self.channel.disconnect()
            self.exit()
            return

        if not result.ok:
            self.failure = result.failure
            self.exit_code = result.exit_code
            logger.error(f"Authentication failed: {result.failure}")
            self.exit()
            return

        self.chat = ChatSession(
            result.session, self.channel, self.display_adapter, on_terminate=self._terminate
        )
        self.chat.attach()

        self.set_status(
            f"Connected as: {self.identity.alias}  |  fingerprint {self.identity.fingerprint[:16]}"
        )
        if self.show_history:
            self.display_adapter.notify("=== Chat History ===")
            self.chat.replay_history()
            self.display_adapter.notify("==================")

        message_input = self.query_one("#message-input", Input)
        message_input.disabled = False
        message_input.focus()

    async def on_input_submitted(self, event: Input.Submitted) -> None:
        """Handle message input submission."""
        if event.input.id != "message-input" or self.chat is None:
            return
        line = event.value
        event.input.value = ""
        await self.chat.send(line)

    async def action_quit(self) -> None:
        await self.action_quit_chat()

    async def action_quit_chat(self) -> None:
        """Quit via key binding, same as typing the quit line."""
        if self.chat is not None:
            await self.chat.send(QUIT_SENTINEL)
        else:
            await self.channel.disconnect()
            self._terminate(0)

    def _terminate(self, exit_code: int) -> None:
        self.exit_code = exit_code
        self.exit()

    async def on_unmount(self) -> None:
        if self.channel.connected:
            await self.channel.disconnect()
