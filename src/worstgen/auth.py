"""
Worst Generation - Login/registration handshake as a finite state machine.

The authenticator is a plain value: current state, a transition table and
a handler per relay event. It never touches the network; each handler
returns the request (if any) the client must send next, and terminal
failures are recorded as FatalError instances for the driver to report.

    CONNECTING -> AUTHENTICATING -> AUTHENTICATED
                                 -> REGISTRATION_REQUIRED -> REGISTERING -> AUTHENTICATED
                                                                         -> REJECTED
                                 -> REJECTED
    CONNECTING -> CONNECT_FAILURE

authenticate() runs the machine over a Channel with a bounded timeout.
No step is ever retried.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional

from .channel import Channel
from .constants import (
    AUTH_TIMEOUT,
    EVENT_CONNECT_ERROR,
    EVENT_DISCONNECT,
    EVENT_ERROR,
    EVENT_LOGIN,
    EVENT_LOGIN_SUCCESS,
    EVENT_REGISTER,
    EVENT_REGISTERED,
    UNKNOWN_ALIAS_ERROR,
)
from .crypto import Identity
from .errors import (
    AuthRejected,
    AuthTimeout,
    ConnectFailure,
    FatalError,
    NetworkError,
    RegistrationFailed,
    RegistrationKeyMissing,
)
from .session import HistoryEntry, Session, history_entry_from_payload

logger = logging.getLogger(__name__)


class AuthState(Enum):
    """Handshake states."""

    CONNECTING = auto()  # Channel not yet open
    AUTHENTICATING = auto()  # login sent, awaiting reply
    REGISTRATION_REQUIRED = auto()  # relay does not know the alias
    REGISTERING = auto()  # register sent, awaiting reply
    AUTHENTICATED = auto()  # Session established
    REJECTED = auto()  # Terminal failure after the channel opened
    CONNECT_FAILURE = auto()  # Relay unreachable


class AuthEvent(Enum):
    """Events that trigger state transitions."""

    CHANNEL_OPENED = auto()
    CONNECT_FAILED = auto()
    LOGIN_SUCCEEDED = auto()
    UNKNOWN_ALIAS = auto()
    LOGIN_FAILED = auto()
    KEY_MISSING = auto()
    REGISTER_SENT = auto()
    REGISTER_SUCCEEDED = auto()
    REGISTER_FAILED = auto()
    CHANNEL_LOST = auto()
    TIMED_OUT = auto()


TERMINAL_STATES = frozenset(
    {AuthState.AUTHENTICATED, AuthState.REJECTED, AuthState.CONNECT_FAILURE}
)


class Request(NamedTuple):
    """An event the client must emit to the relay."""

    event: str
    payload: Dict[str, Any]


@dataclass
class StateTransition:
    """Represents a state transition."""

    from_state: AuthState
    event: AuthEvent
    to_state: AuthState
    timestamp: float = field(default_factory=time.time)


class SessionAuthenticator:
    """
    Finite state machine for the login/register handshake.

    Feed it relay events through handle(); send whatever Request it returns.
    Once is_terminal is true, either session() or failure holds the outcome.
    """

    TRANSITIONS: Dict[AuthState, Dict[AuthEvent, AuthState]] = {
        AuthState.CONNECTING: {
            AuthEvent.CHANNEL_OPENED: AuthState.AUTHENTICATING,
            AuthEvent.CONNECT_FAILED: AuthState.CONNECT_FAILURE,
            AuthEvent.TIMED_OUT: AuthState.CONNECT_FAILURE,
        },
        AuthState.AUTHENTICATING: {
            AuthEvent.LOGIN_SUCCEEDED: AuthState.AUTHENTICATED,
            AuthEvent.UNKNOWN_ALIAS: AuthState.REGISTRATION_REQUIRED,
            AuthEvent.LOGIN_FAILED: AuthState.REJECTED,
            AuthEvent.CHANNEL_LOST: AuthState.REJECTED,
            AuthEvent.TIMED_OUT: AuthState.REJECTED,
        },
        AuthState.REGISTRATION_REQUIRED: {
            AuthEvent.REGISTER_SENT: AuthState.REGISTERING,
            AuthEvent.KEY_MISSING: AuthState.REJECTED,
        },
        AuthState.REGISTERING: {
            AuthEvent.REGISTER_SUCCEEDED: AuthState.AUTHENTICATED,
            AuthEvent.REGISTER_FAILED: AuthState.REJECTED,
            AuthEvent.LOGIN_FAILED: AuthState.REJECTED,
            AuthEvent.CHANNEL_LOST: AuthState.REJECTED,
            AuthEvent.TIMED_OUT: AuthState.REJECTED,
        },
        AuthState.AUTHENTICATED: {},
        AuthState.REJECTED: {},
        AuthState.CONNECT_FAILURE: {},
    }

    def __init__(self, identity: Identity, registration_key: Optional[str] = None):
        """
        Initialize the handshake.

        Args:
            identity: Local alias and keypair for this run
            registration_key: Key for first-time registration, if supplied
        """
        self.identity = identity
        self.registration_key = registration_key or None
        self.current_state = AuthState.CONNECTING
        self.failure: Optional[FatalError] = None
        self.history: List[HistoryEntry] = []
        self.users: Any = None
        self.transition_history: List[StateTransition] = []

        self.on_state_change: Optional[Callable[[AuthState, AuthState], None]] = None

    @property
    def alias(self) -> str:
        return self.identity.alias

    @property
    def is_terminal(self) -> bool:
        return self.current_state in TERMINAL_STATES

    @property
    def is_authenticated(self) -> bool:
        return self.current_state == AuthState.AUTHENTICATED

    def is_valid_transition(self, from_state: AuthState, event: AuthEvent) -> bool:
        return event in self.TRANSITIONS.get(from_state, {})

    def transition(self, event: AuthEvent) -> bool:
        """
        Attempt state transition based on event.

        Returns:
            True if transition successful, False otherwise
        """
        if not self.is_valid_transition(self.current_state, event):
            logger.warning(
                f"Invalid transition: {self.current_state.name} + {event.name} (ignored)"
            )
            return False

        old_state = self.current_state
        new_state = self.TRANSITIONS[old_state][event]
        self.current_state = new_state
        self.transition_history.append(StateTransition(old_state, event, new_state))

        logger.info(f"Auth state: {old_state.name} -> {new_state.name} (event: {event.name})")

        if self.on_state_change:
            try:
                self.on_state_change(old_state, new_state)
            except Exception as e:
                logger.error(f"State change callback error: {e}")

        return True

    def _fail(self, event: AuthEvent, failure: FatalError) -> None:
        if self.transition(event):
            self.failure = failure

    def start(self) -> Optional[Request]:
        """Channel is open: produce the login request."""
        if not self.transition(AuthEvent.CHANNEL_OPENED):
            return None
        return Request(
            EVENT_LOGIN,
            {"alias": self.alias, "publicKey": self.identity.public_key_pem},
        )

    def connect_failed(self, message: str) -> None:
        self._fail(AuthEvent.CONNECT_FAILED, ConnectFailure(message))

    def channel_lost(self, message: str = "Disconnected during authentication") -> None:
        self._fail(AuthEvent.CHANNEL_LOST, AuthRejected(message))

    def timed_out(self, timeout: float) -> None:
        if self.current_state == AuthState.CONNECTING:
            self._fail(AuthEvent.TIMED_OUT, ConnectFailure(f"No connection after {timeout}s"))
        else:
            self._fail(AuthEvent.TIMED_OUT, AuthTimeout(f"No response from relay after {timeout}s"))

    def handle(self, event: str, data: Any = None) -> Optional[Request]:
        """
        Feed one relay event into the machine.

        Returns:
            The request to send next, or None
        """
        if self.is_terminal:
            logger.debug(f"Ignoring {event} after handshake finished")
            return None

        payload = data if isinstance(data, dict) else {}

        if event == EVENT_LOGIN_SUCCESS:
            return self._on_login_success(payload)
        if event == EVENT_ERROR:
            return self._on_error(payload)
        if event == EVENT_REGISTERED:
            return self._on_registered(payload)
        if event == EVENT_CONNECT_ERROR:
            message = payload.get("message") if payload else (str(data) if data else "")
            self.connect_failed(message or "Connection error")
            return None
        if event == EVENT_DISCONNECT:
            self.channel_lost()
            return None

        logger.debug(f"Unhandled event during handshake: {event}")
        return None

    def _on_login_success(self, payload: Dict[str, Any]) -> None:
        if self.transition(AuthEvent.LOGIN_SUCCEEDED):
            history = payload.get("history") or []
            self.history = [
                history_entry_from_payload(item) for item in history if isinstance(item, dict)
            ]
            self.users = payload.get("users") or payload.get("publicKeys")
        return None

    def _on_error(self, payload: Dict[str, Any]) -> Optional[Request]:
        message = str(payload.get("message", ""))

        if message != UNKNOWN_ALIAS_ERROR:
            self._fail(AuthEvent.LOGIN_FAILED, AuthRejected(message or "Authentication error"))
            return None

        if not self.transition(AuthEvent.UNKNOWN_ALIAS):
            return None

        if not self.registration_key:
            self._fail(AuthEvent.KEY_MISSING, RegistrationKeyMissing())
            return None

        self.transition(AuthEvent.REGISTER_SENT)
        return Request(
            EVENT_REGISTER,
            {
                "alias": self.alias,
                "publicKey": self.identity.public_key_pem,
                "registrationKey": self.registration_key,
            },
        )

    def _on_registered(self, payload: Dict[str, Any]) -> None:
        if payload.get("success"):
            if self.transition(AuthEvent.REGISTER_SUCCEEDED):
                self.history = []
        else:
            message = payload.get("message") or "Registration failed"
            self._fail(AuthEvent.REGISTER_FAILED, RegistrationFailed(str(message)))
        return None

    def session(self) -> Optional[Session]:
        """Build the Session once authenticated, else None."""
        if not self.is_authenticated:
            return None
        session = Session(
            alias=self.alias,
            identity=self.identity,
            authenticated=True,
            history=list(self.history),
        )
        session.directory.load(self.users)
        return session

    def __repr__(self) -> str:
        return f"SessionAuthenticator(alias={self.alias!r}, state={self.current_state.name})"


@dataclass
class AuthResult:
    """Outcome of authenticate(): a session or a fatal failure."""

    session: Optional[Session] = None
    failure: Optional[FatalError] = None

    @property
    def ok(self) -> bool:
        return self.session is not None

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else (self.failure.exit_code if self.failure else 1)


async def authenticate(
    channel: Channel,
    authenticator: SessionAuthenticator,
    server_url: str,
    timeout: float = AUTH_TIMEOUT,
) -> AuthResult:
    """
    Run the handshake over channel until a terminal state or timeout.

    Args:
        channel: Unopened channel to the relay
        authenticator: Fresh SessionAuthenticator
        server_url: Relay URL
        timeout: Seconds allowed to open the channel, and again for the
            relay to answer the handshake

    Returns:
        AuthResult with either a Session or the FatalError to report
    """
    finished = asyncio.Event()

    async def send(request: Optional[Request]) -> None:
        if request is None:
            return
        try:
            await channel.emit(request.event, request.payload)
        except NetworkError as e:
            authenticator.channel_lost(e.message)

    def make_handler(event: str):
        async def handler(data: Any = None) -> None:
            if authenticator.is_terminal:
                return
            await send(authenticator.handle(event, data))
            if authenticator.is_terminal:
                finished.set()

        return handler

    handlers = {
        event: make_handler(event)
        for event in (EVENT_LOGIN_SUCCESS, EVENT_ERROR, EVENT_REGISTERED, EVENT_DISCONNECT)
    }
    for event, handler in handlers.items():
        channel.on(event, handler)

    try:
        return await _run_handshake(channel, authenticator, server_url, timeout, send, finished)
    finally:
        for event, handler in handlers.items():
            channel.off(event, handler)


async def _run_handshake(
    channel: Channel,
    authenticator: SessionAuthenticator,
    server_url: str,
    timeout: float,
    send: Callable[[Optional[Request]], Awaitable[None]],
    finished: asyncio.Event,
) -> AuthResult:
    try:
        await asyncio.wait_for(channel.connect(server_url), timeout=timeout)
    except NetworkError as e:
        authenticator.connect_failed(e.message)
        return AuthResult(failure=authenticator.failure)
    except asyncio.TimeoutError:
        logger.warning(f"Connection to {server_url} timed out after {timeout}s")
        authenticator.timed_out(timeout)
        if channel.connected:
            await channel.disconnect()
        return AuthResult(failure=authenticator.failure)

    await send(authenticator.start())

    if not authenticator.is_terminal:
        try:
            await asyncio.wait_for(finished.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Authentication timed out after {timeout}s")
            authenticator.timed_out(timeout)

    if authenticator.is_authenticated:
        return AuthResult(session=authenticator.session())

    if channel.connected:
        await channel.disconnect()
    return AuthResult(failure=authenticator.failure)
