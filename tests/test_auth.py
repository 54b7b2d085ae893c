"""
Worst Generation - Handshake state machine tests.

The first half drives SessionAuthenticator directly (no channel); the
second half runs authenticate() against the in-memory relay.
"""

import asyncio

import pytest

from worstgen.auth import (
    AuthEvent,
    AuthState,
    Request,
    SessionAuthenticator,
    authenticate,
)
from worstgen.constants import UNKNOWN_ALIAS_ERROR
from worstgen.errors import (
    AuthRejected,
    AuthTimeout,
    ConnectFailure,
    RegistrationFailed,
    RegistrationKeyMissing,
)

SERVER_URL = "http://relay.test"


def unknown_alias():
    return ("error", {"message": UNKNOWN_ALIAS_ERROR})


class TestStateMachine:
    """Transition coverage without a live channel."""

    def test_initial_state(self, alice):
        auth = SessionAuthenticator(alice)
        assert auth.current_state == AuthState.CONNECTING
        assert not auth.is_terminal
        assert auth.session() is None

    def test_start_produces_login(self, alice):
        auth = SessionAuthenticator(alice)
        request = auth.start()

        assert auth.current_state == AuthState.AUTHENTICATING
        assert request == Request("login", {"alias": "alice", "publicKey": alice.public_key_pem})

    def test_login_success_with_history(self, alice):
        auth = SessionAuthenticator(alice)
        auth.start()
        history = [
            {"sender": "bob", "timestamp": 1700000000000, "encryptedContent": "ab", "encryptedKey": "cd", "iv": "00" * 16},
            {"sender": "carol", "timestamp": 1700000001000, "encryptedContent": "ef"},
        ]

        assert auth.handle("login-success", {"history": history}) is None
        assert auth.current_state == AuthState.AUTHENTICATED

        session = auth.session()
        assert session.authenticated is True
        assert session.alias == "alice"
        assert [entry.sender for entry in session.history] == ["bob", "carol"]
        assert session.history[0].envelope is not None
        assert session.history[1].envelope is None
        assert session.history[1].text == "ef"

    def test_login_success_loads_directory(self, alice, bob):
        auth = SessionAuthenticator(alice)
        auth.start()
        auth.handle(
            "login-success",
            {"history": [], "users": [{"alias": "bob", "publicKey": bob.public_key_pem}]},
        )

        session = auth.session()
        assert session.directory.get("bob") == bob.public_key_pem

    def test_unknown_alias_without_key(self, alice):
        auth = SessionAuthenticator(alice)
        auth.start()

        request = auth.handle(*unknown_alias())

        assert request is None
        assert auth.current_state == AuthState.REJECTED
        assert isinstance(auth.failure, RegistrationKeyMissing)
        assert auth.failure.exit_code == 1
        events = [t.event for t in auth.transition_history]
        assert events == [AuthEvent.CHANNEL_OPENED, AuthEvent.UNKNOWN_ALIAS, AuthEvent.KEY_MISSING]

    def test_unknown_alias_with_key_registers(self, alice):
        auth = SessionAuthenticator(alice, registration_key="letmein")
        auth.start()

        request = auth.handle(*unknown_alias())

        assert auth.current_state == AuthState.REGISTERING
        assert request.event == "register"
        assert request.payload == {
            "alias": "alice",
            "publicKey": alice.public_key_pem,
            "registrationKey": "letmein",
        }

    def test_registration_success(self, alice):
        auth = SessionAuthenticator(alice, registration_key="letmein")
        auth.start()
        auth.handle(*unknown_alias())

        auth.handle("registered", {"success": True})

        assert auth.current_state == AuthState.AUTHENTICATED
        assert auth.session().history == []

    def test_registration_failure(self, alice):
        auth = SessionAuthenticator(alice, registration_key="wrong")
        auth.start()
        auth.handle(*unknown_alias())

        auth.handle("registered", {"success": False, "message": "Invalid registration key"})

        assert auth.current_state == AuthState.REJECTED
        assert isinstance(auth.failure, RegistrationFailed)
        assert auth.failure.message == "Invalid registration key"

    def test_other_error_rejects(self, alice):
        auth = SessionAuthenticator(alice, registration_key="letmein")
        auth.start()

        auth.handle("error", {"message": "Alias already connected"})

        assert auth.current_state == AuthState.REJECTED
        assert isinstance(auth.failure, AuthRejected)
        assert auth.failure.message == "Alias already connected"

    def test_error_while_registering_rejects(self, alice):
        auth = SessionAuthenticator(alice, registration_key="letmein")
        auth.start()
        auth.handle(*unknown_alias())

        auth.handle("error", {"message": "Server full"})

        assert auth.current_state == AuthState.REJECTED
        assert isinstance(auth.failure, AuthRejected)

    def test_connect_failure(self, alice):
        auth = SessionAuthenticator(alice)
        auth.connect_failed("refused")

        assert auth.current_state == AuthState.CONNECT_FAILURE
        assert isinstance(auth.failure, ConnectFailure)

    def test_connect_error_event(self, alice):
        auth = SessionAuthenticator(alice)
        auth.handle("connect-error", {"message": "refused"})

        assert auth.current_state == AuthState.CONNECT_FAILURE
        assert auth.failure.message == "refused"

    def test_disconnect_during_handshake(self, alice):
        auth = SessionAuthenticator(alice)
        auth.start()
        auth.handle("disconnect")

        assert auth.current_state == AuthState.REJECTED
        assert isinstance(auth.failure, AuthRejected)

    def test_timeout_while_authenticating(self, alice):
        auth = SessionAuthenticator(alice)
        auth.start()
        auth.timed_out(5)

        assert auth.current_state == AuthState.REJECTED
        assert isinstance(auth.failure, AuthTimeout)

    def test_timeout_while_connecting(self, alice):
        auth = SessionAuthenticator(alice)
        auth.timed_out(5)

        assert auth.current_state == AuthState.CONNECT_FAILURE
        assert isinstance(auth.failure, ConnectFailure)

    def test_invalid_event_is_ignored(self, alice):
        """registered before any login is not a valid transition."""
        auth = SessionAuthenticator(alice)
        auth.start()

        auth.handle("registered", {"success": True})

        assert auth.current_state == AuthState.AUTHENTICATING
        assert auth.failure is None

    def test_events_after_terminal_are_ignored(self, alice):
        auth = SessionAuthenticator(alice)
        auth.start()
        auth.handle("login-success", {"history": []})

        assert auth.handle("error", {"message": "late"}) is None
        assert auth.current_state == AuthState.AUTHENTICATED
        assert auth.failure is None

    def test_start_twice_is_ignored(self, alice):
        auth = SessionAuthenticator(alice)
        assert auth.start() is not None
        assert auth.start() is None

    def test_state_change_callback(self, alice):
        seen = []
        auth = SessionAuthenticator(alice)
        auth.on_state_change = lambda old, new: seen.append((old, new))

        auth.start()
        auth.handle("login-success", {})

        assert seen == [
            (AuthState.CONNECTING, AuthState.AUTHENTICATING),
            (AuthState.AUTHENTICATING, AuthState.AUTHENTICATED),
        ]


@pytest.mark.asyncio
class TestAuthenticateDriver:
    """authenticate() against the in-memory relay."""

    async def test_login_success(self, alice, make_channel):
        def relay(event, data):
            if event == "login":
                yield "login-success", {"history": []}

        channel = make_channel(relay)
        result = await authenticate(channel, SessionAuthenticator(alice), SERVER_URL)

        assert result.ok
        assert result.exit_code == 0
        assert result.session.authenticated
        assert channel.url == SERVER_URL
        assert [event for event, _ in channel.emitted] == ["login"]

    async def test_unknown_alias_without_key_sends_no_register(self, alice, make_channel):
        def relay(event, data):
            if event == "login":
                yield unknown_alias()

        channel = make_channel(relay)
        result = await authenticate(channel, SessionAuthenticator(alice), SERVER_URL)

        assert not result.ok
        assert result.exit_code == 1
        assert isinstance(result.failure, RegistrationKeyMissing)
        assert channel.events("register") == []
        assert not channel.connected

    async def test_registration_flow(self, alice, make_channel):
        def relay(event, data):
            if event == "login":
                yield unknown_alias()
            elif event == "register":
                yield "registered", {"success": True}

        channel = make_channel(relay)
        result = await authenticate(
            channel, SessionAuthenticator(alice, registration_key="letmein"), SERVER_URL
        )

        assert result.ok
        assert len(channel.events("register")) == 1
        assert channel.events("register")[0]["registrationKey"] == "letmein"
        assert result.session.history == []

    async def test_registration_rejected(self, alice, make_channel):
        def relay(event, data):
            if event == "login":
                yield unknown_alias()
            elif event == "register":
                yield "registered", {"success": False, "message": "Invalid registration key"}

        channel = make_channel(relay)
        result = await authenticate(
            channel, SessionAuthenticator(alice, registration_key="nope"), SERVER_URL
        )

        assert result.exit_code == 1
        assert isinstance(result.failure, RegistrationFailed)

    async def test_connect_failure(self, alice, make_channel):
        channel = make_channel(fail_connect=True)
        result = await authenticate(channel, SessionAuthenticator(alice), SERVER_URL)

        assert result.exit_code == 1
        assert isinstance(result.failure, ConnectFailure)
        assert channel.emitted == []

    async def test_timeout(self, alice, make_channel):
        channel = make_channel(lambda event, data: [])
        result = await authenticate(
            channel, SessionAuthenticator(alice), SERVER_URL, timeout=0.05
        )

        assert result.exit_code == 1
        assert isinstance(result.failure, AuthTimeout)
        assert not channel.connected

    async def test_late_events_ignored_after_login(self, alice, make_channel):
        def relay(event, data):
            if event == "login":
                yield "login-success", {"history": []}
                yield "error", {"message": "late"}

        channel = make_channel(relay)
        result = await authenticate(channel, SessionAuthenticator(alice), SERVER_URL)

        assert result.ok
        assert result.failure is None

    async def test_connect_that_hangs_times_out(self, alice, make_channel):
        channel = make_channel(connect_delay=3600)
        authenticator = SessionAuthenticator(alice)

        result = await asyncio.wait_for(
            authenticate(channel, authenticator, SERVER_URL, timeout=0.05), timeout=5
        )

        assert result.exit_code == 1
        assert isinstance(result.failure, ConnectFailure)
        assert authenticator.current_state == AuthState.CONNECT_FAILURE
        assert channel.emitted == []

    async def test_handshake_handlers_removed(self, alice, make_channel):
        def relay(event, data):
            if event == "login":
                yield "login-success", {"history": []}

        channel = make_channel(relay)
        await authenticate(channel, SessionAuthenticator(alice), SERVER_URL)

        for event in ("login-success", "error", "registered", "disconnect"):
            assert channel.event_callbacks.get(event, []) == []

    async def test_handshake_handlers_removed_after_failure(self, alice, make_channel):
        channel = make_channel(fail_connect=True)
        await authenticate(channel, SessionAuthenticator(alice), SERVER_URL)

        assert all(callbacks == [] for callbacks in channel.event_callbacks.values())
