"""
Login handshake for Kite Connect.

Opens the Kite login page, waits for the redirect captured by the callback
listener, and exchanges the request token for a session access token.
"""

import asyncio
import enum
import logging
import threading
import time
import webbrowser
from typing import Callable, Optional

from .client import KiteClient
from .errors import (
    AuthCancelledError,
    AuthExchangeError,
    AuthTimeoutError,
    BrokerError,
)

logger = logging.getLogger(__name__)


class Session:
    """
    Handshake state shared between the callback listener and the handshake.

    The listener writes from its own thread; the handshake reads from the
    event loop. All access goes through the lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._access_token: Optional[str] = None
        self._authenticated = False
        self._pending_auth_code: Optional[str] = None

    @property
    def access_token(self) -> Optional[str]:
        with self._lock:
            return self._access_token

    @property
    def pending_auth_code(self) -> Optional[str]:
        with self._lock:
            return self._pending_auth_code

    def record_callback(self, auth_code: str) -> None:
        """Store the request token from a login redirect (last write wins)."""
        with self._lock:
            self._pending_auth_code = auth_code
            self._authenticated = True

    def is_authenticated(self) -> bool:
        with self._lock:
            return self._authenticated

    def consume_auth_code(self) -> Optional[str]:
        """Return the pending request token and clear it."""
        with self._lock:
            code = self._pending_auth_code
            self._pending_auth_code = None
            return code

    def set_access_token(self, access_token: str) -> None:
        with self._lock:
            self._access_token = access_token

    def reset(self) -> None:
        with self._lock:
            self._authenticated = False
            self._pending_auth_code = None


class HandshakeState(enum.Enum):
    IDLE = "idle"
    AWAITING_CALLBACK = "awaiting_callback"
    EXCHANGING = "exchanging"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


class AuthHandshake:
    """Drives the one-shot interactive login for a single process."""

    def __init__(
        self,
        client: KiteClient,
        session: Session,
        api_secret: str,
        timeout: float = 120.0,
        poll_interval: float = 5.0,
        open_browser: Callable[[str], bool] = webbrowser.open,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize AuthHandshake.

        Args:
            client: KiteClient the access token is bound to
            session: Session written by the callback listener
            api_secret: Kite Connect API secret
            timeout: Seconds to wait for the login redirect
            poll_interval: Seconds between session checks
            open_browser: Callable that opens a URL in the operator's browser
            clock: Monotonic clock used for the deadline
        """
        self.client = client
        self.session = session
        self.api_secret = api_secret
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._open_browser = open_browser
        self._clock = clock
        self.state = HandshakeState.IDLE

    def _open_login_page(self, login_url: str) -> None:
        """Open the login page; the URL is also logged so failure is non-fatal."""
        try:
            opened = self._open_browser(login_url)
        except webbrowser.Error as e:
            logger.warning(f"Could not open browser: {e}")
            return
        if not opened:
            logger.warning("No browser available, open the login URL manually")

    async def _wait_tick(self, shutdown: Optional[asyncio.Event]) -> None:
        """Sleep one poll interval, returning early only to cancel."""
        if shutdown is None:
            await asyncio.sleep(self.poll_interval)
            return
        try:
            await asyncio.wait_for(shutdown.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            return
        raise AuthCancelledError("Shutdown requested during login")

    async def run(self, shutdown: Optional[asyncio.Event] = None) -> KiteClient:
        """
        Run the handshake to completion.

        Args:
            shutdown: Optional event that aborts the wait when set

        Returns:
            The KiteClient with the session access token bound

        Raises:
            AuthTimeoutError: If no redirect arrives before the deadline
            AuthExchangeError: If the token exchange fails
            AuthCancelledError: If shutdown is signalled while waiting
        """
        self.session.reset()
        self.state = HandshakeState.AWAITING_CALLBACK

        login_url = self.client.login_url()
        logger.info(f"Opening Kite login page: {login_url}")
        self._open_login_page(login_url)
        started = self._clock()

        while True:
            try:
                await self._wait_tick(shutdown)
            except AuthCancelledError:
                self.state = HandshakeState.FAILED
                raise

            if self.session.is_authenticated():
                break
            logger.info(
                f"Waiting for authentication from user. Please authenticate from {login_url}"
            )

            if self._clock() - started > self.timeout:
                self.state = HandshakeState.FAILED
                raise AuthTimeoutError(
                    f"No Kite login within {self.timeout:g} seconds"
                )

        self.state = HandshakeState.EXCHANGING
        request_token = self.session.consume_auth_code()
        logger.info("Login redirect received, exchanging request token...")

        try:
            data = await self.client.generate_session(request_token, self.api_secret)
        except BrokerError as e:
            self.state = HandshakeState.FAILED
            logger.error(f"Token exchange failed: {e}")
            raise AuthExchangeError(f"Token exchange failed: {e}") from e

        access_token = (data or {}).get("access_token")
        if not access_token:
            self.state = HandshakeState.FAILED
            raise AuthExchangeError("Token exchange returned no access token")

        self.session.set_access_token(access_token)
        self.client.set_access_token(access_token)
        self.state = HandshakeState.AUTHENTICATED
        logger.info(f"Kite session established for user {data.get('user_id', '?')}")
        return self.client
