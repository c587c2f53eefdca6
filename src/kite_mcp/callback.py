"""
Local HTTP listener that captures the Kite login redirect.

Kite redirects the browser to `/auth?request_token=...` after the operator
approves access. The listener records the token on the shared Session.
"""

import logging
import threading
import time
from typing import Optional

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse
from starlette.routing import Route

from .auth import Session
from .errors import ListenerError

logger = logging.getLogger(__name__)

HTML_HEADER = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Kite MCP Authentication</title>
    <style>
        body {
            font-family: -apple-system, 'Segoe UI', Helvetica, Arial, sans-serif;
            background: #f5f5f5;
            display: flex;
            justify-content: center;
            align-items: center;
            height: 100vh;
            margin: 0;
        }
        .card {
            background: #fff;
            border-radius: 8px;
            box-shadow: 0 2px 6px rgba(0, 0, 0, 0.1);
            padding: 32px;
            max-width: 480px;
            text-align: center;
        }
        .ok { color: #2e7d32; }
        .fail { color: #c62828; }
        p { color: #555; line-height: 1.5; }
    </style>
</head>
<body>
"""

HTML_FOOTER = """
</body>
</html>
"""

SUCCESS_CONTENT = """    <div class="card">
        <h1 class="ok">Authentication Successful</h1>
        <p>Your Zerodha account is now connected to the MCP server.</p>
        <p>You can close this window.</p>
    </div>"""

FAILURE_CONTENT = """    <div class="card">
        <h1 class="fail">Authentication Failed</h1>
        <p>The login redirect did not include a request token.</p>
        <p>Please start the login again from the MCP server logs.</p>
    </div>"""


def render_page(content: str) -> str:
    """Wrap page content in the shared header and footer."""
    return HTML_HEADER + content + HTML_FOOTER


def create_app(session: Session) -> Starlette:
    """
    Build the callback application.

    Args:
        session: Session the login redirect is recorded on

    Returns:
        Starlette app exposing /auth and /ping
    """

    async def auth(request: Request) -> HTMLResponse:
        logger.info("Login redirect received on /auth")
        request_token = request.query_params.get("request_token", "")
        if not request_token:
            return HTMLResponse(render_page(FAILURE_CONTENT), status_code=400)

        session.record_callback(request_token)
        return HTMLResponse(render_page(SUCCESS_CONTENT), status_code=200)

    async def ping(request: Request) -> JSONResponse:
        return JSONResponse({"message": "pong"})

    return Starlette(
        routes=[
            Route("/auth", auth, methods=["GET"]),
            Route("/ping", ping, methods=["GET"]),
        ]
    )


class CallbackListener:
    """Runs the callback app on a uvicorn server in a background thread."""

    def __init__(self, session: Session, host: str = "127.0.0.1", port: int = 5888):
        self.session = session
        self.host = host
        self.port = port
        # log_config=None keeps uvicorn off stdout, which carries MCP traffic
        self._server = uvicorn.Server(
            uvicorn.Config(
                create_app(session),
                host=host,
                port=port,
                log_config=None,
                access_log=False,
                lifespan="off",
            )
        )
        self._thread: Optional[threading.Thread] = None

    @property
    def started(self) -> bool:
        return self._server.started

    def _serve(self) -> None:
        # uvicorn exits the process with sys.exit on bind failure
        try:
            self._server.run()
        except SystemExit as e:
            logger.error(f"Callback listener exited with status {e.code}")

    def start(self, ready_timeout: float = 5.0) -> None:
        """
        Start serving and block until the socket is bound.

        Raises:
            ListenerError: If the server does not come up in time
        """
        self._thread = threading.Thread(
            target=self._serve, name="kite-callback", daemon=True
        )
        self._thread.start()

        deadline = time.monotonic() + ready_timeout
        while not self._server.started:
            if not self._thread.is_alive():
                raise ListenerError(
                    f"Callback listener failed to bind {self.host}:{self.port}"
                )
            if time.monotonic() > deadline:
                self.stop(grace=0)
                raise ListenerError(
                    f"Callback listener not ready after {ready_timeout:g} seconds"
                )
            time.sleep(0.05)

        logger.info(f"Callback listener on http://{self.host}:{self.port}")

    def stop(self, grace: float = 5.0) -> None:
        """Stop the server, forcing exit if in-flight requests exceed grace."""
        if self._thread is None:
            return
        self._server.should_exit = True
        self._thread.join(timeout=grace)
        if self._thread.is_alive():
            logger.warning("Callback listener did not stop in time, forcing exit")
            self._server.force_exit = True
            self._thread.join(timeout=1.0)
        self._thread = None
        logger.info("Callback listener stopped")
