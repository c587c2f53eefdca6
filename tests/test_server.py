"""Tests for the MCP server wiring."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from kite_mcp import server
from kite_mcp.client import KiteClient
from kite_mcp.config import Settings
from kite_mcp.errors import (
    AuthCancelledError,
    AuthExchangeError,
    AuthTimeoutError,
    BrokerError,
    ConfigError,
    ListenerError,
)


@pytest.fixture
def kite_client():
    client = MagicMock(spec=KiteClient)
    server.set_kite_client(client)
    yield client
    server.set_kite_client(None)


@pytest.fixture
def cfg():
    return Settings(
        zerodha_api_key="test_key",
        zerodha_api_secret="test_secret",
        kite_shutdown_grace=0.5,
        _env_file=None,
    )


class TestToolRegistry:
    """Tests for tool listing and dispatch tables."""

    def test_every_listed_tool_has_handler(self):
        """Test list_tools and HANDLERS describe the same tools."""
        tools = asyncio.run(server.list_tools())
        assert {t.name for t in tools} == set(server.HANDLERS)
        assert len(tools) == len(server.HANDLERS)

    def test_tool_schemas_are_objects(self):
        """Test every schema is an object with declared required params."""
        for tool in asyncio.run(server.list_tools()):
            schema = tool.inputSchema
            assert schema["type"] == "object"
            assert set(schema["required"]) <= set(schema["properties"])

    def test_order_margins_schema(self):
        """Test the order margins tool declares its nine required params."""
        tools = {t.name: t for t in asyncio.run(server.list_tools())}
        schema = tools["get_order_margins"].inputSchema
        assert len(schema["required"]) == 9
        assert schema["properties"]["exchange"]["enum"] == ["nse", "bse"]
        assert schema["properties"]["quantity"]["type"] == "number"


class TestCallTool:
    """Tests for the call_tool handler."""

    def test_success_returns_text(self, kite_client):
        """Test adapter output is returned as text content."""
        kite_client.get_user_profile.return_value = {"user_id": "AB1234"}

        result = asyncio.run(server.call_tool("get_user_profile", {}))

        assert len(result) == 1
        assert result[0].type == "text"
        assert result[0].text == "<start> user_id: AB1234,  <end>"

    def test_invalid_argument_reported(self, kite_client):
        """Test argument errors come back as an error payload."""
        result = asyncio.run(server.call_tool("get_ltp", {}))

        payload = json.loads(result[0].text)
        assert payload["error"] is True
        assert payload["error_type"] == "InvalidArgument"
        assert "instrument" in payload["message"]
        kite_client.get_ltp.assert_not_called()

    def test_broker_error_reported(self, kite_client):
        """Test broker errors carry the broker's error type."""
        kite_client.get_holdings.side_effect = BrokerError(
            "Token expired", error_type="TokenException", status_code=403
        )

        result = asyncio.run(server.call_tool("get_kite_holdings", {}))

        payload = json.loads(result[0].text)
        assert payload["error_type"] == "BrokerError"
        assert payload["message"] == "Token expired"
        assert payload["broker_error_type"] == "TokenException"
        assert payload["status_code"] == 403

    def test_unexpected_error_reported(self, kite_client):
        """Test unexpected exceptions do not escape the handler."""
        kite_client.get_mf_orders.side_effect = RuntimeError("boom")

        result = asyncio.run(server.call_tool("get_mf_orders", None))

        payload = json.loads(result[0].text)
        assert payload["error_type"] == "RuntimeError"

    def test_unknown_tool(self, kite_client):
        """Test unknown tool names raise."""
        with pytest.raises(ValueError, match="Unknown tool"):
            asyncio.run(server.call_tool("place_order", {}))

    def test_no_session(self):
        """Test calls before authentication report an error."""
        server.set_kite_client(None)
        result = asyncio.run(server.call_tool("get_positions", {}))
        assert json.loads(result[0].text)["error_type"] == "RuntimeError"


class TestRunServer:
    """Tests for the startup and shutdown sequence."""

    def test_config_error_exits(self, capsys):
        """Test missing secrets exit before the listener starts."""
        with patch.object(server, "settings", side_effect=ConfigError("usage text")), \
                patch.object(server, "CallbackListener") as listener_cls:
            assert asyncio.run(server.run_server()) == 1

        listener_cls.assert_not_called()
        assert "usage text" in capsys.readouterr().err

    def test_listener_error_exits(self, cfg):
        """Test a bind failure exits before the handshake."""
        with patch.object(server, "settings", return_value=cfg), \
                patch.object(server, "CallbackListener") as listener_cls, \
                patch.object(server, "AuthHandshake") as handshake_cls:
            listener_cls.return_value.start.side_effect = ListenerError("port in use")
            assert asyncio.run(server.run_server()) == 1

        handshake_cls.assert_not_called()

    @pytest.mark.parametrize("error", [AuthTimeoutError("late"), AuthExchangeError("bad")])
    def test_handshake_failure_exits(self, cfg, error):
        """Test handshake failures exit non-zero without serving."""
        with patch.object(server, "settings", return_value=cfg), \
                patch.object(server, "CallbackListener") as listener_cls, \
                patch.object(server, "AuthHandshake") as handshake_cls, \
                patch.object(server, "serve_stdio", new_callable=AsyncMock) as serve:
            handshake_cls.return_value.run = AsyncMock(side_effect=error)
            assert asyncio.run(server.run_server()) == 1

        serve.assert_not_called()
        listener_cls.return_value.stop.assert_called_once()

    def test_handshake_cancelled_exits_cleanly(self, cfg):
        """Test a shutdown during login exits with status 0."""
        with patch.object(server, "settings", return_value=cfg), \
                patch.object(server, "CallbackListener"), \
                patch.object(server, "AuthHandshake") as handshake_cls, \
                patch.object(server, "serve_stdio", new_callable=AsyncMock) as serve:
            handshake_cls.return_value.run = AsyncMock(side_effect=AuthCancelledError("stop"))
            assert asyncio.run(server.run_server()) == 0

        serve.assert_not_called()

    def test_serves_after_login(self, cfg):
        """Test a successful login binds the client and serves."""
        with patch.object(server, "settings", return_value=cfg), \
                patch.object(server, "CallbackListener") as listener_cls, \
                patch.object(server, "AuthHandshake") as handshake_cls, \
                patch.object(server, "serve_stdio", new_callable=AsyncMock) as serve:
            handshake_cls.return_value.run = AsyncMock()
            try:
                assert asyncio.run(server.run_server()) == 0
                assert isinstance(server.get_kite_client(), KiteClient)
            finally:
                server.set_kite_client(None)

        serve.assert_awaited_once()
        listener_cls.return_value.start.assert_called_once()
        listener_cls.return_value.stop.assert_called_once_with(0.5)

    def test_shutdown_signal_while_serving(self, cfg):
        """Test a shutdown signal stops serving and the listener once."""

        def signal_soon(shutdown):
            asyncio.get_running_loop().call_later(0.05, shutdown.set)

        async def serve_forever():
            await asyncio.sleep(3600)

        with patch.object(server, "settings", return_value=cfg), \
                patch.object(server, "CallbackListener") as listener_cls, \
                patch.object(server, "AuthHandshake") as handshake_cls, \
                patch.object(server, "install_signal_handlers", side_effect=signal_soon), \
                patch.object(server, "serve_stdio", serve_forever), \
                patch.object(server.os, "_exit") as force_exit:
            handshake_cls.return_value.run = AsyncMock()
            try:
                assert asyncio.run(server.run_server()) == 0
            finally:
                server.set_kite_client(None)

        listener_cls.return_value.stop.assert_called_once_with(0.5)
        force_exit.assert_not_called()

    def test_forced_exit_when_serving_ignores_cancel(self, cfg):
        """Test the process is force-exited once the grace period runs out."""

        def signal_soon(shutdown):
            asyncio.get_running_loop().call_later(0.05, shutdown.set)

        async def stuck_on_stdin():
            try:
                await asyncio.sleep(3600)
            except asyncio.CancelledError:
                await asyncio.sleep(3600)

        with patch.object(server, "settings", return_value=cfg), \
                patch.object(server, "CallbackListener") as listener_cls, \
                patch.object(server, "AuthHandshake") as handshake_cls, \
                patch.object(server, "install_signal_handlers", side_effect=signal_soon), \
                patch.object(server, "serve_stdio", stuck_on_stdin), \
                patch.object(server.logging, "shutdown"), \
                patch.object(server.os, "_exit") as force_exit:
            handshake_cls.return_value.run = AsyncMock()
            try:
                assert asyncio.run(server.run_server()) == 0
            finally:
                server.set_kite_client(None)

        force_exit.assert_called_once_with(0)
        listener_cls.return_value.stop.assert_called_once_with(0.5)
