"""
Alpha Vantage Stock MCP Server
==============================
Expose Alpha Vantage daily and intraday stock data to AI assistants
(Claude Desktop, Cursor) using the Model Context Protocol (MCP).

Usage:
  STDIO mode (default, for Claude Desktop):
    alphavantage-mcp

  SSE mode (for web clients):
    alphavantage-mcp --sse --port 8002

  WebSocket mode:
    alphavantage-mcp --ws --port 8002

ALPHAVANTAGE_API_KEY must be set (environment or .env file).
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

import uvicorn
from dotenv import load_dotenv
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route

from . import __version__
from .client import AlphaVantageClient
from .config import Settings, load_settings
from .errors import ConfigurationError, ResourceError, ValidationError
from .logging_setup import LOGGER_NAME, setup_logging
from .tools import StockTools

SERVER_NAME = "alpha-vantage-stock-data"
DEFAULT_PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_ERROR = -32000


# ---------------------------------------------------------------------------
# JSON-RPC Logic (Transport Agnostic)
# ---------------------------------------------------------------------------

def _result(id_val: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": id_val, "result": result}


def _error(id_val: Any, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    err = {"code": code, "message": message}
    if data is not None:
        err["data"] = data
    return {"jsonrpc": "2.0", "id": id_val, "error": err}


class StockDataServer:
    """Routes MCP JSON-RPC requests to the stock tools."""

    def __init__(self, tools: StockTools, logger: Optional[logging.Logger] = None):
        self.tools = tools
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    def handle_initialize(self, id_val, params):
        requested = (params or {}).get("protocolVersion")
        return _result(id_val, {
            "protocolVersion": requested or DEFAULT_PROTOCOL_VERSION,
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
            "capabilities": {
                "tools": {},
                "resources": {},
            },
        })

    def handle_ping(self, id_val, params):
        return _result(id_val, {})

    def handle_tools_list(self, id_val, params):
        return _result(id_val, {"tools": self.tools.list_tools()})

    def handle_tools_call(self, id_val, params):
        name = (params or {}).get("name")
        arguments = (params or {}).get("arguments") or {}

        if not name or name not in self.tools.tools:
            return _error(id_val, INVALID_PARAMS, f"Unknown tool: {name}")
        if not isinstance(arguments, dict):
            return _error(id_val, INVALID_PARAMS, "Tool arguments must be an object")

        return _result(id_val, self.tools.call_tool(name, arguments))

    def handle_resources_list(self, id_val, params):
        return _result(id_val, {"resources": []})

    def handle_resource_templates_list(self, id_val, params):
        return _result(id_val, {"resourceTemplates": self.tools.list_resource_templates()})

    def handle_resources_read(self, id_val, params):
        uri = (params or {}).get("uri")
        try:
            return _result(id_val, self.tools.read_resource(uri))
        except ValidationError as e:
            return _error(id_val, INVALID_PARAMS, str(e))
        except ResourceError as e:
            return _error(id_val, SERVER_ERROR, str(e))

    def process_message(self, msg: Any) -> Optional[Dict[str, Any]]:
        """Process a single JSON-RPC message and return the response.

        Notifications (no ``id``) never get a response.
        """
        if not isinstance(msg, dict):
            return _error(None, INVALID_REQUEST, "Invalid Request")

        method = msg.get("method")
        id_val = msg.get("id")
        params = msg.get("params")

        if "id" not in msg:
            self.logger.debug(f"Notification: {method}")
            return None

        handlers = {
            "initialize": self.handle_initialize,
            "ping": self.handle_ping,
            "tools/list": self.handle_tools_list,
            "tools/call": self.handle_tools_call,
            "resources/list": self.handle_resources_list,
            "resources/templates/list": self.handle_resource_templates_list,
            "resources/read": self.handle_resources_read,
        }
        handler = handlers.get(method)
        if handler is None:
            return _error(id_val, METHOD_NOT_FOUND, f"Method not found: {method}")

        try:
            return handler(id_val, params)
        except Exception as exc:
            self.logger.exception(f"Unhandled error in {method}")
            return _error(id_val, INTERNAL_ERROR, "Internal error", {"error": str(exc)})


# ---------------------------------------------------------------------------
# STDIO Transport (for Claude Desktop)
# ---------------------------------------------------------------------------

# Messages are newline-delimited JSON; Content-Length framed input is also
# accepted, and answered with the same framing.
FRAMING_LINE = "line"
FRAMING_HEADER = "header"


def _read_message_stdio(stdin) -> Optional[Tuple[Any, str]]:
    """Read one message. Returns ``(message, framing)``, or None at EOF.

    ``message`` is None when the payload was not valid JSON.
    """
    while True:
        line = stdin.readline()
        if not line:
            return None
        text = line.decode("utf-8", errors="ignore")
        if text.strip():
            break

    if not text.lower().startswith("content-length:"):
        try:
            return json.loads(text), FRAMING_LINE
        except ValueError:
            return None, FRAMING_LINE

    headers: Dict[str, str] = {}
    while True:
        if ":" in text:
            k, v = text.split(":", 1)
            headers[k.strip().lower()] = v.strip()
        line = stdin.readline()
        if not line:
            return None
        text = line.decode("utf-8", errors="ignore")
        if text in ("\r\n", "\n"):
            break

    try:
        length = int(headers.get("content-length", "0"))
    except ValueError:
        length = 0
    if length <= 0:
        return None, FRAMING_HEADER
    body = stdin.read(length)
    if not body:
        return None
    try:
        return json.loads(body.decode("utf-8", errors="ignore")), FRAMING_HEADER
    except ValueError:
        return None, FRAMING_HEADER


def _write_message_stdio(stdout, msg: Dict[str, Any], framing: str = FRAMING_LINE) -> None:
    data = json.dumps(msg, separators=(",", ":")).encode("utf-8")
    if framing == FRAMING_HEADER:
        stdout.write(f"Content-Length: {len(data)}\r\n\r\n".encode("ascii"))
        stdout.write(data)
    else:
        stdout.write(data + b"\n")
    stdout.flush()


def run_stdio(server: StockDataServer, stdin=None, stdout=None) -> int:
    stdin = stdin or sys.stdin.buffer
    stdout = stdout or sys.stdout.buffer
    while True:
        read = _read_message_stdio(stdin)
        if read is None:
            break
        msg, framing = read
        if msg is None:
            resp = _error(None, PARSE_ERROR, "Parse error")
        else:
            resp = server.process_message(msg)
        if resp:
            _write_message_stdio(stdout, resp, framing)
    return 0


# ---------------------------------------------------------------------------
# SSE Transport (for web clients)
# ---------------------------------------------------------------------------

class SseSession:
    def __init__(self, on_close: Optional[Callable[[str], Any]] = None):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.id = str(uuid.uuid4())
        self._on_close = on_close

    async def send(self, message: Dict[str, Any]):
        await self.queue.put(message)

    async def event_generator(self):
        try:
            yield f"event: endpoint\ndata: /messages?session_id={self.id}\n\n"
            while True:
                message = await self.queue.get()
                data = json.dumps(message)
                yield f"event: message\ndata: {data}\n\n"
        finally:
            # Runs when the client disconnects and the stream is cancelled
            if self._on_close is not None:
                self._on_close(self.id)


def create_app(server: StockDataServer) -> Starlette:
    sessions: Dict[str, SseSession] = {}

    def close_session(session_id: str) -> None:
        if sessions.pop(session_id, None) is not None:
            server.logger.info(f"SSE session closed: {session_id}")

    async def handle_sse(request: Request):
        session = SseSession(on_close=close_session)
        sessions[session.id] = session
        server.logger.info(f"New SSE session: {session.id}")
        return StreamingResponse(session.event_generator(), media_type="text/event-stream")

    async def handle_messages(request: Request):
        session_id = request.query_params.get("session_id")
        if not session_id or session_id not in sessions:
            return JSONResponse({"error": "Session not found"}, status_code=404)

        try:
            body = await request.json()
        except ValueError:
            await sessions[session_id].send(_error(None, PARSE_ERROR, "Parse error"))
            return JSONResponse({"error": "Invalid JSON"}, status_code=400)

        response = await run_in_threadpool(server.process_message, body)
        if response:
            await sessions[session_id].send(response)
        return JSONResponse({"status": "accepted"}, status_code=202)

    async def handle_health(request: Request):
        return JSONResponse({
            "status": "healthy",
            "service": SERVER_NAME,
            "tools_loaded": len(server.tools.tools),
        })

    routes = [
        Route("/health", handle_health, methods=["GET"]),
        Route("/sse", handle_sse, methods=["GET"]),
        Route("/messages", handle_messages, methods=["POST"]),
    ]
    app = Starlette(routes=routes)
    app.state.sessions = sessions
    return app


def run_sse(server: StockDataServer, host: str = "0.0.0.0", port: int = 8002):
    uvicorn.run(create_app(server), host=host, port=port)


# ---------------------------------------------------------------------------
# Entry Point
# ---------------------------------------------------------------------------

def build_server(settings: Settings, logger: logging.Logger) -> StockDataServer:
    client = AlphaVantageClient.from_settings(settings, logger=logger.getChild("client"))
    tools = StockTools(client, logger=logger.getChild("tools"))
    return StockDataServer(tools, logger=logger)


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="alphavantage-mcp", description="Alpha Vantage stock data MCP server")
    transport = parser.add_mutually_exclusive_group()
    transport.add_argument("--sse", action="store_true", help="serve MCP over Server-Sent Events")
    transport.add_argument("--ws", action="store_true", help="serve MCP over WebSocket")
    parser.add_argument("--host", default=None, help="bind address for network transports")
    parser.add_argument("--port", type=int, default=None, help="port for network transports")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    load_dotenv()

    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        return 1

    logger = setup_logging(settings.log_level, settings.log_dir)
    server = build_server(settings, logger)

    mode = "sse" if args.sse else "ws" if args.ws else settings.mode
    host = args.host or settings.host
    port = args.port or settings.port

    if mode == "sse":
        logger.info(f"Alpha Vantage Stock MCP Server running in SSE mode on {host}:{port}")
        run_sse(server, host=host, port=port)
        return 0
    if mode == "ws":
        from .http_server import run_ws

        logger.info(f"Alpha Vantage Stock MCP Server running in WebSocket mode on {host}:{port}")
        run_ws(server, host=host, port=port, token=settings.ws_token)
        return 0

    logger.info("Alpha Vantage Stock MCP Server running on stdio")
    return run_stdio(server)


if __name__ == "__main__":
    sys.exit(main())
