from __future__ import annotations

import json
from typing import Optional

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from . import __version__
# Reuse the transport agnostic handlers from the stdio server
from .server import PARSE_ERROR, StockDataServer, _error


def create_app(server: StockDataServer, token: Optional[str] = None) -> FastAPI:
    app = FastAPI(title="Alpha Vantage Stock MCP (WebSocket)", version=__version__)

    @app.get("/health", response_class=PlainTextResponse)
    async def health():
        return "ok"

    @app.websocket("/mcp")
    async def mcp_ws(ws: WebSocket):
        # Optional shared-token check
        hdr_tok = ws.headers.get("x-mcp-auth")
        q_tok = ws.query_params.get("token")
        if token and (hdr_tok or q_tok) != token:
            await ws.close(code=4401)
            return
        await ws.accept()
        try:
            while True:
                raw = await ws.receive_text()
                try:
                    msg = json.loads(raw)
                except ValueError:
                    await ws.send_text(json.dumps(_error(None, PARSE_ERROR, "Parse error")))
                    continue
                response = await run_in_threadpool(server.process_message, msg)
                if response:
                    await ws.send_text(json.dumps(response))
        except WebSocketDisconnect:
            return

    return app


def run_ws(server: StockDataServer, host: str = "0.0.0.0", port: int = 8002, token: Optional[str] = None):
    uvicorn.run(create_app(server, token=token), host=host, port=port)
