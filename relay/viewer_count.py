"""
Viewer Count Server

Small local HTTP service that holds the latest concurrent-viewer count.
The browser extension POSTs the count it scrapes from the broadcast page
and reads it back for its badge; every response carries permissive CORS
headers so the extension can call it from any origin.

    GET  /api/viewer-count  -> {"viewerCount": number|null, "updatedAt": iso8601|null}
    POST /api/viewer-count  <- {"viewerCount": number}  (204 on success)
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import math
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from relay.config import settings
from relay.utils.logging import get_logger
from schemas.viewer_count import ViewerCountResponse, ViewerCountUpdate

logger = get_logger(__name__, category="viewer_count")

VIEWER_COUNT_PATH = "/api/viewer-count"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

Number = Union[int, float]


def _reject_constant(name: str) -> None:
    raise ValueError(f"Non-finite number: {name}")


def format_viewer_count(count: Number) -> str:
    """
    Format a viewer count for a badge (at most four characters).

    Examples: 999 -> "999", 1234 -> "1.2k", 9949 -> "9.9k", 9950 -> "10k"
    """
    if count >= 9950:
        return f"{math.floor(count / 1000 + 0.5)}k"
    if count >= 1000:
        # Halves round up, on the exact binary value of the quotient
        tenths = Decimal(count / 1000).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
        return f"{tenths}k"
    if isinstance(count, float) and count.is_integer():
        return str(int(count))
    return str(count)


class ViewerCountState:
    """Latest viewer count and when it arrived."""

    def __init__(self) -> None:
        self.viewer_count: Optional[Number] = None
        self.updated_at: Optional[datetime] = None

    def update(self, viewer_count: Number) -> None:
        self.viewer_count = viewer_count
        self.updated_at = datetime.now(timezone.utc)

    def snapshot(self) -> ViewerCountResponse:
        return ViewerCountResponse(viewer_count=self.viewer_count, updated_at=self.updated_at)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_viewer_count_app(state: Optional[ViewerCountState] = None) -> FastAPI:
    state = state or ViewerCountState()
    app = FastAPI(title="Viewer Count", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.viewer_count = state

    @app.middleware("http")
    async def cors_headers(request: Request, call_next):
        # Preflight is answered for every path
        if request.method == "OPTIONS":
            response = Response(status_code=204)
        else:
            response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return _error(404, "Not Found")
        if exc.status_code == 405:
            return _error(405, "Method Not Allowed")
        return _error(exc.status_code, str(exc.detail))

    @app.get(VIEWER_COUNT_PATH)
    async def get_viewer_count() -> JSONResponse:
        return JSONResponse(content=state.snapshot().model_dump(mode="json", by_alias=True))

    @app.post(VIEWER_COUNT_PATH)
    async def post_viewer_count(request: Request) -> Response:
        try:
            body = json.loads(await request.body(), parse_constant=_reject_constant)
        except ValueError:
            return _error(400, "Invalid JSON")

        try:
            update = ViewerCountUpdate.model_validate(body)
        except ValidationError:
            return _error(400, "viewerCount must be a number")

        state.update(update.viewer_count)
        logger.debug(f"Viewer count updated: {update.viewer_count}")
        return Response(status_code=204)

    return app


class _QuietAccessLog(logging.Filter):
    """Drop uvicorn access lines for the viewer count endpoint (posted every few seconds)."""

    def filter(self, record: logging.LogRecord) -> bool:
        return VIEWER_COUNT_PATH not in record.getMessage()


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the relay session."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class ViewerCountServer:
    """Runs the viewer count app under uvicorn inside the current event loop."""

    def __init__(
        self,
        port: Optional[int] = None,
        host: Optional[str] = None,
        state: Optional[ViewerCountState] = None,
    ):
        self.host = host or settings.viewer_count_host
        self.requested_port = port if port is not None else settings.viewer_count_port
        self.state = state or ViewerCountState()
        self.app = create_viewer_count_app(self.state)

        self._server: Optional[uvicorn.Server] = None
        self._task: Optional[asyncio.Task] = None

    def get_viewer_count(self) -> Optional[Number]:
        return self.state.viewer_count

    @property
    def port(self) -> int:
        if self._server is not None and self._server.servers:
            sockets = self._server.servers[0].sockets
            if sockets:
                return sockets[0].getsockname()[1]
        return self.requested_port

    async def start(self) -> None:
        """Bind and begin serving. Raises RuntimeError if the port cannot be bound."""
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.requested_port,
            log_level=settings.log_level.lower(),
            lifespan="off",
        )
        self._server = _EmbeddedServer(config)
        logging.getLogger("uvicorn.access").addFilter(_QuietAccessLog())

        self._task = asyncio.create_task(self._serve())
        while not self._server.started:
            if self._task.done():
                # Surfaces the bind failure raised by _serve
                self._task.result()
                raise RuntimeError("Viewer count server exited during startup")
            await asyncio.sleep(0.05)

        logger.info(f"Viewer count server listening on http://{self.host}:{self.port}")

    async def _serve(self) -> None:
        try:
            await self._server.serve()
        except SystemExit as e:
            # uvicorn exits the process when the socket cannot be bound
            raise RuntimeError(
                f"Viewer count server failed to start on {self.host}:{self.requested_port}"
            ) from e

    async def stop(self) -> None:
        if self._server is None or self._task is None:
            return
        self._server.should_exit = True
        try:
            await self._task
        finally:
            self._task = None
            logger.info("Viewer count server stopped")
