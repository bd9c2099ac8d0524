from __future__ import annotations

import json
import logging
import socket
import threading
import time
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import Response

from ..config import get_settings
from ..core.exceptions import TransportUnreachable
from ..transport.base import decode_body
from .mock_service import MockService

logger = logging.getLogger(__name__)

HTTP_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def _render_body(body: Any, headers: Dict[str, str]) -> bytes:
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    if isinstance(body, str) and "content-type" in {k.lower() for k in headers}:
        return body.encode("utf-8")
    if not any(k.lower() == "content-type" for k in headers):
        headers["Content-Type"] = "application/json"
    return json.dumps(body).encode("utf-8")


def create_mock_app(service: MockService) -> FastAPI:
    """FastAPI app whose every route is answered by ``service``."""
    app = FastAPI(title="contract-engine mock service", docs_url=None, redoc_url=None, openapi_url=None)

    @app.api_route("/{path:path}", methods=HTTP_METHODS)
    async def handle(request: Request, path: str) -> Response:
        raw = await request.body()
        body = decode_body(raw, request.headers.get("content-type"))
        headers: Dict[str, list] = {}
        for name, value in request.headers.items():
            headers.setdefault(name, []).append(value)
        query: Dict[str, list] = {}
        for name, value in request.query_params.multi_items():
            query.setdefault(name, []).append(value)

        status, response_headers, response_body = service.send(
            request.method, request.url.path, headers=headers, body=body, query=query
        )
        flat = {name: ", ".join(values) for name, values in response_headers.items()}
        content = _render_body(response_body, flat)
        return Response(content=content, status_code=status, headers=flat)

    return app


class MockServer:
    """
    Serves a ``MockService`` over HTTP with uvicorn in a background thread.

    The socket is bound before the server starts, so ``uri`` is known (and the
    port is reserved) even when an ephemeral port is requested.
    """

    def __init__(
        self,
        service: MockService,
        host: Optional[str] = None,
        port: Optional[int] = None,
        startup_timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.service = service
        self.host = host or settings.MOCK_SERVICE_HOST
        self.port = settings.MOCK_SERVICE_PORT if port is None else port
        self.startup_timeout = startup_timeout or settings.MOCK_STARTUP_TIMEOUT_SECONDS
        self.app = create_mock_app(service)
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None
        self._socket: Optional[socket.socket] = None

    @property
    def uri(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "MockServer":
        if self.running:
            return self
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.host, self.port))
        self.port = sock.getsockname()[1]
        self._socket = sock

        config = uvicorn.Config(self.app, log_level="warning", lifespan="off", access_log=False)
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._server.run, kwargs={"sockets": [sock]}, name=f"mock-server-{self.port}", daemon=True
        )
        self._thread.start()

        deadline = time.monotonic() + self.startup_timeout
        while not self._server.started:
            if time.monotonic() > deadline or not self._thread.is_alive():
                self.stop()
                raise TransportUnreachable(self.uri, TimeoutError("mock server did not start"))
            time.sleep(0.01)
        logger.info(f"Mock server listening on {self.uri}")
        return self

    def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=self.startup_timeout)
        if self._socket is not None:
            self._socket.close()
        self._server = None
        self._thread = None
        self._socket = None

    def __enter__(self) -> "MockServer":
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()
