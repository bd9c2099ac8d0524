from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

import httpx
from fastapi.testclient import TestClient

from ..core.exceptions import TransportUnreachable
from .base import TransportResponse, body_kwargs, decode_body, flatten_headers


class TestClientTransport:
    """Sends requests to an in-process ASGI app (FastAPI) through its test client."""

    __test__ = False

    def __init__(self, app: Any, base_url: str = "http://testserver", raise_server_exceptions: bool = False):
        self.base_url = base_url
        self.client = TestClient(app, base_url=base_url, raise_server_exceptions=raise_server_exceptions)

    def send(
        self,
        method: str,
        path: str,
        headers: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> TransportResponse:
        kwargs = body_kwargs(body)
        if "data" in kwargs:
            kwargs = {"content": kwargs["data"]}
        try:
            response = self.client.request(
                method,
                path,
                headers=flatten_headers(headers),
                params=query or None,
                follow_redirects=False,
                **kwargs,
            )
        except httpx.TransportError as e:
            raise TransportUnreachable(f"{self.base_url}{path}", e) from e

        headers_out: Dict[str, List[str]] = {}
        for name, value in response.headers.multi_items():
            headers_out.setdefault(name, []).append(value)
        return TransportResponse(
            response.status_code,
            headers_out,
            decode_body(response.content, response.headers.get("content-type")),
        )
