"""Transport protocol and helpers shared by the HTTP client transports."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Protocol


class TransportResponse(NamedTuple):
    status: int
    headers: Dict[str, List[str]]
    body: Any


class Transport(Protocol):
    def send(
        self,
        method: str,
        path: str,
        headers: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> TransportResponse:
        ...


def flatten_headers(headers: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """``{name: [v1, v2]}`` -> ``{name: "v1, v2"}`` for HTTP client libraries."""
    flat: Dict[str, str] = {}
    for name, value in (headers or {}).items():
        flat[name] = ", ".join(value) if isinstance(value, (list, tuple)) else str(value)
    return flat


def body_kwargs(body: Any) -> Dict[str, Any]:
    """Client keyword for a body: JSON for structured values, raw for text/bytes."""
    if body is None:
        return {}
    if isinstance(body, (str, bytes)):
        return {"data": body}
    return {"json": body}


def is_json_content(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def decode_body(content: bytes, content_type: Optional[str]) -> Any:
    """Parse a payload: JSON when the content type says so, text otherwise, None when empty."""
    if not content:
        return None
    text = content.decode("utf-8", errors="replace")
    if is_json_content(content_type):
        try:
            return json.loads(text)
        except ValueError:
            return text
    return text
