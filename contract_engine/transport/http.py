from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import get_settings
from ..core.exceptions import TransportRequestFailed, TransportUnreachable
from .base import TransportResponse, body_kwargs, decode_body, flatten_headers

logger = logging.getLogger(__name__)


class RequestsTransport:
    """
    Replays requests against a provider listening on a real socket.

    Connection failures and timeouts surface as ``TransportUnreachable``; they are
    never retried, a flaky provider must show up as a failed interaction.
    """

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else get_settings().VERIFY_TIMEOUT_SECONDS
        self.session = session or self._create_http_session()

    def _create_http_session(self) -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=Retry(total=0, redirect=False, raise_on_status=False))
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def send(
        self,
        method: str,
        path: str,
        headers: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> TransportResponse:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method,
                url,
                headers=flatten_headers(headers),
                params=query or None,
                timeout=self.timeout,
                allow_redirects=False,
                **body_kwargs(body),
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning(f"Provider unreachable: {method} {url}: {e}")
            raise TransportUnreachable(url, e) from e
        except requests.RequestException as e:
            logger.warning(f"Request failed: {method} {url}: {e}")
            raise TransportRequestFailed(url, e) from e

        headers_out: Dict[str, List[str]] = {name: [value] for name, value in response.headers.items()}
        return TransportResponse(
            response.status_code,
            headers_out,
            decode_body(response.content, response.headers.get("Content-Type")),
        )

    def close(self) -> None:
        self.session.close()
