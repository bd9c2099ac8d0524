"""
Provider state handlers.

A provider state names a precondition the provider must establish before an
interaction is replayed ("products exist", "user 42 is suspended"). Handlers are
registered explicitly by name and receive the state's params as a plain dict;
they validate those params themselves and raise to signal a failed setup.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator, Mapping, Optional

import requests

from ..config import get_settings
from ..core.exceptions import StateRegistryUnavailable, StateSetupFailed, UnknownProviderState

logger = logging.getLogger(__name__)

StateHandler = Callable[[Dict[str, Any]], Any]


class StateHandlerRegistry(Mapping[str, StateHandler]):
    """
    Mapping of provider state name to handler.

    Example::

        states = StateHandlerRegistry()

        @states.state("products exist")
        def products_exist(params):
            db.insert(Product(id=params.get("id", 9), name="pen"))
    """

    def __init__(self, handlers: Optional[Mapping[str, StateHandler]] = None):
        self._handlers: Dict[str, StateHandler] = {}
        self._descriptions: Dict[str, str] = {}
        for name, handler in (handlers or {}).items():
            self.register(name, handler)

    def register(self, name: str, handler: StateHandler, description: Optional[str] = None) -> StateHandler:
        if not name:
            raise ValueError("provider state name must be non-empty")
        if not callable(handler):
            raise TypeError(f"handler for provider state '{name}' is not callable")
        self._handlers[name] = handler
        self._descriptions[name] = description or (handler.__doc__ or "").strip().split("\n")[0]
        return handler

    def state(self, name: str, description: Optional[str] = None) -> Callable[[StateHandler], StateHandler]:
        def decorator(handler: StateHandler) -> StateHandler:
            return self.register(name, handler, description)

        return decorator

    def __getitem__(self, name: str) -> StateHandler:
        return self._handlers[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def describe(self) -> Dict[str, Dict[str, Any]]:
        return {name: {"description": self._descriptions.get(name, "")} for name in self._handlers}

    def setup(self, name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Run the handler for ``name``; raises ``UnknownProviderState`` or ``StateSetupFailed``."""
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownProviderState(name)
        try:
            return handler(dict(params or {}))
        except Exception as e:
            raise StateSetupFailed(name, e) from e


class RemoteStateHandlers(Mapping[str, StateHandler]):
    """
    State handlers living in the provider process, reached over HTTP.

    ``setup_url`` is the provider's state endpoint (``.../_pact/provider-states``):
    GET lists the known states, POST ``{"state", "params"}`` sets one up. Any
    connection failure raises ``StateRegistryUnavailable``, which aborts the
    verification run.
    """

    def __init__(
        self,
        setup_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        settings = get_settings()
        url = setup_url or settings.PROVIDER_STATES_SETUP_URL
        if not url:
            raise StateRegistryUnavailable("No provider states setup URL configured")
        self.setup_url = url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.VERIFY_TIMEOUT_SECONDS
        self.session = session or requests.Session()
        self._names: Optional[Dict[str, Any]] = None

    def _request(self, method: str, **kwargs: Any) -> requests.Response:
        try:
            return self.session.request(method, self.setup_url, timeout=self.timeout, **kwargs)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise StateRegistryUnavailable(f"Provider state registry at {self.setup_url} is unreachable: {e}") from e

    def _available(self) -> Dict[str, Any]:
        if self._names is None:
            response = self._request("GET")
            if response.status_code != 200:
                raise StateRegistryUnavailable(
                    f"Provider state registry at {self.setup_url} answered {response.status_code}"
                )
            self._names = dict(response.json().get("available_states") or {})
            logger.info(f"Provider exposes {len(self._names)} state(s)", extra={"url": self.setup_url})
        return self._names

    def _handler_for(self, name: str) -> StateHandler:
        def handler(params: Dict[str, Any]) -> Any:
            response = self._request("POST", json={"state": name, "params": params, "action": "setup"})
            if response.status_code >= 400:
                raise RuntimeError(f"state setup returned {response.status_code}: {response.text}")
            return response.json() if response.content else None

        return handler

    def __getitem__(self, name: str) -> StateHandler:
        if name not in self._available():
            raise KeyError(name)
        return self._handler_for(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self._available())

    def __len__(self) -> int:
        return len(self._available())
