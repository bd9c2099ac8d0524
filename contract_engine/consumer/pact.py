"""
Consumer DSL.

Usage mirrors the familiar pact workflow::

    pact = Consumer("frontend").has_pact_with(Provider("product-service"), pact_dir="pacts")
    pact.start()

    (pact
     .given("products exist")
     .upon_receiving("a request for all products")
     .with_request("GET", "/products", headers={"Authorization": Term(r"Bearer .+", "Bearer t0k3n")})
     .will_respond_with(200, body={"products": EachLike({"id": Like(1), "name": Like("pen")})}))

    with pact:
        requests.get(pact.uri + "/products", headers={"Authorization": "Bearer t0k3n"})

    pact.stop()   # writes pacts/frontend-product-service.json

Leaving the ``with`` block finalizes the interaction; a missing, extra or
mismatching request raises ``MockInteractionError``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from ..core.exceptions import MockInteractionError
from ..core.interaction import InteractionBuilder
from ..core.schemas import Interaction
from .mock_server import MockServer
from .mock_service import MockService, MockState
from .recorder import Recorder

logger = logging.getLogger(__name__)


class Provider:
    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return f"Provider({self.name!r})"


class Consumer:
    def __init__(self, name: str, version: Optional[str] = None):
        self.name = name
        self.version = version

    def has_pact_with(
        self,
        provider: Provider,
        host_name: Optional[str] = None,
        port: Optional[int] = None,
        pact_dir: Optional[Union[str, Path]] = None,
        spec_version: Optional[str] = None,
        file_write_mode: Optional[str] = None,
    ) -> "Pact":
        return Pact(
            self,
            provider,
            host_name=host_name,
            port=port,
            pact_dir=pact_dir,
            spec_version=spec_version,
            file_write_mode=file_write_mode,
        )

    def __repr__(self) -> str:
        return f"Consumer({self.name!r})"


class Pact:
    def __init__(
        self,
        consumer: Consumer,
        provider: Provider,
        host_name: Optional[str] = None,
        port: Optional[int] = None,
        pact_dir: Optional[Union[str, Path]] = None,
        spec_version: Optional[str] = None,
        file_write_mode: Optional[str] = None,
    ):
        self.consumer = consumer
        self.provider = provider
        self.recorder = Recorder(
            consumer.name,
            provider.name,
            pact_dir=pact_dir,
            spec_version=spec_version,
            file_write_mode=file_write_mode,
        )
        self.service = MockService(self.recorder)
        self.server = MockServer(self.service, host=host_name, port=port)
        self._builder = InteractionBuilder()

    @property
    def uri(self) -> str:
        return self.server.uri

    # Lifecycle -----------------------------------------------------------------

    def start(self) -> "Pact":
        self.server.start()
        return self

    def stop(self) -> Path:
        """Stop the mock server and write the contract file."""
        self.server.stop()
        return self.write_pact()

    start_service = start
    stop_service = stop

    def write_pact(self, output_path: Optional[Union[str, Path]] = None) -> Path:
        return self.recorder.flush(output_path)

    # Interaction definition ----------------------------------------------------

    def given(self, state: str, **params: Any) -> "Pact":
        self._builder.given(state, **params)
        return self

    and_given = given

    def upon_receiving(self, description: str) -> "Pact":
        self._builder.upon_receiving(description)
        return self

    def with_request(
        self,
        method: str,
        path: str,
        body: Any = None,
        headers: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
    ) -> "Pact":
        self._builder.with_request(method, path, headers=headers, body=body, query=query)
        return self

    def will_respond_with(
        self,
        status: int = 200,
        headers: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> "Pact":
        self._builder.will_respond_with(status, headers=headers, body=body)
        return self

    def add_interaction(self, interaction: Interaction) -> "Pact":
        """Arm a prebuilt interaction instead of using the fluent calls."""
        self.service.arm(interaction)
        return self

    # Arm / finalize ------------------------------------------------------------

    def setup(self) -> None:
        if self.service.state not in (MockState.ARMED, MockState.REQUEST_RECEIVED):
            interaction = self._builder.build()
            self._builder.reset()
            self.service.arm(interaction)

    def verify(self) -> None:
        state = self.service.finalize()
        if state is MockState.VIOLATED:
            raise MockInteractionError(self.service.interaction.description, list(self.service.mismatches))

    def __enter__(self) -> "Pact":
        self.setup()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type is not None:
            logger.debug(f"Interaction aborted by {exc_type.__name__}; nothing recorded")
            self.service.reset()
            self._builder.reset()
            return
        self.verify()
