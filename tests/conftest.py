"""
Pytest configuration for contract-engine tests.
"""

import socket
from pathlib import Path

import pytest

from contract_engine.core.interaction import InteractionBuilder
from contract_engine.core.matchers import EachLike, Like, Term
from contract_engine.core.schemas import ContractDocument, Interaction


@pytest.fixture(autouse=True)
def set_env(monkeypatch, tmp_path):
    monkeypatch.setenv("PACT_DIR", str(tmp_path / "pacts"))
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    for name in ("PROVIDER_STATES_SETUP_URL", "PACT_BROKER_URL", "PACT_BROKER_TOKEN", "PACT_BROKER_USERNAME", "PACT_BROKER_PASSWORD",
                 "PACT_CONSUMER_VERSION", "PACT_PROVIDER_VERSION", "PACT_BRANCH",
                 "PACT_SPEC_VERSION", "PACT_FILE_WRITE_MODE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def pact_dir(tmp_path) -> Path:
    directory = tmp_path / "pacts"
    directory.mkdir(exist_ok=True)
    return directory


@pytest.fixture
def products_interaction() -> Interaction:
    """GET /products with a bearer token, answered by a list of at least one product."""
    return (
        Interaction.given("products exist")
        .upon_receiving("a request for all products")
        .with_request(
            "GET",
            "/products",
            headers={"Authorization": Term(r"Bearer [A-Za-z0-9.\-]+", "Bearer t0k3n")},
        )
        .will_respond_with(
            200,
            headers={"Content-Type": "application/json"},
            body={"products": EachLike({"id": Like(9), "name": Like("Gem Visa"), "type": Like("CREDIT_CARD")})},
        )
        .build()
    )


@pytest.fixture
def product_interaction() -> Interaction:
    return (
        InteractionBuilder()
        .given("product with ID 10 exists", id=10)
        .upon_receiving("a request for product 10")
        .with_request("GET", "/product/10")
        .will_respond_with(200, body=Like({"id": 10, "name": "28 Degrees", "type": "CREDIT_CARD"}))
        .build()
    )


@pytest.fixture
def products_document(products_interaction, product_interaction) -> ContractDocument:
    return ContractDocument(
        consumer_name="frontend",
        provider_name="product-service",
        interactions=[products_interaction, product_interaction],
    )


def pytest_configure(config):
    """
    Configure pytest markers.

    Args:
        config: Pytest configuration object
    """
    config.addinivalue_line(
        "markers", "pact: mark test as a contract test"
    )
    config.addinivalue_line(
        "markers", "consumer: mark test as a consumer contract test"
    )
    config.addinivalue_line(
        "markers", "provider: mark test as a provider verification test"
    )


@pytest.fixture
def unused_url() -> str:
    """Base URL of a local port nothing listens on."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return f"http://127.0.0.1:{port}"
