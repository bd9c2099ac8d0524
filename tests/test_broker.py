import json

import httpx
import pytest

from contract_engine.broker import BrokerClient, PactBrokerConfig
from contract_engine.core.codec import encode
from contract_engine.core.exceptions import BrokerError
from contract_engine.core.schemas import Outcome, VerificationResult
from contract_engine.provider.report import VerificationReport


class FakeBroker:
    def __init__(self, documents=None, status=200):
        self.documents = documents or {}
        self.status = status
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status >= 400:
            return httpx.Response(self.status, text="nope")
        if request.method == "GET" and request.url.path.endswith("/latest"):
            links = [{"href": f"https://broker.test/pacts/{name}"} for name in self.documents]
            return httpx.Response(200, json={"_links": {"pb:pacts": links}})
        if request.method == "GET":
            name = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, content=encode(self.documents[name]))
        return httpx.Response(201, json={"ok": True})


def _client(broker, **config):
    settings = {"broker_url": "https://broker.test/", "token": "t0k3n"}
    settings.update(config)
    return BrokerClient(PactBrokerConfig(**settings), transport=httpx.MockTransport(broker))


def test_config_requires_url():
    with pytest.raises(BrokerError):
        PactBrokerConfig.from_settings()


def test_config_from_settings(monkeypatch):
    monkeypatch.setenv("PACT_BROKER_URL", "https://broker.test")
    monkeypatch.setenv("PACT_BROKER_USERNAME", "ci")
    monkeypatch.setenv("PACT_BROKER_PASSWORD", "pw")
    config = PactBrokerConfig.from_settings()
    assert (config.broker_url, config.username, config.password, config.token) == ("https://broker.test", "ci", "pw", None)


def test_publish_contract(products_document):
    broker = FakeBroker()
    with _client(broker, branch="main") as client:
        client.publish_contract(products_document, consumer_version="1.2.3")
    put, tag = broker.requests
    assert put.method == "PUT"
    assert put.url.path == "/pacts/provider/product-service/consumer/frontend/version/1.2.3"
    assert put.headers["Authorization"] == "Bearer t0k3n"
    assert json.loads(put.content)["consumer"] == {"name": "frontend"}
    assert tag.url.path == "/pacticipants/frontend/versions/1.2.3/tags/main"


def test_publish_requires_consumer_version(products_document):
    with pytest.raises(BrokerError):
        _client(FakeBroker()).publish_contract(products_document)


def test_basic_auth(products_document):
    broker = FakeBroker()
    _client(broker, token=None, username="ci", password="pw").publish_contract(products_document, "1")
    assert broker.requests[0].headers["Authorization"].startswith("Basic ")


def test_fetch_latest_contracts(products_document):
    broker = FakeBroker({"frontend": products_document})
    [document] = _client(broker).fetch_latest_contracts("product-service")
    assert document == products_document
    assert broker.requests[0].url.path == "/pacts/provider/product-service/latest"


def test_broker_errors_raise(products_document):
    with pytest.raises(BrokerError) as exc:
        _client(FakeBroker(status=401)).publish_contract(products_document, "1")
    assert exc.value.status_code == 401


def test_publish_verification_results(products_interaction):
    report = VerificationReport(
        consumer_name="frontend",
        provider_name="product-service",
        results=[VerificationResult(interaction=products_interaction, outcome=Outcome.PASS)],
    )
    broker = FakeBroker()
    _client(broker, provider_version="2.0.1").publish_verification_results(report, consumer_version="abc123")
    [request] = broker.requests
    assert request.url.path == (
        "/pacts/provider/product-service/consumer/frontend/pact-version/abc123/verification-results"
    )
    payload = json.loads(request.content)
    assert payload["success"] is True
    assert payload["providerApplicationVersion"] == "2.0.1"
    assert payload["testResults"][0]["description"] == "a request for all products"
