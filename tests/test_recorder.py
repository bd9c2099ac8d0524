import json

import pytest
import requests

from contract_engine.consumer import Consumer, Provider
from contract_engine.consumer.recorder import Recorder
from contract_engine.core.contract_store import load_document
from contract_engine.core.exceptions import MockInteractionError
from contract_engine.core.matchers import EachLike, Like
from contract_engine.core.schemas import SpecVersion


def test_recorder_defaults_come_from_settings(pact_dir):
    recorder = Recorder("frontend", "product-service")
    assert recorder.default_path == pact_dir / "frontend-product-service.json"
    assert recorder.spec_version is SpecVersion.V3
    assert recorder.file_write_mode == "merge"


def test_recorder_rejects_unknown_mode():
    with pytest.raises(ValueError):
        Recorder("frontend", "product-service", file_write_mode="append")


def test_recording_same_identity_replaces(products_interaction, product_interaction):
    recorder = Recorder("frontend", "product-service")
    recorder.record(products_interaction)
    recorder.record(product_interaction)
    recorder.record(products_interaction)
    assert recorder.pending == [products_interaction, product_interaction]


def test_flush_writes_and_clears(tmp_path, products_interaction):
    recorder = Recorder("frontend", "product-service", pact_dir=tmp_path, spec_version="2.0.0")
    recorder.record(products_interaction)
    path = recorder.flush()
    assert path == tmp_path / "frontend-product-service.json"
    assert recorder.pending == []
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["metadata"]["pactSpecVersion"] == "2.0.0"
    assert len(data["interactions"]) == 1


def test_flush_merges_by_default(tmp_path, products_interaction, product_interaction):
    first = Recorder("frontend", "product-service", pact_dir=tmp_path)
    first.record(products_interaction)
    first.flush()
    second = Recorder("frontend", "product-service", pact_dir=tmp_path)
    second.record(product_interaction)
    path = second.flush()
    assert [i.description for i in load_document(path).interactions] == [
        "a request for all products",
        "a request for product 10",
    ]


@pytest.fixture
def pact(pact_dir):
    pact = Consumer("frontend").has_pact_with(Provider("product-service"), host_name="127.0.0.1", port=0)
    pact.start()
    yield pact
    pact.server.stop()


@pytest.mark.consumer
def test_pact_records_satisfied_interaction(pact, pact_dir):
    (pact
     .given("products exist")
     .upon_receiving("a request for all products")
     .with_request("GET", "/products", query={"type": "CREDIT_CARD"})
     .will_respond_with(200, body={"products": EachLike({"id": Like(9), "name": Like("Gem Visa")})}))

    with pact:
        response = requests.get(pact.uri + "/products", params={"type": "CREDIT_CARD"}, timeout=5)

    assert response.status_code == 200
    assert response.json() == {"products": [{"id": 9, "name": "Gem Visa"}]}

    path = pact.stop()
    assert path == pact_dir / "frontend-product-service.json"
    document = load_document(path)
    assert document.interactions[0].request.query == {"type": ["CREDIT_CARD"]}
    assert "$.body.products" in document.interactions[0].response.matching_rules


@pytest.mark.consumer
def test_pact_raises_on_wrong_request(pact):
    (pact
     .upon_receiving("a request for product 10")
     .with_request("GET", "/product/10")
     .will_respond_with(200, body={"id": 10}))

    with pytest.raises(MockInteractionError) as exc:
        with pact:
            response = requests.get(pact.uri + "/product/11", timeout=5)
            assert response.status_code == 500
    assert exc.value.mismatches[0].path == "$.path"
    assert pact.recorder.pending == []


@pytest.mark.consumer
def test_pact_raises_when_no_request_made(pact):
    pact.upon_receiving("never sent").with_request("GET", "/x").will_respond_with(204)
    with pytest.raises(MockInteractionError) as exc:
        with pact:
            pass
    assert exc.value.mismatches[0].reason == "request count"


@pytest.mark.consumer
def test_exception_in_block_records_nothing(pact):
    pact.upon_receiving("aborted").with_request("GET", "/x").will_respond_with(204)
    with pytest.raises(RuntimeError):
        with pact:
            raise RuntimeError("consumer bug")
    assert pact.recorder.pending == []
    pact.upon_receiving("next").with_request("GET", "/y").will_respond_with(204)
    with pact:
        requests.get(pact.uri + "/y", timeout=5)
    assert [i.description for i in pact.recorder.pending] == ["next"]


def test_add_interaction_arms_prebuilt(products_interaction):
    pact = Consumer("frontend").has_pact_with(Provider("product-service"))
    pact.add_interaction(products_interaction)
    with pact:
        status, _, _ = pact.service.send("GET", "/products", headers={"Authorization": "Bearer abc"})
    assert status == 200
    assert pact.recorder.pending == [products_interaction]
