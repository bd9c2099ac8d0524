"""
Consumer contract tests: the product client is exercised against the mock
provider, and every satisfied interaction ends up in the contract file.
"""

import pytest

from contract_engine.consumer import Consumer, Provider
from contract_engine.core.contract_store import load_document
from contract_engine.core.matchers import EachLike, Like, Term

from .product_service import ProductClient


@pytest.fixture
def product_pact(pact_dir):
    pact = Consumer("frontend").has_pact_with(
        Provider("product-service"), host_name="127.0.0.1", port=0, pact_dir=pact_dir
    )
    pact.start()
    yield pact
    pact.server.stop()


@pytest.mark.pact
@pytest.mark.consumer
def test_client_contract(product_pact, pact_dir):
    client = ProductClient(product_pact.uri, token="t0k3n")

    (product_pact
     .given("products exist")
     .upon_receiving("a request for all products")
     .with_request("GET", "/products", headers={"Authorization": Term(r"Bearer [A-Za-z0-9.\-]+", "Bearer t0k3n")})
     .will_respond_with(
         200,
         headers={"Content-Type": "application/json"},
         body={"products": EachLike({"id": Like(9), "name": Like("Gem Visa"), "type": Like("CREDIT_CARD")})},
     ))
    with product_pact:
        products = client.list_products()
    assert products == [{"id": 9, "name": "Gem Visa", "type": "CREDIT_CARD"}]

    (product_pact
     .given("product with ID 10 exists", id=10)
     .upon_receiving("a request for product 10")
     .with_request("GET", "/product/10")
     .will_respond_with(200, body=Like({"id": 10, "name": "28 Degrees", "type": "CREDIT_CARD"})))
    with product_pact:
        product = client.get_product(10)
    assert product["name"] == "28 Degrees"

    path = product_pact.stop()
    document = load_document(path)
    assert path == pact_dir / "frontend-product-service.json"
    assert [i.description for i in document.interactions] == [
        "a request for all products",
        "a request for product 10",
    ]
