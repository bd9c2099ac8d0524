import pytest
from pydantic import ValidationError

from contract_engine.core.exceptions import InvalidInteraction
from contract_engine.core.interaction import InteractionBuilder, build_request, build_response, extract_rules
from contract_engine.core.matchers import (
    EachLike,
    EachLikeMatcher,
    EqualityMatcher,
    Equals,
    Like,
    MinLengthMatcher,
    RegexMatcher,
    Term,
    TypeMatcher,
)
from contract_engine.core.schemas import ContractDocument, Interaction, ProviderState, ResponseTemplate


def test_extract_rules_splits_examples_and_rules():
    rules = {}
    literal = extract_rules(
        {"products": EachLike({"id": Like(9), "code": Term("[A-Z]+", "GV")}, minimum=2), "kind": Equals("list")},
        "$.body",
        rules,
    )
    assert literal == {"products": [{"id": 9, "code": "GV"}, {"id": 9, "code": "GV"}], "kind": "list"}
    assert rules == {
        "$.body.products": MinLengthMatcher(min=2),
        "$.body.products[*].id": TypeMatcher(),
        "$.body.products[*].code": RegexMatcher(pattern="[A-Z]+"),
        "$.body.kind": EqualityMatcher(),
    }


def test_each_like_minimum_zero_records_each_like_rule():
    rules = {}
    assert extract_rules(EachLike("x", minimum=0), "$.body", rules) == ["x"]
    assert rules == {"$.body": EachLikeMatcher()}


def test_term_example_must_match():
    with pytest.raises(ValueError):
        Term(r"\d+", "abc")


def test_header_rules_and_literal_values():
    response = build_response(200, headers={"Content-Type": "application/json", "X-Id": Term("[0-9]+", "42")})
    assert response.headers == {"Content-Type": ["application/json"], "X-Id": ["42"]}
    assert response.matching_rules == {"$.headers.X-Id": RegexMatcher(pattern="[0-9]+")}
    assert response.header("content-type") == ["application/json"]


def test_request_method_uppercased_and_query_normalized():
    request = build_request("get", "/products", query={"type": "CREDIT_CARD", "tag": ["a", "b"]})
    assert request.method == "GET"
    assert request.query == {"type": ["CREDIT_CARD"], "tag": ["a", "b"]}


@pytest.mark.parametrize("kwargs", [
    {"method": Like("GET"), "path": "/x"},
    {"method": "GET", "path": Term("/x.*", "/x")},
    {"method": "GET", "path": "/x", "query": {"q": Like("1")}},
])
def test_request_line_must_be_literal(kwargs):
    with pytest.raises(InvalidInteraction):
        build_request(**kwargs)


def test_empty_path_rejected():
    with pytest.raises(InvalidInteraction):
        build_request("GET", "   ")


def test_status_out_of_range_rejected():
    with pytest.raises(InvalidInteraction):
        build_response(700)


def test_rule_outside_body_and_headers_rejected():
    with pytest.raises(ValidationError):
        ResponseTemplate.model_validate({"status": 200, "matchingRules": {"$.status": {"kind": "type"}}})


def test_header_without_values_rejected():
    with pytest.raises(ValidationError, match="header 'X-Trace' needs at least one value"):
        ResponseTemplate.model_validate({"status": 200, "headers": {"X-Trace": []}})


def test_builder_collects_states_in_order(product_interaction):
    interaction = (
        InteractionBuilder()
        .given("user exists", id=1)
        .and_given("user has orders")
        .upon_receiving("a request for orders")
        .with_request("GET", "/users/1/orders")
        .will_respond_with(200, body=[])
        .build()
    )
    assert interaction.state_names == ["user exists", "user has orders"]
    assert interaction.provider_states[0].params == {"id": 1}
    assert product_interaction.provider_states == [ProviderState(name="product with ID 10 exists", params={"id": 10})]


def test_builder_reports_missing_parts():
    with pytest.raises(InvalidInteraction) as exc:
        InteractionBuilder().upon_receiving("incomplete").build()
    assert "with_request" in str(exc.value)
    assert "will_respond_with" in str(exc.value)


def test_from_templates_accepts_dsl_mappings():
    interaction = Interaction.from_templates(
        "create an order",
        {"method": "POST", "path": "/orders", "body": {"qty": 1}},
        {"status": 201, "body": {"id": Like(5)}},
        provider_states=["stock available", ("customer", {"id": 3})],
    )
    assert interaction.response.matching_rules == {"$.body.id": TypeMatcher()}
    assert interaction.provider_states[1] == ProviderState(name="customer", params={"id": 3})


def test_identity_uses_description_and_states(products_interaction):
    same = products_interaction.model_copy()
    assert same.identity == products_interaction.identity
    other = Interaction.from_templates("a request for all products", {"method": "GET", "path": "/products"}, {})
    assert other.identity != products_interaction.identity


def test_document_rejects_duplicate_interactions(products_interaction):
    with pytest.raises(ValidationError) as exc:
        ContractDocument(
            consumer_name="frontend",
            provider_name="product-service",
            interactions=[products_interaction, products_interaction],
        )
    assert "Duplicate interaction" in str(exc.value)


def test_same_description_with_different_states_allowed():
    first = Interaction.given("empty").upon_receiving("list").with_request("GET", "/l").will_respond_with(200).build()
    second = Interaction.given("full").upon_receiving("list").with_request("GET", "/l").will_respond_with(200).build()
    document = ContractDocument(consumer_name="a", provider_name="b", interactions=[first, second])
    assert len(document.find("list")) == 2
