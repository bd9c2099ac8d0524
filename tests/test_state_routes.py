import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from contract_engine.core.exceptions import StateRegistryUnavailable, StateSetupFailed, UnknownProviderState
from contract_engine.provider.state_routes import create_state_router
from contract_engine.provider.states import RemoteStateHandlers, StateHandlerRegistry


@pytest.fixture
def registry():
    states = StateHandlerRegistry()
    calls = []

    @states.state("products exist")
    def products_exist(params):
        """Seed the default product catalogue."""
        calls.append(("products exist", params))
        return {"seeded": params.get("count", 2)}

    @states.state("database is down", description="Break the repository")
    def database_down(params):
        raise ConnectionError("db offline")

    states.calls = calls
    return states


@pytest.fixture
def client(registry):
    app = FastAPI()
    app.include_router(create_state_router(registry))
    return TestClient(app)


def test_registry_is_a_mapping(registry):
    assert set(registry) == {"products exist", "database is down"}
    assert "products exist" in registry
    assert registry.get("nope") is None
    assert registry.describe()["products exist"]["description"] == "Seed the default product catalogue."
    assert registry.describe()["database is down"]["description"] == "Break the repository"


def test_registry_setup_errors(registry):
    with pytest.raises(UnknownProviderState):
        registry.setup("nope")
    with pytest.raises(StateSetupFailed) as exc:
        registry.setup("database is down")
    assert isinstance(exc.value.cause, ConnectionError)


def test_register_rejects_non_callable():
    with pytest.raises(TypeError):
        StateHandlerRegistry().register("x", "not a function")


def test_setup_state_endpoint(client, registry):
    r = client.post("/_pact/provider-states", json={"state": "products exist", "params": {"count": 3}})
    assert r.status_code == 200
    assert r.json()["status"] == "success"
    assert r.json()["data"] == {"seeded": 3}
    assert registry.calls == [("products exist", {"count": 3})]


def test_unknown_state_is_400(client):
    r = client.post("/_pact/provider-states", json={"state": "nope"})
    assert r.status_code == 400
    assert r.json()["detail"]["title"] == "Invalid Provider State"


def test_failing_state_is_500(client):
    r = client.post("/_pact/provider-states", json={"state": "database is down"})
    assert r.status_code == 500
    assert "db offline" in r.json()["detail"]["detail"]


def test_list_and_info(client):
    r = client.get("/_pact/provider-states")
    assert r.json()["total_states"] == 2
    assert client.get("/_pact/provider-states/products exist").status_code == 200
    assert client.get("/_pact/provider-states/nope").status_code == 404
    assert client.get("/_pact/health").json()["registered_states"] == 2


def test_remote_handlers_through_state_routes(client, registry):
    remote = RemoteStateHandlers("http://testserver/_pact/provider-states", session=client)
    assert set(remote) == {"products exist", "database is down"}
    remote["products exist"]({"count": 1})
    assert registry.calls == [("products exist", {"count": 1})]
    with pytest.raises(RuntimeError):
        remote["database is down"]({})
    assert remote.get("nope") is None


def test_remote_handlers_need_url():
    with pytest.raises(StateRegistryUnavailable):
        RemoteStateHandlers()


def test_remote_handlers_unreachable(unused_url):
    remote = RemoteStateHandlers(unused_url + "/_pact/provider-states", timeout=1)
    with pytest.raises(StateRegistryUnavailable):
        list(remote)
