import json

import pytest

from contract_engine import cli
from contract_engine.consumer.mock_server import MockServer
from contract_engine.consumer.mock_service import MockService
from contract_engine.core.codec import to_dict
from contract_engine.core.contract_store import load_document, write_document
from contract_engine.core.exceptions import ContractEngineError
from contract_engine.core.metrics import metrics
from contract_engine.core.schemas import ContractDocument


@pytest.fixture(autouse=True)
def keep_pytest_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda stream=None: None)


@pytest.fixture
def states_module(tmp_path, monkeypatch):
    """Importable module exposing provider state handlers for --states."""
    (tmp_path / "cli_states.py").write_text(
        "STATES = {\"products exist\": lambda params: None}\n"
        "def build():\n"
        "    return dict(STATES)\n",
        encoding="utf-8",
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    return "cli_states"


def test_record_from_interaction_files(tmp_path, products_interaction, product_interaction, products_document, capsys):
    encoded = to_dict(products_document)["interactions"]
    (tmp_path / "one.json").write_text(json.dumps(encoded[0]), encoding="utf-8")
    (tmp_path / "two.json").write_text(json.dumps([encoded[1]]), encoding="utf-8")
    output = tmp_path / "out" / "frontend-product-service.json"

    code = cli.main([
        "record", str(tmp_path / "one.json"), str(tmp_path / "two.json"),
        "--consumer", "frontend", "--provider", "product-service", "--output", str(output),
    ])

    assert code == 0
    assert f"Wrote {output}" in capsys.readouterr().out
    assert load_document(output).interactions == [products_interaction, product_interaction]


def test_record_defaults_to_pact_dir(tmp_path, products_document, pact_dir):
    source = write_document(products_document, tmp_path / "source.json")
    assert cli.main(["record", str(source), "--consumer", "frontend", "--provider", "product-service",
                     "--spec-version", "2.0.0"]) == 0
    written = load_document(pact_dir / "frontend-product-service.json")
    assert written.spec_version.value == "2.0.0"


def test_record_rejects_malformed_input(tmp_path, capsys):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"description": "no request"}), encoding="utf-8")
    assert cli.main(["record", str(bad), "--consumer", "a", "--provider", "b"]) == 1
    assert "error:" in capsys.readouterr().err


def test_verify_against_running_provider(tmp_path, products_interaction, states_module, capsys):
    service = MockService()
    service.arm(products_interaction)
    document_path = tmp_path / "frontend-product-service.json"
    write_document(products_document_for(products_interaction), document_path)

    with MockServer(service, host="127.0.0.1", port=0) as server:
        code = cli.main([
            "verify", str(document_path), "--provider-base-url", server.uri,
            "--states", f"{states_module}:STATES", "--header", "Authorization: Bearer fresh",
        ])

    out = capsys.readouterr().out
    assert code == 0, out
    assert "OVERALL: PASSED" in out
    assert service.requests[0].headers["authorization"] == ["Bearer fresh"]


def test_verify_unreachable_provider_json_output(
    tmp_path, products_interaction, states_module, unused_url, capsys
):
    document_path = write_document(products_document_for(products_interaction), tmp_path / "c.json")
    code = cli.main([
        "verify", str(document_path), "--provider-base-url", unused_url,
        "--states", f"{states_module}:STATES", "--timeout", "1", "--format", "json",
    ])
    report = json.loads(capsys.readouterr().out)
    assert code == 1
    assert report["interactions"][0]["error"] == "TransportUnreachable"


def test_verify_malformed_document(tmp_path, capsys):
    path = tmp_path / "bad.json"
    path.write_text("not json", encoding="utf-8")
    assert cli.main(["verify", str(path), "--provider-base-url", "http://127.0.0.1:1"]) == 1
    assert "MalformedDocument" in capsys.readouterr().out


def test_bad_states_reference(tmp_path, products_document, capsys):
    path = write_document(products_document, tmp_path / "c.json")
    code = cli.main(["verify", str(path), "--provider-base-url", "http://x", "--states", "no_such_module:states"])
    assert code == 1
    assert "no_such_module" in capsys.readouterr().err


def test_bad_header_argument():
    with pytest.raises(SystemExit):
        cli.main(["verify", "c.json", "--provider-base-url", "http://x", "--header", "no-colon"])


def test_publish_without_broker(tmp_path, products_document, capsys):
    path = write_document(products_document, tmp_path / "c.json")
    assert cli.main(["publish", str(path), "--consumer-version", "1"]) == 1
    assert "PACT_BROKER_URL" in capsys.readouterr().err


def products_document_for(interaction):
    return ContractDocument(consumer_name="frontend", provider_name="product-service", interactions=[interaction])


def test_main_publishes_service_info(tmp_path, products_document):
    path = write_document(products_document, tmp_path / "c.json")
    cli.main(["record", str(path), "--consumer", "frontend", "--provider", "product-service"])
    assert metrics.registry.get_sample_value(
        "contract_engine_info_info", {"service": "contract-engine", "version": "0.1.0"}
    ) == 1.0


def test_states_factory_is_called(states_module):
    assert set(cli._load_states(f"{states_module}:build")) == {"products exist"}


def test_states_missing_attribute(states_module):
    with pytest.raises(ContractEngineError, match="no attribute 'MISSING'"):
        cli._load_states(f"{states_module}:MISSING")
