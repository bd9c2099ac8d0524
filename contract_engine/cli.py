"""
Command line entry point.

    contract-engine record --consumer web --provider products --output pacts/web-products.json defs/*.json
    contract-engine verify pacts/web-products.json --provider-base-url http://localhost:8000 \\
        --states-url http://localhost:8000/_pact/provider-states --header "Authorization:Bearer abc"
    contract-engine publish pacts/web-products.json --consumer-version 1.4.2

Exit code 0 means every interaction passed (or the command succeeded), 1 means a
failure of any kind.
"""

from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from . import __version__
from .broker import BrokerClient
from .config import get_settings
from .consumer.recorder import Recorder
from .core.codec import from_dict, interaction_from_dict
from .core.contract_store import load_document
from .core.exceptions import ContractEngineError, MalformedDocument
from .core.metrics import metrics
from .logging_setup import setup_logging
from .provider.verifier import OutgoingRequest, verify_file

logger = logging.getLogger(__name__)


def _parse_header(value: str) -> tuple:
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"header must look like 'Name:value', got {value!r}")
    return name.strip(), header_value.strip()


def _load_states(spec: str) -> Mapping[str, Any]:
    """Resolve ``package.module:attribute`` to a state handler mapping."""
    module_name, sep, attribute = spec.partition(":")
    if not sep or not module_name or not attribute:
        raise ContractEngineError(f"--states must look like 'module:attribute', got {spec!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ContractEngineError(f"Cannot import state handlers from {module_name!r}: {e}") from e
    handlers = getattr(module, attribute, None)
    if handlers is None:
        raise ContractEngineError(f"{module_name} has no attribute {attribute!r}")
    if callable(handlers) and not isinstance(handlers, Mapping):
        handlers = handlers()
    if not isinstance(handlers, Mapping):
        raise ContractEngineError(f"{spec} is not a mapping of provider state handlers")
    return handlers


def _read_interactions(path: Path) -> List[Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise MalformedDocument(f"Cannot read interactions: {e}", str(path)) from e
    if isinstance(data, dict) and "interactions" in data:
        return list(from_dict(data, source=str(path)).interactions)
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise MalformedDocument("Expected a contract document, an interaction or a list of interactions", str(path))
    interactions = []
    for index, raw in enumerate(data):
        try:
            interactions.append(interaction_from_dict(raw))
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedDocument(f"Invalid interaction #{index}: {e}", str(path)) from e
    return interactions


def cmd_record(args: argparse.Namespace) -> int:
    recorder = Recorder(
        args.consumer,
        args.provider,
        spec_version=args.spec_version,
        file_write_mode=args.mode,
    )
    for name in args.files:
        for interaction in _read_interactions(Path(name)):
            recorder.record(interaction)
    written = recorder.flush(args.output)
    print(f"Wrote {written}")
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    headers: Dict[str, str] = dict(args.header or [])

    def add_headers(request: OutgoingRequest) -> None:
        for name, value in headers.items():
            request.set_header(name, value)

    state_handlers = _load_states(args.states) if args.states else None
    report = verify_file(
        args.document,
        base_url=args.provider_base_url,
        state_handlers=state_handlers,
        states_url=args.states_url,
        request_hook=add_headers if headers else None,
        timeout=args.timeout,
    )
    if args.format == "json":
        print(report.to_json())
    else:
        print(report.render())
    return report.exit_code


def cmd_publish(args: argparse.Namespace) -> int:
    with BrokerClient() as broker:
        for name in args.documents:
            broker.publish_contract(load_document(name), consumer_version=args.consumer_version)
            print(f"Published {name}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="contract-engine", description="Consumer-driven contract testing")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    record = sub.add_parser("record", help="Write interaction definitions into a contract file")
    record.add_argument("files", nargs="+", help="JSON files holding interactions or contract documents")
    record.add_argument("--consumer", required=True)
    record.add_argument("--provider", required=True)
    record.add_argument("--output", help="Contract file (default: PACT_DIR/<consumer>-<provider>.json)")
    record.add_argument("--spec-version", choices=["2.0.0", "3.0.0"], default=settings.PACT_SPEC_VERSION)
    record.add_argument("--mode", choices=["merge", "overwrite"], default=settings.PACT_FILE_WRITE_MODE)
    record.set_defaults(func=cmd_record)

    verify = sub.add_parser("verify", help="Replay a contract against a running provider")
    verify.add_argument("document", help="Contract file to verify")
    verify.add_argument("--provider-base-url", required=True)
    verify.add_argument("--states-url", default=settings.PROVIDER_STATES_SETUP_URL,
                        help="Provider state setup endpoint (.../_pact/provider-states)")
    verify.add_argument("--states", help="Local state handlers as module:attribute")
    verify.add_argument("--header", action="append", type=_parse_header,
                        help="Header added to every replayed request, e.g. 'Authorization:Bearer x'")
    verify.add_argument("--timeout", type=float, default=settings.VERIFY_TIMEOUT_SECONDS)
    verify.add_argument("--format", choices=["text", "json"], default="text")
    verify.set_defaults(func=cmd_verify)

    publish = sub.add_parser("publish", help="Publish contract files to a Pact broker")
    publish.add_argument("documents", nargs="+")
    publish.add_argument("--consumer-version", default=settings.PACT_CONSUMER_VERSION)
    publish.set_defaults(func=cmd_publish)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(sys.stderr)
    metrics.set_service_info(service=get_settings().SERVICE_NAME, version=__version__)
    try:
        return args.func(args)
    except ContractEngineError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
