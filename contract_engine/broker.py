"""
Pact broker client.

Publishes contract documents, fetches the latest contracts for a provider and
publishes verification results, using the broker's HAL/JSON API.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .config import Settings, get_settings
from .core.codec import decode, to_dict
from .core.exceptions import BrokerError
from .core.schemas import ContractDocument
from .provider.report import VerificationReport

logger = logging.getLogger(__name__)


@dataclass
class PactBrokerConfig:
    """Configuration for Pact broker connection and authentication."""

    broker_url: str
    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    consumer_version: Optional[str] = None
    provider_version: Optional[str] = None
    branch: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PactBrokerConfig":
        settings = settings or get_settings()
        if not settings.PACT_BROKER_URL:
            raise BrokerError("PACT_BROKER_URL is not configured")
        if not settings.PACT_BROKER_TOKEN and not (settings.PACT_BROKER_USERNAME and settings.PACT_BROKER_PASSWORD):
            logger.warning("No Pact broker authentication configured")
        return cls(
            broker_url=settings.PACT_BROKER_URL,
            username=settings.PACT_BROKER_USERNAME,
            password=settings.PACT_BROKER_PASSWORD,
            token=settings.PACT_BROKER_TOKEN,
            consumer_version=settings.PACT_CONSUMER_VERSION,
            provider_version=settings.PACT_PROVIDER_VERSION,
            branch=settings.PACT_BRANCH,
        )


def _seg(value: str) -> str:
    return quote(value, safe="")


class BrokerClient:
    def __init__(
        self,
        config: Optional[PactBrokerConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.config = config or PactBrokerConfig.from_settings()
        headers = {"Accept": "application/hal+json, application/json"}
        auth = None
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        elif self.config.username and self.config.password:
            auth = (self.config.username, self.config.password)
        self.client = httpx.Client(
            base_url=self.config.broker_url.rstrip("/"),
            headers=headers,
            auth=auth,
            timeout=timeout,
            transport=transport,
        )

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise BrokerError(f"Pact broker request {method} {url} failed: {e}") from e
        if response.status_code >= 400:
            raise BrokerError(
                f"Pact broker answered {response.status_code} for {method} {url}: {response.text}",
                status_code=response.status_code,
            )
        return response

    def publish_contract(self, document: ContractDocument, consumer_version: Optional[str] = None) -> Dict[str, Any]:
        """PUT the document under its consumer version (and tag it with the branch when configured)."""
        version = consumer_version or self.config.consumer_version
        if not version:
            raise BrokerError("A consumer version is required to publish a contract")
        url = (
            f"/pacts/provider/{_seg(document.provider_name)}"
            f"/consumer/{_seg(document.consumer_name)}/version/{_seg(version)}"
        )
        response = self._request("PUT", url, json=to_dict(document))
        if self.config.branch:
            self._request(
                "PUT",
                f"/pacticipants/{_seg(document.consumer_name)}/versions/{_seg(version)}/tags/{_seg(self.config.branch)}",
                json={},
            )
        logger.info(
            f"Published contract {document.consumer_name} -> {document.provider_name}",
            extra={"consumer_version": version},
        )
        return response.json() if response.content else {}

    def fetch_latest_contracts(self, provider: str) -> List[ContractDocument]:
        """Latest contract of every consumer of ``provider``."""
        index = self._request("GET", f"/pacts/provider/{_seg(provider)}/latest").json()
        links = index.get("_links", {}).get("pb:pacts") or index.get("_links", {}).get("pacts") or []
        documents = []
        for link in links:
            href = link.get("href")
            if not href:
                continue
            response = self._request("GET", href)
            documents.append(decode(response.content, source=href))
        logger.info(f"Fetched {len(documents)} contract(s) for {provider}")
        return documents

    def publish_verification_results(
        self,
        report: VerificationReport,
        consumer_version: str,
        provider_version: Optional[str] = None,
    ) -> Dict[str, Any]:
        version = provider_version or report.provider_version or self.config.provider_version
        if not version:
            raise BrokerError("A provider version is required to publish verification results")
        payload = {
            "providerApplicationVersion": version,
            "success": report.success,
            "verificationDate": report.verification_timestamp,
            "testResults": [
                {
                    "description": r.interaction.description,
                    "success": r.passed,
                    "mismatches": [m.model_dump(mode="json") for m in r.mismatches],
                }
                for r in report.results
            ],
        }
        url = (
            f"/pacts/provider/{_seg(report.provider_name)}/consumer/{_seg(report.consumer_name)}"
            f"/pact-version/{_seg(consumer_version)}/verification-results"
        )
        response = self._request("POST", url, json=payload)
        logger.info(
            f"Published verification results for {report.consumer_name} -> {report.provider_name}",
            extra={"success": report.success, "provider_version": version},
        )
        return response.json() if response.content else {}

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "BrokerClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
