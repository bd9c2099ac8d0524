"""
Prometheus metrics for contract recording and verification.

Tracks:
- Interactions verified, by outcome and error kind
- Verification duration per provider
- Requests seen by mock services, by result
- Contract documents written
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, Info


class ContractMetrics:
    """Metrics collector with its own registry so embedding applications stay unaffected."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.interactions_verified = Counter(
            "contract_interactions_verified_total",
            "Interactions replayed against a provider",
            labelnames=["provider", "outcome", "error"],
            registry=self.registry
        )

        self.verification_duration = Histogram(
            "contract_verification_duration_seconds",
            "Time spent verifying a single interaction",
            labelnames=["provider"],
            buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry
        )

        self.mock_requests = Counter(
            "contract_mock_requests_total",
            "Requests received by consumer-side mock services",
            labelnames=["result"],
            registry=self.registry
        )

        self.documents_written = Counter(
            "contract_documents_written_total",
            "Contract documents written to disk",
            labelnames=["mode"],
            registry=self.registry
        )

        self.service_info = Info(
            "contract_engine_info",
            "Contract engine information",
            registry=self.registry
        )

    def record_verification(
        self,
        provider: str,
        outcome: str,
        error: Optional[str] = None,
        duration: Optional[float] = None
    ):
        """Record the result of verifying one interaction."""
        self.interactions_verified.labels(
            provider=provider,
            outcome=outcome,
            error=error or "none"
        ).inc()

        if duration is not None:
            self.verification_duration.labels(provider=provider).observe(duration)

    def record_mock_request(self, matched: bool):
        self.mock_requests.labels(result="matched" if matched else "mismatched").inc()

    def record_document_written(self, mode: str):
        self.documents_written.labels(mode=mode).inc()

    def set_service_info(self, **info_labels: str):
        """Set service information labels."""
        self.service_info.info(info_labels)


# Global metrics instance
metrics = ContractMetrics()
