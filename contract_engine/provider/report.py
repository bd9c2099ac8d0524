"""
Verification reports.

A report lists every interaction's outcome with all of its mismatches; nothing
is truncated, the first failure is rarely the only one worth fixing.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..core.errors import ErrorDetail
from ..core.schemas import VerificationResult


def _format_value(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


@dataclass
class VerificationReport:
    """Outcome of verifying one contract document against a provider."""

    consumer_name: str
    provider_name: str
    results: List[VerificationResult] = field(default_factory=list)
    source: Optional[str] = None
    provider_version: Optional[str] = None
    errors: List[ErrorDetail] = field(default_factory=list)
    verification_timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def failed(self) -> int:
        return self.total - self.passed

    @property
    def duration_ms(self) -> float:
        return sum(r.duration_ms for r in self.results)

    @property
    def success(self) -> bool:
        return not self.errors and self.failed == 0

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    @classmethod
    def aborted(cls, error: ErrorDetail, consumer_name: str = "", provider_name: str = "") -> "VerificationReport":
        """Report for a run that could not start or was cut short by a run-level error."""
        return cls(consumer_name=consumer_name, provider_name=provider_name, errors=[error], source=error.source)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consumer": self.consumer_name,
            "provider": self.provider_name,
            "source": self.source,
            "provider_version": self.provider_version,
            "verification_timestamp": self.verification_timestamp,
            "success": self.success,
            "summary": {
                "total": self.total,
                "passed": self.passed,
                "failed": self.failed,
                "duration_ms": round(self.duration_ms, 3),
            },
            "errors": [e.to_dict() for e in self.errors],
            "interactions": [
                {
                    "description": r.interaction.description,
                    "provider_states": [s.model_dump() for s in r.interaction.provider_states],
                    "outcome": r.outcome.value,
                    "error": r.error.value if r.error else None,
                    "duration_ms": round(r.duration_ms, 3),
                    "mismatches": [m.model_dump(mode="json") for m in r.mismatches],
                }
                for r in self.results
            ],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False, default=str)

    def render(self) -> str:
        """Human-readable listing of every interaction and every mismatch."""
        lines = []
        lines.append("=" * 80)
        lines.append("CONTRACT VERIFICATION RESULTS")
        lines.append("=" * 80)
        lines.append(f"Consumer: {self.consumer_name}")
        lines.append(f"Provider: {self.provider_name}")
        if self.source:
            lines.append(f"Contract: {self.source}")
        lines.append("")

        for error in self.errors:
            lines.append(f"ERROR [{error.kind.value}] {error.message}")
        if self.errors:
            lines.append("")

        for result in self.results:
            marker = "PASS" if result.passed else "FAIL"
            lines.append(f"[{marker}] {result.interaction.description}")
            for state in result.interaction.provider_states:
                params = f" {_format_value(state.params)}" if state.params else ""
                lines.append(f"       given {state.name}{params}")
            if result.error is not None and not result.passed:
                lines.append(f"       error: {result.error.value}")
            for mismatch in result.mismatches:
                lines.append(f"       - {mismatch.path}: {mismatch.reason}")
                lines.append(f"           expected: {_format_value(mismatch.expected)}")
                lines.append(f"           actual:   {_format_value(mismatch.actual)}")

        lines.append("")
        lines.append("-" * 40)
        lines.append(
            f"{self.total} interaction(s), {self.passed} passed, {self.failed} failed "
            f"({self.duration_ms:.1f}ms)"
        )
        lines.append("OVERALL: " + ("PASSED" if self.success else "FAILED"))
        return "\n".join(lines)
