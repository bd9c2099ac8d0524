import hashlib
import json
import logging
import re
import sys
import time
import uuid
from typing import Any, Dict, Optional, TextIO

from .config import get_settings


# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """JSON formatter that redacts credentials carried in replayed requests."""

    def __init__(self):
        super().__init__()
        self.redaction_patterns = [
            # Authorization header values
            (re.compile(r'(?i)\b(Bearer|Basic)\s+([A-Za-z0-9\-._~+/=]+)'), 'token'),
            # token-ish query parameters and key/value pairs
            (re.compile(r'(?i)\b(?:access[_-]?token|api[_-]?key|token|password)\s*[=:]\s*["\']?([^"\s,&}]+)'), 'secret'),
        ]

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": self._redact_sensitive_data(record.getMessage()),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            if isinstance(value, str):
                payload[key] = self._redact_sensitive_data(value)
            elif isinstance(value, dict):
                payload[key] = self._redact_dict(value)
            else:
                payload[key] = value

        if record.exc_info:
            exc_text = self.formatException(record.exc_info)
            payload["exc_info"] = self._redact_sensitive_data(exc_text)

        return json.dumps(payload, ensure_ascii=False, default=str)

    def _redact_sensitive_data(self, text: str) -> str:
        """Replace credentials in free text with a short stable fingerprint."""
        if not isinstance(text, str):
            return text

        redacted_text = text
        for pattern, field_type in self.redaction_patterns:
            for match in pattern.finditer(text):
                secret = match.group(match.lastindex or 0)
                if secret:
                    digest = hashlib.sha256(secret.encode()).hexdigest()[:8]
                    redacted_text = redacted_text.replace(secret, f"[REDACTED_{field_type.upper()}_{digest}]")

        return redacted_text

    def _redact_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively redact header maps and other structured extras."""
        redacted_dict = {}

        for key, value in data.items():
            key_lower = str(key).lower()

            if any(sensitive in key_lower for sensitive in ("authorization", "token", "password", "cookie")):
                redacted_dict[key] = "[REDACTED]"
            elif isinstance(value, str):
                redacted_dict[key] = self._redact_sensitive_data(value)
            elif isinstance(value, dict):
                redacted_dict[key] = self._redact_dict(value)
            elif isinstance(value, list):
                redacted_dict[key] = [
                    self._redact_dict(item) if isinstance(item, dict)
                    else self._redact_sensitive_data(item) if isinstance(item, str)
                    else item
                    for item in value
                ]
            else:
                redacted_dict[key] = value

        return redacted_dict


def setup_logging(stream: Optional[TextIO] = None) -> None:
    settings = get_settings()
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))


def run_id() -> str:
    return uuid.uuid4().hex
