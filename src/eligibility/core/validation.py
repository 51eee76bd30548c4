"""Size limits applied to input records before evaluation."""

from __future__ import annotations

import re
from typing import Any, Mapping

import structlog

from ..errors import InputValidationError

_SUSPICIOUS_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE | re.DOTALL)
    for pattern in (
        r"\b(SELECT|INSERT|UPDATE|DELETE|DROP|UNION)\b",
        r"<script[^>]*>.*?</script>",
        r"javascript:",
        r"vbscript:",
        r"on\w+\s*=",
    )
)


class InputValidator:
    """Rejects records with overlong field names or string values.

    Nested mappings and lists are walked; field names are reported as dotted
    paths. Strings that look like injected SQL or script are logged but
    still evaluated.
    """

    def __init__(self, *, enabled: bool = True, max_field_length: int = 255, max_value_length: int = 1000) -> None:
        self.enabled = enabled
        self.max_field_length = max_field_length
        self.max_value_length = max_value_length
        self._logger = structlog.get_logger(__name__)

    def validate(self, record: Mapping[str, Any]) -> None:
        if self.enabled:
            self._check_mapping(record, "")

    def _check_mapping(self, mapping: Mapping[Any, Any], prefix: str) -> None:
        for key, value in mapping.items():
            name = str(key)
            path = f"{prefix}{name}"
            if len(name) > self.max_field_length:
                raise InputValidationError(
                    f"Field name '{name[:50]}' exceeds maximum length of {self.max_field_length}",
                    field=path,
                )
            self._check_value(value, path)

    def _check_value(self, value: Any, path: str) -> None:
        if isinstance(value, str):
            if len(value) > self.max_value_length:
                raise InputValidationError(
                    f"Value for field '{path}' exceeds maximum length of {self.max_value_length}",
                    field=path,
                )
            if any(pattern.search(value) for pattern in _SUSPICIOUS_PATTERNS):
                self._logger.warning("input.suspicious_content", field=path, preview=value[:50])
        elif isinstance(value, Mapping):
            self._check_mapping(value, f"{path}.")
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                self._check_value(item, f"{path}.{index}")
