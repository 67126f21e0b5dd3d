"""Severity definitions for engine findings."""

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    """Enumerate the supported severity levels for findings."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def exit_priority(self) -> int:
        """Return an integer ranking to drive exit code decisions."""

        ordering = {
            Severity.ERROR: 2,
            Severity.WARNING: 1,
            Severity.INFO: 0,
        }
        return ordering[self]

    @classmethod
    def parse(cls, value: "str | Severity") -> "Severity":
        """Accept a severity instance or its case-insensitive name."""

        if isinstance(value, Severity):
            return value
        text = str(value).strip().lower()
        if text == "warn":
            text = "warning"
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"Unknown severity: {value!r}") from None


SEVERITY_ORDER = (Severity.ERROR, Severity.WARNING, Severity.INFO)
