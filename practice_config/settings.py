"""
Engine settings schema and YAML loader (``practice_config.settings``).

The YAML file is grouped into sections (``ledger``, ``actions``,
``validation``) that map onto the flat, frozen ``EngineSettings``
dataclass.  Missing keys keep their defaults; unknown sections or keys
are rejected so that a typo never silently falls back to a default.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class EngineSettings:
    """Immutable tunables for the approval batch execution engine."""

    # ledger
    stale_reservation_seconds: int = 600
    rollback_message: str = "rolled back due to subsequent failure"
    # actions
    default_task_priority: str = "medium"
    default_billing_hours: Decimal = Decimal("0.25")
    default_billing_rate: Decimal = Decimal("800")
    default_calendar_duration_minutes: int = 60
    # validation
    email_subject_max_length: int = 300
    billing_hours_min: Decimal = Decimal("0.25")
    billing_hours_max: Decimal = Decimal("24")
    billing_hours_increment: Decimal = Decimal("0.25")

    @property
    def stale_after(self) -> timedelta:
        return timedelta(seconds=self.stale_reservation_seconds)

    def __post_init__(self) -> None:
        if self.stale_reservation_seconds <= 0:
            raise ValueError("stale_reservation_seconds must be positive")
        if self.billing_hours_increment <= 0:
            raise ValueError("billing_hours_increment must be positive")
        if self.billing_hours_min > self.billing_hours_max:
            raise ValueError("billing_hours_min must not exceed billing_hours_max")


_SECTIONS: dict[str, tuple[str, ...]] = {
    "ledger": ("stale_reservation_seconds", "rollback_message"),
    "actions": (
        "default_task_priority",
        "default_billing_hours",
        "default_billing_rate",
        "default_calendar_duration_minutes",
    ),
    "validation": (
        "email_subject_max_length",
        "billing_hours_min",
        "billing_hours_max",
        "billing_hours_increment",
    ),
}

_FIELD_TYPES: dict[str, Any] = {
    f.name: f.type for f in fields(EngineSettings)
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _coerce(name: str, value: Any) -> Any:
    declared = _FIELD_TYPES[name]
    if declared in ("Decimal", Decimal):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"{name} must be a decimal number, got {value!r}") from None
    if declared in ("int", int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{name} must be an integer, got {value!r}")
        return value
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string, got {value!r}")
    return value


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """Build ``EngineSettings`` from the parsed YAML mapping."""
    overrides: dict[str, Any] = {}
    for section, values in data.items():
        if section not in _SECTIONS:
            raise ValueError(f"Unknown settings section: {section}")
        if not isinstance(values, dict):
            raise ValueError(f"Settings section '{section}' must be a mapping")
        for key, value in values.items():
            if key not in _SECTIONS[section]:
                raise ValueError(f"Unknown setting '{section}.{key}'")
            overrides[key] = _coerce(key, value)
    return replace(EngineSettings(), **overrides)


def load_settings(path: Path) -> EngineSettings:
    """Load and parse a settings file."""
    return parse_settings(load_yaml_file(path))
