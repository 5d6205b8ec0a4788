"""Operational logging and authentication events."""

from __future__ import annotations

__all__ = [
    "AuthEvent",
    "EventEmitter",
    "configure_system_logger_file",
    "get_system_logger",
]

from sfdc_auth.telemetry.events import AuthEvent, EventEmitter
from sfdc_auth.telemetry.system_logger import configure_system_logger_file, get_system_logger
