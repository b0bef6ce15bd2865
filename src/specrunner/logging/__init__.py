"""Structured request logging utilities."""

from .audit import AuditEvent, JsonlAuditLogger, sanitize_query, utc_timestamp

__all__ = ["AuditEvent", "JsonlAuditLogger", "sanitize_query", "utc_timestamp"]
