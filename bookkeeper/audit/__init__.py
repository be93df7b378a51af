"""Audit logging package."""

from bookkeeper.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
