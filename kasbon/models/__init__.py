"""
Data Models Package

This package contains all Pydantic models used in Kasbon.
All data flowing through the system must conform to these schemas.
"""

from kasbon.models.debt import (
    ActionOutcome,
    DebtDraft,
    DebtEntry,
    DebtForm,
    DebtStatus,
    PendingAction,
    PendingActionKind,
    PhotoUpload,
    ReconcileAction,
    ReconcilePlan,
    ValidationIssue,
)
from kasbon.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Debt models
    "ActionOutcome",
    "DebtDraft",
    "DebtEntry",
    "DebtForm",
    "DebtStatus",
    "PendingAction",
    "PendingActionKind",
    "PhotoUpload",
    "ReconcileAction",
    "ReconcilePlan",
    "ValidationIssue",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
