"""
Audit Models for Kasbon

Every mutation, rejection and store failure is logged for audit purposes.
This provides:
1. Traceability of who-owes-what changes
2. Debugging information when a write fails
3. A way to reconstruct how a merged balance came about

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
Photo payloads and the action password are never written to an event.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Mutations
    DEBT_CREATED = "debt_created"
    DEBT_MERGED = "debt_merged"
    DEBT_EDITED = "debt_edited"
    DEBT_DELETED = "debt_deleted"

    # Rejections before the store
    VALIDATION_FAILED = "validation_failed"
    PHOTO_REJECTED = "photo_rejected"
    GATE_REJECTED = "gate_rejected"
    ACTION_CANCELLED = "action_cancelled"

    # Store
    STORE_ERROR = "store_error"
    SUBSCRIPTION_STARTED = "subscription_started"
    SUBSCRIPTION_STOPPED = "subscription_stopped"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Which debt this is about, if any
    entry_id: Optional[str] = Field(
        default=None,
        description="Store key of the debt this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a submit and its confirm)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entry_id": self.entry_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_record(self) -> dict:
        """
        Convert to a record for the database.

        Same as the log dict but without None values, which the
        Realtime Database would silently drop anyway.
        """
        return {k: v for k, v in self.to_log_dict().items() if v is not None}


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.debt_created(entry_id, "Budi", 50000)
        event = AuditEventBuilder.gate_rejected("create", correlation_id)
    """

    @staticmethod
    def debt_created(
        entry_id: str,
        name: str,
        amount: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_CREATED,
            entry_id=entry_id,
            correlation_id=correlation_id,
            description=f"Debt created: {name} - Rp{amount:,}",
            details={
                "name": name,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def debt_merged(
        entry_id: str,
        name: str,
        previous_amount: int,
        submitted_amount: int,
        new_amount: int,
        new_status: str,
        as_payment: bool,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        kind = "payment" if as_payment else "additional debt"
        return AuditEvent(
            event_type=AuditEventType.DEBT_MERGED,
            entry_id=entry_id,
            correlation_id=correlation_id,
            description=f"Debt merged ({kind}): {name} Rp{previous_amount:,} -> Rp{new_amount:,}",
            details={
                "name": name,
                "previous_amount": previous_amount,
                "submitted_amount": submitted_amount,
                "new_amount": new_amount,
                "new_status": new_status,
                "as_payment": as_payment,
            },
            is_user_action=True,
        )

    @staticmethod
    def debt_edited(
        entry_id: str,
        name: str,
        amount: int,
        status: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_EDITED,
            entry_id=entry_id,
            correlation_id=correlation_id,
            description=f"Debt edited: {name}",
            details={
                "name": name,
                "amount": amount,
                "status": status,
            },
            is_user_action=True,
        )

    @staticmethod
    def debt_deleted(
        entry_id: str,
        name: Optional[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_DELETED,
            entry_id=entry_id,
            correlation_id=correlation_id,
            description=f"Debt deleted: {name or entry_id}",
            details={"name": name} if name else {},
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        issues: list[dict],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Form validation failed with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def photo_rejected(
        filename: str,
        reason: str,
        size_bytes: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PHOTO_REJECTED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Photo rejected: {filename}",
            details={
                "filename": filename,
                "reason": reason,
                "size_bytes": size_bytes,
            },
            is_user_action=True,
        )

    @staticmethod
    def gate_rejected(
        action_kind: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GATE_REJECTED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Wrong password for pending {action_kind}",
            details={"action": action_kind},
            is_user_action=True,
        )

    @staticmethod
    def action_cancelled(
        action_kind: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTION_CANCELLED,
            correlation_id=correlation_id,
            description=f"Pending {action_kind} cancelled",
            details={"action": action_kind},
            is_user_action=True,
        )

    @staticmethod
    def store_error(
        operation: str,
        error_message: str,
        entry_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_ERROR,
            severity=AuditSeverity.ERROR,
            entry_id=entry_id,
            correlation_id=correlation_id,
            description=f"Store {operation} failed",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def subscription_started(store: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_STARTED,
            severity=AuditSeverity.DEBUG,
            description=f"Subscribed to {store}",
            details={"store": store},
        )

    @staticmethod
    def subscription_stopped(store: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_STOPPED,
            severity=AuditSeverity.DEBUG,
            description=f"Unsubscribed from {store}",
            details={"store": store},
        )
