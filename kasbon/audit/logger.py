"""
Audit Logger

DESIGN DECISION: Every change to the debt list is logged.
This provides:
1. Traceability of how each balance came about
2. Debugging capability when the backend rejects a write
3. A record of wrong-password attempts

The audit logger:
- Is async to match the storage interface
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to tie a submit to its confirmation
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from kasbon.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from kasbon.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through the stdlib root logger at this level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper()))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit path in the database (if storage is configured)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("kasbon.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity is AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity is AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity is AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_debt_created(
        self,
        entry_id: str,
        name: str,
        amount: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.debt_created(
            entry_id=entry_id,
            name=name,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_debt_merged(
        self,
        entry_id: str,
        name: str,
        previous_amount: int,
        submitted_amount: int,
        new_amount: int,
        new_status: str,
        as_payment: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a submission folded into an existing open debt."""
        await self.log(AuditEventBuilder.debt_merged(
            entry_id=entry_id,
            name=name,
            previous_amount=previous_amount,
            submitted_amount=submitted_amount,
            new_amount=new_amount,
            new_status=new_status,
            as_payment=as_payment,
            correlation_id=correlation_id,
        ))

    async def log_debt_edited(
        self,
        entry_id: str,
        name: str,
        amount: int,
        status: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.debt_edited(
            entry_id=entry_id,
            name=name,
            amount=amount,
            status=status,
            correlation_id=correlation_id,
        ))

    async def log_debt_deleted(
        self,
        entry_id: str,
        name: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.debt_deleted(
            entry_id=entry_id,
            name=name,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_photo_rejected(
        self,
        filename: str,
        reason: str,
        size_bytes: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.photo_rejected(
            filename=filename,
            reason=reason,
            size_bytes=size_bytes,
            correlation_id=correlation_id,
        ))

    async def log_gate_rejected(
        self,
        action_kind: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a wrong password. The entered text is never logged."""
        await self.log(AuditEventBuilder.gate_rejected(
            action_kind=action_kind,
            correlation_id=correlation_id,
        ))

    async def log_action_cancelled(
        self,
        action_kind: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.action_cancelled(
            action_kind=action_kind,
            correlation_id=correlation_id,
        ))

    async def log_store_error(
        self,
        operation: str,
        error_message: str,
        entry_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed store call."""
        await self.log(AuditEventBuilder.store_error(
            operation=operation,
            error_message=error_message,
            entry_id=entry_id,
            correlation_id=correlation_id,
        ))

    async def log_subscription_started(self, store: str) -> None:
        await self.log(AuditEventBuilder.subscription_started(store))

    async def log_subscription_stopped(self, store: str) -> None:
        await self.log(AuditEventBuilder.subscription_stopped(store))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this when a form is submitted. Pass it through the gate so the
    confirmation and the store write are logged under the same id.
    """
    return uuid4()
