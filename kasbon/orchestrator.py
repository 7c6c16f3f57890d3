"""
Main Orchestrator for Kasbon

This module ties together all the components and defines the
end-to-end flows for adding, editing and deleting a debt:

    form → validate → password gate → reconcile → store → change push

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing reaches the store without the password
- Nothing reaches the gate without passing validation
- The live collection is only ever replaced by what the store pushes;
  it is never updated optimistically, so a failed write leaves the page
  showing what is actually stored
- Every step is audited

The collection and its store subscription are shared by every page
session in the process. Each session gets its own DebtBook, and with it
its own password gate, on top of that shared collection.
"""

from typing import Iterable, Optional
from uuid import UUID

import structlog

from kasbon.audit import AuditLogger, create_correlation_id
from kasbon.config import AppSettings, get_settings
from kasbon.gate import ActionGate, WrongSecretError
from kasbon.models.debt import (
    ActionOutcome,
    DebtDraft,
    DebtEntry,
    DebtForm,
    PendingAction,
    PendingActionKind,
    PhotoUpload,
    ReconcileAction,
    ReconcilePlan,
)
from kasbon.reconciliation import (
    merge_photos,
    outstanding_total,
    plan_delete,
    plan_edit,
    plan_submission,
)
from kasbon.services.storage import (
    DebtStoreInterface,
    FirebaseAuditStorage,
    FirebaseClient,
    FirebaseDebtStore,
    InMemoryDebtStore,
    NotFoundError,
    StoreError,
    Unsubscribe,
)
from kasbon.validation import DebtFormValidator, PhotoBatch, ValidationError


logger = structlog.get_logger(__name__)


class DebtCollection:
    """
    The live debt list, kept current by exactly one store subscription.

    Shared by all sessions; it holds no per-user state.
    """

    def __init__(
        self,
        store: DebtStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger or AuditLogger()
        self._entries: list[DebtEntry] = []
        self._loaded = False
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def store(self) -> DebtStoreInterface:
        return self._store

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    @property
    def entries(self) -> list[DebtEntry]:
        """Current collection, newest date first."""
        return list(self._entries)

    @property
    def is_loaded(self) -> bool:
        """True once the store has delivered the collection at least once."""
        return self._loaded

    @property
    def is_open(self) -> bool:
        return self._unsubscribe is not None

    @property
    def outstanding_total(self) -> int:
        """Sum over every debt that is not fully paid."""
        return outstanding_total(self._entries)

    @property
    def store_name(self) -> str:
        return self._store.name

    def get_entry(self, entry_id: str) -> Optional[DebtEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def _on_change(self, entries: list[DebtEntry]) -> None:
        # May run on the store's listener thread; a single assignment swaps the list
        self._entries = list(entries)
        self._loaded = True

    async def open(self) -> None:
        """
        Subscribe to the store. Calling it again is a no-op, so a page
        never ends up with two subscriptions.

        Raises:
            StoreError: If the subscription cannot be started
        """
        if self._unsubscribe is not None:
            return
        try:
            self._unsubscribe = await self._store.subscribe(self._on_change)
        except StoreError as e:
            await self._audit_logger.log_store_error("subscribe", str(e))
            raise
        await self._audit_logger.log_subscription_started(self._store.name)

    async def close(self) -> None:
        """Stop the subscription."""
        if self._unsubscribe is None:
            return
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        unsubscribe()
        await self._audit_logger.log_subscription_stopped(self._store.name)


class DebtBook:
    """
    The debt list as one page session sees it.

    Owns:
    1. The password gate in front of every mutation
    2. The executor that turns a confirmed action into store calls

    Reads go to the shared DebtCollection.

    Flow for a new debt:
    1. stage_add() validates the form and parks the action in the gate
    2. confirm() checks the password and runs the action
    3. The reconciler decides create vs. merge against the live collection
    4. The store write triggers a change push that refreshes the collection
    """

    def __init__(
        self,
        store: Optional[DebtStoreInterface] = None,
        validator: Optional[DebtFormValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        collection: Optional[DebtCollection] = None,
    ):
        if collection is None:
            if store is None:
                raise ValueError("DebtBook needs a store or a collection")
            collection = DebtCollection(store, audit_logger)
        self._collection = collection
        self._settings = settings or get_settings().app
        self._store = collection.store
        self._validator = validator or DebtFormValidator(self._settings)
        self._audit_logger = audit_logger or collection.audit_logger
        self.gate: ActionGate[ActionOutcome] = ActionGate(
            self._settings.action_password,
            executor=self._execute,
        )

    # ------------------------------------------------------------------
    # Shared collection
    # ------------------------------------------------------------------

    @property
    def collection(self) -> DebtCollection:
        return self._collection

    @property
    def entries(self) -> list[DebtEntry]:
        return self._collection.entries

    @property
    def is_loaded(self) -> bool:
        return self._collection.is_loaded

    @property
    def is_open(self) -> bool:
        return self._collection.is_open

    @property
    def outstanding_total(self) -> int:
        return self._collection.outstanding_total

    @property
    def store_name(self) -> str:
        return self._collection.store_name

    def get_entry(self, entry_id: str) -> Optional[DebtEntry]:
        return self._collection.get_entry(entry_id)

    async def open(self) -> None:
        await self._collection.open()

    async def close(self) -> None:
        await self._collection.close()

    # ------------------------------------------------------------------
    # Staging (validate, then park in the gate)
    # ------------------------------------------------------------------

    async def _validate(
        self,
        form: DebtForm,
        photos: Iterable[PhotoUpload],
    ) -> tuple[DebtDraft, PhotoBatch, UUID]:
        correlation_id = create_correlation_id()
        try:
            draft, batch = self._validator.validate(form, photos)
        except ValidationError as e:
            await self._audit_logger.log_validation_failed(
                issues=[issue.model_dump() for issue in e.issues],
                correlation_id=correlation_id,
            )
            raise

        for rejected in batch.rejected:
            await self._audit_logger.log_photo_rejected(
                filename=rejected.filename,
                reason=type(rejected).__name__,
                size_bytes=rejected.size_bytes,
                correlation_id=correlation_id,
            )

        return draft, batch, correlation_id

    async def stage_add(
        self,
        form: DebtForm,
        photos: Iterable[PhotoUpload] = (),
    ) -> PhotoBatch:
        """
        Validate the add form and wait for the password.

        Returns:
            The photo batch, so rejected files can be reported

        Raises:
            ValidationError: If a form field is invalid
            ActionInProgressError: If a confirmed action is still running
        """
        draft, batch, correlation_id = await self._validate(form, photos)
        self.gate.request(PendingAction(
            kind=PendingActionKind.CREATE,
            draft=draft,
            correlation_id=correlation_id,
        ))
        return batch

    async def stage_edit(
        self,
        entry_id: str,
        form: DebtForm,
        photos: Iterable[PhotoUpload] = (),
        keep_photos: Optional[list[str]] = None,
    ) -> PhotoBatch:
        """
        Validate the edit form for a selected debt and wait for the password.

        Args:
            entry_id: The debt being edited
            form: Submitted fields; they replace the stored ones wholesale
            photos: New uploads, appended after the kept photos
            keep_photos: Which existing photos to keep. None keeps them all.

        Raises:
            NotFoundError: If the debt is no longer in the collection
            ValidationError: If a form field is invalid
            ActionInProgressError: If a confirmed action is still running
        """
        entry = self.get_entry(entry_id)
        if entry is None:
            raise NotFoundError(f"Debt not found: {entry_id}")

        draft, batch, correlation_id = await self._validate(form, photos)

        if keep_photos is None:
            kept = entry.photos
        else:
            kept = [photo for photo in entry.photos if photo in keep_photos]
        draft = draft.model_copy(update={"photos": merge_photos(kept, batch.accepted)})

        self.gate.request(PendingAction(
            kind=PendingActionKind.EDIT,
            draft=draft,
            entry_id=entry_id,
            correlation_id=correlation_id,
        ))
        return batch

    def stage_delete(self, entry_id: str) -> PendingAction:
        """
        Wait for the password before deleting a debt.

        Raises:
            ActionInProgressError: If a confirmed action is still running
        """
        return self.gate.request(PendingAction(
            kind=PendingActionKind.DELETE,
            entry_id=entry_id,
        ))

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    async def confirm(self, entered_secret: str) -> ActionOutcome:
        """
        Check the password and run the pending action.

        Raises:
            WrongSecretError: The action stays pending for another try
            NoPendingActionError: Nothing is waiting
            StoreError: The write failed; the collection is left as stored
        """
        pending = self.gate.pending
        try:
            return await self.gate.confirm(entered_secret)
        except WrongSecretError:
            if pending is not None:
                await self._audit_logger.log_gate_rejected(
                    action_kind=pending.kind.value,
                    correlation_id=pending.correlation_id,
                )
            raise

    async def cancel(self) -> Optional[PendingAction]:
        """Drop the pending action without running it."""
        action = self.gate.cancel()
        if action is not None:
            await self._audit_logger.log_action_cancelled(
                action_kind=action.kind.value,
                correlation_id=action.correlation_id,
            )
        return action

    def plan(self, action: PendingAction) -> ReconcilePlan:
        """Reconcile an action against the current collection."""
        if action.kind is PendingActionKind.CREATE:
            return plan_submission(action.draft, self._collection.entries)
        if action.kind is PendingActionKind.EDIT:
            return plan_edit(action.entry_id, action.draft)
        return plan_delete(action.entry_id)

    async def _execute(self, action: PendingAction) -> ActionOutcome:
        """Gate executor: reconcile, write, audit."""
        plan = self.plan(action)
        try:
            return await self._apply(plan, action)
        except StoreError as e:
            await self._audit_logger.log_store_error(
                operation=plan.action.value,
                error_message=str(e),
                entry_id=plan.entry_id,
                correlation_id=action.correlation_id,
            )
            raise

    async def _apply(self, plan: ReconcilePlan, action: PendingAction) -> ActionOutcome:
        correlation_id = action.correlation_id

        if plan.action is ReconcileAction.CREATE:
            draft = plan.draft
            entry_id = await self._store.create(draft)
            await self._audit_logger.log_debt_created(
                entry_id=entry_id,
                name=draft.name,
                amount=draft.amount,
                correlation_id=correlation_id,
            )
            return ActionOutcome(
                action=plan.action,
                entry_id=entry_id,
                name=draft.name,
                amount=draft.amount,
                status=draft.status,
                message="Data hutang baru berhasil ditambahkan.",
            )

        if plan.action is ReconcileAction.MERGE:
            previous = self.get_entry(plan.entry_id)
            result = plan.result
            await self._store.patch(plan.entry_id, plan.to_patch())
            await self._audit_logger.log_debt_merged(
                entry_id=plan.entry_id,
                name=result.name,
                previous_amount=previous.amount if previous else 0,
                submitted_amount=action.draft.amount,
                new_amount=result.amount,
                new_status=result.status.value,
                as_payment=not action.draft.is_open,
                correlation_id=correlation_id,
            )
            return ActionOutcome(
                action=plan.action,
                entry_id=plan.entry_id,
                name=result.name,
                amount=result.amount,
                status=result.status,
                message=f"Jumlah hutang untuk {result.name} berhasil diperbarui.",
            )

        if plan.action is ReconcileAction.EDIT:
            result = plan.result
            await self._store.patch(plan.entry_id, plan.to_patch())
            await self._audit_logger.log_debt_edited(
                entry_id=plan.entry_id,
                name=result.name,
                amount=result.amount,
                status=result.status.value,
                correlation_id=correlation_id,
            )
            return ActionOutcome(
                action=plan.action,
                entry_id=plan.entry_id,
                name=result.name,
                amount=result.amount,
                status=result.status,
                message="Data hutang berhasil diperbarui.",
            )

        existing = self.get_entry(plan.entry_id)
        await self._store.delete(plan.entry_id)
        await self._audit_logger.log_debt_deleted(
            entry_id=plan.entry_id,
            name=existing.name if existing else None,
            correlation_id=correlation_id,
        )
        return ActionOutcome(
            action=plan.action,
            entry_id=plan.entry_id,
            name=existing.name if existing else None,
            message="Data hutang telah dihapus.",
        )


def create_app_components(
    use_storage: bool = True,
    settings: Optional[AppSettings] = None,
) -> tuple[DebtCollection, Optional[FirebaseClient]]:
    """
    Factory function to create the shared application components.

    Per-session DebtBooks are built on top of the returned collection.

    Args:
        use_storage: Whether to use the Firebase Realtime Database.
                    Set to False (or leave Firebase unconfigured) to run
                    on the in-memory store.
        settings: App settings; loaded from the environment if None.

    Returns:
        (collection, firebase_client)
    """
    settings = settings or get_settings().app
    tz = settings.tzinfo
    firebase_client = None
    store: DebtStoreInterface
    audit_logger: AuditLogger

    if use_storage:
        try:
            firebase_client = FirebaseClient()
            firebase_client.connect()
            store = FirebaseDebtStore(firebase_client, tz=tz)
            audit_logger = AuditLogger(FirebaseAuditStorage(firebase_client))
        except Exception as e:
            # Firebase not configured - continue without it
            logger.warning("storage_not_configured", error=str(e))
            firebase_client = None
            store = InMemoryDebtStore(tz=tz)
            audit_logger = AuditLogger()  # Local-only logging
    else:
        store = InMemoryDebtStore(tz=tz)
        audit_logger = AuditLogger()  # Local-only logging

    collection = DebtCollection(store=store, audit_logger=audit_logger)

    return collection, firebase_client
