"""
Core Data Models for Kasbon

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Normalize optional fields to one convention (empty text, empty list)
3. Convert to and from the record shape stored in the Realtime Database

DESIGN DECISION: Text that is absent is always "" and photos that are absent
are always []. None never leaks out of these models. The one place where
"no photos" is written as null is the wire record, because that is what the
stored data has always looked like.
"""

import re
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from kasbon.config.settings import DEFAULT_TIMEZONE


DATA_URI_PATTERN = re.compile(r"^data:image/[\w.+-]+;base64,[A-Za-z0-9+/=\s]*$")


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class DebtStatus(str, Enum):
    """
    Repayment status of a debt.

    Values are the labels stored in the database and shown in the UI.
    """
    UNPAID = "Belum Lunas"
    PARTIALLY_PAID = "Lunas Sebagian"
    PAID = "Lunas"

    @classmethod
    def parse(cls, value: Any) -> "DebtStatus":
        """
        Parse a status from a label, a member name or a compact key.

        Accepts "Lunas Sebagian", "PARTIALLY_PAID" and "LunasSebagian"
        alike, case-insensitively.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Unknown debt status: {value!r}")

        wanted = re.sub(r"[\s_-]", "", value).lower()
        if not wanted:
            raise ValueError("Debt status is required")
        for status in cls:
            if wanted in (
                re.sub(r"[\s_-]", "", status.value).lower(),
                status.name.replace("_", "").lower(),
            ):
                return status
        raise ValueError(f"Unknown debt status: {value!r}")

    @property
    def is_open(self) -> bool:
        return self is not DebtStatus.PAID


class ReconcileAction(str, Enum):
    """What a confirmed submission does to the store."""
    CREATE = "create"
    MERGE = "merge"
    EDIT = "edit"
    DELETE = "delete"


class PendingActionKind(str, Enum):
    """Kinds of mutation that must pass the password gate."""
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


# =============================================================================
# CORE DEBT MODELS
# =============================================================================

class _DebtFields(BaseModel):
    """Fields shared by drafts and stored entries."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        description="Debtor name, matched case-insensitively"
    )
    debt_date: date = Field(
        default_factory=date.today,
        description="Date of the debt (or of the latest submission merged into it)"
    )
    status: DebtStatus = Field(
        default=DebtStatus.UNPAID,
        description="Repayment status"
    )
    description: str = Field(
        default="",
        description="Free text, empty when absent"
    )
    photos: list[str] = Field(
        default_factory=list,
        description="Embedded images as base64 data URIs"
    )

    @field_validator('status', mode='before')
    @classmethod
    def parse_status(cls, v: Any) -> DebtStatus:
        return DebtStatus.parse(v)

    @field_validator('description', mode='before')
    @classmethod
    def none_description_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator('photos', mode='before')
    @classmethod
    def none_photos_is_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator('photos')
    @classmethod
    def validate_photos(cls, v: list[str]) -> list[str]:
        """Every photo must be an image data URI."""
        for photo in v:
            if not DATA_URI_PATTERN.match(photo):
                raise ValueError("Photos must be base64 image data URIs")
        return v

    @property
    def name_key(self) -> str:
        """Key used to match names case-insensitively."""
        return self.name.strip().casefold()

    @property
    def is_open(self) -> bool:
        return self.status.is_open

    def to_record(self) -> dict:
        """
        Convert to the record shape stored in the database.

        Keys are the stored (Indonesian) field names.
        """
        return {
            "nama": self.name,
            "tanggal": self.debt_date.isoformat(),
            "nominal": self.amount,
            "status": self.status.value,
            "deskripsi": self.description,
            "fotoDataUris": list(self.photos) or None,
        }


class DebtDraft(_DebtFields):
    """
    A validated submission that has not been stored yet.

    CRITICAL: Drafts always carry a positive amount. Zero or negative
    amounts are rejected before they get this far.
    """

    amount: int = Field(
        ...,
        gt=0,
        description="Amount in Rupiah (no sub-units)"
    )


class DebtEntry(_DebtFields):
    """
    A debt as stored in the database.

    The amount can only be zero on a PAID entry, which happens when a
    payment clears the whole balance.
    """

    id: str = Field(
        ...,
        min_length=1,
        description="Key assigned by the store"
    )
    amount: int = Field(
        ...,
        ge=0,
        description="Amount in Rupiah (no sub-units)"
    )

    @model_validator(mode='after')
    def validate_amount(self) -> 'DebtEntry':
        if self.amount == 0 and self.status is not DebtStatus.PAID:
            raise ValueError("Only a paid debt can have a zero amount")
        return self

    @classmethod
    def from_draft(cls, entry_id: str, draft: DebtDraft) -> 'DebtEntry':
        return cls(id=entry_id, **draft.model_dump())

    @classmethod
    def from_record(
        cls,
        entry_id: str,
        record: dict,
        tz: Optional[tzinfo] = None,
    ) -> 'DebtEntry':
        """
        Build an entry from a stored record.

        Older revisions of the app stored a single "fotoDataUri" string and a
        full ISO timestamp in "tanggal"; both are normalized here. Timestamps
        were written from local midnight, so they are read back in tz
        (default Asia/Jakarta) before taking the date.
        """
        photos = list(record.get("fotoDataUris") or [])
        legacy_photo = record.get("fotoDataUri")
        if legacy_photo and legacy_photo not in photos:
            photos.insert(0, legacy_photo)

        return cls(
            id=entry_id,
            name=record.get("nama") or "",
            debt_date=_parse_record_date(record.get("tanggal"), tz or ZoneInfo(DEFAULT_TIMEZONE)),
            amount=record.get("nominal"),
            status=record.get("status"),
            description=record.get("deskripsi"),
            photos=photos,
        )


def _parse_record_date(value: Any, tz: tzinfo) -> date:
    """Accept "YYYY-MM-DD" or a full ISO-8601 timestamp, read in tz."""
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        return value
    elif not isinstance(value, str) or not value:
        raise ValueError(f"Invalid record date: {value!r}")
    elif len(value) == 10:
        return date.fromisoformat(value)
    else:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(tz).date()


# =============================================================================
# FORM INPUT MODELS
# =============================================================================

class DebtForm(BaseModel):
    """
    Raw values typed into the form.

    Nothing here is trusted. The validator turns it into a DebtDraft.
    """

    name: str = ""
    debt_date: Optional[date] = None
    amount: str = ""
    status: Any = DebtStatus.UNPAID
    description: Optional[str] = None

    @field_validator('amount', mode='before')
    @classmethod
    def amount_as_text(cls, v: Any) -> str:
        """Number inputs hand over ints; the validator works on text."""
        return "" if v is None else str(v)


class PhotoUpload(BaseModel):
    """A file picked in the photo field, before validation."""

    filename: str
    mime_type: Optional[str] = None
    content: bytes = Field(repr=False)

    @property
    def size_bytes(self) -> int:
        return len(self.content)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem with one form field."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'out_of_range')"
    )
    message: str = Field(
        ...,
        description="Message shown to the user"
    )


# =============================================================================
# RECONCILIATION MODELS
# =============================================================================

class ReconcilePlan(BaseModel):
    """
    What the store should do for one confirmed action.

    CREATE carries the draft to insert. MERGE and EDIT carry the full
    resulting entry for an existing id. DELETE carries only the id.
    """

    action: ReconcileAction
    entry_id: Optional[str] = None
    draft: Optional[DebtDraft] = None
    result: Optional[DebtEntry] = None

    @model_validator(mode='after')
    def validate_shape(self) -> 'ReconcilePlan':
        if self.action is ReconcileAction.CREATE:
            if self.draft is None:
                raise ValueError("A create plan needs a draft")
        elif self.entry_id is None:
            raise ValueError(f"A {self.action.value} plan needs an entry id")
        if self.action in (ReconcileAction.MERGE, ReconcileAction.EDIT) and self.result is None:
            raise ValueError(f"A {self.action.value} plan needs a resulting entry")
        return self

    def to_patch(self) -> dict:
        """Fields to write for a MERGE or EDIT plan, in stored record shape."""
        if self.result is None:
            raise ValueError(f"A {self.action.value} plan has no fields to write")
        return self.result.to_record()


class PendingAction(BaseModel):
    """A mutation waiting for the password."""

    kind: PendingActionKind
    draft: Optional[DebtDraft] = None
    entry_id: Optional[str] = None
    correlation_id: UUID = Field(
        default_factory=uuid4,
        description="Ties the submit, the confirmation and the write together in the audit log"
    )

    @model_validator(mode='after')
    def validate_shape(self) -> 'PendingAction':
        if self.kind in (PendingActionKind.CREATE, PendingActionKind.EDIT) and self.draft is None:
            raise ValueError(f"A {self.kind.value} action needs a draft")
        if self.kind in (PendingActionKind.EDIT, PendingActionKind.DELETE) and not self.entry_id:
            raise ValueError(f"A {self.kind.value} action needs an entry id")
        return self


class ActionOutcome(BaseModel):
    """Result of a confirmed action, for the user-facing notice."""

    action: ReconcileAction
    entry_id: str
    name: Optional[str] = None
    amount: Optional[int] = None
    status: Optional[DebtStatus] = None
    message: str
