"""
Form Validation

Turns raw form input into a DebtDraft, or rejects it with field-level issues.

DESIGN DECISION: Validation collects every problem before failing, so the
user can fix the whole form in one pass. It NEVER touches the store; a
rejected form never produces a write.

Photos are validated separately from the text fields. Each file stands on
its own: an oversized or non-image file is reported, the others are kept.
"""

import base64
import re
from datetime import date
from io import BytesIO
from typing import Iterable, Optional

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ConfigDict, Field

from kasbon.config import AppSettings, get_settings
from kasbon.models.debt import (
    DebtDraft,
    DebtForm,
    DebtStatus,
    PhotoUpload,
    ValidationIssue,
)


# Largest integer the stored records survive a JavaScript client with
MAX_AMOUNT = 2**53 - 1

GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


class ValidationError(Exception):
    """The form has one or more invalid fields."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        fields = ", ".join(issue.field for issue in issues)
        super().__init__(f"Invalid form fields: {fields}")

    def messages(self) -> dict[str, str]:
        """First message per field, for showing next to the inputs."""
        result: dict[str, str] = {}
        for issue in self.issues:
            result.setdefault(issue.field, issue.message)
        return result


class PhotoRejectedError(Exception):
    """Base exception for a photo that cannot be attached."""

    def __init__(self, filename: str, size_bytes: int, message: str):
        self.filename = filename
        self.size_bytes = size_bytes
        super().__init__(message)


class FileTooLargeError(PhotoRejectedError):
    """Photo is larger than the configured cap."""
    pass


class UnsupportedPhotoError(PhotoRejectedError):
    """File is not an image."""
    pass


class PhotoBatch(BaseModel):
    """Outcome of encoding one batch of uploaded photos."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    accepted: list[str] = Field(
        default_factory=list,
        description="Data URIs of accepted photos, in upload order"
    )
    rejected: list[PhotoRejectedError] = Field(
        default_factory=list,
        description="One error per rejected file"
    )

    @property
    def has_rejections(self) -> bool:
        return bool(self.rejected)


def parse_amount(text: str) -> Optional[int]:
    """
    Read an amount typed in any format.

    Every non-digit is dropped, so "50.000", "Rp 50,000" and "50000"
    all read as 50000. Returns None when no digits are left.
    """
    digits = re.sub(r"[^0-9]", "", text or "")
    if not digits:
        return None
    return int(digits)


def to_data_uri(content: bytes, mime_type: str) -> str:
    """Embed raw image bytes as a base64 data URI."""
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def sniff_image_mime(content: bytes) -> Optional[str]:
    """Detect the real image type with Pillow. None if it isn't an image."""
    try:
        with Image.open(BytesIO(content)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError):
        return None
    return Image.MIME.get(fmt) if fmt else None


class DebtFormValidator:
    """
    Validates the debt form and encodes attached photos.

    Pure transformation: no storage access, no shared state.
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
    ):
        """
        Initialize validator.

        Args:
            settings: App settings for the photo cap and date bound.
                      Loaded from the environment if None.
        """
        self._settings = settings or get_settings().app

    def _check_fields(
        self,
        form: DebtForm,
        today: date,
    ) -> tuple[dict, list[ValidationIssue]]:
        """Check each field, returning the clean values and the issues found."""
        issues = []
        values = {}

        name = (form.name or "").strip()
        if not name:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Nama wajib diisi",
            ))
        values["name"] = name

        earliest = self._settings.earliest_entry_date
        if form.debt_date is None:
            issues.append(ValidationIssue(
                field="debt_date",
                issue_type="missing",
                message="Tanggal wajib diisi",
            ))
        elif form.debt_date > today:
            issues.append(ValidationIssue(
                field="debt_date",
                issue_type="out_of_range",
                message="Tanggal tidak boleh di masa depan",
            ))
        elif form.debt_date < earliest:
            issues.append(ValidationIssue(
                field="debt_date",
                issue_type="out_of_range",
                message=f"Tanggal tidak boleh sebelum {earliest.isoformat()}",
            ))
        values["debt_date"] = form.debt_date

        amount = parse_amount(form.amount)
        if not (form.amount or "").strip():
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Nominal wajib diisi",
            ))
        elif amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Nominal harus berupa angka",
            ))
        elif amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Nominal harus lebih dari 0",
            ))
        elif amount > MAX_AMOUNT:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="out_of_range",
                message="Nominal terlalu besar",
            ))
        values["amount"] = amount

        try:
            values["status"] = DebtStatus.parse(form.status)
        except ValueError:
            issues.append(ValidationIssue(
                field="status",
                issue_type="invalid_value",
                message="Status tidak dikenal",
            ))

        values["description"] = (form.description or "").strip()

        return values, issues

    def validate_form(
        self,
        form: DebtForm,
        today: Optional[date] = None,
    ) -> DebtDraft:
        """
        Validate the text fields of the form.

        Raises:
            ValidationError: With every field-level issue found
        """
        values, issues = self._check_fields(form, today or self._settings.today())
        if issues:
            raise ValidationError(issues)
        return DebtDraft(**values)

    def check_photo(self, upload: PhotoUpload) -> str:
        """
        Validate one photo and return its data URI.

        Raises:
            FileTooLargeError: Larger than the configured cap
            UnsupportedPhotoError: Not an image
        """
        limit = self._settings.max_photo_size_bytes
        if upload.size_bytes > limit:
            raise FileTooLargeError(
                upload.filename,
                upload.size_bytes,
                f"Ukuran file {upload.filename} melebihi "
                f"{self._settings.max_photo_size_mb}MB",
            )

        declared = (upload.mime_type or "").split(";")[0].strip().lower()
        if declared in GENERIC_MIME_TYPES:
            mime_type = sniff_image_mime(upload.content)
        elif declared.startswith("image/"):
            mime_type = declared
        else:
            mime_type = None

        if mime_type is None:
            raise UnsupportedPhotoError(
                upload.filename,
                upload.size_bytes,
                f"{upload.filename} bukan file gambar",
            )

        return to_data_uri(upload.content, mime_type)

    def encode_photos(self, uploads: Iterable[PhotoUpload]) -> PhotoBatch:
        """
        Encode a batch of photos, each one independently.

        A rejected file is reported and skipped; it never drops the
        files accepted before or after it.
        """
        batch = PhotoBatch()
        for upload in uploads:
            try:
                data_uri = self.check_photo(upload)
            except PhotoRejectedError as e:
                batch.rejected.append(e)
                continue
            if data_uri not in batch.accepted:
                batch.accepted.append(data_uri)
        return batch

    def validate(
        self,
        form: DebtForm,
        photos: Iterable[PhotoUpload] = (),
        today: Optional[date] = None,
    ) -> tuple[DebtDraft, PhotoBatch]:
        """
        Validate the whole form, photos included.

        Returns:
            (draft with the accepted photos attached, photo batch)

        Raises:
            ValidationError: If any text field is invalid. Photo problems
                             never raise; they are in the returned batch.
        """
        draft = self.validate_form(form, today=today)
        batch = self.encode_photos(photos)
        if batch.accepted:
            draft = draft.model_copy(update={"photos": batch.accepted})
        return draft, batch
