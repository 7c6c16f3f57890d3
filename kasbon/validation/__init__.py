"""Form validation package."""

from kasbon.validation.validator import (
    DebtFormValidator,
    FileTooLargeError,
    PhotoBatch,
    PhotoRejectedError,
    UnsupportedPhotoError,
    ValidationError,
    parse_amount,
)

__all__ = [
    "DebtFormValidator",
    "FileTooLargeError",
    "PhotoBatch",
    "PhotoRejectedError",
    "UnsupportedPhotoError",
    "ValidationError",
    "parse_amount",
]
