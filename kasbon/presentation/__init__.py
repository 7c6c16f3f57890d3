"""Presentation helpers package."""

from kasbon.presentation.formatting import (
    decode_data_uri,
    format_date_long,
    format_rupiah,
    format_thousands,
    status_badge_html,
)

__all__ = [
    "decode_data_uri",
    "format_date_long",
    "format_rupiah",
    "format_thousands",
    "status_badge_html",
]
