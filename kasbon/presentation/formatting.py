"""
Display helpers for amounts, dates and statuses.

Everything is formatted the Indonesian way: "Rp 1.250.000" and
"19 Oktober 2026".
"""

import base64
from datetime import date

from kasbon.models.debt import DebtStatus


MONTHS_ID = [
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
]

# (text color, background color) per status
STATUS_COLORS = {
    DebtStatus.PAID: ("#16a34a", "#dcfce7"),
    DebtStatus.PARTIALLY_PAID: ("#ca8a04", "#fef9c3"),
    DebtStatus.UNPAID: ("#dc2626", "#fee2e2"),
}


def format_thousands(amount: int) -> str:
    """1250000 -> "1.250.000"."""
    return f"{amount:,}".replace(",", ".")


def format_rupiah(amount: int) -> str:
    """1250000 -> "Rp 1.250.000". Negative amounts keep their sign."""
    sign = "-" if amount < 0 else ""
    return f"{sign}Rp {format_thousands(abs(amount))}"


def format_date_long(value: date) -> str:
    """date(2026, 10, 19) -> "19 Oktober 2026"."""
    return f"{value.day} {MONTHS_ID[value.month - 1]} {value.year}"


def decode_data_uri(data_uri: str) -> tuple[str, bytes]:
    """Split a base64 data URI into (mime type, raw bytes)."""
    header, _, payload = data_uri.partition(",")
    if not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("Not a base64 data URI")
    mime_type = header[len("data:"):-len(";base64")]
    return mime_type, base64.b64decode(payload)


def status_badge_html(status: DebtStatus) -> str:
    """Small colored pill for the status column."""
    color, background = STATUS_COLORS[status]
    return (
        f'<span style="color:{color};background:{background};'
        f'padding:2px 10px;border-radius:999px;font-size:0.85em;'
        f'font-weight:600;white-space:nowrap">{status.value}</span>'
    )
