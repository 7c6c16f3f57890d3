"""Debt reconciliation package."""

from kasbon.reconciliation.reconciler import (
    apply_amount,
    find_open_entry,
    merge_descriptions,
    merge_into,
    merge_photos,
    outstanding_total,
    plan_delete,
    plan_edit,
    plan_submission,
    sort_entries,
)

__all__ = [
    "apply_amount",
    "find_open_entry",
    "merge_descriptions",
    "merge_into",
    "merge_photos",
    "outstanding_total",
    "plan_delete",
    "plan_edit",
    "plan_submission",
    "sort_entries",
]
