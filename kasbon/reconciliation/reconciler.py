"""
Debt Reconciliation

Decides what a confirmed submission does to the collection:

- A name with no open debt gets a new entry.
- A name that already has an open debt is MERGED into it. A submission
  marked PAID is read as a payment against the balance; anything else is
  read as more debt on top of it.
- An explicit edit of a selected entry replaces its fields wholesale and
  never goes through the merge math.

INVARIANT: at most one open (not PAID) entry per case-insensitive name.
This module is the only thing maintaining it; the store has no uniqueness
constraint, so two sessions submitting the same name at the same time can
still both create an entry (last write wins).

Everything here is a pure function of (draft, collection). Nothing touches
the store.
"""

from typing import Iterable, Optional

from kasbon.models.debt import (
    DebtDraft,
    DebtEntry,
    DebtStatus,
    ReconcileAction,
    ReconcilePlan,
)


DESCRIPTION_SEPARATOR = "; "


def find_open_entry(
    entries: Iterable[DebtEntry],
    name: str,
) -> Optional[DebtEntry]:
    """First entry for this name (case-insensitive) that is not PAID."""
    key = name.strip().casefold()
    for entry in entries:
        if entry.is_open and entry.name_key == key:
            return entry
    return None


def merge_descriptions(existing: str, new: str) -> str:
    """Join two descriptions with "; ", skipping whichever is empty."""
    existing = (existing or "").strip()
    new = (new or "").strip()
    if existing and new:
        return f"{existing}{DESCRIPTION_SEPARATOR}{new}"
    return existing or new


def merge_photos(existing: list[str], new: list[str]) -> list[str]:
    """Existing photos first, then new ones, exact duplicates dropped."""
    merged = []
    seen = set()
    for photo in [*existing, *new]:
        if photo in seen:
            continue
        seen.add(photo)
        merged.append(photo)
    return merged


def apply_amount(
    current_amount: int,
    submitted_amount: int,
    submitted_status: DebtStatus,
) -> tuple[int, DebtStatus]:
    """
    Compute the balance after one submission against an open debt.

    PAID submissions are payments: the balance goes down, never below zero,
    and the debt is PAID only when nothing is left. A payment that leaves a
    balance puts the debt back to UNPAID (not PARTIALLY_PAID); this is the
    observed behavior and is kept until someone decides otherwise.

    Any other submission is more debt and always leaves the debt UNPAID.
    """
    if submitted_status is DebtStatus.PAID:
        remaining = max(0, current_amount - submitted_amount)
        return remaining, DebtStatus.PAID if remaining == 0 else DebtStatus.UNPAID
    return current_amount + submitted_amount, DebtStatus.UNPAID


def merge_into(match: DebtEntry, draft: DebtDraft) -> DebtEntry:
    """
    Fold a submission into the open entry for the same name.

    The stored name keeps its original spelling; the date becomes the
    submission's date.
    """
    amount, status = apply_amount(match.amount, draft.amount, draft.status)
    return DebtEntry(
        id=match.id,
        name=match.name,
        debt_date=draft.debt_date,
        amount=amount,
        status=status,
        description=merge_descriptions(match.description, draft.description),
        photos=merge_photos(match.photos, draft.photos),
    )


def plan_submission(
    draft: DebtDraft,
    entries: Iterable[DebtEntry],
) -> ReconcilePlan:
    """
    Decide between creating a new entry and merging into an open one.

    Args:
        draft: Validated submission from the add form
        entries: Current collection as last pushed by the store

    Returns:
        A CREATE plan carrying the draft verbatim, or a MERGE plan
        carrying the full merged entry
    """
    match = find_open_entry(entries, draft.name)
    if match is None:
        return ReconcilePlan(action=ReconcileAction.CREATE, draft=draft)

    return ReconcilePlan(
        action=ReconcileAction.MERGE,
        entry_id=match.id,
        result=merge_into(match, draft),
    )


def plan_edit(entry_id: str, draft: DebtDraft) -> ReconcilePlan:
    """Replace the selected entry's fields with the submitted ones."""
    return ReconcilePlan(
        action=ReconcileAction.EDIT,
        entry_id=entry_id,
        result=DebtEntry.from_draft(entry_id, draft),
    )


def plan_delete(entry_id: str) -> ReconcilePlan:
    return ReconcilePlan(action=ReconcileAction.DELETE, entry_id=entry_id)


def outstanding_total(entries: Iterable[DebtEntry]) -> int:
    """Sum of amounts over every entry that is not PAID."""
    return sum(entry.amount for entry in entries if entry.is_open)


def sort_entries(entries: Iterable[DebtEntry]) -> list[DebtEntry]:
    """Newest date first. Entries on the same date keep their order."""
    return sorted(entries, key=lambda e: e.debt_date, reverse=True)
