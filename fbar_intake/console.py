"""Review console state for the admin dashboard.

The dashboard keeps a full snapshot of the submission collection, a search
query, the set of selected submissions and at most one expanded row.
:class:`ConsoleState` is immutable; every operator action is a function that
returns the next state.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Iterable, Optional

from .models import Submission


@dataclass(frozen=True, slots=True)
class ConsoleState:
    submissions: tuple[Submission, ...] = ()
    query: str = ""
    selected: frozenset[str] = field(default_factory=frozenset)
    expanded: Optional[str] = None

    @property
    def visible(self) -> tuple[Submission, ...]:
        """Submissions matching the current search query, newest first."""

        return tuple(filter_submissions(self.submissions, self.query))


def sort_submissions(submissions: Iterable[Submission]) -> list[Submission]:
    return sorted(submissions, key=lambda submission: submission.submitted_at, reverse=True)


def filter_submissions(submissions: Iterable[Submission], query: str) -> list[Submission]:
    """Case-insensitive substring search over company, institution and account number."""

    needle = query.lower()
    if not needle:
        return list(submissions)
    return [submission for submission in submissions if _matches(submission, needle)]


def _matches(submission: Submission, needle: str) -> bool:
    if needle in submission.company_name.lower():
        return True
    return any(
        needle in account.institution_name.lower() or needle in account.account_number.lower()
        for account in submission.accounts
    )


def apply_snapshot(state: ConsoleState, submissions: Iterable[Submission]) -> ConsoleState:
    """Replace the whole list with a fresh snapshot from the feed.

    Selection and expansion entries for submissions that no longer exist are
    dropped.
    """

    ordered = tuple(sort_submissions(submissions))
    ids = {submission.id for submission in ordered}
    expanded = state.expanded if state.expanded in ids else None
    return replace(state, submissions=ordered, selected=state.selected & ids, expanded=expanded)


def set_query(state: ConsoleState, query: str) -> ConsoleState:
    return replace(state, query=query)


def toggle_select(state: ConsoleState, submission_id: str) -> ConsoleState:
    if submission_id in state.selected:
        return replace(state, selected=state.selected - {submission_id})
    return replace(state, selected=state.selected | {submission_id})


def toggle_select_all(state: ConsoleState) -> ConsoleState:
    """Select every visible submission, or clear the selection if that is already the case."""

    visible_ids = frozenset(submission.id for submission in state.visible)
    if len(state.selected) == len(visible_ids):
        return replace(state, selected=frozenset())
    return replace(state, selected=visible_ids)


def toggle_expanded(state: ConsoleState, submission_id: str) -> ConsoleState:
    expanded = None if state.expanded == submission_id else submission_id
    return replace(state, expanded=expanded)


def remove_submission(state: ConsoleState, submission_id: str) -> ConsoleState:
    """Reflect a confirmed deletion locally."""

    return replace(
        state,
        submissions=tuple(submission for submission in state.submissions if submission.id != submission_id),
        selected=state.selected - {submission_id},
        expanded=None,
    )


__all__ = [
    "ConsoleState",
    "apply_snapshot",
    "filter_submissions",
    "remove_submission",
    "set_query",
    "sort_submissions",
    "toggle_expanded",
    "toggle_select",
    "toggle_select_all",
]
