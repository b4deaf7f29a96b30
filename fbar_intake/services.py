"""High-level application services orchestrating the FBAR intake backend."""
from __future__ import annotations

import logging
import random
import re
from collections.abc import Collection
from typing import Optional

from .console import filter_submissions
from .database import SQLiteRepository
from .exceptions import (
    DraftCodeExhaustedError,
    DraftNotFoundError,
    DuplicateKeyError,
    PersistError,
    SubmissionNotFoundError,
    ValidationError,
)
from .export import export_selected
from .models import FormState, ResumedDraft, Submission, SubmissionStatus
from .text import transliterate

logger = logging.getLogger(__name__)

RESUME_CODE_PATTERN = re.compile(r"\d{4}")
DEFAULT_MAX_CODE_ATTEMPTS = 10


class DraftService:
    """Save-for-later drafts addressed by a 4-digit resume code."""

    def __init__(
        self,
        repository: SQLiteRepository,
        max_attempts: int = DEFAULT_MAX_CODE_ATTEMPTS,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._repository = repository
        self._max_attempts = max_attempts
        self._rng = rng or random.SystemRandom()

    def generate_code(self) -> str:
        return str(self._rng.randint(1000, 9999))

    def create_draft(self, form: FormState) -> str:
        """Persist ``form`` as-is and return the code that retrieves it.

        Text fields are stored exactly as entered; transliteration happens on
        submission. A code that is already taken, either seen by the lookup or
        rejected by the store's unique index, costs one attempt.

        Raises:
            DraftCodeExhaustedError: every attempt produced a taken code.
        """

        accounts = [account.with_usd_value() for account in form.accounts]
        for attempt in range(1, self._max_attempts + 1):
            code = self.generate_code()
            if self._repository.resume_code_exists(code):
                logger.debug("Resume code collision on attempt %d", attempt)
                continue
            try:
                draft = self._repository.insert_draft(code, form.company_name, accounts)
            except DuplicateKeyError:
                logger.debug("Resume code taken concurrently on attempt %d", attempt)
                continue
            logger.info("Draft %s saved with %d account(s)", draft.id, len(accounts))
            return draft.resume_code

        logger.error("No free resume code after %d attempts", self._max_attempts)
        raise DraftCodeExhaustedError(
            "Could not save your form right now. Please try again."
        )

    def resume_draft(self, code: str) -> ResumedDraft:
        """Look up the draft saved under ``code``. The draft is left in place."""

        if not RESUME_CODE_PATTERN.fullmatch(code or ""):
            raise ValidationError("Please enter your 4-digit code.", field="resumeCode")

        drafts = self._repository.find_drafts_by_code(code)
        if not drafts:
            raise DraftNotFoundError("Invalid code. Please check your code and try again.")
        if len(drafts) > 1:
            logger.warning("Resume code matched %d drafts; using the oldest", len(drafts))
        draft = drafts[0]
        return ResumedDraft(draft_id=draft.id, form=draft.to_form())


class SubmissionService:
    """Finalise form contents into a submission and retire its draft."""

    def __init__(self, repository: SQLiteRepository) -> None:
        self._repository = repository

    def submit(self, form: FormState, draft_id: Optional[str] = None) -> Submission:
        """Validate, normalise and store ``form``.

        Raises:
            ValidationError: the company name is blank. Nothing is written.
            PersistError: the store rejected the write. Nothing is written.
        """

        if not form.company_name.strip():
            raise ValidationError("Please enter the company name.", field="companyName")

        accounts = [account.transliterated().with_usd_value() for account in form.accounts]
        submission = self._repository.insert_submission(transliterate(form.company_name), accounts)
        logger.info("Submission %s stored with %d account(s)", submission.id, len(accounts))

        if draft_id:
            self._retire_draft(draft_id, submission.id)
        return submission

    def _retire_draft(self, draft_id: str, submission_id: str) -> None:
        try:
            self._repository.delete_draft(draft_id)
        except PersistError:
            logger.warning("Could not delete draft %s after submission %s", draft_id, submission_id)


class ReviewService:
    """Operator actions of the admin review console."""

    def __init__(self, repository: SQLiteRepository) -> None:
        self._repository = repository

    def list_submissions(self, query: str = "") -> list[Submission]:
        return filter_submissions(self._repository.list_submissions(), query)

    def set_status(self, submission_id: str, status: SubmissionStatus) -> Submission:
        if not self._repository.update_submission_status(submission_id, status):
            raise SubmissionNotFoundError("Submission not found")
        logger.info("Submission %s marked %s", submission_id, status.value)
        submission = self._repository.get_submission(submission_id)
        if submission is None:
            raise SubmissionNotFoundError("Submission not found")
        return submission

    def delete_submission(self, submission_id: str, confirmed: bool) -> None:
        """Remove a submission permanently; ``confirmed`` must be set by the operator."""

        if not confirmed:
            raise ValidationError(
                "Deleting a submission cannot be undone. Confirm the deletion to continue.",
                field="confirm",
            )
        if not self._repository.delete_submission(submission_id):
            raise SubmissionNotFoundError("Submission not found")
        logger.info("Submission %s deleted", submission_id)

    def export(self, submission_ids: Collection[str]) -> bytes:
        return export_selected(self._repository.list_submissions(), set(submission_ids))
