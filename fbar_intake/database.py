"""SQLite persistence layer for the FBAR intake backend.

The repository stores the two document collections of the intake flow,
``fbar_submissions`` and ``fbar_drafts``, alongside admin accounts and their
sessions. Account lists are kept as JSON documents in the same camelCase shape
the form sends. Callers never see :mod:`sqlite3` errors: every failure surfaces
as :class:`~fbar_intake.exceptions.PersistError`.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional
from uuid import uuid4

from dateutil import parser as date_parser

from .exceptions import DuplicateKeyError, PersistError
from .models import AdminUser, BankAccount, Draft, Session, Submission, SubmissionStatus

logger = logging.getLogger(__name__)

SUBMISSIONS = "fbar_submissions"
DRAFTS = "fbar_drafts"

ChangeListener = Callable[[str], None]


class SQLiteRepository:
    """Encapsulates all SQLite access for the application.

    The connection is shared between FastAPI's worker threads and serialised
    with a re-entrant lock. Listeners registered with :meth:`add_listener` are
    called with the collection name after every committed change to it.
    """

    def __init__(self, database_path: Path | str) -> None:
        self._database_path = database_path
        self._lock = threading.RLock()
        self._connection = sqlite3.connect(database_path, check_same_thread=False)
        self._connection.execute("PRAGMA foreign_keys = ON;")
        self._connection.row_factory = sqlite3.Row
        self._listeners: list[ChangeListener] = []

    def close(self) -> None:
        """Close the underlying SQLite connection."""

        with self._lock:
            self._connection.close()

    # ------------------------------------------------------------------
    # Schema management
    # ------------------------------------------------------------------
    def initialise_schema(self) -> None:
        """Create all tables required by the application if they do not exist."""

        with self._transaction() as cursor:
            cursor.executescript(
                """
                CREATE TABLE IF NOT EXISTS fbar_submissions (
                    id TEXT PRIMARY KEY,
                    company_name TEXT NOT NULL,
                    accounts TEXT NOT NULL,
                    submitted_at TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending'
                );

                CREATE TABLE IF NOT EXISTS fbar_drafts (
                    id TEXT PRIMARY KEY,
                    resume_code TEXT NOT NULL UNIQUE,
                    company_name TEXT NOT NULL,
                    accounts TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS admin_users (
                    email TEXT PRIMARY KEY,
                    password_hash TEXT NOT NULL,
                    disabled INTEGER NOT NULL DEFAULT 0,
                    failed_attempts INTEGER NOT NULL DEFAULT 0,
                    locked_until TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS admin_sessions (
                    token TEXT PRIMARY KEY,
                    email TEXT NOT NULL REFERENCES admin_users(email) ON DELETE CASCADE,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                );
                """
            )

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------
    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it again."""

        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    def _notify(self, collection: str) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(collection)

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------
    def insert_submission(self, company_name: str, accounts: Iterable[BankAccount]) -> Submission:
        """Persist a new submission in ``pending`` state, stamped with the current time."""

        submission = Submission(
            id=uuid4().hex,
            company_name=company_name,
            accounts=tuple(accounts),
            submitted_at=_utcnow(),
            status=SubmissionStatus.PENDING,
        )
        with self._transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO fbar_submissions (id, company_name, accounts, submitted_at, status)
                VALUES (:id, :company_name, :accounts, :submitted_at, :status)
                """,
                {
                    "id": submission.id,
                    "company_name": submission.company_name,
                    "accounts": _dump_accounts(submission.accounts),
                    "submitted_at": _timestamp(submission.submitted_at),
                    "status": submission.status.value,
                },
            )
        self._notify(SUBMISSIONS)
        return submission

    def list_submissions(self) -> list[Submission]:
        """Return every submission, newest first."""

        with self._transaction() as cursor:
            rows = cursor.execute(
                "SELECT * FROM fbar_submissions ORDER BY submitted_at DESC, rowid DESC"
            ).fetchall()
        return [_row_to_submission(row) for row in rows]

    def get_submission(self, submission_id: str) -> Optional[Submission]:
        with self._transaction() as cursor:
            row = cursor.execute(
                "SELECT * FROM fbar_submissions WHERE id = ?",
                (submission_id,),
            ).fetchone()
        if row is None:
            return None
        return _row_to_submission(row)

    def update_submission_status(self, submission_id: str, status: SubmissionStatus) -> bool:
        """Overwrite the status field. Returns ``False`` when no such submission exists."""

        with self._transaction() as cursor:
            cursor.execute(
                "UPDATE fbar_submissions SET status = ? WHERE id = ?",
                (status.value, submission_id),
            )
            updated = cursor.rowcount > 0
        if updated:
            self._notify(SUBMISSIONS)
        return updated

    def delete_submission(self, submission_id: str) -> bool:
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM fbar_submissions WHERE id = ?", (submission_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            self._notify(SUBMISSIONS)
        return deleted

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------
    def resume_code_exists(self, resume_code: str) -> bool:
        with self._transaction() as cursor:
            row = cursor.execute(
                "SELECT 1 FROM fbar_drafts WHERE resume_code = ? LIMIT 1",
                (resume_code,),
            ).fetchone()
        return row is not None

    def insert_draft(self, resume_code: str, company_name: str, accounts: Iterable[BankAccount]) -> Draft:
        """Persist a new draft.

        Raises:
            DuplicateKeyError: another live draft already holds ``resume_code``.
        """

        draft = Draft(
            id=uuid4().hex,
            resume_code=resume_code,
            company_name=company_name,
            accounts=tuple(accounts),
            created_at=_utcnow(),
        )
        with self._transaction() as cursor:
            try:
                cursor.execute(
                    """
                    INSERT INTO fbar_drafts (id, resume_code, company_name, accounts, created_at)
                    VALUES (:id, :resume_code, :company_name, :accounts, :created_at)
                    """,
                    {
                        "id": draft.id,
                        "resume_code": draft.resume_code,
                        "company_name": draft.company_name,
                        "accounts": _dump_accounts(draft.accounts),
                        "created_at": _timestamp(draft.created_at),
                    },
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateKeyError(f"Resume code {resume_code} is already in use") from exc
        self._notify(DRAFTS)
        return draft

    def find_drafts_by_code(self, resume_code: str) -> list[Draft]:
        """Return drafts whose resume code matches exactly, oldest first."""

        with self._transaction() as cursor:
            rows = cursor.execute(
                "SELECT * FROM fbar_drafts WHERE resume_code = ? ORDER BY created_at, rowid",
                (resume_code,),
            ).fetchall()
        return [_row_to_draft(row) for row in rows]

    def get_draft(self, draft_id: str) -> Optional[Draft]:
        with self._transaction() as cursor:
            row = cursor.execute("SELECT * FROM fbar_drafts WHERE id = ?", (draft_id,)).fetchone()
        if row is None:
            return None
        return _row_to_draft(row)

    def delete_draft(self, draft_id: str) -> bool:
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM fbar_drafts WHERE id = ?", (draft_id,))
            deleted = cursor.rowcount > 0
        if deleted:
            self._notify(DRAFTS)
        return deleted

    # ------------------------------------------------------------------
    # Admin accounts and sessions
    # ------------------------------------------------------------------
    def get_admin(self, email: str) -> Optional[AdminUser]:
        with self._transaction() as cursor:
            row = cursor.execute("SELECT * FROM admin_users WHERE email = ?", (email,)).fetchone()
        if row is None:
            return None
        return AdminUser(
            email=row["email"],
            password_hash=row["password_hash"],
            disabled=bool(row["disabled"]),
            failed_attempts=int(row["failed_attempts"]),
            locked_until=_parse_timestamp(row["locked_until"]),
        )

    def insert_admin(self, email: str, password_hash: str, disabled: bool = False) -> None:
        with self._transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO admin_users (email, password_hash, disabled, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (email, password_hash, int(disabled), _timestamp(_utcnow())),
            )

    def set_admin_disabled(self, email: str, disabled: bool) -> None:
        with self._transaction() as cursor:
            cursor.execute("UPDATE admin_users SET disabled = ? WHERE email = ?", (int(disabled), email))

    def update_admin_password(self, email: str, password_hash: str) -> None:
        with self._transaction() as cursor:
            cursor.execute("UPDATE admin_users SET password_hash = ? WHERE email = ?", (password_hash, email))

    def record_sign_in_attempt(self, email: str, failed_attempts: int, locked_until: Optional[datetime]) -> None:
        with self._transaction() as cursor:
            cursor.execute(
                "UPDATE admin_users SET failed_attempts = ?, locked_until = ? WHERE email = ?",
                (failed_attempts, _timestamp(locked_until) if locked_until else None, email),
            )

    def insert_session(self, session: Session) -> None:
        with self._transaction() as cursor:
            cursor.execute(
                "INSERT INTO admin_sessions (token, email, created_at, expires_at) VALUES (?, ?, ?, ?)",
                (session.token, session.email, _timestamp(session.created_at), _timestamp(session.expires_at)),
            )

    def get_session(self, token: str) -> Optional[Session]:
        with self._transaction() as cursor:
            row = cursor.execute("SELECT * FROM admin_sessions WHERE token = ?", (token,)).fetchone()
        if row is None:
            return None
        return Session(
            token=row["token"],
            email=row["email"],
            created_at=_parse_timestamp(row["created_at"]),
            expires_at=_parse_timestamp(row["expires_at"]),
        )

    def delete_session(self, token: str) -> None:
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM admin_sessions WHERE token = ?", (token,))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            try:
                cursor = self._connection.cursor()
            except sqlite3.Error as exc:
                logger.error("SQLite connection unavailable: %s", exc)
                raise PersistError() from exc
            try:
                yield cursor
                self._connection.commit()
            except DuplicateKeyError:
                self._connection.rollback()
                raise
            except sqlite3.Error as exc:
                self._connection.rollback()
                logger.error("SQLite operation failed: %s", exc)
                raise PersistError() from exc
            finally:
                cursor.close()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return date_parser.isoparse(value)


def _dump_accounts(accounts: Iterable[BankAccount]) -> str:
    return json.dumps([account.to_document() for account in accounts])


def _load_accounts(payload: str) -> tuple[BankAccount, ...]:
    return tuple(BankAccount.from_document(document) for document in json.loads(payload))


def _row_to_submission(row: sqlite3.Row) -> Submission:
    return Submission(
        id=row["id"],
        company_name=row["company_name"],
        accounts=_load_accounts(row["accounts"]),
        submitted_at=_parse_timestamp(row["submitted_at"]),
        status=SubmissionStatus(row["status"]),
    )


def _row_to_draft(row: sqlite3.Row) -> Draft:
    return Draft(
        id=row["id"],
        resume_code=row["resume_code"],
        company_name=row["company_name"],
        accounts=_load_accounts(row["accounts"]),
        created_at=_parse_timestamp(row["created_at"]),
    )
