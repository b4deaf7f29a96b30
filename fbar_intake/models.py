"""Domain models used by the FBAR intake backend.

The classes defined here are immutable data containers that do not know
anything about persistence or transport concerns. Documents are stored with the
camelCase field names the intake form uses, so every model owns its
``to_document``/``from_document`` pair.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional
from uuid import uuid4

from .currency import usd_value
from .exceptions import ValidationError
from .text import transliterate


class AccountType(str, Enum):
    BANK = "bank"
    SECURITIES = "securities"


ACCOUNT_TYPE_LABELS: dict[AccountType, tuple[str, str]] = {
    AccountType.BANK: (
        "Bank Account",
        "A bank account held at a financial institution.",
    ),
    AccountType.SECURITIES: (
        "Securities Account",
        "An account holding securities, stocks, bonds, or other investment instruments.",
    ),
}


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def new_account_id() -> str:
    return uuid4().hex


@dataclass(frozen=True, slots=True)
class BankAccount:
    """One foreign account as entered on the form.

    :attr:`usd_value` is derived from :attr:`max_value` and :attr:`currency`;
    use :meth:`with_usd_value` after changing either of them.
    """

    id: str = field(default_factory=new_account_id)
    type: str = ""
    currency: str = ""
    account_number: str = ""
    max_value: float = 0.0
    usd_value: float = 0.0
    institution_name: str = ""
    mailing_address: str = ""

    def with_usd_value(self) -> "BankAccount":
        return replace(self, usd_value=usd_value(self.max_value, self.currency))

    def transliterated(self) -> "BankAccount":
        return replace(
            self,
            institution_name=transliterate(self.institution_name),
            mailing_address=transliterate(self.mailing_address),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "currency": self.currency,
            "accountNumber": self.account_number,
            "maxValue": self.max_value,
            "usdValue": self.usd_value,
            "institutionName": self.institution_name,
            "mailingAddress": self.mailing_address,
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "BankAccount":
        return cls(
            id=str(document.get("id") or new_account_id()),
            type=document.get("type") or "",
            currency=document.get("currency") or "",
            account_number=document.get("accountNumber") or "",
            max_value=float(document.get("maxValue") or 0.0),
            usd_value=float(document.get("usdValue") or 0.0),
            institution_name=document.get("institutionName") or "",
            mailing_address=document.get("mailingAddress") or "",
        )


@dataclass(frozen=True, slots=True)
class FormState:
    """In-memory form contents; always holds at least one account."""

    company_name: str = ""
    accounts: tuple[BankAccount, ...] = field(default_factory=lambda: (BankAccount(),))

    def __post_init__(self) -> None:
        if not self.accounts:
            raise ValidationError("At least one account is required.", field="accounts")


@dataclass(frozen=True, slots=True)
class Draft:
    id: str
    resume_code: str
    company_name: str
    accounts: tuple[BankAccount, ...]
    created_at: datetime

    def to_form(self) -> FormState:
        return FormState(company_name=self.company_name, accounts=self.accounts or (BankAccount(),))


@dataclass(frozen=True, slots=True)
class ResumedDraft:
    """Form contents restored from a draft plus the id needed to retire it."""

    draft_id: str
    form: FormState


@dataclass(frozen=True, slots=True)
class Submission:
    id: str
    company_name: str
    accounts: tuple[BankAccount, ...]
    submitted_at: datetime
    status: SubmissionStatus = SubmissionStatus.PENDING


@dataclass(frozen=True, slots=True)
class AdminUser:
    email: str
    password_hash: str
    disabled: bool = False
    failed_attempts: int = 0
    locked_until: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class Session:
    token: str
    email: str
    created_at: datetime
    expires_at: datetime


__all__ = [
    "ACCOUNT_TYPE_LABELS",
    "AccountType",
    "AdminUser",
    "BankAccount",
    "Draft",
    "FormState",
    "ResumedDraft",
    "Session",
    "Submission",
    "SubmissionStatus",
    "new_account_id",
]
