"""Pydantic schemas for API payloads.

Payloads use the camelCase field names of the intake form; Python code uses
snake_case through the alias generator.
"""
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .currency import is_supported
from .models import BankAccount, FormState, Submission, SubmissionStatus, new_account_id


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccountIn(CamelModel):
    id: Optional[str] = None
    type: Literal["", "bank", "securities"] = ""
    currency: str = ""
    account_number: str = ""
    max_value: float = Field(default=0.0, ge=0)
    institution_name: str = ""
    mailing_address: str = ""

    @field_validator("currency")
    @classmethod
    def _supported_currency(cls, value: str) -> str:
        if value and not is_supported(value):
            raise ValueError(f"Unsupported currency {value!r}")
        return value

    def to_model(self) -> BankAccount:
        # usdValue is never read from the client; it is derived here.
        return BankAccount(
            id=self.id or new_account_id(),
            type=self.type,
            currency=self.currency,
            account_number=self.account_number,
            max_value=self.max_value,
            institution_name=self.institution_name,
            mailing_address=self.mailing_address,
        ).with_usd_value()


class FormIn(CamelModel):
    company_name: str = ""
    accounts: list[AccountIn] = Field(..., min_length=1)

    def to_form(self) -> FormState:
        return FormState(
            company_name=self.company_name,
            accounts=tuple(account.to_model() for account in self.accounts),
        )


class SubmissionIn(FormIn):
    draft_id: Optional[str] = None


class AccountOut(CamelModel):
    id: str
    type: str
    currency: str
    account_number: str
    max_value: float
    usd_value: float
    institution_name: str
    mailing_address: str

    @classmethod
    def from_model(cls, account: BankAccount) -> "AccountOut":
        return cls(
            id=account.id,
            type=account.type,
            currency=account.currency,
            account_number=account.account_number,
            max_value=account.max_value,
            usd_value=account.usd_value,
            institution_name=account.institution_name,
            mailing_address=account.mailing_address,
        )


class DraftCreated(CamelModel):
    resume_code: str = Field(..., description="Shown to the user once; required to resume the draft")


class ResumedDraftOut(CamelModel):
    draft_id: str
    company_name: str
    accounts: list[AccountOut]


class SubmissionCreated(CamelModel):
    id: str


class SubmissionOut(CamelModel):
    id: str
    company_name: str
    accounts: list[AccountOut]
    submitted_at: datetime
    status: SubmissionStatus

    @classmethod
    def from_model(cls, submission: Submission) -> "SubmissionOut":
        return cls(
            id=submission.id,
            company_name=submission.company_name,
            accounts=[AccountOut.from_model(account) for account in submission.accounts],
            submitted_at=submission.submitted_at,
            status=submission.status,
        )


class StatusUpdate(CamelModel):
    status: SubmissionStatus


class ExportRequest(CamelModel):
    ids: list[str] = Field(default_factory=list)


class LoginRequest(CamelModel):
    email: str
    password: str


class LoginResponse(CamelModel):
    access_token: str = Field(..., description="Opaque token for session management")
    token_type: str = Field(default="bearer")
    email: str
    expires_at: datetime


class PasswordChangeRequest(CamelModel):
    current_password: str
    new_password: str
    confirm_password: str


class CurrencyOut(CamelModel):
    code: str
    name: str
    rate: float


class AccountTypeOut(CamelModel):
    value: str
    label: str
    description: str


class ReferenceOut(CamelModel):
    currencies: list[CurrencyOut]
    account_types: list[AccountTypeOut]


class PlaceLookupOut(CamelModel):
    available: bool
    name: Optional[str] = None
    formatted_address: Optional[str] = None
    message: Optional[str] = None


class HealthResponse(BaseModel):
    status: Literal["ok"]
