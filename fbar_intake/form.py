"""Pure state transitions for the intake form.

Each function takes a :class:`FormState` and returns a new one; nothing is
mutated in place. Institution names and addresses are transliterated as they
are edited and the USD equivalent follows every amount or currency change.
"""
from __future__ import annotations

import math
import re
from dataclasses import replace
from typing import Union

from .models import BankAccount, FormState
from .text import transliterate

_EDITABLE_FIELDS = frozenset(
    {
        "type",
        "currency",
        "account_number",
        "max_value",
        "institution_name",
        "mailing_address",
    }
)
_TRANSLITERATED_FIELDS = frozenset({"institution_name", "mailing_address"})
_GROUP_THOUSANDS = re.compile(r"\B(?=(\d{3})+(?!\d))")


def new_account() -> BankAccount:
    return BankAccount()


def set_company_name(state: FormState, company_name: str) -> FormState:
    return replace(state, company_name=company_name)


def add_account(state: FormState) -> FormState:
    return replace(state, accounts=state.accounts + (new_account(),))


def remove_account(state: FormState, account_id: str) -> FormState:
    """Drop an account; the last remaining account is never removed."""

    if len(state.accounts) <= 1:
        return state
    return replace(state, accounts=tuple(account for account in state.accounts if account.id != account_id))


def update_account(state: FormState, account_id: str, field_name: str, value: Union[str, float]) -> FormState:
    """Set one field on one account.

    Raises:
        ValueError: ``field_name`` is not user editable. ``usd_value`` is
            derived and ``id`` is fixed for the life of the account.
    """

    if field_name not in _EDITABLE_FIELDS:
        raise ValueError(f"Field {field_name!r} cannot be edited")

    if field_name in _TRANSLITERATED_FIELDS:
        value = transliterate(str(value))
    elif field_name == "max_value":
        value = max(float(value), 0.0)

    accounts = []
    for account in state.accounts:
        if account.id == account_id:
            account = replace(account, **{field_name: value})
            if field_name in ("max_value", "currency"):
                account = account.with_usd_value()
        accounts.append(account)
    return replace(state, accounts=tuple(accounts))


def parse_amount(text: str) -> float:
    """Read a user-typed amount such as ``"12,500.50"``; garbage reads as 0."""

    try:
        amount = float(text.replace(",", ""))
    except ValueError:
        return 0.0
    return amount if math.isfinite(amount) else 0.0


def format_amount(text: str) -> str:
    """Group the integer digits of ``text`` with commas, keeping any decimals."""

    cleaned = re.sub(r"[^\d.]", "", text)
    integer_part, _, decimal_part = cleaned.partition(".")
    decimal_part = decimal_part.split(".", 1)[0]
    grouped = _GROUP_THOUSANDS.sub(",", integer_part)
    return f"{grouped}.{decimal_part}" if decimal_part else grouped


__all__ = [
    "add_account",
    "format_amount",
    "new_account",
    "parse_amount",
    "remove_account",
    "set_company_name",
    "update_account",
]
