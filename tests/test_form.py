import pytest

from fbar_intake.exceptions import ValidationError
from fbar_intake.form import (
    add_account,
    format_amount,
    parse_amount,
    remove_account,
    set_company_name,
    update_account,
)
from fbar_intake.models import FormState


def test_new_form_has_one_empty_account():
    state = FormState()
    assert len(state.accounts) == 1
    assert state.accounts[0].usd_value == 0.0


def test_form_without_accounts_is_rejected():
    with pytest.raises(ValidationError):
        FormState(accounts=())


def test_add_and_remove_accounts():
    state = add_account(FormState())
    assert len(state.accounts) == 2
    assert state.accounts[0].id != state.accounts[1].id

    state = remove_account(state, state.accounts[0].id)
    assert len(state.accounts) == 1


def test_removing_last_account_is_noop():
    state = FormState()
    assert remove_account(state, state.accounts[0].id) is state


def test_amount_and_currency_changes_recompute_usd_value():
    state = FormState()
    account_id = state.accounts[0].id

    state = update_account(state, account_id, "max_value", 18330.0)
    assert state.accounts[0].usd_value == 18330.0

    state = update_account(state, account_id, "currency", "MXN")
    assert state.accounts[0].usd_value == pytest.approx(1000.0)


def test_institution_fields_are_transliterated_on_edit():
    state = FormState()
    account_id = state.accounts[0].id
    state = update_account(state, account_id, "institution_name", "Türkiye İş Bankası")
    state = update_account(state, account_id, "mailing_address", "Büyükdere Cad. Şişli")
    assert state.accounts[0].institution_name == "Turkiye Is Bankasi"
    assert state.accounts[0].mailing_address == "Buyukdere Cad. Sisli"


def test_company_name_is_kept_raw_while_editing():
    state = set_company_name(FormState(), "Örnek Şirket")
    assert state.company_name == "Örnek Şirket"


def test_usd_value_cannot_be_edited():
    state = FormState()
    with pytest.raises(ValueError):
        update_account(state, state.accounts[0].id, "usd_value", 5.0)


def test_update_leaves_original_state_untouched():
    state = FormState()
    updated = update_account(state, state.accounts[0].id, "account_number", "TR33 0006 1005")
    assert state.accounts[0].account_number == ""
    assert updated.accounts[0].account_number == "TR33 0006 1005"


@pytest.mark.parametrize(
    "text, expected",
    [("12,500.50", 12500.5), ("1000", 1000.0), ("", 0.0), ("abc", 0.0), ("nan", 0.0)],
)
def test_parse_amount(text, expected):
    assert parse_amount(text) == expected


@pytest.mark.parametrize(
    "text, expected",
    [("1234567", "1,234,567"), ("1234.5", "1,234.5"), ("$12,000", "12,000"), ("999", "999"), ("1.2.3", "1.2")],
)
def test_format_amount(text, expected):
    assert format_amount(text) == expected
