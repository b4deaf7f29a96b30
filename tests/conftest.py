import pathlib
import sys
from datetime import datetime, timedelta, timezone

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fbar_intake.config import AppConfig  # noqa: E402
from fbar_intake.database import SQLiteRepository  # noqa: E402
from fbar_intake.models import BankAccount, FormState  # noqa: E402

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "initial-pass"


class FakeClock:
    """Manually advanced clock for lockout and session expiry tests."""

    def __init__(self) -> None:
        self.now = datetime(2024, 4, 15, 9, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def repository(tmp_path: pathlib.Path):
    repo = SQLiteRepository(tmp_path / "fbar.db")
    repo.initialise_schema()
    yield repo
    repo.close()


@pytest.fixture
def app_config(tmp_path: pathlib.Path) -> AppConfig:
    return AppConfig(
        project_root=tmp_path,
        database_file=tmp_path / "api.db",
        google_maps_key=None,
        places_endpoint="https://places.invalid/findplacefromtext/json",
        admin_email=ADMIN_EMAIL,
        admin_password=ADMIN_PASSWORD,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_form():
    def _make_form(company_name: str = "Acme Holdings", *accounts: BankAccount) -> FormState:
        if not accounts:
            accounts = (
                BankAccount(
                    type="bank",
                    currency="EUR",
                    account_number="DE89370400440532013000",
                    max_value=9240.0,
                    institution_name="Deutsche Bank",
                    mailing_address="Taunusanlage 12, Frankfurt",
                ).with_usd_value(),
            )
        return FormState(company_name=company_name, accounts=tuple(accounts))

    return _make_form
