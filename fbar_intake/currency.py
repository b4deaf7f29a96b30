"""Static USD conversion for the currencies accepted on the intake form."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Currency:
    """Supported currency with its units-per-USD snapshot rate."""

    code: str
    name: str
    rate: float


# Units of each currency per 1 USD. A fixed snapshot, not refreshed.
CURRENCIES: tuple[Currency, ...] = (
    Currency("USD", "US Dollar", 1.000),
    Currency("EUR", "Euro", 0.924),
    Currency("GBP", "British Pound", 0.783),
    Currency("MXN", "Mexican Peso", 18.330),
    Currency("TRY", "Turkish Lira", 32.867),
    Currency("AED", "UAE Dirham", 3.673),
    Currency("CAD", "Canadian Dollar", 1.370),
)

EXCHANGE_RATES: dict[str, float] = {currency.code: currency.rate for currency in CURRENCIES}


def exchange_rate(currency: str) -> float:
    """Return the rate for ``currency``; unknown or empty codes count as USD."""

    return EXCHANGE_RATES.get(currency, 1.0)


def usd_value(amount: float, currency: str) -> float:
    """Convert ``amount`` expressed in ``currency`` to US dollars."""

    return amount / exchange_rate(currency)


def is_supported(currency: str) -> bool:
    return currency in EXCHANGE_RATES


__all__ = ["CURRENCIES", "Currency", "EXCHANGE_RATES", "exchange_rate", "is_supported", "usd_value"]
