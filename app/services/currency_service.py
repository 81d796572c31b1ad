"""Currency conversion and metadata helpers."""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

import requests
from flask import current_app

from app.errors import ExternalServiceError

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def list_countries() -> List[Dict[str, Optional[str]]]:
    """Countries with their primary currency, sorted by common name.

    Entries without a currency are left out.
    """
    try:
        response = requests.get(
            current_app.config["REST_COUNTRIES_URL"],
            timeout=current_app.config["EXCHANGE_API_TIMEOUT"],
        )
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        raise ExternalServiceError(f"Country lookup failed: {exc}") from exc
    if not isinstance(payload, list):
        raise ExternalServiceError("Country lookup returned an unexpected payload.")

    countries = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        names = entry.get("name") or {}
        currencies = entry.get("currencies") or {}
        if not isinstance(names, dict) or not isinstance(currencies, dict) or not currencies:
            continue
        if not names.get("common"):
            continue
        code, details = next(iter(currencies.items()))
        details = details if isinstance(details, dict) else {}
        countries.append(
            {
                "name": names["common"],
                "official_name": names.get("official"),
                "currency_code": code,
                "currency_name": details.get("name"),
                "currency_symbol": details.get("symbol") or code,
            }
        )
    return sorted(countries, key=lambda country: country["name"].lower())


def get_default_currency_for_country(country_name: str) -> Dict[str, Optional[str]]:
    """Return the default currency information for a given country."""
    empty = {"currency_code": None, "currency_name": None, "currency_symbol": None}
    try:
        countries = list_countries()
    except ExternalServiceError as exc:
        logger.warning("Country lookup failed for %r: %s", country_name, exc.message)
        return empty

    wanted = country_name.strip().lower()
    match = next((country for country in countries if country["name"].lower() == wanted), None)
    if match is None:
        return empty
    return {key: match[key] for key in empty}


def fetch_exchange_rates(base_currency: str) -> Dict[str, float]:
    """Fetch exchange rates for the given base currency."""
    url = current_app.config["EXCHANGE_API_URL"].format(base=base_currency.upper())
    try:
        response = requests.get(url, timeout=current_app.config["EXCHANGE_API_TIMEOUT"])
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        raise ExternalServiceError(f"Exchange rate lookup failed for {base_currency.upper()}: {exc}") from exc

    rates = payload.get("rates") if isinstance(payload, dict) else None
    if not isinstance(rates, dict):
        raise ExternalServiceError(f"Exchange rate response for {base_currency.upper()} has no rates table.")
    return rates


def get_exchange_rate(source_currency: str, target_currency: str) -> Decimal:
    """Rate that converts one unit of ``source_currency`` into ``target_currency``."""
    if source_currency.upper() == target_currency.upper():
        return Decimal("1")

    rates = fetch_exchange_rates(source_currency)
    rate = rates.get(target_currency.upper())
    if not rate:
        raise ExternalServiceError(
            f"No exchange rate from {source_currency.upper()} to {target_currency.upper()}."
        )
    try:
        value = Decimal(str(rate))
    except InvalidOperation as exc:
        raise ExternalServiceError(f"Malformed exchange rate {rate!r}.") from exc
    if not value.is_finite() or value <= 0:
        raise ExternalServiceError(f"Malformed exchange rate {rate!r}.")
    return value


def convert_amount(amount: Decimal, rate: Decimal) -> Decimal:
    return (Decimal(amount) * Decimal(rate)).quantize(CENTS)
