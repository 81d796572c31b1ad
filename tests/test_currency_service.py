from decimal import Decimal
from unittest.mock import patch

import pytest
import requests

from app.errors import ExternalServiceError
from app.services import currency_service
from tests.conftest import api_response, rates_response

RATES_GET = "app.services.currency_service.requests.get"


def test_same_currency_needs_no_lookup(app):
    with patch(RATES_GET) as get:
        assert currency_service.get_exchange_rate("usd", "USD") == Decimal("1")
    get.assert_not_called()


def test_rate_lookup_uses_the_source_currency_as_base(app):
    with patch(RATES_GET, return_value=rates_response({"INR": 83.12})) as get:
        rate = currency_service.get_exchange_rate("usd", "inr")

    assert rate == Decimal("83.12")
    url = get.call_args.args[0]
    assert url == app.config["EXCHANGE_API_URL"].format(base="USD")
    assert get.call_args.kwargs["timeout"] == app.config["EXCHANGE_API_TIMEOUT"]


@pytest.mark.parametrize(
    "mock_kwargs",
    [
        {"side_effect": requests.Timeout("slow")},
        {"return_value": rates_response({"EUR": 0.92})},
        {"return_value": rates_response({"INR": 0})},
        {"return_value": rates_response({"INR": -2})},
        {"return_value": rates_response(["INR", 83.1])},
        {"return_value": api_response(["unexpected"])},
        {"return_value": api_response(None)},
    ],
)
def test_unusable_lookups_raise(app, mock_kwargs):
    with patch(RATES_GET, **mock_kwargs), pytest.raises(ExternalServiceError):
        currency_service.get_exchange_rate("USD", "INR")


def test_http_errors_raise(app):
    response = rates_response({})
    response.raise_for_status.side_effect = requests.HTTPError("500 Server Error")

    with patch(RATES_GET, return_value=response), pytest.raises(ExternalServiceError, match="USD"):
        currency_service.fetch_exchange_rates("usd")


def test_convert_amount_rounds_to_cents():
    assert currency_service.convert_amount(Decimal("10.00"), Decimal("0.333333")) == Decimal("3.33")
    assert currency_service.convert_amount(Decimal("19.99"), Decimal("1.1")) == Decimal("21.99")


def test_country_lookup_returns_empty_info_when_unknown(app):
    with patch(RATES_GET) as get:
        get.return_value.json.return_value = [{"name": {"common": "France"}, "currencies": {}}]
        assert currency_service.get_default_currency_for_country("France") == {
            "currency_code": None,
            "currency_name": None,
            "currency_symbol": None,
        }


def test_list_countries_keeps_countries_with_a_currency_sorted_by_name(app):
    payload = [
        {"name": {"common": "Japan", "official": "Japan"}, "currencies": {"JPY": {"name": "Japanese yen", "symbol": "¥"}}},
        {"name": {"common": "Antarctica"}, "currencies": {}},
        {"name": {"common": "Chile", "official": "Republic of Chile"}, "currencies": {"CLP": {"name": "Chilean peso"}}},
        "garbage",
    ]
    with patch(RATES_GET, return_value=api_response(payload)):
        countries = currency_service.list_countries()

    assert [country["name"] for country in countries] == ["Chile", "Japan"]
    assert countries[0] == {
        "name": "Chile",
        "official_name": "Republic of Chile",
        "currency_code": "CLP",
        "currency_name": "Chilean peso",
        "currency_symbol": "CLP",
    }


@pytest.mark.parametrize(
    "mock_kwargs",
    [{"side_effect": requests.ConnectionError("offline")}, {"return_value": api_response({"error": "quota"})}],
)
def test_list_countries_failures_raise(app, mock_kwargs):
    with patch(RATES_GET, **mock_kwargs), pytest.raises(ExternalServiceError):
        currency_service.list_countries()


def test_country_currency_lookup_degrades_to_empty_info(app):
    with patch(RATES_GET, return_value=api_response({"error": "quota"})):
        info = currency_service.get_default_currency_for_country("Japan")

    assert info == {"currency_code": None, "currency_name": None, "currency_symbol": None}
