from datetime import datetime, timezone
from decimal import Decimal

from application.services.object_accessor import (
    calculate_subscription_items,
    currency_conversion,
    format_date,
    get_object_param,
    parse_date,
)


def test_charge_params_are_normalised():
    charge = {
        "object": "charge",
        "id": "ch_1",
        "amount": 1050,
        "amount_refunded": 250,
        "currency": "eur",
        "customer": {"id": "cus_1", "object": "customer"},
        "payment_intent": "pi_1",
        "invoice": "",
        "captured": True,
        "created": 1700000000,
    }
    assert get_object_param("charge_id", charge) == "ch_1"
    assert get_object_param("amount", charge) == Decimal("10.50")
    assert get_object_param("amount_refunded", charge) == Decimal("2.50")
    assert get_object_param("currency", charge) == "EUR"
    assert get_object_param("customer_id", charge) == "cus_1"
    assert get_object_param("payment_intent_id", charge) == "pi_1"
    assert get_object_param("invoice_id", charge) is None
    assert get_object_param("captured", charge) is True
    assert get_object_param("receive_date", charge) == "20231114221320"


def test_unsupported_param_and_unknown_object_return_none():
    assert get_object_param("plan_start", {"object": "charge", "id": "ch_1"}) is None
    assert get_object_param("id", {"object": "payout", "id": "po_1"}) is None
    assert get_object_param("id", None) is None


def test_invoice_subscription_under_parent_details():
    invoice = {
        "object": "invoice",
        "id": "in_1",
        "parent": {"subscription_details": {"subscription": "sub_9"}},
    }
    assert get_object_param("subscription_id", invoice) == "sub_9"
    assert get_object_param("failure_message", invoice) == ""


def test_subscription_period_end_falls_back_to_first_item():
    subscription = {
        "object": "subscription",
        "id": "sub_1",
        "items": {"object": "list", "data": [{"current_period_end": 1800000000}]},
        "status": "past_due",
    }
    assert get_object_param("current_period_end", subscription) == 1800000000
    assert get_object_param("status_id", subscription) == "Overdue"


def test_calculate_subscription_items_groups_by_currency_and_interval():
    subscription = {
        "object": "subscription",
        "items": {"data": [
            {"quantity": 2, "price": {"active": True, "unit_amount": 500, "currency": "usd",
                                      "recurring": {"interval": "month", "interval_count": 1}}},
            {"quantity": 1, "price": {"active": True, "unit_amount": 250, "currency": "usd",
                                      "recurring": {"interval": "month", "interval_count": 1}}},
            {"quantity": 1, "price": {"active": False, "unit_amount": 9900, "currency": "usd",
                                      "recurring": {"interval": "month", "interval_count": 1}}},
            {"quantity": 1, "price": {"active": True, "unit_amount": 12000, "currency": "eur",
                                      "recurring": {"interval": "year", "interval_count": 1}}},
        ]},
    }
    items = calculate_subscription_items(subscription)
    assert items["usd_month_1"] == {"currency": "USD", "amount": Decimal("12.50")}
    assert items["eur_year_1"] == {"currency": "EUR", "amount": Decimal("120.00")}
    assert len(items) == 2


def test_date_helpers_round_trip_in_utc():
    text = format_date(1700000000)
    assert text == "20231114221320"
    assert parse_date(text) == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
    assert format_date(None) is None
    assert parse_date("") is None


def test_currency_conversion_rounds_to_currency_precision():
    assert currency_conversion(59, "1.1", "EUR") == Decimal("0.54")
    assert currency_conversion(1000, "0.0068", "JPY") == Decimal("1471")
