"""
Uniform field access over the Stripe objects carried by webhook events.

Every reconciliation decision reads event data through ``get_object_param``:
it dispatches on the object's ``object`` tag, converts minor-unit amounts to
``Decimal`` major units, uppercases currencies and turns epoch seconds into
``YYYYMMDDHHMMSS`` strings. Asking for a field a variant does not expose
returns ``None`` and leaves a diagnostic in the log.
"""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Mapping, Optional

from core.logging_config import get_logger
from shared.codes.payment_codes import (
    INVOICE_STATUS_TO_CONTRIBUTION,
    SUBSCRIPTION_STATUS_TO_RECUR,
)


logger = get_logger(__name__)

DATE_FORMAT = "%Y%m%d%H%M%S"
CENTS = Decimal("0.01")

# Currencies without a minor unit; conversion rounds them to whole units
ZERO_DECIMAL_CURRENCIES = frozenset({
    "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
    "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
})

# Subscription status -> contribution status for ``status_id``
_SUBSCRIPTION_STATUS_TO_CONTRIBUTION = {
    "incomplete": "Pending",
    "active": "In Progress",
    "trialing": "In Progress",
    "past_due": "Overdue",
}


def format_date(timestamp: Optional[int]) -> Optional[str]:
    """Epoch seconds -> ``YYYYMMDDHHMMSS`` (UTC), ``None`` when unset."""
    if not timestamp:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).strftime(DATE_FORMAT)


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """Inverse of :func:`format_date`."""
    if not value:
        return None
    return datetime.strptime(value, DATE_FORMAT).replace(tzinfo=timezone.utc)


def format_currency(currency: Optional[str]) -> Optional[str]:
    return currency.upper() if currency else None


def minor_to_major(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return (Decimal(str(value)) / 100).quantize(CENTS, rounding=ROUND_HALF_UP)


def currency_precision(currency: Optional[str]) -> int:
    return 0 if (currency or "").upper() in ZERO_DECIMAL_CURRENCIES else 2


def currency_conversion(amount: Any, exchange_rate: Any, currency: Optional[str]) -> Decimal:
    """Convert a minor-unit amount with ``exchange_rate`` into ``currency`` major units.

    The result is rounded to the currency precision so it can be stored and
    read back unchanged.
    """
    converted = (Decimal(str(amount)) / Decimal(str(exchange_rate))) / 100
    quantum = Decimal(1).scaleb(-currency_precision(currency))
    return converted.quantize(quantum, rounding=ROUND_HALF_UP)


def map_subscription_status(status: Optional[str]) -> Optional[str]:
    return SUBSCRIPTION_STATUS_TO_RECUR.get(status or "")


def map_invoice_status(status: Optional[str]) -> Optional[str]:
    return INVOICE_STATUS_TO_CONTRIBUTION.get(status or "")


def _ref(value: Any) -> Optional[str]:
    """Id of an expandable field: accepts a nested object or a bare id."""
    if value is None or value == "":
        return None
    if isinstance(value, Mapping):
        return value.get("id") or None
    return str(value)


def _text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _list_data(value: Any) -> list:
    """Items of a Stripe list object (``{"object": "list", "data": [...]}``) or a plain list."""
    if isinstance(value, Mapping):
        return list(value.get("data") or [])
    return list(value or [])


def _subscription_plan(obj: Mapping[str, Any]) -> dict[str, Any]:
    plan = {"amount": 0, "interval": "", "interval_count": 0}
    for item in _list_data(obj.get("items")):
        price = item.get("price") or {}
        if price.get("active") and (item.get("quantity") or 0) > 0:
            plan["amount"] += (price.get("unit_amount") or 0) * item["quantity"]
            item_plan = item.get("plan") or {}
            recurring = price.get("recurring") or {}
            plan["interval"] = item_plan.get("interval") or recurring.get("interval") or ""
            plan["interval_count"] = item_plan.get("interval_count") or recurring.get("interval_count") or 0
    return plan


def calculate_subscription_items(obj: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Group active subscription items by ``<currency>_<interval>_<count>``.

    Each bucket holds the summed ``unit_amount * quantity`` in major units
    together with its uppercased currency.
    """
    buckets: dict[str, dict[str, Any]] = {}
    for item in _list_data(obj.get("items")):
        price = item.get("price") or {}
        quantity = item.get("quantity") or 0
        if not price.get("active") or quantity <= 0:
            continue
        recurring = price.get("recurring") or {}
        item_plan = item.get("plan") or {}
        currency = (price.get("currency") or obj.get("currency") or "").lower()
        interval = recurring.get("interval") or item_plan.get("interval") or ""
        interval_count = recurring.get("interval_count") or item_plan.get("interval_count") or 0
        key = f"{currency}_{interval}_{interval_count}"
        bucket = buckets.setdefault(key, {"currency": currency.upper(), "amount": Decimal("0")})
        bucket["amount"] += minor_to_major((price.get("unit_amount") or 0) * quantity)
    return buckets


def _charge_param(name: str, obj: Mapping[str, Any]) -> Any:
    if name == "charge_id":
        return _text(obj.get("id"))
    if name in ("failure_code", "failure_message"):
        return _text(obj.get(name))
    if name == "amount":
        return minor_to_major(obj.get("amount"))
    if name == "refunded":
        return bool(obj.get("refunded"))
    if name == "amount_refunded":
        return minor_to_major(obj.get("amount_refunded"))
    if name == "customer_id":
        return _ref(obj.get("customer"))
    if name == "balance_transaction":
        return _ref(obj.get("balance_transaction"))
    if name == "receive_date":
        return format_date(obj.get("created"))
    if name == "invoice_id":
        return _ref(obj.get("invoice"))
    if name == "captured":
        return bool(obj.get("captured"))
    if name == "currency":
        return format_currency(obj.get("currency"))
    if name == "payment_intent_id":
        return _ref(obj.get("payment_intent"))
    return _MISSING


def _invoice_subscription(obj: Mapping[str, Any]) -> Optional[str]:
    subscription = _ref(obj.get("subscription"))
    if subscription:
        return subscription
    # Newer API versions move the subscription under parent.subscription_details
    details = (obj.get("parent") or {}).get("subscription_details") or {}
    return _ref(details.get("subscription"))


def _invoice_param(name: str, obj: Mapping[str, Any]) -> Any:
    if name == "charge_id":
        return _ref(obj.get("charge"))
    if name == "invoice_id":
        return _text(obj.get("id"))
    if name == "receive_date":
        return format_date(obj.get("created"))
    if name == "subscription_id":
        return _invoice_subscription(obj)
    if name == "amount":
        return minor_to_major(obj.get("amount_due"))
    if name in ("amount_paid", "amount_remaining"):
        return minor_to_major(obj.get(name))
    if name == "currency":
        return format_currency(obj.get("currency"))
    if name == "description":
        return obj.get("description") or ""
    if name == "customer_id":
        return _ref(obj.get("customer"))
    if name == "failure_message":
        logger.error(
            "object_param_coding_error",
            param=name,
            object_type="invoice",
            hint="failure_message lives on the charge; retrieve the charge instead",
        )
        return ""
    if name == "status":
        return map_invoice_status(obj.get("status"))
    return _MISSING


def _subscription_param(name: str, obj: Mapping[str, Any]) -> Any:
    if name in ("amount", "frequency_unit", "frequency_interval"):
        plan = _subscription_plan(obj)
        if name == "amount":
            return minor_to_major(plan["amount"])
        if name == "frequency_unit":
            return str(plan["interval"])
        return int(plan["interval_count"])
    if name == "currency":
        return format_currency(obj.get("currency"))
    if name == "plan_start":
        return format_date(obj.get("start_date"))
    if name == "cancel_date":
        return format_date(obj.get("canceled_at"))
    if name == "cycle_day":
        anchor = obj.get("billing_cycle_anchor")
        return datetime.fromtimestamp(int(anchor), tz=timezone.utc).strftime("%d") if anchor else None
    if name == "current_period_end":
        period_end = obj.get("current_period_end")
        if period_end is None:
            items = _list_data(obj.get("items"))
            period_end = items[0].get("current_period_end") if items else None
        return int(period_end) if period_end else None
    if name == "subscription_id":
        return _text(obj.get("id"))
    if name == "status_id":
        return _SUBSCRIPTION_STATUS_TO_CONTRIBUTION.get(obj.get("status") or "", "Cancelled")
    if name == "status":
        return map_subscription_status(obj.get("status"))
    if name == "customer_id":
        return _ref(obj.get("customer"))
    return _MISSING


def _checkout_session_param(name: str, obj: Mapping[str, Any]) -> Any:
    if name == "checkout_session_id":
        return _text(obj.get("id"))
    if name == "client_reference_id":
        return _text(obj.get("client_reference_id"))
    if name == "customer_id":
        return _ref(obj.get("customer"))
    if name == "invoice_id":
        return _ref(obj.get("invoice"))
    if name == "payment_intent_id":
        return _ref(obj.get("payment_intent"))
    if name == "subscription_id":
        return _ref(obj.get("subscription"))
    return _MISSING


def _generic_param(name: str, obj: Mapping[str, Any]) -> Any:
    if obj.get(name) is not None:
        return obj[name]
    logger.error("object_param_not_set", param=name, object_type=obj.get("object"))
    return None


def _subscription_item_param(name: str, obj: Mapping[str, Any]) -> Any:
    return _generic_param(name, obj)


def _price_param(name: str, obj: Mapping[str, Any]) -> Any:
    recurring = obj.get("recurring") or {}
    if name == "unit_amount":
        return minor_to_major(obj.get("unit_amount"))
    if name == "recurring_interval":
        return recurring.get("interval") or ""
    if name == "recurring_interval_count":
        return int(recurring.get("interval_count") or 0)
    return _generic_param(name, obj)


_MISSING = object()

_ACCESSORS: dict[str, Callable[[str, Mapping[str, Any]], Any]] = {
    "charge": _charge_param,
    "invoice": _invoice_param,
    "subscription": _subscription_param,
    "checkout.session": _checkout_session_param,
    "subscription_item": _subscription_item_param,
    "price": _price_param,
}


def get_object_param(name: str, obj: Optional[Mapping[str, Any]]) -> Any:
    """Read ``name`` from a Stripe object, normalised for reconciliation.

    Returns ``None`` for unsupported (name, object type) pairs.
    """
    if not obj:
        return None
    object_type = obj.get("object")
    accessor = _ACCESSORS.get(object_type or "")
    if accessor is None:
        logger.error("object_param_unknown_object", param=name, object_type=object_type)
        return None
    value = accessor(name, obj)
    if value is _MISSING:
        logger.debug("object_param_unsupported", param=name, object_type=object_type)
        return None
    return value
