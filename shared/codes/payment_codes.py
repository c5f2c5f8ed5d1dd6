"""
Payment and webhook codes plus Stripe status mappings.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    RESOURCE_NOT_FOUND = 60005


class WebhookCode(IntEnum):
    # Webhook processing errors (7xxxx)
    PROCESSING_FAILED = 70000
    BALANCE_TRANSACTION_ERROR = 70001
    INVALID_PROCESSOR = 70003
    PROCESSOR_NOT_FOUND = 70004


# Stripe subscription.status -> ContributionRecur status
SUBSCRIPTION_STATUS_TO_RECUR = {
    "incomplete": "Failed",
    "incomplete_expired": "Failed",
    "trialing": "In Progress",
    "active": "In Progress",
    "past_due": "Overdue",
    "canceled": "Cancelled",
    "unpaid": "Failed",
}

# Stripe invoice.status -> Contribution status
INVOICE_STATUS_TO_CONTRIBUTION = {
    "draft": "Pending",
    "open": "Pending",
    "paid": "Completed",
    "void": "Cancelled",
    "uncollectible": "Failed",
}
