from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.contribution.entity import Contribution, ContributionStatus
from domain.webhook.entity import QueuedWebhook, WebhookStatus, truncate_message


def _contribution(**kwargs) -> Contribution:
    return Contribution(id=1, total_amount=Decimal("10.00"), currency="usd", **kwargs)


def test_trxn_ids_are_appended_once_in_order():
    contribution = _contribution(trxn_id="pi_1")
    contribution.add_trxn_ids("ch_1", None, "pi_1", "ch_1")
    assert contribution.trxn_id == "pi_1,ch_1"
    assert contribution.has_trxn_id("ch_1")
    assert not contribution.has_trxn_id("ch")
    assert contribution.currency == "USD"


def test_complete_sets_fee_and_net_amount():
    contribution = _contribution()
    contribution.complete(trxn_ids=["ch_1"], fee_amount=Decimal("0.59"))
    assert contribution.status == ContributionStatus.COMPLETED
    assert contribution.net_amount == Decimal("9.41")
    assert contribution.trxn_id == "ch_1"


def test_completed_contribution_cannot_be_completed_or_failed_again():
    contribution = _contribution(status=ContributionStatus.COMPLETED)
    with pytest.raises(DomainValidationException):
        contribution.complete(trxn_ids=["ch_1"])
    with pytest.raises(DomainValidationException):
        contribution.fail(cancel_reason="card_declined")


def test_partial_refund_keeps_status_and_full_refund_marks_refunded():
    contribution = _contribution(status=ContributionStatus.COMPLETED, trxn_id="ch_1")
    contribution.apply_refund("re_1", refunded_total=Decimal("4.00"), paid_total=Decimal("10.00"))
    assert contribution.status == ContributionStatus.COMPLETED
    contribution.apply_refund("re_2", refunded_total=Decimal("10.00"), paid_total=Decimal("10.00"))
    assert contribution.status == ContributionStatus.REFUNDED
    assert contribution.trxn_id == "ch_1,re_1,re_2"


def test_webhook_message_is_truncated_with_marker():
    assert truncate_message("x" * 10, max_length=5) == "xxxxx ..."
    assert truncate_message("short", max_length=5) == "short"

    webhook = QueuedWebhook(id=1, processor_id=1, event_id="evt_1", trigger="charge.succeeded", identifier="")
    webhook.mark_processed(False, "y" * 300)
    assert webhook.status == WebhookStatus.ERROR
    assert webhook.message.endswith(" ...")
    assert webhook.is_processed

    webhook.requeue()
    assert webhook.status == WebhookStatus.NEW
    assert not webhook.is_processed
