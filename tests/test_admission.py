from application.dtos.webhooks import GatewayEvent, WebhookProcessingConfig
from application.services.ingestion_gate import AdmissionDecision, decide_admission, extract_identifiers
from domain.webhook.entity import QueuedWebhook


CONFIG = WebhookProcessingConfig(delayed_events=frozenset({"invoice.finalized"}))


def _pending(trigger: str, event_id: str = "evt_0") -> QueuedWebhook:
    return QueuedWebhook(id=1, processor_id=1, event_id=event_id, trigger=trigger, identifier="::in_1:sub_1")


def test_nothing_pending_processes_now_unless_delayed():
    assert decide_admission("invoice.paid", [], CONFIG) == AdmissionDecision.PROCESS_NOW
    assert decide_admission("invoice.finalized", [], CONFIG) == AdmissionDecision.QUEUE


def test_same_trigger_pending_is_suppressed():
    assert decide_admission("invoice.paid", [_pending("invoice.paid")], CONFIG) == AdmissionDecision.SUPPRESS


def test_non_delayed_pending_queues_behind_it():
    pending = [_pending("invoice.finalized"), _pending("charge.succeeded")]
    assert decide_admission("invoice.paid", pending, CONFIG) == AdmissionDecision.QUEUE


def test_only_delayed_pending_processes_now():
    assert decide_admission("invoice.paid", [_pending("invoice.finalized")], CONFIG) == AdmissionDecision.PROCESS_NOW


def test_charge_identifiers_come_from_expanded_invoice():
    event = GatewayEvent(id="evt_1", type="charge.succeeded", data={"object": {
        "object": "charge",
        "id": "ch_1",
        "payment_intent": "pi_1",
        "customer": "cus_1",
        "invoice": {"object": "invoice", "id": "in_1", "subscription": "sub_1"},
    }})
    ids = extract_identifiers(event)
    assert ids.correlation_key == "pi_1:ch_1:in_1:sub_1"
    assert ids.customer_id == "cus_1"


def test_invoice_identifiers():
    event = GatewayEvent(id="evt_2", type="invoice.paid", data={"object": {
        "object": "invoice", "id": "in_1", "charge": None, "subscription": "sub_1",
    }})
    assert extract_identifiers(event).correlation_key == "::in_1:sub_1"
