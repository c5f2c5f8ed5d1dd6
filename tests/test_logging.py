from api.middleware.logging import redact
from core.logging_config import mask_secrets
from core.response import error_json_response


def test_stripe_secrets_are_masked_in_log_events():
    event = mask_secrets(None, "info", {"event": "processor_loaded", "key": "sk_test_abcdefghijkl", "other": 3})
    assert event["key"] == "sk_***"
    assert event["other"] == 3

    event = mask_secrets(None, "info", {"event": "x", "msg": "secret whsec_0123456789 rejected"})
    assert event["msg"] == "secret whsec_*** rejected"


def test_redact_hides_card_details_at_any_depth():
    payload = {
        "id": "evt_1",
        "data": {"object": {"id": "ch_1", "payment_method_details": {"card": {"last4": "4242"}}}},
        "items": [{"client_secret": "pi_secret"}],
    }
    cleaned = redact(payload)
    assert cleaned["id"] == "evt_1"
    assert cleaned["data"]["object"]["payment_method_details"] == "***"
    assert cleaned["items"][0]["client_secret"] == "***"


def test_error_json_response_carries_envelope_and_status():
    response = error_json_response(503, 40003, "Service unavailable", error_type="Unavailable", request_id="abc")
    assert response.status_code == 503
    assert b'"request_id":"abc"' in response.body
    assert b'"type":"Unavailable"' in response.body
