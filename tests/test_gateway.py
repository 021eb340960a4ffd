import json

import httpx
import pytest

from paycore.gateway import PaymentGatewayClient, PaymentGatewayError, map_gateway_status
from paycore.models import PaymentRequest

GATEWAY_URL = "https://gateway.test/functions/v1/lenco-payment"


def make_client(handler):
    transport = httpx.MockTransport(handler)
    return PaymentGatewayClient(GATEWAY_URL, timeout=2, client=httpx.AsyncClient(transport=transport))


def mobile_money_request(**overrides):
    fields = {
        "amount": 100,
        "payment_method": "mobile_money",
        "phone_number": "0971234567",
        "provider": "mtn",
        "description": "<i>Logo</i> design",
    }
    fields.update(overrides)
    return PaymentRequest(**fields)


@pytest.mark.asyncio
async def test_successful_initiation_returns_transaction_id():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"data": {"success": True, "transaction_id": "TXN1"}, "error": None})

    client = make_client(handler)
    outcome = await client.initiate(mobile_money_request(), reference="WC_1_ABC", currency="ZMW")

    assert outcome.success is True
    assert outcome.transaction_id == "TXN1"
    assert outcome.error_message is None
    assert outcome.failure_kind is None
    assert outcome.reference == "WC_1_ABC"

    body = seen[0]
    assert body["action"] == "initialize"
    assert body["amount"] == 100
    assert body["paymentMethod"] == "mobile_money"
    assert body["phoneNumber"] == "0971234567"
    assert body["provider"] == "mtn"
    assert body["description"] == "Logo design"
    assert body["currency"] == "ZMW"
    assert "email" not in body


@pytest.mark.asyncio
async def test_card_payload_drops_provider_and_keeps_redirect_url():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "data": {"success": True, "transaction_id": "TXN2", "payment_url": "https://pay.test/abc"},
                "error": None,
            },
        )

    client = make_client(handler)
    outcome = await client.initiate(
        mobile_money_request(payment_method="card", phone_number=None, email="buyer@example.com")
    )

    assert outcome.payment_url == "https://pay.test/abc"
    assert "provider" not in seen[0]
    assert seen[0]["email"] == "buyer@example.com"


@pytest.mark.asyncio
async def test_transport_failure_is_reported_as_transport():
    def handler(request):
        raise httpx.ConnectError("Network error")

    outcome = await make_client(handler).initiate(mobile_money_request())

    assert outcome.success is False
    assert outcome.error_message == "Network error"
    assert outcome.failure_kind == "transport"
    assert outcome.transaction_id is None


@pytest.mark.asyncio
async def test_timeout_is_reported_as_transport():
    def handler(request):
        raise httpx.ReadTimeout("timed out")

    outcome = await make_client(handler).initiate(mobile_money_request())

    assert outcome.failure_kind == "transport"
    assert outcome.error_message == "timed out"


@pytest.mark.asyncio
async def test_business_failure_carries_gateway_reason():
    def handler(request):
        return httpx.Response(200, json={"data": {"success": False, "error": "Insufficient funds"}, "error": None})

    outcome = await make_client(handler).initiate(mobile_money_request())

    assert outcome.success is False
    assert outcome.error_message == "Insufficient funds"
    assert outcome.failure_kind == "declined"


@pytest.mark.asyncio
async def test_transport_and_business_failures_are_distinguishable():
    def network_down(request):
        raise httpx.ConnectError("Network error")

    def declined(request):
        return httpx.Response(200, json={"data": {"success": False, "error": "Network error"}, "error": None})

    down = await make_client(network_down).initiate(mobile_money_request())
    refused = await make_client(declined).initiate(mobile_money_request())

    assert down.error_message == refused.error_message
    assert down.failure_kind != refused.failure_kind


@pytest.mark.asyncio
async def test_error_envelope_is_a_decline():
    def handler(request):
        return httpx.Response(400, json={"data": None, "error": {"message": "Unsupported provider"}})

    outcome = await make_client(handler).initiate(mobile_money_request())

    assert outcome.failure_kind == "declined"
    assert outcome.error_message == "Unsupported provider"


@pytest.mark.asyncio
async def test_unreadable_response():
    def handler(request):
        return httpx.Response(502, text="Bad gateway")

    outcome = await make_client(handler).initiate(mobile_money_request())

    assert outcome.success is False
    assert outcome.failure_kind == "declined"
    assert "HTTP 502" in outcome.error_message


@pytest.mark.asyncio
async def test_success_without_transaction_id_is_not_trusted():
    def handler(request):
        return httpx.Response(200, json={"data": {"success": True}, "error": None})

    outcome = await make_client(handler).initiate(mobile_money_request())

    assert outcome.success is False
    assert "transaction id" in outcome.error_message


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("success", "completed"),
        ("SUCCESSFUL", "completed"),
        ("pending", "queued"),
        ("processing", "processing"),
        ("failed", "failed"),
        ("abandoned", "cancelled"),
        ("cancelled", "cancelled"),
        ("weird", None),
        (None, None),
    ],
)
def test_map_gateway_status(raw, expected):
    assert map_gateway_status(raw) == expected


@pytest.mark.asyncio
async def test_verify_maps_status_record():
    def handler(request):
        assert json.loads(request.content) == {"action": "verify", "reference": "R1"}
        return httpx.Response(
            200,
            json={
                "data": {
                    "status": "success",
                    "amount": 100,
                    "currency": "ZMW",
                    "reference": "R1",
                    "id": "TXN1",
                    "paid_at": "2026-10-19T10:00:00Z",
                },
                "error": None,
            },
        )

    record = await make_client(handler).verify("R1")

    assert record.status == "completed"
    assert record.transaction_id == "TXN1"
    assert record.amount == 100


@pytest.mark.asyncio
async def test_verify_unknown_reference_returns_none():
    def handler(request):
        return httpx.Response(200, json={"data": None, "error": None})

    assert await make_client(handler).verify("nope") is None


@pytest.mark.asyncio
async def test_verify_error_envelope_raises():
    def handler(request):
        return httpx.Response(500, json={"data": None, "error": {"message": "Lenco unavailable"}})

    with pytest.raises(PaymentGatewayError, match="Lenco unavailable"):
        await make_client(handler).verify("R1")


@pytest.mark.asyncio
async def test_redirect_loop_is_reported_as_transport():
    def handler(request):
        return httpx.Response(302, headers={"location": GATEWAY_URL})

    client = PaymentGatewayClient(
        GATEWAY_URL,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True),
    )
    outcome = await client.initiate(mobile_money_request())

    assert outcome.success is False
    assert outcome.failure_kind == "transport"


@pytest.mark.asyncio
async def test_undecodable_body_is_reported_as_transport():
    def handler(request):
        return httpx.Response(200, headers={"content-encoding": "gzip"}, content=b"not gzip")

    outcome = await make_client(handler).initiate(mobile_money_request())

    assert outcome.success is False
    assert outcome.failure_kind == "transport"


@pytest.mark.asyncio
async def test_unexpected_client_error_does_not_escape():
    def handler(request):
        raise RuntimeError("boom")

    outcome = await make_client(handler).initiate(mobile_money_request(), reference="WC_1_ABC")

    assert outcome.success is False
    assert outcome.failure_kind == "transport"
    assert outcome.error_message == "Unable to reach the payment service"
    assert outcome.reference == "WC_1_ABC"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(502, text="<html>Bad gateway</html>"),
        httpx.Response(200, json=[1]),
        httpx.Response(200, json={"data": "x", "error": None}),
    ],
)
async def test_verify_unreadable_reply_raises(response):
    def handler(request):
        return response

    with pytest.raises(PaymentGatewayError, match="Invalid"):
        await make_client(handler).verify("R1")
