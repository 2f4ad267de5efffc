import httpx
import pytest
from storefront.common.custom_exceptions import GatewayConfigError, GatewayError, ValidationFailed
from storefront.common.utils import normalize_mobile
from storefront.payments.utils import sign_payload, to_gateway_amount, valid_authority, verify_signature
from storefront.payments.zarinpal import ZarinpalGateway
from helpers import AUTHORITY, MERCHANT_ID

CALLBACK = "http://test/api/v1/payment/zarinpal/callback"


def test_gateway_amount_truncates_to_toman():
    assert to_gateway_amount(100000) == 10000
    assert to_gateway_amount(100009) == 10000
    assert to_gateway_amount(9) == 0


@pytest.mark.parametrize("raw,expected", [
    ("09121234567", "09121234567"),
    ("+98 912 123 4567", "09121234567"),
    ("00989121234567", "09121234567"),
    ("9121234567", "09121234567"),
    ("0212345678", None),
    ("", None),
    (None, None),
])
def test_normalize_mobile(raw, expected):
    assert normalize_mobile(raw) == expected


def test_authority_and_signature_helpers():
    assert valid_authority(AUTHORITY)
    assert not valid_authority("A000-111")
    assert not valid_authority("")

    body = b'{"authority":"A1","status":"OK"}'
    sig = sign_payload("secret", body)
    assert verify_signature("secret", body, sig)
    assert verify_signature("secret", body, sig.upper())
    assert not verify_signature("secret", body + b" ", sig)
    assert not verify_signature("secret", body, None)


@pytest.mark.asyncio
@pytest.mark.parametrize("merchant,code", [("", "MERCHANT_ID_MISSING"), ("short-merchant", "MERCHANT_ID_INVALID")])
async def test_merchant_is_validated_before_any_call(zarinpal, merchant, code):
    gateway = ZarinpalGateway(merchant_id=merchant, transport=httpx.MockTransport(zarinpal), backoff_base=0)

    with pytest.raises(GatewayConfigError) as exc:
        await gateway.request_payment(10000, "order", CALLBACK)
    assert exc.value.code == code
    with pytest.raises(GatewayConfigError):
        await gateway.verify_payment(AUTHORITY, 10000)
    assert zarinpal.calls == []


@pytest.mark.asyncio
async def test_request_payment_builds_payload_and_url(gateway, zarinpal):
    result = await gateway.request_payment(
        27900, "x" * 400, CALLBACK, mobile="+98 912 123 4567", email="not-an-email", order_id="ORD-2026-0000ABCD",
    )

    assert result.authority == AUTHORITY
    assert result.payment_url == f"https://sandbox.zarinpal.com/pg/StartPay/{AUTHORITY}"
    sent = zarinpal.calls[0]["json"]
    assert zarinpal.calls[0]["path"].endswith("/pg/v4/payment/request.json")
    assert sent["merchant_id"] == MERCHANT_ID
    assert sent["amount"] == 27900
    assert len(sent["description"]) == 255
    assert sent["callback_url"] == CALLBACK
    assert sent["metadata"] == {"mobile": "09121234567", "order_id": "ORD-2026-0000ABCD"}


@pytest.mark.asyncio
async def test_request_payment_input_validation(gateway, zarinpal):
    with pytest.raises(ValidationFailed) as exc:
        await gateway.request_payment(999, "order", CALLBACK)
    assert exc.value.code == "AMOUNT_TOO_LOW"

    with pytest.raises(ValidationFailed) as exc:
        await gateway.request_payment(10000, "order", "/relative/callback")
    assert exc.value.code == "CALLBACK_URL_INVALID"
    assert zarinpal.calls == []


@pytest.mark.asyncio
async def test_non_success_code_and_bad_authority(gateway, zarinpal):
    zarinpal.request_code = -9
    with pytest.raises(GatewayError) as exc:
        await gateway.request_payment(10000, "order", CALLBACK)
    assert exc.value.code == "GATEWAY_REJECTED"
    assert exc.value.transient is False

    zarinpal.request_code = 100
    zarinpal.authority = "A-0000/bad"
    with pytest.raises(GatewayError) as exc:
        await gateway.request_payment(10000, "order", CALLBACK)
    assert exc.value.code == "GATEWAY_BAD_RESPONSE"


@pytest.mark.asyncio
async def test_server_errors_are_retried(gateway, zarinpal):
    zarinpal.fail_statuses = [503, 502]

    result = await gateway.request_payment(10000, "order", CALLBACK)
    assert result.authority == AUTHORITY
    assert len(zarinpal.calls) == 3


@pytest.mark.asyncio
async def test_retries_give_up_as_transient_error(gateway, zarinpal):
    zarinpal.fail_statuses = [500, 500, 500, 500]

    with pytest.raises(GatewayError) as exc:
        await gateway.verify_payment(AUTHORITY, 10000)
    assert exc.value.transient is True
    assert exc.value.code == "GATEWAY_UNAVAILABLE"
    assert len(zarinpal.calls) == 3


@pytest.mark.asyncio
async def test_connection_errors_are_retried():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"data": {"code": 100, "ref_id": 7}, "errors": []})

    gateway = ZarinpalGateway(merchant_id=MERCHANT_ID, transport=httpx.MockTransport(handler), backoff_base=0)
    result = await gateway.verify_payment(AUTHORITY, 10000)
    assert result.ref_id == "7"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_error_bodies_are_not_retried(gateway, zarinpal):
    zarinpal.verify_error = {"code": -51, "message": "Session is not valid", "validations": []}

    with pytest.raises(GatewayError) as exc:
        await gateway.verify_payment(AUTHORITY, 10000)
    assert exc.value.transient is False
    assert exc.value.details["gateway_code"] == -51
    assert len(zarinpal.calls) == 1


@pytest.mark.asyncio
async def test_verify_accepts_already_verified(gateway, zarinpal):
    zarinpal.verify_code = 101
    result = await gateway.verify_payment(AUTHORITY, 27900)
    assert result.code == 101
    assert result.ref_id == "201"
    assert zarinpal.calls[0]["json"] == {"merchant_id": MERCHANT_ID, "authority": AUTHORITY, "amount": 27900}

    zarinpal.verify_code = 102
    with pytest.raises(GatewayError) as exc:
        await gateway.verify_payment(AUTHORITY, 27900)
    assert exc.value.code == "GATEWAY_VERIFY_FAILED"
