"""
Unit tests: amount validation, order ids, Snap request body and the payment flow.
"""
import re
from unittest.mock import AsyncMock, patch

import pytest

from checkout.config import Settings, get_settings
from checkout.core.logging import LogConfig, StructuredLogger
from checkout.core.security import encrypt_user_data
from checkout.schemas.payment import PaymentTokenRequest
from checkout.services.payment_client import GatewayUnavailableError
from checkout.services.payment_service import (
    PaymentError,
    PaymentOrder,
    build_snap_params,
    create_payment,
    create_payment_token,
    generate_order_id,
    normalize_amount,
)


@pytest.fixture
def log() -> StructuredLogger:
    return StructuredLogger(config=LogConfig())


@pytest.mark.parametrize(
    "value, expected",
    [(150000, 150000), (150000.0, 150000), ("150000", 150000), ("Rp 150.000", 150000)],
)
def test_normalize_amount_valid(value, expected):
    assert normalize_amount(value) == expected


@pytest.mark.parametrize("value", [None, 0, -5, 10.5, True, "abc", "0", [1]])
def test_normalize_amount_invalid(value):
    with pytest.raises(ValueError):
        normalize_amount(value)


def test_generate_order_id():
    assert re.fullmatch(r"ORDER_\d+_[0-9a-z]{4}", generate_order_id())
    assert re.fullmatch(r"NXP1_\d+", generate_order_id("NXP1"))


def test_build_snap_params():
    settings = Settings(payment_expiry_minutes=30)
    params = build_snap_params("ORDER_1", 150000, "Coffee", settings)

    assert params["transaction_details"] == {"order_id": "ORDER_1", "gross_amount": 150000}
    assert params["item_details"] == [{"id": "ITEM_001", "price": 150000, "quantity": 1, "name": "Coffee"}]
    assert params["customer_details"]["email"] == settings.customer_email
    assert "gopay" in params["enabled_payments"]
    assert params["expiry"]["unit"] == "minute"
    assert params["expiry"]["duration"] == 30
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} \+0700", params["expiry"]["start_time"])


@pytest.mark.asyncio
async def test_create_payment_success(log):
    snap = AsyncMock(return_value=(201, {"token": "snap-token", "redirect_url": "https://pay.test/snap-token"}))
    webhook = AsyncMock(return_value={"success": True})
    with patch("checkout.services.payment_service.request_snap_token", snap), \
            patch("checkout.services.payment_service.notify_webhook", webhook):
        data = await create_payment(PaymentOrder(amount=5000, item_name="Tea", token_type="legacy"), log)

    assert data["token"] == "snap-token"
    assert data["redirect_url"] == "https://pay.test/snap-token"
    assert data["amount"] == 5000
    assert data["notification"] == {"success": True}
    assert data["order_id"].startswith("ORDER_")
    event = webhook.await_args.args[0]
    assert event["event"] == "payment_initiated"
    assert event["order_id"] == data["order_id"]


@pytest.mark.asyncio
async def test_create_payment_gateway_refusal(log):
    snap = AsyncMock(return_value=(401, {"error_messages": ["Access denied"]}))
    with patch("checkout.services.payment_service.request_snap_token", snap), \
            patch("checkout.services.payment_service.notify_webhook", AsyncMock(return_value=None)):
        with pytest.raises(PaymentError) as exc_info:
            await create_payment(PaymentOrder(amount=5000, item_name="Tea", token_type="legacy"), log)

    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "Failed to generate payment token"
    assert exc_info.value.details == {"error_messages": ["Access denied"]}


@pytest.mark.asyncio
async def test_create_payment_gateway_unreachable(log):
    snap = AsyncMock(side_effect=GatewayUnavailableError("timed out"))
    with patch("checkout.services.payment_service.request_snap_token", snap), \
            patch("checkout.services.payment_service.notify_webhook", AsyncMock(return_value=None)):
        with pytest.raises(PaymentError) as exc_info:
            await create_payment(PaymentOrder(amount=5000, item_name="Tea", token_type="legacy"), log)

    assert exc_info.value.status_code == 502
    assert exc_info.value.message == "Payment gateway error"


@pytest.mark.asyncio
async def test_invalid_amount_never_reaches_gateway(log, log_entries):
    snap = AsyncMock()
    with patch("checkout.services.payment_service.request_snap_token", snap):
        with pytest.raises(PaymentError, match="Invalid amount"):
            await create_payment_token(PaymentTokenRequest(amount=-1), log)

    snap.assert_not_awaited()
    [entry] = log_entries()
    assert entry["event"] == "Validation failed"
    assert entry["field"] == "amount"


@pytest.mark.parametrize("raw", [True, False])
def test_request_amount_not_coerced(raw):
    assert PaymentTokenRequest.model_validate({"amount": raw}).amount is raw


@pytest.mark.asyncio
async def test_boolean_amount_rejected(log):
    snap = AsyncMock()
    with patch("checkout.services.payment_service.request_snap_token", snap):
        with pytest.raises(PaymentError, match="Invalid amount"):
            await create_payment_token(PaymentTokenRequest.model_validate({"amount": True}), log)

    snap.assert_not_awaited()


@pytest.mark.asyncio
async def test_encrypted_token_flow(log):
    user_data = {"order_number": "NXP1", "amount_idr": 150000, "user_name": "Test User"}
    token = encrypt_user_data(user_data, get_settings().token_master_key)
    snap = AsyncMock(return_value=(201, {"token": "snap-token"}))
    webhook = AsyncMock(return_value=None)
    with patch("checkout.services.payment_service.request_snap_token", snap), \
            patch("checkout.services.payment_service.notify_webhook", webhook):
        data = await create_payment_token(PaymentTokenRequest(encrypted_token=token), log)

    assert data["amount"] == 150000
    assert data["order_id"].startswith("NXP1_")
    params = snap.await_args.args[0]
    assert params["item_details"][0]["name"] == "Payment for Test User"
    assert webhook.await_args.args[0]["user_data"] == user_data


@pytest.mark.asyncio
async def test_bad_encrypted_token(log):
    with pytest.raises(PaymentError, match="Token decryption failed"):
        await create_payment_token(PaymentTokenRequest(encrypted_token="not-a-real-token"), log)
