"""
Payment token creation: validate the amount (or decrypt a checkout token), notify the
merchant webhook, ask Midtrans Snap for a token and shape the result for the API layer.
"""
from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from checkout.config import Settings, get_settings
from checkout.core.logging import StructuredLogger
from checkout.core.security import TokenDecryptionError, decrypt_user_data
from checkout.schemas.payment import PaymentTokenRequest
from checkout.services.notification_client import notify_webhook
from checkout.services.payment_client import GATEWAY, GatewayUnavailableError, request_snap_token

ENABLED_PAYMENTS = [
    "credit_card", "gopay", "shopeepay", "other_qris",
    "bank_transfer", "bca_va", "bni_va", "bri_va",
]

# Snap expects start_time in the merchant's local time (WIB)
WIB = timezone(timedelta(hours=7))

_BASE36 = string.digits + string.ascii_lowercase


class PaymentError(Exception):
    """Raised for any failure the API should report as {success: false, error}."""

    def __init__(self, message: str, status_code: int = 400, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


@dataclass
class PaymentOrder:
    amount: int
    item_name: str
    token_type: str
    original_order: Optional[str] = None
    encrypted_token: Optional[str] = None
    user_data: Optional[dict[str, Any]] = None


def normalize_amount(value: Any) -> int:
    """
    Whole, positive IDR amount. Strings keep only their digits ("Rp 150.000" -> 150000).
    Raises ValueError with the reason otherwise.
    """
    if value is None or isinstance(value, bool):
        raise ValueError("Amount is required")
    if isinstance(value, str):
        digits = "".join(ch for ch in value if ch in string.digits)
        if not digits:
            raise ValueError("Amount must contain digits")
        amount = int(digits)
    elif isinstance(value, (int, float)):
        if isinstance(value, float) and not value.is_integer():
            raise ValueError("Amount must be a whole number")
        amount = int(value)
    else:
        raise ValueError("Amount must be a number")
    if amount <= 0:
        raise ValueError("Amount must be greater than zero")
    return amount


def generate_order_id(original_order: Optional[str] = None) -> str:
    now_ms = int(time.time() * 1000)
    if original_order:
        return f"{original_order}_{now_ms}"
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"ORDER_{now_ms}_{suffix}"


def build_snap_params(order_id: str, amount: int, item_name: str, settings: Settings) -> dict[str, Any]:
    return {
        "transaction_details": {
            "order_id": order_id,
            "gross_amount": amount,
        },
        "item_details": [{
            "id": "ITEM_001",
            "price": amount,
            "quantity": 1,
            "name": item_name,
        }],
        "customer_details": {
            "first_name": settings.customer_first_name,
            "last_name": settings.customer_last_name,
            "email": settings.customer_email,
        },
        "enabled_payments": list(ENABLED_PAYMENTS),
        "expiry": {
            "start_time": datetime.now(WIB).strftime("%Y-%m-%d %H:%M:%S %z"),
            "unit": "minute",
            "duration": settings.payment_expiry_minutes,
        },
    }


async def create_payment_token(body: PaymentTokenRequest, log: StructuredLogger) -> dict[str, Any]:
    """Entry point for POST /payments/token. Returns the `data` part of the success envelope."""
    if body.encrypted_token:
        order = _order_from_encrypted_token(body.encrypted_token, log)
    else:
        order = _order_from_amount(body, log)
    return await create_payment(order, log)


def _order_from_amount(body: PaymentTokenRequest, log: StructuredLogger) -> PaymentOrder:
    try:
        amount = normalize_amount(body.amount)
    except ValueError as e:
        log.log_validation_error("amount", body.amount, str(e))
        raise PaymentError("Invalid amount") from e
    log.log_validation_success("amount", amount)
    return PaymentOrder(amount=amount, item_name=body.item_name or "Payment", token_type="legacy")


def _order_from_encrypted_token(token: str, log: StructuredLogger) -> PaymentOrder:
    settings = get_settings()
    if not settings.token_master_key:
        log.warn("Encrypted token received but TOKEN_MASTER_KEY is not configured")
        raise PaymentError("Token decryption failed")
    try:
        user_data = decrypt_user_data(token, settings.token_master_key)
    except TokenDecryptionError as e:
        log.log_validation_error("encrypted_token", "<encrypted>", str(e))
        raise PaymentError("Token decryption failed") from e

    try:
        amount = normalize_amount(user_data.get("amount_idr"))
    except ValueError as e:
        log.log_validation_error("amount_idr", user_data.get("amount_idr"), str(e))
        raise PaymentError("Invalid amount") from e
    return PaymentOrder(
        amount=amount,
        item_name=f"Payment for {user_data.get('user_name', 'Customer')}",
        token_type="encrypted",
        original_order=user_data.get("order_number"),
        encrypted_token=token,
        user_data=user_data,
    )


async def create_payment(order: PaymentOrder, log: StructuredLogger) -> dict[str, Any]:
    """
    Notify the merchant webhook, then request a Snap token.
    Raises PaymentError (400 on gateway refusal, 502 when the gateway is unreachable).
    """
    settings = get_settings()
    order_id = generate_order_id(order.original_order)
    log = log.child({"gateway": GATEWAY, "orderId": order_id})
    log.log_payment_initiated(GATEWAY, order_id, order.amount, order.token_type)

    notification = await notify_webhook({
        "event": "payment_initiated",
        "order_id": order_id,
        "amount": order.amount,
        "token_type": order.token_type,
        "encrypted_token": order.encrypted_token,
        "user_data": order.user_data,
        "original_order": order.original_order,
    }, log)

    params = build_snap_params(order_id, order.amount, order.item_name, settings)
    try:
        status_code, response_body = await request_snap_token(params, log)
    except GatewayUnavailableError as e:
        log.error("Payment creation failed", e)
        raise PaymentError("Payment gateway error", status_code=502) from e

    token = response_body.get("token")
    if not (200 <= status_code < 300) or not token:
        messages = response_body.get("error_messages")
        log.log_payment_error(
            GATEWAY,
            order_id,
            "; ".join(map(str, messages)) if isinstance(messages, list) else "No token in gateway response",
            status_code,
        )
        raise PaymentError("Failed to generate payment token", details=response_body)

    log.log_payment_success(GATEWAY, order_id)
    return {
        "token": token,
        "redirect_url": response_body.get("redirect_url"),
        "order_id": order_id,
        "amount": order.amount,
        "notification": notification,
    }
