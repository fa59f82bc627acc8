"""
Merchant webhook: POST a payment event to the merchant backend before the gateway call.
Failures are logged and returned as {"error": ...}; they never fail the payment.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from checkout.config import get_settings
from checkout.core.logging import StructuredLogger


async def notify_webhook(event: dict[str, Any], log: StructuredLogger) -> Optional[dict[str, Any]]:
    """
    POST event to WEBHOOK_URL. Returns the parsed response body, or None when no webhook is configured.
    """
    settings = get_settings()
    url = settings.webhook_url
    if not url:
        return None

    timer = log.start_timer("webhook_notification")
    try:
        async with httpx.AsyncClient(timeout=settings.webhook_request_timeout) as client:
            resp = await client.post(
                url,
                json=event,
                headers={"User-Agent": settings.webhook_user_agent},
            )
    except httpx.HTTPError as e:
        log.log_webhook_sent(url, False, None, timer.end())
        log.error("Webhook notification failed", e, {"webhookEvent": event.get("event")})
        return {"error": str(e) or type(e).__name__}

    log.log_webhook_sent(url, resp.is_success, resp.status_code, timer.end())
    try:
        body = resp.json()
    except ValueError:
        return {"success": resp.is_success, "raw_response": resp.text}
    return body if isinstance(body, dict) else {"success": resp.is_success, "data": body}
