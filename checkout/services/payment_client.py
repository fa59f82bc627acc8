"""
Midtrans Snap integration: POST the transaction to the Snap API and return its answer.
Gateway answers (any status) are returned; transport failures raise GatewayUnavailableError.
"""
from __future__ import annotations

from typing import Any

import httpx

from checkout.config import get_settings
from checkout.core.logging import StructuredLogger

GATEWAY = "midtrans"


class GatewayUnavailableError(Exception):
    """Snap could not be reached (connect error, timeout, ...)."""


def _parse_body(resp: httpx.Response) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {"raw_response": resp.text}
    return body if isinstance(body, dict) else {"data": body}


async def request_snap_token(params: dict[str, Any], log: StructuredLogger) -> tuple[int, dict[str, Any]]:
    """
    POST params to the Snap transactions endpoint using Basic auth (server key, empty password).
    Returns (status_code, response_body).
    """
    settings = get_settings()
    url = settings.midtrans_snap_url
    if not settings.midtrans_server_key:
        log.warn("Midtrans server key is not configured", {"gateway": GATEWAY})

    log.log_api_call(GATEWAY, url, "POST", params)
    timer = log.start_timer("midtrans_snap_request")
    try:
        async with httpx.AsyncClient(timeout=settings.midtrans_request_timeout) as client:
            resp = await client.post(
                url,
                json=params,
                auth=(settings.midtrans_server_key, ""),
                headers={"Accept": "application/json"},
            )
    except httpx.HTTPError as e:
        elapsed = timer.end()
        log.log_api_response(GATEWAY, None, False, elapsed)
        raise GatewayUnavailableError(str(e) or type(e).__name__) from e

    elapsed = timer.end()
    body = _parse_body(resp)
    log.log_api_response(GATEWAY, resp.status_code, resp.is_success, elapsed)
    log.debug("Midtrans response body", {"body": body})
    return resp.status_code, body
