"""
Payments API - turn a cart amount (or encrypted checkout token) into a Midtrans Snap token.
Errors use the {success: false, error} envelope with a non-2xx status.
"""
import json

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from checkout.core.logging import StructuredLogger, create_logger
from checkout.schemas.payment import ErrorResponse, PaymentTokenRequest, PaymentTokenResponse
from checkout.services.payment_service import PaymentError, create_payment_token

router = APIRouter(prefix="/payments", tags=["payments"])


def get_request_logger(request: Request) -> StructuredLogger:
    """Logger created by the correlation middleware; a fresh one outside of it."""
    log = getattr(request.state, "logger", None)
    return log if log is not None else create_logger(request.headers)


def _error(log: StructuredLogger, status_code: int, message: str, details=None) -> JSONResponse:
    content = ErrorResponse(error=message, details=details).model_dump(exclude_none=True)
    log.log_response(status_code, False, len(json.dumps(content, default=str)))
    return JSONResponse(content=content, status_code=status_code)


@router.post(
    "/token",
    response_model=PaymentTokenResponse,
    summary="Create payment token",
    description="Validates the amount (or decrypts encrypted_token), notifies the merchant webhook and requests a Snap token.",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input or gateway refused the transaction"},
        502: {"model": ErrorResponse, "description": "Payment gateway unreachable"},
    },
)
async def create_token(
    request: Request,
    log: StructuredLogger = Depends(get_request_logger),
):
    raw = await request.body()
    try:
        payload = json.loads(raw or b"{}")
    except ValueError:
        log.log_request(request.method, request.headers, None)
        log.log_validation_error("body", raw[:100].decode("utf-8", "replace"), "Malformed JSON")
        return _error(log, status.HTTP_400_BAD_REQUEST, "Invalid JSON body")

    log.log_request(request.method, request.headers, payload)
    try:
        body = PaymentTokenRequest.model_validate(payload)
    except ValidationError as e:
        log.log_validation_error("body", payload, f"{e.error_count()} validation error(s)")
        return _error(log, status.HTTP_400_BAD_REQUEST, "Invalid request body")

    try:
        data = await create_payment_token(body, log)
    except PaymentError as e:
        return _error(log, e.status_code, e.message, e.details)

    response = PaymentTokenResponse(data=data)
    log.log_response(status.HTTP_200_OK, True, len(response.model_dump_json()))
    return response
