from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, StrictBool, StrictFloat, StrictInt, StrictStr


class PaymentTokenRequest(BaseModel):
    """POST /api/v1/payments/token body. Either amount or encrypted_token."""

    model_config = ConfigDict(extra="ignore")

    # No coercion: JSON true must reach normalize_amount as a bool, not as 1.
    amount: Optional[Union[StrictInt, StrictFloat, StrictStr, StrictBool]] = None
    item_name: Optional[str] = None
    encrypted_token: Optional[str] = None


class PaymentTokenData(BaseModel):
    token: str
    redirect_url: Optional[str] = None
    order_id: str
    amount: int
    notification: Optional[dict[str, Any]] = None


class PaymentTokenResponse(BaseModel):
    success: bool = True
    data: PaymentTokenData


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: Optional[Any] = None
