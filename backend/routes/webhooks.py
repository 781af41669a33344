"""
Provider webhooks — Razorpay payment events and Shiprocket status pushes.

Both endpoints are unauthenticated at the JWT level; Razorpay is verified by
HMAC over the raw body, Shiprocket by a shared token.
"""

import json
import logging

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from domain.errors import ValidationError
from services import payment_service, shipment_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/razorpay")
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: str | None = Header(None, alias="X-Razorpay-Signature"),
    db: AsyncSession = Depends(get_db),
):
    # The signature covers the exact bytes Razorpay sent
    raw_body = await request.body()
    result = await payment_service.handle_webhook(db, raw_body=raw_body, signature=x_razorpay_signature)
    await db.commit()
    return result


@router.post("/shiprocket")
async def shiprocket_webhook(
    request: Request,
    x_api_key: str | None = Header(None, alias="x-api-key"),
    token: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    try:
        payload = json.loads(await request.body())
    except ValueError:
        raise ValidationError("webhook body is not valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("webhook body must be a JSON object")

    result = await shipment_service.handle_webhook(db, payload=payload, token=x_api_key or token)
    await db.commit()
    return result
