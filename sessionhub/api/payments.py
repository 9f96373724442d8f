"""Payment endpoints: commission breakdown and payment intents"""

import asyncio
import logging
from typing import Any

import stripe
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from sessionhub.api.deps import get_settings
from sessionhub.config import Settings
from sessionhub.exceptions import InvalidAmount
from sessionhub.services.commission import CommissionCalculator

logger = logging.getLogger(__name__)
router = APIRouter()


# Request/Response Models
class BreakdownRequest(BaseModel):
    base_amount: int = Field(..., description="Base price in minor currency units")


class PaymentIntentRequest(BaseModel):
    base_amount: int = Field(..., description="Base price in minor currency units")
    provider_id: str = Field(..., min_length=1)
    currency: str = Field(default="usd", min_length=3, max_length=3)
    metadata: dict[str, str] = Field(default_factory=dict)


@router.post("/breakdown")
async def commission_breakdown(
    request: BreakdownRequest,
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Preview what the requester pays and how it is split"""
    calculator = CommissionCalculator(settings)
    try:
        breakdown = calculator.calculate(request.base_amount)
    except InvalidAmount as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "breakdown": breakdown.to_dict(), "model": calculator.describe()}


@router.post("/intents")
async def create_payment_intent(
    request: PaymentIntentRequest,
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Create a Stripe PaymentIntent charging the total amount of the breakdown"""
    if not settings.is_payments_configured():
        raise HTTPException(status_code=503, detail="Payment functionality is disabled")

    try:
        breakdown = CommissionCalculator(settings).calculate(request.base_amount)
    except InvalidAmount as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info("Creating payment intent", extra={"provider_id": request.provider_id, **breakdown.to_dict()})

    stripe.api_key = settings.stripe_secret_key
    try:
        intent = await asyncio.to_thread(
            stripe.PaymentIntent.create,
            amount=breakdown.total_amount,
            currency=request.currency.lower(),
            metadata={**request.metadata, **breakdown.to_metadata(), "provider_id": request.provider_id},
            automatic_payment_methods={"enabled": True},
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe error creating payment intent: {e}")
        raise HTTPException(status_code=502, detail="Payment processor error")

    return {
        "success": True,
        "client_secret": intent["client_secret"],
        "payment_intent_id": intent["id"],
        "breakdown": breakdown.to_dict(),
    }
