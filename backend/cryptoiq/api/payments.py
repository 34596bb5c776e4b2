import json
import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cryptoiq.api.deps import get_current_user, get_paystack_client
from cryptoiq.config.settings import settings
from cryptoiq.db.session import get_session
from cryptoiq.errors import IntegrityError, UpstreamError, ValidationError
from cryptoiq.payments.entitlement import EntitlementService
from cryptoiq.payments.signature import verify_signature
from cryptoiq.providers.paystack import PaystackClient
from cryptoiq.schemas.auth import AuthenticatedUser
from cryptoiq.schemas.payments import (
    InitializeResponse,
    VerifyRequest,
    VerifyResponse,
    WebhookAck,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/paystack", tags=["payments"])


@router.post("/initialize", response_model=InitializeResponse)
async def initialize_payment(
    user: AuthenticatedUser = Depends(get_current_user),
    paystack: PaystackClient = Depends(get_paystack_client),
) -> InitializeResponse:
    if not user.email:
        raise ValidationError("An email address is required to start a payment")
    data = await paystack.initialize(
        email=user.email,
        amount=settings.paystack.premium_amount,
        currency=settings.paystack.currency,
        callback_url=f"{settings.frontend_url.rstrip('/')}/payment/callback",
        metadata={"user_id": user.id},
    )
    authorization_url = data.get("authorization_url")
    reference = data.get("reference")
    if not authorization_url or not reference:
        raise UpstreamError("Payment provider returned an incomplete transaction")
    return InitializeResponse(authorization_url=authorization_url, reference=reference)


@router.post("/verify", response_model=VerifyResponse)
async def verify_payment(
    payload: VerifyRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    paystack: PaystackClient = Depends(get_paystack_client),
    db: AsyncSession = Depends(get_session),
) -> VerifyResponse:
    return await EntitlementService(db).verify_payment(user, payload.reference, paystack)


@router.post("/webhook", response_model=WebhookAck)
async def paystack_webhook(
    request: Request,
    x_paystack_signature: str | None = Header(default=None),
    db: AsyncSession = Depends(get_session),
) -> WebhookAck:
    # The signature covers the exact bytes sent; hash them before any parsing.
    raw_body = await request.body()
    if not verify_signature(raw_body, x_paystack_signature, settings.paystack.secret_key):
        logger.warning("Rejected webhook with invalid signature")
        raise IntegrityError("Invalid signature")

    try:
        event = json.loads(raw_body)
    except ValueError as exc:
        raise ValidationError("Malformed webhook payload") from exc
    if not isinstance(event, dict):
        raise ValidationError("Malformed webhook payload")

    await EntitlementService(db).handle_webhook_event(event)
    return WebhookAck()
