from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError as DBIntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cryptoiq.db.models import ROLE_FREE, ROLE_PREMIUM, Payment, Profile
from cryptoiq.errors import ForbiddenError, StoreError, ValidationError
from cryptoiq.schemas.auth import AuthenticatedUser
from cryptoiq.schemas.payments import VerifyResponse

logger = logging.getLogger(__name__)

CHARGE_SUCCESS = "charge.success"
STATUS_SUCCESS = "success"


class PaymentVerifier(Protocol):
    async def verify(self, reference: str) -> dict: ...


def _metadata_user_id(data: dict) -> str | None:
    metadata = data.get("metadata")
    if not isinstance(metadata, dict):
        return None
    user_id = metadata.get("user_id")
    return str(user_id) if user_id is not None else None


async def get_or_create_profile(session: AsyncSession, user: AuthenticatedUser) -> Profile:
    try:
        profile = await session.get(Profile, user.id)
        if profile is not None:
            return profile
        session.add(Profile(id=user.id, email=user.email, role=ROLE_FREE))
        try:
            await session.commit()
        except DBIntegrityError:
            # A concurrent first request for the same user inserted the row.
            await session.rollback()
        profile = await session.get(Profile, user.id)
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StoreError.from_exception(exc) from exc
    return profile


class EntitlementService:
    """Upgrades a user to premium at most once per payment reference."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _payment_exists(self, reference: str) -> bool:
        result = await self.session.execute(
            select(Payment.id).where(Payment.reference == reference)
        )
        return result.scalar_one_or_none() is not None

    async def _record_and_upgrade(self, profile: Profile, data: dict) -> None:
        profile_id = profile.id
        reference = str(data.get("reference"))
        if not await self._payment_exists(reference):
            self.session.add(
                Payment(
                    user_id=profile_id,
                    reference=reference,
                    status=data.get("status") or STATUS_SUCCESS,
                    amount=data.get("amount"),
                    currency=data.get("currency"),
                    channel=data.get("channel"),
                )
            )
        profile.role = ROLE_PREMIUM
        try:
            await self.session.commit()
        except DBIntegrityError:
            # The same reference was recorded concurrently; the upgrade still applies.
            await self.session.rollback()
            profile = await self.session.get(Profile, profile_id)
            profile.role = ROLE_PREMIUM
            await self.session.commit()

    async def verify_payment(
        self, user: AuthenticatedUser, reference: str | None, paystack: PaymentVerifier
    ) -> VerifyResponse:
        reference = (reference or "").strip()
        if not reference:
            raise ValidationError("Payment reference is required")

        data = await paystack.verify(reference)
        if data.get("status") != STATUS_SUCCESS:
            raise ValidationError("Payment not successful")
        if _metadata_user_id(data) != user.id:
            logger.warning("Payment %s claimed by user %s it does not belong to", reference, user.id)
            raise ForbiddenError("Payment does not belong to this user")

        profile = await get_or_create_profile(self.session, user)
        if profile.is_premium:
            return VerifyResponse(success=True, message="Already premium")

        try:
            await self._record_and_upgrade(profile, {**data, "reference": reference})
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreError.from_exception(exc) from exc
        logger.info("User %s upgraded to premium via %s", user.id, reference)
        return VerifyResponse(success=True, message="Account upgraded to premium")

    async def handle_webhook_event(self, event: dict) -> bool:
        """Apply a verified provider event; returns True when a profile was upgraded."""
        if event.get("event") != CHARGE_SUCCESS:
            logger.info("Ignoring webhook event %s", event.get("event"))
            return False

        data = event.get("data")
        customer = data.get("customer") if isinstance(data, dict) else None
        if not isinstance(customer, dict):
            logger.warning("Malformed charge.success webhook payload")
            return False
        email = str(customer.get("email") or "").strip().lower()
        if not email or not data.get("reference"):
            logger.warning("charge.success webhook without customer email or reference")
            return False

        try:
            result = await self.session.execute(
                select(Profile).where(func.lower(Profile.email) == email)
            )
            profile = result.scalars().first()
            if profile is None:
                logger.info("No profile for webhook customer %s", email)
                return False
            profile_id = profile.id
            await self._record_and_upgrade(profile, data)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise StoreError.from_exception(exc) from exc
        logger.info("User %s upgraded to premium via webhook %s", profile_id, data.get("reference"))
        return True
