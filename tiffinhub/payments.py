"""Stripe Checkout sessions used as customer renewal links."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

import stripe
from flask import current_app

from .extensions import db
from .models import Customer, PaymentLink, User
from .utils.dates import utcnow

logger = logging.getLogger(__name__)

LINK_TTL = timedelta(hours=24)


def can_take_payments(merchant: User) -> bool:
    return bool(
        current_app.config.get("STRIPE_SECRET_KEY")
        and merchant.stripe_connect_account_id
        and merchant.payment_account_connected
        and merchant.payment_verification_status == "verified"
    )


def platform_fee(amount: float, merchant: User) -> int:
    fee_percentage = merchant.fee_percentage or current_app.config.get("DEFAULT_FEE_PERCENTAGE", 3.5)
    return round(amount * fee_percentage / 100)


def create_renewal_link(merchant: User, customer: Customer, description: str) -> Optional[PaymentLink]:
    """Open a Checkout session on the merchant's connected account.

    The PaymentLink row is staged on the session; the caller commits. Returns
    None when the merchant cannot take payments or the customer owes nothing.
    Stripe failures propagate as ``stripe.StripeError``.
    """
    amount = customer.payment_amount or 0
    if amount <= 0 or not can_take_payments(merchant):
        return None

    currency = (merchant.currency or current_app.config.get("DEFAULT_CURRENCY", "aed")).lower()
    fee = platform_fee(amount, merchant)
    app_url = current_app.config.get("FRONTEND_URL", "").rstrip("/")

    session = stripe.checkout.Session.create(
        mode="payment",
        payment_method_types=["card"],
        line_items=[{
            "price_data": {
                "currency": currency,
                "product_data": {"name": description},
                "unit_amount": round(amount * 100),
            },
            "quantity": 1,
        }],
        payment_intent_data={
            "application_fee_amount": fee * 100,
            "metadata": {"customer_id": customer.id, "merchant_email": merchant.email},
        },
        metadata={
            "customer_id": customer.id,
            "customer_owner_email": merchant.email,
            "amount": str(amount),
        },
        success_url=f"{app_url}/PaymentSuccess?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{app_url}/PaymentCancelled?session_id={{CHECKOUT_SESSION_ID}}",
        api_key=current_app.config["STRIPE_SECRET_KEY"],
        stripe_account=merchant.stripe_connect_account_id,
    )
    logger.info("Created checkout session %s for customer %s", session.id, customer.id)

    link = PaymentLink(
        customer_id=customer.id,
        customer_name=customer.full_name,
        amount=amount,
        currency=currency.upper(),
        description=description,
        status="pending",
        stripe_checkout_session_id=session.id,
        checkout_url=session.url,
        expires_at=utcnow() + LINK_TTL,
        platform_fee_amount=fee,
        net_amount=amount - fee,
        created_by=merchant.id,
    )
    db.session.add(link)
    return link
