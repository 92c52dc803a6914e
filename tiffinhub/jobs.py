from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Iterable, Optional

import stripe
from sqlalchemy.exc import SQLAlchemyError

from .errors import MessagingError
from .extensions import db
from .models import Customer, DeliveryItem, DriverLocation, MealRating, User
from .payments import can_take_payments, create_renewal_link
from .utils.dates import utcnow
from .utils.whatsapp import send_whatsapp_message

logger = logging.getLogger(__name__)

REMINDER_LEAD_DAYS = 3
RATING_INTERVAL_DAYS = 15
RETENTION = timedelta(hours=24)

JOB_FAILURES = (MessagingError, SQLAlchemyError, stripe.StripeError)


def _day_bounds(day) -> tuple:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def _format_day(value: Optional[datetime]) -> str:
    return value.strftime('%d %b %Y') if value else 'N/A'


def _money(merchant: User, amount) -> str:
    return f"{(merchant.currency or 'aed').upper()} {amount}"


def _connected_merchants() -> Iterable[User]:
    return (
        User.query
        .filter(User.stripe_connect_account_id.is_not(None))
        .filter(User.payment_account_connected.is_(True))
        .filter(User.payment_verification_status == 'verified')
        .all()
    )


def _reminder_candidates(merchant: User, flag, start: datetime, end: datetime):
    return (
        Customer.query
        .filter(Customer.created_by == merchant.id)
        .filter(Customer.is_deleted.is_(False))
        .filter(Customer.active.is_(True))
        .filter(Customer.end_date >= start, Customer.end_date < end)
        .filter((flag.is_(None)) | (flag.is_(False)))
        .filter(Customer.phone_number.is_not(None))
        .all()
    )


def _send_upcoming_reminder(merchant: User, customer: Customer) -> None:
    link = create_renewal_link(merchant, customer, 'Tiffin Subscription Renewal')
    pay_line = f"\n\nPay securely here: {link.checkout_url}" if link else ''
    send_whatsapp_message(
        customer.phone_number,
        f"Payment Reminder\n\nHello {customer.full_name},\n\n"
        f"Your tiffin subscription ends in {REMINDER_LEAD_DAYS} days on {_format_day(customer.end_date)}.\n\n"
        f"Amount: {_money(merchant, customer.payment_amount)}{pay_line}\n\nThank you!",
        template='PAYMENT_REMINDER_LINK' if link else 'PAYMENT_REMINDER',
    )
    customer.reminder_before_sent = True
    db.session.commit()


def _send_overdue_reminder(merchant: User, customer: Customer) -> None:
    link = create_renewal_link(merchant, customer, 'Tiffin Subscription Renewal - Overdue')
    pay_line = f"\n\nPay now to continue: {link.checkout_url}" if link else ''
    send_whatsapp_message(
        customer.phone_number,
        f"Payment Overdue\n\nHello {customer.full_name},\n\n"
        f"Your subscription expired on {_format_day(customer.end_date)} and payment is overdue.\n\n"
        f"Amount Due: {_money(merchant, customer.payment_amount)}{pay_line}\n\nThank you!",
        template='PAYMENT_OVERDUE',
    )
    customer.status = 'inactive'
    customer.inactive_reason = 'non_payment'
    customer.active = False
    customer.reminder_after_sent = True
    customer.payment_status = 'Overdue'
    db.session.commit()


def run_auto_payment_reminders(now: Optional[datetime] = None) -> dict:
    """Remind customers whose subscription ends in three days or ended three days ago.

    Only merchants with a verified Stripe Connect account take part. The
    ``reminder_*_sent`` flags keep each customer from being reminded twice.
    """
    today = (now or utcnow()).date()
    upcoming = _day_bounds(today + timedelta(days=REMINDER_LEAD_DAYS))
    overdue = _day_bounds(today - timedelta(days=REMINDER_LEAD_DAYS))

    before_count = 0
    after_count = 0
    for merchant in _connected_merchants():
        for customer in _reminder_candidates(merchant, Customer.reminder_before_sent, *upcoming):
            if not customer.phone_number or not customer.payment_amount:
                continue
            try:
                _send_upcoming_reminder(merchant, customer)
                before_count += 1
            except JOB_FAILURES:
                db.session.rollback()
                logger.exception('Payment reminder failed for customer %s', customer.id)

        for customer in _reminder_candidates(merchant, Customer.reminder_after_sent, *overdue):
            if not customer.phone_number or not customer.payment_amount:
                continue
            try:
                _send_overdue_reminder(merchant, customer)
                after_count += 1
            except JOB_FAILURES:
                db.session.rollback()
                logger.exception('Overdue reminder failed for customer %s', customer.id)

    return {'success': True, 'beforeReminders': before_count, 'afterReminders': after_count}


def run_trial_expiry_check(now: Optional[datetime] = None) -> dict:
    """Close out customer trials that have ended.

    Customers are deactivated after messaging, so a second run selects none
    of them again.
    """
    now = now or utcnow()
    customers = (
        Customer.query
        .filter(Customer.is_trial.is_(True))
        .filter((Customer.trial_converted.is_(None)) | (Customer.trial_converted.is_(False)))
        .filter(Customer.active.is_(True))
        .filter(Customer.trial_end_date <= now)
        .filter(Customer.phone_number.is_not(None))
        .all()
    )

    sent = 0
    for customer in customers:
        if not customer.phone_number:
            continue
        merchant = db.session.get(User, customer.created_by)
        if merchant is None:
            continue
        try:
            link = None
            if can_take_payments(merchant):
                link = create_renewal_link(merchant, customer, 'Tiffin Subscription - Convert from Trial')
            pay_line = f"\n\nSubscribe now: {link.checkout_url}" if link else ''
            send_whatsapp_message(
                customer.phone_number,
                f"Hello {customer.full_name},\n\nYour free trial has ended! "
                "We hope you enjoyed our tiffin service.\n\n"
                "To continue without interruption, please subscribe.\n\n"
                f"Amount: {_money(merchant, customer.payment_amount)}/month{pay_line}\n\nThank you!",
                template='SERVICE_ENDED',
            )
            customer.active = False
            customer.status = 'inactive'
            customer.inactive_reason = 'trial_expired'
            customer.payment_status = 'Pending'
            db.session.commit()
            sent += 1
        except JOB_FAILURES:
            db.session.rollback()
            logger.exception('Trial expiry failed for customer %s', customer.id)

    return {'success': True, 'trialReminders': sent}


def run_merchant_trial_expiry(now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    expired = (
        User.query
        .filter(User.subscription_status == 'trial')
        .filter(User.trial_ends_at < now)
        .update({'subscription_status': 'expired', 'plan_type': 'none'}, synchronize_session=False)
    )
    db.session.commit()
    return {'expired': expired}


def run_delivery_photo_cleanup(now: Optional[datetime] = None) -> dict:
    """Clear delivery photos and driver locations older than a day."""
    cutoff = (now or utcnow()) - RETENTION
    items = (
        DeliveryItem.query
        .filter(DeliveryItem.delivery_photo.is_not(None))
        .filter(DeliveryItem.delivery_photo != '')
        .filter(DeliveryItem.delivered_at < cutoff)
        .all()
    )
    for item in items:
        item.delivery_photo = ''
    locations = (
        DriverLocation.query
        .filter(DriverLocation.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return {'photosCleared': len(items), 'totalPhotos': len(items), 'locationsDeleted': locations}


def run_meal_rating_requests(now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    since = now - timedelta(days=RATING_INTERVAL_DAYS)
    customers = (
        Customer.query
        .filter(Customer.is_deleted.is_(False))
        .filter(Customer.active.is_(True))
        .filter(Customer.phone_number.is_not(None))
        .all()
    )

    sent = 0
    for customer in customers:
        if not customer.phone_number:
            continue
        recent = (
            MealRating.query
            .filter(MealRating.customer_id == customer.id)
            .filter(MealRating.created_at >= since)
            .first()
        )
        if recent:
            continue
        try:
            db.session.add(MealRating(
                customer_id=customer.id,
                customer_name=customer.full_name,
                rating=0,
                meal_type=customer.meal_type,
                meal_date=now.strftime('%Y-%m-%d'),
                created_by=customer.created_by,
            ))
            db.session.commit()
            send_whatsapp_message(
                customer.phone_number,
                f"Hello {customer.full_name},\n\nWe'd love your feedback on our tiffin service!\n\n"
                "Please rate from 1 to 5 and reply with just the number and any feedback.\n\nThank you!",
                template='FEEDBACK_REQUEST',
            )
            sent += 1
        except JOB_FAILURES:
            db.session.rollback()
            logger.exception('Meal rating request failed for customer %s', customer.id)

    return {'success': True, 'ratingRequests': sent}


JOBS = {
    'payment-reminders': run_auto_payment_reminders,
    'trial-expiry': run_trial_expiry_check,
    'merchant-trial-expiry': run_merchant_trial_expiry,
    'photo-cleanup': run_delivery_photo_cleanup,
    'meal-ratings': run_meal_rating_requests,
}
