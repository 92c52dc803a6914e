from datetime import datetime, timedelta

import pytest

from tiffinhub import jobs
from tiffinhub.extensions import db
from tiffinhub.models import Customer, DeliveryItem, DriverLocation, MealRating, User

NOW = datetime(2026, 5, 10, 5, 0)


@pytest.fixture
def sent(monkeypatch):
    messages = []

    def fake_send(phone, message, **kwargs):
        messages.append((phone, message))
        return {'success': True}

    monkeypatch.setattr(jobs, 'send_whatsapp_message', fake_send)
    return messages


def _customer(owner_id, **fields):
    values = {
        'full_name': 'Asha', 'phone_number': '971500000001', 'payment_amount': 300,
        'created_by': owner_id, 'active': True, 'is_deleted': False,
    }
    values.update(fields)
    customer = Customer(**values)
    db.session.add(customer)
    db.session.commit()
    return customer.id


def test_trial_expiry_is_idempotent(app, merchant, sent):
    with app.app_context():
        expired_id = _customer(merchant['id'], is_trial=True, trial_end_date=NOW - timedelta(days=1))
        _customer(merchant['id'], is_trial=True, trial_end_date=NOW + timedelta(days=2))
        _customer(merchant['id'], is_trial=True, trial_converted=True, trial_end_date=NOW - timedelta(days=1))

        assert jobs.run_trial_expiry_check(now=NOW) == {'success': True, 'trialReminders': 1}
        assert jobs.run_trial_expiry_check(now=NOW) == {'success': True, 'trialReminders': 0}

        customer = db.session.get(Customer, expired_id)
        assert customer.active is False
        assert customer.status == 'inactive'
        assert customer.inactive_reason == 'trial_expired'
    assert len(sent) == 1


def test_trial_expiry_skips_failed_customer(app, merchant, monkeypatch):
    def failing_send(phone, message, **kwargs):
        raise jobs.MessagingError('provider down')

    monkeypatch.setattr(jobs, 'send_whatsapp_message', failing_send)
    with app.app_context():
        customer_id = _customer(merchant['id'], is_trial=True, trial_end_date=NOW - timedelta(days=1))
        assert jobs.run_trial_expiry_check(now=NOW)['trialReminders'] == 0
        assert db.session.get(Customer, customer_id).active is True


def test_payment_reminders(app, make_user, sent, monkeypatch):
    monkeypatch.setattr(jobs, 'create_renewal_link', lambda merchant, customer, description: None)
    owner = make_user(
        'stripe@example.com',
        stripe_connect_account_id='acct_1',
        payment_account_connected=True,
        payment_verification_status='verified',
    )
    unverified = make_user('plain@example.com')
    with app.app_context():
        upcoming_id = _customer(owner['id'], end_date=datetime(2026, 5, 13, 9, 0))
        overdue_id = _customer(owner['id'], end_date=datetime(2026, 5, 7, 18, 0))
        _customer(owner['id'], end_date=datetime(2026, 5, 13), phone_number=None)
        _customer(unverified['id'], end_date=datetime(2026, 5, 13))

        result = jobs.run_auto_payment_reminders(now=NOW)
        assert result == {'success': True, 'beforeReminders': 1, 'afterReminders': 1}
        assert jobs.run_auto_payment_reminders(now=NOW)['beforeReminders'] == 0

        upcoming = db.session.get(Customer, upcoming_id)
        assert upcoming.reminder_before_sent is True
        assert upcoming.active is True

        overdue = db.session.get(Customer, overdue_id)
        assert overdue.active is False
        assert overdue.inactive_reason == 'non_payment'
        assert overdue.payment_status == 'Overdue'
    assert len(sent) == 2


def test_merchant_trial_expiry(app, make_user):
    lapsed = make_user('lapsed@example.com', trial_ends_at=NOW - timedelta(hours=1))
    current = make_user('current@example.com', trial_ends_at=NOW + timedelta(days=3))
    with app.app_context():
        assert jobs.run_merchant_trial_expiry(now=NOW) == {'expired': 1}
        assert db.session.get(User, lapsed['id']).subscription_status == 'expired'
        assert db.session.get(User, lapsed['id']).plan_type == 'none'
        assert db.session.get(User, current['id']).subscription_status == 'trial'


def test_delivery_photo_cleanup(app, merchant):
    with app.app_context():
        old = DeliveryItem(batch_id='b1', created_by=merchant['id'], delivery_photo='https://cdn/x.jpg',
                           delivered_at=NOW - timedelta(days=2))
        fresh = DeliveryItem(batch_id='b1', created_by=merchant['id'], delivery_photo='https://cdn/y.jpg',
                             delivered_at=NOW - timedelta(hours=2))
        db.session.add_all([
            old, fresh,
            DriverLocation(driver_id='d1', latitude=1.0, longitude=2.0, created_at=NOW - timedelta(days=2)),
            DriverLocation(driver_id='d1', latitude=1.0, longitude=2.0, created_at=NOW),
        ])
        db.session.commit()

        result = jobs.run_delivery_photo_cleanup(now=NOW)
        assert result == {'photosCleared': 1, 'totalPhotos': 1, 'locationsDeleted': 1}
        assert db.session.get(DeliveryItem, old.id).delivery_photo == ''
        assert db.session.get(DeliveryItem, fresh.id).delivery_photo == 'https://cdn/y.jpg'
        assert DriverLocation.query.count() == 1


def test_meal_rating_requests_once_per_interval(app, merchant, sent):
    with app.app_context():
        _customer(merchant['id'])
        _customer(merchant['id'], active=False)

        assert jobs.run_meal_rating_requests()['ratingRequests'] == 1
        assert jobs.run_meal_rating_requests()['ratingRequests'] == 0
        assert MealRating.query.count() == 1
        assert MealRating.query.first().rating == 0
    assert len(sent) == 1
