from uuid import uuid4

from werkzeug.security import check_password_hash, generate_password_hash

from .extensions import db
from .utils.dates import utcnow


def new_id() -> str:
    return str(uuid4())


class IdMixin:
    id = db.Column(db.String(36), primary_key=True, default=new_id)


class CreatedMixin(IdMixin):
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)


class TimestampMixin(CreatedMixin):
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class OwnedMixin:
    created_by = db.Column(db.String(36), nullable=False, index=True)


class User(TimestampMixin, db.Model):
    __tablename__ = 'users'

    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255))
    role = db.Column(db.String(32), nullable=False, default='user')
    phone = db.Column(db.String(50))
    business_name = db.Column(db.String(255))
    logo_url = db.Column(db.String(512))
    subscription_status = db.Column(db.String(32), default='trial')
    plan_type = db.Column(db.String(32), default='trial')
    subscription_source = db.Column(db.String(32), default='trial')
    trial_ends_at = db.Column(db.DateTime)
    trial_cancelled_at = db.Column(db.DateTime)
    subscription_ends_at = db.Column(db.DateTime)
    current_period_end = db.Column(db.DateTime)
    next_billing_date = db.Column(db.DateTime)
    cancel_at_period_end = db.Column(db.Boolean, default=False)
    cancellation_reason = db.Column(db.Text)
    cancelled_at = db.Column(db.DateTime)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    last_payment_status = db.Column(db.String(32))
    stripe_customer_id = db.Column(db.String(255))
    stripe_subscription_id = db.Column(db.String(255))
    stripe_connect_account_id = db.Column(db.String(255))
    payment_account_connected = db.Column(db.Boolean, default=False)
    payment_verification_status = db.Column(db.String(32), default='pending')
    fee_consent_accepted = db.Column(db.Boolean, default=False)
    fee_percentage = db.Column(db.Float, default=3.5)
    currency = db.Column(db.String(8), default='USD')
    timezone = db.Column(db.String(64), default='UTC')
    country = db.Column(db.String(64))
    whatsapp_sent_count = db.Column(db.Integer, nullable=False, default=0)
    whatsapp_limit = db.Column(db.Integer, nullable=False, default=100)
    whatsapp_notifications_enabled = db.Column(db.Boolean, default=False)
    whatsapp_number = db.Column(db.String(50))
    is_super_admin = db.Column(db.Boolean, nullable=False, default=False)
    special_access_type = db.Column(db.String(32))

    def set_password(self, raw: str) -> None:
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw: str) -> bool:
        if not self.password_hash or self.password_hash == DELETED_MARKER:
            return False
        return check_password_hash(self.password_hash, raw)


DELETED_MARKER = '__DELETED__'


class Customer(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'customers'

    full_name = db.Column(db.String(255), nullable=False)
    phone_number = db.Column(db.String(50))
    address = db.Column(db.Text)
    area = db.Column(db.String(255))
    meal_type = db.Column(db.String(64))
    dietary_preference = db.Column(db.String(32), default='Both')
    payment_amount = db.Column(db.Float, default=0)
    payment_status = db.Column(db.String(32), default='Pending')
    due_date = db.Column(db.DateTime)
    last_payment_date = db.Column(db.DateTime)
    last_payment_amount = db.Column(db.Float)
    active = db.Column(db.Boolean, nullable=False, default=True)
    status = db.Column(db.String(32), default='active')
    inactive_reason = db.Column(db.String(64))
    start_date = db.Column(db.DateTime)
    end_date = db.Column(db.DateTime)
    original_end_date = db.Column(db.String(32))
    paid_days = db.Column(db.Integer, default=30)
    delivered_days = db.Column(db.Integer, default=0)
    days_remaining = db.Column(db.Integer, default=30)
    meals_delivered = db.Column(db.Integer, default=0)
    tiffin_balance = db.Column(db.Integer, default=0)
    roti_quantity = db.Column(db.Integer)
    skip_weekends = db.Column(db.Boolean, default=False)
    is_paused = db.Column(db.Boolean, default=False)
    pause_start = db.Column(db.DateTime)
    pause_end = db.Column(db.DateTime)
    pause_start_date = db.Column(db.String(32))
    pause_resume_date = db.Column(db.String(32))
    pause_history = db.Column(db.JSON)
    total_pause_days = db.Column(db.Integer, default=0)
    notification_sent = db.Column(db.Boolean, default=False)
    reminder_before_sent = db.Column(db.Boolean, default=False)
    reminder_after_sent = db.Column(db.Boolean, default=False)
    is_trial = db.Column(db.Boolean, default=False)
    trial_converted = db.Column(db.Boolean, default=False)
    trial_end_date = db.Column(db.DateTime)
    deposit_amount = db.Column(db.Float)
    deposit_paid = db.Column(db.Boolean, default=False)
    notes = db.Column(db.Text)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime)


class Order(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'orders'

    customer_id = db.Column(db.String(36), nullable=False, index=True)
    customer_name = db.Column(db.String(255))
    meal_type = db.Column(db.String(64))
    order_date = db.Column(db.String(32))
    delivery_date = db.Column(db.String(32), index=True)
    status = db.Column(db.String(32), nullable=False, default='pending')
    delivery_status = db.Column(db.String(32), default='pending')
    quantity = db.Column(db.Integer)
    notes = db.Column(db.Text)


class MenuItem(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'menu_items'

    name = db.Column(db.String(255), nullable=False)
    item_name = db.Column(db.String(255))
    description = db.Column(db.Text)
    price = db.Column(db.Float, default=0)
    category = db.Column(db.String(64))
    image_url = db.Column(db.String(512))
    meal_type = db.Column(db.String(64))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    day_of_week = db.Column(db.String(16))


class TiffinSkip(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'tiffin_skips'

    customer_id = db.Column(db.String(36), nullable=False, index=True)
    customer_name = db.Column(db.String(255))
    skip_date = db.Column(db.String(32), nullable=False, index=True)
    meal_type = db.Column(db.String(64))
    reason = db.Column(db.Text)
    status = db.Column(db.String(32), nullable=False, default='active')
    carry_forward_applied = db.Column(db.Boolean, nullable=False, default=False)


class Notification(TimestampMixin, db.Model):
    __tablename__ = 'notifications'

    user_email = db.Column(db.String(255), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text)
    read = db.Column(db.Boolean, nullable=False, default=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    type = db.Column(db.String(64))
    notification_type = db.Column(db.String(64))
    customer_id = db.Column(db.String(36))
    customer_name = db.Column(db.String(255))
    phone_number = db.Column(db.String(50))
    amount_to_collect = db.Column(db.Float)
    days_left = db.Column(db.Integer)
    email_sent = db.Column(db.Boolean, default=False)


class ActivityLog(CreatedMixin, OwnedMixin, db.Model):
    __tablename__ = 'activity_logs'

    user_email = db.Column(db.String(255), nullable=False, index=True)
    user_name = db.Column(db.String(255))
    action_type = db.Column(db.String(64), nullable=False)
    entity_type = db.Column(db.String(64))
    entity_id = db.Column(db.String(36))
    description = db.Column(db.Text)
    meta = db.Column('metadata', db.JSON)


class Ingredient(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'ingredients'

    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(32))
    current_stock = db.Column(db.Float, default=0)
    min_stock_threshold = db.Column(db.Float, default=0)
    cost_per_unit = db.Column(db.Float, default=0)
    total_value = db.Column(db.Float, default=0)
    is_critical = db.Column(db.Boolean, nullable=False, default=False)
    last_purchase_date = db.Column(db.String(32))


class Recipe(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'recipes'

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    meal_type = db.Column(db.String(64))
    ingredients = db.Column(db.JSON)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    total_cost = db.Column(db.Float, default=0)
    cost_per_serving = db.Column(db.Float, default=0)


class Supplier(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'suppliers'

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(50))
    email = db.Column(db.String(255))
    address = db.Column(db.Text)


class Purchase(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'purchases'

    ingredient_id = db.Column(db.String(36))
    ingredient_name = db.Column(db.String(255))
    quantity = db.Column(db.Float, default=0)
    unit = db.Column(db.String(32))
    cost_per_unit = db.Column(db.Float, default=0)
    total_cost = db.Column(db.Float, default=0)
    supplier_id = db.Column(db.String(36))
    supplier_name = db.Column(db.String(255))
    purchase_date = db.Column(db.String(32))
    expiry_date = db.Column(db.String(32))
    bill_image_url = db.Column(db.String(512))
    notes = db.Column(db.Text)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)


class Wastage(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'wastages'

    ingredient_id = db.Column(db.String(36), nullable=False)
    ingredient_name = db.Column(db.String(255))
    quantity = db.Column(db.Float, default=0)
    unit = db.Column(db.String(32))
    reason = db.Column(db.Text)
    cost_value = db.Column(db.Float, default=0)
    wastage_date = db.Column(db.String(32))
    notes = db.Column(db.Text)
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)


class SupportTicket(TimestampMixin, db.Model):
    __tablename__ = 'support_tickets'

    user_email = db.Column(db.String(255), nullable=False, index=True)
    subject = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text)
    status = db.Column(db.String(32), nullable=False, default='open')
    priority = db.Column(db.String(32), default='medium')
    resolved_at = db.Column(db.DateTime)


class Subscription(TimestampMixin, db.Model):
    __tablename__ = 'subscriptions'

    user_email = db.Column(db.String(255), nullable=False, index=True)
    plan_name = db.Column(db.String(64))
    status = db.Column(db.String(32), nullable=False, default='active')
    subscription_start_date = db.Column(db.DateTime)
    next_billing_date = db.Column(db.DateTime)
    current_period_end = db.Column(db.DateTime)
    amount = db.Column(db.Float, default=0)
    stripe_customer_id = db.Column(db.String(255))
    stripe_subscription_id = db.Column(db.String(255))
    payment_method_last4 = db.Column(db.String(4))
    payment_method_brand = db.Column(db.String(32))
    cancelled_at = db.Column(db.DateTime)
    cancel_reason = db.Column(db.Text)
    reminder_before_sent = db.Column(db.Boolean, default=False)
    reminder_after_sent = db.Column(db.Boolean, default=False)


class PaymentHistory(CreatedMixin, db.Model):
    __tablename__ = 'payment_history'

    user_email = db.Column(db.String(255), nullable=False, index=True)
    subscription_id = db.Column(db.String(36))
    amount = db.Column(db.Float, default=0)
    currency = db.Column(db.String(8), default='USD')
    status = db.Column(db.String(32))
    payment_date = db.Column(db.DateTime)
    stripe_payment_id = db.Column(db.String(255))
    payment_method_last4 = db.Column(db.String(4))
    error_message = db.Column(db.Text)


class PaymentLink(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'payment_links'

    customer_id = db.Column(db.String(36), nullable=False, index=True)
    customer_name = db.Column(db.String(255))
    amount = db.Column(db.Float, default=0)
    currency = db.Column(db.String(8), default='USD')
    description = db.Column(db.Text)
    status = db.Column(db.String(32), nullable=False, default='pending')
    stripe_checkout_session_id = db.Column(db.String(255))
    stripe_payment_intent_id = db.Column(db.String(255))
    checkout_url = db.Column(db.String(1024))
    expires_at = db.Column(db.DateTime)
    paid_at = db.Column(db.DateTime)
    platform_fee_amount = db.Column(db.Float, default=0)
    net_amount = db.Column(db.Float, default=0)
    payment_metadata = db.Column(db.JSON)


class ConsumptionLog(CreatedMixin, db.Model):
    __tablename__ = 'consumption_logs'

    date = db.Column(db.String(32))
    recipe_id = db.Column(db.String(36))
    recipe_name = db.Column(db.String(255))
    meal_type = db.Column(db.String(64))
    quantity_prepared = db.Column(db.Integer, default=0)
    ingredients_used = db.Column(db.JSON)
    total_cost = db.Column(db.Float, default=0)
    cost_per_meal = db.Column(db.Float, default=0)
    created_by = db.Column(db.String(36), index=True)


class MealRating(CreatedMixin, OwnedMixin, db.Model):
    __tablename__ = 'meal_ratings'

    customer_id = db.Column(db.String(36), nullable=False, index=True)
    customer_name = db.Column(db.String(255))
    order_id = db.Column(db.String(36))
    rating = db.Column(db.Integer, nullable=False, default=0)
    feedback = db.Column(db.Text)
    meal_type = db.Column(db.String(64))
    meal_date = db.Column(db.String(32))


class Invoice(CreatedMixin, OwnedMixin, db.Model):
    __tablename__ = 'invoices'

    invoice_number = db.Column(db.String(64), nullable=False)
    customer_id = db.Column(db.String(36), nullable=False, index=True)
    customer_name = db.Column(db.String(255))
    customer_phone = db.Column(db.String(50))
    customer_address = db.Column(db.Text)
    amount = db.Column(db.Float, nullable=False, default=0)
    tax_amount = db.Column(db.Float, default=0)
    total_amount = db.Column(db.Float, nullable=False, default=0)
    currency = db.Column(db.String(8), default='USD')
    period_start = db.Column(db.DateTime)
    period_end = db.Column(db.DateTime)
    status = db.Column(db.String(32), default='generated')
    trn_number = db.Column(db.String(64))
    business_name = db.Column(db.String(255))
    business_address = db.Column(db.Text)
    notes = db.Column(db.Text)


class Referral(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'referrals'

    referrer_id = db.Column(db.String(36))
    referrer_name = db.Column(db.String(255))
    referred_id = db.Column(db.String(36))
    referred_name = db.Column(db.String(255))
    referral_code = db.Column(db.String(64))
    status = db.Column(db.String(32), default='pending')
    discount_applied = db.Column(db.Boolean, default=False)
    discount_amount = db.Column(db.Float)


class FamilyGroup(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'family_groups'

    name = db.Column(db.String(255), nullable=False)
    primary_customer_id = db.Column(db.String(36))
    member_ids = db.Column(db.JSON)
    billing_amount = db.Column(db.Float)
    notes = db.Column(db.Text)


class Driver(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'drivers'

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(50))
    access_code = db.Column(db.String(32), index=True)
    vehicle = db.Column(db.String(64))
    is_active = db.Column(db.Boolean, nullable=False, default=True)


class DriverLocation(TimestampMixin, db.Model):
    __tablename__ = 'driver_locations'

    driver_id = db.Column(db.String(36), nullable=False, index=True)
    batch_id = db.Column(db.String(36))
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    heading = db.Column(db.Float)
    speed = db.Column(db.Float)
    accuracy = db.Column(db.Float)
    is_active = db.Column(db.Boolean, nullable=False, default=True)


class DeliveryBatch(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'delivery_batches'

    driver_id = db.Column(db.String(36), index=True)
    driver_name = db.Column(db.String(255))
    delivery_date = db.Column(db.String(32))
    meal_type = db.Column(db.String(64))
    area = db.Column(db.String(255))
    status = db.Column(db.String(32), default='pending')
    total_orders = db.Column(db.Integer, default=0)
    delivered_count = db.Column(db.Integer, default=0)


class DeliveryItem(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'delivery_items'

    batch_id = db.Column(db.String(36), nullable=False, index=True)
    customer_id = db.Column(db.String(36))
    customer_name = db.Column(db.String(255))
    address = db.Column(db.Text)
    phone_number = db.Column(db.String(50))
    sequence = db.Column(db.Integer)
    status = db.Column(db.String(32), default='pending')
    delivered_at = db.Column(db.DateTime)
    delivery_photo = db.Column(db.String(1024), default='')
    delivery_latitude = db.Column(db.Float)
    delivery_longitude = db.Column(db.Float)
    notes = db.Column(db.Text)


class Container(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'containers'

    customer_id = db.Column(db.String(36), index=True)
    customer_name = db.Column(db.String(255))
    container_type = db.Column(db.String(64))
    given_count = db.Column(db.Integer, default=0)
    returned_count = db.Column(db.Integer, default=0)
    outstanding = db.Column(db.Integer, default=0)
    deposit_amount = db.Column(db.Float)
    deposit_paid = db.Column(db.Boolean, default=False)
    given_date = db.Column(db.DateTime)
    last_reminder = db.Column(db.DateTime)


class ContainerLog(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'container_logs'

    container_id = db.Column(db.String(36), index=True)
    customer_id = db.Column(db.String(36))
    action = db.Column(db.String(32))
    count = db.Column(db.Integer, default=0)
    notes = db.Column(db.Text)


class Kitchen(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'kitchens'

    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.Text)
    capacity = db.Column(db.Integer)
    manager_name = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, nullable=False, default=True)


class PrepItem(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'prep_items'

    kitchen_id = db.Column(db.String(36))
    recipe_id = db.Column(db.String(36))
    name = db.Column(db.String(255))
    prep_date = db.Column(db.String(32))
    meal_type = db.Column(db.String(64))
    quantity = db.Column(db.Float)
    quantity_prepared = db.Column(db.Integer)
    status = db.Column(db.String(32), default='pending')
    prepared_at = db.Column(db.DateTime)


class ChatMessage(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'chat_messages'

    customer_id = db.Column(db.String(36))
    customer_phone = db.Column(db.String(50))
    direction = db.Column(db.String(16))
    message = db.Column(db.Text)
    intent = db.Column(db.String(64))
    auto_replied = db.Column(db.Boolean, default=False)
    reply_message = db.Column(db.Text)
    is_read = db.Column(db.Boolean, default=False)


class OneTimeOrder(TimestampMixin, OwnedMixin, db.Model):
    __tablename__ = 'one_time_orders'

    customer_id = db.Column(db.String(36))
    customer_name = db.Column(db.String(255))
    phone_number = db.Column(db.String(50))
    items = db.Column(db.JSON)
    total_amount = db.Column(db.Float, default=0)
    currency = db.Column(db.String(8), default='USD')
    delivery_date = db.Column(db.String(32))
    status = db.Column(db.String(32), default='pending')
    payment_status = db.Column(db.String(32), default='unpaid')
    delivered_at = db.Column(db.DateTime)
    notes = db.Column(db.Text)


class SystemLog(TimestampMixin, db.Model):
    __tablename__ = 'system_logs'

    log_type = db.Column(db.String(32), nullable=False, default='error')
    severity = db.Column(db.String(16), default='low')
    source = db.Column(db.String(255))
    message = db.Column(db.Text)
    error_details = db.Column(db.Text)
    affected_user = db.Column(db.String(255))
    resolved = db.Column(db.Boolean, default=False)
    resolved_date = db.Column(db.DateTime)
    created_by = db.Column(db.String(36), index=True)
