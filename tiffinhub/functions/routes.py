from datetime import timedelta

from flask import Blueprint, current_app, g, request

from .. import jobs
from ..api.auth import premium_required, super_admin_required, token_required
from ..entities.gateway import serialize
from ..errors import BadRequest, MessagingError, NotFound
from ..extensions import db
from ..models import ConsumptionLog, Customer, Ingredient, Purchase, Recipe, Supplier, TiffinSkip, Wastage
from ..security import has_premium_access, has_special_access, is_super_admin
from ..utils.audit import log_activity
from ..utils.dates import format_datetime, parse_datetime, utcnow
from ..utils.mailer import send_mail
from ..utils.whatsapp import send_merchant_whatsapp, send_whatsapp_message
from .inventory import as_number, consume_recipe, is_low, set_stock
from .schedule import carry_forward, day_key, delivery_block_reason, project_end_date

functions_bp = Blueprint("functions", __name__, url_prefix="/api/functions")


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _owned_customer(customer_id, include_deleted=False) -> Customer:
    query = Customer.query.filter_by(id=customer_id, created_by=g.api_user.id)
    if not include_deleted:
        query = query.filter(Customer.is_deleted.is_(False))
    customer = query.first()
    if customer is None:
        raise NotFound("Customer not found or access denied")
    return customer


def _currency() -> str:
    return (g.api_user.currency or current_app.config.get("DEFAULT_CURRENCY", "aed")).upper()


@functions_bp.post("/record-delivery")
@token_required
def record_delivery():
    user = g.api_user
    data = _body()
    customer_id, order_date = data.get("customerId"), data.get("orderDate")
    if not customer_id or not order_date:
        raise BadRequest("Missing required fields")
    customer = _owned_customer(customer_id)

    skipped = TiffinSkip.query.filter_by(
        customer_id=customer.id, created_by=user.id, skip_date=order_date, status="active"
    ).first()
    if skipped:
        return {"error": "Cannot deliver on skipped date", "skipped": True}, 400

    delivered = (customer.delivered_days or 0) + 1
    paid_days = customer.paid_days or 30
    customer.delivered_days = delivered
    customer.days_remaining = paid_days - delivered
    customer.meals_delivered = (customer.meals_delivered or 0) + 1
    if delivered < paid_days:
        db.session.commit()
        return {"success": True, "delivered_days": delivered, "days_remaining": paid_days - delivered}

    customer.active = False
    customer.notification_sent = False
    db.session.commit()

    if customer.phone_number:
        try:
            send_whatsapp_message(
                customer.phone_number,
                f"Your {paid_days}-day tiffin service is complete. "
                "Please renew your subscription to continue service.",
                template="SERVICE_ENDED",
            )
        except MessagingError:
            current_app.logger.warning("Service-complete notice failed for customer %s", customer.id)
    send_mail(
        user.email,
        f"Payment Due - {customer.full_name}",
        "<h2>Service Completed - Payment Required</h2>"
        f"<p><strong>Customer:</strong> {customer.full_name}</p>"
        f"<p><strong>Days Delivered:</strong> {delivered} / {paid_days}</p>"
        f"<p><strong>Amount Due:</strong> {_currency()} {customer.payment_amount}</p>",
    )
    return {"success": True, "delivered_days": delivered, "service_complete": True}


@functions_bp.post("/send-whatsapp-message")
@token_required
@premium_required
def send_whatsapp():
    user = g.api_user
    data = _body()
    message, customer_id, to = data.get("message"), data.get("customerId"), data.get("to")
    if not message:
        raise BadRequest("Missing required fields: message")
    if customer_id:
        customer = Customer.query.filter_by(id=customer_id, created_by=user.id, is_deleted=False).first()
        if customer is None:
            return {"error": "Customer not found or access denied"}, 403
        if not to:
            to = customer.phone_number
        elif customer.phone_number != to:
            return {"error": "Phone number does not match customer record"}, 403
    if not to:
        raise BadRequest("Missing required fields: to (or customerId with phone number)")

    result = send_merchant_whatsapp(user, to, message)
    log_activity(
        user,
        "notification_sent",
        entity_type="Customer",
        entity_id=customer_id,
        description=f"WhatsApp message sent to {to}",
        metadata={"phone_number": to, "message_sid": result.get("messageSid"), "customer_id": customer_id},
    )
    db.session.commit()
    return {**result, "to": to}


@functions_bp.post("/send-payment-reminder")
@token_required
@premium_required
def send_payment_reminder():
    user = g.api_user
    customer_id = _body().get("customerId")
    if not customer_id:
        raise BadRequest("Missing customerId")
    customer = _owned_customer(customer_id)
    if not customer.phone_number:
        raise BadRequest("Customer has no phone number")

    state = "overdue" if customer.payment_status == "Overdue" else "due"
    due_line = f"\nDue Date: {customer.due_date.strftime('%d/%m/%Y')}" if customer.due_date else ""
    send_merchant_whatsapp(
        user,
        customer.phone_number,
        f"Payment Reminder - {current_app.config.get('PRODUCT_NAME', 'TiffinHub')}\n\n"
        f"Hello {customer.full_name},\n\nYour payment is {state}.\n\n"
        f"Amount Due: {_currency()} {customer.payment_amount}{due_line}\n\n"
        "Please make the payment to continue your tiffin service.\n\nThank you!",
        template="PAYMENT_REMINDER",
    )
    send_mail(
        user.email,
        f"Payment Reminder Sent - {customer.full_name}",
        f"<h2>Payment Reminder Sent</h2><p><strong>Customer:</strong> {customer.full_name}</p>"
        f"<p><strong>Amount:</strong> {_currency()} {customer.payment_amount}</p>",
    )
    return {"success": True, "message": "Payment reminder sent successfully"}


@functions_bp.post("/send-bulk-payment-reminders")
@token_required
@premium_required
def send_bulk_payment_reminders():
    user = g.api_user
    customer_ids = _body().get("customerIds")
    if not customer_ids or not isinstance(customer_ids, list):
        raise BadRequest("No customer IDs provided")

    customers = (
        Customer.query
        .filter(Customer.id.in_(customer_ids))
        .filter(Customer.created_by == user.id)
        .filter(Customer.is_deleted.is_(False))
        .filter(Customer.active.is_(True))
        .all()
    )
    sent = 0
    skipped = []
    errors = []
    for customer in customers:
        if not customer.phone_number:
            skipped.append({"customer": customer.full_name, "reason": "No phone number"})
            continue
        try:
            send_merchant_whatsapp(
                user,
                customer.phone_number,
                f"Payment Reminder\n\nDear {customer.full_name},\n\n"
                f"Your tiffin subscription expires in {customer.days_remaining} days.\n\n"
                f"Amount Due: {_currency()} {customer.payment_amount}\n\n"
                "Please renew your subscription.\n\nThank you!",
                template="PAYMENT_REMINDER",
            )
            sent += 1
        except MessagingError as exc:
            errors.append({"customer": customer.full_name, "error": exc.message})

    result = {"sent": sent, "skipped": len(skipped), "total": len(customers)}
    if errors:
        result["errors"] = errors
    return result


@functions_bp.post("/delete-customer")
@token_required
def delete_customer():
    user = g.api_user
    customer_id = _body().get("customerId")
    if not customer_id:
        raise BadRequest("Customer ID is required")
    customer = _owned_customer(customer_id, include_deleted=True)

    customer.is_deleted = True
    customer.deleted_at = utcnow()
    log_activity(
        user,
        "customer_deleted",
        entity_type="Customer",
        entity_id=customer.id,
        description=f"Deleted customer: {customer.full_name}",
        metadata={"customer_name": customer.full_name, "phone_number": customer.phone_number},
    )
    db.session.commit()
    return {"success": True, "message": "Customer deleted successfully", "customerId": customer.id}


@functions_bp.post("/clear-deleted-customers")
@token_required
def clear_deleted_customers():
    deleted = (
        Customer.query
        .filter(Customer.created_by == g.api_user.id)
        .filter(Customer.is_deleted.is_(True))
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return {"success": True, "deleted": deleted}


def _today() -> str:
    return day_key(utcnow())


def _owned_ingredient(ingredient_id) -> Ingredient:
    ingredient = Ingredient.query.filter_by(id=ingredient_id, created_by=g.api_user.id).first()
    if ingredient is None:
        raise NotFound("Ingredient not found")
    return ingredient


@functions_bp.post("/add-purchase")
@token_required
@premium_required
def add_purchase():
    user = g.api_user
    data = _body()
    ingredient_id, quantity = data.get("ingredient_id"), as_number(data.get("quantity"))
    if not ingredient_id or quantity <= 0:
        raise BadRequest("ingredient_id and quantity required")
    ingredient = _owned_ingredient(ingredient_id)

    supplier_id = data.get("supplier_id") or None
    supplier_name = None
    if supplier_id:
        supplier = Supplier.query.filter_by(id=supplier_id, created_by=user.id).first()
        supplier_name = supplier.name if supplier else None

    cost = as_number(data.get("cost_per_unit")) or ingredient.cost_per_unit or 0
    purchase = Purchase(
        ingredient_id=ingredient.id,
        ingredient_name=ingredient.name,
        quantity=quantity,
        unit=ingredient.unit,
        cost_per_unit=cost,
        total_cost=quantity * cost,
        supplier_id=supplier_id,
        supplier_name=supplier_name,
        purchase_date=data.get("purchase_date") or _today(),
        expiry_date=data.get("expiry_date") or None,
        notes=data.get("notes") or None,
        created_by=user.id,
    )
    db.session.add(purchase)
    set_stock(ingredient, (ingredient.current_stock or 0) + quantity, cost)
    ingredient.cost_per_unit = cost
    ingredient.last_purchase_date = _today()
    db.session.commit()
    return {
        "success": True,
        "purchase": serialize(purchase),
        "message": f"Added {quantity} {ingredient.unit} of {ingredient.name} to stock",
    }


@functions_bp.post("/add-wastage")
@token_required
@premium_required
def add_wastage():
    user = g.api_user
    data = _body()
    ingredient_id, quantity, reason = data.get("ingredient_id"), as_number(data.get("quantity")), data.get("reason")
    if not ingredient_id or quantity <= 0 or not reason:
        raise BadRequest("ingredient_id, quantity, and reason required")
    ingredient = _owned_ingredient(ingredient_id)

    wastage = Wastage(
        ingredient_id=ingredient.id,
        ingredient_name=ingredient.name,
        quantity=quantity,
        unit=ingredient.unit,
        reason=reason,
        cost_value=quantity * (ingredient.cost_per_unit or 0),
        wastage_date=_today(),
        notes=data.get("notes") or "",
        created_by=user.id,
    )
    db.session.add(wastage)
    set_stock(ingredient, (ingredient.current_stock or 0) - quantity)
    db.session.commit()
    return {
        "success": True,
        "wastage": serialize(wastage),
        "message": f"Logged wastage: {quantity} {ingredient.unit} of {ingredient.name}",
    }


@functions_bp.post("/deduct-inventory")
@token_required
def deduct_inventory():
    user = g.api_user
    data = _body()
    recipe_id, servings = data.get("recipe_id"), as_number(data.get("quantity"))
    if not recipe_id or servings <= 0:
        raise BadRequest("recipe_id and quantity required")
    recipe = Recipe.query.filter_by(id=recipe_id, created_by=user.id).first()
    if recipe is None:
        raise NotFound("Recipe not found or access denied")

    deductions, _ = consume_recipe(recipe, servings, user.id)
    db.session.add(ConsumptionLog(
        date=_today(),
        recipe_id=recipe.id,
        recipe_name=recipe.name,
        meal_type=recipe.meal_type,
        quantity_prepared=servings,
        ingredients_used=recipe.ingredients,
        total_cost=(recipe.total_cost or 0) * servings,
        cost_per_meal=recipe.cost_per_serving,
        created_by=user.id,
    ))
    db.session.commit()
    return {"success": True, "deductions": deductions}


@functions_bp.post("/batch-cooking")
@token_required
def batch_cooking():
    user = g.api_user
    data = _body()
    meal_type, servings = data.get("meal_type"), as_number(data.get("quantity"))
    if not meal_type or servings <= 0:
        raise BadRequest("meal_type and quantity required")
    recipe = Recipe.query.filter_by(meal_type=meal_type, is_active=True, created_by=user.id).first()
    if recipe is None:
        raise NotFound(f"No active recipe found for {meal_type}")

    deductions, total_cost = consume_recipe(recipe, servings, user.id)
    db.session.add(ConsumptionLog(
        date=_today(),
        recipe_id=recipe.id,
        recipe_name=recipe.name,
        meal_type=recipe.meal_type,
        quantity_prepared=servings,
        ingredients_used=recipe.ingredients,
        total_cost=total_cost,
        cost_per_meal=total_cost / servings,
        created_by=user.id,
    ))
    db.session.commit()
    return {
        "success": True,
        "batch_details": {
            "meal_type": meal_type,
            "quantity": servings,
            "total_cost": total_cost,
            "cost_per_meal": total_cost / servings,
        },
        "deductions": deductions,
    }


@functions_bp.post("/check-low-stock")
@token_required
@premium_required
def check_low_stock():
    user = g.api_user
    critical = [i for i in Ingredient.query.filter_by(created_by=user.id).all() if is_low(i)]
    if not critical:
        return {"success": True, "critical_count": 0, "message": "All ingredients are well stocked"}

    lines = "".join(
        f"<li><strong>{i.name}</strong>: {i.current_stock} {i.unit} (Min: {i.min_stock_threshold})</li>"
        for i in critical
    )
    send_mail(user.email, "Low Stock Alert - TiffinHub", f"<h2>Low Stock Alert</h2><ul>{lines}</ul>")
    return {
        "success": True,
        "critical_count": len(critical),
        "critical_items": [serialize(i) for i in critical],
    }


@functions_bp.post("/should-deliver-today")
@token_required
def should_deliver_today():
    user = g.api_user
    data = _body()
    customer_id, date = data.get("customerId"), data.get("date")
    if not customer_id or not date:
        raise BadRequest("Missing required fields")
    day = parse_datetime(date) if isinstance(date, str) else None
    if day is None:
        raise BadRequest("Invalid date")
    customer = _owned_customer(customer_id)

    skipped = TiffinSkip.query.filter_by(
        customer_id=customer.id, created_by=user.id, skip_date=date, status="active"
    ).first()
    reason = delivery_block_reason(customer, day, skipped is not None)
    if reason:
        return {"shouldDeliver": False, "reason": reason}
    return {"shouldDeliver": True, "customer": serialize(customer)}


@functions_bp.post("/calculate-end-date")
@token_required
def calculate_end_date():
    user = g.api_user
    customer_id = _body().get("customerId")
    if not customer_id:
        raise BadRequest("Customer ID required")
    customer = _owned_customer(customer_id)

    skip_dates = {
        skip.skip_date
        for skip in TiffinSkip.query.filter_by(customer_id=customer.id, created_by=user.id, status="active")
    }
    paid_days = customer.paid_days or 30
    end = project_end_date(customer.start_date or utcnow(), paid_days, skip_dates, bool(customer.skip_weekends))
    customer.end_date = end
    customer.days_remaining = paid_days - (customer.delivered_days or 0)
    db.session.commit()
    return {"success": True, "endDate": day_key(end), "totalSkips": len(skip_dates)}


@functions_bp.post("/apply-tiffin-carry-forward")
@token_required
def apply_tiffin_carry_forward():
    user = g.api_user
    now = utcnow()
    month = now.strftime("%Y-%m")
    customers = Customer.query.filter_by(created_by=user.id, is_deleted=False).all()

    processed = 0
    days_applied = 0
    for customer in customers:
        skips = (
            TiffinSkip.query
            .filter_by(customer_id=customer.id, carry_forward_applied=False, status="active")
            .filter(TiffinSkip.skip_date.startswith(month))
            .all()
        )
        if not skips:
            continue
        extra_days, extra_meals = carry_forward(len(skips), customer.meal_type)
        customer.end_date = (customer.end_date or now) + timedelta(days=extra_days)
        customer.tiffin_balance = (customer.tiffin_balance or 0) + extra_meals
        for skip in skips:
            skip.carry_forward_applied = True
            skip.status = "applied"
        processed += 1
        days_applied += len(skips)
    db.session.commit()
    return {"success": True, "processed": processed, "totalDaysApplied": days_applied}


@functions_bp.post("/initialize-new-user")
@token_required
def initialize_new_user():
    user = g.api_user
    if user.subscription_status:
        return {"message": "User already initialized", "status": user.subscription_status}
    user.subscription_status = "trial"
    user.plan_type = "trial"
    user.subscription_source = "trial"
    user.trial_ends_at = utcnow() + timedelta(days=current_app.config.get("MERCHANT_TRIAL_DAYS", 7))
    user.is_paid = False
    db.session.commit()
    return {"success": True, "trial_ends_at": format_datetime(user.trial_ends_at), "status": "trial"}


@functions_bp.post("/check-trial-expiry")
@token_required
def check_trial_expiry():
    user = g.api_user
    if user.subscription_status != "trial" or not user.trial_ends_at:
        return {"isExpired": False, "status": user.subscription_status}
    expired = utcnow() > user.trial_ends_at
    if expired:
        user.subscription_status = "expired"
        user.plan_type = "none"
        db.session.commit()
    return {
        "isExpired": expired,
        "trial_ends_at": format_datetime(user.trial_ends_at),
        "status": "expired" if expired else "trial",
    }


@functions_bp.post("/check-premium-access")
@token_required
def check_premium_access():
    user = g.api_user
    admin_email = current_app.config.get("SUPER_ADMIN_EMAIL")
    return {
        "hasPremiumAccess": has_premium_access(user, admin_email),
        "isSuperAdmin": is_super_admin(user, admin_email),
        "hasSpecialAccess": has_special_access(user),
        "plan_type": user.plan_type,
        "subscription_status": user.subscription_status,
    }


@functions_bp.post("/get-effective-plan")
@token_required
def get_effective_plan():
    user = g.api_user
    return {
        "plan_type": user.plan_type,
        "subscription_status": user.subscription_status,
        "subscription_source": user.subscription_source,
        "trial_ends_at": format_datetime(user.trial_ends_at),
        "subscription_ends_at": format_datetime(user.subscription_ends_at),
    }


@functions_bp.post("/reset-whatsapp-cycle")
@token_required
def reset_whatsapp_cycle():
    g.api_user.whatsapp_sent_count = 0
    db.session.commit()
    return {"success": True}


@functions_bp.post("/automatic-payment-reminders")
@token_required
@super_admin_required
def automatic_payment_reminders():
    return jobs.run_auto_payment_reminders()


@functions_bp.post("/trial-expiry-check")
@token_required
@super_admin_required
def trial_expiry_check():
    return jobs.run_trial_expiry_check()
