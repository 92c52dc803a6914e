import logging
import time

from flask import Flask, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .auth.routes import auth_bp
from .cli import register_cli
from .config import INSECURE_JWT_SECRET, Config
from .entities.routes import entities_bp
from .errors import register_errors
from .extensions import db, jwt, migrate, scheduler
from .functions.routes import functions_bp
from .jobs import (
    run_auto_payment_reminders,
    run_delivery_photo_cleanup,
    run_meal_rating_requests,
    run_merchant_trial_expiry,
    run_trial_expiry_check,
)
from .models import User
from .utils.dates import format_datetime, utcnow

START_TIME = time.monotonic()


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
    app.logger.setLevel(level)


def _register_jwt_handlers() -> None:
    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({'error': 'Unauthorized'}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({'error': 'Invalid token'}), 401

    @jwt.expired_token_loader
    def expired_token(header, payload):
        return jsonify({'error': 'Token expired'}), 401


def _seed_super_admin(app: Flask) -> None:
    password = app.config.get('SUPER_ADMIN_PASSWORD')
    email = app.config.get('SUPER_ADMIN_EMAIL')
    if not (password and email):
        return
    if User.query.filter_by(email=email).first():
        return
    admin = User(
        email=email,
        full_name='Super Admin',
        role='admin',
        is_super_admin=True,
        subscription_status='active',
        plan_type='premium',
    )
    admin.set_password(password)
    db.session.add(admin)
    try:
        db.session.commit()
        app.logger.info('Seeded super admin %s', email)
    except SQLAlchemyError:
        db.session.rollback()
        app.logger.exception('Could not seed super admin %s', email)


def _bootstrap_app(app: Flask) -> None:
    db.create_all()
    _seed_super_admin(app)


def _start_scheduler(app: Flask) -> None:
    def _schedule_job(fn, job_id, **trigger_kwargs):
        def runner():
            with app.app_context():
                app.logger.info('Running scheduled job %s', job_id)
                try:
                    app.logger.info('Job %s complete: %s', job_id, fn())
                except Exception:
                    app.logger.exception('Job %s failed', job_id)
        scheduler.add_job(runner, id=job_id, replace_existing=True, **trigger_kwargs)

    _schedule_job(run_auto_payment_reminders, 'payment-reminders', trigger='cron', hour=5, minute=0)
    _schedule_job(run_trial_expiry_check, 'trial-expiry', trigger='cron', hour=5, minute=5)
    _schedule_job(run_merchant_trial_expiry, 'merchant-trial-expiry', trigger='cron', hour=5, minute=10)
    _schedule_job(run_delivery_photo_cleanup, 'photo-cleanup', trigger='cron', hour=22, minute=0)
    _schedule_job(run_meal_rating_requests, 'meal-ratings', trigger='cron', hour=10, minute=0)
    scheduler.start()
    app.apscheduler = scheduler


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    cfg = config_object or Config
    app.config.from_object(cfg)

    if app.config.get('REQUIRE_SECURE_SECRETS') and app.config.get('JWT_SECRET_KEY') == INSECURE_JWT_SECRET:
        raise RuntimeError('JWT_SECRET_KEY must be set in production')

    _configure_logging(app)
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    _register_jwt_handlers()
    register_cli(app)
    register_errors(app)

    @app.get('/api/health')
    def health():
        database = 'ok'
        try:
            db.session.execute(text('SELECT 1'))
        except SQLAlchemyError:
            db.session.rollback()
            database = 'down'
        return {
            'status': 'ok' if database == 'ok' else 'degraded',
            'timestamp': format_datetime(utcnow()),
            'uptime_seconds': int(time.monotonic() - START_TIME),
            'database': database,
        }

    app.register_blueprint(auth_bp)
    app.register_blueprint(functions_bp)
    app.register_blueprint(entities_bp)

    with app.app_context():
        _bootstrap_app(app)
        if app.config.get('SCHEDULER_ENABLED') and not getattr(app, 'apscheduler', None) and not scheduler.running:
            _start_scheduler(app)

    return app
