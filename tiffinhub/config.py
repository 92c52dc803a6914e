import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / '.env', override=False)

LOCAL_ENV = BASE_DIR / '.env.local'
if LOCAL_ENV.exists():
    load_dotenv(LOCAL_ENV, override=True)

INSECURE_JWT_SECRET = 'change-me-in-production'


def _env_flag(name: str, default: str = 'off') -> bool:
    return os.getenv(name, default).strip().lower() in {'1', 'true', 'on', 'yes'}


class BaseConfig:
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', f"sqlite:///{BASE_DIR / 'tiffinhub.db'}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    PORT = int(os.getenv('PORT', '3001'))

    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY') or os.getenv('JWT_SECRET') or INSECURE_JWT_SECRET
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=30)

    SUPER_ADMIN_EMAIL = os.getenv('SUPER_ADMIN_EMAIL', 'support@tiffinhub.me')
    SUPER_ADMIN_PASSWORD = os.getenv('SUPER_ADMIN_PASSWORD')
    MERCHANT_TRIAL_DAYS = int(os.getenv('MERCHANT_TRIAL_DAYS', '7'))

    FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:5173')
    PRODUCT_NAME = os.getenv('PRODUCT_NAME', 'TiffinHub')
    DEFAULT_CURRENCY = os.getenv('DEFAULT_CURRENCY', 'aed')
    DEFAULT_FEE_PERCENTAGE = float(os.getenv('DEFAULT_FEE_PERCENTAGE', '3.5'))

    TWILIO_ACCOUNT_SID = os.getenv('TWILIO_ACCOUNT_SID')
    TWILIO_AUTH_TOKEN = os.getenv('TWILIO_AUTH_TOKEN')
    TWILIO_WHATSAPP_FROM = os.getenv('TWILIO_WHATSAPP_FROM')
    TWILIO_SMS_FROM = os.getenv('TWILIO_SMS_FROM')
    TWILIO_API_URL = os.getenv('TWILIO_API_URL', 'https://api.twilio.com/2010-04-01')
    WHATSAPP_MERCHANT_MIN_LIMIT = int(os.getenv('WHATSAPP_MERCHANT_MIN_LIMIT', '400'))
    WHATSAPP_TEMPLATES = {
        'OTP_LOGIN': os.getenv('TWILIO_TPL_OTP', ''),
        'PAYMENT_REMINDER': os.getenv('TWILIO_TPL_PAYMENT_REMINDER', ''),
        'PAYMENT_REMINDER_LINK': os.getenv('TWILIO_TPL_PAYMENT_REMINDER_LINK', ''),
        'PAYMENT_OVERDUE': os.getenv('TWILIO_TPL_PAYMENT_OVERDUE', ''),
        'PAYMENT_RECEIVED': os.getenv('TWILIO_TPL_PAYMENT_RECEIVED', ''),
        'ORDER_CONFIRMED': os.getenv('TWILIO_TPL_ORDER_CONFIRMED', ''),
        'SERVICE_ENDED': os.getenv('TWILIO_TPL_SERVICE_ENDED', ''),
        'FEEDBACK_REQUEST': os.getenv('TWILIO_TPL_FEEDBACK', ''),
    }

    RESEND_API_KEY = os.getenv('RESEND_API_KEY')
    RESEND_API_URL = os.getenv('RESEND_API_URL', 'https://api.resend.com/emails')
    SMTP_HOST = os.getenv('SMTP_HOST', 'smtp.gmail.com')
    SMTP_PORT = int(os.getenv('SMTP_PORT', '587'))
    SMTP_USER = os.getenv('SMTP_USER', '')
    SMTP_PASS = os.getenv('SMTP_PASS', '')
    SMTP_FROM = os.getenv('SMTP_FROM') or os.getenv('SMTP_USER') or 'support@tiffinhub.me'

    STRIPE_SECRET_KEY = os.getenv('STRIPE_SECRET_KEY')

    SCHEDULER_ENABLED = _env_flag('SCHEDULER_ENABLED', 'on')
    REQUIRE_SECURE_SECRETS = False


class DevConfig(BaseConfig):
    DEBUG = True


class ProdConfig(BaseConfig):
    DEBUG = False
    REQUIRE_SECURE_SECRETS = True


class TestConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    JWT_SECRET_KEY = 'test-secret-key-that-is-long-enough-for-hs256'
    SUPER_ADMIN_EMAIL = 'support@tiffinhub.me'
    SUPER_ADMIN_PASSWORD = None
    SCHEDULER_ENABLED = False
    TWILIO_ACCOUNT_SID = None
    TWILIO_AUTH_TOKEN = None
    TWILIO_WHATSAPP_FROM = None
    TWILIO_SMS_FROM = None
    RESEND_API_KEY = None
    SMTP_USER = ''
    STRIPE_SECRET_KEY = None


Config = DevConfig if os.getenv('FLASK_ENV') != 'production' else ProdConfig
