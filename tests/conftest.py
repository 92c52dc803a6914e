import pytest
from flask_jwt_extended import create_access_token

from tiffinhub import create_app
from tiffinhub.config import TestConfig
from tiffinhub.extensions import db
from tiffinhub.models import User


@pytest.fixture
def app():
    app = create_app(TestConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make_user(email, password='secret123', **fields):
        fields.setdefault('subscription_status', 'trial')
        with app.app_context():
            user = User(email=email, full_name=email.split('@')[0], **fields)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            token = create_access_token(identity=user.id)
            return {'id': user.id, 'email': user.email, 'token': token,
                    'headers': {'Authorization': f'Bearer {token}'}}

    return _make_user


@pytest.fixture
def merchant(make_user):
    return make_user('alice@example.com')


@pytest.fixture
def other_merchant(make_user):
    return make_user('bob@example.com')


@pytest.fixture
def admin(make_user):
    return make_user(TestConfig.SUPER_ADMIN_EMAIL)
