from unittest.mock import MagicMock

import pytest

from app import create_app
from config import TestConfig
from models import db
from tests.helpers import FakeGateway


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(gateway):
    app = create_app(TestConfig, gateway=gateway)
    app.extensions['storefront']['lifecycle'].notifier = MagicMock()
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return app.extensions['storefront']['store']


@pytest.fixture
def lifecycle(app):
    return app.extensions['storefront']['lifecycle']


@pytest.fixture
def webhook_service(app):
    return app.extensions['storefront']['webhooks']


@pytest.fixture
def user(store):
    return store.create_user(
        username='ana',
        password='s3cret-pass',
        email='ana@x.com',
        name='Ana Silva',
        document='12345678901',
        phone='11999998888',
    )


@pytest.fixture
def checkout_form():
    return {
        'name': 'Ana Silva',
        'email': 'ana@x.com',
        'document': '12345678901',
        'phone': '11999998888',
        'plan': 'annual',
        'price': 29900,
        'title': 'Plano Anual VIP',
    }
