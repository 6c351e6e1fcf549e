"""
Models package for the storefront application
"""
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Import all models here to ensure they're registered
from models.user import User
from models.transaction import Transaction
from models.subscription import Subscription
from models.webhook_event import WebhookEvent

__all__ = [
    'db',
    'User',
    'Transaction',
    'Subscription',
    'WebhookEvent',
]
