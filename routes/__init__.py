"""
Routes package for the storefront API
"""
from flask import current_app


def get_service(name):
    """Fetch a collaborator wired by create_app (store, gateway, lifecycle, webhooks)."""
    return current_app.extensions['storefront'][name]


# Blueprints import get_service, so they are loaded after it is defined
from routes.public import public_bp
from routes.transactions import transactions_bp
from routes.webhooks import webhooks_bp
from routes.subscriptions import subscriptions_bp

__all__ = [
    'get_service',
    'public_bp',
    'transactions_bp',
    'webhooks_bp',
    'subscriptions_bp',
]
