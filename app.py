"""
Main Flask application entry point for the PIX subscription storefront
"""
import logging
import os
import threading

import click
from flask import Flask, jsonify, request
from flask_login import LoginManager

from config import Config
from models import db
from models.user import User
from utils.mail import mail
from utils.notifications import PaymentNotifier
from utils.payment_gateway import build_gateway_client
from utils.transaction_lifecycle import TransactionLifecycle
from utils.transaction_store import TransactionStore
from utils.webhooks import WebhookService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)

# Initialize login manager (no DB access at import time)
login_manager = LoginManager()


@login_manager.user_loader
def load_user(user_id):
    """Load user for Flask-Login (runs in request context)."""
    return db.session.get(User, user_id)


def create_app(config_class=Config, gateway=None):
    """Application factory. Collaborators are built once here and shared by every request."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    db.init_app(app)
    login_manager.init_app(app)
    mail.init_app(app)

    @app.errorhandler(500)
    def handle_500_error(e):
        if request.path.startswith("/api/"):
            return jsonify({"success": False, "message": "Internal server error. Please try again later."}), 500
        return e

    # Create tables inside app context; do not crash if DB temporarily unavailable
    with app.app_context():
        try:
            db.create_all()
        except Exception as e:
            app.logger.warning("Database init skipped (non-fatal): %s", e)

    store = TransactionStore()
    gateway = gateway or build_gateway_client(app.config)
    lifecycle = TransactionLifecycle(store, gateway, notifier=PaymentNotifier())
    app.extensions['storefront'] = {
        'store': store,
        'gateway': gateway,
        'lifecycle': lifecycle,
        'webhooks': WebhookService(store, lifecycle),
    }

    # Register blueprints
    from routes import public_bp, transactions_bp, webhooks_bp, subscriptions_bp

    app.register_blueprint(public_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(subscriptions_bp)

    @app.cli.command("replay-webhooks")
    def replay_webhooks_command():
        """Replay webhook events that were stored but never processed."""
        processed, failed = replay_unprocessed_webhooks(app)
        click.echo(f"Replayed webhook events: {processed} processed, {failed} failed")

    if app.config.get("WEBHOOK_REPLAY_ON_STARTUP") and not app.config.get("TESTING"):
        schedule_webhook_replay(app)

    return app


def replay_unprocessed_webhooks(app):
    """Run the webhook replay sweep inside an app context."""
    with app.app_context():
        try:
            return app.extensions['storefront']['webhooks'].replay_unprocessed()
        finally:
            db.session.remove()


def schedule_webhook_replay(app):
    """Replay unprocessed webhooks shortly after boot, once the database is reachable."""
    def run():
        try:
            replay_unprocessed_webhooks(app)
        except Exception as e:
            app.logger.error("Error processing unprocessed webhook events: %s", e, exc_info=True)

    timer = threading.Timer(app.config.get("WEBHOOK_REPLAY_DELAY_SECONDS", 5), run)
    timer.daemon = True
    timer.start()
    return timer


# WSGI entry point (Railway/Render): gunicorn app:app
app = create_app()
application = app

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    app.run(host="0.0.0.0", port=port, debug=os.environ.get("FLASK_DEBUG", "false").lower() in ("true", "1"))
