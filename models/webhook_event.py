"""
Webhook event model definition
"""
import uuid
from models import db
from datetime import datetime

class WebhookEvent(db.Model):
    """Inbound gateway notification, stored before it is processed"""
    __tablename__ = 'webhook_events'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    provider = db.Column(db.String(20), nullable=False)
    event_type = db.Column(db.String(100), nullable=False)
    transaction_id = db.Column(db.String(100), nullable=False, index=True)  # gateway id, not transactions.id
    payload = db.Column(db.JSON, nullable=False)
    processed = db.Column(db.Boolean, default=False, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<WebhookEvent {self.id} {self.event_type}>'
