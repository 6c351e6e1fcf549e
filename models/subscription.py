"""
Subscription model definition
"""
import uuid
from models import db
from datetime import datetime

class Subscription(db.Model):
    """Access grant derived from one paid transaction"""
    __tablename__ = 'subscriptions'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    # One subscription per transaction; the unique index backs the idempotency check
    transaction_id = db.Column(db.String(36), db.ForeignKey('transactions.id'), unique=True, nullable=False)
    plan = db.Column(db.String(50), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='active')  # active, expired, cancelled
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    transaction = db.relationship('Transaction', backref=db.backref('subscription', uselist=False), lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'transactionId': self.transaction_id,
            'plan': self.plan,
            'status': self.status,
            'startDate': self.start_date.isoformat(),
            'endDate': self.end_date.isoformat(),
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Subscription {self.id}>'
