"""
Transaction model definition
"""
import uuid
from models import db
from datetime import datetime

class Transaction(db.Model):
    """One PIX payment attempt brokered by the gateway"""
    __tablename__ = 'transactions'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    unic_id = db.Column(db.String(100), unique=True, nullable=False, index=True)  # gateway transaction id
    external_id = db.Column(db.String(100), unique=True, nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=True)
    amount = db.Column(db.Integer, nullable=False)  # centavos
    status = db.Column(db.String(20), nullable=False, default='pending')  # pending, paid, failed, cancelled, refunded
    payment_method = db.Column(db.String(20), nullable=False, default='pix')
    provider = db.Column(db.String(20), nullable=False)
    plan = db.Column(db.String(50), nullable=False)
    plan_title = db.Column(db.String(200), nullable=False)
    buyer_info = db.Column(db.JSON, nullable=False)
    payment_data = db.Column(db.JSON, nullable=True)  # qrCodeText, qrCodeBase64, paymentUrl
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @property
    def payment_code(self):
        return (self.payment_data or {}).get('qrCodeText')

    def to_dict(self):
        return {
            'id': self.id,
            'unicId': self.unic_id,
            'externalId': self.external_id,
            'userId': self.user_id,
            'amount': self.amount,
            'status': self.status,
            'paymentMethod': self.payment_method,
            'provider': self.provider,
            'plan': self.plan,
            'planTitle': self.plan_title,
            'buyerInfo': self.buyer_info,
            'paymentData': self.payment_data,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<Transaction {self.unic_id} {self.status}>'
