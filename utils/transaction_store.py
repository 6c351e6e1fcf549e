"""
Persistence for users, transactions, subscriptions and webhook events.

Every write commits on its own. Any database failure rolls the session back
and surfaces as StorageError so a financial record is never dropped silently.
"""
import threading
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from models.subscription import Subscription
from models.transaction import Transaction
from models.user import User
from models.webhook_event import WebhookEvent
from utils.auth_utils import hash_password
from utils.payment_gateway import (
    CANCELLED,
    FAILED,
    PAID,
    PENDING,
    REFUNDED,
    TRANSACTION_STATUSES,
)

# Monotonic status lattice: a write only lands if it moves the rank forward
STATUS_RANK = {
    PENDING: 0,
    PAID: 1,
    FAILED: 1,
    CANCELLED: 1,
    REFUNDED: 2,
}


class StorageError(Exception):
    """The database rejected or failed a read/write."""


def status_rank(status):
    return STATUS_RANK.get(status, 0)


class TransactionStore:
    """Session-bound store; one instance is shared by the whole app."""

    def __init__(self, session=None):
        self._session = session
        # gateway id -> [lock, number of threads holding or waiting on it]
        self._locks = {}
        self._locks_guard = threading.Lock()

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    @contextmanager
    def lock(self, gateway_id):
        """Serialize work on one gateway transaction id within this process."""
        with self._locks_guard:
            entry = self._locks.get(gateway_id)
            if entry is None:
                entry = self._locks[gateway_id] = [threading.RLock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[gateway_id]

    def _commit(self, action):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError(f"Failed to {action}: {e.__class__.__name__}") from e

    def _query(self, statement, action):
        try:
            return self.session.execute(statement).scalars()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError(f"Failed to {action}: {e.__class__.__name__}") from e

    # Users

    def create_user(self, username, password, email, name, document, phone):
        user = User(
            username=username,
            password_hash=hash_password(password),
            email=email.strip().lower(),
            name=name,
            document=document,
            phone=phone,
        )
        self.session.add(user)
        self._commit('create user')
        return user

    def get_user(self, user_id):
        return self._query(select(User).filter_by(id=user_id), 'load user').first()

    def get_user_by_username(self, username):
        return self._query(select(User).filter_by(username=username), 'load user').first()

    def get_user_by_email(self, email):
        return self._query(select(User).filter_by(email=(email or '').strip().lower()), 'load user').first()

    # Transactions

    def create_transaction(self, **record):
        """Insert a transaction; id and timestamps are assigned here."""
        now = datetime.utcnow()
        transaction = Transaction(created_at=now, updated_at=now, **record)
        self.session.add(transaction)
        self._commit('create transaction')
        return transaction

    def get_transaction(self, transaction_id):
        return self._query(select(Transaction).filter_by(id=transaction_id), 'load transaction').first()

    def get_transaction_by_gateway_id(self, gateway_id):
        return self._query(select(Transaction).filter_by(unic_id=gateway_id), 'load transaction').first()

    def get_transaction_by_external_id(self, external_id):
        return self._query(select(Transaction).filter_by(external_id=external_id), 'load transaction').first()

    def get_user_transactions(self, user_id):
        statement = select(Transaction).filter_by(user_id=user_id).order_by(Transaction.created_at.desc())
        return self._query(statement, 'list transactions').all()

    def transition_transaction_status(self, gateway_id, status, payment_data=None):
        """
        Move a transaction forward in the status lattice.

        Returns (transaction, previous_status); (None, None) if the id is
        unknown. A status of equal or lower rank than the stored one is
        ignored, so repeated or stale updates never regress the record.
        `payment_data` is merged into the stored payload either way.
        """
        if status not in TRANSACTION_STATUSES:
            raise ValueError(f"Unknown transaction status: {status}")

        with self.lock(gateway_id):
            statement = (
                select(Transaction)
                .filter_by(unic_id=gateway_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            transaction = self._query(statement, 'lock transaction').first()
            if transaction is None:
                self.session.rollback()
                return None, None

            previous_status = transaction.status
            changed = False
            if status_rank(status) > status_rank(previous_status):
                transaction.status = status
                changed = True
            if payment_data:
                transaction.payment_data = {**(transaction.payment_data or {}), **payment_data}
                changed = True
            if changed:
                transaction.updated_at = datetime.utcnow()
            # Commit even when unchanged to release the row lock
            self._commit('update transaction status')
            return transaction, previous_status

    def update_transaction_status(self, gateway_id, status, payment_data=None):
        """Idempotent status write keyed by gateway id; None if unknown."""
        transaction, _ = self.transition_transaction_status(gateway_id, status, payment_data)
        return transaction

    # Subscriptions

    def create_subscription(self, **record):
        """Insert a subscription; returns the existing one if the transaction already has one."""
        subscription = Subscription(**record)
        self.session.add(subscription)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            existing = self.get_subscription_by_transaction(record.get('transaction_id'))
            if existing is None:
                raise StorageError('Failed to create subscription: integrity error')
            return existing
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StorageError(f"Failed to create subscription: {e.__class__.__name__}") from e
        return subscription

    def get_subscription(self, subscription_id):
        return self._query(select(Subscription).filter_by(id=subscription_id), 'load subscription').first()

    def get_subscription_by_transaction(self, transaction_id):
        statement = select(Subscription).filter_by(transaction_id=transaction_id)
        return self._query(statement, 'load subscription').first()

    def get_active_subscription(self, user_id, now=None):
        """Current subscription: status active and end strictly in the future."""
        now = now or datetime.utcnow()
        statement = (
            select(Subscription)
            .filter(Subscription.user_id == user_id,
                    Subscription.status == 'active',
                    Subscription.end_date > now)
            .order_by(Subscription.end_date.desc())
        )
        return self._query(statement, 'load active subscription').first()

    def update_subscription_status(self, subscription_id, status):
        subscription = self.get_subscription(subscription_id)
        if subscription is None:
            return None
        subscription.status = status
        self._commit('update subscription status')
        return subscription

    # Webhook events

    def create_webhook_event(self, provider, event_type, transaction_id, payload):
        event = WebhookEvent(
            provider=provider,
            event_type=event_type,
            transaction_id=transaction_id,
            payload=payload,
            processed=False,
        )
        self.session.add(event)
        self._commit('record webhook event')
        return event

    def list_unprocessed_webhook_events(self):
        statement = (
            select(WebhookEvent)
            .filter_by(processed=False)
            .order_by(WebhookEvent.created_at.asc())
        )
        return self._query(statement, 'list webhook events').all()

    def mark_webhook_event_processed(self, event_id):
        event = self._query(select(WebhookEvent).filter_by(id=event_id), 'load webhook event').first()
        if event is None:
            return None
        event.processed = True
        self._commit('mark webhook event processed')
        return event
