"""
Transaction lifecycle: charge creation, status reconciliation and
subscription activation.

Webhooks and status polling both go through apply_status_update, so the
business rules for a status change live in one place. The engine is the only
writer of transaction and subscription status.
"""
import calendar
import logging
from datetime import datetime

from utils.payment_gateway import (
    CANCELLED,
    FAILED,
    PAID,
    PENDING,
    REFUNDED,
    generate_external_reference,
)
from utils.transaction_store import StorageError
from utils.validators import ValidationError, validate_checkout_form

logger = logging.getLogger(__name__)

# Plan code -> billing period; codes not listed here get one month
PLAN_PERIODS = {
    'basic': 'month',
    'premium': 'month',
    'annual': 'year',
}


class TransactionNotFound(Exception):
    """No local transaction carries this gateway id."""

    def __init__(self, gateway_id):
        self.gateway_id = gateway_id
        super().__init__(f"Transaction not found for unic_id: {gateway_id}")


def add_months(moment, months):
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def subscription_period(plan, start):
    """Return (start, end) for a subscription on `plan` starting at `start`."""
    if PLAN_PERIODS.get(plan) == 'year':
        return start, add_months(start, 12)
    return start, add_months(start, 1)


class TransactionLifecycle:
    """Orchestrates gateway calls, store writes and subscription derivation."""

    def __init__(self, store, gateway, notifier=None):
        self.store = store
        self.gateway = gateway
        self.notifier = notifier

    def begin_transaction(self, form, external_reference=None, user_id=None):
        """
        Validate the checkout form, create the PIX charge and store it as pending.

        Nothing is stored when the gateway call fails. An external reference
        that is already stored returns that transaction untouched. Raises
        ValidationError or GatewayError.
        """
        cleaned = validate_checkout_form(form)
        if user_id is not None and self.store.get_user(user_id) is None:
            raise ValidationError({'userId': 'Usuário não encontrado'})

        if external_reference:
            existing = self.store.get_transaction_by_external_id(external_reference)
            if existing is not None:
                logger.info("Checkout %s already started as %s; no new charge created",
                            external_reference, existing.unic_id)
                return existing
        else:
            external_reference = generate_external_reference()

        buyer = {
            'name': cleaned['name'],
            'email': cleaned['email'],
            'document': cleaned['document'],
            'phone': cleaned['phone'],
        }

        created = self.gateway.create(buyer, cleaned['price'], external_reference,
                                      plan=cleaned['plan'], title=cleaned['title'])

        try:
            transaction = self.store.create_transaction(
                unic_id=created.gateway_id,
                external_id=external_reference,
                user_id=user_id,
                amount=cleaned['price'],
                status=PENDING,
                payment_method='pix',
                provider=self.gateway.name,
                plan=cleaned['plan'],
                plan_title=cleaned['title'],
                buyer_info=buyer,
                payment_data=created.payment_data,
            )
        except StorageError:
            # The charge exists at the gateway but not here; needs manual reconciliation
            logger.error(
                "Gateway charge %s (external ref %s) created but not stored",
                created.gateway_id, external_reference, exc_info=True,
            )
            raise

        logger.info("Transaction %s created: plan=%s amount=%s", transaction.unic_id,
                    transaction.plan, transaction.amount)
        return transaction

    def apply_status_update(self, gateway_id, new_status):
        """
        Apply a status reported by a webhook or by polling.

        Raises TransactionNotFound without writing anything when the id is
        unknown. Repeated or out-of-order statuses are no-ops at the store.
        """
        if self.store.get_transaction_by_gateway_id(gateway_id) is None:
            logger.warning("Status %s for unknown transaction %s ignored", new_status, gateway_id)
            raise TransactionNotFound(gateway_id)

        with self.store.lock(gateway_id):
            transaction, previous_status = self.store.transition_transaction_status(gateway_id, new_status)
            if transaction is None:
                logger.warning("Status %s for unknown transaction %s ignored", new_status, gateway_id)
                raise TransactionNotFound(gateway_id)

            applied = previous_status != new_status and transaction.status == new_status
            if applied:
                logger.info("Transaction %s: %s -> %s", gateway_id, previous_status, new_status)

            if new_status == PAID and transaction.status == PAID and transaction.user_id:
                self._ensure_subscription(transaction)

            if applied and new_status in (FAILED, CANCELLED):
                self._handle_failed_payment(transaction)

            if applied and new_status == REFUNDED:
                self._cancel_subscription(transaction)

            return transaction

    def check_status(self, gateway_id):
        """Poll the gateway and reconcile; returns the stored status afterwards."""
        if self.store.get_transaction_by_gateway_id(gateway_id) is None:
            raise TransactionNotFound(gateway_id)
        status = self.gateway.status(gateway_id)
        transaction = self.apply_status_update(gateway_id, status)
        return transaction.status

    def refund(self, gateway_id):
        """
        Refund through the gateway; on success the transaction becomes refunded
        whatever its previous status was. Returns the gateway outcome.
        """
        if self.store.get_transaction_by_gateway_id(gateway_id) is None:
            raise TransactionNotFound(gateway_id)
        success = self.gateway.refund(gateway_id)
        if success:
            self.apply_status_update(gateway_id, REFUNDED)
        else:
            logger.warning("Gateway declined refund for %s", gateway_id)
        return success

    def _ensure_subscription(self, transaction):
        existing = self.store.get_subscription_by_transaction(transaction.id)
        if existing is not None:
            return existing

        start, end = subscription_period(transaction.plan, datetime.utcnow())
        subscription = self.store.create_subscription(
            user_id=transaction.user_id,
            transaction_id=transaction.id,
            plan=transaction.plan,
            status='active',
            start_date=start,
            end_date=end,
        )
        if self.notifier is not None:
            self.notifier.subscription_activated(transaction, subscription)
        return subscription

    def _handle_failed_payment(self, transaction):
        if self.notifier is not None:
            self.notifier.payment_failed(transaction)

    def _cancel_subscription(self, transaction):
        subscription = self.store.get_subscription_by_transaction(transaction.id)
        if subscription is not None and subscription.status == 'active':
            self.store.update_subscription_status(subscription.id, 'cancelled')
            logger.info("Subscription %s cancelled after refund of %s", subscription.id, transaction.unic_id)
