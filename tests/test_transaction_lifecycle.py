import threading
from datetime import datetime

import pytest

from models import db
from models.subscription import Subscription
from models.transaction import Transaction
from utils.payment_gateway import GatewayRejected, GatewayUnreachable
from utils.transaction_lifecycle import TransactionNotFound, add_months, subscription_period
from utils.transaction_store import StorageError
from utils.validators import ValidationError


def test_begin_transaction_stores_pending_charge(lifecycle, store, gateway, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form)

    assert transaction.status == 'pending'
    assert transaction.amount == 29900
    assert isinstance(transaction.amount, int)
    assert transaction.payment_code
    assert transaction.payment_method == 'pix'
    assert transaction.provider == 'bullspay'
    assert transaction.buyer_info == {'name': 'Ana Silva', 'email': 'ana@x.com',
                                      'document': '12345678901', 'phone': '11999998888'}
    assert transaction.external_id.startswith('subscription_')
    assert gateway.created[0]['external_reference'] == transaction.external_id
    assert store.get_transaction_by_gateway_id(transaction.unic_id).id == transaction.id


def test_begin_transaction_uses_given_reference(lifecycle, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form, external_reference='ref-fixed')

    assert transaction.external_id == 'ref-fixed'


def test_repeated_external_reference_reuses_stored_transaction(lifecycle, gateway, checkout_form):
    first = lifecycle.begin_transaction(checkout_form, external_reference='ref-fixed')
    second = lifecycle.begin_transaction(checkout_form, external_reference='ref-fixed')

    assert second.id == first.id
    assert len(gateway.created) == 1


def test_invalid_form_never_reaches_gateway(lifecycle, gateway, checkout_form):
    checkout_form['document'] = '123'

    with pytest.raises(ValidationError) as exc:
        lifecycle.begin_transaction(checkout_form)

    assert 'document' in exc.value.errors
    assert gateway.created == []


def test_unknown_user_rejected(lifecycle, gateway, checkout_form):
    with pytest.raises(ValidationError) as exc:
        lifecycle.begin_transaction(checkout_form, user_id='no-such-user')

    assert 'userId' in exc.value.errors
    assert gateway.created == []


@pytest.mark.parametrize('error', [
    GatewayUnreachable('Gateway timed out', operation='create'),
    GatewayRejected('Documento inválido', operation='create'),
])
def test_gateway_failure_persists_nothing(lifecycle, store, gateway, checkout_form, error):
    gateway.fail_with = error

    with pytest.raises(type(error)):
        lifecycle.begin_transaction(checkout_form)

    assert Transaction.query.count() == 0


def test_storage_failure_after_gateway_success_propagates(lifecycle, store, checkout_form, monkeypatch):
    def broken(**record):
        raise StorageError('Failed to create transaction: OperationalError')
    monkeypatch.setattr(store, 'create_transaction', broken)

    with pytest.raises(StorageError):
        lifecycle.begin_transaction(checkout_form)


def test_annual_plan_paid_creates_one_year_subscription(lifecycle, store, user, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form, user_id=user.id)

    lifecycle.apply_status_update(transaction.unic_id, 'paid')

    subscription = store.get_active_subscription(user.id)
    assert subscription.transaction_id == transaction.id
    assert subscription.plan == 'annual'
    assert subscription.start_date < subscription.end_date
    assert (subscription.end_date - subscription.start_date).days in (365, 366)
    lifecycle.notifier.subscription_activated.assert_called_once()


@pytest.mark.parametrize('plan', ['premium', 'basic', 'weekly-promo'])
def test_monthly_and_unmapped_plans_get_one_month(lifecycle, store, user, checkout_form, plan):
    checkout_form['plan'] = plan
    transaction = lifecycle.begin_transaction(checkout_form, user_id=user.id)

    lifecycle.apply_status_update(transaction.unic_id, 'paid')

    subscription = store.get_subscription_by_transaction(transaction.id)
    assert subscription.end_date == add_months(subscription.start_date, 1)


def test_repeated_paid_creates_single_subscription(lifecycle, store, user, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form, user_id=user.id)

    lifecycle.apply_status_update(transaction.unic_id, 'paid')
    lifecycle.apply_status_update(transaction.unic_id, 'paid')

    subscriptions = user.subscriptions
    assert len(subscriptions) == 1
    assert lifecycle.notifier.subscription_activated.call_count == 1


def test_paid_without_user_creates_no_subscription(lifecycle, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form)

    updated = lifecycle.apply_status_update(transaction.unic_id, 'paid')

    assert updated.status == 'paid'
    assert updated.subscription is None


@pytest.mark.parametrize('status', ['failed', 'cancelled'])
def test_failed_or_cancelled_creates_no_subscription(lifecycle, store, user, checkout_form, status):
    transaction = lifecycle.begin_transaction(checkout_form, user_id=user.id)

    lifecycle.apply_status_update(transaction.unic_id, status)
    lifecycle.apply_status_update(transaction.unic_id, status)

    assert store.get_subscription_by_transaction(transaction.id) is None
    lifecycle.notifier.payment_failed.assert_called_once()


def test_stale_pending_after_paid_keeps_paid(lifecycle, store, user, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form, user_id=user.id)

    lifecycle.apply_status_update(transaction.unic_id, 'paid')
    lifecycle.apply_status_update(transaction.unic_id, 'pending')

    assert store.get_transaction_by_gateway_id(transaction.unic_id).status == 'paid'
    assert len(user.subscriptions) == 1


def test_concurrent_paid_and_stale_pending(app, lifecycle, store, user, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form, user_id=user.id)
    gateway_id, transaction_id = transaction.unic_id, transaction.id
    db.session.commit()
    errors = []

    def apply(status):
        with app.app_context():
            try:
                lifecycle.apply_status_update(gateway_id, status)
            except Exception as e:
                errors.append(e)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=apply, args=(status,)) for status in ('paid', 'pending')]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert errors == []
    db.session.expire_all()
    assert store.get_transaction_by_gateway_id(gateway_id).status == 'paid'
    assert Subscription.query.filter_by(transaction_id=transaction_id).count() == 1
    assert store._locks == {}


def test_unknown_transaction_not_fabricated(lifecycle, store):
    with pytest.raises(TransactionNotFound):
        lifecycle.apply_status_update('bp_missing', 'paid')

    assert store.get_transaction_by_gateway_id('bp_missing') is None
    assert store._locks == {}


def test_check_status_reconciles_with_gateway(lifecycle, store, gateway, user, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form, user_id=user.id)
    gateway.statuses[transaction.unic_id] = 'paid'

    assert lifecycle.check_status(transaction.unic_id) == 'paid'
    assert store.get_active_subscription(user.id) is not None


def test_check_status_behind_webhook_reports_stored_status(lifecycle, gateway, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form)
    lifecycle.apply_status_update(transaction.unic_id, 'paid')
    gateway.statuses[transaction.unic_id] = 'pending'

    assert lifecycle.check_status(transaction.unic_id) == 'paid'


def test_check_status_unknown_transaction(lifecycle):
    with pytest.raises(TransactionNotFound):
        lifecycle.check_status('bp_missing')


def test_check_status_gateway_error_propagates(lifecycle, gateway, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form)
    gateway.fail_with = GatewayUnreachable('down', operation='status')

    with pytest.raises(GatewayUnreachable):
        lifecycle.check_status(transaction.unic_id)


def test_refund_marks_refunded_and_cancels_subscription(lifecycle, store, user, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form, user_id=user.id)
    lifecycle.apply_status_update(transaction.unic_id, 'paid')

    assert lifecycle.refund(transaction.unic_id) is True

    assert store.get_transaction_by_gateway_id(transaction.unic_id).status == 'refunded'
    assert store.get_subscription_by_transaction(transaction.id).status == 'cancelled'
    assert store.get_active_subscription(user.id) is None


def test_refund_does_not_require_paid(lifecycle, store, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form)

    assert lifecycle.refund(transaction.unic_id) is True
    assert store.get_transaction_by_gateway_id(transaction.unic_id).status == 'refunded'


def test_declined_refund_leaves_status(lifecycle, store, gateway, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form)
    lifecycle.apply_status_update(transaction.unic_id, 'paid')
    gateway.refund_result = False

    assert lifecycle.refund(transaction.unic_id) is False
    assert store.get_transaction_by_gateway_id(transaction.unic_id).status == 'paid'


def test_refund_unknown_transaction_skips_gateway(lifecycle):
    with pytest.raises(TransactionNotFound):
        lifecycle.refund('bp_missing')


def test_paid_after_refund_creates_no_subscription(lifecycle, store, user, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form, user_id=user.id)
    lifecycle.refund(transaction.unic_id)

    lifecycle.apply_status_update(transaction.unic_id, 'paid')

    assert store.get_subscription_by_transaction(transaction.id) is None


@pytest.mark.parametrize('start, months, expected', [
    (datetime(2024, 1, 31, 12, 0), 1, datetime(2024, 2, 29, 12, 0)),
    (datetime(2023, 1, 31), 1, datetime(2023, 2, 28)),
    (datetime(2024, 12, 15), 1, datetime(2025, 1, 15)),
    (datetime(2024, 2, 29), 12, datetime(2025, 2, 28)),
])
def test_add_months(start, months, expected):
    assert add_months(start, months) == expected


def test_subscription_period():
    start = datetime(2024, 3, 10)

    assert subscription_period('annual', start) == (start, datetime(2025, 3, 10))
    assert subscription_period('premium', start) == (start, datetime(2024, 4, 10))
    assert subscription_period('unknown', start) == (start, datetime(2024, 4, 10))
