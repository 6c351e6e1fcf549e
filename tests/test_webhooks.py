import pytest

from models import db
from models.webhook_event import WebhookEvent
from tests.helpers import bullspay_webhook
from utils.payment_gateway import GatewayRejected
from utils.transaction_store import StorageError
from utils.webhooks import UnknownProvider


def test_receive_applies_status_and_marks_processed(webhook_service, lifecycle, store, user, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form, user_id=user.id)

    event = webhook_service.receive('bullspay', bullspay_webhook(transaction.unic_id, 'paid'))

    assert event.processed is True
    assert event.transaction_id == transaction.unic_id
    assert event.payload['data']['status'] == 'paid'
    assert store.get_transaction_by_gateway_id(transaction.unic_id).status == 'paid'
    assert store.get_active_subscription(user.id) is not None


def test_duplicate_deliveries_are_stored_but_applied_once(webhook_service, lifecycle, user, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form, user_id=user.id)
    payload = bullspay_webhook(transaction.unic_id, 'paid')

    webhook_service.receive('bullspay', payload)
    webhook_service.receive('bullspay', payload)

    assert WebhookEvent.query.count() == 2
    assert len(user.subscriptions) == 1


def test_unknown_transaction_event_left_for_replay(webhook_service, store):
    event = webhook_service.receive('bullspay', bullspay_webhook('bp_missing', 'paid'))

    assert event.processed is False
    assert [e.id for e in store.list_unprocessed_webhook_events()] == [event.id]


def test_processing_error_keeps_event_unprocessed(webhook_service, lifecycle, store, checkout_form, monkeypatch):
    transaction = lifecycle.begin_transaction(checkout_form)

    def broken(gateway_id, status, payment_data=None):
        raise StorageError('Failed to update transaction status: OperationalError')
    monkeypatch.setattr(store, 'transition_transaction_status', broken)

    with pytest.raises(StorageError):
        webhook_service.receive('bullspay', bullspay_webhook(transaction.unic_id, 'paid'))

    assert len(store.list_unprocessed_webhook_events()) == 1


def test_malformed_payload_is_recorded_then_rejected(webhook_service, store):
    with pytest.raises(GatewayRejected):
        webhook_service.receive('bullspay', {'event_type': 'transaction.paid', 'data': {'status': 'paid'}})

    events = WebhookEvent.query.all()
    assert len(events) == 1
    assert events[0].event_type == 'transaction.paid'
    assert events[0].processed is True
    assert store.list_unprocessed_webhook_events() == []


def test_malformed_payload_is_not_replayed(webhook_service):
    with pytest.raises(GatewayRejected):
        webhook_service.receive('bullspay', {'event_type': 'transaction.paid'})

    assert webhook_service.replay_unprocessed() == (0, 0)


def test_unknown_provider(webhook_service):
    with pytest.raises(UnknownProvider):
        webhook_service.receive('paypal', {'event_type': 'x'})
    assert WebhookEvent.query.count() == 0


def test_replay_processes_events_once_transaction_exists(webhook_service, lifecycle, store, user, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form, user_id=user.id)
    event = store.create_webhook_event('bullspay', 'transaction.paid', transaction.unic_id,
                                       bullspay_webhook(transaction.unic_id, 'paid'))

    processed, failed = webhook_service.replay_unprocessed()

    assert (processed, failed) == (1, 0)
    assert store.list_unprocessed_webhook_events() == []
    assert db.session.get(WebhookEvent, event.id).processed is True
    assert store.get_active_subscription(user.id) is not None


def test_replay_continues_past_failures(webhook_service, lifecycle, store, checkout_form):
    transaction = lifecycle.begin_transaction(checkout_form)
    orphan = store.create_webhook_event('bullspay', 'transaction.paid', 'bp_missing',
                                        bullspay_webhook('bp_missing', 'paid'))
    store.create_webhook_event('bullspay', 'transaction.failed', transaction.unic_id,
                               bullspay_webhook(transaction.unic_id, 'failed'))

    processed, failed = webhook_service.replay_unprocessed()

    assert (processed, failed) == (1, 1)
    assert [e.id for e in store.list_unprocessed_webhook_events()] == [orphan.id]
    assert store.get_transaction_by_gateway_id(transaction.unic_id).status == 'failed'


def test_replay_with_nothing_pending(webhook_service):
    assert webhook_service.replay_unprocessed() == (0, 0)
