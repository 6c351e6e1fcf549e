"""
Webhook ingestion: record every gateway postback before acting on it,
and replay the ones that never finished.
"""
import logging

from utils.payment_gateway import GatewayRejected, provider_class
from utils.transaction_lifecycle import TransactionNotFound

logger = logging.getLogger(__name__)


class UnknownProvider(Exception):
    """Webhook posted for a provider this app does not integrate."""


class WebhookService:

    def __init__(self, store, lifecycle):
        self.store = store
        self.lifecycle = lifecycle

    def receive(self, provider, payload):
        """
        Persist the postback, then apply it.

        Returns the stored event. A malformed postback is recorded as
        processed and then rejected. A postback for an unknown transaction is
        kept unprocessed for a later replay. Any other failure leaves the
        event unprocessed and propagates so the gateway can redeliver.
        """
        client_class = provider_class(provider)
        if client_class is None:
            raise UnknownProvider(provider)

        notification, parse_error = None, None
        try:
            notification = client_class.parse_webhook(payload)
        except GatewayRejected as e:
            parse_error = e

        if notification is not None:
            event_type, gateway_id = notification.event_type, notification.gateway_id
        else:
            event_type = str(payload.get('event_type') or payload.get('type') or 'unknown')
            gateway_id = ''
        event = self.store.create_webhook_event(client_class.name, event_type, gateway_id, payload)

        if parse_error is not None:
            # A malformed body never becomes valid; close it so replay skips it
            self.store.mark_webhook_event_processed(event.id)
            logger.warning("Malformed %s webhook stored as %s and closed: %s", provider, event.id, parse_error)
            raise parse_error

        try:
            self.lifecycle.apply_status_update(notification.gateway_id, notification.status)
        except TransactionNotFound:
            logger.warning("Webhook %s references unknown transaction %s; left for replay",
                           event.id, notification.gateway_id)
            return event

        self.store.mark_webhook_event_processed(event.id)
        return event

    def process_event(self, event):
        """Re-run a stored event through the lifecycle."""
        client_class = provider_class(event.provider)
        if client_class is None:
            raise UnknownProvider(event.provider)
        notification = client_class.parse_webhook(event.payload)
        self.lifecycle.apply_status_update(notification.gateway_id, notification.status)

    def replay_unprocessed(self):
        """
        Replay every unprocessed event, oldest first.

        One bad event never blocks the rest. Returns (processed, failed).
        """
        processed, failed = 0, 0
        for event in self.store.list_unprocessed_webhook_events():
            event_id = event.id
            try:
                self.process_event(event)
                self.store.mark_webhook_event_processed(event_id)
                processed += 1
            except Exception:
                failed += 1
                logger.error("Error processing webhook event %s", event_id, exc_info=True)
        if processed or failed:
            logger.info("Webhook replay finished: %s processed, %s failed", processed, failed)
        return processed, failed
