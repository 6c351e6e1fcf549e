"""
Payment notification hooks called by the transaction lifecycle
"""
from flask import current_app
from utils.mail import send_payment_failed_email, send_subscription_activated_email


class PaymentNotifier:
    """Best-effort buyer notices; a failed send never fails the payment flow."""

    def payment_failed(self, transaction):
        current_app.logger.info(f"Payment {transaction.status} for transaction {transaction.unic_id}")
        try:
            send_payment_failed_email(transaction)
        except Exception as e:
            current_app.logger.error(
                f"Failed to send payment failure notice for {transaction.unic_id}: {str(e)}", exc_info=True
            )

    def subscription_activated(self, transaction, subscription):
        current_app.logger.info(
            f"Subscription created for user {subscription.user_id}, plan: {subscription.plan}"
        )
        try:
            send_subscription_activated_email(transaction, subscription)
        except Exception as e:
            current_app.logger.error(
                f"Failed to send activation notice for {transaction.unic_id}: {str(e)}", exc_info=True
            )
