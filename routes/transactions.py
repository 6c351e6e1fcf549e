"""
Transaction routes: checkout, status polling, details and refunds
"""
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from routes import get_service
from utils.payment_gateway import GatewayError
from utils.transaction_lifecycle import TransactionNotFound
from utils.transaction_store import StorageError
from utils.validators import ValidationError

transactions_bp = Blueprint('transactions', __name__, url_prefix='/api')


def _not_found():
    return jsonify({'success': False, 'message': 'Transaction not found'}), 404


def _storage_failure(action, error):
    current_app.logger.error(f"Storage error while {action}: {str(error)}", exc_info=True)
    return jsonify({'success': False, 'message': 'Internal server error. Please try again later.'}), 500


@transactions_bp.route('/transactions/create', methods=['POST'])
def create_transaction():
    """Create the PIX charge and return the payment code"""
    form = request.get_json(silent=True)
    if not isinstance(form, dict):
        return jsonify({'success': False, 'message': 'Invalid checkout data'}), 400

    # A logged-in buyer owns the transaction; otherwise an explicit userId may link it
    if current_user.is_authenticated:
        user_id = current_user.id
    else:
        user_id = form.get('userId') if isinstance(form.get('userId'), str) and form.get('userId') else None

    try:
        transaction = get_service('lifecycle').begin_transaction(form, user_id=user_id)
    except ValidationError as e:
        return jsonify({'success': False, 'message': 'Please check the highlighted fields.', 'errors': e.errors}), 400
    except GatewayError as e:
        current_app.logger.error(f"Error creating transaction: {str(e)}")
        return jsonify({'success': False, 'message': e.message or 'Failed to create transaction'}), 400
    except StorageError as e:
        return _storage_failure('creating transaction', e)

    payment_data = transaction.payment_data or {}
    return jsonify({
        'success': True,
        'data': {
            'transactionId': transaction.id,
            'gatewayId': transaction.unic_id,
            'status': transaction.status,
            'paymentCode': payment_data.get('qrCodeText'),
            'qrCodeBase64': payment_data.get('qrCodeBase64'),
            'paymentUrl': payment_data.get('paymentUrl'),
            'expiresInMinutes': current_app.config.get('PAYMENT_WINDOW_MINUTES', 15),
        },
    })


@transactions_bp.route('/transactions/<gateway_id>/status')
def transaction_status(gateway_id):
    """Reconcile against the gateway and report the current status"""
    try:
        status = get_service('lifecycle').check_status(gateway_id)
    except TransactionNotFound:
        return _not_found()
    except GatewayError as e:
        current_app.logger.error(f"Error checking transaction status: {str(e)}")
        return jsonify({'success': False, 'message': 'Failed to check transaction status'}), 502
    except StorageError as e:
        return _storage_failure('checking transaction status', e)

    return jsonify({'success': True, 'data': {'status': status}})


@transactions_bp.route('/transactions/<gateway_id>')
def transaction_detail(gateway_id):
    """Stored transaction, no gateway call"""
    try:
        transaction = get_service('store').get_transaction_by_gateway_id(gateway_id)
    except StorageError as e:
        return _storage_failure('loading transaction', e)

    if transaction is None:
        return _not_found()
    return jsonify({'success': True, 'data': transaction.to_dict()})


@transactions_bp.route('/transactions/<gateway_id>/refund', methods=['POST'])
def refund_transaction(gateway_id):
    """Refund through the gateway"""
    try:
        success = get_service('lifecycle').refund(gateway_id)
    except TransactionNotFound:
        return _not_found()
    except GatewayError as e:
        current_app.logger.error(f"Error refunding transaction: {str(e)}")
        return jsonify({'success': False, 'message': 'Failed to refund transaction'}), 502
    except StorageError as e:
        return _storage_failure('refunding transaction', e)

    return jsonify({
        'success': success,
        'message': 'Transaction refunded successfully' if success else 'Failed to refund transaction',
    })
