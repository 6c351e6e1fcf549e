"""
Gateway webhook endpoint
"""
from flask import Blueprint, current_app, jsonify, request

from routes import get_service
from utils.payment_gateway import GatewayRejected
from utils.webhooks import UnknownProvider

webhooks_bp = Blueprint('webhooks', __name__, url_prefix='/api')


@webhooks_bp.route('/webhook/<provider>', methods=['POST'])
def receive_webhook(provider):
    """Record the postback, then apply it; 500 lets the gateway redeliver"""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({'success': False, 'message': 'Invalid webhook payload'}), 400

    try:
        get_service('webhooks').receive(provider, payload)
    except UnknownProvider:
        return jsonify({'success': False, 'message': 'Unknown provider'}), 404
    except GatewayRejected as e:
        return jsonify({'success': False, 'message': str(e)}), 400
    except Exception as e:
        current_app.logger.error(f"Error processing webhook: {str(e)}", exc_info=True)
        return jsonify({'success': False, 'message': 'Failed to process webhook'}), 500

    return jsonify({'success': True})
