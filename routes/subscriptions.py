"""
Subscription routes
"""
from flask import Blueprint, current_app, jsonify, request

from routes import get_service
from utils.transaction_store import StorageError

subscriptions_bp = Blueprint('subscriptions', __name__, url_prefix='/api')


@subscriptions_bp.route('/subscriptions')
def active_subscription():
    """Current active subscription for a user, or null"""
    user_id = request.args.get('userId', '').strip()
    if not user_id:
        return jsonify({'success': False, 'message': 'User ID required'}), 400

    try:
        subscription = get_service('store').get_active_subscription(user_id)
    except StorageError as e:
        current_app.logger.error(f"Error getting subscriptions: {str(e)}", exc_info=True)
        return jsonify({'success': False, 'message': 'Failed to get subscriptions'}), 500

    return jsonify({
        'success': True,
        'data': subscription.to_dict() if subscription else None,
    })
