"""
Public routes: health check and plan catalog
"""
from datetime import datetime

from flask import Blueprint, current_app, jsonify

public_bp = Blueprint('public', __name__, url_prefix='/api')


@public_bp.route('/health')
def health():
    """Liveness probe"""
    return jsonify({
        'success': True,
        'message': 'API is running',
        'timestamp': datetime.utcnow().isoformat() + 'Z',
    })


@public_bp.route('/plans')
def plans():
    """Plans offered on the storefront (prices in centavos)"""
    return jsonify({'success': True, 'data': current_app.config.get('PLANS', [])})
