import uuid
from unittest.mock import MagicMock

from utils.bullspay import BullsPayClient
from utils.payment_gateway import CreatedPayment, PENDING


class FakeGateway(BullsPayClient):
    """In-memory BullsPay stand-in; webhook parsing is the real BullsPay one."""

    def __init__(self):
        super().__init__('pk', 'sk', 'https://gateway.test/api')
        self.created = []
        self.statuses = {}
        self.refund_result = True
        self.fail_with = None

    def create(self, buyer, amount, external_reference, plan=None, title=None):
        if self.fail_with is not None:
            raise self.fail_with
        gateway_id = f"bp_{uuid.uuid4().hex[:12]}"
        self.created.append({'buyer': buyer, 'amount': amount, 'external_reference': external_reference})
        self.statuses[gateway_id] = PENDING
        return CreatedPayment(gateway_id=gateway_id,
                              payment_code=f"00020126pix{gateway_id}",
                              raw_payload={'id': gateway_id})

    def status(self, gateway_id):
        if self.fail_with is not None:
            raise self.fail_with
        return self.statuses.get(gateway_id, PENDING)

    def refund(self, gateway_id):
        if self.fail_with is not None:
            raise self.fail_with
        return self.refund_result


def bullspay_webhook(gateway_id, status, event_type='transaction.updated'):
    return {
        'event_type': event_type,
        'data': {
            'unic_id': gateway_id,
            'external_id': 'subscription_1_abcd1234',
            'status': status,
            'total_value': 29900,
            'created_at': '2024-01-01T00:00:00Z',
        },
    }


def make_response(status_code=200, body=None, reason='OK'):
    """Stand-in for requests.Response"""
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.reason = reason
    if body is None:
        response.json.side_effect = ValueError('No JSON')
    else:
        response.json.return_value = body
    return response
