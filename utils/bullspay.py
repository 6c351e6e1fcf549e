"""
BullsPay PIX gateway client
"""
from typing import Optional

from utils.payment_gateway import (
    CreatedPayment,
    GatewayClient,
    GatewayRejected,
    PENDING,
    WebhookNotification,
    WireModel,
    normalize_status,
    normalize_webhook_status,
)


class BullsPayPaymentData(WireModel):
    id: str
    amount: Optional[int] = None
    external_id: Optional[str] = None


class BullsPayPixData(WireModel):
    qrcode: Optional[str] = None


class BullsPayCreateData(WireModel):
    payment_data: BullsPayPaymentData
    pix_data: BullsPayPixData = BullsPayPixData()


class BullsPayCreateResponse(WireModel):
    success: bool
    message: Optional[str] = None
    data: Optional[BullsPayCreateData] = None


class BullsPayListedTransaction(WireModel):
    status: str


class BullsPayListData(WireModel):
    transactions: list[BullsPayListedTransaction] = []


class BullsPayListResponse(WireModel):
    success: bool
    data: Optional[BullsPayListData] = None


class BullsPayRefundResponse(WireModel):
    success: bool = False
    message: Optional[str] = None


class BullsPayWebhookData(WireModel):
    unic_id: str
    status: str
    external_id: Optional[str] = None
    total_value: Optional[int] = None


class BullsPayWebhookPayload(WireModel):
    event_type: str
    data: BullsPayWebhookData


class BullsPayClient(GatewayClient):
    """BullsPay: key-pair header auth, PIX code returned on creation."""

    name = 'bullspay'

    def __init__(self, public_key, private_key, base_url, webhook_url=None, timeout=15, session=None):
        super().__init__(base_url, timeout=timeout, session=session)
        self.public_key = public_key or ''
        self.private_key = private_key or ''
        self.webhook_url = webhook_url

    def has_credentials(self):
        return bool(self.public_key and self.private_key)

    def _headers(self):
        headers = super()._headers()
        headers['X-Public-Key'] = self.public_key
        headers['X-Private-Key'] = self.private_key
        return headers

    def create(self, buyer, amount, external_reference, plan=None, title=None):
        body = {
            'amount': amount,
            'buyer_infos': {
                'buyer_name': buyer['name'],
                'buyer_email': buyer['email'],
                'buyer_document': buyer['document'],
                'buyer_phone': buyer['phone'],
            },
            'external_id': external_reference,
            'payment_method': 'pix',
        }
        if self.webhook_url:
            body['postback_url'] = self.webhook_url

        raw = self._request('POST', '/transactions/create', 'create', json=body)
        result = self._parse(BullsPayCreateResponse, raw, 'create')
        if not result.success or result.data is None:
            raise GatewayRejected(result.message or 'Failed to create transaction',
                                  operation='create', provider=self.name)

        return CreatedPayment(
            gateway_id=result.data.payment_data.id,
            payment_code=result.data.pix_data.qrcode,
            raw_payload=raw,
        )

    def status(self, gateway_id):
        raw = self._request('GET', '/transactions/list', 'status', gateway_id=gateway_id,
                            params={'id': gateway_id})
        result = self._parse(BullsPayListResponse, raw, 'status', gateway_id)
        if result.success and result.data and result.data.transactions:
            return normalize_status(result.data.transactions[0].status, self.status_aliases)
        return PENDING

    def refund(self, gateway_id):
        raw = self._request('PUT', f'/transactions/refund/{gateway_id}', 'refund', gateway_id=gateway_id)
        return self._parse(BullsPayRefundResponse, raw, 'refund', gateway_id).success

    @classmethod
    def parse_webhook(cls, payload):
        event = cls._parse(BullsPayWebhookPayload, payload, 'webhook')
        return WebhookNotification(
            event_type=event.event_type,
            gateway_id=event.data.unic_id,
            status=normalize_webhook_status(event.data.status, cls.status_aliases),
        )
