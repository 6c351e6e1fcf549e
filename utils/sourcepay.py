"""
SourcePay PIX gateway client
"""
import base64
import logging
import time
from typing import Optional

from utils.payment_gateway import (
    CreatedPayment,
    GatewayClient,
    GatewayError,
    GatewayRejected,
    WebhookNotification,
    WireModel,
    normalize_status,
    normalize_webhook_status,
)

logger = logging.getLogger(__name__)


class SourcePayPix(WireModel):
    qrcode: Optional[str] = None
    url: Optional[str] = None
    expirationDate: Optional[str] = None


class SourcePayTransaction(WireModel):
    id: str
    status: Optional[str] = None
    amount: Optional[int] = None
    secureUrl: Optional[str] = None
    pix: Optional[SourcePayPix] = None


class SourcePayCreateResponse(SourcePayTransaction):
    success: Optional[bool] = None
    message: Optional[str] = None


class SourcePayStatusResponse(WireModel):
    status: Optional[str] = None


class SourcePayRefundResponse(WireModel):
    success: bool = False
    message: Optional[str] = None


class SourcePayWebhookData(WireModel):
    id: str
    status: str
    externalRef: Optional[str] = None


class SourcePayWebhookPayload(WireModel):
    type: str = 'transaction'
    data: SourcePayWebhookData


class SourcePayClient(GatewayClient):
    """SourcePay: HTTP Basic auth; the PIX code is fetched shortly after creation."""

    name = 'sourcepay'

    def __init__(self, public_key, secret_key, base_url, webhook_url=None,
                 pix_expires_minutes=30, enrich_delay=2, timeout=15, session=None):
        super().__init__(base_url, timeout=timeout, session=session)
        self.public_key = public_key or ''
        self.secret_key = secret_key or ''
        self.webhook_url = webhook_url
        self.pix_expires_minutes = pix_expires_minutes
        self.enrich_delay = enrich_delay

    def has_credentials(self):
        return bool(self.public_key and self.secret_key)

    def _headers(self):
        headers = super()._headers()
        credentials = f"{self.public_key}:{self.secret_key}".encode('utf-8')
        headers['Authorization'] = f"Basic {base64.b64encode(credentials).decode('ascii')}"
        return headers

    def create(self, buyer, amount, external_reference, plan=None, title=None):
        body = {
            'amount': amount,
            'currency': 'BRL',
            'paymentMethod': 'pix',
            'pix': {'expiresInMinutes': self.pix_expires_minutes},
            'items': [{
                'title': title or plan or 'Assinatura',
                'quantity': 1,
                'unitPrice': amount,
                'description': f"Assinatura {plan}" if plan else 'Assinatura',
                'tangible': False,
            }],
            'customer': {
                'name': buyer['name'],
                'email': buyer['email'],
                'document': {'type': 'cpf', 'number': buyer['document']},
                'phone': buyer['phone'],
            },
            'externalRef': external_reference,
            'metadata': f"Plan: {plan}",
        }
        if self.webhook_url:
            body['postbackUrl'] = self.webhook_url

        raw = self._request('POST', '/v1/transactions', 'create', json=body)
        result = self._parse(SourcePayCreateResponse, raw, 'create')
        if result.success is False:
            raise GatewayRejected(result.message or 'Failed to create transaction',
                                  operation='create', provider=self.name)

        pix = result.pix or SourcePayPix()
        payment = CreatedPayment(
            gateway_id=result.id,
            payment_code=pix.qrcode,
            payment_url=pix.url or result.secureUrl,
            raw_payload=raw,
        )
        if not payment.payment_code:
            payment.payment_code = self._fetch_payment_code(result.id)
        return payment

    def _fetch_payment_code(self, gateway_id):
        """Best-effort single follow-up: the PIX code is published a moment after creation."""
        if self.enrich_delay:
            time.sleep(self.enrich_delay)
        try:
            raw = self._request('GET', f'/v1/transactions/{gateway_id}', 'enrich', gateway_id=gateway_id)
            details = self._parse(SourcePayTransaction, raw, 'enrich', gateway_id)
        except GatewayError as e:
            logger.warning("Could not fetch PIX code for %s: %s", gateway_id, e)
            return None
        return details.pix.qrcode if details.pix else None

    def status(self, gateway_id):
        raw = self._request('GET', f'/v1/transactions/{gateway_id}', 'status', gateway_id=gateway_id)
        # Some API versions wrap the transaction in {"success": ..., "data": {...}}
        body = raw.get('data') if isinstance(raw.get('data'), dict) else raw
        result = self._parse(SourcePayStatusResponse, body, 'status', gateway_id)
        return normalize_status(result.status, self.status_aliases)

    def refund(self, gateway_id):
        raw = self._request('POST', f'/v1/transactions/{gateway_id}/refund', 'refund', gateway_id=gateway_id)
        return self._parse(SourcePayRefundResponse, raw, 'refund', gateway_id).success

    @classmethod
    def parse_webhook(cls, payload):
        event = cls._parse(SourcePayWebhookPayload, payload, 'webhook')
        return WebhookNotification(
            event_type=event.type,
            gateway_id=event.data.id,
            status=normalize_webhook_status(event.data.status, cls.status_aliases),
        )
