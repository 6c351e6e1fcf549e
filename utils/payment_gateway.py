"""
Payment gateway client interface shared by every PIX provider.

A client wraps one provider's wire protocol: create a PIX charge, look up its
status, refund it and parse its webhook postbacks. Clients hold no state
besides their configuration and an HTTP session, and never retry; retry
policy belongs to the caller.
"""
import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

import requests
from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

# Transaction statuses
PENDING = 'pending'
PAID = 'paid'
FAILED = 'failed'
CANCELLED = 'cancelled'
REFUNDED = 'refunded'

GATEWAY_STATUSES = (PENDING, PAID, FAILED, CANCELLED)
TRANSACTION_STATUSES = GATEWAY_STATUSES + (REFUNDED,)

# Provider vocabulary shared by the supported gateways
DEFAULT_STATUS_ALIASES = {
    'paid': PAID,
    'approved': PAID,
    'pending': PENDING,
    'waiting_payment': PENDING,
    'processing': PENDING,
    'failed': FAILED,
    'refused': FAILED,
    'expired': FAILED,
    'cancelled': CANCELLED,
    'canceled': CANCELLED,
}

# Only accepted from webhooks; a polled status never reports a refund
REFUND_ALIASES = {'refunded', 'chargedback', 'chargeback'}


class GatewayError(Exception):
    """Base class for failures talking to the payment gateway."""

    def __init__(self, message, operation=None, gateway_id=None, provider=None):
        self.message = message
        self.operation = operation
        self.gateway_id = gateway_id
        self.provider = provider
        super().__init__(message)

    def __str__(self):
        context = [part for part in (
            self.provider,
            self.operation,
            f"id={self.gateway_id}" if self.gateway_id else None,
        ) if part]
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class GatewayUnreachable(GatewayError):
    """Transport failure or timeout; the caller may retry."""


class GatewayRejected(GatewayError):
    """The provider answered but refused the request."""


class WireModel(BaseModel):
    """Base for provider response shapes: unknown fields are dropped."""
    model_config = ConfigDict(extra='ignore')


class CreatedPayment(BaseModel):
    """Normalized result of a successful charge creation."""
    gateway_id: str
    payment_code: Optional[str] = None
    qr_code_base64: Optional[str] = None
    payment_url: Optional[str] = None
    raw_payload: dict[str, Any] = {}

    @property
    def payment_data(self):
        return {
            'qrCodeText': self.payment_code,
            'qrCodeBase64': self.qr_code_base64,
            'paymentUrl': self.payment_url,
        }


class WebhookNotification(BaseModel):
    """Provider postback reduced to what the lifecycle needs."""
    event_type: str
    gateway_id: str
    status: str


def normalize_status(raw_status, aliases=None):
    """Map a provider status onto pending/paid/failed/cancelled.

    Unrecognized values map to pending so an unknown code is never
    treated as a confirmed payment.
    """
    aliases = aliases or DEFAULT_STATUS_ALIASES
    key = (raw_status or '').strip().lower()
    return aliases.get(key, PENDING)


def normalize_webhook_status(raw_status, aliases=None):
    """Like normalize_status, but refunds pushed by the gateway are kept."""
    key = (raw_status or '').strip().lower()
    if key in REFUND_ALIASES:
        return REFUNDED
    return normalize_status(key, aliases)


def generate_external_reference():
    """Generate a unique correlation token sent to the gateway"""
    return f"subscription_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class GatewayClient(ABC):
    """Capability interface implemented by each provider."""

    name = 'gateway'
    status_aliases = DEFAULT_STATUS_ALIASES

    def __init__(self, base_url, timeout=15, session=None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    @abstractmethod
    def create(self, buyer, amount, external_reference, plan=None, title=None) -> CreatedPayment:
        """Create a PIX charge of `amount` centavos for `buyer`."""

    @abstractmethod
    def status(self, gateway_id) -> str:
        """Return one of pending, paid, failed or cancelled."""

    @abstractmethod
    def refund(self, gateway_id) -> bool:
        """Ask the provider to refund the charge."""

    @classmethod
    @abstractmethod
    def parse_webhook(cls, payload) -> WebhookNotification:
        """Validate a postback body; raises GatewayRejected if malformed."""

    @abstractmethod
    def has_credentials(self) -> bool:
        """True when the credential pair is configured."""

    def _headers(self):
        return {'Accept': 'application/json'}

    def _request(self, method, path, operation, gateway_id=None, **kwargs):
        """Perform one outbound call and return the decoded JSON body.

        Raises GatewayUnreachable on transport errors and GatewayRejected on
        non-2xx answers or undecodable bodies.
        """
        if not self.has_credentials():
            raise GatewayRejected("Gateway credentials are not configured",
                                  operation=operation, gateway_id=gateway_id, provider=self.name)

        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, headers=self._headers(),
                                            timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise GatewayUnreachable(f"Gateway timed out after {self.timeout}s",
                                     operation=operation, gateway_id=gateway_id, provider=self.name) from e
        except requests.RequestException as e:
            raise GatewayUnreachable(f"Gateway request failed: {e.__class__.__name__}",
                                     operation=operation, gateway_id=gateway_id, provider=self.name) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not response.ok:
            message = None
            if isinstance(body, dict):
                message = body.get('message')
            raise GatewayRejected(message or f"Gateway API error: {response.status_code} {response.reason}",
                                  operation=operation, gateway_id=gateway_id, provider=self.name)
        if not isinstance(body, dict):
            raise GatewayRejected("Gateway returned an invalid JSON body",
                                  operation=operation, gateway_id=gateway_id, provider=self.name)
        return body

    @classmethod
    def _parse(cls, model, body, operation, gateway_id=None):
        """Validate a response body against its expected shape."""
        try:
            return model.model_validate(body)
        except PydanticValidationError as e:
            logger.warning("Unexpected %s payload shape for %s: %s", cls.name, operation, e)
            raise GatewayRejected("Gateway returned an unexpected payload",
                                  operation=operation, gateway_id=gateway_id, provider=cls.name) from e


def provider_class(name):
    """Return the client class registered under `name`, or None."""
    from utils.bullspay import BullsPayClient
    from utils.sourcepay import SourcePayClient

    providers = {cls.name: cls for cls in (BullsPayClient, SourcePayClient)}
    return providers.get((name or '').lower())


def build_gateway_client(config, session=None):
    """Build the client for the provider selected by PAYMENT_GATEWAY."""
    from utils.bullspay import BullsPayClient
    from utils.sourcepay import SourcePayClient

    provider = (config.get('PAYMENT_GATEWAY') or 'bullspay').lower()
    timeout = config.get('GATEWAY_TIMEOUT_SECONDS', 15)
    if provider == BullsPayClient.name:
        return BullsPayClient(
            public_key=config.get('BULLSPAY_PUBLIC_KEY'),
            private_key=config.get('BULLSPAY_PRIVATE_KEY'),
            base_url=config.get('BULLSPAY_BASE_URL'),
            webhook_url=config.get('BULLSPAY_WEBHOOK_URL'),
            timeout=timeout,
            session=session,
        )
    if provider == SourcePayClient.name:
        return SourcePayClient(
            public_key=config.get('SOURCEPAY_PUBLIC_KEY'),
            secret_key=config.get('SOURCEPAY_SECRET_KEY'),
            base_url=config.get('SOURCEPAY_BASE_URL'),
            webhook_url=config.get('SOURCEPAY_WEBHOOK_URL'),
            pix_expires_minutes=config.get('SOURCEPAY_PIX_EXPIRES_MINUTES', 30),
            enrich_delay=config.get('SOURCEPAY_ENRICH_DELAY_SECONDS', 2),
            timeout=timeout,
            session=session,
        )
    raise ValueError(f"Unknown payment gateway: {provider}")
