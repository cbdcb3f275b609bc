import logging
from typing import Any, Optional

from .chapa import ChapaClient, is_valid_tx_ref
from .config import Settings
from .errors import ChapaError
from .models import (DirectChargeAuthorization, DirectChargeRequest,
                     MobilePaymentRequest, PaymentRequest, TxRefOptions)

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMIZATION = {
    "title": "Khanut Payment",
    "description": "Payment for services/products",
}

DEFAULT_MOBILE_CUSTOMIZATION = {
    "title": "Khanut Mobile Payment",
    "description": "Mobile payment for services/products",
}


class PaymentGateway:
    """
    Khanut's surface over Chapa.

    Fills in the boilerplate every checkout needs (reference,
    callback/return URLs, branding) and hands everything else to the
    client untouched. Errors are logged and re-raised as they came.
    """

    def __init__(self, client: ChapaClient, settings: Settings):
        self.client = client
        self.settings = settings

    def _checkout_payload(self, data: PaymentRequest, customization: dict) -> dict[str, Any]:
        payload = data.model_dump(exclude_none=True)
        payload["tx_ref"] = data.tx_ref or self.generate_tx_ref()
        payload["callback_url"] = data.callback_url or self.settings.chapa_callback_url
        payload["return_url"] = data.return_url or self.settings.chapa_return_url
        if data.customization is None:
            payload["customization"] = dict(customization)
        return payload

    def initialize_payment(self, data: PaymentRequest) -> dict[str, Any]:
        try:
            payload = self._checkout_payload(data, DEFAULT_CUSTOMIZATION)
            response = self.client.initialize(payload)
        except Exception:
            logger.exception("Chapa payment initialization error")
            raise
        logger.info(f"Initialized Chapa checkout tx_ref={payload['tx_ref']}")
        return response

    def verify_payment(self, tx_ref: str) -> dict[str, Any]:
        if not is_valid_tx_ref(tx_ref):
            logger.warning(f"Refusing to verify malformed tx_ref={tx_ref!r}")
            raise ChapaError(f"Invalid transaction reference: {tx_ref!r}", status_code=400)
        try:
            return self.client.verify(tx_ref)
        except Exception:
            logger.exception(f"Chapa payment verification error for tx_ref={tx_ref}")
            raise

    def generate_tx_ref(self, options: Optional[TxRefOptions] = None) -> str:
        options = options or TxRefOptions()
        try:
            return self.client.gen_tx_ref(
                remove_prefix=options.remove_prefix,
                prefix=options.prefix,
                size=options.size,
            )
        except Exception:
            logger.exception("Error generating transaction reference")
            raise

    def initialize_mobile_payment(self, data: MobilePaymentRequest) -> dict[str, Any]:
        try:
            payload = self._checkout_payload(data, DEFAULT_MOBILE_CUSTOMIZATION)
            response = self.client.mobile_initialize(payload)
        except Exception:
            logger.exception("Chapa mobile payment initialization error")
            raise
        logger.info(f"Initialized Chapa mobile checkout tx_ref={payload['tx_ref']}")
        return response

    def process_direct_charge(self, data: DirectChargeRequest) -> dict[str, Any]:
        try:
            payload = data.model_dump(mode="json", exclude_none=True)
            payload["tx_ref"] = data.tx_ref or self.generate_tx_ref()
            return self.client.direct_charge(payload)
        except Exception:
            logger.exception("Chapa direct charge error")
            raise

    def authorize_direct_charge(self, data: DirectChargeAuthorization) -> dict[str, Any]:
        try:
            return self.client.authorize_direct_charge(data.model_dump(mode="json"))
        except Exception:
            logger.exception("Chapa direct charge authorization error")
            raise
