"""
Thin client for the Chapa REST API (https://developer.chapa.co).

Each method is one HTTP call; responses are returned as the decoded
JSON body ({"message": ..., "status": ..., "data": ...}). A non-2xx
answer raises ChapaError; network failures surface as requests
exceptions.
"""
import logging
import re
import secrets
import string
from typing import Any, Optional

import requests

from .errors import ChapaError
from .models import TX_REF_PATTERN

logger = logging.getLogger(__name__)

TX_REF_ALPHABET = string.digits + string.ascii_lowercase

# References end up in URL paths; nothing that could walk out of one
TX_REF_RE = re.compile(TX_REF_PATTERN)


def is_valid_tx_ref(tx_ref) -> bool:
    return isinstance(tx_ref, str) and TX_REF_RE.fullmatch(tx_ref) is not None


class ChapaClient:
    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.chapa.co/v1",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {secret_key}"})

    def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        logger.debug(f"Chapa {method} {url}")
        response = self.session.request(method, url, timeout=self.timeout, **kwargs)

        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}

        if not response.ok:
            message = body.get("message") if isinstance(body, dict) else None
            raise ChapaError(
                str(message or f"Chapa request failed with HTTP {response.status_code}"),
                status_code=response.status_code,
                payload=body if isinstance(body, dict) else {"data": body},
            )
        return body

    def initialize(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/transaction/initialize", json=payload)

    def verify(self, tx_ref: str) -> dict[str, Any]:
        if not is_valid_tx_ref(tx_ref):
            raise ChapaError(f"Invalid transaction reference: {tx_ref!r}", status_code=400)
        return self._request("GET", f"/transaction/verify/{tx_ref}")

    def mobile_initialize(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/transaction/mobile-initialize", json=payload)

    def direct_charge(self, payload: dict[str, Any]) -> dict[str, Any]:
        # Charge type travels in the query string, the rest as form fields
        data = dict(payload)
        charge_type = data.pop("type")
        return self._request("POST", "/charges", params={"type": charge_type}, data=data)

    def authorize_direct_charge(self, payload: dict[str, Any]) -> dict[str, Any]:
        data = dict(payload)
        charge_type = data.pop("type")
        return self._request("POST", "/validate", params={"type": charge_type}, data=data)

    def gen_tx_ref(self, remove_prefix: bool = False, prefix: str = "TX", size: int = 15) -> str:
        """Random reference such as "TX-4K2J9ZQ0P1MB7XA"; generated locally."""
        reference = "".join(secrets.choice(TX_REF_ALPHABET) for _ in range(size)).upper()
        if remove_prefix:
            return reference
        return f"{prefix}-{reference}"

    def close(self) -> None:
        self.session.close()
