"""
CopperX Checkout Gateway

Creates hosted crypto checkout sessions and reads their status back.
"""

import secrets
from decimal import Decimal
from typing import Optional, Dict, Any

import requests

from config import settings
from data.models import CheckoutSession
from utils.exceptions import ConfigurationError, PaymentGatewayError
from utils.helpers import safe_get, new_id
from utils.logger import get_logger

logger = get_logger(__name__)

COMPLETE_STATUS = "complete"


def to_gateway_units(amount: Decimal) -> str:
    """Convert an amount to the gateway's 1e-8 integer units, as a string."""
    scale = Decimal(10) ** settings.GATEWAY_AMOUNT_DECIMALS
    return str(int((Decimal(str(amount)) * scale).to_integral_value()))


class CopperXService:
    """Client for CopperX checkout sessions."""

    name = "COPPERX"

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        self.api_key = api_key or settings.COPPERX_API_KEY
        if not self.api_key:
            raise ConfigurationError("COPPERX_API_KEY is not configured")
        self.api_base = (api_base or settings.COPPERX_API_BASE).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = self.session.request(
                method, f"{self.api_base}{path}", json=payload, headers=headers, timeout=self.timeout
            )
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            logger.error(f"CopperX {method} {path} returned an error: {e}")
            raise PaymentGatewayError(f"Checkout gateway rejected request: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"CopperX {method} {path} failed: {e}")
            raise PaymentGatewayError(f"Checkout gateway unreachable: {e}") from e
        except ValueError as e:
            raise PaymentGatewayError("Checkout gateway returned invalid JSON") from e

    def create_checkout_session(
        self,
        amount: Decimal,
        currency: str,
        success_url: str,
        cancel_url: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> CheckoutSession:
        """
        Create a hosted checkout session.

        Raises:
            PaymentGatewayError: If the gateway rejects the request or returns no session id.
        """
        payload = {
            "successUrl": success_url,
            "cancelUrl": cancel_url or success_url,
            "lineItems": {
                "data": [{
                    "priceData": {
                        "currency": currency.lower(),
                        "unitAmount": to_gateway_units(amount),
                        "productData": {
                            "name": settings.CHECKOUT_PRODUCT_NAME,
                            "description": settings.CHECKOUT_PRODUCT_DESCRIPTION,
                        },
                    },
                    "quantity": 1,
                }]
            },
        }
        if metadata:
            payload["metadata"] = metadata

        data = self._request("POST", "/checkout/sessions", payload)
        if not data.get("id"):
            raise PaymentGatewayError("Checkout gateway did not return a session id")

        logger.info(f"Created checkout session {data['id']} for {amount} {currency}")
        return CheckoutSession(session_id=data["id"], url=data.get("url"), status=data.get("status"))

    def get_checkout_session(self, session_id: str) -> CheckoutSession:
        """
        Fetch a checkout session's status and transaction hash.

        Raises:
            PaymentGatewayError: If the gateway request fails.
        """
        data = self._request("GET", f"/checkout/sessions/{session_id}")
        tx_hash = safe_get(data, "paymentIntent", "transactions", 0, "txHash")
        return CheckoutSession(
            session_id=data.get("id") or session_id,
            url=data.get("url"),
            status=data.get("status"),
            transaction_hash=tx_hash,
        )


class DemoGateway:
    """Checkout stand-in for demo deployments: sessions complete immediately."""

    name = "DEMO"

    def create_checkout_session(self, amount, currency, success_url, cancel_url=None, metadata=None) -> CheckoutSession:
        session_id = f"demo_{new_id()}"
        return CheckoutSession(session_id=session_id, url=success_url, status=COMPLETE_STATUS)

    def get_checkout_session(self, session_id: str) -> CheckoutSession:
        return CheckoutSession(
            session_id=session_id,
            status=COMPLETE_STATUS,
            transaction_hash=demo_transaction_hash(),
        )


def demo_transaction_hash() -> str:
    return "0x" + secrets.token_hex(32)
