"""
Stripe REST client for deposit payment intents.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping

import requests

from ..domain.exceptions import PaymentGatewayError
from ..domain.models import DepositIntent

logger = logging.getLogger(__name__)


class StripeGateway:
    """
    Creates payment intents through ``POST /v1/payment_intents``.

    The returned client secret is handed to the client, which confirms the
    payment itself; the server never sees card details.
    """

    API_ENDPOINT = "https://api.stripe.com/v1"

    def __init__(self, secret_key: str, timeout: float = 30):
        """
        Initialize the gateway.

        Args:
            secret_key: Stripe secret API key (sk_live_... / sk_test_...)
            timeout: Request timeout in seconds
        """
        self.secret_key = secret_key
        self.timeout = timeout

    async def create_deposit_intent(
        self,
        amount: int,
        currency: str,
        metadata: Mapping[str, str],
    ) -> DepositIntent:
        return await asyncio.to_thread(self._create_intent, amount, currency, metadata)

    def _create_intent(
        self,
        amount: int,
        currency: str,
        metadata: Mapping[str, str],
    ) -> DepositIntent:
        payload: Dict[str, Any] = {
            "amount": amount,
            "currency": currency,
            "automatic_payment_methods[enabled]": "true",
        }
        for key, value in metadata.items():
            payload[f"metadata[{key}]"] = value

        headers = {}
        dossier_id = metadata.get("dossier_id")
        if dossier_id:
            # One deposit intent per dossier, even if the call is repeated.
            headers["Idempotency-Key"] = f"deposit-{dossier_id}"

        try:
            response = requests.post(
                f"{self.API_ENDPOINT}/payment_intents",
                auth=(self.secret_key, ""),
                data=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise PaymentGatewayError(f"Payment gateway unreachable: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            error = data.get("error", {}) if isinstance(data, dict) else {}
            message = error.get("message") or response.reason
            raise PaymentGatewayError(
                f"Payment intent rejected ({response.status_code}): {message}"
            )

        try:
            intent = DepositIntent(id=data["id"], client_secret=data["client_secret"])
        except (KeyError, TypeError) as e:
            raise PaymentGatewayError(f"Unexpected payment intent response: missing {e}") from e

        logger.info("Created payment intent %s for %d %s", intent.id, amount, currency)
        return intent
