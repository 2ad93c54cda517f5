"""AzamPay mobile money gateway client.

Collects payments with an MNO (mobile network operator) checkout and pays
vendors out with a disbursement. A successful call only means AzamPay
accepted the request; the buyer still has to approve it on their phone
and the result arrives later on the callback route.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Optional

import httpx

from ..config import Settings
from ..errors import PaymentGatewayError

logger = logging.getLogger(__name__)

MnoProvider = Literal["Mpesa", "Tigo", "Airtel", "Halopesa"]
MNO_PROVIDERS: tuple[str, ...] = ("Mpesa", "Tigo", "Airtel", "Halopesa")

CURRENCY = "TZS"
TOKEN_PATH = "/AppRegistration/GenerateToken"
CHECKOUT_PATH = "/azampay/mno/checkout"
DISBURSE_PATH = "/azampay/disburse"


@dataclass
class CheckoutResult:
    """Outcome of a checkout or disbursement request."""

    success: bool
    message: str
    transaction_id: Optional[str] = None
    reference: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.message,
            "transaction_id": self.transaction_id,
            "reference": self.reference,
        }


class AzamPayClient:
    """Thin async client over the AzamPay REST API.

    Usage::

        client = AzamPayClient(get_settings())
        result = await client.mno_checkout(5000, "255712345678", "order-1,order-2")
    """

    def __init__(self, settings: Settings, http: httpx.AsyncClient | None = None):
        self._settings = settings
        self._http = http

    @property
    def configured(self) -> bool:
        s = self._settings
        return bool(s.azampay_app_name and s.azampay_client_id and s.azampay_client_secret)

    async def _post(self, url: str, payload: dict, headers: dict | None = None) -> dict:
        if self._http is not None:
            response = await self._http.post(url, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()
        async with httpx.AsyncClient(timeout=self._settings.azampay_timeout_seconds) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()

    async def get_token(self) -> str:
        """Exchange app credentials for a bearer token.

        Raises:
            PaymentGatewayError: credentials are missing or AzamPay refused them.
        """
        if not self.configured:
            raise PaymentGatewayError("AzamPay credentials are not configured")

        payload = {
            "appName": self._settings.azampay_app_name,
            "clientId": self._settings.azampay_client_id,
            "clientSecret": self._settings.azampay_client_secret,
        }
        try:
            body = await self._post(f"{self._settings.azampay_auth_url}{TOKEN_PATH}", payload)
        except httpx.HTTPError as e:
            logger.error(f"AzamPay token request failed: {e}")
            raise PaymentGatewayError("Could not authenticate with AzamPay") from e

        token = (body.get("data") or {}).get("accessToken")
        if not token:
            logger.error(f"AzamPay token response had no accessToken: {body.get('message')}")
            raise PaymentGatewayError(body.get("message") or "Failed to get AzamPay token")
        return token

    async def mno_checkout(
        self,
        amount: float,
        phone_number: str,
        external_id: str,
        provider: MnoProvider = "Mpesa",
    ) -> CheckoutResult:
        """Push a payment prompt to the buyer's phone."""
        token = await self.get_token()
        payload = {
            "accountNumber": phone_number,
            "amount": _format_amount(amount),
            "currency": CURRENCY,
            "externalId": external_id,
            "provider": provider,
        }
        try:
            body = await self._post(
                f"{self._settings.azampay_checkout_url}{CHECKOUT_PATH}",
                payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"AzamPay checkout failed for {external_id}: {e}")
            return CheckoutResult(
                success=False,
                message="Failed to communicate with AzamPay for checkout",
                reference=external_id,
            )

        if body.get("success"):
            logger.info(
                f"AzamPay checkout accepted | ref={external_id} tx={body.get('transactionId')}"
            )
            return CheckoutResult(
                success=True,
                message=body.get("message")
                or "Payment initiated successfully. Please check your phone to approve.",
                transaction_id=body.get("transactionId"),
                reference=external_id,
            )
        logger.warning(f"AzamPay checkout rejected | ref={external_id} msg={body.get('message')}")
        return CheckoutResult(
            success=False,
            message=body.get("message") or "Payment initiation failed at AzamPay",
            reference=external_id,
        )

    async def disburse(
        self,
        amount: float,
        phone_number: str,
        external_id: str,
        recipient_name: str,
        provider: MnoProvider = "Mpesa",
    ) -> CheckoutResult:
        """Send money from the platform account to a mobile wallet."""
        token = await self.get_token()
        payload = {
            "source": {
                "countryCode": "TZ",
                "fullName": self._settings.site_name,
                "bankName": provider,
                "accountNumber": self._settings.azampay_app_name,
                "currency": CURRENCY,
            },
            "destination": {
                "countryCode": "TZ",
                "fullName": recipient_name,
                "bankName": provider,
                "accountNumber": phone_number,
                "currency": CURRENCY,
            },
            "transferDetails": {
                "type": "SWIFT",
                "amount": amount,
                "date": datetime.now(timezone.utc).isoformat(),
            },
            "externalReferenceId": external_id,
            "remarks": f"Payout {external_id}",
        }
        try:
            body = await self._post(
                f"{self._settings.azampay_checkout_url}{DISBURSE_PATH}",
                payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"AzamPay disbursement failed for {external_id}: {e}")
            return CheckoutResult(
                success=False,
                message="Failed to communicate with AzamPay for disbursement",
                reference=external_id,
            )

        success = bool(body.get("success"))
        return CheckoutResult(
            success=success,
            message=body.get("message")
            or ("Payout initiated successfully" if success else "Payout initiation failed"),
            transaction_id=body.get("transactionId"),
            reference=external_id,
        )


def _format_amount(amount: float) -> str:
    """AzamPay wants the amount as a string; whole shillings have no decimals."""
    return str(int(amount)) if float(amount).is_integer() else f"{amount:.2f}"


def get_azampay_client(settings: Settings) -> AzamPayClient:
    """Build a gateway client from settings."""
    return AzamPayClient(settings)
